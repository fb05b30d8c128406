"""Base resource applier abstraction.

An applier converges one concrete resource to its declared state and
reports whether anything changed. Every method must be idempotent: when the
resource already matches, it returns an unchanged outcome and has no side
effect. With noop=True it reports what would change without changing it.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..engine.schema import Outcome, ResourceDecl, ResourceKind

logger = logging.getLogger(__name__)

# Method handling each resource kind
METHODS = {
    ResourceKind.PACKAGE: "ensure_package",
    ResourceKind.FILE: "ensure_file",
    ResourceKind.DIRECTORY: "ensure_directory",
    ResourceKind.SERVICE: "ensure_service",
    ResourceKind.EXEC: "run_command",
    ResourceKind.REPO: "ensure_repository",
    ResourceKind.CONTAINER: "ensure_container",
    ResourceKind.CERTIFICATE: "generate_self_signed_certificate",
    ResourceKind.USER: "ensure_user",
    ResourceKind.GROUP: "ensure_group",
    ResourceKind.NOTIFY: "notify",
}

# Argument filled from the resource name when the payload omits it
NAME_ARGUMENT = {
    ResourceKind.PACKAGE: "name",
    ResourceKind.FILE: "path",
    ResourceKind.DIRECTORY: "path",
    ResourceKind.SERVICE: "name",
    ResourceKind.REPO: "path",
    ResourceKind.CONTAINER: "name",
    ResourceKind.USER: "name",
    ResourceKind.GROUP: "name",
}

# Kinds that react to a subscribed resource changing
REFRESHABLE = {
    ResourceKind.SERVICE,
    ResourceKind.EXEC,
    ResourceKind.CONTAINER,
}


class ResourceApplier(ABC):
    """Abstract base class for resource appliers."""

    def apply(self, decl: ResourceDecl, noop: bool = False, refresh: bool = False) -> Outcome:
        """
        Converge one declared resource.

        Args:
            decl: Resource declaration
            noop: Report what would change without changing anything
            refresh: A subscribed resource changed in this run

        Returns:
            Outcome of the convergence
        """
        method = getattr(self, METHODS[decl.kind])
        kwargs = dict(decl.payload)
        name_arg = NAME_ARGUMENT.get(decl.kind)
        if name_arg:
            kwargs.setdefault(name_arg, decl.name)
        if decl.kind in REFRESHABLE:
            kwargs["refresh"] = refresh
        return method(noop=noop, **kwargs)

    @abstractmethod
    def ensure_package(
        self, name: str, version: Optional[str] = None, noop: bool = False
    ) -> Outcome:
        """Ensure a package is installed (at a version, when given)."""
        pass

    @abstractmethod
    def ensure_file(
        self,
        path: str,
        content: Optional[str] = None,
        source: Optional[str] = None,
        mode: str = "0644",
        owner: str = "root",
        group: str = "root",
        noop: bool = False,
    ) -> Outcome:
        """Ensure a file exists with the given content (or source) and metadata."""
        pass

    @abstractmethod
    def ensure_directory(
        self,
        path: str,
        mode: str = "0755",
        owner: str = "root",
        group: str = "root",
        noop: bool = False,
    ) -> Outcome:
        """Ensure a directory exists with the given metadata."""
        pass

    @abstractmethod
    def ensure_service(
        self,
        name: str,
        running: bool = True,
        enabled: bool = True,
        refresh: bool = False,
        noop: bool = False,
    ) -> Outcome:
        """Ensure a service state; restart it on refresh when running."""
        pass

    @abstractmethod
    def ensure_repository(
        self,
        path: str,
        url: str,
        revision: str = "main",
        user: Optional[str] = None,
        noop: bool = False,
    ) -> Outcome:
        """Clone when absent, check out the revision when present."""
        pass

    @abstractmethod
    def run_command(
        self,
        command: str,
        cwd: Optional[str] = None,
        user: Optional[str] = None,
        env: Optional[dict] = None,
        creates: Optional[str] = None,
        unless: Optional[str] = None,
        refreshonly: bool = False,
        refresh: bool = False,
        noop: bool = False,
    ) -> Outcome:
        """Run a command unless its guard condition is already satisfied."""
        pass

    @abstractmethod
    def ensure_container(
        self,
        name: str,
        image: str,
        env: Optional[dict] = None,
        volumes: Optional[list] = None,
        ports: Optional[list] = None,
        restart_policy: str = "unless-stopped",
        refresh: bool = False,
        noop: bool = False,
    ) -> Outcome:
        """Ensure a container runs with the given definition."""
        pass

    @abstractmethod
    def generate_self_signed_certificate(
        self,
        common_name: str,
        cert_path: str,
        key_path: str,
        valid_days: int = 365,
        noop: bool = False,
    ) -> Outcome:
        """Generate a key pair; no-op when both paths already exist."""
        pass

    @abstractmethod
    def ensure_user(
        self,
        name: str,
        group: Optional[str] = None,
        home: Optional[str] = None,
        shell: str = "/usr/sbin/nologin",
        system: bool = True,
        noop: bool = False,
    ) -> Outcome:
        """Ensure a user account exists."""
        pass

    @abstractmethod
    def ensure_group(self, name: str, system: bool = True, noop: bool = False) -> Outcome:
        """Ensure a group exists."""
        pass

    @abstractmethod
    def notify(self, message: str, loglevel: str = "notice", noop: bool = False) -> Outcome:
        """Emit a notification message."""
        pass
