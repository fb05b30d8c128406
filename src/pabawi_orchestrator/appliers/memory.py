"""In-memory applier that simulates a host.

Keeps the observed state of every resource in dictionaries and converges
it idempotently. Used for previews and tests; every mutating action is
recorded in `actions` so callers can assert that a converged host sees no
side effects.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..engine.schema import Outcome, ResourceDecl
from ..errors import ResourceError, TransientResourceError
from .base import ResourceApplier

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "err": logging.ERROR,
    "crit": logging.CRITICAL,
}


@dataclass
class HostState:
    """Observed state of the simulated host."""
    packages: dict[str, str] = field(default_factory=dict)
    files: dict[str, dict[str, Any]] = field(default_factory=dict)
    directories: dict[str, dict[str, Any]] = field(default_factory=dict)
    services: dict[str, dict[str, bool]] = field(default_factory=dict)
    repositories: dict[str, dict[str, Any]] = field(default_factory=dict)
    containers: dict[str, dict[str, Any]] = field(default_factory=dict)
    users: dict[str, dict[str, Any]] = field(default_factory=dict)
    groups: dict[str, dict[str, Any]] = field(default_factory=dict)
    satisfied_guards: set[str] = field(default_factory=set)
    notices: set[str] = field(default_factory=set)

    def path_exists(self, path: str) -> bool:
        return path in self.files or path in self.directories


class InMemoryApplier(ResourceApplier):
    """
    Simulated host applier.

    Usage:
        applier = InMemoryApplier(sources={"puppet:///ssl/cert.pem": "..."})
        report = executor.apply(catalog, applier)
        assert applier.actions  # what was changed
    """

    def __init__(
        self,
        state: Optional[HostState] = None,
        sources: Optional[dict[str, str]] = None,
        failures: Optional[dict[str, str]] = None,
        transient_failures: Optional[dict[str, int]] = None,
    ):
        """
        Initialize the simulated host.

        Args:
            state: Starting host state (empty host by default)
            sources: Content available to file `source` references
            failures: Resource id -> reason; these resources always fail
            transient_failures: Resource id -> number of transient failures
                before the resource converges
        """
        self.state = state or HostState()
        self.sources = dict(sources or {})
        self.failures = dict(failures or {})
        self.transient_failures = dict(transient_failures or {})
        self.actions: list[str] = []
        self.restarts: dict[str, int] = {}

    def apply(self, decl: ResourceDecl, noop: bool = False, refresh: bool = False) -> Outcome:
        if decl.id in self.failures:
            raise ResourceError(self.failures[decl.id], resource_id=decl.id)
        remaining = self.transient_failures.get(decl.id, 0)
        if remaining > 0:
            self.transient_failures[decl.id] = remaining - 1
            raise TransientResourceError(
                f"Temporary failure converging {decl.id}", resource_id=decl.id
            )
        return super().apply(decl, noop=noop, refresh=refresh)

    def _act(self, noop: bool, description: str) -> Outcome:
        """Record a mutation, or describe it in noop mode."""
        if noop:
            return Outcome.changed(f"would {description}")
        self.actions.append(description)
        return Outcome.changed(description)

    def _converge(
        self,
        store: dict[str, Any],
        key: str,
        desired: Any,
        noop: bool,
        create: str,
        update: str,
    ) -> Outcome:
        current = store.get(key)
        if current == desired:
            return Outcome.unchanged()
        outcome = self._act(noop, create if current is None else update)
        if not noop:
            store[key] = desired
        return outcome

    def ensure_package(self, name, version=None, noop=False):
        current = self.state.packages.get(name)
        if current is not None and version in (None, "installed", "present", "latest", current):
            return Outcome.unchanged()
        desired = version if version not in (None, "installed", "present") else "latest"
        description = (
            f"install package {name}" if current is None
            else f"upgrade package {name} from {current} to {desired}"
        )
        outcome = self._act(noop, description)
        if not noop:
            self.state.packages[name] = desired
        return outcome

    def ensure_file(self, path, content=None, source=None, mode="0644",
                    owner="root", group="root", noop=False):
        if source is not None:
            if source not in self.sources:
                raise ResourceError(f"Could not retrieve source {source} for {path}")
            content = self.sources[source]
        if content is None:
            existing = self.state.files.get(path)
            content = existing["content"] if existing else ""
        desired = {"content": content, "mode": mode, "owner": owner, "group": group}
        return self._converge(
            self.state.files, path, desired, noop,
            create=f"create file {path}", update=f"update file {path}",
        )

    def ensure_directory(self, path, mode="0755", owner="root", group="root", noop=False):
        desired = {"mode": mode, "owner": owner, "group": group}
        return self._converge(
            self.state.directories, path, desired, noop,
            create=f"create directory {path}", update=f"update directory {path}",
        )

    def ensure_service(self, name, running=True, enabled=True, refresh=False, noop=False):
        desired = {"running": running, "enabled": enabled}
        current = self.state.services.get(name)
        if current != desired:
            verb = "start" if running else "stop"
            outcome = self._act(noop, f"{verb} service {name} (enabled={enabled})")
            if not noop:
                self.state.services[name] = desired
            return outcome
        if refresh and running:
            outcome = self._act(noop, f"restart service {name}")
            if not noop:
                self.restarts[name] = self.restarts.get(name, 0) + 1
            return outcome
        return Outcome.unchanged()

    def ensure_repository(self, path, url, revision="main", user=None, noop=False):
        desired = {"url": url, "revision": revision, "user": user}
        return self._converge(
            self.state.repositories, path, desired, noop,
            create=f"clone {url} into {path}",
            update=f"check out {revision} in {path}",
        )

    def run_command(self, command, cwd=None, user=None, env=None, creates=None,
                    unless=None, refreshonly=False, refresh=False, noop=False):
        if refreshonly and not refresh:
            return Outcome.unchanged()
        if creates and self.state.path_exists(creates):
            return Outcome.unchanged()
        if unless and unless in self.state.satisfied_guards and not refresh:
            return Outcome.unchanged()

        outcome = self._act(noop, f"run '{command}'" + (f" in {cwd}" if cwd else ""))
        if not noop:
            if creates:
                self.state.directories.setdefault(
                    creates, {"mode": "0755", "owner": user or "root", "group": user or "root"}
                )
            if unless:
                self.state.satisfied_guards.add(unless)
        return outcome

    def ensure_container(self, name, image, env=None, volumes=None, ports=None,
                         restart_policy="unless-stopped", refresh=False, noop=False):
        desired = {
            "image": image,
            "env": dict(env or {}),
            "volumes": list(volumes or []),
            "ports": list(ports or []),
            "restart_policy": restart_policy,
        }
        current = self.state.containers.get(name)
        if current != desired:
            verb = "create" if current is None else "recreate"
            outcome = self._act(noop, f"{verb} container {name} from {image}")
            if not noop:
                self.state.containers[name] = desired
            return outcome
        if refresh:
            outcome = self._act(noop, f"restart container {name}")
            if not noop:
                self.restarts[name] = self.restarts.get(name, 0) + 1
            return outcome
        return Outcome.unchanged()

    def generate_self_signed_certificate(self, common_name, cert_path, key_path,
                                         valid_days=365, noop=False):
        if cert_path in self.state.files and key_path in self.state.files:
            return Outcome.unchanged()
        outcome = self._act(noop, f"generate self-signed certificate for {common_name}")
        if not noop:
            self.state.files[cert_path] = {
                "content": f"CERTIFICATE CN={common_name} days={valid_days}",
                "mode": "0644", "owner": "root", "group": "root",
            }
            self.state.files[key_path] = {
                "content": f"PRIVATE KEY CN={common_name}",
                "mode": "0600", "owner": "root", "group": "root",
            }
        return outcome

    def ensure_user(self, name, group=None, home=None, shell="/usr/sbin/nologin",
                    system=True, noop=False):
        desired = {"group": group, "home": home, "shell": shell, "system": system}
        return self._converge(
            self.state.users, name, desired, noop,
            create=f"create user {name}", update=f"update user {name}",
        )

    def ensure_group(self, name, system=True, noop=False):
        return self._converge(
            self.state.groups, name, {"system": system}, noop,
            create=f"create group {name}", update=f"update group {name}",
        )

    def notify(self, message, loglevel="notice", noop=False):
        if message in self.state.notices:
            return Outcome.unchanged()
        if noop:
            return Outcome.changed(f"would notify: {message}")
        logger.log(LOG_LEVELS.get(loglevel, logging.INFO), message)
        self.state.notices.add(message)
        return Outcome.changed(message)
