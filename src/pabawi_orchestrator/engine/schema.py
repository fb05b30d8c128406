"""Schema definitions for the orchestration engine.

Defines component specifications, resource declarations, the compiled
catalog and the per-run report.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from ..errors import MissingParameter, TypeMismatch, UnknownParameter


class ResourceKind(str, Enum):
    """Kinds of concrete resources an applier can converge."""
    PACKAGE = "package"
    FILE = "file"
    DIRECTORY = "directory"
    SERVICE = "service"
    EXEC = "exec"
    REPO = "repo"
    CONTAINER = "container"
    CERTIFICATE = "certificate"
    USER = "user"
    GROUP = "group"
    NOTIFY = "notify"


# Infrastructure failures halt the run; convenience resources do not
FATAL_BY_KIND = {
    ResourceKind.PACKAGE: True,
    ResourceKind.FILE: True,
    ResourceKind.DIRECTORY: True,
    ResourceKind.SERVICE: True,
    ResourceKind.EXEC: True,
    ResourceKind.REPO: True,
    ResourceKind.CONTAINER: True,
    ResourceKind.CERTIFICATE: True,
    ResourceKind.USER: True,
    ResourceKind.GROUP: True,
    ResourceKind.NOTIFY: False,
}

TAG_PREFIX = "tag:"

TYPE_NAMES = {
    str: "String",
    int: "Integer",
    bool: "Boolean",
    list: "Array",
    dict: "Hash",
}


def resource_id(kind: ResourceKind | str, name: str) -> str:
    """Build the catalog identifier for a resource."""
    kind_value = kind.value if isinstance(kind, ResourceKind) else kind
    return f"{kind_value}:{name}"


# --- Components ---

@dataclass(frozen=True)
class ParamSpec:
    """Declared type, default and required flag of one component parameter."""
    type: type
    default: Any = None
    required: bool = False
    description: str = ""
    validator: Optional[Callable[[str, Any], None]] = None

    @property
    def type_name(self) -> str:
        return TYPE_NAMES.get(self.type, self.type.__name__)

    def accepts(self, value: Any) -> bool:
        """Strict type check: bools are never ints and ints never bools."""
        if self.type is bool:
            return isinstance(value, bool)
        if self.type is int:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, self.type)


@dataclass(frozen=True)
class ComponentRef:
    """Reference to another component emitted by a build function."""
    name: str
    params: Optional[Mapping[str, Any]] = None


@dataclass
class BuildOutput:
    """What a component build function returns."""
    resources: list["ResourceDecl"] = field(default_factory=list)
    depends_on: list[ComponentRef] = field(default_factory=list)


@dataclass(frozen=True)
class ComponentSpec:
    """Immutable description of a component kind."""
    name: str
    build: Callable[[Mapping[str, Any]], BuildOutput]
    params: Mapping[str, ParamSpec] = field(default_factory=dict)
    description: str = ""

    def bind(self, raw: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        """
        Bind raw parameter values to this component's schema.

        Applies defaults, rejects unknown names and checks types strictly.

        Raises:
            UnknownParameter: A parameter is not declared
            TypeMismatch: A value has the wrong type
            MissingParameter: A required parameter has no value
        """
        raw = dict(raw or {})
        for key in raw:
            if key not in self.params:
                raise UnknownParameter(self.name, key)

        bound: dict[str, Any] = {}
        for key, param in self.params.items():
            value = raw.get(key)
            if value is None:
                if param.required:
                    raise MissingParameter(self.name, key)
                bound[key] = _copy_default(param.default)
                continue
            if not param.accepts(value):
                raise TypeMismatch(f"{self.name}::{key}", param.type_name, value)
            if param.validator is not None:
                param.validator(f"{self.name}::{key}", value)
            bound[key] = value
        return bound


def _copy_default(value: Any) -> Any:
    # Mutable defaults must not leak between instances
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value


@dataclass(frozen=True)
class ComponentInstance:
    """A component bound to concrete parameters for one run."""
    spec: ComponentSpec
    params: Mapping[str, Any]
    role: str
    position: int
    output: BuildOutput = field(default_factory=BuildOutput, compare=False)

    @property
    def identifier(self) -> str:
        return self.spec.name

    @property
    def depends_on(self) -> list[str]:
        return [ref.name for ref in self.output.depends_on]

    @property
    def resources(self) -> list["ResourceDecl"]:
        return self.output.resources


# --- Resources ---

@dataclass(frozen=True)
class ResourceDecl:
    """Desired state of one concrete resource."""
    kind: ResourceKind
    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    requires: tuple[str, ...] = ()
    subscribe: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    fatal: Optional[bool] = None
    retries: int = 1

    @property
    def id(self) -> str:
        return resource_id(self.kind, self.name)

    @property
    def is_fatal(self) -> bool:
        if self.fatal is not None:
            return self.fatal
        return FATAL_BY_KIND[self.kind]

    @property
    def follows(self) -> tuple[str, ...]:
        """Every id this resource must be applied after."""
        return self.requires + tuple(
            s for s in self.subscribe if not s.startswith(TAG_PREFIX)
        )


@dataclass(frozen=True)
class OrderingRule:
    """Role-level ordering: components of role `before` precede role `after`."""
    before: str
    after: str


# --- Validation Results ---

@dataclass(frozen=True)
class IntegrationEntry:
    """One enabled integration after validation."""
    name: str
    identifier: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidatedConfig:
    """Host configuration that passed validation."""
    proxy_manage: bool = True
    proxy_class: str = "pabawi::proxy::nginx"
    proxy_params: Mapping[str, Any] = field(default_factory=dict)
    install_manage: bool = True
    install_class: str = "pabawi::install::npm"
    install_params: Mapping[str, Any] = field(default_factory=dict)
    integrations: tuple[IntegrationEntry, ...] = ()


@dataclass
class ValidationResult:
    """Result of config validation."""
    valid: bool
    errors: list[Exception] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config: Optional[ValidatedConfig] = None


# --- Catalog ---

@dataclass(frozen=True)
class UnresolvedReference:
    """A dynamically listed component that could not be resolved."""
    name: str
    identifier: str
    field: str


@dataclass(frozen=True)
class CatalogEntry:
    """A resource declaration with the component that declared it."""
    resource: ResourceDecl
    owner: str

    @property
    def id(self) -> str:
        return self.resource.id


@dataclass(frozen=True)
class Catalog:
    """Ordered, duplicate-free resource declarations for one run."""
    entries: tuple[CatalogEntry, ...] = ()
    components: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    unresolved: tuple[UnresolvedReference, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def ids(self) -> list[str]:
        return [entry.id for entry in self.entries]

    def get(self, rid: str) -> Optional[CatalogEntry]:
        for entry in self.entries:
            if entry.id == rid:
                return entry
        return None

    def owned_by(self, component: str) -> list[CatalogEntry]:
        return [entry for entry in self.entries if entry.owner == component]

    def index_of(self, rid: str) -> int:
        return self.ids.index(rid)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "components": list(self.components),
            "resources": [
                {
                    "id": entry.id,
                    "owner": entry.owner,
                    "payload": dict(entry.resource.payload),
                    "requires": list(entry.resource.requires),
                    "subscribe": list(entry.resource.subscribe),
                }
                for entry in self.entries
            ],
            "warnings": list(self.warnings),
            "unresolved": [u.identifier for u in self.unresolved],
        }


# --- Execution Results ---

class OutcomeStatus(str, Enum):
    """Result of converging one resource."""
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Outcome:
    """What an applier reports for one resource."""
    status: OutcomeStatus
    message: str = ""

    @classmethod
    def unchanged(cls, message: str = "") -> "Outcome":
        return cls(OutcomeStatus.UNCHANGED, message)

    @classmethod
    def changed(cls, message: str = "") -> "Outcome":
        return cls(OutcomeStatus.CHANGED, message)

    @classmethod
    def failed(cls, reason: str) -> "Outcome":
        return cls(OutcomeStatus.FAILED, reason)


@dataclass
class ExecuteOptions:
    """Options for catalog execution."""
    dry_run: bool = False
    retry_min_wait: float = 1
    retry_max_wait: float = 10
    audit_context: str = ""
    user: Optional[str] = None


@dataclass
class ResourceResult:
    """Outcome of one resource in a run."""
    resource_id: str
    kind: ResourceKind
    owner: str
    status: OutcomeStatus
    message: str = ""
    fatal: bool = True
    attempts: int = 1

    def to_dict(self) -> dict:
        return {
            "resource_id": self.resource_id,
            "kind": self.kind.value,
            "owner": self.owner,
            "status": self.status.value,
            "message": self.message,
            "fatal": self.fatal,
            "attempts": self.attempts,
        }


@dataclass
class RunReport:
    """Ordered record of every resource outcome in one run."""
    dry_run: bool = False
    results: list[ResourceResult] = field(default_factory=list)
    first_failure: Optional[ResourceResult] = None
    halted: bool = False
    not_applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def _with_status(self, status: OutcomeStatus) -> list[ResourceResult]:
        return [r for r in self.results if r.status == status]

    @property
    def changed(self) -> list[ResourceResult]:
        return self._with_status(OutcomeStatus.CHANGED)

    @property
    def unchanged(self) -> list[ResourceResult]:
        return self._with_status(OutcomeStatus.UNCHANGED)

    @property
    def failed(self) -> list[ResourceResult]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> list[ResourceResult]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def success(self) -> bool:
        return not self.failed and not self.halted

    @property
    def converged(self) -> bool:
        """True when every resource was already in its desired state."""
        return bool(self.results) and all(
            r.status == OutcomeStatus.UNCHANGED for r in self.results
        )

    def result_for(self, rid: str) -> Optional[ResourceResult]:
        for result in self.results:
            if result.resource_id == rid:
                return result
        return None

    def summary(self) -> str:
        """Human-readable one-block summary of the run."""
        prefix = "[DRY-RUN] " if self.dry_run else ""
        lines = [
            f"{prefix}{len(self.results)} resources: "
            f"{len(self.changed)} changed, {len(self.unchanged)} unchanged, "
            f"{len(self.failed)} failed, {len(self.skipped)} skipped"
        ]
        if self.first_failure:
            lines.append(
                f"First failure: {self.first_failure.resource_id}: "
                f"{self.first_failure.message}"
            )
        if self.halted:
            lines.append(f"Run halted, {len(self.not_applied)} resources not applied")
        for ref in self.unresolved:
            lines.append(f"Unresolved: {ref.identifier} ({ref.field})")
        for warning in self.warnings:
            lines.append(f"Warning: {warning}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "dry_run": self.dry_run,
            "success": self.success,
            "halted": self.halted,
            "results": [r.to_dict() for r in self.results],
            "first_failure": self.first_failure.to_dict() if self.first_failure else None,
            "not_applied": list(self.not_applied),
            "warnings": list(self.warnings),
            "unresolved": [u.identifier for u in self.unresolved],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
