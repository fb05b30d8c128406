"""Error taxonomy for the orchestrator.

Validation and compile errors are raised before any resource is touched.
Resource errors are raised by appliers and converted into failed outcomes
by the executor.
"""
from typing import Optional, Sequence


class OrchestratorError(Exception):
    """Base exception for pabawi-orchestrator."""
    pass


# --- Validation (always fatal, raised before compilation) ---

class ConfigValidationError(OrchestratorError):
    """A configuration value failed validation."""

    def __init__(self, message: str, field: str = ""):
        self.message = message
        self.field = field
        super().__init__(message)


class InvalidIdentifier(ConfigValidationError):
    """An identifier field does not match the component name grammar."""

    def __init__(self, field: str, value: object):
        self.value = value
        super().__init__(
            f"Invalid {field}: {value!r} is not a valid component identifier",
            field=field,
        )


class TypeMismatch(ConfigValidationError):
    """A value has the wrong type (e.g. a truthy string for a Boolean)."""

    def __init__(self, field: str, expected_type: str, value: object = None):
        self.expected_type = expected_type
        self.value = value
        super().__init__(
            f"{field} expects a {expected_type} value, "
            f"got {type(value).__name__} {value!r}",
            field=field,
        )


class MissingDependentField(ConfigValidationError):
    """A field required by another field's value is absent."""

    def __init__(self, field: str, required_by: str):
        self.required_by = required_by
        super().__init__(
            f"{field} is required when {required_by} is set",
            field=field,
        )


class ConflictingInstance(ConfigValidationError):
    """The same component was declared twice with different parameters."""

    def __init__(self, name: str, first: str = "", second: str = ""):
        self.name = name
        self.first = first
        self.second = second
        detail = f" (declared by {first} and {second})" if first and second else ""
        super().__init__(
            f"Component {name} is declared more than once with different parameters{detail}",
            field=name,
        )


# --- Compilation (fatal, raised before any resource is applied) ---

class CompileError(OrchestratorError):
    """The catalog could not be compiled."""
    pass


class UnknownComponent(CompileError):
    """A component name does not resolve to a registered component."""

    def __init__(self, name: str, field: Optional[str] = None):
        self.name = name
        self.field = field
        where = f" (referenced by {field})" if field else ""
        super().__init__(f"Unknown component: {name}{where}")


class CycleError(CompileError):
    """The dependency graph contains a cycle."""

    def __init__(self, path: Sequence[str]):
        self.path = list(path)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.path)}")


class DuplicateResource(CompileError):
    """Two declarations share the same resource identifier."""

    def __init__(self, resource_id: str, first_owner: str, second_owner: str):
        self.resource_id = resource_id
        self.first_owner = first_owner
        self.second_owner = second_owner
        super().__init__(
            f"Duplicate declaration of {resource_id}: "
            f"already declared by {first_owner}, redeclared by {second_owner}"
        )


class UnknownParameter(CompileError):
    """A parameter is not part of the component's schema."""

    def __init__(self, component: str, parameter: str):
        self.component = component
        self.parameter = parameter
        super().__init__(f"{component} has no parameter named '{parameter}'")


class MissingParameter(CompileError):
    """A required parameter has no value."""

    def __init__(self, component: str, parameter: str):
        self.component = component
        self.parameter = parameter
        super().__init__(f"{component} requires parameter '{parameter}'")


class DanglingReference(CompileError):
    """A resource requires or subscribes to an id that is not in the catalog."""

    def __init__(self, resource_id: str, referenced_by: str):
        self.resource_id = resource_id
        self.referenced_by = referenced_by
        super().__init__(
            f"{referenced_by} references {resource_id}, which is not declared"
        )


# --- Registry / loading ---

class RegistrationError(OrchestratorError):
    """A component specification could not be registered."""
    pass


class ConfigLoadError(OrchestratorError):
    """The host configuration file could not be loaded."""
    pass


# --- Runtime (raised by appliers) ---

class ResourceError(OrchestratorError):
    """A resource could not be converged."""

    def __init__(self, message: str, resource_id: str = ""):
        self.message = message
        self.resource_id = resource_id
        super().__init__(message)


class TransientResourceError(ResourceError):
    """A resource failed for a reason worth retrying (network, lock)."""
    pass
