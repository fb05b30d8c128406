"""Component registry: maps component identifiers to their specifications.

Built-in components are registered once when the registry is created.
Names supplied by the caller are resolved at compile time, after
validation has checked their grammar.
"""
import logging
from typing import Any, Callable, Mapping, Optional

from ..errors import RegistrationError, UnknownComponent
from .naming import is_valid_identifier
from .schema import BuildOutput, ComponentSpec, ParamSpec

logger = logging.getLogger(__name__)

BuildFunction = Callable[[Mapping[str, Any]], BuildOutput]


class ComponentRegistry:
    """
    Registry of component specifications.

    Usage:
        registry = ComponentRegistry.create_default()
        spec = registry.resolve("pabawi::proxy::nginx")

        @registry.component("site::motd", params={"text": ParamSpec(str, "hi")})
        def motd(params):
            return BuildOutput(resources=[...])
    """

    def __init__(self) -> None:
        self._specs: dict[str, ComponentSpec] = {}

    def register(self, spec: ComponentSpec) -> None:
        """
        Register a component specification.

        Raises:
            RegistrationError: If the name is malformed or already taken
        """
        if not is_valid_identifier(spec.name):
            raise RegistrationError(f"Invalid component name: {spec.name!r}")
        if spec.name in self._specs:
            raise RegistrationError(f"Component already registered: {spec.name}")
        self._specs[spec.name] = spec
        logger.debug(f"Registered component {spec.name}")

    def resolve(self, name: str) -> ComponentSpec:
        """
        Get the specification for a component name.

        Raises:
            UnknownComponent: If no component is registered under name
        """
        if name not in self._specs:
            raise UnknownComponent(name)
        return self._specs[name]

    def has(self, name: str) -> bool:
        return name in self._specs

    def names(self) -> list[str]:
        """List registered names in registration order."""
        return list(self._specs.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def component(
        self,
        name: str,
        params: Optional[Mapping[str, ParamSpec]] = None,
        description: str = "",
    ) -> Callable[[BuildFunction], BuildFunction]:
        """Decorator to register a build function as a component."""
        def decorator(func: BuildFunction) -> BuildFunction:
            self.register(ComponentSpec(
                name=name,
                build=func,
                params=dict(params or {}),
                description=description or (func.__doc__ or "").strip(),
            ))
            return func

        return decorator

    @classmethod
    def create_default(cls) -> "ComponentRegistry":
        """Create a registry holding every built-in component."""
        from ..components import register_builtin_components

        registry = cls()
        register_builtin_components(registry)
        return registry
