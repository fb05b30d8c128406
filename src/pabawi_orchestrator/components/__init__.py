"""Built-in components: reverse proxy, installers and integrations."""
from .base import BUILTIN_COMPONENTS, CONFIG_TAG
from . import install, integrations, proxy  # noqa: F401


def register_builtin_components(registry) -> None:
    """Register every built-in component with a registry."""
    for spec in BUILTIN_COMPONENTS:
        registry.register(spec)


__all__ = [
    "BUILTIN_COMPONENTS",
    "CONFIG_TAG",
    "register_builtin_components",
]
