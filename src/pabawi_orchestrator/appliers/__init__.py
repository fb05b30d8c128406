"""Resource appliers for different targets."""
from .base import ResourceApplier
from .memory import HostState, InMemoryApplier

__all__ = [
    "ResourceApplier",
    "HostState",
    "InMemoryApplier",
]

# Applier type registry
APPLIER_TYPES = {
    "memory": InMemoryApplier,
}


def create_applier(applier_type: str, **options) -> ResourceApplier:
    """Factory function to create applier instances."""
    applier_type = applier_type.lower()
    if applier_type not in APPLIER_TYPES:
        raise ValueError(f"Unknown applier type: {applier_type}")

    applier_class = APPLIER_TYPES[applier_type]
    return applier_class(**options)
