"""Declarative host configuration orchestrator for the Pabawi web interface."""
from .engine import Orchestrator
from .appliers import InMemoryApplier, ResourceApplier, create_applier
from .config import HostConfigLoader, load_host_config

__version__ = "0.1.0"

__all__ = [
    "Orchestrator",
    "InMemoryApplier",
    "ResourceApplier",
    "create_applier",
    "HostConfigLoader",
    "load_host_config",
]
