"""Host configuration loading."""
from .loader import HostConfigLoader, load_host_config

__all__ = ["HostConfigLoader", "load_host_config"]
