"""Host configuration loading from YAML."""
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ConfigLoadError
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PABAWI_CONFIG"


class HostConfigLoader:
    """Loads the host configuration from a YAML file.

    Besides the orchestrator keys, the file may carry defaults applied to
    every enabled integration (explicit values win):

    ```yaml
    proxy_class: pabawi::proxy::nginx
    install_class: pabawi::install::npm
    integration_defaults:
      config_dir: /etc/pabawi
    integrations:
      puppetdb:
        server_url: https://puppetdb.example.com:8081
      bolt: {}
    ```
    """

    DEFAULTS_KEY = "integration_defaults"

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()

    def _find_config(self) -> str:
        """Find the pabawi.yaml config file."""
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "pabawi.yaml",
            Path.cwd() / "pabawi.yaml",
            Path.home() / ".config" / "pabawi" / "pabawi.yaml",
            Path("/etc/pabawi/orchestrator.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise ConfigLoadError(
            "Could not find pabawi.yaml. Create one in ./configs/pabawi.yaml "
            f"or set {CONFIG_ENV_VAR}"
        )

    @timed("load_config")
    def load(self) -> dict[str, Any]:
        """
        Read and prepare the configuration.

        Returns:
            Configuration mapping ready for validation

        Raises:
            ConfigLoadError: The file is unreadable, is not valid YAML or
                does not contain a mapping
        """
        try:
            with open(self.config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except OSError as e:
            raise ConfigLoadError(f"Cannot read {self.config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigLoadError(
                f"{self.config_path} must contain a mapping, got {type(config).__name__}"
            )

        logger.info(f"Loaded host configuration from {self.config_path}")
        return self._apply_defaults(config)

    def _apply_defaults(self, config: dict[str, Any]) -> dict[str, Any]:
        """Merge integration_defaults into every integration's parameters."""
        defaults = config.pop(self.DEFAULTS_KEY, None)
        if not defaults:
            return config
        if not isinstance(defaults, dict):
            raise ConfigLoadError(f"{self.DEFAULTS_KEY} must be a mapping")

        integrations = config.get("integrations")
        if isinstance(integrations, list):
            if not all(isinstance(name, str) for name in integrations):
                # Left for validation to report
                return config
            integrations = {name: {} for name in integrations}
        if not isinstance(integrations, dict):
            return config

        merged = {}
        for name, params in integrations.items():
            if params is None:
                params = {}
            if isinstance(params, dict):
                params = {**defaults, **params}
            merged[name] = params
        config["integrations"] = merged
        return config


def load_host_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """Load the host configuration from a path or the default search paths."""
    return HostConfigLoader(config_path).load()
