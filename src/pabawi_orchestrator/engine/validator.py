"""Pre-flight validation for host configurations.

Catches malformed identifiers, wrongly typed flags and missing dependent
fields before any component is resolved or any resource is declared.
Validation only inspects the supplied tree.
"""
from typing import Any, Mapping, Optional

from ..errors import (
    ConfigValidationError,
    ConflictingInstance,
    InvalidIdentifier,
    MissingDependentField,
    TypeMismatch,
)
from .naming import integration_identifier, is_valid_identifier, is_valid_short_name
from .schema import IntegrationEntry, ValidatedConfig, ValidationResult

DEFAULT_PROXY_CLASS = "pabawi::proxy::nginx"
DEFAULT_INSTALL_CLASS = "pabawi::install::npm"

KNOWN_KEYS = {
    "proxy_manage",
    "proxy_class",
    "proxy",
    "install_manage",
    "install_class",
    "install",
    "integrations",
}

# Parameters that must be real booleans wherever they appear
BOOLEAN_PARAMS = {
    "ssl",
    "ssl_self_signed",
    "auth_enabled",
    "manage_nodejs",
    "manage_docker",
    "manage_package",
    "command_whitelist_allow_all",
}


class ConfigValidator:
    """Validate a raw host configuration tree."""

    def validate(self, raw: Any) -> ValidatedConfig:
        """
        Validate a raw configuration and return the typed result.

        Args:
            raw: Configuration mapping (as loaded from YAML)

        Returns:
            ValidatedConfig

        Raises:
            ConfigValidationError: The first problem found
        """
        result = self.check(raw)
        if not result.valid:
            raise result.errors[0]
        return result.config

    def check(self, raw: Any) -> ValidationResult:
        """
        Run every validation rule and collect all problems.

        Returns:
            ValidationResult with valid flag, errors, warnings and, when
            valid, the ValidatedConfig
        """
        errors: list[ConfigValidationError] = []
        warnings: list[str] = []

        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            errors.append(TypeMismatch("configuration", "Hash", raw))
            return ValidationResult(valid=False, errors=errors)

        for key in raw:
            if key not in KNOWN_KEYS:
                warnings.append(f"Ignoring unknown configuration key '{key}'")

        proxy_manage = self._boolean(raw, "proxy_manage", True, errors)
        install_manage = self._boolean(raw, "install_manage", True, errors)
        proxy_class = self._identifier(raw, "proxy_class", DEFAULT_PROXY_CLASS, errors)
        install_class = self._identifier(raw, "install_class", DEFAULT_INSTALL_CLASS, errors)

        proxy_params = self._params(raw.get("proxy"), "proxy", errors)
        install_params = self._params(raw.get("install"), "install", errors)

        self._check_proxy_ssl(proxy_params, errors)
        self._check_install_auth(install_params, errors)

        integrations = self._validate_integrations(raw.get("integrations"), errors, warnings)

        self._check_conflicts(
            proxy_manage, proxy_class, install_manage, install_class, integrations, errors
        )

        if errors:
            return ValidationResult(valid=False, errors=list(errors), warnings=warnings)

        config = ValidatedConfig(
            proxy_manage=proxy_manage,
            proxy_class=proxy_class,
            proxy_params=proxy_params,
            install_manage=install_manage,
            install_class=install_class,
            install_params=install_params,
            integrations=tuple(integrations),
        )
        return ValidationResult(valid=True, warnings=warnings, config=config)

    def _boolean(
        self,
        raw: Mapping[str, Any],
        key: str,
        default: bool,
        errors: list[ConfigValidationError]
    ) -> bool:
        """Read a flag that must be an actual bool, not a truthy surrogate."""
        value = raw.get(key)
        if value is None:
            return default
        if not isinstance(value, bool):
            errors.append(TypeMismatch(key, "Boolean", value))
            return default
        return value

    def _identifier(
        self,
        raw: Mapping[str, Any],
        key: str,
        default: str,
        errors: list[ConfigValidationError]
    ) -> str:
        """Read a component identifier field."""
        value = raw.get(key)
        if value is None:
            return default
        if not isinstance(value, str):
            errors.append(TypeMismatch(key, "String", value))
            return default
        if not is_valid_identifier(value):
            errors.append(InvalidIdentifier(key, value))
            return default
        return value

    def _params(
        self,
        value: Any,
        field: str,
        errors: list[ConfigValidationError]
    ) -> dict[str, Any]:
        """Validate a parameter map and the booleans inside it."""
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            errors.append(TypeMismatch(field, "Hash", value))
            return {}

        params = dict(value)
        for key, param in params.items():
            if key in BOOLEAN_PARAMS and param is not None and not isinstance(param, bool):
                errors.append(TypeMismatch(f"{field}.{key}", "Boolean", param))
        return params

    def _check_proxy_ssl(
        self,
        params: Mapping[str, Any],
        errors: list[ConfigValidationError]
    ) -> None:
        """External certificates need both a certificate and a key source."""
        if params.get("ssl") is False:
            return
        if params.get("ssl_self_signed") is not False:
            return
        self._require_ssl_sources(params, "proxy", "proxy.ssl_self_signed", errors)

    def _check_install_auth(
        self,
        params: Mapping[str, Any],
        errors: list[ConfigValidationError]
    ) -> None:
        """Authentication needs a secret."""
        if params.get("auth_enabled") is not True:
            return
        secret = params.get("jwt_secret")
        if not isinstance(secret, str) or not secret.strip():
            errors.append(MissingDependentField("install.jwt_secret", "install.auth_enabled"))

    def _require_ssl_sources(
        self,
        params: Mapping[str, Any],
        field: str,
        required_by: str,
        errors: list[ConfigValidationError]
    ) -> None:
        for key in ("ssl_cert_source", "ssl_key_source"):
            if not params.get(key):
                errors.append(MissingDependentField(f"{field}.{key}", required_by))

    def _validate_integrations(
        self,
        value: Any,
        errors: list[ConfigValidationError],
        warnings: list[str]
    ) -> list[IntegrationEntry]:
        """
        Validate the enabled-integrations collection.

        Accepts a list of names or a map of name to parameters. Repeated
        names in list form collapse into a single entry.
        """
        if value is None:
            return []

        if isinstance(value, Mapping):
            items = [(name, params, f"integrations.{name}") for name, params in value.items()]
        elif isinstance(value, (list, tuple)):
            items = [(name, None, f"integrations[{i}]") for i, name in enumerate(value)]
        else:
            errors.append(TypeMismatch("integrations", "Array[String]", value))
            return []

        entries: list[IntegrationEntry] = []
        seen: set[str] = set()

        for name, params, field in items:
            if not isinstance(name, str):
                errors.append(TypeMismatch(field, "String", name))
                continue
            if not is_valid_short_name(name):
                errors.append(InvalidIdentifier(field, name))
                continue
            if name in seen:
                warnings.append(f"Integration '{name}' is listed more than once")
                continue
            seen.add(name)

            integration_params = self._params(params, f"integrations.{name}", errors)
            self._check_integration_ssl(name, integration_params, errors)

            entries.append(IntegrationEntry(
                name=name,
                identifier=integration_identifier(name),
                params=integration_params,
            ))

        return entries

    def _check_integration_ssl(
        self,
        name: str,
        params: Mapping[str, Any],
        errors: list[ConfigValidationError]
    ) -> None:
        """Integrations have no self-signed mode: ssl means external material."""
        if params.get("ssl") is not True or params.get("ssl_self_signed") is True:
            return
        field = f"integrations.{name}"
        self._require_ssl_sources(params, field, f"{field}.ssl", errors)

    def _check_conflicts(
        self,
        proxy_manage: bool,
        proxy_class: str,
        install_manage: bool,
        install_class: str,
        integrations: list[IntegrationEntry],
        errors: list[ConfigValidationError]
    ) -> None:
        """One instance per identifier: explicit fields must not collide."""
        declared: dict[str, str] = {}
        candidates: list[tuple[Optional[str], str]] = [
            (proxy_class if proxy_manage else None, "proxy_class"),
            (install_class if install_manage else None, "install_class"),
        ]
        candidates.extend((entry.identifier, "integrations") for entry in integrations)

        for identifier, field in candidates:
            if identifier is None:
                continue
            if identifier in declared:
                errors.append(ConflictingInstance(identifier, declared[identifier], field))
                continue
            declared[identifier] = field
