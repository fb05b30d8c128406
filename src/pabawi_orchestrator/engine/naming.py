"""Component identifier grammar and name mapping."""
import re

# pabawi::proxy::nginx, my_custom_proxy
IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(::[a-z][a-z0-9_]*)*$")

# bolt, puppetdb (a single identifier segment)
SHORT_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

NAMESPACE = "pabawi"
INTEGRATIONS_NAMESPACE = f"{NAMESPACE}::integrations"


def is_valid_identifier(value: object) -> bool:
    """Check a value against the component identifier grammar."""
    return isinstance(value, str) and bool(IDENTIFIER_PATTERN.fullmatch(value))


def is_valid_short_name(value: object) -> bool:
    """Check a value is a single identifier segment."""
    return isinstance(value, str) and bool(SHORT_NAME_PATTERN.fullmatch(value))


def integration_identifier(name: str) -> str:
    """
    Map a validated integration short name to its component identifier.

    Examples:
        "bolt" -> "pabawi::integrations::bolt"

    Raises:
        ValueError: If name is not a single identifier segment
    """
    if not is_valid_short_name(name):
        raise ValueError(f"Invalid integration name: {name!r}")
    return f"{INTEGRATIONS_NAMESPACE}::{name}"


def integration_name(identifier: str) -> str:
    """Inverse of integration_identifier."""
    prefix = f"{INTEGRATIONS_NAMESPACE}::"
    if not identifier.startswith(prefix):
        raise ValueError(f"Not an integration identifier: {identifier!r}")
    return identifier[len(prefix):]
