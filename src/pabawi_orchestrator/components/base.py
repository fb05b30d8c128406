"""Shared pieces for the built-in components."""
from typing import Any, Callable, Mapping, Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from ..engine.schema import BuildOutput, ComponentSpec, ParamSpec
from ..errors import TypeMismatch

# Tag carried by every file the application reads its configuration from
CONFIG_TAG = "pabawi::config"

DEFAULT_CONFIG_DIR = "/etc/pabawi"

BUILTIN_COMPONENTS: list[ComponentSpec] = []

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def builtin(
    name: str,
    params: Optional[Mapping[str, ParamSpec]] = None,
) -> Callable[[Callable[[Mapping[str, Any]], BuildOutput]], Callable]:
    """Decorator collecting a build function as a built-in component."""
    def decorator(func):
        BUILTIN_COMPONENTS.append(ComponentSpec(
            name=name,
            build=func,
            params=dict(params or {}),
            description=(func.__doc__ or "").strip(),
        ))
        return func

    return decorator


def http_url(field: str, value: Any) -> None:
    """Parameter validator for http(s) URLs."""
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError:
        raise TypeMismatch(field, "HttpUrl", value) from None


def port_number(field: str, value: Any) -> None:
    """Parameter validator for TCP ports."""
    if not 1 <= value <= 65535:
        raise TypeMismatch(field, "Integer[1, 65535]", value)


def positive(field: str, value: Any) -> None:
    if value <= 0:
        raise TypeMismatch(field, "Integer[1]", value)
