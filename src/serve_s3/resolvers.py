"""Literal-or-resolver configuration values.

Route options such as ``bucket``, ``key``, ``filename`` and ``content_type``
may be given either as a plain value or as a function of the request. Both
forms are normalised at registration time into one of two variants:

    - ``Literal(value)``: returned unchanged on every resolution.
    - ``Resolver(fn)``: ``fn(request, context)`` is called on every
      resolution; the result is awaited when it is awaitable.

``resolve()`` is the single entry point used by the request pipelines.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from fastapi import Request

from serve_s3.errors import ConfigurationError

if TYPE_CHECKING:
    from serve_s3.config import RouteConfig

T = TypeVar("T")


@dataclass(frozen=True)
class ResolveContext:
    """Accumulated per-request facts handed to resolver functions.

    Each pipeline stage derives a new context with ``dataclasses.replace``;
    a context is never mutated.

    Attributes:
        route: The route's configuration.
        method: Lower-case HTTP method of the request.
        path: The ``path`` path-parameter, if the route captures one.
        bucket: The resolved bucket, once known.
        key: The resolved object key, once known.
        form_key: For uploads, the key derived from the form part.
        filename: The filename parsed from an existing Content-Disposition.
        content_type: The content type reported by storage or the form part.
    """

    route: RouteConfig
    method: str
    path: str | None = None
    bucket: str | None = None
    key: str | None = None
    form_key: str | None = None
    filename: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class Literal(Generic[T]):
    """A configuration value given as a plain literal."""

    value: T

    async def resolve(self, request: Request, context: ResolveContext) -> T:
        return self.value


@dataclass(frozen=True)
class Resolver(Generic[T]):
    """A configuration value computed per request by ``fn(request, context)``."""

    fn: Callable[..., Any]

    async def resolve(self, request: Request, context: ResolveContext) -> T:
        result = self.fn(request, context)
        if inspect.isawaitable(result):
            result = await result
        return result


ConfigValue = Literal[Any] | Resolver[Any]


def as_config_value(value: Any, *, literal_types: tuple[type, ...] = (str,)) -> ConfigValue | None:
    """Wrap a raw option into its ``Literal``/``Resolver`` variant.

    Args:
        value: The raw option: ``None``, a callable, or a literal.
        literal_types: Types accepted as literals.

    Returns:
        ``None`` for a missing option, otherwise the tagged variant.

    Raises:
        ValueError: If ``value`` is neither callable nor of a literal type.
    """
    if value is None or isinstance(value, (Literal, Resolver)):
        return value
    if callable(value):
        return Resolver(value)
    if literal_types and isinstance(value, literal_types):
        return Literal(value)
    if not literal_types:
        raise ValueError("must be a function")
    names = ", ".join(t.__name__ for t in literal_types)
    raise ValueError(f"must be a function or one of: {names}")


async def resolve(
    value: ConfigValue | None,
    request: Request,
    context: ResolveContext,
    *,
    name: str = "value",
    required: bool = False,
) -> Any:
    """Resolve a configuration value for the current request.

    Args:
        value: A ``Literal``, a ``Resolver`` or ``None``.
        request: The inbound request.
        context: The accumulated request context.
        name: Option name, used in error messages.
        required: Whether an empty result is a configuration fault.

    Returns:
        The literal value or the resolver's (awaited) result.

    Raises:
        ConfigurationError: If a required value is missing, malformed, or
            resolves to an empty value.
    """
    if value is None:
        if required:
            raise ConfigurationError(f'cannot resolve "{name}"')
        return None

    if not isinstance(value, (Literal, Resolver)):
        raise ConfigurationError(f'cannot resolve "{name}": unsupported option type')

    result = await value.resolve(request, context)
    if required and not result:
        raise ConfigurationError(f'cannot resolve "{name}": resolved to an empty value')
    return result


Matcher = str | re.Pattern[str] | None


def matches(patterns: Iterable[Matcher] | None, value: str | None) -> bool:
    """Return True if any entry of ``patterns`` matches ``value``.

    Used for both the content-type allow-list and the form-key ignore-list.

    - a ``str`` entry matches by equality,
    - a compiled regex matches when ``search`` finds it in ``value``,
    - a ``None`` entry matches a missing value.

    Callers decide what an unconfigured list means; ``None`` here matches
    nothing.
    """
    for pattern in patterns or ():
        if pattern is None:
            if value is None:
                return True
        elif isinstance(pattern, re.Pattern):
            if value is not None and pattern.search(value):
                return True
        elif pattern == value:
            return True
    return False
