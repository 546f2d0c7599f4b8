"""Content-Disposition parsing, formatting and policy.

The policy is a pure function of the route's mode, an already existing
header (stored on the object, or sent with the form part), an explicitly
resolved filename, and the object key:

    ======================  =============================  =======================
    mode                    type                           filename
    ======================  =============================  =======================
    off                     (no header)                    -
    attachment / inline     the mode                       explicit > key basename
    auto                    existing inline/attachment,    explicit > existing
                            otherwise attachment           > key basename
    ======================  =============================  =======================
"""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from dataclasses import dataclass
from email.message import Message
from email.utils import collapse_rfc2231_value
from enum import Enum
from urllib.parse import quote

_DISPOSITION_TYPES = ("inline", "attachment")


class DispositionMode(str, Enum):
    """How a route sets the Content-Disposition header."""

    OFF = "off"
    AUTO = "auto"
    ATTACHMENT = "attachment"
    INLINE = "inline"


DEFAULT_MODE = DispositionMode.AUTO


@dataclass(frozen=True)
class Disposition:
    """A parsed Content-Disposition header.

    Attributes:
        type: Lower-cased disposition type (e.g. "attachment", "form-data").
        filename: The ``filename`` (or ``filename*``) parameter, if any.
        name: The ``name`` parameter (form-data parts), if any.
    """

    type: str | None
    filename: str | None = None
    name: str | None = None


def parse_disposition(header: str | None) -> Disposition:
    """Parse a Content-Disposition header value.

    RFC 2231 / RFC 5987 extended parameters (``filename*=UTF-8''...``) are
    decoded. An empty or missing header yields ``Disposition(type=None)``.
    """
    if not header:
        return Disposition(type=None)

    msg = Message()
    msg["content-disposition"] = header

    # an extended (RFC 2231) parameter wins over its plain ASCII fallback
    found: dict[str, str] = {}
    extended: set[str] = set()
    for param, value in msg.get_params([], header="content-disposition")[1:]:
        if param not in ("filename", "name") or param in extended:
            continue
        if isinstance(value, tuple):
            extended.add(param)
        elif param in found:
            continue
        found[param] = collapse_rfc2231_value(value)

    return Disposition(
        type=msg.get_content_disposition(),
        filename=found.get("filename") or None,
        name=found.get("name") or None,
    )


def _quote_param(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_disposition(disposition_type: str, filename: str | None = None) -> str:
    """Render a Content-Disposition header value.

    The filename is always quoted. Names that are not plain ASCII get an
    ASCII fallback (unsupported characters replaced by ``?``) plus an
    RFC 5987 ``filename*`` parameter carrying the UTF-8 name.

    Args:
        disposition_type: "inline" or "attachment".
        filename: Optional filename parameter.

    Returns:
        The header value, e.g. ``attachment; filename="report.pdf"``.
    """
    if not filename:
        return disposition_type

    if filename.isascii():
        return f"{disposition_type}; filename={_quote_param(filename)}"

    fallback = filename.encode("ascii", "replace").decode("ascii")
    encoded = quote(filename, safe="")
    return (
        f"{disposition_type}; filename={_quote_param(fallback)}; "
        f"filename*=UTF-8''{encoded}"
    )


def mode_for_method(
    mode: DispositionMode | Mapping[str, DispositionMode],
    method: str,
) -> DispositionMode:
    """Return the effective mode for an HTTP method.

    ``mode`` is either a single mode or a per-method mapping such as
    ``{"get": "inline", "post": "attachment"}``; methods missing from the
    mapping use the default (auto).
    """
    if isinstance(mode, DispositionMode):
        return mode
    return DispositionMode(mode.get(method.lower(), DEFAULT_MODE))


def decide(
    mode: DispositionMode,
    existing_header: str | None = None,
    filename: str | None = None,
    key: str | None = None,
) -> str | None:
    """Decide the Content-Disposition header value.

    Args:
        mode: The effective disposition mode.
        existing_header: A Content-Disposition already attached to the
            object (GET) or sent with the form part (POST).
        filename: A filename produced by the route's ``filename`` resolver.
        key: The resolved object key; its basename is the last-resort
            filename.

    Returns:
        The header value, or None when no header should be set.
    """
    if mode is DispositionMode.OFF:
        return None

    existing = parse_disposition(existing_header)

    if mode is DispositionMode.AUTO:
        disposition_type = (
            existing.type if existing.type in _DISPOSITION_TYPES else "attachment"
        )
        name = filename or existing.filename
    else:
        disposition_type = mode.value
        name = filename

    if not name and key:
        name = posixpath.basename(key)

    return format_disposition(disposition_type, name)
