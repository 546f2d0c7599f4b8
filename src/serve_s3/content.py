"""Content-Type and Content-Disposition derivation for a resolved target."""

from dataclasses import replace

from fastapi import Request

from serve_s3.disposition import DispositionMode, decide, parse_disposition
from serve_s3.resolvers import ResolveContext, resolve


async def resolve_content_type(
    request: Request,
    context: ResolveContext,
    reported: str | None,
) -> str | None:
    """Derive the content type of an object or form part.

    The type reported by storage (GET) or declared by the form part (POST)
    is first substituted through ``override_content_types``. A configured
    ``content_type`` literal or resolver then has the last word; a resolver
    sees the substituted type as ``context.content_type`` and may return
    None to keep it.
    """
    route = context.route
    content_type = route.override_content_types.get(reported, reported) if reported else reported

    if route.content_type is None:
        return content_type

    context = replace(context, content_type=content_type)
    resolved = await resolve(route.content_type, request, context, name="content_type")
    return resolved or content_type


async def resolve_content_disposition(
    request: Request,
    context: ResolveContext,
    existing_header: str | None,
) -> str | None:
    """Derive the Content-Disposition header for ``context.key``.

    The route's ``filename`` resolver, when configured, is called with the
    filename carried by ``existing_header`` as ``context.filename``.
    """
    route = context.route
    mode = route.mode_for(context.method)
    if mode is DispositionMode.OFF:
        return None

    filename = None
    if route.filename is not None:
        existing = parse_disposition(existing_header)
        context = replace(context, filename=existing.filename)
        filename = await resolve(route.filename, request, context, name="filename")

    return decide(mode, existing_header, filename, context.key)
