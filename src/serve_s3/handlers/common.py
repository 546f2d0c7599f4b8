"""Bucket/key resolution shared by the GET, POST and DELETE pipelines."""

import logging
from dataclasses import dataclass, replace

from fastapi import Request

from serve_s3.config import RouteConfig
from serve_s3.keys import compute_key
from serve_s3.resolvers import Literal, ResolveContext, Resolver, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTarget:
    """The bucket and key one storage call operates on."""

    bucket: str
    key: str


def build_context(request: Request, route: RouteConfig) -> ResolveContext:
    """Create the initial resolve context for a request on ``route``."""
    return ResolveContext(
        route=route,
        method=request.method.lower(),
        path=request.path_params.get("path") or None,
    )


async def resolve_key(
    request: Request,
    context: ResolveContext,
    form_key: str | None = None,
    randomize: bool = False,
) -> str:
    """Resolve the object key for the current request or form part.

    A resolver ``key`` supplies the complete key; a literal ``key`` is a
    prefix joined with the path parameter and ``form_key``.
    """
    key_option = context.route.key

    if isinstance(key_option, Resolver):
        key = await resolve(key_option, request, context, name="key", required=True)
        return compute_key(key, randomize=randomize)

    base = key_option.value if isinstance(key_option, Literal) else None
    return compute_key(base, context.path, form_key, randomize)


async def resolve_target(
    request: Request,
    context: ResolveContext,
    form_key: str | None = None,
    randomize: bool = False,
) -> tuple[ResolvedTarget, ResolveContext]:
    """Resolve bucket then key.

    Returns:
        The target and the context extended with ``bucket`` and ``key``.

    Raises:
        ConfigurationError: If the bucket or key resolves to nothing.
    """
    bucket = await resolve(context.route.bucket, request, context, name="bucket", required=True)
    context = replace(context, bucket=bucket, form_key=form_key)

    key = await resolve_key(request, context, form_key, randomize)
    context = replace(context, key=key)

    logger.debug(
        "Resolved target s3://%s/%s",
        bucket,
        key,
        extra={"bucket": bucket, "key": key},
    )
    return ResolvedTarget(bucket=bucket, key=key), context
