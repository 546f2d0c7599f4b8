"""DELETE pipeline."""

import logging

from fastapi import Request, Response

from serve_s3.config import RouteConfig
from serve_s3.handlers.common import build_context, resolve_target
from serve_s3.handlers.reply import DeleteOptions, respond
from serve_s3.storage.backend import StorageClient

logger = logging.getLogger(__name__)


async def delete_target(
    request: Request,
    route: RouteConfig,
    storage: StorageClient,
) -> tuple[None, DeleteOptions]:
    """Resolve the target and delete it; no existence pre-check is made."""
    context = build_context(request, route)
    target, _ = await resolve_target(request, context)

    storage_response = await storage.delete_object(target.bucket, target.key)
    logger.info(
        "Deleted s3://%s/%s",
        target.bucket,
        target.key,
        extra={"operation": "DeleteObject", "bucket": target.bucket, "key": target.key},
    )
    return None, DeleteOptions(
        bucket=target.bucket,
        key=target.key,
        storage_response=storage_response,
    )


def _no_content(result: None, options: DeleteOptions) -> Response:
    return Response(status_code=options.default_status_code)


async def delete_object(request: Request, route: RouteConfig, storage: StorageClient) -> Response:
    """Handle DELETE on a serve-s3 route."""
    return await respond(
        request,
        route,
        "DeleteObject",
        lambda: delete_target(request, route, storage),
        _no_content,
    )
