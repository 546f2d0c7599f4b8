"""GET pipeline: stream an object back to the client."""

import logging
from dataclasses import replace

from fastapi import Request, Response
from fastapi.responses import StreamingResponse

from serve_s3.config import RouteConfig
from serve_s3.content import resolve_content_disposition, resolve_content_type
from serve_s3.handlers.common import build_context, resolve_target
from serve_s3.handlers.reply import ServeOptions, respond
from serve_s3.storage.backend import ObjectStream, StorageClient

logger = logging.getLogger(__name__)


async def retrieve_object(
    request: Request,
    route: RouteConfig,
    storage: StorageClient,
) -> tuple[ObjectStream, ServeOptions]:
    """Resolve the target, look up its metadata and open the body stream.

    Raises:
        NotFound: If the object does not exist.
        StorageError: If the backend fails or answers with a status >= 400.
    """
    context = build_context(request, route)
    target, context = await resolve_target(request, context)

    head = await storage.head_object(target.bucket, target.key)

    context = replace(context, content_type=head.content_type)
    content_type = await resolve_content_type(request, context, head.content_type)
    content_disposition = await resolve_content_disposition(
        request, context, head.content_disposition
    )

    stream = await storage.get_object_stream(target.bucket, target.key)
    logger.debug(
        "Serving s3://%s/%s as %s (%s)",
        target.bucket,
        target.key,
        content_type,
        content_disposition,
        extra={"operation": "GetObject", "bucket": target.bucket, "key": target.key},
    )

    options = ServeOptions(
        bucket=target.bucket,
        key=target.key,
        content_type=content_type,
        content_disposition=content_disposition,
        content_length=(
            stream.head.content_length
            if stream.head.content_length is not None
            else head.content_length
        ),
        etag=stream.head.etag or head.etag,
    )
    return stream, options


def stream_response(stream: ObjectStream, options: ServeOptions) -> Response:
    """Default GET reply: stream the body with the resolved headers."""
    headers: dict[str, str] = {}
    if options.content_disposition:
        headers["Content-Disposition"] = options.content_disposition
    if options.content_length is not None:
        headers["Content-Length"] = str(options.content_length)
    if options.etag:
        headers["ETag"] = options.etag

    return StreamingResponse(
        content=stream.body,
        status_code=options.default_status_code,
        headers=headers,
        media_type=options.content_type,
    )


async def serve_object(request: Request, route: RouteConfig, storage: StorageClient) -> Response:
    """Handle GET on a serve-s3 route."""
    return await respond(
        request,
        route,
        "GetObject",
        lambda: retrieve_object(request, route, storage),
        stream_response,
        release=ObjectStream.aclose,
    )
