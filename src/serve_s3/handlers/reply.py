"""Reply strategies: the default response or a route's ``on_response`` delegate.

A delegate is called as ``on_response(error, result, request, options)``
and must return the final ``Response`` (it may be a coroutine function):

    ==========  =====================  ====================  ===============
    outcome     error                  result                options
    ==========  =====================  ====================  ===============
    GET ok      None                   ObjectStream          ServeOptions
    POST ok     None                   {field: data}         UploadOptions
    DELETE ok   None                   None                  DeleteOptions
    failure     ServeS3Error           None                  None
    ==========  =====================  ====================  ===============
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fastapi import Request, Response
from starlette.background import BackgroundTask, BackgroundTasks

from serve_s3 import metrics
from serve_s3.config import RouteConfig
from serve_s3.errors import InternalError, ServeS3Error, normalize_error

if TYPE_CHECKING:
    from serve_s3.handlers.upload import Upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServeOptions:
    """Delegate options for a successful GET."""

    bucket: str
    key: str
    content_type: str | None = None
    content_disposition: str | None = None
    content_length: int | None = None
    etag: str | None = None
    default_status_code: int = 200


@dataclass(frozen=True)
class UploadOptions:
    """Delegate options for a successful POST: one entry per stored part."""

    uploads: tuple[Upload, ...] = ()
    default_status_code: int = 201


@dataclass(frozen=True)
class DeleteOptions:
    """Delegate options for a successful DELETE."""

    bucket: str
    key: str
    storage_response: dict[str, Any] = field(default_factory=dict)
    default_status_code: int = 204


async def call_delegate(
    delegate: Callable[..., Any],
    error: ServeS3Error | None,
    result: Any,
    request: Request,
    options: Any,
) -> Response:
    """Invoke ``on_response`` and check it produced a response."""
    response = delegate(error, result, request, options)
    if inspect.isawaitable(response):
        response = await response
    if not isinstance(response, Response):
        raise InternalError(
            f"on_response must return a Response, got {type(response).__name__}"
        )
    return response


def _run_after(response: Response, fn: Callable[..., Any], *args: Any) -> None:
    """Schedule ``fn(*args)`` after ``response`` is sent, keeping its own task."""
    task = BackgroundTask(fn, *args)
    if response.background is None:
        response.background = task
    else:
        response.background = BackgroundTasks([response.background, task])


async def respond(
    request: Request,
    route: RouteConfig,
    operation: str,
    pipeline: Callable[[], Awaitable[tuple[Any, Any]]],
    default: Callable[[Any, Any], Response],
    release: Callable[[Any], Awaitable[None]] | None = None,
) -> Response:
    """Run ``pipeline`` and turn its outcome into a response.

    Args:
        request: The inbound request.
        route: The route's configuration.
        operation: Operation name for logs and metrics (e.g. "GetObject").
        pipeline: Coroutine factory returning ``(result, options)``.
        default: Builds the default response from ``(result, options)``.
        release: Frees resources held by a successful ``result``. It runs
            after the response is sent, or at once if no response is built.

    Returns:
        The delegate's response when ``on_response`` is configured,
        otherwise the default response.

    Raises:
        ServeS3Error: Without a delegate, the normalized failure is raised for
            the application's exception handler to render.
    """
    try:
        result, options = await pipeline()
    except Exception as exc:
        if not isinstance(exc, ServeS3Error):
            logger.exception("Unexpected failure in %s", operation)
        error = normalize_error(exc)
        metrics.record_operation(operation, error.http_status)
        if error.http_status >= 500:
            logger.warning(
                "%s failed: %s %s",
                operation,
                error.code,
                error.message,
                extra={"operation": operation, "status": error.http_status},
            )
        if route.on_response is None:
            if error is exc:
                raise
            raise error from exc
        return await call_delegate(route.on_response, error, None, request, None)

    metrics.record_operation(operation, options.default_status_code)
    try:
        if route.on_response is not None:
            response = await call_delegate(route.on_response, None, result, request, options)
        else:
            response = default(result, options)
    except BaseException:
        if release is not None:
            await release(result)
        raise

    if release is not None:
        _run_after(response, release, result)
    return response
