"""POST pipeline: store every part of a multipart/form-data request.

Parts are processed in two explicit phases:

1. ``prepare_all`` runs, concurrently for every part: the ignore-list
   check, key resolution, the existence guard, content-type/disposition
   derivation and the allow-list check. Every part reaches a terminal
   state before the first failure (in part order) is raised; two parts
   resolving to the same object are a conflict as well.
2. ``store_all`` then writes every prepared part, again concurrently,
   and raises the first failure.

Nothing is rolled back: when a store fails, siblings that were already
written stay in storage.

File parts are handed to storage as the spooled files the form parser
wrote them to; the request body is capped by the route's
``max_upload_bytes``.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any, BinaryIO, TypeVar

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from serve_s3 import metrics
from serve_s3.config import RouteConfig
from serve_s3.content import resolve_content_disposition, resolve_content_type
from serve_s3.disposition import parse_disposition
from serve_s3.errors import (
    Conflict,
    InvalidArgument,
    NotFound,
    PayloadTooLarge,
    UnprocessableEntity,
    UnsupportedMediaType,
)
from serve_s3.handlers.common import ResolvedTarget, build_context, resolve_target
from serve_s3.handlers.reply import UploadOptions, respond
from serve_s3.resolvers import matches
from serve_s3.storage.backend import StorageClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MULTIPART = "multipart/form-data"


@dataclass(frozen=True)
class FormPart:
    """One entry of the multipart payload.

    Attributes:
        field_name: The form field name.
        filename: The filename sent with the part, if any.
        content_type: The part's declared Content-Type, if any.
        content_disposition: The part's own Content-Disposition header.
        body: The part's bytes, or the spooled file holding them.
        size: Length of the part's body in bytes.
    """

    field_name: str
    filename: str | None
    content_type: str | None
    content_disposition: str | None
    body: bytes | BinaryIO
    size: int

    @property
    def file_key(self) -> str:
        """Name used for the object key: filename > disposition name > field name."""
        disposition = parse_disposition(self.content_disposition)
        return disposition.filename or self.filename or disposition.name or self.field_name


@dataclass(frozen=True)
class PreparedPart:
    """A part that passed validation and is ready to be stored."""

    part: FormPart
    target: ResolvedTarget
    content_type: str | None
    content_disposition: str | None


@dataclass(frozen=True)
class Upload:
    """A stored part.

    Attributes:
        form_key: The form field name; keys the response payload.
        file_key: The name the object key was derived from.
        bucket: The bucket written to.
        key: The object key written to.
        content_type: Content-Type stored with the object.
        content_disposition: Content-Disposition stored with the object.
        data: The storage client's response.
    """

    form_key: str
    file_key: str
    bucket: str
    key: str
    content_type: str | None
    content_disposition: str | None
    data: dict[str, Any]


def check_request_media_type(request: Request) -> None:
    """Reject requests that cannot carry form parts.

    Raises:
        UnprocessableEntity: If the Content-Type header is missing.
        UnsupportedMediaType: If the request is not multipart/form-data.
    """
    header = request.headers.get("content-type")
    if not header:
        raise UnprocessableEntity("missing Content-Type header")
    media_type = header.split(";", 1)[0].strip().lower()
    if media_type != _MULTIPART:
        raise UnsupportedMediaType(f'expected {_MULTIPART}, got "{media_type}"')


def check_content_length(request: Request, limit: int | None) -> None:
    """Reject a declared request body larger than ``limit`` before parsing it.

    Raises:
        PayloadTooLarge: If Content-Length exceeds the limit.
    """
    declared = request.headers.get("content-length", "")
    if limit is not None and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLarge(limit)


def check_parts(parts: list[FormPart], limit: int | None) -> None:
    """Validate the parsed payload as a whole.

    Raises:
        InvalidArgument: If a form field name is repeated.
        PayloadTooLarge: If the parts together exceed ``limit``.
    """
    seen: set[str] = set()
    for part in parts:
        if part.field_name in seen:
            raise InvalidArgument(f'form field "{part.field_name}" is repeated')
        seen.add(part.field_name)

    if limit is not None and sum(part.size for part in parts) > limit:
        raise PayloadTooLarge(limit)


async def read_parts(form: FormData) -> list[FormPart]:
    """Collect the parts of a parsed form in payload order.

    Plain (non-file) fields become parts without content type. File parts
    keep their spooled file, rewound; it stays open until the form is
    closed.
    """
    parts = []
    for field_name, value in form.multi_items():
        if isinstance(value, str):
            data = value.encode("utf-8")
            parts.append(
                FormPart(
                    field_name=field_name,
                    filename=None,
                    content_type=None,
                    content_disposition=None,
                    body=data,
                    size=len(data),
                )
            )
            continue

        await value.seek(0)
        parts.append(
            FormPart(
                field_name=field_name,
                filename=value.filename or None,
                content_type=value.content_type,
                content_disposition=value.headers.get("content-disposition"),
                body=value.file,
                size=value.size or 0,
            )
        )
    return parts


def _raise_first_failure(results: Iterable[T | BaseException]) -> list[T]:
    results = list(results)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


async def _assert_absent(storage: StorageClient, target: ResolvedTarget) -> None:
    try:
        await storage.head_object(target.bucket, target.key)
    except NotFound:
        return
    raise Conflict(target.bucket, target.key)


def _reject(part: FormPart, reason: str, *args: Any) -> None:
    metrics.record_upload_part("rejected")
    logger.warning("Upload of %s rejected: " + reason, part.field_name, *args)


async def prepare_part(
    request: Request,
    route: RouteConfig,
    storage: StorageClient,
    part: FormPart,
) -> PreparedPart | None:
    """Run the validation phase for one part.

    Returns:
        The prepared part, or None when the part is ignored.

    Raises:
        Conflict: If an object already exists at the part's key.
        UnsupportedMediaType: If the part's content type is not allowed.
    """
    if route.ignored_form_keys is not None and matches(route.ignored_form_keys, part.field_name):
        metrics.record_upload_part("ignored")
        logger.debug("Ignoring form field %s", part.field_name)
        return None

    context = build_context(request, route)
    target, context = await resolve_target(
        request,
        context,
        form_key=part.file_key,
        randomize=route.random_post_keys,
    )

    try:
        await _assert_absent(storage, target)
    except Conflict:
        _reject(part, "s3://%s/%s already exists", target.bucket, target.key)
        raise

    context = replace(context, content_type=part.content_type)
    content_type = await resolve_content_type(request, context, part.content_type)
    content_disposition = await resolve_content_disposition(
        request, context, part.content_disposition
    )

    if route.allowed_content_types is not None and not matches(
        route.allowed_content_types, content_type
    ):
        _reject(part, "content type %s is not allowed", content_type)
        raise UnsupportedMediaType(
            f'content type "{content_type}" is not allowed for "{part.field_name}"'
        )

    return PreparedPart(
        part=part,
        target=target,
        content_type=content_type,
        content_disposition=content_disposition,
    )


async def store_part(storage: StorageClient, prepared: PreparedPart) -> Upload:
    """Write one prepared part to storage."""
    target = prepared.target
    data = await storage.put_object(
        target.bucket,
        target.key,
        prepared.part.body,
        content_type=prepared.content_type,
        content_disposition=prepared.content_disposition,
    )
    size = prepared.part.size
    metrics.record_upload_part("stored", size)
    logger.info(
        "Stored s3://%s/%s (%d bytes)",
        target.bucket,
        target.key,
        size,
        extra={"operation": "PutObject", "bucket": target.bucket, "key": target.key},
    )
    return Upload(
        form_key=prepared.part.field_name,
        file_key=prepared.part.file_key,
        bucket=target.bucket,
        key=target.key,
        content_type=prepared.content_type,
        content_disposition=prepared.content_disposition,
        data=data,
    )


def _assert_distinct_targets(prepared: list[PreparedPart]) -> None:
    seen: set[tuple[str, str]] = set()
    for p in prepared:
        target = (p.target.bucket, p.target.key)
        if target in seen:
            _reject(p.part, "s3://%s/%s is written by another part", *target)
            raise Conflict(*target)
        seen.add(target)


async def prepare_all(
    request: Request,
    route: RouteConfig,
    storage: StorageClient,
    parts: list[FormPart],
) -> list[PreparedPart]:
    """Validation phase: prepare every part, then raise the first failure.

    Raises:
        Conflict: Also when two parts resolve to the same object.
    """
    results = await asyncio.gather(
        *(prepare_part(request, route, storage, part) for part in parts),
        return_exceptions=True,
    )
    prepared = [p for p in _raise_first_failure(results) if p is not None]
    _assert_distinct_targets(prepared)
    return prepared


async def store_all(storage: StorageClient, prepared: list[PreparedPart]) -> list[Upload]:
    """Store phase: write every prepared part, then raise the first failure."""
    results = await asyncio.gather(
        *(store_part(storage, p) for p in prepared),
        return_exceptions=True,
    )
    return _raise_first_failure(results)


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


async def upload_parts(
    request: Request,
    route: RouteConfig,
    storage: StorageClient,
) -> tuple[dict[str, dict[str, Any]], UploadOptions]:
    """Run both phases for a POST.

    Returns:
        The payload ``{field_name: {**storage_response, ContentType,
        ContentDisposition}}`` and the delegate options.
    """
    check_request_media_type(request)
    check_content_length(request, route.max_upload_bytes)

    try:
        form = await request.form()
    except (HTTPException, MultiPartException) as e:
        detail = getattr(e, "detail", None) or getattr(e, "message", None) or str(e)
        raise InvalidArgument(f"malformed multipart body: {detail}") from e

    try:
        parts = await read_parts(form)
        check_parts(parts, route.max_upload_bytes)
        prepared = await prepare_all(request, route, storage, parts)
        uploads = await store_all(storage, prepared)
    finally:
        await form.close()

    payload = {
        upload.form_key: _compact(
            {
                **upload.data,
                "ContentType": upload.content_type,
                "ContentDisposition": upload.content_disposition,
            }
        )
        for upload in uploads
    }
    return payload, UploadOptions(uploads=tuple(uploads))


def _created(payload: dict[str, dict[str, Any]], options: UploadOptions) -> Response:
    return JSONResponse(
        content=jsonable_encoder(payload),
        status_code=options.default_status_code,
    )


async def upload_object(request: Request, route: RouteConfig, storage: StorageClient) -> Response:
    """Handle POST on a serve-s3 route."""
    return await respond(
        request,
        route,
        "PutObject",
        lambda: upload_parts(request, route, storage),
        _created,
    )
