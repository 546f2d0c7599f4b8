"""S3 storage client for serve-s3, built on aiobotocore.

The client is route-scoped: it is created when a route is registered,
opened on first use and closed on application shutdown.

Credentials are taken from the route configuration when both parts are
given, otherwise from the standard AWS credential chain (env vars,
~/.aws/credentials, IAM role, etc.).
"""

import asyncio
import functools
import logging
from collections.abc import AsyncIterator
from typing import Any, BinaryIO

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from serve_s3.errors import NotFound, ServeS3Error, StorageError
from serve_s3.storage.backend import ObjectHead, ObjectStream

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


def translate_client_error(exc: ClientError, bucket: str, key: str) -> ServeS3Error:
    """Map a botocore ClientError onto the serve-s3 error taxonomy.

    Args:
        exc: The error raised by the S3 client.
        bucket: The bucket of the failed call.
        key: The key of the failed call.

    Returns:
        ``NotFound`` for a missing object, otherwise a ``StorageError``
        carrying the backend's HTTP status and error code.
    """
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    if code in _NOT_FOUND_CODES or status == 404:
        return NotFound(bucket, key)

    if not status:
        status = int(code) if code.isdigit() else 500
    return StorageError(
        http_status=status,
        message=error.get("Message") or str(exc),
        code=code if code and not code.isdigit() else "StorageError",
        bucket=bucket,
        key=key,
    )


async def _close_body(body) -> None:
    """Release the HTTP response behind a StreamingBody; safe to repeat."""
    await body.__aexit__(None, None, None)


def _strip_metadata(resp: dict[str, Any]) -> dict[str, Any]:
    """Drop the transport-level ResponseMetadata from a botocore response."""
    return {k: v for k, v in resp.items() if k != "ResponseMetadata"}


class AWSStorageClient:
    """Storage client talking to S3 (or an S3-compatible endpoint).

    Attributes:
        region: The AWS region.
        endpoint_url: Custom endpoint (MinIO, localstack, ...), if any.
        ssl_enabled: Whether to use TLS.
        path_style: Use path-style addressing instead of virtual hosts.
        client_options: Extra ``botocore.config.Config`` options.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        ssl_enabled: bool = True,
        path_style: bool = False,
        client_options: dict[str, Any] | None = None,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.ssl_enabled = ssl_enabled
        self.path_style = path_style
        self.client_options = dict(client_options or {})
        self._session = AioSession()
        self._client = None
        self._client_ctx = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Create the aiobotocore S3 client. Safe to call more than once."""
        async with self._lock:
            if self._client is not None:
                return

            client_kwargs: dict[str, Any] = {
                "region_name": self.region,
                "use_ssl": self.ssl_enabled,
            }
            if self.endpoint_url:
                client_kwargs["endpoint_url"] = self.endpoint_url

            options = dict(self.client_options)
            if self.path_style:
                options["s3"] = {**options.get("s3", {}), "addressing_style": "path"}
            if options:
                client_kwargs["config"] = BotoConfig(**options)

            # Use explicit credentials if provided, otherwise fall back to chain
            if self.access_key_id and self.secret_access_key:
                self._session.set_credentials(self.access_key_id, self.secret_access_key)

            self._client_ctx = self._session.create_client("s3", **client_kwargs)
            self._client = await self._client_ctx.__aenter__()

            logger.info(
                "S3 client initialized: region=%s endpoint=%s",
                self.region,
                self.endpoint_url or "default",
            )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def _get_client(self):
        if self._client is None:
            await self.init()
        return self._client

    async def head_object(self, bucket: str, key: str) -> ObjectHead:
        """Fetch object metadata.

        Raises:
            NotFound: If the object does not exist.
            StorageError: On any other backend failure.
        """
        client = await self._get_client()
        try:
            resp = await client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise translate_client_error(e, bucket, key) from e

        return ObjectHead(
            content_type=resp.get("ContentType"),
            content_disposition=resp.get("ContentDisposition"),
            content_length=resp.get("ContentLength"),
            etag=resp.get("ETag"),
        )

    async def get_object_stream(self, bucket: str, key: str) -> ObjectStream:
        """Open an object for streaming in 64KB chunks.

        Raises:
            NotFound: If the object does not exist.
            StorageError: If the backend answers with a status >= 400.
        """
        client = await self._get_client()
        try:
            resp = await client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise translate_client_error(e, bucket, key) from e

        body = resp["Body"]
        status = resp.get("ResponseMetadata", {}).get("HTTPStatusCode", 200)
        if status >= 400:
            await _close_body(body)
            raise StorageError(http_status=status, bucket=bucket, key=key)

        head = ObjectHead(
            content_type=resp.get("ContentType"),
            content_disposition=resp.get("ContentDisposition"),
            content_length=resp.get("ContentLength"),
            etag=resp.get("ETag"),
        )
        return ObjectStream(
            head=head,
            body=self._iter_body(body),
            release=functools.partial(_close_body, body),
        )

    @staticmethod
    async def _iter_body(body) -> AsyncIterator[bytes]:
        async with body as stream:
            while True:
                chunk = await stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes | BinaryIO,
        *,
        content_type: str | None = None,
        content_disposition: str | None = None,
    ) -> dict[str, Any]:
        """Upload an object with its content headers as object metadata.

        Returns:
            The PutObject response without ResponseMetadata.
        """
        client = await self._get_client()
        kwargs: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body}
        if content_type:
            kwargs["ContentType"] = content_type
        if content_disposition:
            kwargs["ContentDisposition"] = content_disposition

        try:
            resp = await client.put_object(**kwargs)
        except ClientError as e:
            raise translate_client_error(e, bucket, key) from e
        return _strip_metadata(resp)

    async def delete_object(self, bucket: str, key: str) -> dict[str, Any]:
        """Delete an object.

        S3 itself answers 204 for missing keys; only backends that report a
        404 surface ``NotFound`` here.
        """
        client = await self._get_client()
        try:
            resp = await client.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise translate_client_error(e, bucket, key) from e
        return _strip_metadata(resp)
