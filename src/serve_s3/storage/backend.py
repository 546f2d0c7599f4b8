"""Storage client protocol for serve-s3."""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, BinaryIO, Protocol


@dataclass(frozen=True)
class ObjectHead:
    """Metadata reported by a HEAD on an existing object.

    Attributes:
        content_type: Stored Content-Type, if any.
        content_disposition: Stored Content-Disposition header, if any.
        content_length: Object size in bytes, if reported.
        etag: Quoted ETag, if reported.
    """

    content_type: str | None = None
    content_disposition: str | None = None
    content_length: int | None = None
    etag: str | None = None


@dataclass(frozen=True)
class ObjectStream:
    """An open object read: its metadata and a byte-chunk iterator.

    The holder must call ``aclose()`` once it is done with the stream,
    whether or not ``body`` was iterated; ``release`` frees the backend's
    connection.
    """

    head: ObjectHead
    body: AsyncIterator[bytes]
    release: Callable[[], Awaitable[None]] | None = None

    async def aclose(self) -> None:
        """Stop the body iterator and release the backend response."""
        aclose = getattr(self.body, "aclose", None)
        if aclose is not None:
            await aclose()
        if self.release is not None:
            await self.release()


class StorageClient(Protocol):
    """Protocol defining the object storage client interface.

    Every method raises ``serve_s3.errors.NotFound`` when the object does
    not exist and ``serve_s3.errors.StorageError`` carrying the backend's
    HTTP status for any other backend failure.
    """

    async def head_object(self, bucket: str, key: str) -> ObjectHead:
        """Return the metadata of an existing object.

        Args:
            bucket: The bucket name.
            key: The object key.

        Returns:
            The object's metadata.
        """
        ...

    async def get_object_stream(self, bucket: str, key: str) -> ObjectStream:
        """Open a streaming read of an object.

        Args:
            bucket: The bucket name.
            key: The object key.

        Returns:
            The object's metadata and an async iterator over its bytes.
        """
        ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes | BinaryIO,
        *,
        content_type: str | None = None,
        content_disposition: str | None = None,
    ) -> dict[str, Any]:
        """Store an object.

        Args:
            bucket: The bucket name.
            key: The object key.
            body: The bytes to store, or a readable binary file positioned
                at its start.
            content_type: Content-Type stored with the object.
            content_disposition: Content-Disposition stored with the object.

        Returns:
            The backend's response fields (e.g. ``ETag``).
        """
        ...

    async def delete_object(self, bucket: str, key: str) -> dict[str, Any]:
        """Delete an object.

        Returns:
            The backend's response fields.
        """
        ...

    async def close(self) -> None:
        """Release resources held by the client."""
        ...
