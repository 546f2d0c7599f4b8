"""In-memory storage client for serve-s3.

Implements the StorageClient protocol using a Python dictionary. Nothing
survives a restart; used by the ``memory`` backend and by the tests.
"""

import hashlib
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, BinaryIO

from serve_s3.errors import NotFound
from serve_s3.storage.backend import ObjectHead, ObjectStream

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB (matches the S3 client)
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredObject:
    """An object held by the memory client."""

    data: bytes
    etag: str
    content_type: str | None = None
    content_disposition: str | None = None

    def head(self) -> ObjectHead:
        return ObjectHead(
            content_type=self.content_type,
            content_disposition=self.content_disposition,
            content_length=len(self.data),
            etag=self.etag,
        )


class MemoryStorageClient:
    """Storage client that holds all objects in memory.

    Objects are stored in a dictionary keyed by (bucket, key). Buckets are
    implicit: any bucket name is accepted.
    """

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], StoredObject] = {}

    def __contains__(self, item: tuple[str, str]) -> bool:
        return item in self._objects

    def __len__(self) -> int:
        return len(self._objects)

    def get(self, bucket: str, key: str) -> StoredObject | None:
        """Return the stored object, or None. Not part of the protocol."""
        return self._objects.get((bucket, key))

    async def head_object(self, bucket: str, key: str) -> ObjectHead:
        obj = self._objects.get((bucket, key))
        if obj is None:
            raise NotFound(bucket, key)
        return obj.head()

    async def get_object_stream(self, bucket: str, key: str) -> ObjectStream:
        obj = self._objects.get((bucket, key))
        if obj is None:
            raise NotFound(bucket, key)
        return ObjectStream(head=obj.head(), body=self._iter_chunks(obj.data))

    @staticmethod
    async def _iter_chunks(data: bytes) -> AsyncIterator[bytes]:
        for offset in range(0, len(data), _CHUNK_SIZE):
            yield data[offset : offset + _CHUNK_SIZE]

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes | BinaryIO,
        *,
        content_type: str | None = None,
        content_disposition: str | None = None,
    ) -> dict[str, Any]:
        """Store an object, replacing any previous one.

        Returns:
            ``{"ETag": '"<md5>"'}``
        """
        data = bytes(body) if isinstance(body, (bytes, bytearray)) else body.read()
        etag = f'"{hashlib.md5(data).hexdigest()}"'
        self._objects[(bucket, key)] = StoredObject(
            data=data,
            etag=etag,
            content_type=content_type,
            content_disposition=content_disposition,
        )
        return {"ETag": etag}

    async def delete_object(self, bucket: str, key: str) -> dict[str, Any]:
        """Delete an object.

        Raises:
            NotFound: If the object does not exist.
        """
        if self._objects.pop((bucket, key), None) is None:
            raise NotFound(bucket, key)
        return {}

    async def close(self) -> None:
        """Nothing to release; objects stay available until the client is dropped."""
