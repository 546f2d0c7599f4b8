"""Tests for the in-memory storage client."""

import io

import pytest

from serve_s3.errors import NotFound
from serve_s3.storage.memory import MemoryStorageClient


async def _collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream.body])


class TestMemoryStorageClient:
    """Tests for MemoryStorageClient."""

    async def test_put_then_head(self, storage):
        resp = await storage.put_object(
            "b",
            "k.pdf",
            b"data",
            content_type="application/pdf",
            content_disposition='inline; filename="k.pdf"',
        )
        head = await storage.head_object("b", "k.pdf")
        assert head.etag == resp["ETag"]
        assert head.etag.startswith('"') and head.etag.endswith('"')
        assert head.content_type == "application/pdf"
        assert head.content_disposition == 'inline; filename="k.pdf"'
        assert head.content_length == 4

    async def test_head_missing_raises_not_found(self, storage):
        with pytest.raises(NotFound) as exc_info:
            await storage.head_object("b", "missing")
        assert exc_info.value.http_status == 404
        assert exc_info.value.message == "could not find object: s3://b/missing"

    async def test_stream_in_chunks(self, storage):
        """Bodies larger than one chunk are split and reassembled intact."""
        data = bytes(range(256)) * 1024
        await storage.put_object("b", "big", data)
        stream = await storage.get_object_stream("b", "big")
        chunks = [chunk async for chunk in stream.body]
        assert len(chunks) == 4
        assert b"".join(chunks) == data
        assert stream.head.content_length == len(data)

    async def test_stream_missing_raises_not_found(self, storage):
        with pytest.raises(NotFound):
            await storage.get_object_stream("b", "missing")

    async def test_put_replaces(self, storage):
        await storage.put_object("b", "k", b"one")
        await storage.put_object("b", "k", b"two")
        assert await _collect(await storage.get_object_stream("b", "k")) == b"two"
        assert len(storage) == 1

    async def test_put_reads_file_body(self, storage):
        await storage.put_object("b", "k", io.BytesIO(b"from a file"))
        assert storage.get("b", "k").data == b"from a file"

    async def test_buckets_are_separate(self, storage):
        await storage.put_object("b1", "k", b"x")
        assert ("b1", "k") in storage
        assert ("b2", "k") not in storage

    async def test_delete(self, storage):
        await storage.put_object("b", "k", b"x")
        assert await storage.delete_object("b", "k") == {}
        assert storage.get("b", "k") is None

    async def test_delete_missing_raises_not_found(self, storage):
        with pytest.raises(NotFound):
            await storage.delete_object("b", "missing")

    async def test_close_keeps_objects(self):
        client = MemoryStorageClient()
        await client.put_object("b", "k", b"x")
        await client.close()
        assert client.get("b", "k").data == b"x"
