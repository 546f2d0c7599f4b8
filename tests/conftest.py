"""Shared pytest fixtures for serve-s3 tests.

Route-level tests build a bare FastAPI app per test with a single
serve-s3 route backed by an in-memory storage client, so every test sees
an empty store and no network access is needed.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from serve_s3.config import RouteConfig
from serve_s3.errors import StorageError
from serve_s3.routing import register_route
from serve_s3.server import register_exception_handlers
from serve_s3.storage.memory import MemoryStorageClient

BUCKET = "test-bucket"
ROUTE_PATH = "/files/{path:path}"


def build_request(method: str = "GET", path: str | None = None) -> Request:
    """Build a bare Starlette request for unit tests of pipeline stages."""
    scope = {
        "type": "http",
        "method": method,
        "path": "/",
        "headers": [],
        "query_string": b"",
        "path_params": {"path": path} if path is not None else {},
    }
    return Request(scope)


@pytest.fixture
def http_request() -> Request:
    """A GET request whose path parameter is ``a/b.pdf``."""
    return build_request("GET", "a/b.pdf")


@pytest.fixture
def storage() -> MemoryStorageClient:
    """An empty in-memory storage client."""
    return MemoryStorageClient()


@pytest.fixture
def seed(storage):
    """Store an object in the test's memory client: ``await seed(key, data, ...)``."""

    async def _seed(
        key: str,
        data: bytes,
        *,
        bucket: str = BUCKET,
        content_type: str | None = None,
        content_disposition: str | None = None,
    ) -> None:
        await storage.put_object(
            bucket,
            key,
            data,
            content_type=content_type,
            content_disposition=content_disposition,
        )

    return _seed


@pytest.fixture
def route_config() -> RouteConfig:
    """A minimal route configuration for unit tests."""
    return RouteConfig(bucket=BUCKET, key="files")


@pytest.fixture
async def make_client(storage):
    """Factory fixture: an AsyncClient for an app with one serve-s3 route.

    Keyword arguments are RouteConfig options; ``bucket`` defaults to
    ``test-bucket`` and ``storage`` to the test's memory client.
    """
    clients: list[AsyncClient] = []

    async def _make(
        path: str = ROUTE_PATH,
        methods: tuple[str, ...] = ("GET", "POST", "DELETE"),
        **options,
    ) -> AsyncClient:
        options.setdefault("bucket", BUCKET)
        options.setdefault("storage", storage)

        app = FastAPI()
        register_exception_handlers(app)
        register_route(app, path, options, methods=methods)

        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


class UnavailableStorage(MemoryStorageClient):
    """Memory client whose listed operations fail with a backend 503."""

    def __init__(self, *failing: str) -> None:
        super().__init__()
        self.failing = set(failing)

    def _check(self, operation: str, bucket: str, key: str) -> None:
        if operation in self.failing:
            raise StorageError(http_status=503, bucket=bucket, key=key)

    async def head_object(self, bucket, key):
        self._check("head_object", bucket, key)
        return await super().head_object(bucket, key)

    async def get_object_stream(self, bucket, key):
        self._check("get_object_stream", bucket, key)
        return await super().get_object_stream(bucket, key)

    async def delete_object(self, bucket, key):
        self._check("delete_object", bucket, key)
        return await super().delete_object(bucket, key)


@pytest.fixture
def unavailable_storage():
    """Factory fixture: ``unavailable_storage("head_object", ...)``."""
    return UnavailableStorage
