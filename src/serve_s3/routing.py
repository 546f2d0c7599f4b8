"""Attach serve-s3 pipelines to FastAPI routes.

Example::

    app = FastAPI()
    register_exception_handlers(app)
    files = register_route(
        app,
        "/files/{path:path}",
        {"bucket": "my-bucket", "key": "files", "mode": "attachment"},
        methods=("GET", "POST", "DELETE"),
    )

The optional path capture must be named ``path``. The returned
``S3Route`` owns its storage client; call ``await files.close()`` on
shutdown (``create_app`` does this in its lifespan).
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from fastapi import APIRouter, FastAPI, Request, Response

from serve_s3.config import RouteConfig
from serve_s3.handlers import delete_object, serve_object, upload_object
from serve_s3.storage import StorageClient, create_storage_client

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "DELETE")


class S3Route:
    """A registered route: its immutable config and its storage client.

    Attributes:
        path: The route path.
        config: The validated route configuration.
        storage: The storage client used by every request on this route.
    """

    def __init__(self, path: str, config: RouteConfig, storage: StorageClient) -> None:
        self.path = path
        self.config = config
        self.storage = storage
        # an injected client belongs to the caller
        self._owns_storage = config.storage is None

    async def get(self, request: Request) -> Response:
        return await serve_object(request, self.config, self.storage)

    async def post(self, request: Request) -> Response:
        return await upload_object(request, self.config, self.storage)

    async def delete(self, request: Request) -> Response:
        return await delete_object(request, self.config, self.storage)

    async def close(self) -> None:
        """Close the storage client if this route created it."""
        if self._owns_storage:
            await self.storage.close()


def register_route(
    router: APIRouter | FastAPI,
    path: str,
    config: RouteConfig | Mapping[str, Any],
    methods: Iterable[str] = ("GET",),
) -> S3Route:
    """Register serve-s3 handlers for ``methods`` on ``path``.

    Args:
        router: The FastAPI app or APIRouter to register on.
        path: The route path, e.g. ``/files/{path:path}``.
        config: A ``RouteConfig`` or the mapping to build one from.
        methods: Any of GET, POST and DELETE.

    Returns:
        The registered route.

    Raises:
        pydantic.ValidationError: If the configuration is invalid.
        ValueError: If a method is not supported.
    """
    if not isinstance(config, RouteConfig):
        config = RouteConfig(**config)

    methods = [m.upper() for m in methods]
    if not methods:
        raise ValueError("at least one method is required")
    unsupported = [m for m in methods if m not in SUPPORTED_METHODS]
    if unsupported:
        raise ValueError(
            f"unsupported method(s) {', '.join(unsupported)}; "
            f"expected any of {', '.join(SUPPORTED_METHODS)}"
        )

    route = S3Route(path, config, create_storage_client(config))
    for method in methods:
        router.add_api_route(
            path,
            getattr(route, method.lower()),
            methods=[method],
            name=f"serve_s3_{method.lower()}:{path}",
            include_in_schema=False,
        )

    logger.info("Registered %s %s", ",".join(methods), path)
    return route
