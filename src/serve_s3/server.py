"""FastAPI application factory for a standalone serve-s3 service."""

import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from serve_s3 import __version__
from serve_s3.config import RouteConfig, ServeS3Config, StorageConfig
from serve_s3.errors import ServeS3Error
from serve_s3.routing import S3Route, register_route
from serve_s3.storage import StorageClient
from serve_s3.storage.memory import MemoryStorageClient

logger = logging.getLogger(__name__)

# Paths to suppress from per-request logging
_QUIET_PATHS = {"/metrics", "/health", "/healthz"}

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: ServeS3Config) -> FastAPI:
    """Create and configure the serve-s3 FastAPI application.

    Routes declared in ``config.routes`` are registered with their storage
    clients; the lifespan closes those clients on shutdown. Clients open
    their connection lazily on first use, so startup does no I/O.

    Args:
        config: The loaded serve-s3 configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("serve-s3 started with %d route(s)", len(app.state.s3_routes))

        yield

        for route in app.state.s3_routes:
            await route.close()
        logger.info("Storage clients closed")

    app = FastAPI(
        title="serve-s3",
        version=__version__,
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.s3_routes = []

    register_exception_handlers(app)
    _register_middleware(app)

    # /metrics and /health first so a catch-all route cannot shadow them
    if config.observability.metrics:
        import serve_s3.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="serve_s3").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


def _shared_storage(storage: StorageConfig) -> StorageClient | None:
    """Return the client shared by all routes, or None for per-route S3 clients.

    Raises:
        ValueError: If the backend is unknown.
    """
    if storage.backend == "memory":
        return MemoryStorageClient()
    if storage.backend == "aws":
        return None
    raise ValueError(f"Unknown storage backend: {storage.backend}")


def _route_config(
    options: dict[str, Any],
    storage: StorageConfig,
    shared: StorageClient | None,
) -> RouteConfig:
    """Build a RouteConfig from a route's options over the storage defaults."""
    defaults: dict[str, Any] = {}
    if shared is not None:
        defaults["storage"] = shared
    else:
        defaults.update(
            region=storage.region,
            ssl_enabled=storage.ssl_enabled,
            path_style=storage.path_style,
            endpoint_url=storage.endpoint_url or None,
        )
        if storage.access_key_id and storage.secret_access_key:
            defaults["access_key_id"] = storage.access_key_id
            defaults["secret_access_key"] = storage.secret_access_key
    return RouteConfig(**{**defaults, **options})


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(request: Request, body: dict[str, Any], status: int) -> Response:
    """Render an error body; HEAD requests get the status only."""
    if request.method == "HEAD":
        return Response(status_code=status)
    body = {
        **body,
        "resource": request.url.path,
        "request_id": getattr(request.state, "request_id", ""),
    }
    return JSONResponse(content=body, status_code=status)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the serve-s3 JSON error handlers on ``app``.

    Call this on any app serve-s3 routes are registered on; without it a
    ``ServeS3Error`` is rendered as a generic 500.
    """

    @app.exception_handler(ServeS3Error)
    async def serve_s3_error_handler(request: Request, exc: ServeS3Error) -> Response:
        """Render ServeS3Error as JSON with its HTTP status."""
        return _error_response(request, exc.to_dict(), exc.http_status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        """Map FastAPI validation errors to a 400 InvalidArgument body."""
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        combined = "; ".join(messages) or "Invalid request parameters"

        body = {"code": "InvalidArgument", "message": combined, "status_code": 400}
        return _error_response(request, body, 400)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return InternalError."""
        logger.exception("Unhandled exception in request handler")
        body = {
            "code": "InternalError",
            "message": "We encountered an internal error. Please try again.",
            "status_code": 500,
        }
        return _error_response(request, body, 500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI) -> None:
    """Register the request-id and access-log middleware."""

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next) -> Response:
        """Tag the request with an id and log one line when it completes.

        The id (16-char uppercase hex) is stored on request.state for the
        exception handlers and returned in the X-Request-Id header.
        """
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["X-Request-Id"] = request_id

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )

        return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: ServeS3Config) -> None:
    """Register /health and every configured serve-s3 route."""
    health_check_enabled = config.observability.health_check

    @app.get("/health")
    async def health_check() -> Response:
        """Return health status.

        When health_check is enabled the body lists the configured routes.
        """
        if not health_check_enabled:
            return JSONResponse({"status": "ok"})
        return JSONResponse(
            {
                "status": "ok",
                "routes": [route.path for route in app.state.s3_routes],
            }
        )

    if health_check_enabled:

        @app.get("/healthz")
        async def healthz() -> Response:
            """Liveness check. Returns 200 with empty body."""
            return Response(status_code=200)

    shared = _shared_storage(config.storage)
    routes: list[S3Route] = app.state.s3_routes
    for entry in config.routes:
        route_config = _route_config(entry.options, config.storage, shared)
        routes.append(register_route(app, entry.path, route_config, methods=entry.methods))
