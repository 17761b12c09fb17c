"""FastAPI application factory and route setup for s3www."""

import logging
import secrets
import time
from contextlib import aclosing, asynccontextmanager

from fastapi import FastAPI, Request, Response

from s3www.cache import TTLCache
from s3www.config import S3WWWConfig, parse_duration
from s3www.errors import GatewayError
from s3www.filesystem import BucketFS
from s3www.handlers.files import FileHandler, plain_response
from s3www.storage import create_object_store

logger = logging.getLogger(__name__)

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics", "/healthz", "/readyz"],
        )
    return _instrumentator


def create_cache(config: S3WWWConfig) -> TTLCache:
    """Build the directory-existence cache from the cache config section."""
    return TTLCache(
        ttl=parse_duration(config.cache.ttl),
        cleanup_interval=parse_duration(config.cache.cleanup_interval),
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: S3WWWConfig) -> FastAPI:
    """Create and configure the s3www FastAPI application.

    The lifespan context manager connects the object store, builds the
    directory cache and the bucket filesystem, and starts the cache cleanup
    task; on shutdown it stops the task and closes the store.

    Args:
        config: A validated s3www configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = create_object_store(config.s3)
        await store.init(config.s3.bucket)
        app.state.store = store

        cache = create_cache(config)
        cache.start()
        app.state.cache = cache
        app.state.fs = BucketFS(store, config.s3.bucket, cache)

        logger.info(
            "Serving bucket %s (backend=%s, cache ttl=%s)",
            config.s3.bucket,
            config.s3.backend,
            config.cache.ttl,
        )

        yield

        await cache.stop()
        await store.close()
        logger.info("Object store closed")

    app = FastAPI(
        title="s3www",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config

    _register_exception_handlers(app)
    _register_middleware(app)

    # /metrics must be registered before the catch-all file route.
    if config.observability.metrics:
        import s3www.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="s3www").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> Response:
        """Render a GatewayError as a short plain-text response."""
        body = f"{exc.http_status} {exc.message}\n".encode()
        return plain_response(request, body, exc.http_status, "text/plain; charset=utf-8")

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return 500."""
        logger.exception("Unhandled exception in request handler")
        return plain_response(
            request, b"500 Internal Server Error\n", 500, "text/plain; charset=utf-8"
        )


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI) -> None:
    """Register the request logging middleware."""

    # Paths to suppress from per-request logging
    _QUIET_PATHS = {"/metrics", "/healthz", "/readyz"}

    @app.middleware("http")
    async def common_headers_middleware(request: Request, call_next) -> Response:
        """Tag every response with a request id and Server header, and log it."""
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["Server"] = "s3www"

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
# Health check helpers
# ---------------------------------------------------------------------------


async def _bucket_error(app: FastAPI) -> str | None:
    """Probe the bucket with a one-entry listing.

    Returns:
        None when the bucket answers, otherwise a short error description.
    """
    store = getattr(app.state, "store", None)
    if store is None:
        return "object store not initialized"
    bucket = app.state.config.s3.bucket
    try:
        async with aclosing(store.list_objects(bucket, "", page_size=1)) as keys:
            async for _ in keys:
                break
    except GatewayError as exc:
        return exc.message
    return None


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: S3WWWConfig) -> None:
    """Register probe routes, then the catch-all file route.

    Args:
        app: The FastAPI application to attach routes to.
        config: The s3www configuration.
    """
    file_handler = FileHandler(app)

    if config.observability.health_check:

        @app.get("/healthz")
        async def healthz() -> Response:
            """Liveness probe. Returns 200 with empty body."""
            return Response(status_code=200)

        @app.get("/readyz")
        async def readyz() -> Response:
            """Readiness probe: 200 if the bucket can be listed, 503 otherwise."""
            error = await _bucket_error(app)
            if error is not None:
                logger.warning("Readiness check failed: %s", error)
                return Response(status_code=503)
            return Response(status_code=200)

    @app.api_route("/{path:path}", methods=["GET", "HEAD"])
    async def handle_file(path: str, request: Request) -> Response:
        """Serve a file, index document, or directory from the bucket."""
        return await file_handler.serve(request)
