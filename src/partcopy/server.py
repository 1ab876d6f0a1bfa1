"""FastAPI application factory and route setup for partcopy."""

import logging
import secrets
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError as PydanticValidationError

from partcopy.clients.destination import UploadServiceClient
from partcopy.clients.source import S3Source
from partcopy.config import PartCopyConfig
from partcopy.coordinator import Coordinator
from partcopy.errors import PartCopyError
from partcopy.ingress import CopyIngress, CopyRequest
from partcopy.partstore import PartStore, SessionState, create_part_store
from partcopy.planner import Planner
from partcopy.session import resolve_session
from partcopy.transport import MessageQueue, create_message_queue
from partcopy.worker import WorkerPool

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
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def create_source(config: PartCopyConfig) -> S3Source:
    """Create the source store reader from configuration."""
    return S3Source(
        endpoint_url=config.source.endpoint_url,
        region=config.source.region,
        access_key_id=config.source.access_key_id,
        secret_access_key=config.source.secret_access_key,
        use_path_style=config.source.use_path_style,
    )


def create_destination(config: PartCopyConfig) -> UploadServiceClient:
    """Create the destination upload service client from configuration."""
    return UploadServiceClient(
        base_url=config.destination.base_url,
        timeout=config.destination.timeout_seconds,
        create_action=config.destination.create_action,
        upload_part_action=config.destination.upload_part_action,
        complete_action=config.destination.complete_action,
    )


def attach_components(
    app: FastAPI,
    config: PartCopyConfig,
    store: PartStore,
    queue: MessageQueue,
    source: S3Source,
    destination: UploadServiceClient,
) -> None:
    """Wire already-initialized components onto ``app.state``.

    Builds the planner, coordinator, ingress and worker pool around the
    given store, queue and clients. Workers are created but not started.
    """
    debug = config.server.debug
    planner = Planner(store, queue, debug=debug)
    coordinator = Coordinator(store, queue, source, destination, debug=debug)

    app.state.store = store
    app.state.queue = queue
    app.state.source = source
    app.state.destination = destination
    app.state.coordinator = coordinator
    app.state.ingress = CopyIngress(source, destination, planner, config.part_size)
    app.state.workers = WorkerPool(
        queue,
        coordinator,
        workers=config.queue.workers,
        max_attempts=config.queue.max_attempts,
        retry_delay=config.queue.retry_delay_seconds,
        poll_interval=config.queue.poll_interval_seconds,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: PartCopyConfig) -> FastAPI:
    """Create and configure the partcopy FastAPI application.

    The lifespan context manager opens the part store, queue and clients on
    startup, starts the queue workers, and tears everything down on shutdown.

    Args:
        config: The loaded partcopy configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = create_part_store(config.part_store)
        await store.init_db()
        queue = create_message_queue(config.queue)
        await queue.init()
        source = create_source(config)
        await source.init()
        destination = create_destination(config)
        await destination.init()

        attach_components(app, config, store, queue, source, destination)
        await app.state.workers.start()
        logger.info(
            "partcopy ready: part_store=%s queue=%s part_size=%d",
            config.part_store.engine,
            config.queue.engine,
            config.part_size,
        )

        yield

        await app.state.workers.stop()
        await destination.close()
        await source.close()
        await queue.close()
        await store.close()
        logger.info("Workers, clients, queue and part store closed")

    app = FastAPI(
        title="partcopy",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config

    _register_exception_handlers(app)
    _register_middleware(app)

    if config.observability.metrics:
        import partcopy.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="partcopy").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(PartCopyError)
    async def partcopy_error_handler(request: Request, exc: PartCopyError) -> Response:
        """Client errors keep their status; everything else is a 500."""
        status = exc.http_status if exc.http_status < 500 else 500
        if status == 500:
            logger.error("Request failed: %s", exc.message)
        return PlainTextResponse(exc.message, status_code=status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        """Map FastAPI validation errors to a plain 400."""
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        combined = "; ".join(messages) or "Invalid request parameters"
        return PlainTextResponse(combined, status_code=400)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return their message as a 500."""
        logger.exception("Unhandled exception in request handler")
        return PlainTextResponse(str(exc) or "Internal Server Error", status_code=500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI) -> None:
    """Register the request id and access log middleware."""

    _QUIET_PATHS = {"/metrics", "/health"}

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next) -> Response:
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["x-request-id"] = request_id

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
                },
            )
        return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI) -> None:
    """Register the ingress and diagnostics routes."""

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/")
    async def start_copy(request: Request) -> Response:
        """Plan and start copying one source object."""
        try:
            body = await request.json()
            copy_request = CopyRequest.model_validate(body)
        except (ValueError, PydanticValidationError):
            return PlainTextResponse("Invalid request body", status_code=400)

        ingress: CopyIngress = request.app.state.ingress
        try:
            result = await ingress.start(copy_request)
        except PartCopyError:
            raise
        except Exception as exc:
            logger.exception(
                "Failed to start copy of %s/%s",
                copy_request.source_bucket,
                copy_request.source_key,
            )
            return PlainTextResponse(str(exc) or "Internal Server Error", status_code=500)
        return JSONResponse(result, status_code=200)

    @app.get("/uploads/{upload_id}")
    async def get_upload(
        request: Request,
        upload_id: str,
        bucket: str = Query(..., min_length=1),
        key: str = Query(..., min_length=1),
    ) -> Response:
        """Report a session's state and every planned part."""
        store: PartStore = request.app.state.store
        session = resolve_session(bucket, key, upload_id)
        state = await store.session_state(session)
        if state is None:
            return PlainTextResponse("Upload not found", status_code=404)
        counts = await store.counts(session)
        parts = await store.list_all(session)
        return JSONResponse(
            {
                "sessionId": session.id,
                "bucket": bucket,
                "key": key,
                "uploadId": upload_id,
                "state": state.value,
                "total": counts.total,
                "completed": counts.completed,
                "parts": [p.to_dict() for p in parts],
            }
        )

    @app.get("/sessions")
    async def list_sessions(request: Request, state: SessionState | None = None) -> Response:
        """List known sessions, optionally filtered by state."""
        store: PartStore = request.app.state.store
        sessions = await store.list_sessions(state)
        return JSONResponse({"sessions": [s.to_dict() for s in sessions]})
