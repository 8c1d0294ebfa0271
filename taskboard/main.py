"""Task board notification service - Main Application.

Combines the notification and agent registry routers into one FastAPI
application. Every service instance is created per application and kept on
``app.state`` so that tests can build isolated apps over a temporary data
directory.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskboard.agents.api import router as agents_router
from taskboard.agents.registry import AgentRegistry
from taskboard.config import Settings, get_settings
from taskboard.exceptions import TaskboardError, status_for
from taskboard.notifications.api import router as notifications_router
from taskboard.notifications.broadcast import NotificationBroadcaster
from taskboard.notifications.service import NotificationEngine
from taskboard.shared.utils.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from taskboard.storage.json_store import JsonDocumentStore

logger = get_logger(__name__)


# ===========================================
# APPLICATION METADATA
# ===========================================

APP_TITLE = "Task Board Notification Service"
APP_DESCRIPTION = """
Notification and subscription engine for a multi-agent task board.

- **Notifications**: @mention, reply, assignment and system notifications with
  set-once delivery tracking
- **Subscriptions**: automatic thread subscription for commenters, mentioned
  agents and assignees
- **Agent registry**: registration, heartbeats and capability discovery
"""

API_PREFIX = "/api"

TAGS_METADATA = [
    {
        "name": "health",
        "description": "Health check endpoint",
    },
    {
        "name": "notifications",
        "description": "Notification inbox, comment processing and thread subscriptions",
    },
    {
        "name": "agent-registry",
        "description": "Agent registration, heartbeats and capability discovery",
    },
]


# ===========================================
# LIFECYCLE MANAGEMENT
# ===========================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    settings: Settings = app.state.settings
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )
    logger.info(
        "service_starting",
        version=settings.service_version,
        data_dir=settings.data_dir,
    )

    registry: AgentRegistry = app.state.agent_registry
    if settings.agent_stale_after_seconds > 0:
        await registry.start(
            interval_seconds=settings.agent_sweep_interval_seconds,
            stale_after_seconds=settings.agent_stale_after_seconds,
        )

    yield

    logger.info("service_stopping")
    await registry.dispose()
    logger.info("service_stopped")


# ===========================================
# APPLICATION FACTORY
# ===========================================


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=settings.service_version,
        openapi_tags=TAGS_METADATA,
        debug=settings.debug,
        lifespan=lifespan,
    )

    broadcaster = NotificationBroadcaster(queue_size=settings.stream_queue_size)
    store = JsonDocumentStore(settings.data_dir, lock_timeout=settings.lock_timeout_seconds)

    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.notification_engine = NotificationEngine(store, broadcaster=broadcaster)
    app.state.agent_registry = AgentRegistry(snapshot_path=settings.registry_snapshot_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    app.include_router(notifications_router, prefix=API_PREFIX)
    app.include_router(agents_router, prefix=API_PREFIX)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, Any]:
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.service_name,
            "version": settings.service_version,
            "timestamp": time.time(),
        }

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Translate typed errors into JSON error bodies."""

    @app.exception_handler(TaskboardError)
    async def taskboard_error_handler(request: Request, exc: TaskboardError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(
                "request_failed",
                path=request.url.path,
                error_type=exc.error_type,
                error=str(exc),
            )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.message,
                "type": exc.error_type,
                "detail": exc.details,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid request",
                "type": "validation_error",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc) if app.debug else "An unexpected error occurred",
            },
        )


# ===========================================
# APPLICATION INSTANCE
# ===========================================

app = create_app()
