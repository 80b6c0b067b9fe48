"""
Nivaran Escalation — FastAPI Application.

Run: python -m nivaran
     (or uvicorn nivaran.api.app:create_app --factory --host 127.0.0.1 --port 8010)

  - POST /api/v1/escalations          ← assessment collaborator escalates here
  - POST /api/v1/escalations/test     ← operator test trigger
  - GET  /api/v1/escalations          ← history for dashboards
  - GET  /api/v1/events/stream        ← live ledger feed (SSE)
  - GET  /health
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request

from nivaran.api.routers.escalations import router as escalations_router
from nivaran.api.routers.events import router as events_router
from nivaran.config import Settings, get_settings
from nivaran.container import Container, build_container
from nivaran.logging import configure_logging
from nivaran.middleware.error_handler import ErrorHandlerMiddleware
from nivaran.middleware.request_context import RequestContextMiddleware
from nivaran.services.sse_manager import SSEManager

logger = structlog.get_logger(__name__)


def attach_container(app: FastAPI, container: Container) -> None:
    """Expose the container to routes and feed ledger changes to SSE clients."""
    app.state.container = container
    app.state.unsubscribe_sse = container.ledger.subscribe(app.state.sse_manager.ledger_listener)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    settings: Settings = app.state.settings
    logger.info("nivaran_starting", version=settings.app_version, environment=settings.environment)

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        attach_container(app, build_container(settings))

    await app.state.container.start()
    yield

    app.state.unsubscribe_sse()
    if owns_container:
        await app.state.container.aclose()
    logger.info("nivaran_shutdown")


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A prebuilt `container` is attached immediately (tests); otherwise one is
    built from settings at startup and closed at shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Emergency escalation notifier: multi-channel responder alerts with an append-only delivery ledger.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "escalations", "description": "Escalate, test and review escalations"},
            {"name": "events", "description": "Server-Sent Events stream"},
        ],
    )
    app.state.settings = settings
    app.state.sse_manager = SSEManager()
    if container is not None:
        attach_container(app, container)

    # ── Middleware (last added = outermost) ──
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)

    app.include_router(escalations_router)
    app.include_router(events_router)

    @app.get("/health", tags=["health"])
    async def health(request: Request):
        container: Container = request.app.state.container
        return {
            "status": "healthy",
            "version": settings.app_version,
            "escalations_recorded": len(container.ledger),
            "ledger_durable": container.ledger.durable,
            "channels": [c.value for c in container.orchestrator.channels],
            "sse_subscribers": request.app.state.sse_manager.subscriber_count,
        }

    return app
