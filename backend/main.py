"""FastAPI application entry point for the Agentflow backend.

This module initializes the FastAPI application with middleware, the
validation routes, and the execution feed WebSocket.

Usage:
    uv run uvicorn main:app --reload
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from api.websocket import set_event_bus, websocket_router
from config import configure_logging, settings
from events import ExecutionEventBus

# Configure structured logging
configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Creates the execution event bus on startup and closes every execution
    feed on shutdown so connected watchers are told to disconnect.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    logger.info(
        "application_starting",
        backend_port=settings.backend_port,
        log_level=settings.log_level,
    )

    event_bus = ExecutionEventBus(
        delivery_timeout_seconds=settings.event_delivery_timeout_seconds,
    )
    set_event_bus(event_bus)
    app.state.event_bus = event_bus

    logger.info("application_started")

    yield

    logger.info("application_shutting_down")

    for execution_id in event_bus.get_active_executions():
        await event_bus.close_execution(execution_id)

    logger.info("application_shutdown_complete")


app = FastAPI(
    title="Agentflow",
    description="Workflow graph validation and live execution feeds "
    "for multi-agent workflows.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include HTTP routes
app.include_router(router, tags=["validation"])

# Include WebSocket routes
app.include_router(websocket_router, tags=["websocket"])


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint pointing at the API documentation.

    Returns:
        A welcome message with documentation URL.
    """
    return {
        "message": "Agentflow API",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.backend_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
