"""tutorKB FastAPI application entry point.

Wires together all providers, services, and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``,
configures structured logging, and exposes the ingestion and retrieval API
plus the item status WebSocket.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from tutorkb.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from tutorkb.api.routes import router as api_router
from tutorkb.api.websocket import websocket_item_status
from tutorkb.components import build_components, close_components, initialize_components
from tutorkb.config.loader import load_config
from tutorkb.config.settings import Settings
from tutorkb.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(app_settings: Settings):  # noqa: ANN202
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Build and initialise all components on startup, drain on shutdown."""
        app_config = load_config(settings=app_settings)
        components = build_components(app_settings, app_config)

        for key, value in components.items():
            setattr(application.state, key, value)

        interrupted = await initialize_components(components)

        _logger.info(
            "app_startup",
            version="0.1.0",
            environment=app_settings.app_env,
            embedding_provider=components["embedding_provider"].get_provider_name(),
            database=app_settings.database_path,
            interrupted_items=interrupted,
        )

        yield

        await close_components(components)
        _logger.info("app_shutdown", message="Scheduler drained, HTTP client closed")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    app_settings = app_settings or settings
    application = FastAPI(
        title="tutorKB API",
        version="0.1.0",
        description=(
            "Upload documents and video captions, turn them into searchable "
            "chunks with vector embeddings, track per-item processing status, "
            "and retrieve similarity-ranked context for a chat assistant."
        ),
        lifespan=_make_lifespan(app_settings),
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=app_settings.get_cors_origins())

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/items/{item_id}/status")
    async def ws_item_status(websocket: WebSocket, item_id: str) -> None:
        await websocket_item_status(websocket, item_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "tutorkb.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
