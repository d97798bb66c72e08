"""
FastAPI Application - Main entry point.
Provides the REST control surface and WebSocket event stream for exploration sessions.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.config import settings
from ..core.logs import configure_logging
from ..memory.replay_registry import ReplayRegistry
from ..memory.session_registry import SessionRegistry

from .routes import replays as replay_routes, sessions
from .websocket import emit_event, router as websocket_router


logger = logging.getLogger(__name__)


def create_app(
    registry: SessionRegistry | None = None,
    replays: ReplayRegistry | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        registry: Session registry to serve; a default one is built at startup otherwise
        replays: Replay registry to serve; same default rule

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Builds the session and replay registries; stops every session and replay on shutdown.
        """
        configure_logging(settings.log_level, settings.log_file)

        app.state.registry = registry or SessionRegistry(on_event=emit_event)
        app.state.replays = replays or ReplayRegistry(on_event=emit_event)
        logger.info("flowmapper API ready")

        yield

        logger.info("Shutting down, stopping sessions...")
        await app.state.registry.shutdown()
        await app.state.replays.shutdown()

    app = FastAPI(
        title="flowmapper",
        description=(
            "Autonomous web application explorer. Each session runs an "
            "observe → decide → execute → persist loop and records the "
            "discovered states and transitions."
        ),
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sessions.router, prefix="/api/sessions", tags=["Sessions"])
    app.include_router(replay_routes.router, prefix="/api/replays", tags=["Replays"])
    app.include_router(websocket_router, prefix="/ws", tags=["WebSocket"])

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "flowmapper",
            "version": "0.1.0",
            "status": "running",
            "docs": "/docs",
            "pipeline": ["observe", "decide", "execute", "persist"],
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        registry = getattr(app.state, "registry", None)
        return {
            "status": "healthy",
            "registry": "ready" if registry else "starting",
            "decision_provider": settings.decision_provider,
        }

    return app


# Create app instance
app = create_app()
