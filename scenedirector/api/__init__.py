# scenedirector/api/__init__.py
"""
FastAPI application: REST routes, the viewer WebSocket and the session
lifecycle.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..ai_pipeline import CommandDirector
from ..config import Settings, settings as default_settings
from ..session import SceneSession
from .director import router as director_router
from .scene import router as scene_router
from .websocket import manager, router as websocket_router


def create_app(director: CommandDirector | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: one session (single writer) per process, broadcasting to every viewer
        session = SceneSession(director=director, broadcast=manager.broadcast, settings=settings)
        await session.start()
        app.state.session = session
        yield
        await manager.cancel_pending()
        await session.stop()

    app = FastAPI(
        title="Scene Director API",
        description="Utterance-driven scene graph service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(scene_router, prefix="/api/scene", tags=["scene"])
    app.include_router(director_router, prefix="/api/director", tags=["director"])
    app.include_router(websocket_router, prefix="/ws", tags=["websocket"])

    @app.get("/api/status", tags=["status"])
    async def get_system_status():
        """Service status for the canvas header indicator."""
        session: SceneSession = app.state.session
        return {
            "director": "online",
            "revision": session.state.revision,
            "objects": len(session.state.scene.objects),
            "viewers": len(manager.active_connections),
            "model": settings.model_for("low"),
            "apiKeyConfigured": bool(settings.gemini_api_key),
        }

    return app


app = create_app()
