# scenedirector/api/scene.py
"""
Scene API route handlers.

GET  /           - current scene_update snapshot
POST /envelope   - apply an operator-authored envelope
POST /reset      - clear scene and history
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..session import SceneSession
from .schemas import EnvelopeRequest, EnvelopeResponse, ResetResponse


router = APIRouter()


def get_session(request: Request) -> SceneSession:
    return request.app.state.session


@router.get("/")
async def get_scene(session: SceneSession = Depends(get_session)) -> dict[str, Any]:
    return session.snapshot()


@router.post("/envelope", response_model=EnvelopeResponse)
async def apply_envelope(
    request: EnvelopeRequest,
    session: SceneSession = Depends(get_session),
):
    """Normalize, validate and apply; 422 with the first violated path on failure."""
    event = await session.apply_envelope(request.envelope, request.label)
    if event.status == "rejected":
        raise HTTPException(status_code=422, detail=event.notes)
    return EnvelopeResponse(event=event.to_wire(), revision=session.state.revision)


@router.post("/reset", response_model=ResetResponse)
async def reset_scene(session: SceneSession = Depends(get_session)):
    revision = await session.reset()
    return ResetResponse(revision=revision)
