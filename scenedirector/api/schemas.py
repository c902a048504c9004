# scenedirector/api/schemas.py
"""
Pydantic request/response models for the REST routes and the WebSocket.

WebSocket messages use the camelCase wire format shared with the canvas
client; REST bodies follow the snake_case style of the job endpoints.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter

from ..scene.shapes import WireModel


# =============================================================================
# WebSocket: client -> server
# =============================================================================

class SubmitUtterance(WireModel):
    type: Literal["submit_utterance"]
    text: str = Field(min_length=1, validation_alias=AliasChoices("text", "utterance"))
    client_event_id: str | None = None


class ApplyCommandEnvelope(WireModel):
    type: Literal["apply_command_envelope"]
    # Raw JSON: the session normalizes before validating.
    envelope: Any
    label: str | None = None


class ResetScene(WireModel):
    type: Literal["reset_scene"]


class Ping(WireModel):
    type: Literal["ping"]


ClientMessage = Annotated[
    Union[SubmitUtterance, ApplyCommandEnvelope, ResetScene, Ping],
    Field(discriminator="type"),
]

client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def error_message(message: str, code: str) -> dict[str, Any]:
    return {"type": "error", "message": message, "code": code}


# =============================================================================
# REST
# =============================================================================

class EnvelopeRequest(BaseModel):
    """Operator-authored envelope to apply without the model."""

    envelope: dict[str, Any]
    label: str | None = None


class EnvelopeResponse(BaseModel):
    event: dict[str, Any]
    revision: int


class ResetResponse(BaseModel):
    revision: int


class DirectorRequestAPI(BaseModel):
    """Utterance to send through the model and apply to the scene."""

    utterance: str = Field(min_length=1, max_length=2000)


class DirectorJobResponse(BaseModel):
    job_id: str
    status: str


class DirectorStatusResponse(BaseModel):
    job_id: str
    status: str  # "queued", "running", "completed", "failed"
    event: dict[str, Any] | None = None
    error: str | None = None
