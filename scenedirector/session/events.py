# scenedirector/session/events.py
"""
Session event records and their human-readable summaries.
"""

from __future__ import annotations

import time
import uuid
from typing import Literal

from pydantic import Field

from ..scene.commands import (
    ADD_COMMANDS,
    UPDATE_COMMANDS,
    BatchCommand,
    CancelPreviewObject,
    CommitPreviewObject,
    DeleteObject,
    DrawingCommand,
    SetBackgroundGradient,
    SetGroundFill,
    SetPath,
    SetSceneIntent,
)
from ..scene.objects import SceneGraph
from ..scene.shapes import WireModel


EventStatus = Literal["applied", "rejected", "refused", "error"]


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionEvent(WireModel):
    """One processed utterance or manual envelope."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = Field(default_factory=_now_ms)
    utterance: str
    commands: list[DrawingCommand] = Field(default_factory=list)
    status: EventStatus = "applied"
    notes: str | None = None
    latency_ms: int | None = None
    diff_summary: str | None = None


def _describe(commands: list[DrawingCommand], before: SceneGraph, after: SceneGraph) -> list[str]:
    out: list[str] = []
    for cmd in commands:
        if isinstance(cmd, SetSceneIntent):
            if cmd.intent is not None:
                out.append(f'Set intent: "{cmd.intent.description}"')
            else:
                out.append("Cleared scene intent")
        elif isinstance(cmd, ADD_COMMANDS):
            kind = "preview" if cmd.type == "add_preview_object" else "object"
            out.append(f"Added {kind} {cmd.object.id} ({len(cmd.object.shapes)} shapes)")
        elif isinstance(cmd, UPDATE_COMMANDS):
            keys = cmd.patch.touched_fields()
            out.append(f"Updated {cmd.id}: {', '.join(keys)}" if keys else f"Updated {cmd.id}")
        elif isinstance(cmd, CommitPreviewObject):
            out.append(f"Committed preview {cmd.id}")
        elif isinstance(cmd, CancelPreviewObject):
            out.append(f"Canceled preview {cmd.id}")
        elif isinstance(cmd, DeleteObject):
            out.append(f"Deleted object {cmd.id}")
        elif isinstance(cmd, SetBackgroundGradient):
            out.append("Set background gradient")
        elif isinstance(cmd, SetGroundFill):
            out.append(f"Set ground fill: {cmd.fill}")
        elif isinstance(cmd, SetPath):
            out.append(f"Set path {cmd.id}")
        elif isinstance(cmd, BatchCommand):
            inner = diff_summary(cmd.commands, before, after)
            if inner:
                out.append(f"Batch: {inner}")
    return out


def diff_summary(commands: list[DrawingCommand], before: SceneGraph, after: SceneGraph) -> str:
    """
    Describe what ``commands`` did, one clause per command joined by ``; ``.

    Derived from the command list, not a structural diff. When no command
    yields a clause, falls back to the change in object count.
    """
    parts = _describe(commands, before, after)
    if not parts:
        prev_count, next_count = len(before.objects), len(after.objects)
        if next_count > prev_count:
            parts.append(f"Added {next_count - prev_count} object(s)")
        elif next_count < prev_count:
            parts.append(f"Removed {prev_count - next_count} object(s)")
    return "; ".join(parts)


def infer_last_touched(commands: list[DrawingCommand]) -> str | None:
    """Id of the last object added or targeted, descending into batches."""
    last: str | None = None
    for cmd in commands:
        if isinstance(cmd, ADD_COMMANDS):
            last = cmd.object.id
        elif isinstance(cmd, UPDATE_COMMANDS + (CommitPreviewObject, CancelPreviewObject, DeleteObject)):
            last = cmd.id
        elif isinstance(cmd, BatchCommand):
            last = infer_last_touched(cmd.commands) or last
    return last
