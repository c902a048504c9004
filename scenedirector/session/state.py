# scenedirector/session/state.py
"""
Canonical scene state and the single-writer session actor.

Every mutation goes through one asyncio.Queue consumed by one task, so the
reducer runs strictly one envelope at a time. Model calls are awaited before
the apply step is enqueued; nothing is applied while waiting on the network.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..ai_pipeline.director import (
    CommandDirector,
    DirectorInput,
    ModelReply,
    prepare_manual_envelope,
)
from ..config import Settings, settings as default_settings
from ..scene.objects import SceneGraph, create_empty_scene
from ..scene.reducer import apply_commands
from .events import SessionEvent, diff_summary, infer_last_touched


logger = logging.getLogger(__name__)

# Receives every server -> viewer message (scene_update, status, ...).
Broadcast = Callable[[dict[str, Any]], Awaitable[None]]

MANUAL_LABEL = "[manual console]"


@dataclass
class CanonicalState:
    """The one scene graph this process owns, plus its bounded history."""

    scene: SceneGraph = field(default_factory=create_empty_scene)
    events: deque[SessionEvent] = field(default_factory=lambda: deque(maxlen=100))
    revision: int = 0
    last_touched_id: str | None = None

    @property
    def active_preview_ids(self) -> list[str]:
        return self.scene.preview_ids()

    def record(self, event: SessionEvent) -> None:
        self.events.append(event)
        self.revision += 1

    def scene_update(self) -> dict[str, Any]:
        return {
            "type": "scene_update",
            "sceneGraph": self.scene.to_wire(),
            "sessionEvents": [e.to_wire() for e in self.events],
            "activePreviewIds": self.active_preview_ids,
            "revision": self.revision,
        }


class SceneSession:
    """
    Single-writer owner of ``CanonicalState``.

    Use as ``async with SceneSession(...) as session`` or call ``start()`` /
    ``stop()`` explicitly (the FastAPI lifespan does the latter).
    """

    def __init__(
        self,
        director: CommandDirector | None = None,
        broadcast: Broadcast | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.director = director or CommandDirector(settings=self.settings)
        self.broadcast = broadcast
        self.state = CanonicalState(events=deque(maxlen=self.settings.event_log_limit))
        self._queue: asyncio.Queue[tuple[Callable[..., Awaitable[Any]], tuple[Any, ...], asyncio.Future]] = (
            asyncio.Queue()
        )
        self._worker: asyncio.Task | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="scene-session-writer")
            logger.info("[Session] Writer started")

    async def stop(self) -> None:
        """Stop the writer and cancel every mutation still waiting for it."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

        dropped = 0
        while True:
            try:
                _, _, future = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if future.cancel():
                dropped += 1
        logger.info("[Session] Writer stopped (%d queued mutations cancelled)", dropped)

    async def __aenter__(self) -> "SceneSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _run(self) -> None:
        while True:
            fn, args, future = await self._queue.get()
            try:
                result = await fn(*args)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                logger.exception("[-] [Session] Mutation failed: %s", e)
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def _submit(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        if self._worker is None:
            raise RuntimeError("SceneSession is not started")
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((fn, args, future))
        return await future

    async def _emit(self, message: dict[str, Any]) -> None:
        if self.broadcast is not None:
            await self.broadcast(message)

    # =========================================================================
    # Operations
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        return self.state.scene_update()

    async def submit_utterance(self, text: str) -> SessionEvent:
        """Ask the model for an envelope, then apply it in the writer."""
        await self._emit({"type": "transcript_final", "text": text})
        reply = await self.director.fetch(
            DirectorInput(text, self.state.scene, self.state.last_touched_id)
        )
        return await self._submit(self._apply_reply, reply)

    async def apply_envelope(self, envelope: Any, label: str | None = None) -> SessionEvent:
        """Apply an operator-authored envelope (normalized and validated only)."""
        return await self._submit(self._apply_manual, envelope, label or MANUAL_LABEL)

    async def reset(self) -> int:
        return await self._submit(self._reset)

    # =========================================================================
    # Writer steps (run only inside _run)
    # =========================================================================

    async def _apply_reply(self, reply: ModelReply) -> SessionEvent:
        result = self.director.finish(reply, self.state.scene)
        envelope = result.envelope
        logger.info(
            "[Session] latency=%dms validated=%s thinking=%s refused=%s",
            result.latency_ms, result.validated, result.thinking_level.value,
            envelope.refusal_reason if envelope.refused else "none",
        )

        if envelope.refused:
            event = SessionEvent(
                utterance=reply.utterance,
                status=result.event_status,
                notes=envelope.notes or envelope.refusal_reason,
                latency_ms=result.latency_ms,
            )
            self.state.record(event)
            await self._emit({"type": "command_envelope", "envelope": envelope.to_wire()})
            await self._emit({
                "type": "status",
                "message": envelope.notes or "Request could not be processed.",
                "level": "warn",
            })
            await self._emit(self.state.scene_update())
            return event

        event = self._commit(reply.utterance, envelope.commands, envelope.notes, result.latency_ms)
        await self._emit({"type": "command_envelope", "envelope": envelope.to_wire()})
        if envelope.notes:
            await self._emit({"type": "status", "message": envelope.notes, "level": "info"})
        await self._emit(self.state.scene_update())
        return event

    async def _apply_manual(self, candidate: Any, label: str) -> SessionEvent:
        started = time.monotonic()
        checked = prepare_manual_envelope(candidate, self.settings)
        if not checked.ok:
            logger.warning("[-] [Session] Manual envelope rejected: %s", checked.issue)
            event = SessionEvent(
                utterance=label,
                status="rejected",
                notes=str(checked.issue),
                latency_ms=int((time.monotonic() - started) * 1000),
            )
            self.state.record(event)
            await self._emit({
                "type": "error",
                "message": f"Invalid CommandEnvelope: {checked.issue}",
                "code": "INVALID_ENVELOPE",
            })
            await self._emit(self.state.scene_update())
            return event

        envelope = checked.envelope
        event = self._commit(
            label,
            envelope.commands,
            envelope.notes,
            int((time.monotonic() - started) * 1000),
            status="refused" if envelope.refused else "applied",
        )
        await self._emit({"type": "command_envelope", "envelope": envelope.to_wire()})
        await self._emit(self.state.scene_update())
        return event

    def _commit(
        self,
        utterance: str,
        commands: list,
        notes: str | None,
        latency_ms: int,
        status: str = "applied",
    ) -> SessionEvent:
        before = self.state.scene
        after = apply_commands(before, commands)
        self.state.scene = after

        touched = infer_last_touched(commands)
        if touched:
            self.state.last_touched_id = touched

        event = SessionEvent(
            utterance=utterance,
            commands=commands,
            status=status,
            notes=notes,
            latency_ms=latency_ms,
            diff_summary=diff_summary(commands, before, after) or None,
        )
        self.state.record(event)
        logger.info(
            "[+] [Session] rev=%d %s: %s",
            self.state.revision, status, event.diff_summary or "no changes",
        )
        return event

    async def _reset(self) -> int:
        self.state.scene = create_empty_scene()
        self.state.events.clear()
        self.state.last_touched_id = None
        self.state.revision += 1
        logger.info("[Session] Scene reset (rev=%d)", self.state.revision)
        await self._emit({"type": "status", "message": "Scene reset", "level": "info"})
        await self._emit(self.state.scene_update())
        return self.state.revision
