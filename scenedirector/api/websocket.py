# scenedirector/api/websocket.py
"""
Viewer hub: every connected canvas gets the same broadcast stream, and any
of them may submit utterances or manual envelopes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Coroutine, List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..session import SceneSession
from .schemas import (
    ApplyCommandEnvelope,
    Ping,
    ResetScene,
    SubmitUtterance,
    client_message_adapter,
    error_message,
)


logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Manages active WebSocket connections with error-isolated broadcast."""

    def __init__(self) -> None:
        self.active_connections: List[WebSocket] = []
        self.pending: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("[WS] Viewer connected (%d total)", len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info("[WS] Viewer disconnected (%d total)", len(self.active_connections))

    async def broadcast(self, message: dict) -> None:
        """Send to all clients. Dead connections are pruned automatically."""
        dead: list[WebSocket] = []
        for conn in list(self.active_connections):
            try:
                await conn.send_json(message)
            except Exception as e:
                logger.warning("[WS] Dropping viewer after send failure: %s", e)
                dead.append(conn)
        for conn in dead:
            self.disconnect(conn)

    def spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        """Run ``coro`` off the receive loop, holding a reference until it finishes."""
        task = asyncio.create_task(coro)
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        return task

    async def cancel_pending(self) -> None:
        for task in list(self.pending):
            task.cancel()
        await asyncio.gather(*self.pending, return_exceptions=True)


manager = ConnectionManager()


async def send_error(websocket: WebSocket, message: str, code: str) -> None:
    if websocket not in manager.active_connections:
        logger.warning("[WS] Viewer gone before error could be sent: %s", message)
        return
    await websocket.send_json(error_message(message, code))


async def run_utterance(session: SceneSession, websocket: WebSocket, text: str) -> None:
    """Background half of ``submit_utterance``; failures go back to the submitting viewer."""
    try:
        await session.submit_utterance(text)
    except Exception as e:
        logger.exception("[-] [WS] Utterance failed: %s", e)
        await send_error(websocket, f"Utterance failed: {e}", "INTERNAL_ERROR")


async def handle_client_message(session: SceneSession, websocket: WebSocket, data: str) -> None:
    try:
        message = client_message_adapter.validate_python(json.loads(data))
    except json.JSONDecodeError:
        await websocket.send_json(error_message("Message is not valid JSON", "INVALID_MESSAGE"))
        return
    except ValidationError as e:
        first = e.errors()[0]
        detail = ".".join(str(p) for p in first["loc"]) or "message"
        await websocket.send_json(
            error_message(f"Invalid message at {detail}: {first['msg']}", "INVALID_MESSAGE")
        )
        return

    if isinstance(message, Ping):
        await websocket.send_json({"type": "pong"})
    elif isinstance(message, SubmitUtterance):
        manager.spawn(run_utterance(session, websocket, message.text))
    elif isinstance(message, ApplyCommandEnvelope):
        await session.apply_envelope(message.envelope, message.label)
    elif isinstance(message, ResetScene):
        await session.reset()


@router.websocket("/scene")
async def scene_socket(websocket: WebSocket) -> None:
    session: SceneSession = websocket.app.state.session
    await manager.connect(websocket)
    try:
        await websocket.send_json(session.snapshot())
        while True:
            data = await websocket.receive_text()
            try:
                await handle_client_message(session, websocket, data)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.exception("[-] [WS] Message handling failed: %s", e)
                await send_error(websocket, f"Message handling failed: {e}", "INTERNAL_ERROR")
    except WebSocketDisconnect:
        logger.info("[WS] Viewer closed the socket")
    finally:
        manager.disconnect(websocket)
