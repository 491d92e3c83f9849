"""Per-connection progress notifications for WebSocket uploads.

A ``ClientConnection`` wraps one WebSocket and serialises outbound frames.
Each ``camera-upload`` gets its own ``ProgressChannel`` bound to that
connection, walking ``idle -> started -> background_removed -> completed``
(or ``failed`` from any non-idle state). Events go only to the originating
connection; once it closes, emits are dropped silently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from .errors import ProgressStateError
from .logger import log
from .models import ProcessingResult, ProgressEvent, ProgressStatus

_TRANSITIONS = {
    ProgressStatus.IDLE: {ProgressStatus.STARTED},
    ProgressStatus.STARTED: {ProgressStatus.BACKGROUND_REMOVED, ProgressStatus.FAILED},
    ProgressStatus.BACKGROUND_REMOVED: {ProgressStatus.COMPLETED, ProgressStatus.FAILED},
    ProgressStatus.COMPLETED: set(),
    ProgressStatus.FAILED: set(),
}


class ClientConnection:
    def __init__(self, websocket: WebSocket, connection_id: str) -> None:
        self.websocket = websocket
        self.id = connection_id
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return (
            self._closed
            or self.websocket.client_state != WebSocketState.CONNECTED
            or self.websocket.application_state != WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_event(self, event: ProgressEvent) -> bool:
        """Deliver one event; returns False when the client is gone."""
        async with self._lock:
            if self.closed:
                return False
            try:
                await self.websocket.send_json(event.to_message())
            except (WebSocketDisconnect, RuntimeError) as exc:
                log.info(f"Client {self.id} went away, dropping {event.event_name}: {exc}")
                self._closed = True
                return False
        return True


class ProgressChannel:
    def __init__(self, connection: ClientConnection) -> None:
        self.connection = connection
        self.state = ProgressStatus.IDLE
        self.prompt: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in (ProgressStatus.COMPLETED, ProgressStatus.FAILED)

    async def _transition(self, target: ProgressStatus, event: ProgressEvent) -> bool:
        if target not in _TRANSITIONS[self.state]:
            raise ProgressStateError(f"cannot move from {self.state.value} to {target.value}")
        self.state = target
        return await self.connection.send_event(event)

    async def start(self, prompt: str) -> bool:
        self.prompt = prompt
        return await self._transition(
            ProgressStatus.STARTED,
            ProgressEvent(ProgressStatus.STARTED, "Starting background removal..."),
        )

    async def removal_completed(self) -> None:
        await self._transition(
            ProgressStatus.BACKGROUND_REMOVED,
            ProgressEvent(ProgressStatus.BACKGROUND_REMOVED, "Generating new background..."),
        )

    async def complete(self, result: ProcessingResult) -> bool:
        payload: Dict[str, Any] = result.summary()
        return await self._transition(
            ProgressStatus.COMPLETED,
            ProgressEvent(ProgressStatus.COMPLETED, "Background replaced", result=payload),
        )

    async def fail(self, message: str) -> bool:
        return await self._transition(
            ProgressStatus.FAILED,
            ProgressEvent(ProgressStatus.FAILED, message),
        )


__all__ = ["ClientConnection", "ProgressChannel"]
