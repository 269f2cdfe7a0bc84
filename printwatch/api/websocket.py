"""WebSocket fan-out of alert and scan events."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

from printwatch.core.events import EventBus
from printwatch.core.models import MonitorEvent

logger = logging.getLogger(__name__)


def serialize_event(event: MonitorEvent) -> str:
    """Serialize a MonitorEvent to JSON for WebSocket transmission."""
    data: dict[str, Any] = {
        "event": event.event_type.value,
        "timestamp": event.timestamp.isoformat(),
    }
    if event.alert:
        data["alert"] = json.loads(event.alert.model_dump_json())
    if event.details:
        data["details"] = event.details
    return json.dumps(data)


class WebSocketManager:
    """Tracks connected clients and relays every event bus message to them."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus
        self._connections: list[WebSocket] = []
        self._queue: asyncio.Queue[MonitorEvent] | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._queue = self._event_bus.subscribe()
        self._task = asyncio.create_task(self._broadcast_loop())
        logger.info("WebSocket manager started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._queue is not None:
            self._event_bus.unsubscribe(self._queue)
        logger.info("WebSocket manager stopped")

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.append(websocket)
        logger.info("WebSocket client connected (total: %d)", len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)
        logger.info("WebSocket client disconnected (total: %d)", len(self._connections))

    async def _broadcast_loop(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                await self._broadcast(serialize_event(event))
            except Exception as exc:
                logger.error("Broadcast loop error: %s", exc)

    async def _broadcast(self, message: str) -> None:
        dead: list[WebSocket] = []
        for ws in self._connections:
            try:
                await ws.send_text(message)
            except Exception as exc:
                logger.debug("Dropping WebSocket client: %s", exc)
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)
