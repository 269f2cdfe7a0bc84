"""In-process pub/sub for alert, scan and poll events."""

from __future__ import annotations

import asyncio
import logging
from collections import deque

from printwatch.core.models import MonitorEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Fans each published MonitorEvent out to per-subscriber asyncio queues.

    ``publish`` is synchronous so the alert engine can call it mid-evaluation.
    A subscriber that falls behind loses its oldest queued events first.
    """

    def __init__(self, max_history: int = 500, queue_size: int = 256) -> None:
        self._subscribers: list[asyncio.Queue[MonitorEvent]] = []
        self._history: deque[MonitorEvent] = deque(maxlen=max_history)
        self._queue_size = queue_size

    def subscribe(self) -> asyncio.Queue[MonitorEvent]:
        queue: asyncio.Queue[MonitorEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        logger.debug("New event subscriber (total: %d)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[MonitorEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug("Subscriber removed (total: %d)", len(self._subscribers))

    def publish(self, event: MonitorEvent) -> None:
        self._history.append(event)
        logger.debug(
            "Event %s (%s)",
            event.event_type.value,
            event.alert.address if event.alert else ", ".join(event.details.values()) or "-",
        )
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

    @property
    def recent_events(self) -> list[MonitorEvent]:
        """The retained events, newest first."""
        return list(reversed(self._history))
