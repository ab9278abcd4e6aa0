"""Fan-out of booking events to live dashboard listeners."""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NotificationBroadcaster:
    """
    Registry of listener queues.

    Each subscriber gets its own bounded queue; ``publish`` never blocks and
    drops the event for a listener whose queue is full.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._listeners: set[asyncio.Queue] = set()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._listeners.add(queue)
        logger.debug("Listener subscribed (%d total)", len(self._listeners))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._listeners.discard(queue)
        logger.debug("Listener unsubscribed (%d total)", len(self._listeners))

    def publish(self, event: BaseModel) -> int:
        """Deliver ``event`` to every listener; returns how many received it."""
        payload: dict[str, Any] = event.model_dump(mode="json")
        delivered = 0
        for queue in list(self._listeners):
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Listener queue full, dropping %s event", payload.get("type"))
        logger.info("Published %s to %d listeners", payload.get("type"), delivered)
        return delivered
