"""
Debounced processing of inbound messages.

Customers often send several short messages in a row. Processing waits
``delay`` seconds after the latest message of a conversation; a newer
message while the wait is pending cancels and replaces it. Once the delay
has elapsed and the job is running it is left to finish.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Hashable, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class DelayedTaskScheduler:
    """One pending delayed job per key."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._waiting: dict[Hashable, asyncio.Task] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def pending_keys(self) -> list[Hashable]:
        return list(self._waiting)

    def schedule(self, key: Hashable, job: Job, delay: Optional[float] = None) -> asyncio.Task:
        """Schedule ``job`` for ``key``, replacing a job still waiting on its delay."""
        previous = self._waiting.pop(key, None)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug("Debounce: replaced pending job for %s", key)
        task = asyncio.create_task(self._run(key, job, self._delay if delay is None else delay))
        self._waiting[key] = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _run(self, key: Hashable, job: Job, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._waiting.get(key) is asyncio.current_task():
            del self._waiting[key]
        try:
            await job()
        except Exception:
            logger.exception("Debounced job for %s failed", key)

    async def drain(self) -> None:
        """Wait for every scheduled job to finish."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel everything still waiting or running."""
        for task in list(self._running):
            task.cancel()
        await asyncio.gather(*list(self._running), return_exceptions=True)
        self._waiting.clear()
