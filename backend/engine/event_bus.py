from __future__ import annotations

import asyncio
import logging
from typing import Callable, Awaitable

from backend.models.log import LogEvent

logger = logging.getLogger(__name__)

# handlers may return a value; the bus ignores it
Subscriber = Callable[[LogEvent], Awaitable[object]]


class EventBus:
    """Background queue that hands stored log events to detection handlers.

    ``workers`` consumer tasks pull from one queue, so independent events are
    processed concurrently while each event is dispatched exactly once.
    """

    def __init__(self, maxsize: int = 0, workers: int = 1) -> None:
        self._queue: asyncio.Queue[LogEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers: list[Subscriber] = []
        self._workers = max(1, workers)
        self._running = False
        self._consumer_tasks: list[asyncio.Task] = []

    # ── lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._consumer_tasks = [
            asyncio.create_task(self._consume_loop(), name=f"event-bus-{i}")
            for i in range(self._workers)
        ]
        logger.info("EventBus started (%d workers)", self._workers)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        # Let in-flight dispatches finish, then drain what's left
        await asyncio.gather(*self._consumer_tasks, return_exceptions=True)
        self._consumer_tasks = []
        await self._drain()
        logger.info("EventBus stopped")

    # ── publish / subscribe ─────────────────────────────

    async def publish(self, event: LogEvent) -> bool:
        """Queue an event without waiting. Returns False if the queue is full."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Event queue full (%d pending), dropping log %s", self.pending, event.id)
            return False
        return True

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        self._subscribers.remove(callback)

    # ── internals ───────────────────────────────────────

    async def _consume_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            await self._dispatch(event)
            self._queue.task_done()

    async def _drain(self) -> None:
        while not self._queue.empty():
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._dispatch(event)
            self._queue.task_done()

    async def _dispatch(self, event: LogEvent) -> None:
        for sub in list(self._subscribers):
            try:
                await sub(event)
            except Exception:
                logger.exception("Subscriber %s failed for log %s", sub, event.id)

    # ── introspection ───────────────────────────────────

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
