"""Async pub/sub for SystemEvents.

Record routes emit events; the audit subscriber persists them. Emitting
never blocks on subscribers: events go onto a queue drained by a
background worker.

Usage:
    from tokengate.audit.events import emit

    await emit(SystemEvent(
        event_type=EventType.RECORD_CREATED,
        actor_id=principal.username,
        actor_role=principal.role.value,
    ))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from tokengate.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    """Queue-backed dispatcher with global and per-type subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[EventHandler] = []
        self._typed: dict[EventType, list[EventHandler]] = {}
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def subscribe(self, handler: EventHandler, event_types: list[EventType] | None = None) -> None:
        """Register a handler for all events, or only for `event_types`."""
        if event_types is None:
            self._subscribers.append(handler)
        else:
            for et in event_types:
                self._typed.setdefault(et, []).append(handler)
        logger.info("Registered event subscriber %s", handler.__name__)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)
        for handlers in self._typed.values():
            if handler in handlers:
                handlers.remove(handler)

    async def emit(self, event: SystemEvent) -> None:
        """Queue an event. Dropped with a debug log if the bus is not started."""
        if self._queue is None:
            logger.debug("Event bus not started, dropping %s", event.event_type.value)
            return
        await self._queue.put(event)

    async def dispatch(self, event: SystemEvent) -> None:
        """Deliver one event to every matching subscriber, isolating failures."""
        handlers = list(self._subscribers) + list(self._typed.get(event.event_type, []))
        if not handlers:
            return
        results = await asyncio.gather(*[h(event) for h in handlers], return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Event handler %s failed for %s: %s",
                    handler.__name__,
                    event.event_type.value,
                    result,
                )

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        """Create the queue and worker. Call during application startup."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run())
        logger.info(
            "Event bus started with %d global + %d typed subscribers",
            len(self._subscribers),
            sum(len(v) for v in self._typed.values()),
        )

    async def stop(self) -> None:
        """Drain pending events, then cancel the worker."""
        if self._queue is not None and self.running:
            await self._queue.join()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None
        logger.info("Event bus stopped")


# Module-level singleton
event_bus = EventBus()


async def emit(event: SystemEvent) -> None:
    await event_bus.emit(event)


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    event_bus.subscribe(handler, event_types)
