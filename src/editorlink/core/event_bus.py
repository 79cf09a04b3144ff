"""In-process event bus owned by one registry instance."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from editorlink.core.events import EventHandler, RegistryEvent

logger = logging.getLogger(__name__)

_QUEUE_SIZE = 100


class EventSubscription:
    """Async iterator over events published after it was created.

    The queue is registered at construction, so nothing published between
    ``subscribe()`` and the first ``await`` is lost.
    """

    def __init__(
        self,
        bus: InMemoryEventBus,
        event_type: type[RegistryEvent] | None,
    ) -> None:
        self._bus = bus
        self._event_type = event_type
        self._queue: asyncio.Queue[RegistryEvent] = asyncio.Queue(maxsize=_QUEUE_SIZE)
        bus._queues.append((event_type, self._queue))

    def __aiter__(self) -> EventSubscription:
        return self

    async def __anext__(self) -> RegistryEvent:
        return await self._queue.get()

    def close(self) -> None:
        self._bus._queues = [(t, q) for t, q in self._bus._queues if q is not self._queue]

    def __enter__(self) -> EventSubscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class InMemoryEventBus:
    """Fan-out to synchronous handlers and async subscribers.

    Publishing never awaits, so it is safe from link callbacks. Events are
    not persisted or replayed; new subscribers only receive future events.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[type[RegistryEvent] | None, EventHandler]] = []
        self._queues: list[tuple[type[RegistryEvent] | None, asyncio.Queue[RegistryEvent]]] = []

    def publish(self, event: RegistryEvent) -> None:
        """Publish event to all matching handlers and subscribers."""
        for filter_type, handler in list(self._handlers):
            if filter_type is None or isinstance(event, filter_type):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Event handler failed for %s", type(event).__name__)

        for filter_type, queue in list(self._queues):
            if filter_type is None or isinstance(event, filter_type):
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    logger.debug("Subscriber queue full; dropping %s", type(event).__name__)

    def add_handler(
        self,
        handler: EventHandler,
        event_type: type[RegistryEvent] | None = None,
    ) -> None:
        """Register a synchronous handler for events."""
        self._handlers.append((event_type, handler))

    def remove_handler(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        self._handlers = [(t, h) for t, h in self._handlers if h is not handler]

    def subscribe(self, event_type: type[RegistryEvent] | None = None) -> EventSubscription:
        """Subscribe to events, yielding them as they arrive."""
        return EventSubscription(self, event_type)


__all__ = ["EventSubscription", "InMemoryEventBus"]
