"""In-process domain event bus.

Business services publish `DomainEvent`s here; interested components
subscribe per event type. The webhook dispatcher subscribes to every type.

Example:
    ```python
    bus = EventBus()
    bus.subscribe_all(coordinator.handle)

    @bus.on(EventType.USER_REGISTERED)
    async def send_welcome(event: DomainEvent) -> None:
        ...

    await bus.publish(DomainEvent.for_user_registered(...))
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable

from courier.models import ALL_EVENT_TYPES, DomainEvent, EventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """Typed registry of event type -> handlers.

    Handlers run in subscription order when an event is published. A
    handler that raises is logged and skipped; the publisher never sees
    the error and later handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.setdefault(EventType(event_type), [])
        if handler not in handlers:
            handlers.append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every event type."""
        for event_type in ALL_EVENT_TYPES:
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.get(EventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def on(self, event_type: EventType) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of `subscribe`."""

        def decorator(func: EventHandler) -> EventHandler:
            self.subscribe(event_type, func)
            return func

        return decorator

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return list(self._handlers.get(EventType(event_type), []))

    async def publish(self, event: DomainEvent) -> int:
        """Deliver an event to its subscribers.

        Returns:
            Number of handlers that completed without raising.
        """
        handlers = self.handlers_for(event.type)
        if not handlers:
            logger.debug("No handlers for event %s", event.type.value)
            return 0

        completed = 0
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for event %s (%s)",
                    getattr(handler, "__qualname__", repr(handler)),
                    event.id,
                    event.type.value,
                )
            else:
                completed += 1
        return completed

    async def publish_all(self, events: Iterable[DomainEvent]) -> int:
        """Publish events in order. Returns the total completed handler count."""
        completed = 0
        for event in events:
            completed += await self.publish(event)
        return completed


__all__ = ["EventBus", "EventHandler"]
