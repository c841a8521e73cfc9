"""
Event Bus Infrastructure

Architectural Intent:
- In-process sink for incident lifecycle events
- Handlers subscribe to an event class and receive its subclasses too;
  the most specific subscription is called first
- A failing handler is logged and does not stop delivery to the others
- The last ``journal_size`` events are kept for inspection
"""

import logging
from collections import deque
from typing import Awaitable, Callable

from vigil.domain.events.event_base import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self, journal_size: int = 256) -> None:
        self._subscriptions: dict[type, list[Handler]] = {}
        self._journal: deque[DomainEvent] = deque(maxlen=journal_size)

    @property
    def recent_events(self) -> list[DomainEvent]:
        return list(self._journal)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._subscriptions.setdefault(event_type, []).append(handler)

    def handlers_for(self, event: DomainEvent) -> list[Handler]:
        handlers: list[Handler] = []
        for cls in type(event).__mro__:
            handlers.extend(self._subscriptions.get(cls, ()))
        return handlers

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            self._journal.append(event)
            for handler in self.handlers_for(event):
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        "Handler %r failed for %s", handler, event.event_type
                    )
