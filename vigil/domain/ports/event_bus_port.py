"""
Event Bus Port

Architectural Intent:
- Where lifecycle events go once the store has accepted the transition
- Publishing is best-effort; a consumer failure never reaches the publisher
"""

from typing import Awaitable, Callable, Protocol, runtime_checkable

from vigil.domain.events.event_base import DomainEvent


@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, events: list[DomainEvent]) -> None: ...

    def subscribe(
        self, event_type: type, handler: Callable[[DomainEvent], Awaitable[None]]
    ) -> None: ...
