"""
Notification Fan-out Use Case

Architectural Intent:
- Turns incident lifecycle events into notify() calls on every sink
- Stateless and best-effort: a failing sink is logged and skipped, and
  never affects incident state or other sinks

Design Decisions:
- Subscribes to the event bus for IncidentLifecycleEvent and subclasses
- Sinks are called concurrently, each bounded by the call timeout
"""

import asyncio
import logging

from vigil.application.timeouts import bounded
from vigil.domain.errors import NotificationError, TransientError
from vigil.domain.events.incident_events import IncidentLifecycleEvent
from vigil.domain.ports.event_bus_port import EventBusPort
from vigil.domain.ports.notification_port import NotificationPort
from vigil.domain.value_objects.severity import Severity

logger = logging.getLogger(__name__)


class NotificationFanout:
    def __init__(
        self,
        sinks: list[NotificationPort],
        call_timeout: float = 10.0,
    ):
        self.sinks = list(sinks)
        self._call_timeout = call_timeout

    def register(self, event_bus: EventBusPort) -> None:
        event_bus.subscribe(IncidentLifecycleEvent, self.handle)

    async def handle(self, event: IncidentLifecycleEvent) -> None:
        await self.dispatch(
            event.entity_name,
            event.previous_severity,
            event.new_severity,
            event.event_kind,
        )

    async def dispatch(
        self,
        entity_name: str,
        previous_severity: Severity,
        new_severity: Severity,
        event_kind: str,
    ) -> int:
        """Notify every sink. Returns the number of successful deliveries."""
        results = await asyncio.gather(
            *(
                self._deliver(sink, entity_name, previous_severity, new_severity, event_kind)
                for sink in self.sinks
            )
        )
        return sum(results)

    async def _deliver(
        self,
        sink: NotificationPort,
        entity_name: str,
        previous_severity: Severity,
        new_severity: Severity,
        event_kind: str,
    ) -> bool:
        try:
            await bounded(
                sink.notify(entity_name, previous_severity, new_severity, event_kind),
                self._call_timeout,
                NotificationError,
                f"{type(sink).__name__}.notify",
            )
            return True
        except TransientError as e:
            logger.warning(
                "Notification %s for %s via %s failed: %s",
                event_kind,
                entity_name,
                type(sink).__name__,
                e,
            )
        except Exception:
            logger.exception(
                "Notification sink %s raised unexpectedly", type(sink).__name__
            )
        return False
