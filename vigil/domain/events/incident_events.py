"""
Incident Lifecycle Events

Architectural Intent:
- One event per incident transition the reconciliation loop applies
- aggregate_id is the incident id; event_kind is the short name used by
  notification sinks
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from vigil.domain.events.event_base import DomainEvent
from vigil.domain.value_objects.severity import Severity


@dataclass(frozen=True)
class IncidentLifecycleEvent(DomainEvent):
    event_kind: ClassVar[str] = ""

    entity_id: str = ""
    entity_name: str = ""
    previous_severity: Severity = Severity.UNKNOWN
    new_severity: Severity = Severity.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "event_kind": self.event_kind,
                "entity_id": self.entity_id,
                "entity_name": self.entity_name,
                "previous_severity": self.previous_severity.value,
                "new_severity": self.new_severity.value,
            }
        )
        return data


@dataclass(frozen=True)
class IncidentOpenedEvent(IncidentLifecycleEvent):
    event_kind: ClassVar[str] = "opened"


@dataclass(frozen=True)
class IncidentEscalatedEvent(IncidentLifecycleEvent):
    event_kind: ClassVar[str] = "escalated"


@dataclass(frozen=True)
class IncidentClosedEvent(IncidentLifecycleEvent):
    event_kind: ClassVar[str] = "closed"
