"""
Incident Module

Architectural Intent:
- Entity, Incident and TicketReference records owned by the incident store
- An Incident spans one continuous period at or above Degraded for one entity
- Records are immutable snapshots; the store produces new instances on change

Invariants (enforced by the store, not by these classes):
- At most one open Incident per entity_id
- Zero or one TicketReference per incident_id
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from vigil.domain.value_objects.severity import Severity


@dataclass(frozen=True)
class Entity:
    """A monitored application or host."""

    entity_id: str
    entity_name: str
    current_severity: Severity = Severity.UNKNOWN
    last_known_severity: Severity = Severity.UNKNOWN
    updated_at: Optional[datetime] = None

    def observe(self, entity_name: str, severity: Severity, at: datetime) -> Entity:
        last_known = (
            self.last_known_severity if severity is Severity.UNKNOWN else severity
        )
        return replace(
            self,
            entity_name=entity_name or self.entity_name,
            current_severity=severity,
            last_known_severity=last_known,
            updated_at=at,
        )


@dataclass(frozen=True)
class Incident:
    incident_id: str
    entity_id: str
    opened_at: datetime
    closed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def close(self, closed_at: datetime) -> Incident:
        if not self.is_open:
            return self
        return replace(self, closed_at=closed_at)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.closed_at is None:
            return None
        return (self.closed_at - self.opened_at).total_seconds()


@dataclass(frozen=True)
class TicketReference:
    """Binds one incident to one remote ticket."""

    incident_id: str
    ticket_key: str
    created_at: datetime
