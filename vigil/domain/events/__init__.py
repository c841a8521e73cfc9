"""
Domain Events Package

Architectural Intent:
- Contains domain events published by the reconciliation loop
- Events are the mechanism by which notification sinks learn of transitions
"""

from vigil.domain.events.event_base import DomainEvent
from vigil.domain.events.incident_events import (
    IncidentLifecycleEvent,
    IncidentOpenedEvent,
    IncidentEscalatedEvent,
    IncidentClosedEvent,
)

__all__ = [
    "DomainEvent",
    "IncidentLifecycleEvent",
    "IncidentOpenedEvent",
    "IncidentEscalatedEvent",
    "IncidentClosedEvent",
]
