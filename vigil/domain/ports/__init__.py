"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
- Follows Hexagonal Architecture principles
"""

from vigil.domain.ports.incident_store_port import IncidentStorePort
from vigil.domain.ports.ticket_system_port import TicketSystemPort
from vigil.domain.ports.notification_port import NotificationPort
from vigil.domain.ports.status_source_port import StatusSourcePort
from vigil.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "IncidentStorePort",
    "TicketSystemPort",
    "NotificationPort",
    "StatusSourcePort",
    "EventBusPort",
]
