"""
Incident Store Port

Architectural Intent:
- The single narrow interface over incident persistence
- Owns durability of entities, incidents and ticket references
- Any transactional backend can implement it (SQLite, SQL server, memory)

Contract:
- find_open_incident returns None when there is no open incident and raises
  InvariantViolationError if more than one is open
- open_incident is an atomic "insert if no open incident" and raises
  IncidentAlreadyOpenError when it loses that race
- close_incident is idempotent
- set_ticket_reference raises ConflictError if a reference exists and
  never overwrites it
- Backend failures surface as PersistenceError
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from vigil.domain.entities.incident import Entity, Incident, TicketReference
from vigil.domain.value_objects.severity import Severity


@runtime_checkable
class IncidentStorePort(Protocol):
    async def find_open_incident(self, entity_id: str) -> Optional[Incident]: ...

    async def open_incident(self, entity_id: str, opened_at: datetime) -> Incident: ...

    async def close_incident(self, incident_id: str, closed_at: datetime) -> None: ...

    async def get_ticket_reference(
        self, incident_id: str
    ) -> Optional[TicketReference]: ...

    async def set_ticket_reference(
        self, incident_id: str, ticket_key: str, created_at: datetime
    ) -> TicketReference: ...

    async def upsert_entity(
        self,
        entity_id: str,
        entity_name: str,
        severity: Severity,
        updated_at: datetime,
    ) -> Entity: ...

    async def get_entity(self, entity_id: str) -> Optional[Entity]: ...

    async def list_entities(self) -> list[Entity]: ...

    async def list_open_incidents(self) -> list[Incident]: ...
