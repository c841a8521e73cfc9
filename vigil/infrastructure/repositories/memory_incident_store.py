"""
In-Memory Incident Store

Architectural Intent:
- Implements IncidentStorePort without a database, for development and tests
- Holds the same invariants as the SQLite store

Design Decisions:
- Incident ids are sequential integers rendered as strings, like SQLite rowids
- Every method runs without awaiting, so each call is atomic on the event loop
"""

import itertools
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from vigil.domain.entities.incident import Entity, Incident, TicketReference
from vigil.domain.errors import (
    ConflictError,
    IncidentAlreadyOpenError,
    InvariantViolationError,
    PersistenceError,
)
from vigil.domain.value_objects.severity import Severity

logger = logging.getLogger(__name__)


class InMemoryIncidentStore:
    """Incident store kept in process memory."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._incidents: dict[str, Incident] = {}
        self._references: dict[str, TicketReference] = {}
        self._entities: dict[str, Entity] = {}

    # -- Incidents -----------------------------------------------------------

    async def find_open_incident(self, entity_id: str) -> Optional[Incident]:
        open_incidents = [
            i for i in self._incidents.values()
            if i.entity_id == entity_id and i.is_open
        ]
        if len(open_incidents) > 1:
            raise InvariantViolationError(
                f"{len(open_incidents)} open incidents for entity {entity_id!r}"
            )
        return open_incidents[0] if open_incidents else None

    async def open_incident(self, entity_id: str, opened_at: datetime) -> Incident:
        if any(
            i.entity_id == entity_id and i.is_open for i in self._incidents.values()
        ):
            raise IncidentAlreadyOpenError(entity_id)
        incident = Incident(
            incident_id=str(next(self._ids)),
            entity_id=entity_id,
            opened_at=opened_at,
        )
        self._incidents[incident.incident_id] = incident
        logger.debug("Opened incident %s for %s", incident.incident_id, entity_id)
        return incident

    async def close_incident(self, incident_id: str, closed_at: datetime) -> None:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise PersistenceError(f"Incident {incident_id!r} does not exist")
        self._incidents[incident_id] = incident.close(closed_at)

    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    async def list_open_incidents(self) -> list[Incident]:
        return [i for i in self._incidents.values() if i.is_open]

    # -- Ticket References ---------------------------------------------------

    async def get_ticket_reference(
        self, incident_id: str
    ) -> Optional[TicketReference]:
        return self._references.get(incident_id)

    async def set_ticket_reference(
        self, incident_id: str, ticket_key: str, created_at: datetime
    ) -> TicketReference:
        if incident_id in self._references:
            raise ConflictError(
                f"Incident {incident_id!r} already bound to "
                f"{self._references[incident_id].ticket_key}"
            )
        if incident_id not in self._incidents:
            raise PersistenceError(f"Incident {incident_id!r} does not exist")
        reference = TicketReference(incident_id, ticket_key, created_at)
        self._references[incident_id] = reference
        return reference

    # -- Entities ------------------------------------------------------------

    async def upsert_entity(
        self,
        entity_id: str,
        entity_name: str,
        severity: Severity,
        updated_at: datetime,
    ) -> Entity:
        entity = self._entities.get(entity_id) or Entity(entity_id, entity_name)
        entity = entity.observe(entity_name, severity, updated_at)
        self._entities[entity_id] = entity
        return entity

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    async def list_entities(self) -> list[Entity]:
        return list(self._entities.values())

    # -- Test helpers --------------------------------------------------------

    def force_incident(self, incident: Incident) -> None:
        """Insert a record bypassing the open-incident rule (for tests)."""
        self._incidents[incident.incident_id] = replace(incident)
