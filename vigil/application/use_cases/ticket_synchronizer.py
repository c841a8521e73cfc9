"""
Ticket Synchronizer Use Case

Architectural Intent:
- Translates incident lifecycle decisions into ticket system calls
- Records the resulting ticket key against the incident
- Absorbs ticket system failures without touching incident state

Design Decisions:
- Remote failures (TicketSystemError, timeouts) are logged and dropped; the
  next cycle in which the incident is still open and still unbound retries
  creation through ensure_ticket
- Store failures and ConflictError propagate: a lost or duplicate binding
  must be visible to the loop
- An advisory set of incidents known to be bound skips the reference read
  on every lateral cycle; it can be dropped at any time
"""

import logging
from datetime import datetime, UTC
from typing import Callable, Optional

from vigil.application.timeouts import bounded
from vigil.domain.entities.incident import Incident
from vigil.domain.errors import PersistenceError, TicketSystemError
from vigil.domain.ports.incident_store_port import IncidentStorePort
from vigil.domain.ports.ticket_system_port import TicketSystemPort
from vigil.domain.services import message_templates as templates
from vigil.domain.value_objects.severity import Severity

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TicketSynchronizer:
    def __init__(
        self,
        store: IncidentStorePort,
        tickets: TicketSystemPort,
        call_timeout: float = 10.0,
        close_transition: str = "",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.tickets = tickets
        self._call_timeout = call_timeout
        self._close_transition = close_transition
        self._clock = clock
        self._bound: set[str] = set()

    async def _remote(self, awaitable, what: str):
        return await bounded(awaitable, self._call_timeout, TicketSystemError, what)

    async def _stored(self, awaitable, what: str):
        return await bounded(awaitable, self._call_timeout, PersistenceError, what)

    async def on_incident_opened(
        self, incident: Incident, entity_name: str, severity: Severity
    ) -> Optional[str]:
        """Create the remote ticket and bind it. Returns the key, or None on failure."""
        try:
            ticket_key = await self._remote(
                self.tickets.create_ticket(entity_name, severity, incident.incident_id),
                "create_ticket",
            )
        except TicketSystemError as e:
            logger.warning(
                "Ticket creation failed for incident %s (%s): %s",
                incident.incident_id,
                entity_name,
                e,
            )
            return None

        await self._stored(
            self.store.set_ticket_reference(
                incident.incident_id, ticket_key, self._clock()
            ),
            "set_ticket_reference",
        )
        self._bound.add(incident.incident_id)
        logger.info(
            "Incident %s for %s bound to ticket %s",
            incident.incident_id,
            entity_name,
            ticket_key,
            extra={"incident_id": incident.incident_id, "ticket_key": ticket_key},
        )
        return ticket_key

    async def on_incident_escalated(
        self,
        incident: Incident,
        entity_name: str,
        new_severity: Severity,
        previous_severity: Optional[Severity] = None,
    ) -> None:
        reference = await self._stored(
            self.store.get_ticket_reference(incident.incident_id),
            "get_ticket_reference",
        )
        if reference is None:
            logger.info(
                "Incident %s escalated without a ticket; creating one",
                incident.incident_id,
            )
            await self.on_incident_opened(incident, entity_name, new_severity)
            return

        self._bound.add(incident.incident_id)
        comment = templates.escalation_comment(
            entity_name, new_severity, previous_severity, self._clock()
        )
        try:
            await self._remote(
                self.tickets.add_comment(reference.ticket_key, comment), "add_comment"
            )
        except TicketSystemError as e:
            logger.warning(
                "Escalation comment on %s failed: %s",
                reference.ticket_key,
                e,
                extra={"ticket_key": reference.ticket_key},
            )

    async def on_incident_closed(self, incident: Incident, entity_name: str) -> None:
        self._bound.discard(incident.incident_id)
        reference = await self._stored(
            self.store.get_ticket_reference(incident.incident_id),
            "get_ticket_reference",
        )
        if reference is None:
            logger.debug(
                "Incident %s closed with no ticket bound", incident.incident_id
            )
            return

        comment = templates.recovery_comment(entity_name, self._clock())
        try:
            await self._remote(
                self.tickets.add_comment(reference.ticket_key, comment), "add_comment"
            )
        except TicketSystemError as e:
            logger.warning(
                "Recovery comment on %s failed: %s",
                reference.ticket_key,
                e,
                extra={"ticket_key": reference.ticket_key},
            )

        if not self._close_transition:
            return
        try:
            await self._remote(
                self.tickets.transition_ticket(
                    reference.ticket_key, self._close_transition
                ),
                "transition_ticket",
            )
        except TicketSystemError as e:
            logger.warning(
                "Transition of %s to %r failed: %s",
                reference.ticket_key,
                self._close_transition,
                e,
            )

    async def ensure_ticket(
        self, incident: Incident, entity_name: str, severity: Severity
    ) -> None:
        """Create the ticket for an open incident that still has none."""
        if incident.incident_id in self._bound:
            return
        reference = await self._stored(
            self.store.get_ticket_reference(incident.incident_id),
            "get_ticket_reference",
        )
        if reference is not None:
            self._bound.add(incident.incident_id)
            return
        logger.info(
            "Incident %s for %s has no ticket; retrying creation",
            incident.incident_id,
            entity_name,
        )
        await self.on_incident_opened(incident, entity_name, severity)

    def forget(self) -> None:
        """Drop the advisory bound-incident set."""
        self._bound.clear()
