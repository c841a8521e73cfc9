"""
Ticket System Port

Architectural Intent:
- Port interface for the remote ticket tracker (Jira or similar)
- Abstracts ticket creation, comments and workflow transitions

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- Failures raise TicketSystemError; callers decide whether to swallow
- Ticket keys are opaque strings to remain provider-agnostic
"""

from typing import Protocol, runtime_checkable

from vigil.domain.value_objects.severity import Severity


@runtime_checkable
class TicketSystemPort(Protocol):
    """Port for remote ticket operations."""

    async def create_ticket(
        self, entity_name: str, severity: Severity, incident_id: str
    ) -> str:
        """Create a ticket for an incident. Returns the ticket key."""
        ...

    async def add_comment(self, ticket_key: str, text: str) -> None:
        """Append a comment to an existing ticket."""
        ...

    async def transition_ticket(self, ticket_key: str, transition_name: str) -> bool:
        """Move a ticket through a named workflow transition.

        Returns False if the ticket offers no transition with that name.
        """
        ...
