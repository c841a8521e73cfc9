"""
Notification Port

Architectural Intent:
- Abstract interface for fire-and-forget lifecycle notifications
- Decouples the reconciliation loop from chat channels and buses

Design Decisions:
- Uses Protocol for structural typing (no inheritance needed)
- Failures raise NotificationError; the fan-out logs and drops them
"""

from typing import Protocol, runtime_checkable

from vigil.domain.value_objects.severity import Severity


@runtime_checkable
class NotificationPort(Protocol):
    """Port for sending incident lifecycle notifications."""

    async def notify(
        self,
        entity_name: str,
        previous_severity: Severity,
        new_severity: Severity,
        event_kind: str,
    ) -> None:
        """Deliver one notification.

        Args:
            entity_name: Display name of the monitored entity
            previous_severity: Severity before the transition
            new_severity: Severity after the transition
            event_kind: "opened", "escalated" or "closed"
        """
        ...
