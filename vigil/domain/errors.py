"""
Domain Errors

Architectural Intent:
- Lets callers tell "safe to ignore" from "must retry" from "invariant violated"
- Adapters translate library exceptions into these types at the boundary

Hierarchy:
- TransientError: remote I/O that may succeed on the next cycle
- PersistenceError: the incident store could not complete a call
- ConflictError: a store-level uniqueness rule rejected a write
- InvariantViolationError: the store holds state the invariants forbid
"""


class VigilError(Exception):
    """Base class for all vigil errors."""


class TransientError(VigilError):
    """Remote call failed or timed out; retried on the next natural pass."""


class TicketSystemError(TransientError):
    pass


class NotificationError(TransientError):
    pass


class SourceError(TransientError):
    """A status source could not produce a snapshot."""


class PersistenceError(VigilError):
    """The incident store failed; mutations must be treated as not applied."""


class ConflictError(VigilError):
    """A ticket reference already exists for the incident."""


class IncidentAlreadyOpenError(ConflictError):
    """An open incident already exists for the entity."""

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"Entity {entity_id!r} already has an open incident")
        self.entity_id = entity_id


class InvariantViolationError(VigilError):
    """More than one open incident exists for a single entity."""
