"""
Domain Events Module

Architectural Intent:
- Immutable record of something that already happened to an aggregate
- Published only after the state change it describes has been stored
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: datetime = field(default_factory=_now, init=False, repr=False)
    aggregate_id: str = ""

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
        }
