"""
Status Observation Value Object

Architectural Intent:
- Immutable record of one entity's raw status as reported by a source
- A poll cycle's snapshot is a sequence of these; duplicates are collapsed
  before reconciliation
"""

from dataclasses import dataclass
from typing import Iterable

from vigil.domain.value_objects.severity import Severity, rank


@dataclass(frozen=True)
class StatusObservation:
    entity_id: str
    entity_name: str
    raw_status: str

    def __post_init__(self) -> None:
        if not self.entity_id:
            raise ValueError("StatusObservation entity_id cannot be empty")

    @property
    def severity(self) -> Severity:
        return rank(self.raw_status)


def collapse_snapshot(
    observations: Iterable[StatusObservation],
) -> list[StatusObservation]:
    """Keep the last observation per entity, preserving first-seen order."""
    latest: dict[str, StatusObservation] = {}
    for observation in observations:
        latest[observation.entity_id] = observation
    return list(latest.values())
