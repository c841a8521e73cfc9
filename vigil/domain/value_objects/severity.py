"""
Severity Value Object

Architectural Intent:
- Maps raw status strings from any monitoring source onto one ordered scale
- Classifies a change between two severities as worsening, improving or lateral
- Pure functions only; safe to call any number of times with the same inputs

Design Decisions:
- Unknown ranks 0 alongside Operational but is never a worsening target
  and never an improving source
- Source-specific spellings (New Relic health colours, admin UI names)
  are folded into the canonical scale here, not in the adapters
"""

from enum import Enum


class Severity(Enum):
    UNKNOWN = "Unknown"
    OPERATIONAL = "Operational"
    DEGRADED = "Degraded"
    DOWN = "Down"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_impaired(self) -> bool:
        """True for Degraded and Down, the severities that hold an incident open."""
        return self in (Severity.DEGRADED, Severity.DOWN)

    def __str__(self) -> str:
        return self.value


class Transition(Enum):
    WORSENING = "worsening"
    IMPROVING = "improving"
    LATERAL = "lateral"


_RANKS = {
    Severity.UNKNOWN: 0,
    Severity.OPERATIONAL: 0,
    Severity.DEGRADED: 1,
    Severity.DOWN: 2,
}

_ALIASES = {
    "operational": Severity.OPERATIONAL,
    "degraded": Severity.DEGRADED,
    "down": Severity.DOWN,
    # New Relic application health_status
    "green": Severity.OPERATIONAL,
    "orange": Severity.DEGRADED,
    "red": Severity.DOWN,
    # Admin UI status names
    "degradedperformance": Severity.DEGRADED,
    "outage": Severity.DOWN,
}


def rank(raw_status) -> Severity:
    """Map a raw status value to a Severity. Unmapped values yield UNKNOWN."""
    if isinstance(raw_status, Severity):
        return raw_status
    if not isinstance(raw_status, str):
        return Severity.UNKNOWN
    return _ALIASES.get(raw_status.strip().lower(), Severity.UNKNOWN)


def classify(previous: Severity, current: Severity) -> Transition:
    if current is not Severity.UNKNOWN and current.rank > previous.rank:
        return Transition.WORSENING
    if current is Severity.OPERATIONAL and previous.is_impaired:
        return Transition.IMPROVING
    return Transition.LATERAL
