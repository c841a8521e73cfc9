"""
Incident Lifecycle Service

Architectural Intent:
- Pure decision table mapping (previous severity, observed severity,
  open-incident presence) to one lifecycle action
- No I/O; the reconciliation loop performs the effects

Decision table:
    Worsening, no incident   -> OPEN
    Worsening, incident open -> ESCALATE
    Improving, incident open -> CLOSE
    Lateral,   incident open -> RETAIN  (repair a missing ticket)
    anything else            -> NONE
"""

from enum import Enum

from vigil.domain.value_objects.severity import Severity, Transition, classify


class LifecycleAction(Enum):
    OPEN = "open"
    ESCALATE = "escalate"
    CLOSE = "close"
    RETAIN = "retain"
    NONE = "none"


def effective_previous(previous: Severity, incident_open: bool) -> Severity:
    """An open incident implies the entity was at least Degraded."""
    if incident_open and previous.rank < Severity.DEGRADED.rank:
        return Severity.DEGRADED
    return previous


def decide(
    previous: Severity, observed: Severity, incident_open: bool
) -> LifecycleAction:
    transition = classify(effective_previous(previous, incident_open), observed)

    if transition is Transition.WORSENING:
        return LifecycleAction.ESCALATE if incident_open else LifecycleAction.OPEN
    if transition is Transition.IMPROVING:
        return LifecycleAction.CLOSE if incident_open else LifecycleAction.NONE
    return LifecycleAction.RETAIN if incident_open else LifecycleAction.NONE
