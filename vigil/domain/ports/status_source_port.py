"""
Status Source Port

Architectural Intent:
- Port for monitoring connectors (New Relic, Nagios, simulators)
- Each call returns the current snapshot; pagination and auth stay inside
  the adapter
"""

from typing import Protocol, runtime_checkable

from vigil.domain.value_objects.status_observation import StatusObservation


@runtime_checkable
class StatusSourcePort(Protocol):
    async def fetch_snapshot(self) -> list[StatusObservation]:
        """Return one observation per entity. Raises SourceError on failure."""
        ...
