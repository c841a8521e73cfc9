"""
Simulated Status Source

Architectural Intent:
- Implements StatusSourcePort with a fixed fleet of fake applications
- Lets the loop, ticketing and notifications run end to end without a
  monitoring vendor account

Design Decisions:
- Each poll re-rolls every application's status, weighted 95% Operational,
  3% Degraded, 2% Down
- Seedable random generator for reproducible runs
"""

import random
from typing import Optional

from vigil.domain.value_objects.status_observation import StatusObservation

DEFAULT_FLEET: tuple[tuple[str, str], ...] = (
    ("aabc123", "EC2-WEB-01"),
    ("adef456", "EC2-WEB-02"),
    ("aghi789", "LOAD-BAL"),
    ("ajkl012", "EC2-CDN-01"),
    ("amno345", "ZTA-APP"),
    ("apqr678", "SQL-PROD-01"),
    ("astu901", "SQL-PROD-02"),
    ("avwx234", "SQL-TEST-01"),
    ("abcd890", "API-CONT"),
    ("babc123", "DOCK-RUN-01"),
    ("bdef456", "DOCK-RUN-02"),
    ("bghi789", "POS-01"),
    ("bpqr678", "PSA-01"),
    ("bstu901", "IS-DC1"),
    ("bbcd890", "WAN-UP-01"),
    ("cghi789", "NFS-01"),
    ("cmno345", "DNS-01"),
    ("cpqr678", "DNS-02"),
    ("dpqr678", "VPN-01"),
    ("edef456", "EDR-01"),
)


class SimulatedSource:
    """Randomised status source for development."""

    def __init__(
        self,
        fleet: Optional[tuple[tuple[str, str], ...]] = None,
        seed: Optional[int] = None,
    ) -> None:
        self._fleet = fleet or DEFAULT_FLEET
        self._random = random.Random(seed)

    def pick_status(self) -> str:
        roll = self._random.randrange(100)
        if roll < 95:
            return "Operational"
        if roll < 98:
            return "Degraded"
        return "Down"

    async def fetch_snapshot(self) -> list[StatusObservation]:
        return [
            StatusObservation(entity_id, name, self.pick_status())
            for entity_id, name in self._fleet
        ]
