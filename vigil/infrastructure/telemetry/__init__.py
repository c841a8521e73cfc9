"""
Vigil Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for reconciliation loop observability
- Cycle metrics, incident lifecycle counters and cycle spans
"""

from vigil.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
