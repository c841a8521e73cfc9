"""
OpenTelemetry Exporter for vigil

Architectural Intent:
- Ships reconciliation metrics and cycle spans to an OTLP collector
- Every metric is also kept in a bounded local buffer, active SDK or not,
  so the CLI and tests can read what was recorded
- The SDK is imported lazily; without an endpoint or without the SDK the
  exporter degrades to buffer-only

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Plaintext http:// to a non-loopback host needs insecure=True
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

BUFFER_LIMIT = 1000
LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")

GAUGE = "gauge"
COUNTER = "counter"


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "vigil"
    environment: str = "development"
    enable_traces: bool = True
    enable_metrics: bool = True
    insecure: bool = False

    def __post_init__(self) -> None:
        if not self.endpoint:
            return
        parsed = urlparse(self.endpoint)
        if (
            parsed.scheme == "http"
            and parsed.hostname not in LOOPBACK_HOSTS
            and not self.insecure
        ):
            raise ValueError(
                f"Plaintext endpoint '{self.endpoint}' needs https:// or "
                "insecure=True to allow unencrypted export."
            )


class OTELExporter:
    """Cycle and lifecycle telemetry for the reconciliation loop."""

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._buffer: deque[dict[str, Any]] = deque(maxlen=BUFFER_LIMIT)
        self._meter: Any = None
        self._instruments: dict[tuple[str, str], Any] = {}
        self._tracer_provider: Any = None
        self._meter_provider: Any = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    def buffered_metrics(self, name: Optional[str] = None) -> list[dict[str, Any]]:
        return [m for m in self._buffer if name is None or m["name"] == name]

    # -- Setup ---------------------------------------------------------------

    async def initialize(self) -> None:
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        try:
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME

            resource = Resource(
                attributes={
                    SERVICE_NAME: self.config.service_name,
                    "deployment.environment": self.config.environment,
                }
            )
            if self.config.enable_traces:
                self._install_tracing(resource)
            if self.config.enable_metrics:
                self._install_metrics(resource)
        except ImportError:
            logger.warning("OpenTelemetry SDK not installed, telemetry disabled")
            return
        except Exception as e:
            logger.error("Failed to initialize OTEL: %s", e)
            return

        self._initialized = True
        logger.info("Exporting telemetry to %s", self.config.endpoint)

    def _install_tracing(self, resource: Any) -> None:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        provider = TracerProvider(resource=resource)
        provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(
                    endpoint=self.config.endpoint, insecure=self.config.insecure
                )
            )
        )
        trace.set_tracer_provider(provider)
        self._tracer_provider = provider

    def _install_metrics(self, resource: Any) -> None:
        from opentelemetry import metrics
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )

        reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(
                endpoint=self.config.endpoint, insecure=self.config.insecure
            )
        )
        provider = MeterProvider(resource=resource, metric_readers=[reader])
        metrics.set_meter_provider(provider)
        self._meter_provider = provider
        self._meter = provider.get_meter("vigil")

    # -- Metrics -------------------------------------------------------------

    def _instrument(self, name: str, kind: str, unit: str) -> Any:
        key = (name, kind)
        if key not in self._instruments:
            create = (
                self._meter.create_counter
                if kind == COUNTER
                else self._meter.create_gauge
            )
            self._instruments[key] = create(name, unit=unit)
        return self._instruments[key]

    def record_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        attributes: Optional[dict[str, str]] = None,
        kind: str = GAUGE,
    ) -> None:
        attributes = attributes or {}
        self._buffer.append(
            {
                "name": name,
                "value": value,
                "unit": unit,
                "kind": kind,
                "attributes": attributes,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        if not (self._initialized and self._meter):
            return

        instrument = self._instrument(name, kind, unit)
        if kind == COUNTER:
            instrument.add(value, attributes=attributes)
        else:
            instrument.set(value, attributes=attributes)

    def record_cycle(self, duration_ms: float, entities: int, failures: int) -> None:
        self.record_metric("vigil.cycle.duration_ms", duration_ms, unit="ms")
        self.record_metric("vigil.cycle.entities", float(entities))
        self.record_metric("vigil.cycle.failures", float(failures))

    def record_lifecycle(self, kind: str, entity_id: str, severity: str) -> None:
        """Count one opened/escalated/closed transition."""
        self.record_metric(
            f"vigil.incident.{kind}",
            1.0,
            attributes={"entity_id": entity_id, "severity": severity},
            kind=COUNTER,
        )

    # -- Traces --------------------------------------------------------------

    def start_span(
        self, name: str, attributes: Optional[dict[str, str]] = None
    ) -> Optional[Any]:
        if not self._initialized or self._tracer_provider is None:
            return None
        tracer = self._tracer_provider.get_tracer("vigil")
        return tracer.start_span(name, attributes=attributes or {})

    def end_span(self, span: Any) -> None:
        if span is not None:
            span.end()

    # -- Shutdown ------------------------------------------------------------

    async def export(self) -> None:
        """Force-flush the SDK providers and drop the local buffer."""
        if not self._initialized:
            return

        for provider in (self._tracer_provider, self._meter_provider):
            if provider is not None:
                provider.force_flush()

        flushed = len(self._buffer)
        self._buffer.clear()
        if flushed:
            logger.debug("Flushed %d buffered metrics", flushed)

    async def shutdown(self) -> None:
        await self.export()
        for provider in (self._tracer_provider, self._meter_provider):
            if provider is not None:
                provider.shutdown()
        self._initialized = False


async def create_exporter(
    endpoint: Optional[str] = None,
    service_name: str = "vigil",
    insecure: bool = False,
) -> OTELExporter:
    """Build an exporter and initialize it."""
    exporter = OTELExporter(
        OTELConfig(endpoint=endpoint or "", service_name=service_name, insecure=insecure)
    )
    await exporter.initialize()
    return exporter
