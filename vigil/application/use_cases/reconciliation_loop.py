"""
Reconciliation Loop Use Case

Architectural Intent:
- The recurring control loop: fetch a status snapshot, then for every
  entity compare the observed severity with the previous one and drive
  the incident store, ticket synchronizer and event bus accordingly
- The incident store is the source of truth; the in-memory
  last-severity cache is advisory and can be dropped or rebuilt any time

Concurrency:
- Entities in one cycle are reconciled concurrently, bounded by a semaphore
- A per-entity lock serializes overlapping cycles for the same entity
- The open-incident lookup always precedes the decision, and at most one
  mutation (open, close) is issued per entity per cycle

Failure Handling:
- A source failure skips the cycle; absent entities are never treated as
  recovered
- Store failures on an entity leave its cache entry untouched, so the
  next cycle retries the transition
- Invariant violations are logged at CRITICAL and skip the entity
- No entity failure aborts the cycle for other entities
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Callable, Iterable, Optional

from vigil.application.timeouts import bounded
from vigil.application.use_cases.ticket_synchronizer import TicketSynchronizer
from vigil.domain.entities.incident import Incident
from vigil.domain.errors import (
    ConflictError,
    IncidentAlreadyOpenError,
    InvariantViolationError,
    PersistenceError,
    SourceError,
    TransientError,
)
from vigil.domain.events.incident_events import (
    IncidentClosedEvent,
    IncidentEscalatedEvent,
    IncidentLifecycleEvent,
    IncidentOpenedEvent,
)
from vigil.domain.ports.event_bus_port import EventBusPort
from vigil.domain.ports.incident_store_port import IncidentStorePort
from vigil.domain.ports.status_source_port import StatusSourcePort
from vigil.domain.services.lifecycle import (
    LifecycleAction,
    decide,
    effective_previous,
)
from vigil.domain.value_objects.severity import Severity
from vigil.domain.value_objects.status_observation import (
    StatusObservation,
    collapse_snapshot,
)

logger = logging.getLogger(__name__)


class EntityOutcome(Enum):
    OPENED = "opened"
    ESCALATED = "escalated"
    CLOSED = "closed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class CycleReport:
    cycle: int
    observed: int = 0
    opened: int = 0
    escalated: int = 0
    closed: int = 0
    unchanged: int = 0
    failed: int = 0
    source_failed: bool = False
    duration_ms: float = 0.0

    def record(self, outcome: EntityOutcome) -> None:
        field_name = outcome.value
        setattr(self, field_name, getattr(self, field_name) + 1)

    @property
    def reconciled(self) -> int:
        return self.observed - self.failed

    def summary(self) -> str:
        if self.source_failed:
            return f"cycle {self.cycle}: source unavailable"
        return (
            f"cycle {self.cycle}: {self.observed} observed, {self.opened} opened, "
            f"{self.escalated} escalated, {self.closed} closed, "
            f"{self.failed} failed ({self.duration_ms:.0f} ms)"
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReconciliationLoop:
    def __init__(
        self,
        source: StatusSourcePort,
        store: IncidentStorePort,
        synchronizer: TicketSynchronizer,
        event_bus: Optional[EventBusPort] = None,
        telemetry=None,
        max_concurrency: int = 8,
        call_timeout: float = 10.0,
        source_timeout: float = 60.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.source = source
        self.store = store
        self.synchronizer = synchronizer
        self.event_bus = event_bus
        self.telemetry = telemetry
        self._call_timeout = call_timeout
        self._source_timeout = source_timeout
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._entity_locks: dict[str, asyncio.Lock] = {}
        self._last_severity: dict[str, Severity] = {}
        self._stop_requested = asyncio.Event()
        self._cycle = 0

    # -- Cache ---------------------------------------------------------------

    @property
    def cached_severities(self) -> dict[str, Severity]:
        return dict(self._last_severity)

    def drop_cache(self) -> None:
        self._last_severity.clear()
        self.synchronizer.forget()

    async def rebuild_cache(self) -> int:
        """Reload last-known severities from the store. Returns entries loaded."""
        entities = await self._stored(self.store.list_entities(), "list_entities")
        self._last_severity = {
            e.entity_id: e.last_known_severity
            for e in entities
            if e.last_known_severity is not Severity.UNKNOWN
        }
        logger.info("Severity cache rebuilt with %d entities", len(self._last_severity))
        return len(self._last_severity)

    # -- Control -------------------------------------------------------------

    def stop(self) -> None:
        """Ask execute() to return after the in-flight cycle."""
        self._stop_requested.set()

    async def execute(self, interval_seconds: float = 30, run_once: bool = False):
        self._stop_requested.clear()
        try:
            await self.rebuild_cache()
        except PersistenceError as e:
            logger.warning("Starting with an empty severity cache: %s", e)

        while True:
            report = await self.run_cycle()
            log = logger.warning if report.failed or report.source_failed else logger.info
            log("Reconciliation %s", report.summary())

            if run_once or self._stop_requested.is_set():
                break
            try:
                await asyncio.wait_for(
                    self._stop_requested.wait(), timeout=interval_seconds
                )
            except TimeoutError:
                continue
            break

        logger.info("Reconciliation loop stopped after %d cycles", self._cycle)

    # -- Cycle ---------------------------------------------------------------

    async def run_cycle(
        self, snapshot: Optional[Iterable[StatusObservation]] = None
    ) -> CycleReport:
        """Reconcile one snapshot. Fetches from the source when none is given."""
        self._cycle += 1
        report = CycleReport(cycle=self._cycle)
        started = time.monotonic()
        span = self.telemetry.start_span("vigil.cycle") if self.telemetry else None

        try:
            if snapshot is None:
                try:
                    snapshot = await bounded(
                        self.source.fetch_snapshot(),
                        self._source_timeout,
                        SourceError,
                        "fetch_snapshot",
                    )
                except SourceError as e:
                    logger.error("Status snapshot unavailable: %s", e)
                    report.source_failed = True
                    return report
                except Exception:
                    logger.exception("Status source raised unexpectedly")
                    report.source_failed = True
                    return report

            observations = collapse_snapshot(snapshot)
            report.observed = len(observations)
            outcomes = await asyncio.gather(
                *(self._reconcile_guarded(o) for o in observations)
            )
            for outcome in outcomes:
                report.record(outcome)
            return report
        finally:
            report.duration_ms = (time.monotonic() - started) * 1000
            if self.telemetry:
                self.telemetry.record_cycle(
                    report.duration_ms, report.observed, report.failed
                )
                self.telemetry.end_span(span)

    async def _reconcile_guarded(self, observation: StatusObservation) -> EntityOutcome:
        entity_id = observation.entity_id
        lock = self._entity_locks.setdefault(entity_id, asyncio.Lock())
        context = {"cycle": self._cycle, "entity_id": entity_id}
        async with lock, self._semaphore:
            try:
                return await self._reconcile_entity(observation)
            except IncidentAlreadyOpenError as e:
                logger.warning("Skipping %s this cycle: %s", entity_id, e, extra=context)
            except InvariantViolationError as e:
                logger.critical(
                    "Invariant violated for %s: %s", entity_id, e, extra=context
                )
            except ConflictError as e:
                logger.critical(
                    "Conflicting store write for %s: %s", entity_id, e, extra=context
                )
            except PersistenceError as e:
                logger.error(
                    "Store failure for %s, transition retried next cycle: %s",
                    entity_id,
                    e,
                    extra=context,
                )
            except TransientError as e:
                logger.warning(
                    "Transient failure for %s: %s", entity_id, e, extra=context
                )
            except Exception:
                logger.exception(
                    "Unexpected error reconciling %s", entity_id, extra=context
                )
            return EntityOutcome.FAILED

    async def _reconcile_entity(self, observation: StatusObservation) -> EntityOutcome:
        entity_id = observation.entity_id
        name = observation.entity_name or entity_id
        observed = observation.severity

        incident = await self._stored(
            self.store.find_open_incident(entity_id), "find_open_incident"
        )
        previous = await self._previous_severity(entity_id)
        prior = effective_previous(previous, incident is not None)
        action = decide(previous, observed, incident is not None)
        now = self._clock()
        outcome = EntityOutcome.UNCHANGED
        event: Optional[type[IncidentLifecycleEvent]] = None

        if action is LifecycleAction.OPEN:
            incident = await self._stored(
                self.store.open_incident(entity_id, now), "open_incident"
            )
            logger.info(
                "Opened incident %s for %s (%s -> %s)",
                incident.incident_id,
                name,
                previous,
                observed,
                extra={"entity_id": entity_id, "incident_id": incident.incident_id},
            )
            outcome = EntityOutcome.OPENED
            event = IncidentOpenedEvent
            await self._synchronize(
                self.synchronizer.on_incident_opened(incident, name, observed),
                incident,
            )

        elif action is LifecycleAction.ESCALATE:
            logger.info(
                "Escalated incident %s for %s (%s -> %s)",
                incident.incident_id,
                name,
                prior,
                observed,
                extra={"entity_id": entity_id, "incident_id": incident.incident_id},
            )
            outcome = EntityOutcome.ESCALATED
            event = IncidentEscalatedEvent
            await self._synchronize(
                self.synchronizer.on_incident_escalated(
                    incident, name, observed, prior
                ),
                incident,
            )

        elif action is LifecycleAction.CLOSE:
            await self._stored(
                self.store.close_incident(incident.incident_id, now), "close_incident"
            )
            logger.info(
                "Closed incident %s for %s",
                incident.incident_id,
                name,
                extra={"entity_id": entity_id, "incident_id": incident.incident_id},
            )
            outcome = EntityOutcome.CLOSED
            event = IncidentClosedEvent
            await self._synchronize(
                self.synchronizer.on_incident_closed(incident, name), incident
            )

        elif action is LifecycleAction.RETAIN:
            severity = observed if observed.is_impaired else prior
            await self._synchronize(
                self.synchronizer.ensure_ticket(incident, name, severity), incident
            )

        if observed is not Severity.UNKNOWN:
            self._last_severity[entity_id] = observed

        await self._record_entity(observation, observed)

        if event is not None:
            await self._publish(
                event(
                    aggregate_id=incident.incident_id,
                    entity_id=entity_id,
                    entity_name=name,
                    previous_severity=prior,
                    new_severity=observed,
                )
            )
        return outcome

    # -- Helpers -------------------------------------------------------------

    async def _stored(self, awaitable, what: str):
        return await bounded(awaitable, self._call_timeout, PersistenceError, what)

    async def _previous_severity(self, entity_id: str) -> Severity:
        cached = self._last_severity.get(entity_id)
        if cached is not None:
            return cached
        entity = await self._stored(self.store.get_entity(entity_id), "get_entity")
        if entity is None or entity.last_known_severity is Severity.UNKNOWN:
            return Severity.UNKNOWN
        self._last_severity[entity_id] = entity.last_known_severity
        return entity.last_known_severity

    async def _synchronize(self, awaitable, incident: Incident) -> None:
        """Run a ticket step after the incident transition is already stored."""
        try:
            await awaitable
        except ConflictError as e:
            logger.critical(
                "Duplicate ticket binding for incident %s: %s",
                incident.incident_id,
                e,
                extra={"incident_id": incident.incident_id},
            )
        except PersistenceError as e:
            logger.error(
                "Ticket binding for incident %s not stored, retried next cycle: %s",
                incident.incident_id,
                e,
            )
        except TransientError as e:
            logger.warning(
                "Ticket step for incident %s failed: %s", incident.incident_id, e
            )
        except Exception:
            logger.exception(
                "Ticket step for incident %s raised unexpectedly",
                incident.incident_id,
                extra={"incident_id": incident.incident_id},
            )

    async def _record_entity(
        self, observation: StatusObservation, observed: Severity
    ) -> None:
        try:
            await self._stored(
                self.store.upsert_entity(
                    observation.entity_id,
                    observation.entity_name,
                    observed,
                    self._clock(),
                ),
                "upsert_entity",
            )
        except PersistenceError as e:
            logger.error(
                "Entity record for %s not updated: %s", observation.entity_id, e
            )

    async def _publish(self, event: IncidentLifecycleEvent) -> None:
        if self.telemetry:
            self.telemetry.record_lifecycle(
                event.event_kind, event.entity_id, event.new_severity.value
            )
        if self.event_bus is not None:
            await self.event_bus.publish([event])
