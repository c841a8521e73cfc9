"""Tests for ReconciliationLoop use case."""

import asyncio
import logging
import pytest
from http.client import IncompleteRead
from datetime import datetime, UTC
from unittest.mock import AsyncMock, MagicMock
from vigil.application.use_cases.reconciliation_loop import (
    CycleReport,
    EntityOutcome,
    ReconciliationLoop,
)
from vigil.application.use_cases.ticket_synchronizer import TicketSynchronizer
from vigil.domain.entities.incident import Incident
from vigil.domain.errors import (
    ConflictError,
    IncidentAlreadyOpenError,
    PersistenceError,
    SourceError,
    TicketSystemError,
)
from vigil.domain.events import (
    IncidentClosedEvent,
    IncidentEscalatedEvent,
    IncidentLifecycleEvent,
    IncidentOpenedEvent,
)
from vigil.domain.value_objects.severity import Severity
from vigil.domain.value_objects.status_observation import StatusObservation
from vigil.infrastructure.event_bus import EventBus
from vigil.infrastructure.repositories.memory_incident_store import (
    InMemoryIncidentStore,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _obs(entity_id, status):
    return StatusObservation(entity_id, f"{entity_id}-name", status)


class Harness:
    """Real in-memory store and synchronizer, with spies on every call."""

    def __init__(self, **loop_kwargs):
        self.store = InMemoryIncidentStore()
        for name in ("find_open_incident", "open_incident", "close_incident"):
            setattr(self.store, name, AsyncMock(wraps=getattr(self.store, name)))

        self.tickets = AsyncMock()
        self.tickets.create_ticket = AsyncMock(side_effect=self._next_key)
        self.tickets.add_comment = AsyncMock(return_value=None)
        self.tickets.transition_ticket = AsyncMock(return_value=True)
        self._keys = 0

        self.sync = TicketSynchronizer(self.store, self.tickets)
        for name in ("on_incident_opened", "on_incident_escalated", "on_incident_closed"):
            setattr(self.sync, name, AsyncMock(wraps=getattr(self.sync, name)))

        self.events = []
        self.bus = EventBus()
        self.bus.subscribe(IncidentLifecycleEvent, self._collect)

        self.source = AsyncMock()
        self.source.fetch_snapshot = AsyncMock(return_value=[])
        self.loop = ReconciliationLoop(
            self.source, self.store, self.sync, event_bus=self.bus, **loop_kwargs
        )

    async def _next_key(self, *args):
        self._keys += 1
        return f"OPS-{self._keys}"

    async def _collect(self, event):
        self.events.append(event)

    async def observe(self, entity_id, *statuses):
        reports = []
        for status in statuses:
            reports.append(await self.loop.run_cycle([_obs(entity_id, status)]))
        return reports


class TestScenarios:
    @pytest.mark.asyncio
    async def test_down_then_recovered(self):
        h = Harness()
        await h.observe("E1", "Operational", "Operational", "Down", "Down", "Operational")

        assert h.store.open_incident.await_count == 1
        assert h.sync.on_incident_opened.await_count == 1
        assert h.sync.on_incident_escalated.await_count == 0
        assert h.store.close_incident.await_count == 1
        assert h.sync.on_incident_closed.await_count == 1
        assert await h.store.find_open_incident("E1") is None

    @pytest.mark.asyncio
    async def test_failed_ticket_creation_retried_next_cycle(self):
        h = Harness()
        h.tickets.create_ticket = AsyncMock(
            side_effect=[TicketSystemError("503"), "OPS-7"]
        )
        await h.observe("E1", "Down", "Down")

        assert h.store.open_incident.await_count == 1
        assert h.tickets.create_ticket.await_count == 2
        incident = await h.store.find_open_incident("E1")
        reference = await h.store.get_ticket_reference(incident.incident_id)
        assert reference.ticket_key == "OPS-7"
        assert len(await h.store.list_open_incidents()) == 1

    @pytest.mark.asyncio
    async def test_degraded_then_down_escalates_same_incident(self):
        h = Harness()
        reports = await h.observe("E2", "Operational", "Degraded", "Down", "Operational")

        assert [r.opened for r in reports] == [0, 1, 0, 0]
        assert [r.escalated for r in reports] == [0, 0, 1, 0]
        assert [r.closed for r in reports] == [0, 0, 0, 1]
        assert h.store.open_incident.await_count == 1
        opened = h.sync.on_incident_opened.await_args.args[0]
        escalated = h.sync.on_incident_escalated.await_args.args[0]
        assert escalated.incident_id == opened.incident_id
        assert h.store.close_incident.await_args.args[0] == opened.incident_id

    @pytest.mark.asyncio
    async def test_absent_entity_is_not_recovered(self):
        h = Harness()
        await h.loop.run_cycle([_obs("E1", "Down"), _obs("E2", "Operational")])
        incident = await h.store.find_open_incident("E1")

        await h.loop.run_cycle([_obs("E2", "Operational")])
        await h.loop.run_cycle([_obs("E1", "Down"), _obs("E2", "Operational")])

        h.store.close_incident.assert_not_awaited()
        assert await h.store.find_open_incident("E1") == incident
        assert h.store.open_incident.await_count == 1


class TestTransitions:
    @pytest.mark.asyncio
    async def test_first_observation_down_opens(self):
        h = Harness()
        [report] = await h.observe("E1", "Down")
        assert report.opened == 1
        assert h.events[0].previous_severity is Severity.UNKNOWN
        assert h.events[0].new_severity is Severity.DOWN

    @pytest.mark.asyncio
    async def test_first_observation_operational_is_quiet(self):
        h = Harness()
        [report] = await h.observe("E1", "Operational")
        assert report.unchanged == 1
        h.store.open_incident.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_operational_straight_to_down_is_one_open(self):
        h = Harness()
        await h.observe("E1", "Operational", "Down")
        assert h.store.open_incident.await_count == 1
        h.sync.on_incident_escalated.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_down_to_degraded_keeps_incident(self):
        h = Harness()
        await h.observe("E1", "Down", "Degraded")
        h.store.close_incident.assert_not_awaited()
        h.sync.on_incident_escalated.assert_not_awaited()
        assert await h.store.find_open_incident("E1") is not None

    @pytest.mark.asyncio
    async def test_unknown_mid_incident_is_lateral(self):
        h = Harness()
        await h.observe("E1", "Down", "gray", "Down")
        h.store.close_incident.assert_not_awaited()
        h.sync.on_incident_escalated.assert_not_awaited()
        assert h.loop.cached_severities["E1"] is Severity.DOWN
        entity = await h.store.get_entity("E1")
        assert entity.last_known_severity is Severity.DOWN

    @pytest.mark.asyncio
    async def test_repeated_lateral_cycles_do_not_mutate(self):
        h = Harness()
        await h.observe("E1", "Degraded", "Degraded", "Degraded", "Degraded")
        assert h.store.open_incident.await_count == 1
        h.store.close_incident.assert_not_awaited()
        assert h.tickets.create_ticket.await_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_observations_collapse_to_last(self):
        h = Harness()
        report = await h.loop.run_cycle([_obs("E1", "Down"), _obs("E1", "Operational")])
        assert report.observed == 1
        h.store.open_incident.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_events_published_in_order(self):
        h = Harness()
        await h.observe("E1", "Operational", "Degraded", "Down", "Operational")
        assert [type(e) for e in h.events] == [
            IncidentOpenedEvent,
            IncidentEscalatedEvent,
            IncidentClosedEvent,
        ]
        assert h.events[0].previous_severity is Severity.OPERATIONAL
        assert h.events[1].previous_severity is Severity.DEGRADED
        assert h.events[2].previous_severity is Severity.DOWN
        assert h.events[2].new_severity is Severity.OPERATIONAL
        assert len({e.aggregate_id for e in h.events}) == 1


class TestCache:
    @pytest.mark.asyncio
    async def test_stale_open_incident_closes_without_cache(self):
        h = Harness()
        incident = await h.store.open_incident("E1", T0)
        await h.observe("E1", "Operational")
        h.store.close_incident.assert_awaited_once()
        assert h.store.close_incident.await_args.args[0] == incident.incident_id

    @pytest.mark.asyncio
    async def test_dropped_cache_does_not_reescalate(self):
        h = Harness()
        await h.observe("E1", "Down")
        h.loop.drop_cache()
        await h.observe("E1", "Down")
        h.sync.on_incident_escalated.assert_not_awaited()
        assert h.store.open_incident.await_count == 1

    @pytest.mark.asyncio
    async def test_rebuild_cache_from_store(self):
        h = Harness()
        await h.store.upsert_entity("E1", "one", Severity.DEGRADED, T0)
        await h.store.upsert_entity("E2", "two", Severity.UNKNOWN, T0)
        assert await h.loop.rebuild_cache() == 1
        assert h.loop.cached_severities == {"E1": Severity.DEGRADED}


class TestFailures:
    @pytest.mark.asyncio
    async def test_source_failure_skips_cycle(self):
        h = Harness()
        h.source.fetch_snapshot = AsyncMock(side_effect=SourceError("HTTP 500"))
        report = await h.loop.run_cycle()
        assert report.source_failed is True
        assert report.observed == 0
        h.store.find_open_incident.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_source_timeout_skips_cycle(self):
        async def slow():
            await asyncio.sleep(1)

        h = Harness(source_timeout=0.01)
        h.source.fetch_snapshot = AsyncMock(side_effect=slow)
        report = await h.loop.run_cycle()
        assert report.source_failed is True

    @pytest.mark.asyncio
    async def test_one_entity_failure_does_not_abort_others(self):
        h = Harness()
        real_find = h.store.find_open_incident

        async def find(entity_id):
            if entity_id == "bad":
                raise PersistenceError("disk I/O error")
            return await real_find(entity_id)

        h.store.find_open_incident = AsyncMock(side_effect=find)
        report = await h.loop.run_cycle([_obs("bad", "Down"), _obs("E1", "Down")])
        assert report.failed == 1
        assert report.opened == 1
        assert report.reconciled == 1
        assert await h.store.find_open_incident("E1") is not None

    @pytest.mark.asyncio
    async def test_failed_open_is_retried_next_cycle(self):
        h = Harness()
        real_open = h.store.open_incident
        h.store.open_incident = AsyncMock(side_effect=PersistenceError("locked"))
        [first] = await h.observe("E1", "Down")
        assert first.failed == 1
        assert "E1" not in h.loop.cached_severities

        h.store.open_incident = real_open
        [second] = await h.observe("E1", "Down")
        assert second.opened == 1
        assert await h.store.find_open_incident("E1") is not None

    @pytest.mark.asyncio
    async def test_store_timeout_is_a_failure(self):
        async def slow(*args):
            await asyncio.sleep(1)

        h = Harness(call_timeout=0.01)
        h.store.open_incident = AsyncMock(side_effect=slow)
        [report] = await h.observe("E1", "Down")
        assert report.failed == 1

    @pytest.mark.asyncio
    async def test_lost_open_race_skips_entity(self):
        h = Harness()
        h.store.open_incident = AsyncMock(side_effect=IncidentAlreadyOpenError("E1"))
        [report] = await h.observe("E1", "Down")
        assert report.failed == 1
        h.sync.on_incident_opened.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_two_open_incidents_logged_critical(self, caplog):
        h = Harness()
        h.store.force_incident(Incident("10", "E1", T0))
        h.store.force_incident(Incident("11", "E1", T0))
        with caplog.at_level(logging.CRITICAL):
            [report] = await h.observe("E1", "Operational")
        assert report.failed == 1
        h.store.close_incident.assert_not_awaited()
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)
        assert len(await h.store.list_open_incidents()) == 2

    @pytest.mark.asyncio
    async def test_ticket_conflict_keeps_transition(self, caplog):
        h = Harness()
        h.store.set_ticket_reference = AsyncMock(side_effect=ConflictError("bound"))
        with caplog.at_level(logging.CRITICAL):
            [report] = await h.observe("E1", "Down")
        assert report.opened == 1
        assert await h.store.find_open_incident("E1") is not None
        assert "Duplicate ticket binding" in caplog.text

    @pytest.mark.asyncio
    async def test_remote_failure_never_rolls_back_close(self):
        h = Harness()
        await h.observe("E1", "Down")
        h.tickets.add_comment = AsyncMock(side_effect=TicketSystemError("503"))
        [report] = await h.observe("E1", "Operational")
        assert report.closed == 1
        assert await h.store.find_open_incident("E1") is None

    @pytest.mark.asyncio
    async def test_unexpected_ticket_error_still_publishes_close(self):
        h = Harness()
        await h.observe("E1", "Operational", "Down")
        h.tickets.add_comment = AsyncMock(side_effect=IncompleteRead(b"partial"))
        reports = await h.observe("E1", "Operational", "Operational", "Operational")
        assert reports[0].closed == 1
        assert reports[0].failed == 0
        assert await h.store.find_open_incident("E1") is None
        assert h.loop.cached_severities["E1"] is Severity.OPERATIONAL
        closed = [e for e in h.events if isinstance(e, IncidentClosedEvent)]
        assert len(closed) == 1
        assert closed[0].previous_severity is Severity.DOWN

    @pytest.mark.asyncio
    async def test_unexpected_ticket_error_still_publishes_open(self):
        h = Harness()
        h.tickets.create_ticket = AsyncMock(side_effect=RuntimeError("client bug"))
        [report] = await h.observe("E1", "Down")
        assert report.opened == 1
        assert report.failed == 0
        assert [type(e) for e in h.events] == [IncidentOpenedEvent]

    @pytest.mark.asyncio
    async def test_failing_notification_handler_does_not_fail_entity(self):
        h = Harness()

        async def broken(event):
            raise RuntimeError("sink down")

        h.bus.subscribe(IncidentOpenedEvent, broken)
        [report] = await h.observe("E1", "Down")
        assert report.opened == 1
        assert report.failed == 0


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        h = Harness(max_concurrency=2)
        in_flight = 0
        peak = 0
        real_find = h.store.find_open_incident

        async def find(entity_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await real_find(entity_id)

        h.store.find_open_incident = AsyncMock(side_effect=find)
        report = await h.loop.run_cycle([_obs(f"E{i}", "Operational") for i in range(6)])
        assert report.observed == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_overlapping_cycles_serialize_per_entity(self):
        h = Harness()
        real_find = h.store.find_open_incident

        async def find(entity_id):
            await asyncio.sleep(0.01)
            return await real_find(entity_id)

        h.store.find_open_incident = AsyncMock(side_effect=find)
        first, second = await asyncio.gather(
            h.loop.run_cycle([_obs("E1", "Down")]),
            h.loop.run_cycle([_obs("E1", "Down")]),
        )
        assert first.failed == second.failed == 0
        assert first.opened + second.opened == 1
        assert len(await h.store.list_open_incidents()) == 1

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            ReconciliationLoop(AsyncMock(), InMemoryIncidentStore(), MagicMock(), max_concurrency=0)


class TestExecute:
    @pytest.mark.asyncio
    async def test_run_once(self):
        h = Harness()
        h.source.fetch_snapshot = AsyncMock(return_value=[_obs("E1", "Down")])
        await h.loop.execute(interval_seconds=1, run_once=True)
        h.source.fetch_snapshot.assert_awaited_once()
        assert await h.store.find_open_incident("E1") is not None

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self):
        h = Harness()
        task = asyncio.create_task(h.loop.execute(interval_seconds=60))
        await asyncio.sleep(0.05)
        h.loop.stop()
        await asyncio.wait_for(task, timeout=1)
        assert h.source.fetch_snapshot.await_count == 1

    @pytest.mark.asyncio
    async def test_repeats_until_stopped(self):
        h = Harness()
        task = asyncio.create_task(h.loop.execute(interval_seconds=0.01))
        await asyncio.sleep(0.1)
        h.loop.stop()
        await asyncio.wait_for(task, timeout=1)
        assert h.source.fetch_snapshot.await_count > 1

    @pytest.mark.asyncio
    async def test_telemetry_recorded(self):
        telemetry = MagicMock()
        h = Harness(telemetry=telemetry)
        await h.observe("E1", "Down")
        telemetry.record_cycle.assert_called_once()
        duration, entities, failures = telemetry.record_cycle.call_args.args
        assert (entities, failures) == (1, 0)
        telemetry.record_lifecycle.assert_called_once_with("opened", "E1", "Down")
        telemetry.end_span.assert_called_once_with(telemetry.start_span.return_value)


class TestCycleReport:
    def test_record_and_summary(self):
        report = CycleReport(cycle=3, observed=2)
        report.record(EntityOutcome.OPENED)
        report.record(EntityOutcome.FAILED)
        assert report.opened == 1
        assert report.reconciled == 1
        assert "cycle 3" in report.summary()

    def test_source_failed_summary(self):
        assert "source unavailable" in CycleReport(cycle=1, source_failed=True).summary()
