"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the vigil application
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Factory function creates and wires all dependencies from VigilConfig
- Adapters without credentials run in stub mode, so a bare config still
  gives a runnable loop
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from vigil.application.use_cases.notification_fanout import NotificationFanout
from vigil.application.use_cases.reconciliation_loop import ReconciliationLoop
from vigil.application.use_cases.ticket_synchronizer import TicketSynchronizer
from vigil.domain.ports.status_source_port import StatusSourcePort
from vigil.infrastructure.adapters.jira_adapter import JiraAdapter
from vigil.infrastructure.adapters.kafka_adapter import KafkaAdapter
from vigil.infrastructure.adapters.newrelic_adapter import NewRelicSource
from vigil.infrastructure.adapters.simulator_adapter import SimulatedSource
from vigil.infrastructure.adapters.slack_adapter import SlackAdapter, load_webhooks
from vigil.infrastructure.config import VigilConfig, read_secret
from vigil.infrastructure.event_bus import EventBus
from vigil.infrastructure.repositories.memory_incident_store import (
    InMemoryIncidentStore,
)
from vigil.infrastructure.repositories.sqlite_incident_store import (
    SQLiteIncidentStore,
)
from vigil.infrastructure.telemetry.otel_exporter import OTELConfig, OTELExporter

logger = logging.getLogger(__name__)


@dataclass
class VigilContainer:
    """DI container holding all wired dependencies."""

    config: VigilConfig
    store: Union[SQLiteIncidentStore, InMemoryIncidentStore]
    source: StatusSourcePort
    jira_adapter: JiraAdapter
    slack_adapter: SlackAdapter
    kafka_adapter: KafkaAdapter
    event_bus: EventBus
    telemetry: OTELExporter
    synchronizer: TicketSynchronizer
    notifications: NotificationFanout
    reconciliation_loop: ReconciliationLoop

    def close(self) -> None:
        if isinstance(self.store, SQLiteIncidentStore):
            self.store.close()

    async def aclose(self) -> None:
        """Stop network producers, then release the store."""
        try:
            await self.kafka_adapter.close()
        finally:
            self.close()


def _create_store(config: VigilConfig):
    if config.store.backend == "memory":
        return InMemoryIncidentStore()
    if config.store.backend != "sqlite":
        raise ValueError(f"Unknown store backend: {config.store.backend!r}")
    store = SQLiteIncidentStore(config.store.db_path)
    store.connect()
    return store


def _create_source(config: VigilConfig) -> StatusSourcePort:
    if config.source.kind == "newrelic":
        return NewRelicSource(
            api_key=read_secret(config.newrelic.api_key, config.newrelic.api_key_file),
            api_url=config.newrelic.api_url,
            timeout=config.loop.call_timeout_seconds,
        )
    if config.source.kind != "simulator":
        raise ValueError(f"Unknown status source: {config.source.kind!r}")
    return SimulatedSource(seed=config.source.seed or None)


def _create_slack(config: VigilConfig) -> SlackAdapter:
    slack = config.slack
    if slack.webhooks_path:
        webhooks = load_webhooks(slack.webhooks_path)
    elif slack.webhook_url:
        webhooks = {slack.webhook_key: slack.webhook_url}
    else:
        webhooks = {}
    return SlackAdapter(
        webhooks=webhooks,
        webhook_key=slack.webhook_key,
        timeout=config.loop.call_timeout_seconds,
    )


def create_container(config: Optional[VigilConfig] = None) -> VigilContainer:
    """Create and wire all dependencies."""
    config = config or VigilConfig()
    timeout = config.loop.call_timeout_seconds

    store = _create_store(config)
    source = _create_source(config)
    jira_adapter = JiraAdapter(
        base_url=config.jira.base_url,
        email=config.jira.email,
        api_token=read_secret(config.jira.api_token, config.jira.api_token_file),
        project_key=config.jira.project_key,
        issue_type=config.jira.issue_type,
        timeout=timeout,
    )
    slack_adapter = _create_slack(config)
    kafka_adapter = KafkaAdapter(
        bootstrap_servers=config.kafka.bootstrap_servers,
        topic=config.kafka.topic,
        client_id=config.kafka.client_id,
        timeout=timeout,
    )
    event_bus = EventBus()
    telemetry = OTELExporter(
        OTELConfig(
            endpoint=config.telemetry.endpoint,
            insecure=config.telemetry.insecure,
        )
    )

    synchronizer = TicketSynchronizer(
        store,
        jira_adapter,
        call_timeout=timeout,
        close_transition=config.jira.close_transition,
    )
    notifications = NotificationFanout(
        [slack_adapter, kafka_adapter], call_timeout=timeout
    )
    notifications.register(event_bus)

    reconciliation_loop = ReconciliationLoop(
        source,
        store,
        synchronizer,
        event_bus=event_bus,
        telemetry=telemetry,
        max_concurrency=config.loop.max_concurrency,
        call_timeout=timeout,
        source_timeout=config.loop.source_timeout_seconds,
    )

    if jira_adapter.is_stub:
        logger.info("Jira not configured, tickets are kept in memory")
    if slack_adapter.is_stub:
        logger.info("Slack not configured, notifications are kept in memory")
    if kafka_adapter.is_stub:
        logger.info("Kafka not configured, lifecycle messages are kept in memory")

    return VigilContainer(
        config=config,
        store=store,
        source=source,
        jira_adapter=jira_adapter,
        slack_adapter=slack_adapter,
        kafka_adapter=kafka_adapter,
        event_bus=event_bus,
        telemetry=telemetry,
        synchronizer=synchronizer,
        notifications=notifications,
        reconciliation_loop=reconciliation_loop,
    )
