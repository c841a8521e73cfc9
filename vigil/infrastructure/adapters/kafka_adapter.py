"""
Kafka Notification Adapter

Architectural Intent:
- Implements NotificationPort by producing lifecycle messages to a Kafka
  topic, so downstream consumers see every open/escalate/close
- Stub mode records messages in memory when no bootstrap servers are set

Design Decisions:
- aiokafka producer, started lazily on the first message and stopped
  (flushing pending sends) by close()
- Message key is the entity name, so one entity's messages stay ordered
  within a partition
- acks="all" with a short retry backoff; a send that still fails raises
  NotificationError and the fan-out drops it
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, UTC
from typing import Any, Callable, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from vigil.domain.errors import NotificationError
from vigil.domain.services.message_templates import chat_message
from vigil.domain.value_objects.severity import Severity

logger = logging.getLogger(__name__)


class KafkaAdapter:
    """Kafka topic notification adapter."""

    def __init__(
        self,
        bootstrap_servers: str = "",
        topic: str = "Monarch",
        client_id: str = "vigil",
        timeout: float = 10.0,
        producer_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._client_id = client_id
        self._timeout = timeout
        self._producer_factory = producer_factory or AIOKafkaProducer
        self._producer: Any = None
        self._start_lock = asyncio.Lock()
        self._messages: dict[str, dict] = {}

    @property
    def is_stub(self) -> bool:
        return not self._bootstrap_servers

    @property
    def topic(self) -> str:
        return self._topic

    async def notify(
        self,
        entity_name: str,
        previous_severity: Severity,
        new_severity: Severity,
        event_kind: str,
    ) -> None:
        record = {
            "entity_name": entity_name,
            "event_kind": event_kind,
            "previous_severity": previous_severity.value,
            "new_severity": new_severity.value,
            "text": chat_message(entity_name, previous_severity, new_severity, event_kind),
            "sent_at": datetime.now(UTC).isoformat(),
        }
        await self.publish(entity_name, record)

    async def publish(self, key: str, record: dict) -> None:
        """Produce one JSON record to the configured topic."""
        if self.is_stub:
            message_id = f"KAFKA-{uuid.uuid4().hex[:8].upper()}"
            self._messages[message_id] = {"key": key, "topic": self._topic, **record}
            logger.info("Kafka publish (stub): %s -> %s", message_id, self._topic)
            return

        producer = await self._started_producer()
        try:
            await producer.send_and_wait(
                self._topic,
                key=key.encode("utf-8"),
                value=json.dumps(record).encode("utf-8"),
            )
        except KafkaError as e:
            raise NotificationError(f"Kafka delivery to {self._topic} failed: {e}") from e
        logger.debug("Kafka message for %s delivered to %s", key, self._topic)

    async def _started_producer(self) -> Any:
        async with self._start_lock:
            if self._producer is not None:
                return self._producer
            producer = self._producer_factory(
                bootstrap_servers=self._bootstrap_servers,
                client_id=self._client_id,
                acks="all",
                retry_backoff_ms=100,
                request_timeout_ms=int(self._timeout * 1000),
            )
            try:
                await producer.start()
            except KafkaError as e:
                raise NotificationError(
                    f"Cannot connect to Kafka at {self._bootstrap_servers}: {e}"
                ) from e
            self._producer = producer
            return producer

    async def close(self) -> None:
        """Flush pending sends and stop the producer."""
        producer, self._producer = self._producer, None
        if producer is None:
            return
        try:
            await producer.stop()
        except KafkaError as e:
            logger.warning("Kafka producer did not stop cleanly: %s", e)

    @property
    def sent_messages(self) -> list[dict]:
        """Messages recorded in stub mode (for testing)."""
        return list(self._messages.values())
