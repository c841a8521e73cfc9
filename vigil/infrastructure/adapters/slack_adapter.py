"""
Slack Notification Adapter

Architectural Intent:
- Implements NotificationPort for Slack incoming webhooks
- Uses stdlib urllib for the HTTP layer (no external dependencies)
- Stub mode records messages in memory when no webhook is configured

Design Decisions:
- Webhooks are a name -> URL map so one deployment can target several
  channels; "default" is used unless another key is configured
- The map can be loaded from a JSON file mounted as a container secret
- Payload is Slack's minimal {"text": ...} form
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

from vigil.domain.errors import NotificationError
from vigil.domain.services.message_templates import chat_message
from vigil.domain.value_objects.severity import Severity
from vigil.infrastructure.adapters.http_client import request_json

logger = logging.getLogger(__name__)


def load_webhooks(path: str) -> dict[str, str]:
    """Load a {"name": "https://hooks.slack.com/..."} map from a JSON file."""
    try:
        data = json.loads(Path(path).read_text())
    except FileNotFoundError:
        raise NotificationError(f"Slack webhook config not found: {path}")
    except json.JSONDecodeError as e:
        raise NotificationError(f"Invalid Slack webhook config {path}: {e}")
    if not isinstance(data, dict):
        raise NotificationError(f"Slack webhook config {path} must be a JSON object")
    return {str(k): str(v) for k, v in data.items()}


class SlackAdapter:
    """Slack webhook notification adapter."""

    def __init__(
        self,
        webhooks: Optional[dict[str, str]] = None,
        webhook_key: str = "default",
        timeout: float = 10.0,
    ) -> None:
        """Initialize Slack adapter.

        Args:
            webhooks: Channel name to incoming-webhook URL
            webhook_key: Which channel lifecycle notifications go to
            timeout: Per-request timeout in seconds
        """
        self._webhooks = dict(webhooks or {})
        self._webhook_key = webhook_key
        self._timeout = timeout
        self._messages: dict[str, dict] = {}

    @property
    def is_stub(self) -> bool:
        return not self._webhooks

    async def notify(
        self,
        entity_name: str,
        previous_severity: Severity,
        new_severity: Severity,
        event_kind: str,
    ) -> None:
        text = chat_message(entity_name, previous_severity, new_severity, event_kind)
        await self.send_message(text, self._webhook_key)

    async def send_message(self, text: str, webhook_key: str = "default") -> None:
        """Post a message to the named webhook."""
        if self.is_stub:
            message_id = f"SLACK-{uuid.uuid4().hex[:8].upper()}"
            self._messages[message_id] = {
                "message_id": message_id,
                "webhook_key": webhook_key,
                "text": text,
            }
            logger.info("Slack send_message (stub): %s - %s", message_id, text)
            return

        webhook_url = self._webhooks.get(webhook_key)
        if webhook_url is None:
            raise NotificationError(f"Webhook key {webhook_key!r} not found in config")

        await request_json(
            "POST",
            webhook_url,
            payload={"text": text},
            timeout=self._timeout,
            error_cls=NotificationError,
        )
        logger.debug("Slack message delivered to %s", webhook_key)

    @property
    def sent_messages(self) -> list[dict]:
        """Messages recorded in stub mode (for testing)."""
        return list(self._messages.values())
