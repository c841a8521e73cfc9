"""
Jira Ticket Adapter

Architectural Intent:
- Implements TicketSystemPort for Jira Cloud (REST API v3)
- Uses stdlib urllib for the HTTP layer (no external dependencies)
- Falls back to a stub that logs calls when no base URL is configured

Design Decisions:
- Basic auth header built from "email:api_token"
- Issue descriptions and comments use Atlassian Document Format
- Stub mode generates JIRA- prefixed keys and keeps tickets in memory,
  so the whole loop can run without a Jira instance
"""

import base64
import logging
import uuid
from datetime import datetime, UTC
from typing import Optional

from vigil.domain.errors import TicketSystemError
from vigil.domain.services import message_templates as templates
from vigil.domain.value_objects.severity import Severity
from vigil.infrastructure.adapters.http_client import request_json

logger = logging.getLogger(__name__)


class JiraAdapter:
    """Jira ticket adapter."""

    def __init__(
        self,
        base_url: str = "",
        email: str = "",
        api_token: str = "",
        project_key: str = "OPS",
        issue_type: str = "Incident",
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._project_key = project_key
        self._issue_type = issue_type
        self._timeout = timeout
        credentials = base64.b64encode(f"{email}:{api_token}".encode("utf-8"))
        self._auth_header = f"Basic {credentials.decode('ascii')}"
        self._tickets: dict[str, dict] = {}

    @property
    def is_stub(self) -> bool:
        return not self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self._auth_header,
            "Accept": "application/json",
        }

    def build_issue_payload(
        self, entity_name: str, severity: Severity, incident_id: str
    ) -> dict:
        return {
            "fields": {
                "project": {"key": self._project_key},
                "summary": templates.ticket_summary(entity_name, severity),
                "description": templates.ticket_description(
                    entity_name, severity, incident_id, datetime.now(UTC)
                ),
                "issuetype": {"name": self._issue_type},
                "priority": {"name": templates.priority_for(severity)},
                "labels": templates.ticket_labels(severity),
            }
        }

    async def create_ticket(
        self, entity_name: str, severity: Severity, incident_id: str
    ) -> str:
        payload = self.build_issue_payload(entity_name, severity, incident_id)

        if self.is_stub:
            ticket_key = f"JIRA-{uuid.uuid4().hex[:8].upper()}"
            self._tickets[ticket_key] = {
                "ticket_key": ticket_key,
                "payload": payload,
                "comments": [],
                "status": "Open",
            }
            logger.info(
                "Jira create_ticket (stub): %s - %s [incident=%s]",
                ticket_key,
                payload["fields"]["summary"],
                incident_id,
            )
            return ticket_key

        response = await request_json(
            "POST",
            f"{self._base_url}/rest/api/3/issue",
            headers=self._headers(),
            payload=payload,
            timeout=self._timeout,
            error_cls=TicketSystemError,
        )
        body = response.body if isinstance(response.body, dict) else {}
        ticket_key = body.get("key")
        if not ticket_key:
            raise TicketSystemError("Jira create issue response has no issue key")
        logger.info("Created Jira issue %s for incident %s", ticket_key, incident_id)
        return ticket_key

    async def add_comment(self, ticket_key: str, text: str) -> None:
        if self.is_stub:
            ticket = self._tickets.get(ticket_key)
            if ticket is None:
                raise TicketSystemError(f"Unknown Jira issue {ticket_key}")
            ticket["comments"].append(text)
            logger.info("Jira add_comment (stub): %s", ticket_key)
            return

        await request_json(
            "POST",
            f"{self._base_url}/rest/api/3/issue/{ticket_key}/comment",
            headers=self._headers(),
            payload={"body": templates.adf_document(templates.adf_paragraph(text))},
            timeout=self._timeout,
            error_cls=TicketSystemError,
        )
        logger.info("Added comment to Jira issue %s", ticket_key)

    async def transition_ticket(self, ticket_key: str, transition_name: str) -> bool:
        if self.is_stub:
            ticket = self._tickets.get(ticket_key)
            if ticket is None:
                raise TicketSystemError(f"Unknown Jira issue {ticket_key}")
            ticket["status"] = transition_name
            logger.info(
                "Jira transition_ticket (stub): %s -> %s", ticket_key, transition_name
            )
            return True

        transition_id = await self._find_transition_id(ticket_key, transition_name)
        if transition_id is None:
            logger.warning(
                "Transition %r not available for Jira issue %s",
                transition_name,
                ticket_key,
            )
            return False

        await request_json(
            "POST",
            f"{self._base_url}/rest/api/3/issue/{ticket_key}/transitions",
            headers=self._headers(),
            payload={"transition": {"id": transition_id}},
            timeout=self._timeout,
            error_cls=TicketSystemError,
        )
        logger.info("Transitioned Jira issue %s to %s", ticket_key, transition_name)
        return True

    async def _find_transition_id(
        self, ticket_key: str, transition_name: str
    ) -> Optional[str]:
        response = await request_json(
            "GET",
            f"{self._base_url}/rest/api/3/issue/{ticket_key}/transitions",
            headers=self._headers(),
            timeout=self._timeout,
            error_cls=TicketSystemError,
        )
        body = response.body if isinstance(response.body, dict) else {}
        for transition in body.get("transitions", []):
            if str(transition.get("name", "")).lower() == transition_name.lower():
                return str(transition.get("id"))
        return None

    async def get_ticket(self, ticket_key: str) -> Optional[dict]:
        """Fetch summary, status and priority of an issue."""
        if self.is_stub:
            return self._tickets.get(ticket_key)

        response = await request_json(
            "GET",
            f"{self._base_url}/rest/api/3/issue/{ticket_key}",
            headers=self._headers(),
            timeout=self._timeout,
            error_cls=TicketSystemError,
        )
        body = response.body if isinstance(response.body, dict) else {}
        fields = body.get("fields") or {}
        return {
            "ticket_key": ticket_key,
            "summary": fields.get("summary", ""),
            "status": (fields.get("status") or {}).get("name", ""),
            "priority": (fields.get("priority") or {}).get("name", "Medium"),
        }
