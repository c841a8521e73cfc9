"""
Message Templates

Architectural Intent:
- Renders ticket summaries, ADF descriptions, ticket comments and chat text
- Keeps wording in one place so adapters stay transport-only

Design Decisions:
- Timestamps are passed in, never read from the clock here
- Ticket descriptions use the Atlassian Document Format (ADF) dict shape
  expected by Jira REST API v3
"""

from datetime import datetime
from typing import Any, Optional

from vigil.domain.value_objects.severity import Severity

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
SIGNATURE = "_This update was automatically posted by the vigil monitoring service._"

_ICONS = {
    Severity.DOWN: "\U0001F534",
    Severity.DEGRADED: "\U0001F7E1",
    Severity.OPERATIONAL: "\U0001F7E2",
}


def status_icon(severity: Severity) -> str:
    return _ICONS.get(severity, "⚪")


def priority_for(severity: Severity) -> str:
    return "High" if severity is Severity.DOWN else "Medium"


def ticket_labels(severity: Severity) -> list[str]:
    return ["vigil-incident", "automated", f"status-{severity.value.lower()}"]


def ticket_summary(entity_name: str, severity: Severity) -> str:
    return f"{status_icon(severity)} {entity_name} - Status: {severity}"


# -- ADF helpers -------------------------------------------------------------


def adf_text(text: str, *marks: str) -> dict[str, Any]:
    node: dict[str, Any] = {"type": "text", "text": text}
    if marks:
        node["marks"] = [{"type": m} for m in marks]
    return node


def adf_heading(text: str, level: int = 2) -> dict[str, Any]:
    return {
        "type": "heading",
        "attrs": {"level": level},
        "content": [adf_text(text)],
    }


def adf_paragraph(text: str, *marks: str) -> dict[str, Any]:
    return {"type": "paragraph", "content": [adf_text(text, *marks)]}


def adf_labeled_field(label: str, value: str) -> dict[str, Any]:
    return {
        "type": "paragraph",
        "content": [adf_text(f"{label}: ", "strong"), adf_text(value)],
    }


def adf_document(*blocks: dict[str, Any]) -> dict[str, Any]:
    return {"type": "doc", "version": 1, "content": list(blocks)}


def ticket_description(
    entity_name: str,
    severity: Severity,
    incident_id: str,
    detected_at: datetime,
) -> dict[str, Any]:
    icon = status_icon(severity)
    return adf_document(
        adf_heading("Incident Details"),
        adf_labeled_field("Application", entity_name),
        adf_labeled_field("Status", f"{icon} {severity}"),
        adf_labeled_field("Incident ID", incident_id),
        adf_labeled_field("Detected", f"{detected_at.strftime(TIME_FORMAT)} UTC"),
        adf_heading("Description"),
        adf_paragraph(
            "This incident was automatically created by the vigil monitoring "
            f"service. The application '{entity_name}' has entered a "
            f"{severity.value.lower()} state and requires investigation."
        ),
        adf_paragraph(
            "Please check the application logs, infrastructure metrics, and "
            "dependencies to identify the root cause.",
            "em",
        ),
    )


# -- Ticket comments ---------------------------------------------------------


def escalation_comment(
    entity_name: str,
    new_severity: Severity,
    previous_severity: Optional[Severity],
    at: datetime,
) -> str:
    previous = previous_severity.value if previous_severity else "Unknown"
    return (
        f"{status_icon(new_severity)} *Status Update*\n\n"
        f"Application: {entity_name}\n"
        f"Previous Status: {previous}\n"
        f"Current Status: {new_severity}\n"
        f"Updated: {at.strftime(TIME_FORMAT)} UTC\n\n"
        f"{SIGNATURE}"
    )


def recovery_comment(entity_name: str, at: datetime) -> str:
    return (
        f"{status_icon(Severity.OPERATIONAL)} *Recovery Confirmed*\n\n"
        f"Application: {entity_name}\n"
        f"Status: {Severity.OPERATIONAL}\n"
        f"Recovered: {at.strftime(TIME_FORMAT)} UTC\n\n"
        "The application has returned to normal operation. "
        "This incident can be closed.\n\n"
        f"{SIGNATURE}"
    )


# -- Chat notifications ------------------------------------------------------


_EVENT_HEADLINES = {
    "opened": "Incident opened",
    "escalated": "Incident escalated",
    "closed": "Incident resolved",
}


def chat_message(
    entity_name: str,
    previous_severity: Severity,
    new_severity: Severity,
    event_kind: str,
) -> str:
    headline = _EVENT_HEADLINES.get(event_kind, "Status change")
    return (
        f"{status_icon(new_severity)} *{headline}*: {entity_name} "
        f"changed from {previous_severity} to {new_severity}"
    )
