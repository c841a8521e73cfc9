"""
Centralized Logging

Architectural Intent:
- One place that wires the "vigil" logger hierarchy to stderr
- Human-readable lines for operators, JSON lines for log shippers
- Reconciliation context (cycle, entity, incident, ticket) passed via
  ``extra=`` is carried into JSON output as top-level keys
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import TextIO

CONTEXT_FIELDS = ("cycle", "entity_id", "incident_id", "ticket_key")

HUMAN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Attach a single handler to the "vigil" logger and return it.

    Calling again replaces the handler, so the CLI can reconfigure after
    reading the config file.
    """
    logger = logging.getLogger("vigil")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(HUMAN_FORMAT))
    logger.addHandler(handler)
    return logger
