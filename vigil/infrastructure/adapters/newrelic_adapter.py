"""
New Relic Status Source

Architectural Intent:
- Implements StatusSourcePort over the New Relic REST API v2
- Returns one StatusObservation per application per poll
- Uses stdlib urllib for the HTTP layer (no external dependencies)

Design Decisions:
- Follows RFC 5988 Link headers (rel="next") until the last page
- health_status values (green/orange/red/gray) are passed through raw;
  the severity model owns their meaning
- A hard page cap guards against a server that never stops paginating
"""

import logging
import re
from typing import Optional

from vigil.domain.errors import SourceError
from vigil.domain.value_objects.status_observation import StatusObservation
from vigil.infrastructure.adapters.http_client import request_json

logger = logging.getLogger(__name__)

_NEXT_LINK_RE = re.compile(r'<([^>]+)>\s*;\s*rel="?next"?')

MAX_PAGES = 100


def next_page_url(link_header: str) -> Optional[str]:
    """Extract the rel="next" URL from a Link header, if any."""
    for part in link_header.split(","):
        m = _NEXT_LINK_RE.search(part)
        if m:
            return m.group(1)
    return None


class NewRelicSource:
    """Polls New Relic application health."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.newrelic.com",
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise ValueError("New Relic source requires an API key")
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    async def fetch_snapshot(self) -> list[StatusObservation]:
        observations: list[StatusObservation] = []
        url: Optional[str] = f"{self._api_url}/v2/applications.json"
        pages = 0

        while url and pages < MAX_PAGES:
            response = await request_json(
                "GET",
                url,
                headers={"Api-Key": self._api_key, "Accept": "application/json"},
                timeout=self._timeout,
                error_cls=SourceError,
            )
            pages += 1
            if not isinstance(response.body, dict):
                raise SourceError("New Relic response is not a JSON object")

            for app in response.body.get("applications", []):
                if app.get("id") is None:
                    continue
                observations.append(
                    StatusObservation(
                        entity_id=str(app["id"]),
                        entity_name=str(app.get("name", "")),
                        raw_status=str(app.get("health_status", "")),
                    )
                )

            link = next(
                (v for k, v in response.headers.items() if k.lower() == "link"), ""
            )
            url = next_page_url(link)

        if url:
            logger.warning("New Relic pagination stopped after %d pages", MAX_PAGES)
        logger.debug("New Relic snapshot: %d applications", len(observations))
        return observations
