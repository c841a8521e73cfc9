"""
HTTP Client Helper

Architectural Intent:
- Minimal JSON-over-HTTP helper shared by the Jira, Slack and New Relic adapters
- Uses stdlib urllib for the HTTP layer (no external dependencies)
- Blocking calls run in a worker thread so the event loop stays responsive

Design Decisions:
- Non-2xx responses, connection failures, broken responses and
  undecodable bodies all raise the error class the calling adapter passes in
"""

from __future__ import annotations
import asyncio
import http.client
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


def _send(
    method: str,
    url: str,
    headers: dict[str, str],
    payload: Optional[Any],
    timeout: float,
) -> HttpResponse:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    request = urllib.request.Request(url, data=data, method=method)
    for name, value in headers.items():
        request.add_header(name, value)
    if data is not None:
        request.add_header("Content-Type", "application/json")

    with urllib.request.urlopen(request, timeout=timeout) as response:
        raw = response.read()
        content_type = response.headers.get("Content-Type", "")
        body: Any = raw.decode("utf-8", errors="replace") if raw else None
        if raw and "json" in content_type:
            body = json.loads(raw)
        return HttpResponse(
            status=response.status,
            body=body,
            headers={k: v for k, v in response.headers.items()},
        )


async def request_json(
    method: str,
    url: str,
    headers: Optional[dict[str, str]] = None,
    payload: Optional[Any] = None,
    timeout: float = 10.0,
    error_cls: type[Exception] = RuntimeError,
) -> HttpResponse:
    """Send one HTTP request and decode a JSON response body."""
    try:
        return await asyncio.to_thread(
            _send, method, url, headers or {}, payload, timeout
        )
    except urllib.error.HTTPError as e:
        detail = e.read().decode("utf-8", errors="replace")[:500]
        raise error_cls(f"{method} {url} failed: HTTP {e.code} {detail}") from e
    except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
        raise error_cls(f"{method} {url} failed: {e}") from e
    except json.JSONDecodeError as e:
        raise error_cls(f"{method} {url} returned invalid JSON: {e}") from e
    except UnicodeDecodeError as e:
        raise error_cls(f"{method} {url} returned undecodable body: {e}") from e
    except http.client.HTTPException as e:
        raise error_cls(f"{method} {url} failed: {e!r}") from e
