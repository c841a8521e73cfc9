"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to all vigil settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- Secrets (API tokens, webhook URLs) may also come from files, so they can
  be mounted as container secrets
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoopConfig:
    """Reconciliation loop configuration."""
    interval_seconds: float = 30.0
    max_concurrency: int = 8
    call_timeout_seconds: float = 10.0
    source_timeout_seconds: float = 60.0


@dataclass(frozen=True)
class StoreConfig:
    """Incident store configuration."""
    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "vigil.db"


@dataclass(frozen=True)
class SourceConfig:
    """Status source selection."""
    kind: str = "simulator"  # "simulator" or "newrelic"
    seed: int = 0


@dataclass(frozen=True)
class NewRelicConfig:
    """New Relic REST API configuration."""
    api_key: str = ""
    api_key_file: str = ""
    api_url: str = "https://api.newrelic.com"


@dataclass(frozen=True)
class JiraConfig:
    """Jira ticket system configuration."""
    base_url: str = ""
    email: str = ""
    api_token: str = ""
    api_token_file: str = ""
    project_key: str = "OPS"
    issue_type: str = "Incident"
    close_transition: str = ""


@dataclass(frozen=True)
class SlackConfig:
    """Slack webhook notification configuration."""
    webhook_url: str = ""
    webhooks_path: str = ""
    webhook_key: str = "default"


@dataclass(frozen=True)
class KafkaConfig:
    """Kafka lifecycle topic configuration."""
    bootstrap_servers: str = ""  # "host:port[,host:port]"; empty means stub
    topic: str = "Monarch"
    client_id: str = "vigil"


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False


@dataclass(frozen=True)
class VigilConfig:
    """Root configuration for the vigil application."""
    loop: LoopConfig = field(default_factory=LoopConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    newrelic: NewRelicConfig = field(default_factory=NewRelicConfig)
    jira: JiraConfig = field(default_factory=JiraConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"
    log_json: bool = False


def _env_override(data: dict, prefix: str = "VIGIL") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern VIGIL_SECTION_KEY.
    For example: VIGIL_LOOP_INTERVAL_SECONDS=60, VIGIL_JIRA_PROJECT_KEY=MON
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name in ("log_level", "log_json"):
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        elif len(parts) == 1:
            data[parts[0]] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    return bool(value)


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    # Convert string numbers to int/float/bool; unparseable values keep the default
    for f in dataclasses.fields(cls):
        if f.name not in filtered or not isinstance(filtered[f.name], str):
            continue
        raw = filtered[f.name]
        try:
            if f.type == "int":
                filtered[f.name] = int(raw)
            elif f.type == "float":
                filtered[f.name] = float(raw)
            elif f.type == "bool":
                filtered[f.name] = _as_bool(raw)
        except ValueError:
            logger.warning(
                "Ignoring %s.%s=%r: expected %s", cls.__name__, f.name, raw, f.type
            )
            del filtered[f.name]

    return cls(**filtered)


def read_secret(value: str, path: str) -> str:
    """Return value, or the stripped contents of path when value is empty."""
    if value or not path:
        return value
    try:
        return Path(path).read_text().strip()
    except OSError as e:
        logger.warning("Cannot read secret file %s: %s", path, e)
        return ""


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "VIGIL",
) -> VigilConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (VIGIL_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to vigil.json in CWD.
        env_prefix: Environment variable prefix. Defaults to VIGIL.
    """
    config_path = Path(path) if path else Path("vigil.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return VigilConfig(
        loop=_build_sub_config(LoopConfig, data.get("loop", {})),
        store=_build_sub_config(StoreConfig, data.get("store", {})),
        source=_build_sub_config(SourceConfig, data.get("source", {})),
        newrelic=_build_sub_config(NewRelicConfig, data.get("newrelic", {})),
        jira=_build_sub_config(JiraConfig, data.get("jira", {})),
        slack=_build_sub_config(SlackConfig, data.get("slack", {})),
        kafka=_build_sub_config(KafkaConfig, data.get("kafka", {})),
        telemetry=_build_sub_config(TelemetryConfig, data.get("telemetry", {})),
        log_level=data.get("log_level", "WARNING"),
        log_json=_as_bool(data.get("log_json", False)),
    )
