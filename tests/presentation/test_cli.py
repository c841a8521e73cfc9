"""Tests for CLI module."""

import json
import logging
import pytest
from datetime import datetime, UTC
from unittest.mock import patch, AsyncMock, MagicMock

from vigil.domain.entities.incident import Entity, Incident, TicketReference
from vigil.domain.value_objects.severity import Severity
from vigil.presentation.cli.cli import async_main

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
CREATE = "vigil.presentation.cli.cli.create_container"


def _make_container(**overrides):
    """Create a mock container with sensible defaults."""
    container = MagicMock()
    container.reconciliation_loop = MagicMock()
    container.reconciliation_loop.execute = AsyncMock(return_value=None)
    container.telemetry = MagicMock()
    container.telemetry.initialize = AsyncMock()
    container.telemetry.shutdown = AsyncMock()
    container.aclose = AsyncMock()
    container.store = MagicMock()
    container.store.list_open_incidents = AsyncMock(return_value=[])
    container.store.list_entities = AsyncMock(return_value=[])
    container.store.get_ticket_reference = AsyncMock(return_value=None)
    for key, value in overrides.items():
        setattr(container, key, value)
    return container


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


class TestCLIHelp:
    """Test all help outputs (no adapter dependencies)."""

    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        with patch("sys.argv", ["vigil"]):
            await async_main()
        captured = capsys.readouterr()
        assert "status reconciliation" in captured.out

    @pytest.mark.asyncio
    async def test_help_flag(self):
        with patch("sys.argv", ["vigil", "--help"]), \
             pytest.raises(SystemExit, match="0"):
            await async_main()

    @pytest.mark.asyncio
    async def test_watch_help(self):
        with patch("sys.argv", ["vigil", "watch", "--help"]), \
             pytest.raises(SystemExit, match="0"):
            await async_main()

    @pytest.mark.asyncio
    async def test_incidents_help(self):
        with patch("sys.argv", ["vigil", "incidents", "--help"]), \
             pytest.raises(SystemExit, match="0"):
            await async_main()


class TestWatch:
    @pytest.mark.asyncio
    async def test_watch_once_uses_config_interval(self, capsys):
        container = _make_container()
        with patch("sys.argv", ["vigil", "watch", "--once"]), \
             patch(CREATE, return_value=container):
            await async_main()
        container.reconciliation_loop.execute.assert_awaited_once_with(30, True)
        container.telemetry.initialize.assert_awaited_once()
        container.telemetry.shutdown.assert_awaited_once()
        container.aclose.assert_awaited_once()
        assert "every 30s" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_watch_interval_flag(self):
        container = _make_container()
        with patch("sys.argv", ["vigil", "watch", "--interval", "5"]), \
             patch(CREATE, return_value=container):
            await async_main()
        container.reconciliation_loop.execute.assert_awaited_once_with(5, False)

    @pytest.mark.asyncio
    async def test_config_file_is_loaded(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"loop": {"interval_seconds": 12}}))
        container = _make_container()
        with patch("sys.argv", ["vigil", "--config", str(path), "watch", "--once"]), \
             patch(CREATE, return_value=container) as create:
            await async_main()
        assert create.call_args.args[0].loop.interval_seconds == 12
        container.reconciliation_loop.execute.assert_awaited_once_with(12, True)

    @pytest.mark.asyncio
    async def test_invalid_configuration_exits(self, capsys):
        with patch("sys.argv", ["vigil", "watch"]), \
             patch(CREATE, side_effect=ValueError("Unknown status source")), \
             pytest.raises(SystemExit, match="1"):
            await async_main()
        assert "Invalid configuration" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_keyboard_interrupt_closes_container(self, capsys):
        container = _make_container()
        container.reconciliation_loop.execute = AsyncMock(side_effect=KeyboardInterrupt)
        with patch("sys.argv", ["vigil", "watch"]), \
             patch(CREATE, return_value=container):
            await async_main()
        container.aclose.assert_awaited_once()
        assert "Stopping vigil" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_watch_fractional_interval(self, capsys):
        container = _make_container()
        with patch("sys.argv", ["vigil", "watch", "-i", "0.5", "--once"]), \
             patch(CREATE, return_value=container):
            await async_main()
        container.reconciliation_loop.execute.assert_awaited_once_with(0.5, True)
        assert "every 0.5s" in capsys.readouterr().out


class TestIncidents:
    @pytest.mark.asyncio
    async def test_no_incidents(self, capsys):
        container = _make_container()
        with patch("sys.argv", ["vigil", "incidents"]), \
             patch(CREATE, return_value=container):
            await async_main()
        assert "No open incidents" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_lists_incidents_with_tickets(self, capsys):
        container = _make_container()
        container.store.list_open_incidents = AsyncMock(
            return_value=[Incident("4", "app-1", T0), Incident("5", "app-2", T0)]
        )
        container.store.list_entities = AsyncMock(
            return_value=[Entity("app-1", "Checkout", Severity.DOWN, Severity.DOWN, T0)]
        )
        container.store.get_ticket_reference = AsyncMock(
            side_effect=[TicketReference("4", "OPS-12", T0), None]
        )
        with patch("sys.argv", ["vigil", "incidents"]), \
             patch(CREATE, return_value=container):
            await async_main()
        out = capsys.readouterr().out
        assert "2 open incident(s)" in out
        assert "#4  Checkout [Down]" in out
        assert "ticket OPS-12" in out
        assert "#5  app-2 [Unknown]" in out


class TestLogging:
    @pytest.mark.asyncio
    async def test_debug_flag(self):
        with patch("sys.argv", ["vigil", "--debug"]):
            await async_main()
        assert logging.getLogger("vigil").level == logging.DEBUG

    @pytest.mark.asyncio
    async def test_verbose_flag(self):
        with patch("sys.argv", ["vigil", "-v"]):
            await async_main()
        assert logging.getLogger("vigil").level == logging.INFO

    @pytest.mark.asyncio
    async def test_level_from_config(self, tmp_path):
        path = tmp_path / "vigil.json"
        path.write_text(json.dumps({"log_level": "error"}))
        with patch("sys.argv", ["vigil"]):
            await async_main()
        assert logging.getLogger("vigil").level == logging.ERROR
