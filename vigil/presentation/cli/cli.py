"""
CLI Module

Architectural Intent:
- Command-line interface for vigil
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control
"""

import argparse
import asyncio
import logging
import signal
import sys
import traceback

from vigil.composition_root import create_container
from vigil.domain.errors import VigilError
from vigil.infrastructure.config import load_config
from vigil.infrastructure.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="vigil: status reconciliation and incident lifecycle engine"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to JSON config (default: vigil.json)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    watch_parser = subparsers.add_parser(
        "watch", help="Run the reconciliation loop against the status source"
    )
    watch_parser.add_argument(
        "--interval", "-i", type=float, default=None, help="Cycle interval in seconds"
    )
    watch_parser.add_argument("--once", action="store_true", help="Run once and exit")

    subparsers.add_parser("incidents", help="List open incidents and their tickets")

    return parser


def _configure_logging(args, config) -> None:
    if args.debug:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = logging.getLevelName(str(config.log_level).upper())
        if not isinstance(level, int):
            level = logging.WARNING
    configure_logging(level=level, json_format=config.log_json)


async def _watch(container, interval: float, run_once: bool) -> None:
    loop = container.reconciliation_loop
    event_loop = asyncio.get_running_loop()
    try:
        event_loop.add_signal_handler(signal.SIGTERM, loop.stop)
        handles_sigterm = True
    except (NotImplementedError, RuntimeError):
        # Windows, or not on the main thread
        handles_sigterm = False

    await container.telemetry.initialize()
    print(f"[*] Starting vigil reconciliation every {interval:g}s...")
    try:
        await loop.execute(interval, run_once)
    finally:
        if handles_sigterm:
            event_loop.remove_signal_handler(signal.SIGTERM)
        await container.telemetry.shutdown()


async def _list_incidents(container) -> None:
    store = container.store
    incidents = await store.list_open_incidents()
    if not incidents:
        print("[+] No open incidents.")
        return

    entities = {e.entity_id: e for e in await store.list_entities()}
    print(f"[*] {len(incidents)} open incident(s):")
    for incident in incidents:
        entity = entities.get(incident.entity_id)
        name = entity.entity_name if entity else incident.entity_id
        severity = entity.current_severity if entity else "Unknown"
        reference = await store.get_ticket_reference(incident.incident_id)
        ticket = reference.ticket_key if reference else "-"
        print(
            f"  #{incident.incident_id}  {name} [{severity}]  "
            f"opened {incident.opened_at.isoformat()}  ticket {ticket}"
        )


async def async_main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    _configure_logging(args, config)
    verbose = args.verbose or args.debug

    if args.command is None:
        parser.print_help()
        return

    try:
        container = create_container(config)
    except (ValueError, VigilError) as e:
        print(f"[-] Invalid configuration: {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)

    try:
        if args.command == "watch":
            interval = args.interval or config.loop.interval_seconds
            await _watch(container, interval, args.once)
        elif args.command == "incidents":
            await _list_incidents(container)
    except KeyboardInterrupt:
        print("\n[*] Stopping vigil.")
    except VigilError as e:
        print(f"[-] {args.command} failed: {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)
    finally:
        await container.aclose()


def main():
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\n[*] Stopping vigil.")


if __name__ == "__main__":
    main()
