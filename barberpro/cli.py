# =============================================================================
# barberpro/cli.py
# Command-line entry point: python -m barberpro <command>
# =============================================================================

from __future__ import annotations
import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional

import pandas as pd

from barberpro.config import Settings, load_settings
from barberpro.errors import BarberProError, OfflineError, handle_error
from barberpro.logging import get_logger, setup_logging
from barberpro.offline import OfflineDataService

logger = get_logger(__name__)

CUSTOMER_COLUMNS = ["id", "name", "mobile", "visitDate", "paymentAmount", "syncStatus"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="barberpro", description="BarberPro offline sync tools")
    parser.add_argument("--secrets", type=Path, help="Path to secrets.toml")
    parser.add_argument("--log-level", help="Override the configured log level")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show connection and sync queue status")
    commands.add_parser("sync", help="Push pending operations to the server")
    commands.add_parser("refresh", help="Pull from the server, then push pending operations")
    customers = commands.add_parser("customers", help="List locally stored customers")
    customers.add_argument("--limit", type=int, default=50, help="Maximum rows to show")
    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    service = await OfflineDataService.create(settings, start_monitoring=False)
    async with service:
        await service.monitor.check_now()

        if args.command == "status":
            _print_json(await service.get_status_display())

        elif args.command == "sync":
            report = await service.sync_now()
            # check_now may have started a reconnect drain that does the work
            latest = await service.wait_for_sync()
            if report.skipped and latest is not None:
                report = latest
            if report.skipped:
                print(f"Sync skipped: {report.reason}")
            else:
                print(f"Synced {report.succeeded}/{report.attempted} operations ({report.failed} failed)")

        elif args.command == "refresh":
            try:
                reconcile, drain = await service.refresh()
            except OfflineError as e:
                print(f"Cannot refresh: {e.message}")
                return 1
            print(
                f"Pulled {reconcile.inserted} new, {reconcile.updated} updated, "
                f"{reconcile.deleted} removed; pushed {drain.succeeded} operations"
            )

        elif args.command == "customers":
            records = await service.get_all_records("customers")
            if not records:
                print("No customers stored locally")
                return 0
            frame = pd.DataFrame([record.to_payload() for record in records[: args.limit]])
            print(frame[CUSTOMER_COLUMNS].to_string(index=False))

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(secrets_path=args.secrets)
    except BarberProError as e:
        setup_logging(log_to_file=False)
        handle_error(e, context="Loading settings")
        return 2

    setup_logging(args.log_level or settings.log_level, log_to_file=settings.log_to_file)

    try:
        return asyncio.run(_run(args, settings))
    except BarberProError as e:
        handle_error(e, context=f"Running '{args.command}'")
        return 1
