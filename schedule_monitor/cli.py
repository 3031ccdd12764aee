"""Command line entry point.

Usage examples:
    # Sync the schedule with the local store and the remote monitor
    schedule-monitor sync --schedule schedule.yaml

    # Only update the local store
    schedule-monitor sync --no-remote

    # Show declared tasks next to their stored records
    schedule-monitor list

    # Drop log items older than 7 days
    schedule-monitor purge --days 7
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from schedule_monitor.config import settings
from schedule_monitor.monitor.client import MonitorClient
from schedule_monitor.monitor.cron import CronExpression
from schedule_monitor.monitor.errors import (
    InvalidCronExpression,
    LocalStoreError,
    ScheduleFileError,
)
from schedule_monitor.monitor.identity import resolve_name
from schedule_monitor.monitor.models import MonitoredTask
from schedule_monitor.monitor.reconciler import sync_schedule
from schedule_monitor.monitor.store import MonitoredTaskStore
from schedule_monitor.schedule import load_schedule

EXIT_OK = 0
EXIT_REMOTE_FAILED = 1
EXIT_LOCAL_FAILED = 2


def _format_time(value: str | None) -> str:
    if not value:
        return "-"
    return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M:%S")


def _print_table(headers: list[str], rows: list[list[str]]) -> None:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row, strict=True)]
    line = "  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True))
    print(line)
    print("  ".join("-" * w for w in widths))
    for row in rows:
        print("  ".join(cell.ljust(w) for cell, w in zip(row, widths, strict=True)))


# -- Commands ------------------------------------------------------------------


async def run_sync(schedule_path: Path, remote: bool = True) -> int:
    """Reconcile the schedule file. Returns the process exit code."""
    try:
        schedule = load_schedule(schedule_path)
        result = await sync_schedule(
            schedule,
            MonitoredTaskStore.get(),
            MonitorClient.from_settings(),
            remote_sync_enabled=None if remote else False,
        )
    except (ScheduleFileError, LocalStoreError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_LOCAL_FAILED

    print(
        f"Created {len(result.created)}, updated {len(result.updated)}, "
        f"deleted {len(result.deleted)}, unchanged {len(result.unchanged)}."
    )
    if result.synced_checks:
        print(f"Synced {len(result.synced_checks)} check(s) with the monitor:")
        for check in result.synced_checks:
            print(f"  {check.name} ({check.cron_expression})")
    if result.failed:
        print(f"{len(result.failed)} check(s) could not be synced:", file=sys.stderr)
        for name, reason in result.failed.items():
            print(f"  {name}: {reason}", file=sys.stderr)
        return EXIT_REMOTE_FAILED
    return EXIT_OK


def _next_run(cron: str, timezone: str | None, now: datetime) -> str:
    try:
        next_run = CronExpression.parse(cron, timezone or "UTC").next_run_at(now)
    except InvalidCronExpression:
        return "invalid cron"
    return next_run.strftime("%Y-%m-%d %H:%M %Z") if next_run else "-"


def _record_row(record: MonitoredTask, next_run: str, status: str) -> list[str]:
    return [
        record.name,
        record.type,
        record.cron_expression,
        record.timezone,
        next_run,
        _format_time(record.last_started_at),
        _format_time(record.last_finished_at),
        _format_time(record.last_failed_at),
        status,
    ]


async def run_list(schedule_path: Path) -> int:
    """Print declared tasks next to their stored records."""
    try:
        schedule = load_schedule(schedule_path)
        records = {task.name: task for task in await MonitoredTaskStore.get().list_tasks()}
    except (ScheduleFileError, LocalStoreError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_LOCAL_FAILED

    now = datetime.now(UTC)
    rows: list[list[str]] = []
    seen: set[str] = set()
    for declaration in schedule.tasks():
        name = resolve_name(declaration)
        next_run = _next_run(declaration.cron, declaration.timezone, now)
        record = records.get(name) if name else None
        if record is not None:
            seen.add(record.name)
            status = "registered" if record.is_synced else "pending"
            rows.append(_record_row(record, next_run, status))
            continue
        status = "not monitored" if name is None or not declaration.monitor else "not synced"
        rows.append(
            [name or "(unnamed)", declaration.kind.value, declaration.cron,
             declaration.timezone or "-", next_run, "-", "-", "-", status]
        )

    # Records whose task is no longer declared
    for name, record in records.items():
        if name not in seen:
            rows.append(_record_row(record, "-", "stale"))

    if not rows:
        print("No scheduled tasks declared.")
        return EXIT_OK
    _print_table(
        ["Name", "Type", "Cron", "Timezone", "Next run", "Last started",
         "Last finished", "Last failed", "Status"],
        rows,
    )
    return EXIT_OK


async def run_purge(days: int | None) -> int:
    """Delete old log items."""
    try:
        removed = await MonitoredTaskStore.get().purge_log_items(days)
    except LocalStoreError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_LOCAL_FAILED
    print(f"Removed {removed} log item(s).")
    return EXIT_OK


# -- Entry point ---------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schedule-monitor",
        description="Keep scheduled tasks in sync with the local store and the remote monitor.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Reconcile the schedule with the store and the monitor")
    sync.add_argument("--schedule", type=Path, default=None, help="YAML schedule file")
    sync.add_argument(
        "--no-remote", action="store_true", help="Update the local store only"
    )

    list_ = sub.add_parser("list", help="Show declared tasks and their monitoring state")
    list_.add_argument("--schedule", type=Path, default=None, help="YAML schedule file")

    purge = sub.add_parser("purge", help="Delete old log items")
    purge.add_argument(
        "--days",
        type=int,
        default=None,
        help=f"Keep this many days (default: {settings.delete_log_items_older_than_days})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run the command and return its exit code."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    if args.command == "sync":
        return asyncio.run(run_sync(args.schedule or settings.schedule_file, not args.no_remote))
    if args.command == "list":
        return asyncio.run(run_list(args.schedule or settings.schedule_file))
    return asyncio.run(run_purge(args.days))


if __name__ == "__main__":
    sys.exit(main())
