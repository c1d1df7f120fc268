#!/usr/bin/env python3
"""Notion / Google Calendar sync CLI."""
from __future__ import annotations

import argparse
import logging
import os
import sys

from notion_gcal_sync.config import ConfigError, Settings, load_settings
from notion_gcal_sync.factory import build_service
from notion_gcal_sync.logs import fetch_activity_entries
from notion_gcal_sync.sync import SyncDirection, SyncResult

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOCKED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notion-gcal-sync",
        description="Keep a Notion database and a Google Calendar in agreement.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync",
        help="Run one full sync pass.",
    )
    sync_parser.add_argument(
        "--direction",
        choices=[direction.value for direction in SyncDirection],
        default=SyncDirection.BIDIRECTIONAL.value,
        help="Which side(s) to write. Defaults to both.",
    )

    subparsers.add_parser(
        "changes",
        help="Apply calendar changes since the stored sync cursor to Notion.",
    )
    subparsers.add_parser(
        "status",
        help="Show lock, cursor and snapshot state.",
    )
    subparsers.add_parser(
        "reset",
        help="Drop the snapshot and cursor so the next pass bootstraps.",
    )
    subparsers.add_parser(
        "unlock",
        help="Release a run lock left behind by a crashed pass.",
    )
    subparsers.add_parser(
        "check-config",
        help="Validate that the required environment variables are set.",
    )

    activity_parser = subparsers.add_parser(
        "activity",
        help="Show recent sync passes.",
    )
    activity_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="How many passes to show.",
    )

    return parser


def _print_result(result: SyncResult) -> int:
    if result.locked:
        print("Sync already in progress, try again later.", file=sys.stderr)
        return EXIT_LOCKED

    if result.bootstrapped:
        print("Snapshot bootstrapped; no changes were written.")
    elif result.cursor_primed:
        print("Calendar sync cursor primed; no changes were written.")
    else:
        print(
            f"Created {result.created}, updated {result.updated}, "
            f"deleted {result.deleted}, healed {result.healed}, "
            f"unchanged {result.unchanged}, purged {result.purged}, "
            f"failed {result.failed}."
        )

    for error in result.errors:
        print(f" - {error}", file=sys.stderr)
    return EXIT_OK if result.success else EXIT_FAILED


def _load() -> Settings | None:
    try:
        return load_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return None


def _cmd_sync(direction: str) -> int:
    settings = _load()
    if settings is None:
        return EXIT_FAILED
    service = build_service(settings)
    return _print_result(service.run(SyncDirection(direction), source="cli"))


def _cmd_changes() -> int:
    settings = _load()
    if settings is None:
        return EXIT_FAILED
    service = build_service(settings)
    return _print_result(service.sync_calendar_changes(source="cli"))


def _cmd_status() -> int:
    settings = _load()
    if settings is None:
        return EXIT_FAILED
    status = build_service(settings).status()
    for key, value in status.items():
        print(f"{key}: {value}")
    return EXIT_OK


def _cmd_reset() -> int:
    settings = _load()
    if settings is None:
        return EXIT_FAILED
    cleared = build_service(settings).reset()
    print(
        "Snapshot:", "cleared" if cleared["snapshot"] else "absent",
        "| Cursor:", "cleared" if cleared["cursor"] else "absent",
    )
    return EXIT_OK


def _cmd_unlock() -> int:
    settings = _load()
    if settings is None:
        return EXIT_FAILED
    build_service(settings).unlock()
    print("Run lock released.")
    return EXIT_OK


def _cmd_check_config() -> int:
    settings = _load()
    if settings is None:
        return EXIT_FAILED

    print(
        "Configuration loaded.",
        f"Environment: {settings.environment}",
        f"Calendar: {settings.google_calendar_id}",
        f"Notion database: {settings.notion_database_id}",
        f"Window: {settings.window_days} days",
        f"Conflict resolution: {settings.conflict_resolution}",
        sep="\n",
    )
    return EXIT_OK


def _cmd_activity(limit: int) -> int:
    entries = fetch_activity_entries(limit)
    if not entries:
        print("No sync activity recorded.")
        return EXIT_OK

    for entry in entries:
        status = "ok" if entry.get("success") else "failed"
        print(
            f"{entry.get('ts', '-')} [{entry.get('source', '-')}] "
            f"{entry.get('direction', '-')} {status}: "
            f"+{entry.get('created', 0)} ~{entry.get('updated', 0)} "
            f"-{entry.get('deleted', 0)} !{entry.get('failed', 0)}"
        )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "sync":
        return _cmd_sync(args.direction)
    if args.command == "changes":
        return _cmd_changes()
    if args.command == "status":
        return _cmd_status()
    if args.command == "reset":
        return _cmd_reset()
    if args.command == "unlock":
        return _cmd_unlock()
    if args.command == "check-config":
        return _cmd_check_config()
    if args.command == "activity":
        return _cmd_activity(args.limit)

    parser.print_help()
    return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
