# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Migration commands.

Provides:
  rumormill migrate up [--to VERSION] [--dry-run]
  rumormill migrate down [--to VERSION] [--dry-run]
  rumormill migrate status
  rumormill migrate bootstrap [--dry-run]
"""

from __future__ import annotations

import argparse
import sys

import psycopg2

from ...core.exceptions import RumorMillException
from ..utils import get_db_connection


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the migrate command on the CLI parser."""
    migrate_parser = subparsers.add_parser("migrate", help="Database migration management")
    migrate_subparsers = migrate_parser.add_subparsers(dest="migrate_command", required=True)

    migrate_up = migrate_subparsers.add_parser("up", help="Apply pending migrations")
    migrate_up.add_argument("--to", help="Apply up to this version (inclusive)")
    migrate_up.add_argument("--dry-run", action="store_true", help="Show what would be applied")

    migrate_down = migrate_subparsers.add_parser("down", help="Roll back migrations")
    migrate_down.add_argument("--to", help="Roll back to this version (it stays applied)")
    migrate_down.add_argument("--dry-run", action="store_true", help="Show what would be rolled back")

    migrate_subparsers.add_parser("status", help="Show migration status")

    migrate_bootstrap = migrate_subparsers.add_parser("bootstrap", help="Bootstrap a fresh database")
    migrate_bootstrap.add_argument("--dry-run", action="store_true", help="Show what would be applied")

    migrate_parser.set_defaults(func=cmd_migrate)


def _make_runner():
    from ...core.migrations import MigrationRunner

    return MigrationRunner(connection_factory=get_db_connection)


def cmd_migrate(args: argparse.Namespace) -> int:
    """Dispatch migrate subcommands."""
    handlers = {
        "up": cmd_migrate_up,
        "down": cmd_migrate_down,
        "status": cmd_migrate_status,
        "bootstrap": cmd_migrate_bootstrap,
    }
    handler = handlers.get(getattr(args, "migrate_command", None))
    if handler is None:
        print("Usage: rumormill migrate {up|down|status|bootstrap}", file=sys.stderr)
        return 1
    return handler(args)


def _print_versions(title: str, versions: list[str], marker: str, dry_run: bool) -> None:
    prefix = "[DRY RUN] " if dry_run else ""
    print(f"\n{prefix}{title} {len(versions)} migration(s):")
    for version in versions:
        print(f"  {marker} {version}")


def cmd_migrate_up(args: argparse.Namespace) -> int:
    """Apply pending migrations."""
    try:
        applied = _make_runner().up(target=args.to, dry_run=args.dry_run)
    except (RumorMillException, psycopg2.Error) as e:
        print(f"❌ Migration failed: {e}", file=sys.stderr)
        return 1

    if not applied:
        print("✅ No pending migrations.")
    else:
        _print_versions("Applied", applied, "✓", args.dry_run)
    return 0


def cmd_migrate_down(args: argparse.Namespace) -> int:
    """Roll back migrations."""
    try:
        rolled_back = _make_runner().down(target=args.to, dry_run=args.dry_run)
    except (RumorMillException, psycopg2.Error) as e:
        print(f"❌ Rollback failed: {e}", file=sys.stderr)
        return 1

    if not rolled_back:
        print("✅ Nothing to roll back.")
    else:
        _print_versions("Rolled back", rolled_back, "↩", args.dry_run)
    return 0


def cmd_migrate_status(args: argparse.Namespace) -> int:
    """Show migration status."""
    try:
        statuses = _make_runner().status()
    except (RumorMillException, psycopg2.Error) as e:
        print(f"❌ Failed to get status: {e}", file=sys.stderr)
        return 1

    if not statuses:
        print("No migrations found.")
        return 0

    icons = {"applied": "✓", "pending": "•", "checksum_mismatch": "⚠"}
    print(f"\n{'Version':<10} {'Description':<30} {'State':<20} {'Applied At'}")
    print("─" * 85)
    for s in statuses:
        applied_at = s.applied_at.strftime("%Y-%m-%d %H:%M:%S") if s.applied_at else ""
        print(f"  {icons.get(s.state, '?')} {s.version:<8} {s.description:<30} {s.state:<20} {applied_at}")
    print()
    return 0


def cmd_migrate_bootstrap(args: argparse.Namespace) -> int:
    """Apply every migration to a fresh database."""
    try:
        applied = _make_runner().bootstrap(dry_run=args.dry_run)
    except (RumorMillException, psycopg2.Error) as e:
        print(f"❌ Bootstrap failed: {e}", file=sys.stderr)
        return 1

    if not applied:
        print("✅ No migrations to apply.")
    else:
        _print_versions("Bootstrapped with", applied, "✓", args.dry_run)
    return 0
