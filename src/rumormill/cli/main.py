#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors
"""
RumorMill CLI - anonymous rumor verification from the terminal.

Commands:
  rumormill submit <content>      Submit a claim
  rumormill vote <id> verify      Vote on a claim
  rumormill show <id>             Show a claim
  rumormill list                  List claims
  rumormill stats                 Show claim counts
  rumormill identity -f <fp>      Show a voter's credibility and budget
  rumormill migrate up            Apply database migrations
"""

from __future__ import annotations

import argparse
import sys

from ..core.logging import configure_logging
from .commands import COMMAND_MODULES


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rumormill",
        description="Anonymous rumor verification with credibility-weighted votes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rumormill submit "Library closes early on Friday"
  rumormill submit "Confirmed, see #R<claim-id>"       Cite another claim
  rumormill vote <claim-id> verify -f <fingerprint>
  rumormill vote <claim-id> dispute --external-id alice
  rumormill list --sort controversial -n 10
  rumormill identity -f <fingerprint> --json

Storage:
  RUMORMILL_STORAGE_BACKEND=postgres rumormill migrate up
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    for module in COMMAND_MODULES:
        module.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    configure_logging()
    parser = app()
    args = parser.parse_args(argv)

    handler = getattr(args, "func", None)
    if handler is not None:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
