# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Utility functions for the RumorMill CLI."""

from __future__ import annotations

import argparse
import logging
import sys

logger = logging.getLogger(__name__)


def get_service():
    """Build a ClaimService from the current configuration."""
    from ..core.config import get_config
    from ..core.lifecycle import ClaimService

    config = get_config()
    if config.storage_backend == "memory":
        print("⚠️  Using the in-memory store; nothing persists after this command.", file=sys.stderr)
    return ClaimService.from_config(config)


def get_db_connection():
    """Open a dedicated database connection (for migrations)."""
    import psycopg2

    from ..core.config import get_config

    return psycopg2.connect(**get_config().connection_params)


def add_json_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")


def add_identity_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--fingerprint", "-f", help="Client fingerprint of the voter")
    group.add_argument("--external-id", help="Externally authenticated account id")
