# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""CLI command modules for RumorMill.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import claims, identity, migration
from .claims import cmd_delete, cmd_list, cmd_refs, cmd_settle, cmd_show, cmd_stats, cmd_submit, cmd_vote
from .identity import cmd_identity
from .migration import cmd_migrate

# Registration order is the order shown in --help
COMMAND_MODULES = [
    claims,
    identity,
    migration,
]

__all__ = [
    "COMMAND_MODULES",
    "cmd_delete",
    "cmd_identity",
    "cmd_list",
    "cmd_migrate",
    "cmd_refs",
    "cmd_settle",
    "cmd_show",
    "cmd_stats",
    "cmd_submit",
    "cmd_vote",
]
