# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""RumorMill CLI - claim, vote and schema management."""

from .main import app, main

__all__ = ["main", "app"]
