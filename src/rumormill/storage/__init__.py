# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Record stores for claims, votes, identities and the reference graph."""

from .base import ClaimSort, ClaimStore
from .memory import InMemoryStore

__all__ = [
    "ClaimSort",
    "ClaimStore",
    "InMemoryStore",
]
