# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Reference graph between claims.

A claim cites another by writing ``#R<claim-id>`` in its content. Citations
form a directed acyclic graph over non-deleted claims: before an edge
``source -> target`` is inserted, a reachability search from ``target`` back
to ``source`` runs over a snapshot of the edges, and cycle-closing edges are
skipped.

Deleting a claim prunes its edges only. Scores of neighbouring claims are
never recomputed, so a deleted claim neither keeps nor retroactively loses
influence over others.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING

from .exceptions import ConflictError, NotFoundError
from .models import ClaimReferences, ClaimStatus, EdgeRemoval, ReferenceEdge, utcnow

if TYPE_CHECKING:
    from ..storage.base import ClaimStore

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "#R"
REFERENCE_PATTERN = re.compile(r"#R([a-f0-9-]{36})", re.IGNORECASE)


def parse_references(content: str) -> list[str]:
    """Claim ids cited in ``content``, lower-cased, in first-appearance order."""
    return list(dict.fromkeys(m.group(1).lower() for m in REFERENCE_PATTERN.finditer(content)))


def format_reference(claim_id: str) -> str:
    return f"{REFERENCE_PREFIX}{claim_id}"


def build_adjacency(edges: Iterable[ReferenceEdge]) -> dict[str, set[str]]:
    adjacency: dict[str, set[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source_id, set()).add(edge.target_id)
    return adjacency


def would_create_cycle(adjacency: Mapping[str, Iterable[str]], source_id: str, target_id: str) -> bool:
    """True if adding ``source_id -> target_id`` would close a cycle.

    Iterative depth-first search from the target; a self-edge is a cycle.
    """
    visited: set[str] = set()
    stack = [target_id]
    while stack:
        current = stack.pop()
        if current == source_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(n for n in adjacency.get(current, ()) if n not in visited)
    return False


class ReferenceGraph:
    """Store-backed citation graph."""

    def __init__(self, store: ClaimStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def add_references(self, source_id: str, target_ids: Iterable[str]) -> list[ReferenceEdge]:
        """Link ``source_id`` to each target, skipping what cannot be linked.

        Unknown or deleted targets, existing edges and cycle-closing edges
        are logged and skipped. Returns the edges actually inserted.

        The store re-checks the source under its graph lock, so a delete
        racing with this call either sees the new edges and prunes them or
        makes this call fail.

        Raises:
            NotFoundError: If the source claim does not exist.
            ConflictError: If the source claim is deleted.
        """
        source = self.store.get_claim(source_id)
        if source is None:
            raise NotFoundError("Claim", source_id)
        if source.status == ClaimStatus.DELETED:
            raise ConflictError(f"Claim is deleted: {source_id}", existing_id=source_id)

        requested = list(dict.fromkeys(target_ids))
        if not requested:
            return []

        def select(adjacency: dict[str, set[str]], live: list[str]) -> list[str]:
            for missing in set(requested) - set(live):
                logger.info("Skipping reference %s -> %s (unknown or deleted claim)", source_id, missing)

            chosen = []
            existing = adjacency.get(source_id, set())
            for target_id in live:
                if target_id in existing:
                    logger.debug("Reference %s -> %s already exists", source_id, target_id)
                    continue
                if would_create_cycle(adjacency, source_id, target_id):
                    logger.warning("Skipping reference %s -> %s (would create cycle)", source_id, target_id)
                    continue
                adjacency.setdefault(source_id, set()).add(target_id)
                chosen.append(target_id)
            return chosen

        added = self.store.add_edges(source_id, requested, select, self.clock())
        if added:
            logger.info("Added %d reference(s) from claim %s", len(added), source_id)
        return added

    def remove_all_edges_for(self, claim_id: str) -> EdgeRemoval:
        removal = self.store.remove_edges_for(claim_id)
        logger.info("Removed %d edge(s) touching claim %s", removal.edges_removed, claim_id)
        return removal

    def get_references(self, claim_id: str) -> ClaimReferences:
        refs = ClaimReferences(claim_id=claim_id)
        for edge in self.store.edges_for(claim_id):
            if edge.target_id == claim_id:
                refs.incoming.append(edge.source_id)
            else:
                refs.outgoing.append(edge.target_id)
        return refs

    def snapshot(self) -> dict[str, set[str]]:
        return build_adjacency(self.store.all_edges())
