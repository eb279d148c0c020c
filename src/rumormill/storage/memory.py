# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""In-memory record store.

Thread-safe through keyed locks: one lock per claim, one per identity for
credibility writes, one per identity for rate limits, and a single graph lock
for reference edges. Records are copied on the way in and out, so callers
never hold live references to stored state. Not persistent.
"""

from __future__ import annotations

import copy
import itertools
import threading
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from ..core.exceptions import ConflictError, DuplicateVoteError, NotFoundError
from ..core.models import (
    Claim,
    ClaimStatus,
    EdgeRemoval,
    Identity,
    PendingCredibilityUpdate,
    RateLimitRecord,
    ReferenceEdge,
    Vote,
    VoteCommit,
)
from .base import (
    ClaimSettler,
    ClaimSort,
    ClaimStore,
    CredibilitySettler,
    EdgeSelector,
    RateLimitDecider,
    T,
    VoteSettler,
)


class KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def for_key(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryStore(ClaimStore):
    """Dictionary-backed store for tests and single-process use."""

    def __init__(self) -> None:
        self._claims: dict[str, Claim] = {}
        self._votes: dict[str, Vote] = {}
        self._votes_by_claim: dict[str, list[str]] = {}
        self._identities: dict[str, Identity] = {}
        self._pending: dict[int, PendingCredibilityUpdate] = {}
        self._pending_by_claim: dict[str, list[int]] = {}
        self._rate_limits: dict[str, RateLimitRecord] = {}
        self._edges: dict[tuple[str, str], ReferenceEdge] = {}
        self._update_ids = itertools.count(1)

        self._data_lock = threading.RLock()
        self._graph_lock = threading.RLock()
        self._claim_locks = KeyedLocks()
        self._identity_locks = KeyedLocks()
        self._rate_locks = KeyedLocks()

    @property
    def backend_type(self) -> str:
        return "memory"

    # -------------------------------------------------------------------------
    # Claims
    # -------------------------------------------------------------------------

    def insert_claim(self, claim: Claim) -> Claim:
        with self._data_lock:
            if claim.claim_id in self._claims:
                raise ConflictError(f"Claim already exists: {claim.claim_id}", existing_id=claim.claim_id)
            self._claims[claim.claim_id] = copy.copy(claim)
        return copy.copy(claim)

    def get_claim(self, claim_id: str) -> Claim | None:
        claim = self._claims.get(claim_id)
        return copy.copy(claim) if claim else None

    def list_claims(
        self,
        statuses: Sequence[ClaimStatus],
        sort: ClaimSort = ClaimSort.RECENT,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Claim]:
        wanted = set(statuses)
        with self._data_lock:
            claims = [copy.copy(c) for c in self._claims.values() if c.status in wanted]

        # Newest first, then a stable sort for the primary key
        claims.sort(key=lambda c: c.created_at, reverse=True)
        sort = ClaimSort(sort)
        if sort == ClaimSort.TRENDING:
            claims.sort(key=lambda c: c.vote_count, reverse=True)
        elif sort == ClaimSort.CONTROVERSIAL:
            claims.sort(key=lambda c: c.controversy)
        return claims[offset : offset + limit]

    def count_claims_by_status(self) -> dict[ClaimStatus, int]:
        counts = {status: 0 for status in ClaimStatus}
        with self._data_lock:
            for claim in self._claims.values():
                counts[claim.status] += 1
        return counts

    def delete_claim(self, claim_id: str, settle: ClaimSettler) -> EdgeRemoval:
        with self._claim_locks.for_key(claim_id):
            current = self._claims.get(claim_id)
            if current is None:
                raise NotFoundError("Claim", claim_id)
            updated = settle(copy.copy(current))
            with self._graph_lock:
                self._claims[claim_id] = copy.copy(updated)
                return self._remove_edges_locked(claim_id)

    # -------------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------------

    def commit_vote(self, claim_id: str, vote_hash: str, settle: VoteSettler) -> VoteCommit:
        with self._claim_locks.for_key(claim_id):
            current = self._claims.get(claim_id)
            if current is None:
                raise NotFoundError("Claim", claim_id)

            commit = settle(copy.copy(current))
            if vote_hash in self._votes:
                raise DuplicateVoteError(claim_id)

            with self._data_lock:
                pending = replace(commit.pending, update_id=next(self._update_ids))
                self._votes[vote_hash] = commit.vote
                self._votes_by_claim.setdefault(claim_id, []).append(vote_hash)
                self._pending[pending.update_id] = pending
                self._pending_by_claim.setdefault(claim_id, []).append(pending.update_id)
                self._claims[claim_id] = copy.copy(commit.claim)

            commit.pending = copy.copy(pending)
            return commit

    def has_vote(self, vote_hash: str) -> bool:
        return vote_hash in self._votes

    def list_votes(self, claim_id: str) -> list[Vote]:
        with self._data_lock:
            hashes = list(self._votes_by_claim.get(claim_id, []))
            return [self._votes[h] for h in hashes]

    # -------------------------------------------------------------------------
    # Identities and credibility
    # -------------------------------------------------------------------------

    def ensure_identity(self, token: str, credibility: float, now: datetime) -> Identity:
        with self._identity_locks.for_key(token):
            identity = self._identities.get(token)
            if identity is None:
                identity = Identity(token=token, credibility=credibility, created_at=now, last_activity=now)
                self._identities[token] = identity
            return copy.copy(identity)

    def get_identity(self, token: str) -> Identity | None:
        identity = self._identities.get(token)
        return copy.copy(identity) if identity else None

    def list_pending_updates(self, claim_id: str, processed: bool = False) -> list[PendingCredibilityUpdate]:
        with self._data_lock:
            ids = list(self._pending_by_claim.get(claim_id, []))
            return [copy.copy(self._pending[i]) for i in ids if self._pending[i].processed == processed]

    def list_unsettled_claims(self) -> list[str]:
        with self._data_lock:
            unsettled = {p.claim_id for p in self._pending.values() if not p.processed}
            return [
                claim_id
                for claim_id in sorted(unsettled)
                if self._claims[claim_id].status in (ClaimStatus.VERIFIED, ClaimStatus.DISPUTED)
            ]

    def apply_credibility_update(self, update_id: int, settle: CredibilitySettler) -> Identity | None:
        pending = self._pending.get(update_id)
        if pending is None:
            raise NotFoundError("PendingCredibilityUpdate", str(update_id))

        with self._identity_locks.for_key(pending.identity_token):
            pending = self._pending[update_id]
            if pending.processed:
                return None
            current = self._identities.get(pending.identity_token)
            updated = settle(copy.copy(pending), copy.copy(current) if current else None)
            with self._data_lock:
                self._identities[pending.identity_token] = copy.copy(updated)
                self._pending[update_id] = replace(pending, processed=True)
            return copy.copy(updated)

    # -------------------------------------------------------------------------
    # Rate limits
    # -------------------------------------------------------------------------

    def get_rate_limit(self, token: str) -> RateLimitRecord | None:
        record = self._rate_limits.get(token)
        return copy.copy(record) if record else None

    def update_rate_limit(self, token: str, decide: RateLimitDecider[T]) -> T:
        with self._rate_locks.for_key(token):
            current = self._rate_limits.get(token)
            record, result = decide(copy.copy(current) if current else None)
            if record is not None:
                self._rate_limits[token] = copy.copy(record)
            return result

    # -------------------------------------------------------------------------
    # Reference graph
    # -------------------------------------------------------------------------

    def _adjacency_locked(self) -> dict[str, set[str]]:
        adjacency: dict[str, set[str]] = {}
        for source_id, target_id in self._edges:
            adjacency.setdefault(source_id, set()).add(target_id)
        return adjacency

    def add_edges(
        self,
        source_id: str,
        target_ids: Sequence[str],
        select: EdgeSelector,
        now: datetime,
    ) -> list[ReferenceEdge]:
        with self._graph_lock:
            # delete_claim flips the status under this lock
            source = self._claims.get(source_id)
            if source is None:
                raise NotFoundError("Claim", source_id)
            if source.status == ClaimStatus.DELETED:
                raise ConflictError(f"Claim is deleted: {source_id}", existing_id=source_id)

            live = []
            for target_id in dict.fromkeys(target_ids):
                claim = self._claims.get(target_id)
                if claim is not None and claim.status != ClaimStatus.DELETED:
                    live.append(target_id)

            added = []
            for target_id in select(self._adjacency_locked(), live):
                key = (source_id, target_id)
                if key in self._edges:
                    continue
                edge = ReferenceEdge(source_id=source_id, target_id=target_id, created_at=now)
                self._edges[key] = edge
                added.append(edge)
            return added

    def edges_for(self, claim_id: str) -> list[ReferenceEdge]:
        with self._graph_lock:
            return [e for key, e in self._edges.items() if claim_id in key]

    def all_edges(self) -> list[ReferenceEdge]:
        with self._graph_lock:
            return list(self._edges.values())

    def _remove_edges_locked(self, claim_id: str) -> EdgeRemoval:
        removal = EdgeRemoval(claim_id=claim_id)
        for source_id, target_id in list(self._edges):
            if target_id == claim_id:
                removal.removed_incoming.append(source_id)
            elif source_id == claim_id:
                removal.removed_outgoing.append(target_id)
            else:
                continue
            del self._edges[(source_id, target_id)]
        return removal

    def remove_edges_for(self, claim_id: str) -> EdgeRemoval:
        with self._graph_lock:
            return self._remove_edges_locked(claim_id)

    def clear(self) -> None:
        """Drop all records."""
        with self._data_lock, self._graph_lock:
            self._claims.clear()
            self._votes.clear()
            self._votes_by_claim.clear()
            self._identities.clear()
            self._pending.clear()
            self._pending_by_claim.clear()
            self._rate_limits.clear()
            self._edges.clear()
