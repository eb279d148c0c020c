# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Record store contract.

The store persists claims, votes, identities, pending credibility updates,
rate-limit records and reference edges. Operations that must be atomic take a
callback: the store runs it while holding the relevant lock (a per-claim lock,
a per-identity lock, or the graph lock) and persists its result as one unit.
If the callback raises, nothing is written and the exception propagates.

Implementations:
- ``rumormill.storage.memory.InMemoryStore`` for tests and single processes
- ``rumormill.storage.postgres.PostgresStore`` for PostgreSQL via psycopg2
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum
from typing import TypeVar

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

T = TypeVar("T")

# Settle callbacks
VoteSettler = Callable[[Claim], VoteCommit]
CredibilitySettler = Callable[[PendingCredibilityUpdate, Identity | None], Identity]
RateLimitDecider = Callable[[RateLimitRecord | None], tuple[RateLimitRecord | None, T]]
ClaimSettler = Callable[[Claim], Claim]
# (adjacency snapshot, live targets) -> targets to insert
EdgeSelector = Callable[[dict[str, set[str]], list[str]], list[str]]


class ClaimSort(str, Enum):
    """Orderings for claim listings."""

    RECENT = "recent"  # newest first
    TRENDING = "trending"  # most votes first
    CONTROVERSIAL = "controversial"  # score closest to 0.5 first


class ClaimStore(ABC):
    """Abstract base class for record stores."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Type of store (e.g., 'memory', 'postgres')."""
        pass

    # -------------------------------------------------------------------------
    # Claims
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_claim(self, claim: Claim) -> Claim:
        """Persist a new claim.

        Raises:
            ConflictError: If the claim id is taken.
        """
        pass

    @abstractmethod
    def get_claim(self, claim_id: str) -> Claim | None:
        pass

    @abstractmethod
    def list_claims(
        self,
        statuses: Sequence[ClaimStatus],
        sort: ClaimSort = ClaimSort.RECENT,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Claim]:
        pass

    @abstractmethod
    def count_claims_by_status(self) -> dict[ClaimStatus, int]:
        pass

    @abstractmethod
    def delete_claim(self, claim_id: str, settle: ClaimSettler) -> EdgeRemoval:
        """Apply ``settle`` under the claim lock, then prune the claim's edges.

        The status change and the edge removal commit together.

        Raises:
            NotFoundError: If the claim does not exist.
        """
        pass

    # -------------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------------

    @abstractmethod
    def commit_vote(self, claim_id: str, vote_hash: str, settle: VoteSettler) -> VoteCommit:
        """Record a vote under the claim's exclusive lock.

        ``settle`` receives the current claim and returns the updated claim
        with the vote and pending update to write. It runs before the
        duplicate check, so a locked claim is reported ahead of a duplicate.
        The pending update's ``update_id`` is filled in on return.

        Raises:
            NotFoundError: If the claim does not exist.
            DuplicateVoteError: If ``vote_hash`` was already recorded.
        """
        pass

    @abstractmethod
    def has_vote(self, vote_hash: str) -> bool:
        pass

    @abstractmethod
    def list_votes(self, claim_id: str) -> list[Vote]:
        """Votes on a claim, oldest first."""
        pass

    # -------------------------------------------------------------------------
    # Identities and credibility
    # -------------------------------------------------------------------------

    @abstractmethod
    def ensure_identity(self, token: str, credibility: float, now: datetime) -> Identity:
        """Return the identity for ``token``, creating it if unseen."""
        pass

    @abstractmethod
    def get_identity(self, token: str) -> Identity | None:
        pass

    @abstractmethod
    def list_pending_updates(self, claim_id: str, processed: bool = False) -> list[PendingCredibilityUpdate]:
        pass

    @abstractmethod
    def list_unsettled_claims(self) -> list[str]:
        """Ids of verified or disputed claims that still have unprocessed updates."""
        pass

    @abstractmethod
    def apply_credibility_update(self, update_id: int, settle: CredibilitySettler) -> Identity | None:
        """Consume one pending update.

        Under the identity's lock: if the update is still unprocessed, call
        ``settle(update, identity)``, write the returned identity and flag the
        update processed. Returns None if it had already been processed.
        """
        pass

    # -------------------------------------------------------------------------
    # Rate limits
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_rate_limit(self, token: str) -> RateLimitRecord | None:
        pass

    @abstractmethod
    def update_rate_limit(self, token: str, decide: RateLimitDecider[T]) -> T:
        """Run ``decide`` under the identity's rate-limit lock.

        ``decide`` returns ``(record_to_write_or_None, result)``; the record is
        persisted before the lock is released and ``result`` is returned.
        """
        pass

    # -------------------------------------------------------------------------
    # Reference graph
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_edges(
        self,
        source_id: str,
        target_ids: Sequence[str],
        select: EdgeSelector,
        now: datetime,
    ) -> list[ReferenceEdge]:
        """Insert edges from ``source_id`` under the graph lock.

        The source is re-checked under the lock. ``select`` receives a
        snapshot of the adjacency and the targets that exist and are not
        deleted, and returns the targets to link. New edges are stamped
        ``now``.

        Raises:
            NotFoundError: If the source claim does not exist.
            ConflictError: If the source claim is deleted.
        """
        pass

    @abstractmethod
    def edges_for(self, claim_id: str) -> list[ReferenceEdge]:
        """Edges where the claim is source or target."""
        pass

    @abstractmethod
    def all_edges(self) -> list[ReferenceEdge]:
        pass

    @abstractmethod
    def remove_edges_for(self, claim_id: str) -> EdgeRemoval:
        pass
