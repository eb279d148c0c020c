# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""PostgreSQL record store.

Each store operation runs in a single ``get_cursor()`` transaction. Per-claim
serialization uses ``SELECT ... FOR NO KEY UPDATE`` on the claim row, which
still lets reference inserts take their foreign-key locks. Vote uniqueness
rides on the ``votes.vote_hash`` primary key. Rate limits are serialized
per identity with a transaction-scoped advisory lock, and graph writers take
``SHARE ROW EXCLUSIVE`` on ``claim_references`` for snapshot plus insert.

Schema: ``rumormill/migrations/001_initial_schema.py``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.db import get_cursor
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
    VoteValue,
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

ORDER_BY = {
    ClaimSort.RECENT: "created_at DESC",
    ClaimSort.TRENDING: "vote_count DESC, created_at DESC",
    ClaimSort.CONTROVERSIAL: "ABS(truth_score - 0.5) ASC, created_at DESC",
}

LOCK_GRAPH = "LOCK TABLE claim_references IN SHARE ROW EXCLUSIVE MODE"


# =============================================================================
# ROW MAPPING
# =============================================================================


def _row_to_claim(row: dict[str, Any]) -> Claim:
    return Claim(
        claim_id=row["id"],
        content=row["content"],
        created_at=row["created_at"],
        truth_score=float(row["truth_score"]),
        status=ClaimStatus(row["status"]),
        vote_count=int(row["vote_count"]),
        total_credibility_weight=float(row["total_credibility_weight"]),
        weighted_vote_sum=float(row["weighted_vote_sum"]),
        locked_at=row.get("locked_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_identity(row: dict[str, Any]) -> Identity:
    return Identity(
        token=row["token"],
        credibility=float(row["credibility"]),
        total_votes=int(row["total_votes"]),
        correct_votes=int(row["correct_votes"]),
        created_at=row["created_at"],
        last_activity=row["last_activity"],
    )


def _row_to_vote(row: dict[str, Any]) -> Vote:
    return Vote(
        vote_hash=row["vote_hash"],
        claim_id=row["claim_id"],
        value=VoteValue(row["value"]),
        voter_credibility=float(row["voter_credibility"]),
        created_at=row["created_at"],
    )


def _row_to_pending(row: dict[str, Any]) -> PendingCredibilityUpdate:
    return PendingCredibilityUpdate(
        update_id=row["id"],
        identity_token=row["identity_token"],
        claim_id=row["claim_id"],
        vote_value=VoteValue(row["vote_value"]),
        processed=bool(row["processed"]),
        created_at=row["created_at"],
    )


def _row_to_rate_limit(row: dict[str, Any]) -> RateLimitRecord:
    return RateLimitRecord(
        identity_token=row["identity_token"],
        hourly_votes=int(row["hourly_votes"]),
        daily_votes=int(row["daily_votes"]),
        last_vote_at=row.get("last_vote_at"),
        hour_reset_at=row["hour_reset_at"],
        day_reset_at=row["day_reset_at"],
    )


def _row_to_edge(row: dict[str, Any]) -> ReferenceEdge:
    return ReferenceEdge(
        source_id=row["source_id"],
        target_id=row["target_id"],
        created_at=row["created_at"],
    )


def _write_claim_state(cur: Any, claim: Claim) -> None:
    cur.execute(
        """
        UPDATE claims
        SET truth_score = %s, status = %s, vote_count = %s,
            total_credibility_weight = %s, weighted_vote_sum = %s,
            locked_at = %s, updated_at = %s
        WHERE id = %s
        """,
        (
            claim.truth_score,
            claim.status.value,
            claim.vote_count,
            claim.total_credibility_weight,
            claim.weighted_vote_sum,
            claim.locked_at,
            claim.updated_at,
            claim.claim_id,
        ),
    )


def _delete_edges(cur: Any, claim_id: str) -> EdgeRemoval:
    cur.execute(
        "DELETE FROM claim_references WHERE source_id = %s OR target_id = %s RETURNING source_id, target_id",
        (claim_id, claim_id),
    )
    removal = EdgeRemoval(claim_id=claim_id)
    for row in cur.fetchall():
        if row["target_id"] == claim_id:
            removal.removed_incoming.append(row["source_id"])
        else:
            removal.removed_outgoing.append(row["target_id"])
    return removal


class PostgresStore(ClaimStore):
    """Record store backed by PostgreSQL through the shared connection pool."""

    @property
    def backend_type(self) -> str:
        return "postgres"

    # -------------------------------------------------------------------------
    # Claims
    # -------------------------------------------------------------------------

    def insert_claim(self, claim: Claim) -> Claim:
        with get_cursor() as cur:
            cur.execute(
                """
                INSERT INTO claims (
                    id, content, created_at, updated_at, truth_score, status,
                    vote_count, total_credibility_weight, weighted_vote_sum, locked_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                RETURNING id
                """,
                (
                    claim.claim_id,
                    claim.content,
                    claim.created_at,
                    claim.updated_at,
                    claim.truth_score,
                    claim.status.value,
                    claim.vote_count,
                    claim.total_credibility_weight,
                    claim.weighted_vote_sum,
                    claim.locked_at,
                ),
            )
            if cur.fetchone() is None:
                raise ConflictError(f"Claim already exists: {claim.claim_id}", existing_id=claim.claim_id)
        return claim

    def get_claim(self, claim_id: str) -> Claim | None:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s", (claim_id,))
            row = cur.fetchone()
        return _row_to_claim(row) if row else None

    def list_claims(
        self,
        statuses: Sequence[ClaimStatus],
        sort: ClaimSort = ClaimSort.RECENT,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Claim]:
        order_by = ORDER_BY[ClaimSort(sort)]
        with get_cursor() as cur:
            cur.execute(
                f"SELECT * FROM claims WHERE status = ANY(%s) ORDER BY {order_by} LIMIT %s OFFSET %s",
                ([ClaimStatus(s).value for s in statuses], limit, offset),
            )
            rows = cur.fetchall()
        return [_row_to_claim(row) for row in rows]

    def count_claims_by_status(self) -> dict[ClaimStatus, int]:
        counts = {status: 0 for status in ClaimStatus}
        with get_cursor() as cur:
            cur.execute("SELECT status, COUNT(*) AS count FROM claims GROUP BY status")
            for row in cur.fetchall():
                counts[ClaimStatus(row["status"])] = int(row["count"])
        return counts

    def delete_claim(self, claim_id: str, settle: ClaimSettler) -> EdgeRemoval:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s FOR NO KEY UPDATE", (claim_id,))
            row = cur.fetchone()
            if row is None:
                raise NotFoundError("Claim", claim_id)
            _write_claim_state(cur, settle(_row_to_claim(row)))
            cur.execute(LOCK_GRAPH)
            return _delete_edges(cur, claim_id)

    # -------------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------------

    def commit_vote(self, claim_id: str, vote_hash: str, settle: VoteSettler) -> VoteCommit:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s FOR NO KEY UPDATE", (claim_id,))
            row = cur.fetchone()
            if row is None:
                raise NotFoundError("Claim", claim_id)

            commit = settle(_row_to_claim(row))
            vote = commit.vote
            cur.execute(
                """
                INSERT INTO votes (vote_hash, claim_id, value, voter_credibility, created_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (vote_hash) DO NOTHING
                RETURNING vote_hash
                """,
                (vote_hash, claim_id, int(vote.value), vote.voter_credibility, vote.created_at),
            )
            if cur.fetchone() is None:
                raise DuplicateVoteError(claim_id)

            _write_claim_state(cur, commit.claim)

            pending = commit.pending
            cur.execute(
                """
                INSERT INTO pending_credibility_updates (identity_token, claim_id, vote_value, processed, created_at)
                VALUES (%s, %s, %s, FALSE, %s)
                RETURNING id
                """,
                (pending.identity_token, claim_id, int(pending.vote_value), pending.created_at),
            )
            commit.pending = replace(pending, update_id=cur.fetchone()["id"])
        return commit

    def has_vote(self, vote_hash: str) -> bool:
        with get_cursor() as cur:
            cur.execute("SELECT 1 FROM votes WHERE vote_hash = %s", (vote_hash,))
            return cur.fetchone() is not None

    def list_votes(self, claim_id: str) -> list[Vote]:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM votes WHERE claim_id = %s ORDER BY created_at", (claim_id,))
            rows = cur.fetchall()
        return [_row_to_vote(row) for row in rows]

    # -------------------------------------------------------------------------
    # Identities and credibility
    # -------------------------------------------------------------------------

    def ensure_identity(self, token: str, credibility: float, now: datetime) -> Identity:
        with get_cursor() as cur:
            cur.execute(
                """
                INSERT INTO identities (token, credibility, created_at, last_activity)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (token) DO NOTHING
                """,
                (token, credibility, now, now),
            )
            cur.execute("SELECT * FROM identities WHERE token = %s", (token,))
            row = cur.fetchone()
        return _row_to_identity(row)

    def get_identity(self, token: str) -> Identity | None:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM identities WHERE token = %s", (token,))
            row = cur.fetchone()
        return _row_to_identity(row) if row else None

    def list_pending_updates(self, claim_id: str, processed: bool = False) -> list[PendingCredibilityUpdate]:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM pending_credibility_updates WHERE claim_id = %s AND processed = %s ORDER BY id",
                (claim_id, processed),
            )
            rows = cur.fetchall()
        return [_row_to_pending(row) for row in rows]

    def list_unsettled_claims(self) -> list[str]:
        with get_cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT c.id FROM claims c
                JOIN pending_credibility_updates p ON p.claim_id = c.id
                WHERE NOT p.processed AND c.status = ANY(%s)
                ORDER BY c.id
                """,
                ([ClaimStatus.VERIFIED.value, ClaimStatus.DISPUTED.value],),
            )
            rows = cur.fetchall()
        return [row["id"] for row in rows]

    def apply_credibility_update(self, update_id: int, settle: CredibilitySettler) -> Identity | None:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM pending_credibility_updates WHERE id = %s FOR UPDATE", (update_id,))
            row = cur.fetchone()
            if row is None:
                raise NotFoundError("PendingCredibilityUpdate", str(update_id))
            pending = _row_to_pending(row)
            if pending.processed:
                return None

            cur.execute("SELECT * FROM identities WHERE token = %s FOR UPDATE", (pending.identity_token,))
            identity_row = cur.fetchone()
            updated = settle(pending, _row_to_identity(identity_row) if identity_row else None)

            cur.execute(
                """
                INSERT INTO identities (token, credibility, total_votes, correct_votes, created_at, last_activity)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (token) DO UPDATE SET
                    credibility = EXCLUDED.credibility,
                    total_votes = EXCLUDED.total_votes,
                    correct_votes = EXCLUDED.correct_votes,
                    last_activity = EXCLUDED.last_activity
                """,
                (
                    updated.token,
                    updated.credibility,
                    updated.total_votes,
                    updated.correct_votes,
                    updated.created_at,
                    updated.last_activity,
                ),
            )
            cur.execute("UPDATE pending_credibility_updates SET processed = TRUE WHERE id = %s", (update_id,))
        return updated

    # -------------------------------------------------------------------------
    # Rate limits
    # -------------------------------------------------------------------------

    def get_rate_limit(self, token: str) -> RateLimitRecord | None:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM rate_limits WHERE identity_token = %s", (token,))
            row = cur.fetchone()
        return _row_to_rate_limit(row) if row else None

    def update_rate_limit(self, token: str, decide: RateLimitDecider[T]) -> T:
        with get_cursor() as cur:
            # Row locks cannot cover an identity whose record does not exist yet
            cur.execute("SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))", (f"rate_limit:{token}",))
            cur.execute("SELECT * FROM rate_limits WHERE identity_token = %s", (token,))
            row = cur.fetchone()
            record, result = decide(_row_to_rate_limit(row) if row else None)
            if record is not None:
                cur.execute(
                    """
                    INSERT INTO rate_limits (
                        identity_token, hourly_votes, daily_votes,
                        last_vote_at, hour_reset_at, day_reset_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (identity_token) DO UPDATE SET
                        hourly_votes = EXCLUDED.hourly_votes,
                        daily_votes = EXCLUDED.daily_votes,
                        last_vote_at = EXCLUDED.last_vote_at,
                        hour_reset_at = EXCLUDED.hour_reset_at,
                        day_reset_at = EXCLUDED.day_reset_at
                    """,
                    (
                        record.identity_token,
                        record.hourly_votes,
                        record.daily_votes,
                        record.last_vote_at,
                        record.hour_reset_at,
                        record.day_reset_at,
                    ),
                )
        return result

    # -------------------------------------------------------------------------
    # Reference graph
    # -------------------------------------------------------------------------

    def add_edges(
        self,
        source_id: str,
        target_ids: Sequence[str],
        select: EdgeSelector,
        now: datetime,
    ) -> list[ReferenceEdge]:
        requested = list(dict.fromkeys(target_ids))
        if not requested:
            return []

        with get_cursor() as cur:
            cur.execute(LOCK_GRAPH)
            # A delete that committed first is visible here; one still waiting
            # on LOCK_GRAPH removes these edges after this commit
            cur.execute("SELECT status FROM claims WHERE id = %s FOR KEY SHARE", (source_id,))
            source = cur.fetchone()
            if source is None:
                raise NotFoundError("Claim", source_id)
            if source["status"] == ClaimStatus.DELETED.value:
                raise ConflictError(f"Claim is deleted: {source_id}", existing_id=source_id)

            cur.execute(
                "SELECT id FROM claims WHERE id = ANY(%s) AND status <> %s",
                (requested, ClaimStatus.DELETED.value),
            )
            found = {row["id"] for row in cur.fetchall()}
            live = [t for t in requested if t in found]

            cur.execute("SELECT source_id, target_id FROM claim_references")
            adjacency: dict[str, set[str]] = {}
            for row in cur.fetchall():
                adjacency.setdefault(row["source_id"], set()).add(row["target_id"])

            added = []
            for target_id in select(adjacency, live):
                cur.execute(
                    """
                    INSERT INTO claim_references (source_id, target_id, created_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT DO NOTHING
                    RETURNING source_id, target_id, created_at
                    """,
                    (source_id, target_id, now),
                )
                row = cur.fetchone()
                if row is not None:
                    added.append(_row_to_edge(row))
        return added

    def edges_for(self, claim_id: str) -> list[ReferenceEdge]:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM claim_references WHERE source_id = %s OR target_id = %s ORDER BY created_at",
                (claim_id, claim_id),
            )
            rows = cur.fetchall()
        return [_row_to_edge(row) for row in rows]

    def all_edges(self) -> list[ReferenceEdge]:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claim_references ORDER BY created_at")
            rows = cur.fetchall()
        return [_row_to_edge(row) for row in rows]

    def remove_edges_for(self, claim_id: str) -> EdgeRemoval:
        with get_cursor() as cur:
            cur.execute(LOCK_GRAPH)
            return _delete_edges(cur, claim_id)
