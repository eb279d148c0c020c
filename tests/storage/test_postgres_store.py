"""Tests for rumormill.storage.postgres.PostgresStore.

Unit tests run against a mocked cursor and check the SQL contract (locking
clauses, conflict handling, row mapping). The ``requires_postgres`` class at
the bottom exercises a real database when one is configured.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from rumormill.core.exceptions import ConflictError, DuplicateVoteError, NotFoundError
from rumormill.core.models import (
    Claim,
    ClaimStatus,
    Identity,
    PendingCredibilityUpdate,
    RateLimitRecord,
    Vote,
    VoteCommit,
    VoteValue,
)
from rumormill.storage.base import ClaimSort
from rumormill.storage.postgres import PostgresStore

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def claim_row(**overrides):
    row = {
        "id": "c-1",
        "content": "x",
        "created_at": NOW,
        "updated_at": None,
        "truth_score": 0.5,
        "status": "open",
        "vote_count": 0,
        "total_credibility_weight": 0.0,
        "weighted_vote_sum": 0.0,
        "locked_at": None,
    }
    row.update(overrides)
    return row


def pending_row(**overrides):
    row = {
        "id": 7,
        "identity_token": "tok",
        "claim_id": "c-1",
        "vote_value": 1,
        "processed": False,
        "created_at": NOW,
    }
    row.update(overrides)
    return row


def executed_sql(cursor) -> list[str]:
    return [" ".join(c.args[0].split()) for c in cursor.execute.call_args_list]


def settle_vote(claim: Claim) -> VoteCommit:
    claim.vote_count += 1
    return VoteCommit(
        claim=claim,
        vote=Vote(vote_hash="h", claim_id=claim.claim_id, value=VoteValue.VERIFY, voter_credibility=0.5),
        pending=PendingCredibilityUpdate(identity_token="tok", claim_id=claim.claim_id, vote_value=VoteValue.VERIFY),
    )


@pytest.fixture
def pg() -> PostgresStore:
    return PostgresStore()


class TestClaims:
    def test_backend_type(self, pg):
        assert pg.backend_type == "postgres"

    def test_get_claim_maps_row(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = claim_row(status="verified", truth_score=0.8, vote_count=5)
        claim = pg.get_claim("c-1")
        assert claim.status == ClaimStatus.VERIFIED
        assert claim.truth_score == 0.8
        assert claim.vote_count == 5

    def test_get_claim_missing(self, pg, mock_cursor):
        assert pg.get_claim("missing") is None

    def test_insert_conflict(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = None
        with pytest.raises(ConflictError):
            pg.insert_claim(Claim(claim_id="c-1", content="x"))

    def test_insert(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = {"id": "c-1"}
        claim = Claim(claim_id="c-1", content="x")
        assert pg.insert_claim(claim) is claim
        assert "ON CONFLICT (id) DO NOTHING" in executed_sql(mock_cursor)[0]

    def test_list_claims_order(self, pg, mock_cursor):
        mock_cursor.fetchall.return_value = [claim_row()]
        claims = pg.list_claims([ClaimStatus.OPEN], ClaimSort.CONTROVERSIAL, limit=5, offset=10)
        assert [c.claim_id for c in claims] == ["c-1"]
        sql = executed_sql(mock_cursor)[0]
        assert "ORDER BY ABS(truth_score - 0.5) ASC" in sql
        assert mock_cursor.execute.call_args.args[1] == (["open"], 5, 10)

    def test_count_by_status(self, pg, mock_cursor):
        mock_cursor.fetchall.return_value = [{"status": "open", "count": 3}, {"status": "deleted", "count": 1}]
        counts = pg.count_claims_by_status()
        assert counts[ClaimStatus.OPEN] == 3
        assert counts[ClaimStatus.DELETED] == 1
        assert counts[ClaimStatus.VERIFIED] == 0

    def test_delete_claim(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = claim_row()
        mock_cursor.fetchall.return_value = [
            {"source_id": "c-0", "target_id": "c-1"},
            {"source_id": "c-1", "target_id": "c-2"},
        ]

        def settle(claim: Claim) -> Claim:
            claim.status = ClaimStatus.DELETED
            return claim

        removal = pg.delete_claim("c-1", settle)

        assert removal.removed_incoming == ["c-0"]
        assert removal.removed_outgoing == ["c-2"]
        sql = executed_sql(mock_cursor)
        assert sql[0].endswith("FOR NO KEY UPDATE")
        assert "LOCK TABLE claim_references" in sql[2]

    def test_delete_missing(self, pg, mock_cursor):
        with pytest.raises(NotFoundError):
            pg.delete_claim("missing", lambda c: c)


class TestCommitVote:
    def test_commit(self, pg, mock_cursor):
        mock_cursor.fetchone.side_effect = [claim_row(), {"vote_hash": "h"}, {"id": 42}]

        commit = pg.commit_vote("c-1", "h", settle_vote)

        assert commit.pending.update_id == 42
        assert commit.claim.vote_count == 1
        sql = executed_sql(mock_cursor)
        assert "FOR NO KEY UPDATE" in sql[0]
        assert sql[1].startswith("INSERT INTO votes")
        assert sql[2].startswith("UPDATE claims")
        assert sql[3].startswith("INSERT INTO pending_credibility_updates")

    def test_duplicate(self, pg, mock_cursor):
        mock_cursor.fetchone.side_effect = [claim_row(), None]
        with pytest.raises(DuplicateVoteError):
            pg.commit_vote("c-1", "h", settle_vote)
        assert not any(s.startswith("UPDATE claims") for s in executed_sql(mock_cursor))

    def test_missing_claim(self, pg, mock_cursor):
        with pytest.raises(NotFoundError):
            pg.commit_vote("missing", "h", settle_vote)

    def test_has_vote(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = {"?column?": 1}
        assert pg.has_vote("h")


class TestCredibility:
    def test_apply_update(self, pg, mock_cursor):
        mock_cursor.fetchone.side_effect = [pending_row(), None]

        def settle(update, identity):
            assert identity is None
            return Identity(token="tok", credibility=0.55, total_votes=1, correct_votes=1)

        updated = pg.apply_credibility_update(7, settle)

        assert updated.credibility == 0.55
        sql = executed_sql(mock_cursor)
        assert sql[0].endswith("FOR UPDATE")
        assert "ON CONFLICT (token) DO UPDATE" in sql[2]
        assert sql[3].startswith("UPDATE pending_credibility_updates SET processed = TRUE")

    def test_processed_update_is_skipped(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = pending_row(processed=True)
        assert pg.apply_credibility_update(7, lambda u, i: i) is None
        assert len(executed_sql(mock_cursor)) == 1

    def test_unknown_update(self, pg, mock_cursor):
        with pytest.raises(NotFoundError):
            pg.apply_credibility_update(99, lambda u, i: i)

    def test_list_unsettled_claims(self, pg, mock_cursor):
        mock_cursor.fetchall.return_value = [{"id": "c-1"}]
        assert pg.list_unsettled_claims() == ["c-1"]
        sql = executed_sql(mock_cursor)[0]
        assert "NOT p.processed" in sql
        assert mock_cursor.execute.call_args.args[1] == (["verified", "disputed"],)


class TestRateLimits:
    def test_update_takes_advisory_lock(self, pg, mock_cursor):
        record = RateLimitRecord(identity_token="tok", hourly_votes=1, daily_votes=1, last_vote_at=NOW)
        result = pg.update_rate_limit("tok", lambda current: (record, "ok"))
        assert result == "ok"
        sql = executed_sql(mock_cursor)
        assert "pg_advisory_xact_lock" in sql[0]
        assert sql[2].startswith("INSERT INTO rate_limits")

    def test_denied_writes_nothing(self, pg, mock_cursor):
        pg.update_rate_limit("tok", lambda current: (None, "denied"))
        assert len(executed_sql(mock_cursor)) == 2


class TestEdges:
    def test_add_edges_filters_and_inserts(self, pg, mock_cursor):
        mock_cursor.fetchall.side_effect = [
            [{"id": "b"}],
            [{"source_id": "b", "target_id": "z"}],
        ]
        mock_cursor.fetchone.side_effect = [
            {"status": "open"},
            {"source_id": "a", "target_id": "b", "created_at": NOW},
        ]
        seen = {}

        def select(adjacency, live):
            seen["adjacency"] = adjacency
            seen["live"] = live
            return live

        added = pg.add_edges("a", ["b", "gone"], select, NOW)

        assert seen == {"adjacency": {"b": {"z"}}, "live": ["b"]}
        assert [(e.source_id, e.target_id) for e in added] == [("a", "b")]
        sql = executed_sql(mock_cursor)
        assert sql[0].startswith("LOCK TABLE claim_references")
        assert "FOR KEY SHARE" in sql[1]
        assert sql[-1].startswith("INSERT INTO claim_references")
        assert mock_cursor.execute.call_args.args[1] == ("a", "b", NOW)

    def test_add_no_edges(self, pg, mock_cursor):
        assert pg.add_edges("a", [], lambda adjacency, live: live, NOW) == []
        mock_cursor.execute.assert_not_called()

    def test_deleted_source_checked_under_graph_lock(self, pg, mock_cursor):
        mock_cursor.fetchone.return_value = {"status": "deleted"}
        with pytest.raises(ConflictError):
            pg.add_edges("a", ["b"], lambda adjacency, live: live, NOW)
        sql = executed_sql(mock_cursor)
        assert sql[0].startswith("LOCK TABLE claim_references")
        assert not any(s.startswith("INSERT") for s in sql)

    def test_missing_source(self, pg, mock_cursor):
        with pytest.raises(NotFoundError):
            pg.add_edges("a", ["b"], lambda adjacency, live: live, NOW)
        assert len(executed_sql(mock_cursor)) == 2


@pytest.mark.requires_postgres
class TestPostgresIntegration:
    """Round trip against a migrated database (RUMORMILL_TEST_POSTGRES=1)."""

    def test_vote_and_finalize(self, clock):
        import uuid

        from rumormill.core.config import CoreSettings, set_config
        from rumormill.core.lifecycle import ClaimService

        # Connection settings come from the RUMORMILL_DB_* environment
        config = CoreSettings(storage_backend="postgres", identity_salt=str(uuid.uuid4()))
        set_config(config)
        service = ClaimService.from_config(config, clock=clock)
        claim = service.create_claim("integration claim")
        for i in range(5):
            outcome = service.cast_vote(claim.claim_id, f"tok-{uuid.uuid4()}", VoteValue.VERIFY, 0.6)
        assert outcome.locked
        assert service.get_claim(claim.claim_id).status == ClaimStatus.VERIFIED
        assert service.store.list_pending_updates(claim.claim_id) == []
