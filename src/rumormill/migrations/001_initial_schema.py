# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Migration 001: Initial schema.

Claims, votes, identities, pending credibility updates, rate limits and the
claim reference graph.
"""

version = "001"
description = "initial_schema"


def up(conn) -> None:
    """Create the RumorMill schema."""
    cur = conn.cursor()
    try:
        # ------------------------------------------------------------------
        # Claims
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS claims (
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ,
                truth_score DOUBLE PRECISION NOT NULL DEFAULT 0.5
                    CHECK (truth_score >= 0 AND truth_score <= 1),
                status TEXT NOT NULL DEFAULT 'open'
                    CHECK (status IN ('open', 'verified', 'disputed', 'deleted')),
                vote_count INTEGER NOT NULL DEFAULT 0 CHECK (vote_count >= 0),
                total_credibility_weight DOUBLE PRECISION NOT NULL DEFAULT 0
                    CHECK (total_credibility_weight >= 0),
                weighted_vote_sum DOUBLE PRECISION NOT NULL DEFAULT 0,
                locked_at TIMESTAMPTZ
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_claims_status ON claims(status)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_claims_created ON claims(created_at DESC)")

        # ------------------------------------------------------------------
        # Votes (vote_hash uniqueness enforces one vote per identity per claim)
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS votes (
                vote_hash TEXT PRIMARY KEY,
                claim_id TEXT NOT NULL REFERENCES claims(id),
                value SMALLINT NOT NULL CHECK (value IN (1, -1)),
                voter_credibility DOUBLE PRECISION NOT NULL
                    CHECK (voter_credibility >= 0 AND voter_credibility <= 1),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_votes_claim ON votes(claim_id, created_at)")

        # ------------------------------------------------------------------
        # Identities
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS identities (
                token TEXT PRIMARY KEY,
                credibility DOUBLE PRECISION NOT NULL DEFAULT 0.5
                    CHECK (credibility >= 0 AND credibility <= 1),
                total_votes INTEGER NOT NULL DEFAULT 0,
                correct_votes INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                last_activity TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        # ------------------------------------------------------------------
        # Pending credibility updates
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS pending_credibility_updates (
                id SERIAL PRIMARY KEY,
                identity_token TEXT NOT NULL,
                claim_id TEXT NOT NULL REFERENCES claims(id),
                vote_value SMALLINT NOT NULL CHECK (vote_value IN (1, -1)),
                processed BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_pending_claim ON pending_credibility_updates(claim_id) "
            "WHERE NOT processed"
        )

        # ------------------------------------------------------------------
        # Rate limits
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS rate_limits (
                identity_token TEXT PRIMARY KEY,
                hourly_votes INTEGER NOT NULL DEFAULT 0,
                daily_votes INTEGER NOT NULL DEFAULT 0,
                last_vote_at TIMESTAMPTZ,
                hour_reset_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                day_reset_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        # ------------------------------------------------------------------
        # Reference graph
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS claim_references (
                source_id TEXT NOT NULL REFERENCES claims(id),
                target_id TEXT NOT NULL REFERENCES claims(id),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                PRIMARY KEY (source_id, target_id),
                CHECK (source_id <> target_id)
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_references_target ON claim_references(target_id)")
    finally:
        cur.close()


def down(conn) -> None:
    """Drop the RumorMill schema."""
    cur = conn.cursor()
    try:
        cur.execute("DROP TABLE IF EXISTS claim_references")
        cur.execute("DROP TABLE IF EXISTS rate_limits")
        cur.execute("DROP TABLE IF EXISTS pending_credibility_updates")
        cur.execute("DROP TABLE IF EXISTS identities")
        cur.execute("DROP TABLE IF EXISTS votes")
        cur.execute("DROP TABLE IF EXISTS claims")
    finally:
        cur.close()
