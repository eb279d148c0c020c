"""Tests for rumormill.core.abuse_guard.

Tests cover:
- Quadratic dampening of low-credibility weight
- Minimum interval, hourly and daily limits with lazy window resets
- Slot consumption (allowed attempts only), refunds and wait hints
- Advisory suspicion flags
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from rumormill.core.abuse_guard import (
    DAILY_REASON,
    HOURLY_REASON,
    WAIT_REASON,
    AbuseGuard,
    RateLimitPolicy,
    SuspicionFlag,
    assess_identity,
    effective_weight,
    evaluate_rate_limit,
    refund_slot,
)
from rumormill.core.exceptions import RateLimitedError, ValidationException
from rumormill.core.models import Identity, RateLimitRecord


@pytest.fixture
def guard(store, clock) -> AbuseGuard:
    return AbuseGuard(store, clock=clock)


# ============================================================================
# Vote weight
# ============================================================================


class TestEffectiveWeight:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (1.0, 1.0),
            (0.6, 0.6),
            (0.2, 0.2),
            (0.1, 0.05),
            (0.02, 0.002),
            (0.0, 0.0),
        ],
    )
    def test_values(self, raw, expected):
        assert effective_weight(raw) == pytest.approx(expected)

    def test_never_exceeds_raw(self):
        for i in range(101):
            raw = i / 100
            assert effective_weight(raw) <= raw + 1e-12

    def test_monotonic(self):
        weights = [effective_weight(i / 100) for i in range(101)]
        assert weights == sorted(weights)

    def test_continuous_at_threshold(self):
        assert effective_weight(0.2 - 1e-9) == pytest.approx(0.2, abs=1e-6)

    def test_invalid_input(self):
        with pytest.raises(ValidationException):
            effective_weight(1.5)

    def test_guard_uses_configured_threshold(self, store):
        guard = AbuseGuard(store, low_credibility_threshold=0.5)
        assert guard.effective_weight(0.25) == pytest.approx(0.125)


# ============================================================================
# Rate limits
# ============================================================================


class TestEvaluateRateLimit:
    def test_fresh_identity_allowed(self, clock):
        record, result = evaluate_rate_limit(None, "tok", clock.now, RateLimitPolicy())
        assert result.allowed
        assert result.remaining_hourly == 10
        assert result.remaining_daily == 50
        assert record.last_vote_at is None
        assert record.hour_reset_at == clock.now

    def test_interval(self, clock):
        record = RateLimitRecord(
            identity_token="tok",
            hourly_votes=1,
            daily_votes=1,
            last_vote_at=clock.now - timedelta(milliseconds=500),
            hour_reset_at=clock.now,
            day_reset_at=clock.now,
        )
        _, result = evaluate_rate_limit(record, "tok", clock.now, RateLimitPolicy())
        assert not result.allowed
        assert result.reason == WAIT_REASON
        assert result.wait_time_ms == 1500

    def test_windows_reset_lazily(self, clock):
        start = clock.now - timedelta(hours=25)
        record = RateLimitRecord(
            identity_token="tok",
            hourly_votes=10,
            daily_votes=50,
            last_vote_at=start,
            hour_reset_at=start,
            day_reset_at=start,
        )
        rolled, result = evaluate_rate_limit(record, "tok", clock.now, RateLimitPolicy())
        assert result.allowed
        assert rolled.hourly_votes == 0
        assert rolled.daily_votes == 0
        assert rolled.hour_reset_at == clock.now

    def test_result_to_dict(self, clock):
        _, result = evaluate_rate_limit(None, "tok", clock.now, RateLimitPolicy())
        assert result.to_dict() == {"allowed": True, "remaining_hourly": 10, "remaining_daily": 50}


class TestAbuseGuardRateLimit:
    def test_check_does_not_consume(self, guard, store):
        assert guard.check_rate_limit("tok").allowed
        assert guard.check_rate_limit("tok").remaining_hourly == 10
        assert store.get_rate_limit("tok") is None

    def test_acquire_consumes(self, guard, store, clock):
        result = guard.acquire_vote_slot("tok")
        assert result.allowed
        assert result.remaining_hourly == 9
        assert result.remaining_daily == 49

        record = store.get_rate_limit("tok")
        assert record.hourly_votes == 1
        assert record.daily_votes == 1
        assert record.last_vote_at == clock.now

    def test_second_vote_too_soon(self, guard, clock):
        guard.acquire_vote_slot("tok")
        clock.advance(seconds=1)
        result = guard.acquire_vote_slot("tok")
        assert not result.allowed
        assert result.reason == WAIT_REASON
        assert result.wait_time_ms == 1000

    def test_denied_attempt_writes_nothing(self, guard, store, clock):
        guard.acquire_vote_slot("tok")
        before = store.get_rate_limit("tok")
        clock.advance(milliseconds=100)
        guard.acquire_vote_slot("tok")
        assert store.get_rate_limit("tok") == before

    def test_eleventh_vote_in_hour_denied(self, guard, clock):
        for _ in range(10):
            assert guard.acquire_vote_slot("tok").allowed
            clock.advance(seconds=3)

        result = guard.acquire_vote_slot("tok")
        assert not result.allowed
        assert result.reason == HOURLY_REASON
        assert result.remaining_hourly == 0
        assert result.remaining_daily == 40
        # Wait until the hour window that opened with the first vote ends
        assert result.wait_time_ms == (3600 - 30) * 1000

    def test_hour_window_resets(self, guard, clock):
        for _ in range(10):
            guard.acquire_vote_slot("tok")
            clock.advance(seconds=3)
        clock.advance(hours=1)

        result = guard.acquire_vote_slot("tok")
        assert result.allowed
        assert result.remaining_hourly == 9
        assert result.remaining_daily == 39

    def test_daily_limit(self, store, clock):
        guard = AbuseGuard(store, policy=RateLimitPolicy(max_per_hour=5, max_per_day=6), clock=clock)
        for _ in range(5):
            assert guard.acquire_vote_slot("tok").allowed
            clock.advance(seconds=3)
        clock.advance(hours=1)
        assert guard.acquire_vote_slot("tok").allowed
        clock.advance(seconds=3)

        result = guard.acquire_vote_slot("tok")
        assert not result.allowed
        assert result.reason == DAILY_REASON
        assert result.remaining_daily == 0
        assert result.wait_time_ms > 0

    def test_identities_are_independent(self, guard):
        assert guard.acquire_vote_slot("a").allowed
        assert guard.acquire_vote_slot("b").allowed

    def test_enforce_raises(self, guard, clock):
        guard.enforce_rate_limit("tok")
        clock.advance(milliseconds=500)
        with pytest.raises(RateLimitedError) as exc_info:
            guard.enforce_rate_limit("tok")
        error = exc_info.value
        assert error.reason == WAIT_REASON
        assert error.wait_time_ms == 1500
        assert error.remaining_hourly == 9
        assert error.details["wait_time_ms"] == 1500

    def test_from_config(self, store, clean_env):
        from rumormill.core.config import CoreSettings

        guard = AbuseGuard.from_config(store, CoreSettings(max_votes_per_hour=3, min_vote_interval_ms=0))
        assert guard.policy == RateLimitPolicy(max_per_hour=3, max_per_day=50, min_interval_ms=0)


class TestReleaseVoteSlot:
    def test_release_restores_record(self, guard, store, clock):
        guard.acquire_vote_slot("tok")
        before = store.get_rate_limit("tok")
        clock.advance(seconds=5)

        slot = guard.acquire_vote_slot("tok")
        assert slot.acquired_at == clock.now
        assert slot.previous_vote_at == before.last_vote_at
        guard.release_vote_slot("tok", slot)

        assert store.get_rate_limit("tok") == before
        assert guard.check_rate_limit("tok").allowed

    def test_release_of_denied_attempt_is_noop(self, guard, store, clock):
        guard.acquire_vote_slot("tok")
        before = store.get_rate_limit("tok")
        denied = guard.acquire_vote_slot("tok")
        assert denied.acquired_at is None
        guard.release_vote_slot("tok", denied)
        assert store.get_rate_limit("tok") == before

    def test_refund_after_window_reset_keeps_counts(self, clock):
        consumed_at = clock.now
        clock.advance(hours=2)
        record = RateLimitRecord(
            identity_token="tok",
            hourly_votes=1,
            daily_votes=3,
            last_vote_at=clock.now,
            hour_reset_at=clock.now,
            day_reset_at=consumed_at,
        )
        refunded = refund_slot(record, consumed_at, None)
        # The hour window that held the slot is gone; a later slot was consumed
        assert refunded.hourly_votes == 1
        assert refunded.daily_votes == 2
        assert refunded.last_vote_at == clock.now


# ============================================================================
# Suspicion
# ============================================================================


class TestSuspicion:
    def test_clean_identity(self, clock):
        report = assess_identity(Identity(token="t", created_at=clock.now - timedelta(days=2)), clock.now)
        assert not report.is_suspicious
        assert report.flags == []
        assert report.risk_score == 0.0

    def test_very_low_credibility_alone_is_not_suspicious(self, clock):
        identity = Identity(token="t", credibility=0.05, created_at=clock.now - timedelta(days=2))
        report = assess_identity(identity, clock.now)
        assert report.flags == [SuspicionFlag.VERY_LOW_CREDIBILITY]
        assert report.risk_score == 0.3
        assert not report.is_suspicious

    def test_high_early_activity(self, clock):
        identity = Identity(token="t", total_votes=6, correct_votes=3, created_at=clock.now - timedelta(minutes=10))
        report = assess_identity(identity, clock.now)
        assert report.flags == [SuspicionFlag.HIGH_EARLY_ACTIVITY]
        assert report.risk_score == 0.4

    def test_consistently_wrong_is_suspicious(self, clock):
        identity = Identity(token="t", total_votes=11, correct_votes=1, created_at=clock.now - timedelta(days=2))
        report = assess_identity(identity, clock.now)
        assert SuspicionFlag.CONSISTENTLY_WRONG in report.flags
        assert report.is_suspicious

    def test_risk_is_capped(self, clock):
        identity = Identity(token="t", credibility=0.01, total_votes=20, correct_votes=0, created_at=clock.now)
        report = assess_identity(identity, clock.now)
        assert len(report.flags) == 3
        assert report.risk_score == 1.0
        assert report.to_dict()["flags"] == [
            "very_low_credibility",
            "high_early_activity",
            "consistently_wrong",
        ]

    def test_guard_unknown_identity(self, guard):
        assert not guard.detect_suspicious("nobody").is_suspicious

    def test_guard_reads_store(self, guard, store, clock):
        store.ensure_identity("t", 0.05, clock.now)
        report = guard.detect_suspicious("t")
        assert report.flags == [SuspicionFlag.VERY_LOW_CREDIBILITY]

    def test_is_low_credibility(self, guard, store, clock):
        assert not guard.is_low_credibility("nobody")
        store.ensure_identity("low", 0.1, clock.now)
        store.ensure_identity("ok", 0.2, clock.now)
        assert guard.is_low_credibility("low")
        assert not guard.is_low_credibility("ok")
