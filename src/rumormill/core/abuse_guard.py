# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Abuse guard: rate limits, vote-weight dampening and anomaly flags.

Implements countermeasures against vote flooding and sybil swarms:
- Per-identity rate limits (minimum interval, hourly and daily caps)
- Quadratic dampening of low-credibility vote weight
- Heuristic suspicion scoring (advisory, never blocks a vote)

Rate-limit windows reset lazily: elapsed time since the window marker is
checked whenever the record is read, so no background job is needed.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from .config import CoreSettings, get_config
from .exceptions import RateLimitedError
from .logging import redact_token
from .models import Identity, RateLimitRecord, utcnow, validate_credibility

if TYPE_CHECKING:
    from ..storage.base import ClaimStore

logger = logging.getLogger(__name__)


# =============================================================================
# THRESHOLDS
# =============================================================================

# Vote weight dampening
LOW_CREDIBILITY_THRESHOLD = 0.2

# Rate limits
MAX_VOTES_PER_HOUR = 10
MAX_VOTES_PER_DAY = 50
MIN_VOTE_INTERVAL_MS = 2000
HOUR_WINDOW = timedelta(hours=1)
DAY_WINDOW = timedelta(hours=24)

# Suspicion heuristics
VERY_LOW_CREDIBILITY = 0.1
VERY_LOW_CREDIBILITY_RISK = 0.3
NEW_ACCOUNT_AGE = timedelta(hours=1)
NEW_ACCOUNT_MAX_VOTES = 5  # flag above this many votes while the account is new
HIGH_EARLY_ACTIVITY_RISK = 0.4
CONSISTENTLY_WRONG_MIN_VOTES = 10
CONSISTENTLY_WRONG_ACCURACY = 0.2
CONSISTENTLY_WRONG_RISK = 0.5
SUSPICIOUS_RISK_THRESHOLD = 0.5

WAIT_REASON = "Please wait before voting again"
HOURLY_REASON = "Hourly vote limit reached"
DAILY_REASON = "Daily vote limit reached"


class SuspicionFlag(str, Enum):
    """Anomaly indicators raised by ``detect_suspicious``."""

    VERY_LOW_CREDIBILITY = "very_low_credibility"
    HIGH_EARLY_ACTIVITY = "high_early_activity"
    CONSISTENTLY_WRONG = "consistently_wrong"


# =============================================================================
# VOTE WEIGHT
# =============================================================================


def effective_weight(raw_credibility: float, threshold: float = LOW_CREDIBILITY_THRESHOLD) -> float:
    """Vote multiplier for a raw credibility.

    Unchanged at or above ``threshold``; below it the weight decays
    quadratically, ``(raw / threshold)**2 * threshold``, which is continuous
    at the threshold and never exceeds ``raw``.

    Examples:
        - 0.6: 0.6
        - 0.2: 0.2
        - 0.1: 0.05
        - 0.02: 0.002
    """
    raw = validate_credibility(raw_credibility, "raw_credibility")
    if raw >= threshold:
        return raw
    return (raw / threshold) ** 2 * threshold


# =============================================================================
# RATE LIMITING
# =============================================================================


@dataclass(frozen=True)
class RateLimitPolicy:
    max_per_hour: int = MAX_VOTES_PER_HOUR
    max_per_day: int = MAX_VOTES_PER_DAY
    min_interval_ms: int = MIN_VOTE_INTERVAL_MS

    @classmethod
    def from_config(cls, config: CoreSettings | None = None) -> RateLimitPolicy:
        config = config or get_config()
        return cls(
            max_per_hour=config.max_votes_per_hour,
            max_per_day=config.max_votes_per_day,
            min_interval_ms=config.min_vote_interval_ms,
        )


@dataclass
class RateLimitResult:
    """Whether an identity may vote now."""

    allowed: bool
    remaining_hourly: int
    remaining_daily: int
    reason: str | None = None
    wait_time_ms: int | None = None
    # Set when a slot was consumed; release_vote_slot needs both
    acquired_at: datetime | None = None
    previous_vote_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "allowed": self.allowed,
            "remaining_hourly": self.remaining_hourly,
            "remaining_daily": self.remaining_daily,
        }
        if self.reason:
            result["reason"] = self.reason
        if self.wait_time_ms is not None:
            result["wait_time_ms"] = self.wait_time_ms
        return result


def _millis(delta: timedelta) -> int:
    return max(0, math.ceil(delta.total_seconds() * 1000))


def roll_windows(record: RateLimitRecord, now: datetime) -> RateLimitRecord:
    """Reset hourly/daily counters whose window has elapsed."""
    if now - record.hour_reset_at >= HOUR_WINDOW:
        record = replace(record, hourly_votes=0, hour_reset_at=now)
    if now - record.day_reset_at >= DAY_WINDOW:
        record = replace(record, daily_votes=0, day_reset_at=now)
    return record


def evaluate_rate_limit(
    record: RateLimitRecord | None,
    token: str,
    now: datetime,
    policy: RateLimitPolicy,
) -> tuple[RateLimitRecord, RateLimitResult]:
    """Decide whether ``token`` may vote at ``now``.

    Returns the record with elapsed windows reset (not yet consumed) and
    the decision. Pure: nothing is written.
    """
    if record is None:
        record = RateLimitRecord(identity_token=token, hour_reset_at=now, day_reset_at=now)
    record = roll_windows(record, now)

    remaining_hourly = max(0, policy.max_per_hour - record.hourly_votes)
    remaining_daily = max(0, policy.max_per_day - record.daily_votes)

    if record.last_vote_at is not None:
        since_last = now - record.last_vote_at
        interval = timedelta(milliseconds=policy.min_interval_ms)
        if since_last < interval:
            return record, RateLimitResult(
                allowed=False,
                remaining_hourly=remaining_hourly,
                remaining_daily=remaining_daily,
                reason=WAIT_REASON,
                wait_time_ms=_millis(interval - since_last),
            )

    if record.hourly_votes >= policy.max_per_hour:
        return record, RateLimitResult(
            allowed=False,
            remaining_hourly=0,
            remaining_daily=remaining_daily,
            reason=HOURLY_REASON,
            wait_time_ms=_millis(record.hour_reset_at + HOUR_WINDOW - now),
        )

    if record.daily_votes >= policy.max_per_day:
        return record, RateLimitResult(
            allowed=False,
            remaining_hourly=0,
            remaining_daily=0,
            reason=DAILY_REASON,
            wait_time_ms=_millis(record.day_reset_at + DAY_WINDOW - now),
        )

    return record, RateLimitResult(
        allowed=True,
        remaining_hourly=remaining_hourly,
        remaining_daily=remaining_daily,
    )


def consume_slot(record: RateLimitRecord, now: datetime) -> RateLimitRecord:
    return replace(
        record,
        hourly_votes=record.hourly_votes + 1,
        daily_votes=record.daily_votes + 1,
        last_vote_at=now,
    )


def refund_slot(
    record: RateLimitRecord,
    consumed_at: datetime,
    previous_vote_at: datetime | None,
) -> RateLimitRecord:
    """Undo a ``consume_slot`` made at ``consumed_at``.

    A counter is only decremented while its window still holds the slot.
    ``last_vote_at`` is restored only if no later slot was consumed since.
    """
    hourly = record.hourly_votes
    if record.hour_reset_at <= consumed_at:
        hourly = max(0, hourly - 1)
    daily = record.daily_votes
    if record.day_reset_at <= consumed_at:
        daily = max(0, daily - 1)
    last_vote_at = previous_vote_at if record.last_vote_at == consumed_at else record.last_vote_at
    return replace(record, hourly_votes=hourly, daily_votes=daily, last_vote_at=last_vote_at)


# =============================================================================
# SUSPICION
# =============================================================================


@dataclass
class SuspicionReport:
    """Advisory anomaly assessment of an identity."""

    is_suspicious: bool = False
    flags: list[SuspicionFlag] = field(default_factory=list)
    risk_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_suspicious": self.is_suspicious,
            "flags": [f.value for f in self.flags],
            "risk_score": self.risk_score,
        }


def assess_identity(
    identity: Identity,
    now: datetime,
    risk_threshold: float = SUSPICIOUS_RISK_THRESHOLD,
) -> SuspicionReport:
    """Score an identity against the suspicion heuristics."""
    flags: list[SuspicionFlag] = []
    risk = 0.0

    if identity.credibility < VERY_LOW_CREDIBILITY:
        flags.append(SuspicionFlag.VERY_LOW_CREDIBILITY)
        risk += VERY_LOW_CREDIBILITY_RISK

    if now - identity.created_at < NEW_ACCOUNT_AGE and identity.total_votes > NEW_ACCOUNT_MAX_VOTES:
        flags.append(SuspicionFlag.HIGH_EARLY_ACTIVITY)
        risk += HIGH_EARLY_ACTIVITY_RISK

    # Possible contrarian bot
    if identity.total_votes > CONSISTENTLY_WRONG_MIN_VOTES and identity.accuracy < CONSISTENTLY_WRONG_ACCURACY:
        flags.append(SuspicionFlag.CONSISTENTLY_WRONG)
        risk += CONSISTENTLY_WRONG_RISK

    risk = round(min(risk, 1.0), 6)
    return SuspicionReport(is_suspicious=risk >= risk_threshold, flags=flags, risk_score=risk)


# =============================================================================
# GUARD
# =============================================================================


class AbuseGuard:
    """Store-backed abuse checks for one deployment.

    Args:
        store: Record store holding identities and rate-limit records
        policy: Rate limits
        low_credibility_threshold: Credibility below which weight is dampened
        risk_threshold: Risk score at which an identity counts as suspicious
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        store: ClaimStore,
        policy: RateLimitPolicy | None = None,
        low_credibility_threshold: float = LOW_CREDIBILITY_THRESHOLD,
        risk_threshold: float = SUSPICIOUS_RISK_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.policy = policy or RateLimitPolicy()
        self.low_credibility_threshold = low_credibility_threshold
        self.risk_threshold = risk_threshold
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        store: ClaimStore,
        config: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> AbuseGuard:
        config = config or get_config()
        return cls(
            store,
            policy=RateLimitPolicy.from_config(config),
            low_credibility_threshold=config.low_credibility_threshold,
            risk_threshold=config.suspicious_risk_threshold,
            clock=clock,
        )

    def effective_weight(self, raw_credibility: float) -> float:
        return effective_weight(raw_credibility, self.low_credibility_threshold)

    def check_rate_limit(self, token: str) -> RateLimitResult:
        """Report whether ``token`` may vote now, without consuming a slot."""
        record = self.store.get_rate_limit(token)
        _, result = evaluate_rate_limit(record, token, self.clock(), self.policy)
        return result

    def acquire_vote_slot(self, token: str) -> RateLimitResult:
        """Check and consume one vote slot as a single per-identity step.

        On success the remaining counts already include the consumed slot.
        A denied attempt writes nothing.
        """
        now = self.clock()

        def decide(record: RateLimitRecord | None) -> tuple[RateLimitRecord | None, RateLimitResult]:
            windowed, result = evaluate_rate_limit(record, token, now, self.policy)
            if not result.allowed:
                return None, result
            result.remaining_hourly = max(0, result.remaining_hourly - 1)
            result.remaining_daily = max(0, result.remaining_daily - 1)
            result.acquired_at = now
            result.previous_vote_at = windowed.last_vote_at
            return consume_slot(windowed, now), result

        return self.store.update_rate_limit(token, decide)

    def release_vote_slot(self, token: str, slot: RateLimitResult) -> None:
        """Give back a slot from ``acquire_vote_slot`` whose vote was refused."""
        if slot.acquired_at is None:
            return

        def decide(record: RateLimitRecord | None) -> tuple[RateLimitRecord | None, None]:
            if record is None:
                return None, None
            return refund_slot(record, slot.acquired_at, slot.previous_vote_at), None

        self.store.update_rate_limit(token, decide)
        logger.debug("Released vote slot of %s", redact_token(token))

    def enforce_rate_limit(self, token: str) -> RateLimitResult:
        """Like ``acquire_vote_slot`` but raises when the identity is limited.

        Raises:
            RateLimitedError: With a wait hint and the remaining budget.
        """
        result = self.acquire_vote_slot(token)
        if not result.allowed:
            logger.info("Rate limited %s: %s", redact_token(token), result.reason)
            raise RateLimitedError(
                result.reason or "Rate limited",
                wait_time_ms=result.wait_time_ms,
                remaining_hourly=result.remaining_hourly,
                remaining_daily=result.remaining_daily,
            )
        return result

    def detect_suspicious(self, token: str) -> SuspicionReport:
        """Advisory anomaly report; unknown identities are not suspicious."""
        identity = self.store.get_identity(token)
        if identity is None:
            return SuspicionReport()
        report = assess_identity(identity, self.clock(), self.risk_threshold)
        if report.is_suspicious:
            logger.warning(
                "Suspicious identity %s: %s (risk %.2f)",
                redact_token(token),
                ", ".join(f.value for f in report.flags),
                report.risk_score,
            )
        return report

    def is_low_credibility(self, token: str) -> bool:
        identity = self.store.get_identity(token)
        if identity is None:
            return False
        return identity.credibility < self.low_credibility_threshold
