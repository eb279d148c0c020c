# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Truth-score aggregation.

A claim's truth score is the credibility-weighted mean of its votes, mapped
from [-1, 1] onto [0, 1]:

    score = (weighted_vote_sum / total_credibility_weight + 1) / 2

A claim locks once enough votes and enough weight have pushed the score past
one of the lock thresholds. The functions here are pure; persistence and
per-claim serialization live in the lifecycle and storage layers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from .config import CoreSettings, get_config
from .models import NEUTRAL_TRUTH_SCORE, Claim, ClaimStatus, VoteValue, transition

# =============================================================================
# LOCK THRESHOLDS
# =============================================================================

VERIFIED_THRESHOLD = 0.75
DISPUTED_THRESHOLD = 0.25
MIN_VOTES_FOR_LOCK = 5
MIN_CREDIBILITY_WEIGHT = 2.0


@dataclass(frozen=True)
class LockThresholds:
    """When an open claim becomes verified or disputed."""

    verified: float = VERIFIED_THRESHOLD
    disputed: float = DISPUTED_THRESHOLD
    min_votes: int = MIN_VOTES_FOR_LOCK
    min_weight: float = MIN_CREDIBILITY_WEIGHT

    @classmethod
    def from_config(cls, config: CoreSettings | None = None) -> LockThresholds:
        config = config or get_config()
        return cls(
            verified=config.verified_threshold,
            disputed=config.disputed_threshold,
            min_votes=config.min_votes_for_lock,
            min_weight=config.min_credibility_weight,
        )

    def to_dict(self) -> dict:
        return {
            "verified": self.verified,
            "disputed": self.disputed,
            "min_votes": self.min_votes,
            "min_weight": self.min_weight,
        }


DEFAULT_THRESHOLDS = LockThresholds()


# =============================================================================
# SCORING
# =============================================================================


def calculate_truth_score(weighted_vote_sum: float, total_credibility_weight: float) -> float:
    """Normalized truth score in [0, 1]; neutral when there is no weight."""
    if total_credibility_weight <= 0:
        return NEUTRAL_TRUTH_SCORE
    score = (weighted_vote_sum / total_credibility_weight + 1.0) / 2.0
    # Float drift can land a hair outside the range
    return min(1.0, max(0.0, score))


def evaluate_lock(
    truth_score: float,
    vote_count: int,
    total_credibility_weight: float,
    thresholds: LockThresholds = DEFAULT_THRESHOLDS,
) -> ClaimStatus | None:
    """Return the terminal status the tally qualifies for, or None."""
    if vote_count < thresholds.min_votes:
        return None
    # Summed floats like 0.4 * 5 can fall just short of the weight threshold
    if total_credibility_weight < thresholds.min_weight and not math.isclose(
        total_credibility_weight, thresholds.min_weight
    ):
        return None
    if truth_score >= thresholds.verified:
        return ClaimStatus.VERIFIED
    if truth_score <= thresholds.disputed:
        return ClaimStatus.DISPUTED
    return None


@dataclass
class TallyUpdate:
    """New tally values for a claim after one vote."""

    weighted_vote_sum: float
    total_credibility_weight: float
    vote_count: int
    truth_score: float
    outcome: ClaimStatus | None = None

    @property
    def locks(self) -> bool:
        return self.outcome is not None

    def apply_to(self, claim: Claim, now: datetime) -> Claim:
        """Write the tally onto ``claim`` and lock it if an outcome was reached."""
        claim.weighted_vote_sum = self.weighted_vote_sum
        claim.total_credibility_weight = self.total_credibility_weight
        claim.vote_count = self.vote_count
        claim.truth_score = self.truth_score
        claim.updated_at = now
        if self.outcome is not None:
            claim.status = transition(claim.status, self.outcome, claim_id=claim.claim_id)
            claim.locked_at = now
        return claim


def apply_vote(
    claim: Claim,
    value: VoteValue,
    weight: float,
    thresholds: LockThresholds = DEFAULT_THRESHOLDS,
) -> TallyUpdate:
    """Compute the tally a vote of ``value`` with ``weight`` produces.

    Does not mutate ``claim``; see ``TallyUpdate.apply_to``.
    """
    new_sum = claim.weighted_vote_sum + int(value) * weight
    new_weight = claim.total_credibility_weight + weight
    new_count = claim.vote_count + 1
    score = calculate_truth_score(new_sum, new_weight)
    return TallyUpdate(
        weighted_vote_sum=new_sum,
        total_credibility_weight=new_weight,
        vote_count=new_count,
        truth_score=score,
        outcome=evaluate_lock(score, new_count, new_weight, thresholds),
    )
