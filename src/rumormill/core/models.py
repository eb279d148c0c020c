# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Domain models for RumorMill.

Claims, identities, votes, pending credibility updates, reference edges and
rate-limit records, plus the result types returned by the orchestration layer.
Every model serializes with ``to_dict()``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any

from .exceptions import InvalidTransitionError, ValidationException

NEUTRAL_TRUTH_SCORE = 0.5
DEFAULT_CREDIBILITY = 0.5
NEUTRAL_ACCURACY = 0.5


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# CLAIM STATE MACHINE
# =============================================================================


class ClaimStatus(str, Enum):
    """Lifecycle state of a claim."""

    OPEN = "open"
    VERIFIED = "verified"
    DISPUTED = "disputed"
    DELETED = "deleted"

    @property
    def is_locked(self) -> bool:
        """Verified or disputed: the tally is frozen."""
        return self in (ClaimStatus.VERIFIED, ClaimStatus.DISPUTED)

    @property
    def accepts_votes(self) -> bool:
        return self == ClaimStatus.OPEN


ALLOWED_TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.OPEN: frozenset({ClaimStatus.VERIFIED, ClaimStatus.DISPUTED, ClaimStatus.DELETED}),
    ClaimStatus.VERIFIED: frozenset({ClaimStatus.DELETED}),
    ClaimStatus.DISPUTED: frozenset({ClaimStatus.DELETED}),
    ClaimStatus.DELETED: frozenset(),
}


def can_transition(current: ClaimStatus, target: ClaimStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[ClaimStatus(current)]


def transition(
    current: ClaimStatus,
    target: ClaimStatus,
    claim_id: str | None = None,
) -> ClaimStatus:
    """Validate a status change and return the new status.

    Raises:
        InvalidTransitionError: If the state machine does not allow the move.
    """
    current = ClaimStatus(current)
    target = ClaimStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value, claim_id=claim_id)
    return target


# =============================================================================
# VOTES
# =============================================================================


class VoteValue(IntEnum):
    """Direction of a vote."""

    VERIFY = 1
    DISPUTE = -1

    @property
    def label(self) -> str:
        return self.name.lower()


_VOTE_WORDS = {
    "verify": VoteValue.VERIFY,
    "dispute": VoteValue.DISPUTE,
}


def parse_vote_value(value: Any) -> VoteValue:
    """Normalize a vote value.

    Accepts ``VoteValue``, the integers ``1`` and ``-1``, their string forms,
    and the words ``"verify"`` and ``"dispute"`` (case-insensitive).

    Raises:
        ValidationException: For anything else, including booleans.
    """
    if isinstance(value, VoteValue):
        return value
    if isinstance(value, bool):
        raise ValidationException("Vote value must be verify or dispute", field="value", value=value)
    if isinstance(value, int):
        if value in (1, -1):
            return VoteValue(value)
    elif isinstance(value, str):
        word = value.strip().lower()
        if word in _VOTE_WORDS:
            return _VOTE_WORDS[word]
        if word in ("1", "+1", "-1"):
            return VoteValue(int(word))
    raise ValidationException("Vote value must be verify or dispute", field="value", value=value)


def validate_credibility(value: Any, field_name: str = "effective_credibility") -> float:
    """Check that a credibility-like value is a finite number in [0, 1]."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationException(f"{field_name} must be a number", field=field_name, value=value)
    value = float(value)
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise ValidationException(f"{field_name} must be within [0, 1]", field=field_name, value=value)
    return value


# =============================================================================
# RECORDS
# =============================================================================


@dataclass
class Claim:
    """A submitted statement with an evolving truth score."""

    claim_id: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    truth_score: float = NEUTRAL_TRUTH_SCORE
    status: ClaimStatus = ClaimStatus.OPEN
    vote_count: int = 0
    total_credibility_weight: float = 0.0
    weighted_vote_sum: float = 0.0
    locked_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def controversy(self) -> float:
        """Distance of the score from neutral; lower is more controversial."""
        return abs(self.truth_score - NEUTRAL_TRUTH_SCORE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
            "truth_score": self.truth_score,
            "status": self.status.value,
            "vote_count": self.vote_count,
            "total_credibility_weight": self.total_credibility_weight,
            "weighted_vote_sum": self.weighted_vote_sum,
            "locked_at": _iso(self.locked_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Identity:
    """An anonymous participant known only by its token."""

    token: str
    credibility: float = DEFAULT_CREDIBILITY
    total_votes: int = 0
    correct_votes: int = 0
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)

    @property
    def accuracy(self) -> float:
        if self.total_votes == 0:
            return NEUTRAL_ACCURACY
        return self.correct_votes / self.total_votes

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "credibility": self.credibility,
            "total_votes": self.total_votes,
            "correct_votes": self.correct_votes,
            "accuracy": self.accuracy,
            "created_at": _iso(self.created_at),
            "last_activity": _iso(self.last_activity),
        }


@dataclass(frozen=True)
class Vote:
    """An immutable vote. ``voter_credibility`` is the weight actually used."""

    vote_hash: str
    claim_id: str
    value: VoteValue
    voter_credibility: float
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vote_hash": self.vote_hash,
            "claim_id": self.claim_id,
            "value": int(self.value),
            "voter_credibility": self.voter_credibility,
            "created_at": _iso(self.created_at),
        }


@dataclass
class PendingCredibilityUpdate:
    """Deferred credibility adjustment, consumed once when its claim locks.

    ``update_id`` is assigned by the store; it is ``None`` until inserted.
    """

    identity_token: str
    claim_id: str
    vote_value: VoteValue
    processed: bool = False
    created_at: datetime = field(default_factory=utcnow)
    update_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "update_id": self.update_id,
            "identity_token": self.identity_token,
            "claim_id": self.claim_id,
            "vote_value": int(self.vote_value),
            "processed": self.processed,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class ReferenceEdge:
    """Directed citation ``source_id -> target_id``."""

    source_id: str
    target_id: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "created_at": _iso(self.created_at),
        }


@dataclass
class RateLimitRecord:
    """Rolling vote counters for one identity."""

    identity_token: str
    hourly_votes: int = 0
    daily_votes: int = 0
    last_vote_at: datetime | None = None
    hour_reset_at: datetime = field(default_factory=utcnow)
    day_reset_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity_token": self.identity_token,
            "hourly_votes": self.hourly_votes,
            "daily_votes": self.daily_votes,
            "last_vote_at": _iso(self.last_vote_at),
            "hour_reset_at": _iso(self.hour_reset_at),
            "day_reset_at": _iso(self.day_reset_at),
        }


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class VoteCommit:
    """What a settled vote writes: the updated claim plus its new records."""

    claim: Claim
    vote: Vote
    pending: PendingCredibilityUpdate
    locked: bool = False


@dataclass
class VoteOutcome:
    """Result of a cast vote."""

    claim_id: str
    truth_score: float
    vote_count: int
    status: ClaimStatus
    locked: bool
    effective_weight: float
    suspicion: Any = None  # SuspicionReport, attached by submit_vote
    settlement: Any = None  # FinalizeReport, attached when this vote locked the claim

    def to_dict(self) -> dict[str, Any]:
        result = {
            "claim_id": self.claim_id,
            "truth_score": self.truth_score,
            "vote_count": self.vote_count,
            "status": self.status.value,
            "locked": self.locked,
            "effective_weight": self.effective_weight,
        }
        if self.suspicion is not None:
            result["suspicion"] = self.suspicion.to_dict()
        if self.settlement is not None:
            result["settlement"] = self.settlement.to_dict()
        return result


@dataclass
class EdgeRemoval:
    """Edges pruned when a claim was deleted."""

    claim_id: str
    removed_incoming: list[str] = field(default_factory=list)
    removed_outgoing: list[str] = field(default_factory=list)

    @property
    def edges_removed(self) -> int:
        return len(self.removed_incoming) + len(self.removed_outgoing)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "edges_removed": self.edges_removed,
            "removed_incoming": list(self.removed_incoming),
            "removed_outgoing": list(self.removed_outgoing),
        }


@dataclass
class ClaimReferences:
    """Claims citing (incoming) and cited by (outgoing) a claim."""

    claim_id: str
    incoming: list[str] = field(default_factory=list)
    outgoing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "incoming": list(self.incoming),
            "outgoing": list(self.outgoing),
        }


@dataclass
class IdentityStats:
    credibility: float
    total_votes: int
    correct_votes: int
    accuracy: float

    @classmethod
    def from_identity(cls, identity: Identity) -> IdentityStats:
        return cls(
            credibility=identity.credibility,
            total_votes=identity.total_votes,
            correct_votes=identity.correct_votes,
            accuracy=identity.accuracy,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "credibility": self.credibility,
            "total_votes": self.total_votes,
            "correct_votes": self.correct_votes,
            "accuracy": self.accuracy,
        }


@dataclass
class ClaimStats:
    """Claim counts per status."""

    open: int = 0
    verified: int = 0
    disputed: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        return self.open + self.verified + self.disputed + self.deleted

    @classmethod
    def from_counts(cls, counts: dict[ClaimStatus, int]) -> ClaimStats:
        return cls(**{status.value: counts.get(status, 0) for status in ClaimStatus})

    def to_dict(self) -> dict[str, Any]:
        return {
            "open": self.open,
            "verified": self.verified,
            "disputed": self.disputed,
            "deleted": self.deleted,
            "total": self.total,
        }
