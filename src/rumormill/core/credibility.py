# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Credibility ledger.

Each identity carries a credibility in [0, 1], starting at 0.5. It only moves
when a claim the identity voted on locks:

    C_new = clip(C_old + ALPHA * alignment, 0, 1)

where alignment is +1 if the vote matched the final outcome and -1 otherwise.
Votes enqueue a pending update; ``finalize`` consumes the queue for a claim.
Consumption is per record and guarded by its ``processed`` flag, so
re-running finalize (or resuming after a partial failure) never applies an
update twice.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .config import CoreSettings, get_config
from .exceptions import DatabaseException, NotFoundError, ValidationException
from .logging import event_fields, redact_token
from .models import (
    ClaimStatus,
    Identity,
    IdentityStats,
    PendingCredibilityUpdate,
    VoteValue,
    parse_vote_value,
    utcnow,
)

if TYPE_CHECKING:
    from ..storage.base import ClaimStore

logger = logging.getLogger(__name__)

ALPHA = 0.05
INITIAL_CREDIBILITY = 0.5
MIN_CREDIBILITY = 0.0
MAX_CREDIBILITY = 1.0

FINAL_OUTCOMES = (ClaimStatus.VERIFIED, ClaimStatus.DISPUTED)


def clip(value: float, low: float = MIN_CREDIBILITY, high: float = MAX_CREDIBILITY) -> float:
    return max(low, min(high, value))


def _final_outcome(outcome: ClaimStatus | str) -> ClaimStatus:
    try:
        status = ClaimStatus(outcome)
    except ValueError:
        status = None
    if status not in FINAL_OUTCOMES:
        raise ValidationException("Outcome must be verified or disputed", field="outcome", value=outcome)
    return status


def alignment_for(vote_value: VoteValue | int, outcome: ClaimStatus | str) -> int:
    """+1 if the vote agrees with the outcome, -1 otherwise."""
    expected = VoteValue.VERIFY if _final_outcome(outcome) == ClaimStatus.VERIFIED else VoteValue.DISPUTE
    return 1 if parse_vote_value(vote_value) == expected else -1


def adjusted_credibility(current: float, alignment: int, alpha: float = ALPHA) -> float:
    return clip(current + alpha * alignment)


def predict_credibility_change(
    current_credibility: float,
    vote_value: VoteValue | int | str,
    outcome: ClaimStatus | str,
    alpha: float = ALPHA,
) -> float:
    """Credibility after ``outcome``, for display. Writes nothing."""
    return adjusted_credibility(current_credibility, alignment_for(vote_value, outcome), alpha)


@dataclass
class FinalizeReport:
    """What one ``finalize`` run did."""

    claim_id: str
    outcome: ClaimStatus
    processed: int = 0
    skipped: int = 0  # already processed by an earlier or concurrent run
    failed: list[int] = field(default_factory=list)
    error: str | None = None  # set when the pending updates could not be listed

    @property
    def complete(self) -> bool:
        return not self.failed and self.error is None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "claim_id": self.claim_id,
            "outcome": self.outcome.value,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": list(self.failed),
            "complete": self.complete,
        }
        if self.error:
            result["error"] = self.error
        return result


class CredibilityLedger:
    """Owns identity credibility and its deferred updates."""

    def __init__(
        self,
        store: ClaimStore,
        alpha: float = ALPHA,
        initial_credibility: float = INITIAL_CREDIBILITY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.alpha = alpha
        self.initial_credibility = initial_credibility
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        store: ClaimStore,
        config: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> CredibilityLedger:
        config = config or get_config()
        return cls(
            store,
            alpha=config.credibility_alpha,
            initial_credibility=config.initial_credibility,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Identities
    # -------------------------------------------------------------------------

    def get_or_create(self, token: str) -> Identity:
        return self.store.ensure_identity(token, self.initial_credibility, self.clock())

    def get_credibility(self, token: str) -> float:
        """Current credibility; the initial value for unseen identities."""
        identity = self.store.get_identity(token)
        return identity.credibility if identity else self.initial_credibility

    def get_stats(self, token: str) -> IdentityStats:
        """Raises NotFoundError for unseen identities."""
        identity = self.store.get_identity(token)
        if identity is None:
            raise NotFoundError("Identity", redact_token(token))
        return IdentityStats.from_identity(identity)

    # -------------------------------------------------------------------------
    # Deferred updates
    # -------------------------------------------------------------------------

    def build_pending(
        self,
        identity_token: str,
        claim_id: str,
        vote_value: VoteValue,
        now: datetime | None = None,
    ) -> PendingCredibilityUpdate:
        return PendingCredibilityUpdate(
            identity_token=identity_token,
            claim_id=claim_id,
            vote_value=vote_value,
            created_at=now or self.clock(),
        )

    def _settle(self, outcome: ClaimStatus, now: datetime):
        def settle(update: PendingCredibilityUpdate, identity: Identity | None) -> Identity:
            if identity is None:
                identity = Identity(
                    token=update.identity_token,
                    credibility=self.initial_credibility,
                    created_at=now,
                    last_activity=now,
                )
            alignment = alignment_for(update.vote_value, outcome)
            return replace(
                identity,
                credibility=adjusted_credibility(identity.credibility, alignment, self.alpha),
                total_votes=identity.total_votes + 1,
                correct_votes=identity.correct_votes + (1 if alignment > 0 else 0),
                last_activity=now,
            )

        return settle

    def finalize(self, claim_id: str, outcome: ClaimStatus | str) -> FinalizeReport:
        """Apply every unprocessed pending update of a locked claim.

        Each update is consumed independently: a storage failure on one is
        logged and reported in ``failed`` while the rest continue. Safe to
        call again; processed updates are skipped.

        Raises:
            ValidationException: If ``outcome`` is not verified or disputed.
        """
        outcome = _final_outcome(outcome)
        report = FinalizeReport(claim_id=claim_id, outcome=outcome)
        settle = self._settle(outcome, self.clock())

        for update in self.store.list_pending_updates(claim_id):
            try:
                result = self.store.apply_credibility_update(update.update_id, settle)
            except DatabaseException as e:
                logger.error(
                    "Credibility update %s for claim %s failed: %s",
                    update.update_id,
                    claim_id,
                    e.message,
                )
                report.failed.append(update.update_id)
                continue

            if result is None:
                report.skipped += 1
            else:
                report.processed += 1
                logger.debug(
                    "Credibility of %s is now %.4f",
                    redact_token(update.identity_token),
                    result.credibility,
                )

        logger.info(
            "Finalized claim %s as %s: %d processed, %d skipped, %d failed",
            claim_id,
            outcome.value,
            report.processed,
            report.skipped,
            len(report.failed),
            extra=event_fields(claim_id=claim_id, outcome=outcome.value, failed=len(report.failed)),
        )
        return report
