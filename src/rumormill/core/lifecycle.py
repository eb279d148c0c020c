# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Claim lifecycle orchestration.

``ClaimService`` is the entry point for callers. It records votes, keeps the
running tally, drives the claim state machine and triggers credibility
finalization when a vote locks a claim:

    open --(score >= verified threshold, enough votes and weight)--> verified
    open --(score <= disputed threshold, enough votes and weight)--> disputed
    open | verified | disputed --(delete)--> deleted

The tally update runs under the claim's exclusive lock in the store, so only
the caller whose vote performed the lock transition sees ``locked=True`` and
runs ``finalize``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..storage.base import ClaimSort, ClaimStore
from .abuse_guard import AbuseGuard, RateLimitResult, SuspicionReport
from .config import CoreSettings, get_config
from .content_filter import ContentFilter, PermissiveContentFilter
from .credibility import CredibilityLedger, FinalizeReport
from .exceptions import (
    ClaimLockedError,
    ConfigException,
    ContentRejectedError,
    DatabaseException,
    DuplicateVoteError,
    NotFoundError,
    ValidationException,
)
from .identity import IdentityTokenService, generate_claim_id
from .logging import event_fields, redact_token
from .models import (
    Claim,
    ClaimReferences,
    ClaimStats,
    ClaimStatus,
    EdgeRemoval,
    IdentityStats,
    Vote,
    VoteCommit,
    VoteOutcome,
    VoteValue,
    parse_vote_value,
    transition,
    utcnow,
    validate_credibility,
)
from .reference_graph import ReferenceGraph, parse_references
from .truth_score import LockThresholds, apply_vote

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 50
LISTED_BY_DEFAULT = (ClaimStatus.OPEN, ClaimStatus.VERIFIED, ClaimStatus.DISPUTED)


@dataclass
class IdentityProfile:
    """Everything an identity may learn about itself."""

    stats: IdentityStats
    rate_limit: RateLimitResult
    suspicion: SuspicionReport
    is_new: bool = False

    def to_dict(self) -> dict[str, Any]:
        result = self.stats.to_dict()
        result["is_new"] = self.is_new
        result["rate_limit"] = {
            "remaining_hourly": self.rate_limit.remaining_hourly,
            "remaining_daily": self.rate_limit.remaining_daily,
        }
        if self.suspicion.is_suspicious:
            result["warning"] = "Your account has been flagged for unusual activity"
        return result


def build_store(config: CoreSettings | None = None) -> ClaimStore:
    """Instantiate the record store named by ``storage_backend``."""
    config = config or get_config()
    backend = config.storage_backend
    if backend == "memory":
        from ..storage.memory import InMemoryStore

        return InMemoryStore()
    if backend == "postgres":
        from ..storage.postgres import PostgresStore

        return PostgresStore()
    raise ConfigException(f"Unknown storage backend: {backend}")


class ClaimService:
    """Creates claims, records votes and drives claim status."""

    def __init__(
        self,
        store: ClaimStore,
        tokens: IdentityTokenService,
        ledger: CredibilityLedger | None = None,
        guard: AbuseGuard | None = None,
        graph: ReferenceGraph | None = None,
        thresholds: LockThresholds | None = None,
        content_filter: ContentFilter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.tokens = tokens
        self.clock = clock
        self.ledger = ledger or CredibilityLedger(store, clock=clock)
        self.guard = guard or AbuseGuard(store, clock=clock)
        self.graph = graph or ReferenceGraph(store, clock=clock)
        self.thresholds = thresholds or LockThresholds()
        self.content_filter = content_filter or PermissiveContentFilter()

    @classmethod
    def from_config(
        cls,
        config: CoreSettings | None = None,
        store: ClaimStore | None = None,
        content_filter: ContentFilter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> ClaimService:
        """Wire a service from settings (``RUMORMILL_*`` environment by default)."""
        config = config or get_config()
        store = store or build_store(config)
        return cls(
            store,
            IdentityTokenService.from_config(config),
            ledger=CredibilityLedger.from_config(store, config, clock=clock),
            guard=AbuseGuard.from_config(store, config, clock=clock),
            graph=ReferenceGraph(store, clock=clock),
            thresholds=LockThresholds.from_config(config),
            content_filter=content_filter,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Claims
    # -------------------------------------------------------------------------

    def create_claim(self, content: str) -> Claim:
        """Publish a new open claim and link the claims it cites.

        Raises:
            ValidationException: If content is empty.
            ContentRejectedError: If the content filter refuses it.
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationException("Content is required", field="content")

        verdict = self.content_filter.evaluate(content)
        if not verdict.approved:
            logger.info("Content rejected: %s", "; ".join(verdict.reasons))
            raise ContentRejectedError(verdict.reasons, verdict.confidence)

        now = self.clock()
        claim = self.store.insert_claim(
            Claim(claim_id=generate_claim_id(), content=content.strip(), created_at=now, updated_at=now)
        )
        logger.info("Created claim %s", claim.claim_id)

        cited = parse_references(content)
        if cited:
            self.graph.add_references(claim.claim_id, cited)
        return claim

    def get_claim(self, claim_id: str) -> Claim:
        claim = self.store.get_claim(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)
        return claim

    def list_claims(
        self,
        status: ClaimStatus | str | None = None,
        sort: ClaimSort | str = ClaimSort.RECENT,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[Claim]:
        """List claims; deleted claims only appear when asked for by status.

        ``limit`` is capped at 50.
        """
        if status is None or status == "all":
            statuses: tuple[ClaimStatus, ...] = LISTED_BY_DEFAULT
        else:
            try:
                statuses = (ClaimStatus(status),)
            except ValueError:
                raise ValidationException("Unknown claim status", field="status", value=status) from None
        try:
            sort = ClaimSort(sort)
        except ValueError:
            raise ValidationException("Unknown sort order", field="sort", value=sort) from None
        if limit < 1:
            raise ValidationException("limit must be positive", field="limit", value=limit)
        if offset < 0:
            raise ValidationException("offset must not be negative", field="offset", value=offset)

        return self.store.list_claims(statuses, sort, min(limit, MAX_LIST_LIMIT), offset)

    def get_claim_stats(self) -> ClaimStats:
        return ClaimStats.from_counts(self.store.count_claims_by_status())

    def delete_claim(self, claim_id: str) -> EdgeRemoval:
        """Mark a claim deleted and prune its reference edges.

        Scores of other claims are left untouched.

        Raises:
            NotFoundError: If the claim does not exist.
            InvalidTransitionError: If the claim is already deleted.
        """
        now = self.clock()

        def settle(claim: Claim) -> Claim:
            claim.status = transition(claim.status, ClaimStatus.DELETED, claim_id=claim_id)
            claim.updated_at = now
            return claim

        removal = self.store.delete_claim(claim_id, settle)
        logger.info("Deleted claim %s (%d edge(s) removed)", claim_id, removal.edges_removed)
        return removal

    def get_references(self, claim_id: str) -> ClaimReferences:
        self.get_claim(claim_id)
        return self.graph.get_references(claim_id)

    # -------------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------------

    def cast_vote(
        self,
        claim_id: str,
        identity_token: str,
        value: VoteValue | int | str,
        effective_credibility: float,
    ) -> VoteOutcome:
        """Record one vote with an already-dampened weight.

        The claim update, the vote and its pending credibility update commit
        as one unit. If this vote locks the claim, credibility is finalized
        before returning and the outcome carries the ``settlement`` report; a
        storage failure there leaves updates for ``settle_claims``.

        Raises:
            ValidationException: For a malformed value, token or weight.
            NotFoundError: If the claim does not exist.
            ClaimLockedError: If the claim is no longer open.
            DuplicateVoteError: If this identity already voted on the claim.
        """
        if not identity_token:
            raise ValidationException("Identity token is required", field="identity_token")
        vote_value = parse_vote_value(value)
        weight = validate_credibility(effective_credibility)
        vote_hash = self.tokens.vote_token_for(claim_id, identity_token)
        now = self.clock()

        def settle(claim: Claim) -> VoteCommit:
            if not claim.status.accepts_votes:
                raise ClaimLockedError(claim_id, claim.status.value)
            tally = apply_vote(claim, vote_value, weight, self.thresholds)
            tally.apply_to(claim, now)
            return VoteCommit(
                claim=claim,
                vote=Vote(
                    vote_hash=vote_hash,
                    claim_id=claim_id,
                    value=vote_value,
                    voter_credibility=weight,
                    created_at=now,
                ),
                pending=self.ledger.build_pending(identity_token, claim_id, vote_value, now),
                locked=tally.locks,
            )

        commit = self.store.commit_vote(claim_id, vote_hash, settle)
        claim = commit.claim
        logger.debug(
            "Vote %s on claim %s by %s (weight %.4f): score %.4f after %d vote(s)",
            vote_value.label,
            claim_id,
            redact_token(identity_token),
            weight,
            claim.truth_score,
            claim.vote_count,
        )

        if commit.locked:
            logger.info(
                "Claim %s locked as %s at score %.4f",
                claim_id,
                claim.status.value,
                claim.truth_score,
                extra=event_fields(claim_id=claim_id, status=claim.status.value, vote_count=claim.vote_count),
            )

        return VoteOutcome(
            claim_id=claim_id,
            truth_score=claim.truth_score,
            vote_count=claim.vote_count,
            status=claim.status,
            locked=commit.locked,
            effective_weight=weight,
            settlement=self._finalize_locked(claim) if commit.locked else None,
        )

    def _finalize_locked(self, claim: Claim) -> FinalizeReport:
        # The vote is already committed, so storage errors are reported, not raised
        try:
            report = self.ledger.finalize(claim.claim_id, claim.status)
        except DatabaseException as e:
            logger.error("Finalizing claim %s failed: %s", claim.claim_id, e.message)
            report = FinalizeReport(claim_id=claim.claim_id, outcome=claim.status, error=e.message)
        if not report.complete:
            logger.warning(
                "Claim %s left with unsettled credibility updates; run settle",
                claim.claim_id,
                extra=event_fields(claim_id=claim.claim_id, failed=report.failed, error=report.error),
            )
        return report

    def submit_vote(
        self,
        claim_id: str,
        raw_signal: str | None,
        value: VoteValue | int | str,
        external_id: str | None = None,
    ) -> VoteOutcome:
        """Full vote flow for a raw client signal.

        Derives the identity token (an external id wins over the fingerprint),
        rejects unknown, locked and already-voted claims before spending rate
        budget, consumes a rate-limit slot, dampens the voter's credibility
        into a vote weight and casts the vote. The outcome carries an
        advisory suspicion report. A vote refused by a concurrent lock or
        duplicate gives its rate-limit slot back.

        Raises:
            ValidationException: For a malformed value or a missing signal.
            NotFoundError: If the claim does not exist.
            ClaimLockedError: If the claim is no longer open.
            DuplicateVoteError: If this identity already voted on the claim.
            RateLimitedError: If the identity is over its vote budget.
        """
        vote_value = parse_vote_value(value)
        if external_id:
            token = self.tokens.token_for_external(external_id)
        elif raw_signal:
            token = self.tokens.token_for(raw_signal)
        else:
            raise ValidationException("Fingerprint is required", field="raw_signal")

        claim = self.get_claim(claim_id)
        if not claim.status.accepts_votes:
            raise ClaimLockedError(claim_id, claim.status.value)

        identity = self.ledger.get_or_create(token)
        if self.store.has_vote(self.tokens.vote_token_for(claim_id, token)):
            raise DuplicateVoteError(claim_id)

        slot = self.guard.enforce_rate_limit(token)
        weight = self.guard.effective_weight(identity.credibility)

        try:
            outcome = self.cast_vote(claim_id, token, vote_value, weight)
        except (ClaimLockedError, DuplicateVoteError):
            # Lost a race after the checks above; the vote was not counted
            self.guard.release_vote_slot(token, slot)
            raise
        outcome.suspicion = self.guard.detect_suspicious(token)
        return outcome

    def list_votes(self, claim_id: str) -> list[Vote]:
        self.get_claim(claim_id)
        return self.store.list_votes(claim_id)

    def settle_claims(self, claim_id: str | None = None) -> list[FinalizeReport]:
        """Finish credibility finalization left incomplete by a failure.

        With no ``claim_id``, every verified or disputed claim that still has
        unprocessed pending updates is finalized again. Already processed
        updates are skipped, so this is safe to run at any time.

        Raises:
            NotFoundError: If ``claim_id`` does not exist.
            ValidationException: If ``claim_id`` is not verified or disputed.
        """
        if claim_id is not None:
            claim_ids = [claim_id]
        else:
            claim_ids = self.store.list_unsettled_claims()

        reports = []
        for cid in claim_ids:
            report = self.ledger.finalize(cid, self.get_claim(cid).status)
            logger.info(
                "Settled claim %s: %d processed, %d failed",
                cid,
                report.processed,
                len(report.failed),
                extra=event_fields(claim_id=cid, complete=report.complete),
            )
            reports.append(report)
        return reports

    # -------------------------------------------------------------------------
    # Identities
    # -------------------------------------------------------------------------

    def get_identity_stats(self, identity_token: str) -> IdentityStats:
        return self.ledger.get_stats(identity_token)

    def describe_identity(self, identity_token: str) -> IdentityProfile:
        """Stats, remaining vote budget and suspicion report for an identity.

        Creates the identity on first contact.
        """
        is_new = self.store.get_identity(identity_token) is None
        identity = self.ledger.get_or_create(identity_token)
        return IdentityProfile(
            stats=IdentityStats.from_identity(identity),
            rate_limit=self.guard.check_rate_limit(identity_token),
            suspicion=self.guard.detect_suspicious(identity_token),
            is_new=is_new,
        )
