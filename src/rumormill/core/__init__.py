# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""RumorMill Core - scoring, credibility and abuse resistance for anonymous claims."""

from .abuse_guard import AbuseGuard, RateLimitPolicy, RateLimitResult, SuspicionFlag, SuspicionReport, effective_weight
from .config import CoreSettings, clear_config_cache, get_config
from .content_filter import ContentFilter, FilterResult, PermissiveContentFilter
from .credibility import CredibilityLedger, FinalizeReport, predict_credibility_change
from .exceptions import (
    ClaimLockedError,
    ConfigException,
    ConflictError,
    ContentRejectedError,
    DatabaseException,
    DuplicateVoteError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitedError,
    RumorMillException,
    ValidationException,
)
from .identity import IdentityTokenService, fingerprint_hash, generate_claim_id
from .lifecycle import ClaimService, IdentityProfile, build_store
from .logging import configure_logging, correlation_context, get_logger
from .models import (
    Claim,
    ClaimReferences,
    ClaimStats,
    ClaimStatus,
    EdgeRemoval,
    Identity,
    IdentityStats,
    Vote,
    VoteOutcome,
    VoteValue,
)
from .reference_graph import ReferenceGraph, format_reference, parse_references, would_create_cycle
from .truth_score import LockThresholds, calculate_truth_score

__all__ = [
    # Service
    "ClaimService",
    "IdentityProfile",
    "build_store",
    # Components
    "AbuseGuard",
    "CredibilityLedger",
    "IdentityTokenService",
    "ReferenceGraph",
    "LockThresholds",
    "RateLimitPolicy",
    # Pure functions
    "calculate_truth_score",
    "effective_weight",
    "fingerprint_hash",
    "format_reference",
    "generate_claim_id",
    "parse_references",
    "predict_credibility_change",
    "would_create_cycle",
    # Models
    "Claim",
    "ClaimReferences",
    "ClaimStats",
    "ClaimStatus",
    "EdgeRemoval",
    "FinalizeReport",
    "Identity",
    "IdentityStats",
    "RateLimitResult",
    "SuspicionFlag",
    "SuspicionReport",
    "Vote",
    "VoteOutcome",
    "VoteValue",
    # Content filter
    "ContentFilter",
    "FilterResult",
    "PermissiveContentFilter",
    # Config
    "CoreSettings",
    "get_config",
    "clear_config_cache",
    # Logging
    "configure_logging",
    "correlation_context",
    "get_logger",
    # Exceptions
    "RumorMillException",
    "DatabaseException",
    "ValidationException",
    "ContentRejectedError",
    "ConfigException",
    "NotFoundError",
    "ConflictError",
    "DuplicateVoteError",
    "ClaimLockedError",
    "InvalidTransitionError",
    "RateLimitedError",
]
