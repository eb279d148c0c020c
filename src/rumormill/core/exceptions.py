# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Custom exception hierarchy for RumorMill.

Every exception carries a human-readable ``message`` and a ``details`` dict,
and serializes with ``to_dict()`` so orchestration layers can surface errors
without inspecting exception types.
"""

from __future__ import annotations

from typing import Any


class RumorMillException(Exception):  # noqa: N818
    """Base exception for all RumorMill errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class DatabaseException(RumorMillException):
    """Exception for storage failures.

    Raised when:
    - Database connection fails
    - Query execution fails
    - Transaction errors occur

    The failing operation is rolled back as a whole.
    """

    pass


class ValidationException(RumorMillException):
    """Exception for malformed input.

    Raised before any ledger is touched, e.g. for an unknown vote value or a
    missing identity signal.
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ContentRejectedError(ValidationException):
    """Claim content was refused by the content filter."""

    def __init__(self, reasons: list[str], confidence: float | None = None):
        super().__init__("Content was not approved", field="content")
        self.reasons = list(reasons)
        self.confidence = confidence
        self.details["reasons"] = self.reasons
        if confidence is not None:
            self.details["confidence"] = confidence


class ConfigException(RumorMillException):
    """Exception for configuration errors."""

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(RumorMillException):
    """Exception for unknown claims or identities."""

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(RumorMillException):
    """Exception for state conflicts.

    Raised when:
    - An identity votes twice on the same claim
    - A vote targets a claim that is no longer open
    - A lifecycle transition is not allowed

    No state is mutated when a conflict is raised.
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class DuplicateVoteError(ConflictError):
    """The identity has already voted on this claim."""

    def __init__(self, claim_id: str):
        super().__init__("You have already voted on this claim", existing_id=claim_id)
        self.claim_id = claim_id


class ClaimLockedError(ConflictError):
    """The claim has left the open state and accepts no more votes."""

    def __init__(self, claim_id: str, status: str):
        super().__init__(
            f"Claim is {status} and no longer accepting votes",
            existing_id=claim_id,
        )
        self.details["status"] = status
        self.claim_id = claim_id
        self.status = status


class InvalidTransitionError(ConflictError):
    """A claim status transition outside the lifecycle state machine."""

    def __init__(self, current: str, target: str, claim_id: str | None = None):
        super().__init__(f"Cannot transition claim from {current} to {target}", existing_id=claim_id)
        self.details["current"] = current
        self.details["target"] = target
        self.current = current
        self.target = target


class RateLimitedError(RumorMillException):
    """The identity exceeded a vote rate limit.

    ``wait_time_ms`` hints at how long to wait before retrying, when known.
    """

    def __init__(
        self,
        reason: str,
        wait_time_ms: int | None = None,
        remaining_hourly: int | None = None,
        remaining_daily: int | None = None,
    ):
        details: dict[str, Any] = {}
        if wait_time_ms is not None:
            details["wait_time_ms"] = wait_time_ms
        if remaining_hourly is not None:
            details["remaining_hourly"] = remaining_hourly
        if remaining_daily is not None:
            details["remaining_daily"] = remaining_daily
        super().__init__(reason, details)
        self.reason = reason
        self.wait_time_ms = wait_time_ms
        self.remaining_hourly = remaining_hourly
        self.remaining_daily = remaining_daily
