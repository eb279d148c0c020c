# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Anonymous identity tokens.

An identity token is a keyed one-way hash of a client signal (a browser
fingerprint, or the id of an externally authenticated account). Vote hashes
mix in a salt derived per claim, so the hashes an identity leaves on two
claims cannot be linked without already holding its token.

All functions here are pure. Rejecting empty input is the caller's job.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from collections.abc import Mapping

from .config import CoreSettings, get_config

FINGERPRINT_DOMAIN = "fingerprint:"
EXTERNAL_DOMAIN = "external:"
CLAIM_SALT_DOMAIN = "claim:"


def _hmac_hex(key: bytes, message: str) -> str:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).hexdigest()


class IdentityTokenService:
    """Derives identity tokens and per-claim vote hashes from a server salt."""

    def __init__(self, salt: str):
        if not salt:
            raise ValueError("identity salt must not be empty")
        self._key = salt.encode("utf-8")

    @classmethod
    def from_config(cls, config: CoreSettings | None = None) -> IdentityTokenService:
        config = config or get_config()
        return cls(config.identity_salt)

    def token_for(self, raw_signal: str) -> str:
        """Token for a raw client fingerprint (64 hex chars)."""
        return _hmac_hex(self._key, FINGERPRINT_DOMAIN + raw_signal)

    def token_for_external(self, external_id: str) -> str:
        """Token for an externally authenticated identity.

        Uses its own domain so an external id never collides with a
        fingerprint that happens to share the same text.
        """
        return _hmac_hex(self._key, EXTERNAL_DOMAIN + external_id)

    def claim_salt(self, claim_id: str) -> str:
        return _hmac_hex(self._key, CLAIM_SALT_DOMAIN + claim_id)

    def vote_token_for(self, claim_id: str, identity_token: str) -> str:
        """Vote hash binding one identity to one claim."""
        per_claim_salt = self.claim_salt(claim_id).encode("utf-8")
        return _hmac_hex(per_claim_salt, f"{claim_id}:{identity_token}")

    def verify_vote_token(self, claim_id: str, identity_token: str, candidate: str) -> bool:
        expected = self.vote_token_for(claim_id, identity_token)
        return hmac.compare_digest(expected, candidate)


def fingerprint_hash(components: Mapping[str, str]) -> str:
    """Canonical SHA-256 of client fingerprint components.

    Components are sorted by key so collection order does not matter.

    Example:
        >>> fingerprint_hash({"timezone": "UTC", "screen": "1920x1080"}) == \\
        ...     fingerprint_hash({"screen": "1920x1080", "timezone": "UTC"})
        True
    """
    canonical = "|".join(f"{key}:{components[key]}" for key in sorted(components))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def generate_claim_id() -> str:
    return str(uuid.uuid4())
