"""Tests for rumormill.core.identity."""

from __future__ import annotations

import re
import uuid

import pytest

from rumormill.core.config import CoreSettings
from rumormill.core.identity import IdentityTokenService, fingerprint_hash, generate_claim_id

HEX64 = re.compile(r"^[0-9a-f]{64}$")


class TestIdentityTokenService:
    def test_empty_salt_rejected(self):
        with pytest.raises(ValueError):
            IdentityTokenService("")

    def test_from_config(self, clean_env):
        service = IdentityTokenService.from_config(CoreSettings(identity_salt="abc"))
        assert service.token_for("fp") == IdentityTokenService("abc").token_for("fp")

    def test_token_is_deterministic_hex(self, tokens):
        token = tokens.token_for("browser-fingerprint")
        assert HEX64.match(token)
        assert token == tokens.token_for("browser-fingerprint")

    def test_distinct_signals_give_distinct_tokens(self, tokens):
        assert tokens.token_for("a") != tokens.token_for("b")

    def test_salt_changes_token(self):
        assert IdentityTokenService("one").token_for("fp") != IdentityTokenService("two").token_for("fp")

    def test_external_ids_do_not_collide_with_fingerprints(self, tokens):
        assert tokens.token_for("alice") != tokens.token_for_external("alice")

    def test_vote_token_binds_claim_and_identity(self, tokens):
        token = tokens.token_for("fp")
        first = tokens.vote_token_for("claim-1", token)
        assert HEX64.match(first)
        assert first == tokens.vote_token_for("claim-1", token)
        assert first != tokens.vote_token_for("claim-2", token)
        assert first != tokens.vote_token_for("claim-1", tokens.token_for("other"))

    def test_vote_token_does_not_expose_identity_token(self, tokens):
        token = tokens.token_for("fp")
        assert token not in tokens.vote_token_for("claim-1", token)

    def test_claim_salt_differs_per_claim(self, tokens):
        assert tokens.claim_salt("a") != tokens.claim_salt("b")

    def test_verify_vote_token(self, tokens):
        token = tokens.token_for("fp")
        vote_hash = tokens.vote_token_for("claim-1", token)
        assert tokens.verify_vote_token("claim-1", token, vote_hash)
        assert not tokens.verify_vote_token("claim-2", token, vote_hash)


class TestFingerprintHash:
    def test_order_independent(self):
        a = fingerprint_hash({"screen": "1920x1080", "timezone": "UTC", "lang": "en"})
        b = fingerprint_hash({"lang": "en", "timezone": "UTC", "screen": "1920x1080"})
        assert a == b
        assert HEX64.match(a)

    def test_value_sensitive(self):
        assert fingerprint_hash({"screen": "1920x1080"}) != fingerprint_hash({"screen": "1280x720"})


def test_generate_claim_id_is_uuid():
    claim_id = generate_claim_id()
    assert str(uuid.UUID(claim_id)) == claim_id
    assert generate_claim_id() != claim_id
