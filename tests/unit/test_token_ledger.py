"""Unit tests for TokenLedger: rotation claims, revocation and the blacklist."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from errors import PersistenceError
from services.token_ledger import TokenLedger
from shared.datetime_utils import utcnow

USER = "user-1"


async def _issue(ledger, jti: str = "jti-1", user_id: str = USER, ttl: int = 3600):
    await ledger.record_issued(user_id, jti, f"refresh-token-{jti}", utcnow() + timedelta(seconds=ttl))


class TestRecordIssued:
    async def test_writes_durable_and_cache(self, auth_env, fake_redis):
        await _issue(auth_env.ledger)
        assert "jti-1" in auth_env.tokens.docs
        assert await fake_redis.get(f"test:refresh:{USER}:jti-1") == "1"
        assert 0 < await fake_redis.ttl(f"test:refresh:{USER}:jti-1") <= 3600

    async def test_durable_failure_propagates(self, auth_env):
        auth_env.tokens.fail_inserts = True
        with pytest.raises(PersistenceError):
            await _issue(auth_env.ledger)

    async def test_degraded_cache_still_records_durably(self, degraded_auth_env):
        await _issue(degraded_auth_env.ledger)
        assert "jti-1" in degraded_auth_env.tokens.docs


class TestValidity:
    async def test_unknown_jti_invalid(self, auth_env):
        assert await auth_env.ledger.is_refresh_token_valid(USER, "missing") is False

    async def test_fail_open_when_degraded(self, degraded_auth_env):
        assert await degraded_auth_env.ledger.is_refresh_token_valid(USER, "anything") is True


class TestClaim:
    async def test_claim_once(self, auth_env):
        await _issue(auth_env.ledger)
        assert await auth_env.ledger.claim_refresh_token(USER, "jti-1") is True
        assert await auth_env.ledger.claim_refresh_token(USER, "jti-1") is False
        assert auth_env.tokens.docs["jti-1"].revoked is True

    async def test_concurrent_claims_single_winner(self, auth_env):
        await _issue(auth_env.ledger)
        results = await asyncio.gather(
            *(auth_env.ledger.claim_refresh_token(USER, "jti-1") for _ in range(5))
        )
        assert results.count(True) == 1

    async def test_other_users_token_not_claimable(self, auth_env):
        await _issue(auth_env.ledger, user_id="user-2")
        assert await auth_env.ledger.claim_refresh_token(USER, "jti-1") is False
        assert auth_env.tokens.docs["jti-1"].revoked is False

    async def test_durable_only_when_degraded(self, degraded_auth_env):
        ledger = degraded_auth_env.ledger
        await _issue(ledger)
        assert await ledger.claim_refresh_token(USER, "jti-1") is True
        assert await ledger.claim_refresh_token(USER, "jti-1") is False

    async def test_expired_durable_record_rejected_when_degraded(self, degraded_auth_env):
        ledger = degraded_auth_env.ledger
        await _issue(ledger, ttl=-10)
        assert await ledger.claim_refresh_token(USER, "jti-1") is False

    async def test_missing_cache_key_defers_to_durable_record(self, auth_env, fake_redis):
        await _issue(auth_env.ledger)
        await fake_redis.delete(f"test:refresh:{USER}:jti-1")

        assert await auth_env.ledger.claim_refresh_token(USER, "jti-1") is True
        assert await auth_env.ledger.claim_refresh_token(USER, "jti-1") is False
        assert auth_env.tokens.docs["jti-1"].revoked is True

    async def test_token_issued_during_outage_rotates_after_recovery(
        self, auth_env, degraded_cache
    ):
        await _issue(TokenLedger(degraded_cache, auth_env.tokens))

        results = await asyncio.gather(
            *(auth_env.ledger.claim_refresh_token(USER, "jti-1") for _ in range(3))
        )
        assert results.count(True) == 1

    async def test_revoked_durable_record_rejected_even_if_cached(self, auth_env):
        await _issue(auth_env.ledger)
        await auth_env.tokens.revoke(USER, "jti-1")
        assert await auth_env.ledger.claim_refresh_token(USER, "jti-1") is False


class TestRevoke:
    async def test_revoke_all_clears_every_token(self, auth_env, fake_redis):
        for jti in ("a", "b", "c"):
            await _issue(auth_env.ledger, jti=jti)
        await _issue(auth_env.ledger, jti="other", user_id="user-2")

        assert await auth_env.ledger.revoke_all(USER) == 3
        assert await fake_redis.keys(f"test:refresh:{USER}:*") == []
        for jti in ("a", "b", "c"):
            assert await auth_env.ledger.is_refresh_token_valid(USER, jti) is False
        assert await auth_env.ledger.is_refresh_token_valid("user-2", "other") is True

    async def test_revoke_single(self, auth_env):
        await _issue(auth_env.ledger)
        await auth_env.ledger.revoke(USER, "jti-1")
        assert await auth_env.ledger.is_refresh_token_valid(USER, "jti-1") is False
        assert auth_env.tokens.docs["jti-1"].revoked is True


class TestBlacklist:
    async def test_blacklist_round_trip(self, auth_env):
        assert await auth_env.ledger.is_access_token_blacklisted("jti-1") is False
        assert await auth_env.ledger.blacklist_access_token("jti-1", 600) is True
        assert await auth_env.ledger.is_access_token_blacklisted("jti-1") is True

    async def test_ttl_clamped_to_access_lifetime(self, auth_env, fake_redis):
        await auth_env.ledger.blacklist_access_token("jti-1", 10_000)
        assert await fake_redis.ttl("test:blacklist:jti-1") <= 900

    async def test_non_positive_ttl_skipped(self, auth_env):
        assert await auth_env.ledger.blacklist_access_token("jti-1", 0) is False

    async def test_degraded_reads_as_not_blacklisted(self, degraded_auth_env):
        ledger = degraded_auth_env.ledger
        assert await ledger.blacklist_access_token("jti-1", 600) is False
        assert await ledger.is_access_token_blacklisted("jti-1") is False
