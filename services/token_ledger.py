"""
Refresh-token validity and access-token blacklist.

Cache keys (prefixed):

    refresh:{user_id}:{jti}   "1", TTL = refresh lifetime
    blacklist:{jti}           "1", TTL <= remaining access lifetime

MongoDB `refresh-tokens` holds the durable copy (hashed token, revoked flag).

Degraded-cache policy:
- is_refresh_token_valid answers True (fail-open).
- claim_refresh_token is always decided by the durable conditional update.
- is_access_token_blacklisted answers False.
"""

from __future__ import annotations

from datetime import datetime

from infrastructure.cache.handle import CacheHandle
from repositories.refresh_token_repository import RefreshTokenRepository
from schemas.models.token import RefreshTokenDoc
from shared.crypto import hash_token
from shared.datetime_utils import seconds_until, utcnow
from shared.logging import get_logger

log = get_logger(__name__)


class TokenLedger:
    def __init__(
        self,
        cache: CacheHandle,
        repository: RefreshTokenRepository,
        access_ttl_seconds: int = 900,
    ) -> None:
        self._cache = cache
        self._repo = repository
        self._access_ttl = access_ttl_seconds

    def _refresh_key(self, user_id: str, jti: str) -> str:
        return self._cache.key("refresh", user_id, jti)

    def _blacklist_key(self, jti: str) -> str:
        return self._cache.key("blacklist", jti)

    async def record_issued(
        self, user_id: str, jti: str, refresh_token: str, expires_at: datetime
    ) -> None:
        """Register a freshly issued refresh token.

        Raises:
            PersistenceError: the durable insert failed. A cache failure is
                only logged.
        """
        await self._repo.insert(
            RefreshTokenDoc(
                _id=jti,
                user_id=user_id,
                token_hash=hash_token(refresh_token),
                expires_at=expires_at,
            )
        )
        mirrored = await self._cache.setex(
            self._refresh_key(user_id, jti), seconds_until(expires_at), "1"
        )
        if not mirrored:
            log.warning("refresh_token_cache_write_skipped", user_id=user_id, jti=jti)

    async def is_refresh_token_valid(self, user_id: str, jti: str) -> bool:
        found = await self._cache.exists(self._refresh_key(user_id, jti))
        if found.degraded:
            log.warning("refresh_validity_fail_open", user_id=user_id, jti=jti)
            return True
        return found.hit

    async def claim_refresh_token(self, user_id: str, jti: str) -> bool:
        """Consume a refresh token exactly once.

        The durable conditional update decides. The cache key is dropped
        first; a key that is already gone (issued during an outage, evicted,
        flushed) does not block the claim.
        """
        removed = await self._cache.delete(self._refresh_key(user_id, jti))
        if removed.degraded:
            log.warning("refresh_token_claim_durable_only", user_id=user_id, jti=jti)
        elif removed.value != 1:
            log.info("refresh_token_cache_key_absent", user_id=user_id, jti=jti)

        claimed = await self._repo.claim(user_id, jti)
        if not claimed:
            log.warning("refresh_token_claim_rejected", user_id=user_id, jti=jti, reason="not_active")
        return claimed

    async def revoke(self, user_id: str, jti: str) -> None:
        await self._cache.delete(self._refresh_key(user_id, jti))
        await self._repo.revoke(user_id, jti)

    async def revoke_all(self, user_id: str) -> int:
        """Revoke every refresh token of *user_id*. Returns the durable count."""
        await self._cache.delete_pattern(self._refresh_key(user_id, "*"))
        revoked = await self._repo.revoke_all(user_id)
        log.info("refresh_tokens_revoked", user_id=user_id, count=revoked)
        return revoked

    async def blacklist_access_token(self, jti: str, ttl_seconds: int) -> bool:
        ttl = min(ttl_seconds, self._access_ttl)
        if ttl <= 0:
            return False
        return await self._cache.setex(self._blacklist_key(jti), ttl, "1")

    async def is_access_token_blacklisted(self, jti: str) -> bool:
        found = await self._cache.exists(self._blacklist_key(jti))
        return found.hit
