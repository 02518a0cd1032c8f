"""Health-checked Redis handle with typed degraded results.

Every auth component talks to Redis through a CacheHandle. An unreachable or
unconfigured cache never raises out of the handle: reads come back as
``CacheStatus.DEGRADED`` and writes report ``False``. Callers decide what
"unknown" means for them (see TokenLedger for the fail-open/strict split).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from errors import DependencyDegradedError
from shared.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class CacheLookup:
    """Outcome of a cache read. ``value`` is only meaningful on a HIT."""

    status: CacheStatus
    value: Any = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT

    @property
    def miss(self) -> bool:
        return self.status is CacheStatus.MISS

    @property
    def degraded(self) -> bool:
        return self.status is CacheStatus.DEGRADED


MISS = CacheLookup(CacheStatus.MISS)
DEGRADED = CacheLookup(CacheStatus.DEGRADED)


class CacheHandle:
    def __init__(
        self, redis_client: Optional[aioredis.Redis], key_prefix: str = ""
    ) -> None:
        self._redis = redis_client
        self._prefix = key_prefix

    @property
    def configured(self) -> bool:
        return self._redis is not None

    def key(self, *parts: str) -> str:
        """Build a prefixed key from colon-separated parts."""
        return self._prefix + ":".join(parts)

    async def _run(self, op: str, call: Callable[[], Awaitable[T]]) -> T:
        if self._redis is None:
            raise DependencyDegradedError("cache not configured")
        try:
            return await call()
        except (RedisError, OSError) as e:
            log.warning(
                "cache_degraded", op=op, error=str(e), error_type=type(e).__name__
            )
            raise DependencyDegradedError("cache unavailable") from e

    async def health(self) -> CacheStatus:
        """PING the server. HIT means reachable."""
        try:
            await self._run("ping", lambda: self._redis.ping())
            return CacheStatus.HIT
        except DependencyDegradedError:
            return CacheStatus.DEGRADED

    # ── String keys ──────────────────────────────────────────────────────────

    async def get(self, key: str) -> CacheLookup:
        try:
            raw = await self._run("get", lambda: self._redis.get(key))
        except DependencyDegradedError:
            return DEGRADED
        return MISS if raw is None else CacheLookup(CacheStatus.HIT, raw)

    async def exists(self, key: str) -> CacheLookup:
        try:
            count = await self._run("exists", lambda: self._redis.exists(key))
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, True) if count else MISS

    async def setex(self, key: str, ttl_seconds: int, value: str) -> bool:
        if ttl_seconds <= 0:
            return False
        try:
            await self._run(
                "setex", lambda: self._redis.setex(key, ttl_seconds, value)
            )
            return True
        except DependencyDegradedError:
            return False

    async def set_if_absent(self, key: str, ttl_seconds: int, value: str = "1") -> CacheLookup:
        """SET NX EX. HIT with ``True`` when this call created the key."""
        try:
            created = await self._run(
                "set_nx",
                lambda: self._redis.set(key, value, nx=True, ex=ttl_seconds),
            )
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, bool(created))

    async def expire(self, key: str, ttl_seconds: int) -> CacheLookup:
        """Reset the TTL of an existing key. MISS when the key is gone."""
        try:
            applied = await self._run(
                "expire", lambda: self._redis.expire(key, ttl_seconds)
            )
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, True) if applied else MISS

    async def delete(self, *keys: str) -> CacheLookup:
        """DEL. HIT carries the number of keys actually removed."""
        if not keys:
            return CacheLookup(CacheStatus.HIT, 0)
        try:
            removed = await self._run("delete", lambda: self._redis.delete(*keys))
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, int(removed))

    async def delete_pattern(self, pattern: str) -> CacheLookup:
        """SCAN for *pattern* and delete every match. HIT carries the count."""

        async def _scan_and_delete() -> int:
            removed = 0
            batch: list[str] = []
            async for found in self._redis.scan_iter(match=pattern, count=200):
                batch.append(found)
                if len(batch) >= 200:
                    removed += await self._redis.delete(*batch)
                    batch = []
            if batch:
                removed += await self._redis.delete(*batch)
            return removed

        try:
            removed = await self._run("delete_pattern", _scan_and_delete)
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, removed)

    # ── Hash keys ────────────────────────────────────────────────────────────

    async def hset_with_ttl(
        self, key: str, mapping: Mapping[str, Any], ttl_seconds: int
    ) -> bool:
        """Replace the hash at *key* with *mapping* and set its TTL atomically."""
        if ttl_seconds <= 0:
            return False

        async def _replace() -> None:
            pipe = self._redis.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=dict(mapping))
            pipe.expire(key, ttl_seconds)
            await pipe.execute()

        try:
            await self._run("hset", _replace)
            return True
        except DependencyDegradedError:
            return False

    async def hgetall(self, key: str) -> CacheLookup:
        try:
            data = await self._run("hgetall", lambda: self._redis.hgetall(key))
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, data) if data else MISS

    async def hincrby(self, key: str, field: str, amount: int = 1) -> CacheLookup:
        """Atomic HINCRBY on an existing hash. HIT carries the new value.

        HINCRBY creates missing keys; a key without a TTL afterwards was just
        created by this call (the record expired underneath us), so it is
        removed again and reported as a MISS.
        """

        async def _incr() -> Optional[int]:
            pipe = self._redis.pipeline(transaction=True)
            pipe.hincrby(key, field, amount)
            pipe.ttl(key)
            value, ttl = await pipe.execute()
            if ttl == -1:
                await self._redis.delete(key)
                return None
            return int(value)

        try:
            value = await self._run("hincrby", _incr)
        except DependencyDegradedError:
            return DEGRADED
        return MISS if value is None else CacheLookup(CacheStatus.HIT, value)

    async def hset_field(self, key: str, field: str, value: str) -> CacheLookup:
        """Set one field on an existing hash without touching its TTL."""

        async def _set() -> bool:
            pipe = self._redis.pipeline(transaction=True)
            pipe.hset(key, field, value)
            pipe.ttl(key)
            _, ttl = await pipe.execute()
            if ttl == -1:
                await self._redis.delete(key)
                return False
            return True

        try:
            applied = await self._run("hset_field", _set)
        except DependencyDegradedError:
            return DEGRADED
        return CacheLookup(CacheStatus.HIT, True) if applied else MISS
