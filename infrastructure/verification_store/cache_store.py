"""
Redis-backed verification backend.

Layout (all keys carry the configured prefix):

    vsession:{token}         hash  purpose, channels, expires_at, user_id, password_hash
    otp:{token}:{type}       hash  identifier, code_hash, attempts, verified, expires_at

Both hashes expire with the session. Timestamps are epoch seconds.

A degraded cache surfaces here as DependencyDegradedError so the routing
store can tell "not in the cache" apart from "cache unreachable".
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from errors import DependencyDegradedError
from infrastructure.cache.handle import CacheHandle, CacheLookup
from schemas.models.verification import OtpRecord, SessionRecord
from shared.datetime_utils import seconds_until, to_epoch


def _from_epoch(value: str) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _unwrap(result: CacheLookup, op: str) -> CacheLookup:
    if result.degraded:
        raise DependencyDegradedError(f"cache unavailable during {op}")
    return result


def encode_record(record: OtpRecord) -> dict[str, str]:
    return {
        "identifier": record.identifier,
        "identifier_type": record.identifier_type,
        "code_hash": record.code_hash,
        "attempts": str(record.attempts),
        "verified": "1" if record.verified else "0",
        "expires_at": str(to_epoch(record.expires_at)),
    }


def decode_record(data: dict[str, str]) -> OtpRecord:
    return OtpRecord(
        identifier=data["identifier"],
        identifier_type=data["identifier_type"],
        code_hash=data["code_hash"],
        expires_at=_from_epoch(data["expires_at"]),
        attempts=int(data.get("attempts", 0)),
        verified=data.get("verified") == "1",
    )


class CacheVerificationStore:
    name = "cache"

    def __init__(self, cache: CacheHandle) -> None:
        self._cache = cache

    def _session_key(self, token: str) -> str:
        return self._cache.key("vsession", token)

    def _record_key(self, token: str, identifier_type: str) -> str:
        return self._cache.key("otp", token, identifier_type)

    async def save_session(self, session: SessionRecord) -> None:
        mapping = {
            "purpose": session.purpose,
            "channels": ",".join(session.channels),
            "expires_at": str(to_epoch(session.expires_at)),
            "user_id": session.user_id or "",
            "password_hash": session.password_hash or "",
        }
        ttl = seconds_until(session.expires_at)
        ok = await self._cache.hset_with_ttl(
            self._session_key(session.token), mapping, ttl
        )
        if not ok:
            raise DependencyDegradedError("cache unavailable during save_session")
        # Records follow the session's TTL
        results = await asyncio.gather(
            *(
                self._cache.expire(self._record_key(session.token, ch), ttl)
                for ch in session.channels
            )
        )
        for result in results:
            _unwrap(result, "save_session")

    async def get_session(self, token: str) -> Optional[SessionRecord]:
        found = _unwrap(await self._cache.hgetall(self._session_key(token)), "get_session")
        if found.miss:
            return None
        data = found.value
        channels = tuple(ch for ch in data.get("channels", "").split(",") if ch)
        lookups = await asyncio.gather(
            *(self._cache.hgetall(self._record_key(token, ch)) for ch in channels)
        )
        records = {}
        for channel, lookup in zip(channels, lookups):
            _unwrap(lookup, "get_session")
            if lookup.hit:
                records[channel] = decode_record(lookup.value)
        return SessionRecord(
            token=token,
            purpose=data["purpose"],
            channels=channels,
            expires_at=_from_epoch(data["expires_at"]),
            user_id=data.get("user_id") or None,
            password_hash=data.get("password_hash") or None,
            records=records,
        )

    async def delete_session(self, token: str) -> None:
        _unwrap(
            await self._cache.delete(
                self._session_key(token),
                self._record_key(token, "email"),
                self._record_key(token, "phone"),
            ),
            "delete_session",
        )

    async def consume_session(self, token: str) -> bool:
        """Delete the session hash. True only for the call that removed it."""
        removed = _unwrap(
            await self._cache.delete(self._session_key(token)), "consume_session"
        )
        if removed.value != 1:
            return False
        await self._cache.delete(
            self._record_key(token, "email"), self._record_key(token, "phone")
        )
        return True

    async def get_record(self, token: str, identifier_type: str) -> Optional[OtpRecord]:
        found = _unwrap(
            await self._cache.hgetall(self._record_key(token, identifier_type)),
            "get_record",
        )
        return decode_record(found.value) if found.hit else None

    async def put_record(
        self, token: str, record: OtpRecord, purge_at: datetime
    ) -> None:
        ok = await self._cache.hset_with_ttl(
            self._record_key(token, record.identifier_type),
            encode_record(record),
            seconds_until(purge_at),
        )
        if not ok:
            raise DependencyDegradedError("cache unavailable during put_record")

    async def reserve_attempt(self, token: str, identifier_type: str) -> Optional[int]:
        found = _unwrap(
            await self._cache.hincrby(self._record_key(token, identifier_type), "attempts", 1),
            "reserve_attempt",
        )
        return found.value if found.hit else None

    async def refund_attempt(self, token: str, identifier_type: str) -> None:
        _unwrap(
            await self._cache.hincrby(self._record_key(token, identifier_type), "attempts", -1),
            "refund_attempt",
        )

    async def mark_verified(self, token: str, identifier_type: str) -> bool:
        found = _unwrap(
            await self._cache.hset_field(
                self._record_key(token, identifier_type), "verified", "1"
            ),
            "mark_verified",
        )
        return found.hit
