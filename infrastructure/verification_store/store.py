"""
Verification store with cache-first routing and durable fallback.

A session lives in exactly one backend: the cache when it was reachable at
creation, MongoDB otherwise. Lookups try the cache first and then MongoDB;
every later mutation goes to the backend that holds the session, so attempt
counters and verified flags never split across stores.

If the cache becomes unreachable after a session was placed there, the
session is unreadable until the cache comes back (it reads as absent).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from errors import DependencyDegradedError
from infrastructure.verification_store.protocol import VerificationBackend
from schemas.models.verification import OtpRecord, SessionRecord
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class LocatedSession:
    session: SessionRecord
    backend: VerificationBackend

    @property
    def token(self) -> str:
        return self.session.token

    @property
    def backend_name(self) -> str:
        return self.backend.name


class VerificationStore:
    def __init__(
        self, cache_backend: VerificationBackend, durable_backend: VerificationBackend
    ) -> None:
        self._cache = cache_backend
        self._durable = durable_backend

    async def _write(
        self,
        backend: VerificationBackend,
        session: SessionRecord,
        records: Sequence[OtpRecord],
    ) -> None:
        await backend.save_session(session)
        await asyncio.gather(
            *(backend.put_record(session.token, r, session.expires_at) for r in records)
        )

    async def create(
        self, session: SessionRecord, records: Sequence[OtpRecord]
    ) -> str:
        """Persist a new session with its records. Returns the backend name."""
        try:
            await self._write(self._cache, session, records)
            return self._cache.name
        except DependencyDegradedError:
            log.warning("verification_store_fallback", op="create")
            try:
                await self._cache.delete_session(session.token)
            except DependencyDegradedError:
                pass  # nothing reachable to clean up
        await self._write(self._durable, session, records)
        return self._durable.name

    async def locate(self, token: str) -> Optional[LocatedSession]:
        """Find a live session and the backend holding it."""
        session = None
        try:
            session = await self._cache.get_session(token)
        except DependencyDegradedError:
            log.warning("verification_store_fallback", op="locate")
        if session is not None:
            located = LocatedSession(session, self._cache)
        else:
            session = await self._durable.get_session(token)
            if session is None:
                return None
            located = LocatedSession(session, self._durable)
        # MongoDB TTL deletion lags; expiry is also checked here
        if located.session.is_expired():
            return None
        return located

    async def save_session(self, located: LocatedSession, session: SessionRecord) -> bool:
        try:
            await located.backend.save_session(session)
            return True
        except DependencyDegradedError:
            return False

    async def put_record(self, located: LocatedSession, record: OtpRecord) -> bool:
        try:
            await located.backend.put_record(
                located.token, record, located.session.expires_at
            )
            return True
        except DependencyDegradedError:
            return False

    async def get_record(
        self, located: LocatedSession, identifier_type: str
    ) -> Optional[OtpRecord]:
        try:
            return await located.backend.get_record(located.token, identifier_type)
        except DependencyDegradedError:
            return None

    async def reserve_attempt(
        self, located: LocatedSession, identifier_type: str
    ) -> Optional[int]:
        try:
            return await located.backend.reserve_attempt(located.token, identifier_type)
        except DependencyDegradedError:
            return None

    async def refund_attempt(self, located: LocatedSession, identifier_type: str) -> None:
        try:
            await located.backend.refund_attempt(located.token, identifier_type)
        except DependencyDegradedError:
            log.warning("otp_attempt_refund_skipped", identifier_type=identifier_type)

    async def mark_verified(self, located: LocatedSession, identifier_type: str) -> bool:
        try:
            return await located.backend.mark_verified(located.token, identifier_type)
        except DependencyDegradedError:
            return False

    async def consume(self, located: LocatedSession) -> bool:
        """Atomically remove the session from the backend holding it.

        Exactly one concurrent caller gets True. An unreachable cache
        backend counts as a lost claim.
        """
        try:
            return await located.backend.consume_session(located.token)
        except DependencyDegradedError:
            log.warning("verification_session_claim_degraded", backend=located.backend_name)
            return False

    async def delete(self, token: str) -> None:
        """Remove the session from every backend."""
        try:
            await self._cache.delete_session(token)
        except DependencyDegradedError:
            log.warning("verification_store_fallback", op="delete")
        await self._durable.delete_session(token)
