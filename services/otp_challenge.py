"""
One-time-code challenge for a single identifier within a verification session.

verify() runs its checks in a fixed order:

    not found → already verified → expired → identifier mismatch
    → attempts exhausted → compare

The attempt counter is reserved with the store's atomic increment before
comparing, and checked on the post-increment value, so concurrent guesses
cannot exceed max_attempts between them. A match (or a refused reservation)
hands the slot back; only mismatches consume attempts.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from enum import Enum
from typing import Optional

from config import OtpSettings
from errors import AuthenticationError, RateLimitError, ValidationError
from infrastructure.cache.handle import CacheHandle
from infrastructure.verification_store.store import LocatedSession, VerificationStore
from schemas.models.verification import PURPOSE_LOGIN, OtpRecord
from services.notifier import OtpNotifier
from shared.crypto import digests_match, hash_token
from shared.datetime_utils import expires_in, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger, mask
from shared.validators import IDENTIFIER_EMAIL, normalize_email

log = get_logger(__name__)


class OtpVerification(str, Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    IDENTIFIER_MISMATCH = "identifier_mismatch"
    EXHAUSTED = "exhausted"
    MISMATCH = "mismatch"

    @property
    def succeeded(self) -> bool:
        return self in (OtpVerification.VERIFIED, OtpVerification.ALREADY_VERIFIED)


def same_identifier(identifier_type: str, stored: str, candidate: str) -> bool:
    if identifier_type == IDENTIFIER_EMAIL:
        return normalize_email(stored) == normalize_email(candidate)
    return stored.strip() == candidate.strip()


class OtpChallenge:
    def __init__(
        self,
        store: VerificationStore,
        cache: CacheHandle,
        notifier: OtpNotifier,
        settings: OtpSettings,
    ) -> None:
        self._store = store
        self._cache = cache
        self._notifier = notifier
        self._settings = settings

    @property
    def max_attempts(self) -> int:
        return self._settings.max_attempts

    def code_ttl(self, purpose: str) -> int:
        if purpose == PURPOSE_LOGIN:
            return self._settings.login_expiry_seconds
        return self._settings.expiry_seconds

    def generate_code(self) -> str:
        return generate_otp_code(self._settings.code_length)

    def build_record(
        self, identifier: str, identifier_type: str, code: str, ttl_seconds: int
    ) -> OtpRecord:
        """A fresh record: attempts 0, unverified, expiring in *ttl_seconds*."""
        if identifier_type == IDENTIFIER_EMAIL:
            identifier = normalize_email(identifier)
        return OtpRecord(
            identifier=identifier,
            identifier_type=identifier_type,
            code_hash=hash_token(code),
            expires_at=expires_in(ttl_seconds),
        )

    async def store(
        self,
        located: LocatedSession,
        identifier: str,
        identifier_type: str,
        code: str,
        ttl_seconds: int,
    ) -> bool:
        """Write a fresh record into the backend holding the session."""
        record = self.build_record(identifier, identifier_type, code, ttl_seconds)
        return await self._store.put_record(located, record)

    async def start_cooldown(self, session_token: str, identifier_type: str) -> bool:
        """Open the resend cooldown window. False when the window is already open.

        A degraded cache skips the cooldown entirely.
        """
        if self._settings.resend_cooldown_seconds <= 0:
            return True
        opened = await self._cache.set_if_absent(
            self._cache.key("resend", session_token, identifier_type),
            self._settings.resend_cooldown_seconds,
        )
        if opened.degraded:
            return True
        return bool(opened.value)

    async def verify(
        self,
        located: LocatedSession,
        identifier: str,
        identifier_type: str,
        code: str,
    ) -> OtpVerification:
        record = await self._store.get_record(located, identifier_type)
        if record is None:
            log.info("otp_not_found", identifier_type=identifier_type)
            return OtpVerification.NOT_FOUND
        if record.verified:
            return OtpVerification.ALREADY_VERIFIED
        if record.is_expired():
            log.info("otp_expired", identifier_type=identifier_type)
            return OtpVerification.EXPIRED
        if not same_identifier(identifier_type, record.identifier, identifier):
            log.warning(
                "otp_identifier_mismatch",
                identifier_type=identifier_type,
                identifier=mask(identifier),
            )
            return OtpVerification.IDENTIFIER_MISMATCH
        if record.attempts >= self.max_attempts:
            log.warning("otp_attempts_exhausted", identifier_type=identifier_type)
            return OtpVerification.EXHAUSTED

        attempts = await self._store.reserve_attempt(located, identifier_type)
        if attempts is None:
            return OtpVerification.NOT_FOUND
        if attempts > self.max_attempts:
            await self._store.refund_attempt(located, identifier_type)
            log.warning("otp_attempts_exhausted", identifier_type=identifier_type)
            return OtpVerification.EXHAUSTED

        if not digests_match(record.code_hash, code):
            log.info(
                "otp_mismatch",
                identifier_type=identifier_type,
                attempts_remaining=max(0, self.max_attempts - attempts),
            )
            return OtpVerification.MISMATCH

        if not await self._store.mark_verified(located, identifier_type):
            return OtpVerification.NOT_FOUND
        await self._store.refund_attempt(located, identifier_type)
        log.info("otp_verified", identifier_type=identifier_type, backend=located.backend_name)
        return OtpVerification.VERIFIED

    async def resend(
        self, located: LocatedSession, identifier_type: str, identifier: str
    ) -> int:
        """Issue a new code for one channel of the session and dispatch it.

        Resets attempts and the code's expiry, and stretches the session so
        it outlives the new code.

        Returns:
            The new code's lifetime in seconds.

        Raises:
            AuthenticationError: the channel is not part of this session or the
                identifier does not match.
            RateLimitError: a code was sent for this channel too recently.
        """
        session = located.session
        current = session.records.get(identifier_type)
        if identifier_type not in session.channels or current is None:
            raise AuthenticationError("Invalid verification session")
        if not same_identifier(identifier_type, current.identifier, identifier):
            log.warning(
                "otp_identifier_mismatch",
                identifier_type=identifier_type,
                identifier=mask(identifier),
                op="resend",
            )
            raise AuthenticationError("Invalid verification session")
        if current.verified:
            raise ValidationError("This identifier is already verified", field="type")

        if not await self.start_cooldown(located.token, identifier_type):
            raise RateLimitError(
                "Please wait before requesting another code",
                details={"retryAfterSeconds": self._settings.resend_cooldown_seconds},
            )

        ttl = self.code_ttl(session.purpose)
        session_expiry = max(
            session.expires_at,
            utcnow() + timedelta(seconds=max(ttl, self._settings.session_ttl_seconds)),
        )
        if session_expiry > session.expires_at:
            extended = replace(session, expires_at=session_expiry)
            await self._store.save_session(located, extended)
            located = LocatedSession(extended, located.backend)

        code = self.generate_code()
        if not await self.store(located, current.identifier, identifier_type, code, ttl):
            raise AuthenticationError("Invalid verification session")
        await self._notifier.dispatch(identifier_type, current.identifier, code, ttl)
        log.info("otp_resent", identifier_type=identifier_type, backend=located.backend_name)
        return ttl


def describe_failure(outcome: OtpVerification) -> Optional[str]:
    """Client-facing message for a failed outcome, None on success."""
    if outcome.succeeded:
        return None
    if outcome is OtpVerification.EXHAUSTED:
        return "Too many incorrect attempts. Request a new code."
    return "Invalid or expired code"
