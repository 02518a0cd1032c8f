"""
Verification sessions: one or two OTP challenges bound to an opaque token.

Registration sessions require both email and phone; login sessions require
exactly the channel the user signed in with. Code delivery is best-effort:
a failed email or SMS is logged and never aborts session creation, the user
can ask for a resend instead.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from config import OtpSettings
from infrastructure.verification_store.store import LocatedSession, VerificationStore
from schemas.models.verification import (
    PURPOSE_LOGIN,
    PURPOSE_REGISTRATION,
    OtpRecord,
    SessionRecord,
)
from services.notifier import OtpNotifier
from services.otp_challenge import OtpChallenge
from shared.datetime_utils import expires_in
from shared.generators import generate_session_token
from shared.logging import get_logger
from shared.validators import IDENTIFIER_EMAIL, IDENTIFIER_PHONE

log = get_logger(__name__)


@dataclass(frozen=True)
class SessionTicket:
    """What the client gets back after a session is opened."""

    session_token: str
    expires_in: int
    channels: tuple[str, ...]
    delivered: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionView:
    located: LocatedSession

    @property
    def session(self) -> SessionRecord:
        return self.located.session

    @property
    def token(self) -> str:
        return self.session.token

    @property
    def purpose(self) -> str:
        return self.session.purpose

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id

    @property
    def password_hash(self) -> Optional[str]:
        return self.session.password_hash

    @property
    def expires_at(self) -> datetime:
        return self.session.expires_at

    @property
    def fully_verified(self) -> bool:
        return self.session.fully_verified

    def record(self, identifier_type: str) -> Optional[OtpRecord]:
        return self.session.records.get(identifier_type)

    def identifier(self, identifier_type: str) -> Optional[str]:
        record = self.record(identifier_type)
        return record.identifier if record else None

    def is_verified(self, identifier_type: str) -> bool:
        record = self.record(identifier_type)
        return bool(record and record.verified)


class VerificationSessionManager:
    def __init__(
        self,
        store: VerificationStore,
        challenge: OtpChallenge,
        notifier: OtpNotifier,
        settings: OtpSettings,
    ) -> None:
        self._store = store
        self._challenge = challenge
        self._notifier = notifier
        self._settings = settings

    async def _open(
        self,
        purpose: str,
        identifiers: dict[str, str],
        code_ttl: int,
        user_id: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> SessionTicket:
        token = generate_session_token()
        codes = {kind: self._challenge.generate_code() for kind in identifiers}
        records = [
            self._challenge.build_record(identifiers[kind], kind, codes[kind], code_ttl)
            for kind in identifiers
        ]
        session = SessionRecord(
            token=token,
            purpose=purpose,
            channels=tuple(identifiers),
            expires_at=expires_in(max(code_ttl, self._settings.session_ttl_seconds)),
            user_id=user_id,
            password_hash=password_hash,
        )
        backend = await self._store.create(session, records)

        await asyncio.gather(
            *(self._challenge.start_cooldown(token, kind) for kind in identifiers)
        )
        delivered = await self._notifier.dispatch_many(
            {kind: (identifiers[kind], codes[kind]) for kind in identifiers},
            code_ttl,
        )
        log.info(
            "verification_session_opened",
            purpose=purpose,
            backend=backend,
            channels=list(identifiers),
            delivered=delivered,
        )
        return SessionTicket(
            session_token=token,
            expires_in=code_ttl,
            channels=session.channels,
            delivered=delivered,
        )

    async def send_dual_otp(
        self,
        email: str,
        phone: str,
        user_id: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> SessionTicket:
        """Open a registration session and send codes to both identifiers."""
        return await self._open(
            PURPOSE_REGISTRATION,
            {IDENTIFIER_EMAIL: email, IDENTIFIER_PHONE: phone},
            self._settings.expiry_seconds,
            user_id=user_id,
            password_hash=password_hash,
        )

    async def send_login_otp(
        self,
        identifier: str,
        identifier_type: str,
        user_id: str,
        ttl: Optional[int] = None,
    ) -> SessionTicket:
        """Open a single-channel login session for an authenticated user."""
        return await self._open(
            PURPOSE_LOGIN,
            {identifier_type: identifier},
            ttl or self._settings.login_expiry_seconds,
            user_id=user_id,
        )

    async def get_session(self, session_token: str) -> Optional[SessionView]:
        located = await self._store.locate(session_token)
        return SessionView(located) if located else None

    async def is_session_fully_verified(
        self, session_token: str
    ) -> Optional[SessionView]:
        """Return the session view, or None when absent or expired.

        The caller checks ``view.fully_verified``.
        """
        view = await self.get_session(session_token)
        if view is not None and not view.fully_verified:
            log.info(
                "verification_session_incomplete",
                verified=[ch for ch in view.session.channels if view.is_verified(ch)],
            )
        return view

    async def claim_session(self, view: SessionView) -> bool:
        """Consume the session once. A False return means another call won."""
        claimed = await self._store.consume(view.located)
        if not claimed:
            log.warning("verification_session_claim_lost", purpose=view.purpose)
        return claimed

    async def cleanup_session(self, session_token: str) -> None:
        await self._store.delete(session_token)
        log.info("verification_session_closed")
