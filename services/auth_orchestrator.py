"""
Registration, login and token lifecycle flows.

Registration:  UNREGISTERED → OTP_PENDING → FULLY_VERIFIED → ONBOARDED
Login:         CREDENTIALED → LOGIN_OTP_PENDING → AUTHENTICATED

States are not stored as such; they are implied by the verification session
(purpose and verified records) and by the existence of the user document.

Failure messages are generic. The logs carry the precise
reason, the client only learns that the step failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from errors import AuthenticationError, ConflictError, RateLimitError, ValidationError
from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc
from schemas.models.verification import PURPOSE_LOGIN, PURPOSE_REGISTRATION
from services.audit_service import AuditService
from services.otp_challenge import OtpChallenge, OtpVerification, describe_failure
from services.token_issuer import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH, IssuedTokens, TokenIssuer
from services.token_ledger import TokenLedger
from services.verification_session import (
    SessionTicket,
    SessionView,
    VerificationSessionManager,
)
from shared.best_effort import run_best_effort
from shared.crypto import hash_password, verify_password
from shared.datetime_utils import to_epoch, utcnow
from shared.logging import get_logger, mask
from shared.validators import (
    IDENTIFIER_EMAIL,
    IDENTIFIER_PHONE,
    classify_identifier,
    normalize_email,
    validate_email,
    validate_phone,
)

log = get_logger(__name__)

_INVALID_SESSION = "Invalid or expired verification session"
_INVALID_CREDENTIALS = "Invalid credentials"
_INVALID_TOKEN = "Invalid or expired token"


@dataclass(frozen=True)
class OnboardingProfile:
    full_name: Optional[str] = None
    user_name: Optional[str] = None
    user_type: str = "student"
    country: Optional[str] = None
    timezone: Optional[str] = None
    theme: str = "system"
    language: str = "en"


@dataclass(frozen=True)
class VerifyResult:
    verified: bool
    fully_verified: bool
    already_verified: bool = False


@dataclass(frozen=True)
class AuthResult:
    user: UserDoc
    tokens: IssuedTokens


class AuthOrchestrator:
    def __init__(
        self,
        users: UserRepository,
        sessions: VerificationSessionManager,
        challenge: OtpChallenge,
        issuer: TokenIssuer,
        ledger: TokenLedger,
        audit: AuditService,
        best_effort_timeout: float = 10.0,
    ) -> None:
        self._users = users
        self._sessions = sessions
        self._challenge = challenge
        self._issuer = issuer
        self._ledger = ledger
        self._audit = audit
        self._timeout = best_effort_timeout

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _session(self, session_token: str, purpose: str) -> SessionView:
        view = await self._sessions.get_session(session_token)
        if view is None or view.purpose != purpose:
            log.info("verification_session_rejected", purpose=purpose, found=view is not None)
            raise AuthenticationError(_INVALID_SESSION)
        return view

    async def _verify_code(
        self,
        view: SessionView,
        identifier: str,
        identifier_type: str,
        code: str,
    ) -> OtpVerification:
        if identifier_type not in view.session.channels:
            raise AuthenticationError(_INVALID_SESSION)
        outcome = await self._challenge.verify(
            view.located, identifier, identifier_type, code
        )
        if outcome.succeeded:
            return outcome
        await self._audit.record(
            "otp_verify",
            status="failure",
            user_id=view.user_id,
            purpose=view.purpose,
            identifier_type=identifier_type,
            reason=outcome.value,
        )
        message = describe_failure(outcome)
        if outcome is OtpVerification.EXHAUSTED:
            raise RateLimitError(message)
        raise AuthenticationError(message)

    async def _finish_session(self, session_token: str) -> None:
        """Close the session without failing the caller."""
        await run_best_effort(
            "cleanup_session", self._sessions.cleanup_session(session_token), self._timeout
        )

    # ── Registration ─────────────────────────────────────────────────────────

    async def register(
        self, email: str, phone: str, password: Optional[str] = None
    ) -> SessionTicket:
        email = normalize_email(email)
        phone = phone.strip()
        if not validate_email(email):
            raise ValidationError("Invalid email address", field="email")
        if not validate_phone(phone):
            raise ValidationError("Phone must be in E.164 format", field="phone")

        existing = await self._users.find_by_email_or_phone(email, phone)
        if existing is not None:
            log.info("register_conflict", email=mask(email), phone=mask(phone))
            raise ConflictError("An account with this email or phone already exists")

        password_hash = hash_password(password) if password else None
        ticket = await self._sessions.send_dual_otp(
            email, phone, password_hash=password_hash
        )
        await self._audit.record("register_initiated", email=mask(email))
        return ticket

    async def verify_otp(
        self,
        session_token: str,
        identifier: str,
        identifier_type: str,
        code: str,
    ) -> VerifyResult:
        view = await self._session(session_token, PURPOSE_REGISTRATION)
        outcome = await self._verify_code(view, identifier, identifier_type, code)

        refreshed = await self._sessions.is_session_fully_verified(session_token)
        fully_verified = bool(refreshed and refreshed.fully_verified)
        if fully_verified:
            log.info("registration_fully_verified")
        return VerifyResult(
            verified=True,
            fully_verified=fully_verified,
            already_verified=outcome is OtpVerification.ALREADY_VERIFIED,
        )

    async def resend_otp(
        self, session_token: str, identifier_type: str, identifier: str
    ) -> int:
        """Send a fresh code for one channel. Returns its lifetime in seconds."""
        view = await self._sessions.get_session(session_token)
        if view is None:
            raise AuthenticationError(_INVALID_SESSION)
        return await self._challenge.resend(view.located, identifier_type, identifier)

    async def complete_onboarding(
        self, session_token: str, profile: OnboardingProfile
    ) -> AuthResult:
        view = await self._sessions.is_session_fully_verified(session_token)
        if view is None or view.purpose != PURPOSE_REGISTRATION or not view.fully_verified:
            raise AuthenticationError("Verification is incomplete or has expired")

        now = utcnow()
        user = await self._users.create(
            UserDoc(
                email=view.identifier(IDENTIFIER_EMAIL),
                phone=view.identifier(IDENTIFIER_PHONE),
                password_hash=view.password_hash,
                full_name=profile.full_name,
                user_name=profile.user_name,
                user_type=profile.user_type,
                user_role=UserDoc.role_for(profile.user_type),
                country=profile.country,
                timezone=profile.timezone,
                theme=profile.theme,
                language=profile.language,
                email_verified=True,
                phone_verified=True,
                onboarding_completed=True,
                created_at=now,
                last_login_at=now,
            )
        )
        tokens = await self._issuer.issue(user)
        await self._finish_session(session_token)
        await self._audit.record("onboarding_completed", user_id=user.user_id)
        return AuthResult(user=user, tokens=tokens)

    # ── Login ────────────────────────────────────────────────────────────────

    async def login(self, identifier: str, password: str) -> SessionTicket:
        identifier_type = classify_identifier(identifier)
        if identifier_type is None:
            raise AuthenticationError(_INVALID_CREDENTIALS)

        user = await self._users.find_by_identifier(identifier, identifier_type)
        if (
            user is None
            or not user.password_hash
            or not verify_password(password, user.password_hash)
        ):
            log.info("login_rejected", identifier_type=identifier_type, identifier=mask(identifier))
            await self._audit.record(
                "login", status="failure", identifier_type=identifier_type
            )
            raise AuthenticationError(_INVALID_CREDENTIALS)

        target = user.email if identifier_type == IDENTIFIER_EMAIL else user.phone
        ticket = await self._sessions.send_login_otp(target, identifier_type, user.user_id)
        await self._audit.record("login_otp_sent", user_id=user.user_id, identifier_type=identifier_type)
        return ticket

    async def verify_login(
        self,
        session_token: str,
        identifier: str,
        identifier_type: str,
        code: str,
    ) -> AuthResult:
        """Check the login code, consume the session and issue a token pair.

        A login session yields at most one pair: a record that is already
        verified is never accepted, and the session is claimed (deleted
        atomically) before tokens are issued.
        """
        view = await self._session(session_token, PURPOSE_LOGIN)
        outcome = await self._verify_code(view, identifier, identifier_type, code)
        if outcome is OtpVerification.ALREADY_VERIFIED:
            log.warning("login_session_replayed", identifier_type=identifier_type)
            raise AuthenticationError(_INVALID_SESSION)

        if not await self._sessions.claim_session(view):
            raise AuthenticationError(_INVALID_SESSION)

        user = await self._users.get_by_id(view.user_id or "")
        if user is None:
            log.warning("login_user_missing", user_id=view.user_id)
            raise AuthenticationError(_INVALID_SESSION)

        tokens = await self._issuer.issue(user)
        await run_best_effort(
            "touch_last_login", self._users.touch_last_login(user.user_id), self._timeout
        )
        await self._audit.record("login", user_id=user.user_id, identifier_type=identifier_type)
        return AuthResult(user=user, tokens=tokens)

    # ── Tokens ───────────────────────────────────────────────────────────────

    async def refresh(self, refresh_token: str) -> AuthResult:
        claims = self._issuer.decode(refresh_token, expected_type=TOKEN_TYPE_REFRESH)
        user_id, jti = claims["sub"], claims["jti"]

        if not await self._ledger.claim_refresh_token(user_id, jti):
            await self._audit.record("token_refresh", status="failure", user_id=user_id)
            raise AuthenticationError(_INVALID_TOKEN)

        user = await self._users.get_by_id(user_id)
        if user is None:
            raise AuthenticationError(_INVALID_TOKEN)

        tokens = await self._issuer.issue(user)
        await self._audit.record("token_refresh", user_id=user_id)
        return AuthResult(user=user, tokens=tokens)

    async def logout(
        self, user_id: str, access_claims: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Revoke every refresh token of the user and blacklist the presented access token.

        Returns:
            Number of refresh tokens revoked in the durable store.
        """
        revoked = await self._ledger.revoke_all(user_id)
        if access_claims and access_claims.get("jti") and access_claims.get("exp"):
            remaining = int(access_claims["exp"]) - to_epoch(utcnow())
            await run_best_effort(
                "blacklist_access_token",
                self._ledger.blacklist_access_token(access_claims["jti"], remaining),
                self._timeout,
            )
        await self._audit.record("logout", user_id=user_id, revoked=revoked)
        return revoked

    async def authenticate(self, access_token: str) -> dict:
        """Decode an access token and reject blacklisted ones."""
        claims = self._issuer.decode(access_token, expected_type=TOKEN_TYPE_ACCESS)
        if await self._ledger.is_access_token_blacklisted(claims["jti"]):
            log.info("token_rejected", reason="blacklisted", user_id=claims.get("sub"))
            raise AuthenticationError(_INVALID_TOKEN)
        return claims
