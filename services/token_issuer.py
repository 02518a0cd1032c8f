"""
JWT access/refresh issuance and decoding.

Both tokens of a pair are signed from the same payload and share one jti;
only the `type` claim and `exp` differ. RS256 is used when both keys are
configured, HS256 with JWT_SECRET otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import jwt

from config import JWTSettings
from errors import AuthenticationError, ConfigurationError
from schemas.models.user import UserDoc
from services.token_ledger import TokenLedger
from shared.datetime_utils import to_epoch, utcnow
from shared.generators import generate_token_id
from shared.logging import get_logger

log = get_logger(__name__)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    jti: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    access_expires_in: int
    refresh_expires_in: int


def _load_keys(settings: JWTSettings) -> tuple[Any, Any, str]:
    if settings.use_rs256:
        # Keys supplied through env often carry literal \n sequences
        private_key = settings.jwt_private_key.replace("\\n", "\n").encode("utf-8")
        public_key = settings.jwt_public_key.replace("\\n", "\n").encode("utf-8")
        return private_key, public_key, "RS256"
    if not settings.jwt_secret:
        raise ConfigurationError(
            "JWT_SECRET must be set when RS256 keys are not provided"
        )
    return settings.jwt_secret, settings.jwt_secret, "HS256"


class TokenIssuer:
    def __init__(self, settings: JWTSettings, ledger: TokenLedger) -> None:
        self._settings = settings
        self._ledger = ledger
        self._signing_key, self._verify_key, self._algorithm = _load_keys(settings)

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def _claims(self, user: UserDoc, jti: str, now: datetime) -> dict:
        return {
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "sub": user.user_id,
            "email": user.email,
            "phone": user.phone,
            "userType": user.user_type,
            "onboardingCompleted": user.onboarding_completed,
            "jti": jti,
            "iat": to_epoch(now),
        }

    def _sign(self, claims: dict, token_type: str, expires_at: datetime) -> str:
        payload = {**claims, "type": token_type, "exp": to_epoch(expires_at)}
        return jwt.encode(payload, self._signing_key, algorithm=self._algorithm)

    async def issue(self, user: UserDoc) -> IssuedTokens:
        """Mint a new pair for *user* and register the refresh half.

        Raises:
            PersistenceError: the ledger could not record the refresh token.
        """
        now = utcnow()
        jti = generate_token_id()
        access_ttl = self._settings.access_token_ttl_seconds
        refresh_ttl = self._settings.refresh_token_ttl_seconds
        access_expires_at = now + timedelta(seconds=access_ttl)
        refresh_expires_at = now + timedelta(seconds=refresh_ttl)

        claims = self._claims(user, jti, now)
        access_token = self._sign(claims, TOKEN_TYPE_ACCESS, access_expires_at)
        refresh_token = self._sign(claims, TOKEN_TYPE_REFRESH, refresh_expires_at)

        await self._ledger.record_issued(
            user.user_id, jti, refresh_token, refresh_expires_at
        )
        log.info("tokens_issued", user_id=user.user_id, jti=jti)
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            jti=jti,
            access_expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
            access_expires_in=access_ttl,
            refresh_expires_in=refresh_ttl,
        )

    def decode(self, token: str, expected_type: Optional[str] = None) -> dict:
        """Verify signature, expiry, issuer, audience and token type.

        Raises:
            AuthenticationError: for any invalid token, with a generic message.
        """
        try:
            claims = jwt.decode(
                token,
                self._verify_key,
                algorithms=[self._algorithm],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as e:
            log.info("token_rejected", reason="expired")
            raise AuthenticationError("Invalid or expired token") from e
        except jwt.InvalidTokenError as e:
            log.info("token_rejected", reason=type(e).__name__)
            raise AuthenticationError("Invalid or expired token") from e
        if expected_type is not None and claims.get("type") != expected_type:
            log.info("token_rejected", reason="wrong_type")
            raise AuthenticationError("Invalid or expired token")
        return claims
