"""
Response DTOs for authentication endpoints.

SessionResponse     — POST /auth/register, POST /auth/login
VerifyOtpResponse   — POST /auth/verify-otp
ResendOtpResponse   — POST /auth/resend-otp
UserProfileResponse — embedded in token responses and GET /auth/me
TokenPairResponse   — POST /auth/onboarding, /auth/login/verify, /auth/refresh
LogoutResponse      — POST /auth/logout
CsrfResponse        — GET /auth/csrf
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from schemas.models.user import UserDoc

_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class SessionResponse(BaseModel):
    """A verification session was opened and codes were dispatched."""

    model_config = _CAMEL

    session_token: str
    expires_in: int
    channels: list[str]
    # channel → whether the provider accepted the message
    delivered: dict[str, bool]
    message: str


class VerifyOtpResponse(BaseModel):
    model_config = _CAMEL

    verified: bool
    fully_verified: bool
    message: str


class ResendOtpResponse(BaseModel):
    model_config = _CAMEL

    sent: bool
    expires_in: int


class UserProfileResponse(BaseModel):
    model_config = _CAMEL

    id: str
    email: str
    phone: str
    full_name: Optional[str] = None
    user_name: Optional[str] = None
    user_type: str
    user_role: str
    country: Optional[str] = None
    timezone: Optional[str] = None
    theme: str
    language: str
    email_verified: bool
    phone_verified: bool
    onboarding_completed: bool

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserProfileResponse":
        return cls(
            id=user.user_id,
            email=user.email,
            phone=user.phone,
            full_name=user.full_name,
            user_name=user.user_name,
            user_type=user.user_type,
            user_role=user.user_role,
            country=user.country,
            timezone=user.timezone,
            theme=user.theme,
            language=user.language,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            onboarding_completed=user.onboarding_completed,
        )


class TokenPairResponse(BaseModel):
    model_config = _CAMEL

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int
    user: UserProfileResponse


class LogoutResponse(BaseModel):
    model_config = _CAMEL

    success: bool
    revoked: int


class CsrfResponse(BaseModel):
    model_config = _CAMEL

    csrf_token: str
