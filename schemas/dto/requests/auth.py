"""
Request DTOs for authentication endpoints.

RegisterRequest     — POST /auth/register
VerifyOtpRequest    — POST /auth/verify-otp
ResendOtpRequest    — POST /auth/resend-otp
OnboardingRequest   — POST /auth/onboarding
LoginRequest        — POST /auth/login
VerifyLoginRequest  — POST /auth/login/verify
RefreshRequest      — POST /auth/refresh  (body optional; cookie fallback)

Field names are camelCase on the wire; snake_case is accepted as well.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from shared.validators import (
    classify_identifier,
    normalize_email,
    validate_email,
    validate_phone,
)

_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)

IdentifierType = Literal["email", "phone"]


def _check_email(value: str) -> str:
    value = normalize_email(value)
    if not validate_email(value):
        raise ValueError("Invalid email address")
    return value


def _check_phone(value: str) -> str:
    value = value.strip()
    if not validate_phone(value):
        raise ValueError("Phone must be in E.164 format, e.g. +919876543210")
    return value


def _check_code(value: str) -> str:
    value = value.strip()
    if not (value.isascii() and value.isdigit() and 4 <= len(value) <= 10):
        raise ValueError("Code must be numeric")
    return value


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = _CAMEL

    email: str
    phone: str
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)

    @field_validator("email", mode="after")
    @classmethod
    def _validate_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("phone", mode="after")
    @classmethod
    def _validate_phone(cls, v: str) -> str:
        return _check_phone(v)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /auth/verify-otp.

    ``type`` names the channel being verified; ``identifier`` must be the
    email or phone the code was sent to.
    """

    model_config = _CAMEL

    session_token: str = Field(min_length=1, max_length=128)
    identifier: str = Field(min_length=1, max_length=320)
    type: IdentifierType
    code: str

    @field_validator("code", mode="after")
    @classmethod
    def _validate_code(cls, v: str) -> str:
        return _check_code(v)

    @model_validator(mode="after")
    def _identifier_matches_type(self) -> "VerifyOtpRequest":
        if classify_identifier(self.identifier) != self.type:
            raise ValueError(f"identifier is not a valid {self.type}")
        return self


class VerifyLoginRequest(VerifyOtpRequest):
    """Request body for POST /auth/login/verify (same shape as verify-otp)."""


class ResendOtpRequest(BaseModel):
    """Request body for POST /auth/resend-otp."""

    model_config = _CAMEL

    session_token: str = Field(min_length=1, max_length=128)
    type: IdentifierType
    identifier: str = Field(min_length=1, max_length=320)


class OnboardingRequest(BaseModel):
    """Request body for POST /auth/onboarding.

    Sent once both identifiers of a registration session are verified.
    """

    model_config = _CAMEL

    session_token: str = Field(min_length=1, max_length=128)
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    user_name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    user_type: Literal["student", "working_professional", "team_manager"] = "student"
    country: Optional[str] = Field(default=None, max_length=64)
    timezone: Optional[str] = Field(default=None, max_length=64)
    theme: Literal["light", "dark", "system"] = "system"
    language: Literal["en", "hi"] = "en"


class LoginRequest(BaseModel):
    """Request body for POST /auth/login.

    The identifier may be sent as ``identifier`` or, for older clients, as
    ``email`` / ``phone``.
    """

    model_config = _CAMEL

    identifier: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("identifier", "email", "phone"),
    )
    password: str = Field(min_length=1, max_length=128)

    @model_validator(mode="after")
    def _require_identifier(self) -> "LoginRequest":
        if not self.identifier or not self.identifier.strip():
            raise ValueError("identifier is required")
        self.identifier = self.identifier.strip()
        return self


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh."""

    model_config = _CAMEL

    refresh_token: Optional[str] = None
