"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Signing material is validated when AppSettings is built: a missing JWT secret
(or RS256 key pair) is a startup failure, never a per-request one.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "sentinel"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional; without Redis the auth flows run against MongoDB only
    redis_uri: Optional[str] = None
    redis_key_prefix: str = "sentinel:"


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "sentinel"
    jwt_audience: str = "sentinel.api"
    access_token_ttl_seconds: int = Field(default=900, gt=0)
    refresh_token_ttl_seconds: int = Field(default=604800, gt=0)
    cookie_secure: bool = True

    # RS256 keys (preferred)
    jwt_private_key: str = ""
    jwt_public_key: str = ""

    # HS256 fallback (used when RS256 keys are absent)
    jwt_secret: str = ""

    @property
    def use_rs256(self) -> bool:
        return bool(self.jwt_private_key and self.jwt_public_key)

    @property
    def has_signing_material(self) -> bool:
        return self.use_rs256 or bool(self.jwt_secret)


class OtpSettings(BaseSettings):
    """One-time-code policy. Frozen once loaded."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="OTP_", extra="ignore", frozen=True
    )

    code_length: int = Field(default=6, ge=4, le=10)
    expiry_minutes: int = Field(default=5, ge=1, le=60)
    login_expiry_seconds: int = Field(default=90, ge=15, le=3600)
    # How long a session (and its verified records) stays usable
    session_ttl_seconds: int = Field(default=900, ge=60, le=86400)
    max_attempts: int = Field(default=3, ge=1, le=20)
    resend_cooldown_seconds: int = Field(default=30, ge=0, le=3600)
    notification_timeout_seconds: float = Field(default=10.0, gt=0, le=60)

    @property
    def expiry_seconds(self) -> int:
        return self.expiry_minutes * 60


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@sentinel.app"
    zepto_from_name: str = "Sentinel"


class SmsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_url: str = "https://sentinel.app"
    app_name: str = "sentinel"

    # CORS; credentials are required for the cookie transport
    cors_origins: list[str] = ["http://localhost:3000"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    jwt: Optional[JWTSettings] = None
    otp: Optional[OtpSettings] = None
    email: Optional[EmailSettings] = None
    sms: Optional[SmsSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.otp is None:
            self.otp = OtpSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.sms is None:
            self.sms = SmsSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        if not self.jwt.has_signing_material:
            raise ValueError(
                "JWT_SECRET must be set when RS256 keys are not provided"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
