"""
Shared fixtures.

Redis is fakeredis, or an unconfigured CacheHandle to simulate an outage.
The in-memory MongoDB stand-ins live in fakes.py.
"""

from __future__ import annotations

from types import SimpleNamespace

import fakeredis
import pytest

from config import JWTSettings, OtpSettings
from fakes import TEST_JWT_SECRET, build_auth_env
from infrastructure.cache.handle import CacheHandle


@pytest.fixture
def jwt_settings() -> JWTSettings:
    return JWTSettings(
        jwt_secret=TEST_JWT_SECRET,
        jwt_private_key="",
        jwt_public_key="",
        jwt_issuer="sentinel",
        jwt_audience="sentinel.api",
    )


@pytest.fixture
def otp_settings() -> OtpSettings:
    return OtpSettings(
        code_length=6,
        expiry_minutes=5,
        login_expiry_seconds=90,
        max_attempts=3,
        resend_cooldown_seconds=30,
        session_ttl_seconds=900,
        notification_timeout_seconds=1.0,
    )


@pytest.fixture
async def fake_redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(fake_redis) -> CacheHandle:
    return CacheHandle(fake_redis, "test:")


@pytest.fixture
def degraded_cache() -> CacheHandle:
    """A handle with no client behaves exactly like an unreachable cache."""
    return CacheHandle(None, "test:")


@pytest.fixture
def auth_env(cache, jwt_settings, otp_settings) -> SimpleNamespace:
    return build_auth_env(cache, jwt_settings, otp_settings)


@pytest.fixture
def degraded_auth_env(degraded_cache, jwt_settings, otp_settings) -> SimpleNamespace:
    return build_auth_env(degraded_cache, jwt_settings, otp_settings)
