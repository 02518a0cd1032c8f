"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.cache.handle import CacheHandle
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.sms.twilio import TwilioSmsProvider
from infrastructure.verification_store.cache_store import CacheVerificationStore
from infrastructure.verification_store.store import VerificationStore
from repositories.audit_log_repository import AuditLogRepository
from repositories.indexes import ensure_indexes
from repositories.refresh_token_repository import RefreshTokenRepository
from repositories.user_repository import UserRepository
from repositories.verification_repository import VerificationRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from services.audit_service import AuditService
from services.auth_orchestrator import AuthOrchestrator
from services.notifier import OtpNotifier
from services.otp_challenge import OtpChallenge
from services.token_issuer import TokenIssuer
from services.token_ledger import TokenLedger
from services.verification_session import VerificationSessionManager
from shared.logging import get_logger

log = get_logger(__name__)


def build_services(
    app: FastAPI,
    settings: AppSettings,
    db,
    cache: CacheHandle,
    http_client: HttpClient,
) -> None:
    """Wire repositories and services onto app.state.

    Raises:
        ConfigurationError: JWT signing material is missing.
    """
    users = UserRepository(db)
    store = VerificationStore(CacheVerificationStore(cache), VerificationRepository(db))
    dev_mode = not settings.is_production
    notifier = OtpNotifier(
        ZeptoMailProvider(
            settings.email,
            http_client,
            app_url=settings.app_url,
            app_name=settings.email.zepto_from_name,
            dev_mode=dev_mode,
        ),
        TwilioSmsProvider(
            settings.sms,
            http_client,
            app_name=settings.email.zepto_from_name,
            dev_mode=dev_mode,
        ),
        timeout_seconds=settings.otp.notification_timeout_seconds,
    )
    challenge = OtpChallenge(store, cache, notifier, settings.otp)
    sessions = VerificationSessionManager(store, challenge, notifier, settings.otp)
    ledger = TokenLedger(
        cache,
        RefreshTokenRepository(db),
        access_ttl_seconds=settings.jwt.access_token_ttl_seconds,
    )
    issuer = TokenIssuer(settings.jwt, ledger)

    app.state.user_repository = users
    app.state.token_ledger = ledger
    app.state.token_issuer = issuer
    app.state.auth_orchestrator = AuthOrchestrator(
        users,
        sessions,
        challenge,
        issuer,
        ledger,
        AuditService(AuditLogRepository(db)),
        best_effort_timeout=settings.otp.notification_timeout_seconds,
    )


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]
        app.state.settings = settings

        # Redis is optional; without it every flow runs against MongoDB
        redis_client = await create_redis_client(settings.redis.redis_uri)
        app.state.redis = redis_client
        app.state.cache = CacheHandle(redis_client, settings.redis.redis_key_prefix)

        http_client = HttpClient(timeout=min(5.0, settings.otp.notification_timeout_seconds))
        app.state.http_client = http_client

        await ensure_indexes(app.state.db)
        build_services(app, settings, app.state.db, app.state.cache, http_client)
        log.info("app_started", env=settings.env, redis_configured=redis_client is not None)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await http_client.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Credentials are required for the cookie transport
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)

    return app
