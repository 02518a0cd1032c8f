"""
Authentication endpoints.

POST /auth/register       open a registration session (codes to email + phone)
POST /auth/verify-otp     verify one channel of a registration session
POST /auth/resend-otp     send a fresh code for one channel
POST /auth/onboarding     create the user once both channels are verified
POST /auth/login          check credentials, send a login code
POST /auth/login/verify   verify the login code, issue tokens
POST /auth/refresh        rotate the refresh token
POST /auth/logout         revoke refresh tokens, blacklist the access token
GET  /auth/me             profile of the authenticated user
GET  /auth/csrf           issue a double-submit CSRF token

Token responses also set httpOnly accessToken / refreshToken cookies.
Requests that authenticate with those cookies (refresh, logout) must echo
the csrfToken cookie in the X-CSRF-Token header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status

from config import AppSettings
from dependencies import (
    ACCESS_COOKIE,
    CSRF_COOKIE,
    REFRESH_COOKIE,
    get_auth_orchestrator,
    get_current_user,
    get_settings,
    get_user_repository,
    require_csrf_for_cookie_auth,
    verify_csrf,
)
from errors import AuthenticationError
from repositories.user_repository import UserRepository
from schemas.dto.requests.auth import (
    LoginRequest,
    OnboardingRequest,
    RefreshRequest,
    RegisterRequest,
    ResendOtpRequest,
    VerifyLoginRequest,
    VerifyOtpRequest,
)
from schemas.dto.responses.auth import (
    CsrfResponse,
    LogoutResponse,
    ResendOtpResponse,
    SessionResponse,
    TokenPairResponse,
    UserProfileResponse,
    VerifyOtpResponse,
)
from schemas.dto.responses.common import ErrorResponse
from services.auth_orchestrator import AuthOrchestrator, AuthResult, OnboardingProfile
from services.verification_session import SessionTicket
from shared.generators import generate_session_token

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        code: {"model": ErrorResponse}
        for code in (400, 401, 403, 409, 429, 500)
    },
)

CSRF_TTL_SECONDS = 24 * 60 * 60


def _set_auth_cookies(response: Response, result: AuthResult, settings: AppSettings) -> None:
    secure = settings.jwt.cookie_secure
    response.set_cookie(
        ACCESS_COOKIE,
        value=result.tokens.access_token,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
        max_age=result.tokens.access_expires_in,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=result.tokens.refresh_token,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
        max_age=result.tokens.refresh_expires_in,
    )


def _clear_auth_cookies(response: Response, settings: AppSettings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            secure=settings.jwt.cookie_secure,
            httponly=True,
            samesite="lax",
        )


def _session_response(ticket: SessionTicket, message: str) -> SessionResponse:
    return SessionResponse(
        session_token=ticket.session_token,
        expires_in=ticket.expires_in,
        channels=list(ticket.channels),
        delivered=ticket.delivered,
        message=message,
    )


def _token_response(result: AuthResult) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.tokens.access_expires_in,
        refresh_expires_in=result.tokens.refresh_expires_in,
        user=UserProfileResponse.from_user(result.user),
    )


@router.post(
    "/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED
)
async def register(
    body: RegisterRequest,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> SessionResponse:
    ticket = await orchestrator.register(body.email, body.phone, body.password)
    return _session_response(ticket, "Verification codes sent to email and phone")


@router.post("/verify-otp", response_model=VerifyOtpResponse)
async def verify_otp(
    body: VerifyOtpRequest,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> VerifyOtpResponse:
    result = await orchestrator.verify_otp(
        body.session_token, body.identifier, body.type, body.code
    )
    message = (
        "Both identifiers verified"
        if result.fully_verified
        else f"{body.type.capitalize()} verified"
    )
    return VerifyOtpResponse(
        verified=result.verified,
        fully_verified=result.fully_verified,
        message=message,
    )


@router.post("/resend-otp", response_model=ResendOtpResponse)
async def resend_otp(
    body: ResendOtpRequest,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> ResendOtpResponse:
    expires_in = await orchestrator.resend_otp(
        body.session_token, body.type, body.identifier
    )
    return ResendOtpResponse(sent=True, expires_in=expires_in)


@router.post(
    "/onboarding", response_model=TokenPairResponse, status_code=status.HTTP_201_CREATED
)
async def onboarding(
    body: OnboardingRequest,
    response: Response,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
    settings: AppSettings = Depends(get_settings),
) -> TokenPairResponse:
    profile = OnboardingProfile(
        full_name=body.full_name,
        user_name=body.user_name,
        user_type=body.user_type,
        country=body.country,
        timezone=body.timezone,
        theme=body.theme,
        language=body.language,
    )
    result = await orchestrator.complete_onboarding(body.session_token, profile)
    _set_auth_cookies(response, result, settings)
    return _token_response(result)


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> SessionResponse:
    ticket = await orchestrator.login(body.identifier, body.password)
    return _session_response(ticket, "Verification code sent")


@router.post("/login/verify", response_model=TokenPairResponse)
async def verify_login(
    body: VerifyLoginRequest,
    response: Response,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
    settings: AppSettings = Depends(get_settings),
) -> TokenPairResponse:
    result = await orchestrator.verify_login(
        body.session_token, body.identifier, body.type, body.code
    )
    _set_auth_cookies(response, result, settings)
    return _token_response(result)


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = Body(default=None),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
    settings: AppSettings = Depends(get_settings),
) -> TokenPairResponse:
    token = body.refresh_token if body else None
    if not token:
        token = request.cookies.get(REFRESH_COOKIE)
        if not token:
            raise AuthenticationError("Refresh token required")
        verify_csrf(request)
    result = await orchestrator.refresh(token)
    _set_auth_cookies(response, result, settings)
    return _token_response(result)


@router.post(
    "/logout",
    response_model=LogoutResponse,
    dependencies=[Depends(require_csrf_for_cookie_auth)],
)
async def logout(
    response: Response,
    claims: dict = Depends(get_current_user),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
    settings: AppSettings = Depends(get_settings),
) -> LogoutResponse:
    revoked = await orchestrator.logout(claims["sub"], access_claims=claims)
    _clear_auth_cookies(response, settings)
    return LogoutResponse(success=True, revoked=revoked)


@router.get("/me", response_model=UserProfileResponse)
async def me(
    claims: dict = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> UserProfileResponse:
    user = await users.get_by_id(claims["sub"])
    if user is None:
        raise AuthenticationError("Invalid or expired token")
    return UserProfileResponse.from_user(user)


@router.get("/csrf", response_model=CsrfResponse)
async def csrf_token(
    response: Response,
    settings: AppSettings = Depends(get_settings),
) -> CsrfResponse:
    token = generate_session_token()
    # Readable by the client, which echoes it in the X-CSRF-Token header
    response.set_cookie(
        CSRF_COOKIE,
        value=token,
        httponly=False,
        secure=settings.jwt.cookie_secure,
        samesite="lax",
        path="/",
        max_age=CSRF_TTL_SECONDS,
    )
    return CsrfResponse(csrf_token=token)
