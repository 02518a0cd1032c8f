"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. The objects themselves are built once in the app
lifespan (app.py) and stored on app.state.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from config import AppSettings
from errors import AuthenticationError, ForbiddenError
from repositories.user_repository import UserRepository
from services.auth_orchestrator import AuthOrchestrator
from shared.crypto import tokens_match

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
CSRF_COOKIE = "csrfToken"
CSRF_HEADER = "X-CSRF-Token"

_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.user_repository


def get_auth_orchestrator(request: Request) -> AuthOrchestrator:
    return request.app.state.auth_orchestrator


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def extract_access_token(request: Request) -> Optional[str]:
    """Bearer header first, then the access-token cookie."""
    return _bearer_token(request) or request.cookies.get(ACCESS_COOKIE) or None


def verify_csrf(request: Request) -> None:
    """Double-submit check: the header must echo the csrfToken cookie.

    Raises:
        ForbiddenError: header or cookie missing, or the two differ.
    """
    header = request.headers.get(CSRF_HEADER)
    cookie = request.cookies.get(CSRF_COOKIE)
    if not header or not cookie or not tokens_match(cookie, header):
        raise ForbiddenError("Invalid CSRF token")


def require_csrf_for_cookie_auth(request: Request) -> None:
    """State-changing requests authenticated by cookie must pass verify_csrf.

    Bearer-authenticated requests are exempt; browsers never attach that
    header on their own.
    """
    if request.method in _SAFE_METHODS or _bearer_token(request):
        return
    if request.cookies.get(ACCESS_COOKIE):
        verify_csrf(request)


async def get_current_user(
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> dict:
    """Return the verified access-token claims of the caller.

    Raises:
        AuthenticationError: no token, an invalid token, or a blacklisted one.
    """
    token = extract_access_token(request)
    if not token:
        raise AuthenticationError("Authentication required")
    return await orchestrator.authenticate(token)
