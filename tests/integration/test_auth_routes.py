"""Integration tests for the /auth endpoints.

The app runs with in-memory repositories and no Redis, so every flow goes
through the MongoDB fallback paths.
"""

from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dependencies import ACCESS_COOKIE, CSRF_COOKIE, CSRF_HEADER, REFRESH_COOKIE
from errors import register_error_handlers
from fakes import build_auth_env
from infrastructure.cache.handle import CacheHandle
from routes.auth_routes import router as auth_router

EMAIL = "user@example.com"
PHONE = "+14155552671"
PASSWORD = "s3cure-passw0rd"


@pytest.fixture
def env(jwt_settings, otp_settings):
    return build_auth_env(CacheHandle(None), jwt_settings, otp_settings)


@pytest.fixture
def client(env, jwt_settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = SimpleNamespace(
            jwt=jwt_settings.model_copy(update={"cookie_secure": False})
        )
        app.state.cache = env.cache
        app.state.user_repository = env.users
        app.state.auth_orchestrator = env.orchestrator
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(auth_router)
    with TestClient(app) as c:
        yield c


def _register(client, env, password=PASSWORD) -> str:
    body = {"email": EMAIL, "phone": PHONE}
    if password:
        body["password"] = password
    resp = client.post("/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["sessionToken"]


def _verify_both(client, env, token):
    client.post(
        "/auth/verify-otp",
        json={"sessionToken": token, "identifier": EMAIL, "type": "email", "code": env.email.last_code()},
    )
    return client.post(
        "/auth/verify-otp",
        json={"sessionToken": token, "identifier": PHONE, "type": "phone", "code": env.sms.last_code()},
    )


def _onboard(client, env):
    token = _register(client, env)
    _verify_both(client, env, token)
    resp = client.post("/auth/onboarding", json={"sessionToken": token, "userName": "Asha"})
    assert resp.status_code == 201, resp.text
    return resp


class TestRegister:
    def test_returns_session(self, client, env):
        resp = client.post("/auth/register", json={"email": EMAIL, "phone": PHONE})
        assert resp.status_code == 201
        body = resp.json()
        assert len(body["sessionToken"]) == 64
        assert body["expiresIn"] == 300
        assert body["channels"] == ["email", "phone"]
        assert body["delivered"] == {"email": True, "phone": True}

    def test_invalid_phone_is_400(self, client):
        resp = client.post("/auth/register", json={"email": EMAIL, "phone": "12345"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_duplicate_is_409(self, client, env):
        _onboard(client, env)
        resp = client.post("/auth/register", json={"email": EMAIL, "phone": "+19998887777"})
        assert resp.status_code == 409


class TestVerifyOtp:
    def test_partial_then_full(self, client, env):
        token = _register(client, env)
        first = client.post(
            "/auth/verify-otp",
            json={"sessionToken": token, "identifier": EMAIL, "type": "email", "code": env.email.last_code()},
        )
        assert first.status_code == 200
        assert first.json()["fullyVerified"] is False

        second = client.post(
            "/auth/verify-otp",
            json={"sessionToken": token, "identifier": PHONE, "type": "phone", "code": env.sms.last_code()},
        )
        assert second.json() == {
            "verified": True,
            "fullyVerified": True,
            "message": "Both identifiers verified",
        }

    def test_wrong_code_is_401(self, client, env):
        token = _register(client, env)
        wrong = "000000" if env.email.last_code() != "000000" else "111111"
        resp = client.post(
            "/auth/verify-otp",
            json={"sessionToken": token, "identifier": EMAIL, "type": "email", "code": wrong},
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid or expired code"

    def test_exhaustion_is_429(self, client, env):
        token = _register(client, env)
        wrong = "000000" if env.email.last_code() != "000000" else "111111"
        payload = {"sessionToken": token, "identifier": EMAIL, "type": "email", "code": wrong}
        statuses = [client.post("/auth/verify-otp", json=payload).status_code for _ in range(4)]
        assert statuses == [401, 401, 401, 429]


def test_resend_otp(client, env):
    token = _register(client, env)
    resp = client.post(
        "/auth/resend-otp",
        json={"sessionToken": token, "type": "phone", "identifier": PHONE},
    )
    assert resp.status_code == 200
    assert resp.json() == {"sent": True, "expiresIn": 300}
    assert len(env.sms.sent) == 2


class TestOnboarding:
    def test_sets_cookies_and_returns_profile(self, client, env):
        resp = _onboard(client, env)
        body = resp.json()
        assert body["tokenType"] == "Bearer"
        assert body["user"]["email"] == EMAIL
        assert body["user"]["userName"] == "Asha"
        assert "passwordHash" not in body["user"]
        assert resp.cookies.get(ACCESS_COOKIE) == body["accessToken"]
        assert resp.cookies.get(REFRESH_COOKIE) == body["refreshToken"]

    def test_unverified_session_is_401(self, client, env):
        token = _register(client, env)
        resp = client.post("/auth/onboarding", json={"sessionToken": token})
        assert resp.status_code == 401


class TestLoginFlow:
    def test_login_verify_me(self, client, env):
        _onboard(client, env)
        client.cookies.clear()

        login = client.post("/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert login.status_code == 200
        token = login.json()["sessionToken"]
        assert login.json()["expiresIn"] == 90

        verified = client.post(
            "/auth/login/verify",
            json={"sessionToken": token, "identifier": EMAIL, "type": "email", "code": env.email.last_code()},
        )
        assert verified.status_code == 200
        access = verified.json()["accessToken"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {access}"})
        assert me.status_code == 200
        assert me.json()["phone"] == PHONE

    def test_bad_password_is_401(self, client, env):
        _onboard(client, env)
        resp = client.post("/auth/login", json={"identifier": EMAIL, "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid credentials"


class TestTokens:
    def test_refresh_from_body(self, client, env):
        tokens = _onboard(client, env).json()
        client.cookies.clear()
        resp = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert resp.status_code == 200
        assert resp.json()["refreshToken"] != tokens["refreshToken"]

        reuse = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert reuse.status_code == 401

    def test_refresh_from_cookie(self, client, env):
        _onboard(client, env)
        csrf = client.get("/auth/csrf").json()["csrfToken"]
        resp = client.post("/auth/refresh", headers={CSRF_HEADER: csrf})
        assert resp.status_code == 200

    def test_refresh_from_cookie_requires_csrf_header(self, client, env):
        _onboard(client, env)
        client.get("/auth/csrf")
        resp = client.post("/auth/refresh")
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid CSRF token", "code": "forbidden"}

    def test_refresh_rejects_mismatched_csrf_header(self, client, env):
        _onboard(client, env)
        client.get("/auth/csrf")
        resp = client.post("/auth/refresh", headers={CSRF_HEADER: "forged"})
        assert resp.status_code == 403

    def test_refresh_without_token_is_401(self, client, env):
        resp = client.post("/auth/refresh")
        assert resp.status_code == 401

    def test_me_requires_auth(self, client):
        assert client.get("/auth/me").status_code == 401

    def test_logout(self, client, env):
        tokens = _onboard(client, env).json()
        resp = client.post(
            "/auth/logout", headers={"Authorization": f"Bearer {tokens['accessToken']}"}
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "revoked": 1}

        client.cookies.clear()
        again = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert again.status_code == 401

    def test_cookie_logout_requires_csrf_header(self, client, env):
        _onboard(client, env)
        assert client.post("/auth/logout").status_code == 403

        csrf = client.get("/auth/csrf").json()["csrfToken"]
        resp = client.post("/auth/logout", headers={CSRF_HEADER: csrf})
        assert resp.status_code == 200
        assert resp.json()["revoked"] == 1


def test_csrf_endpoint_sets_readable_cookie(client):
    resp = client.get("/auth/csrf")
    assert resp.status_code == 200
    token = resp.json()["csrfToken"]
    assert len(token) == 64
    assert resp.cookies.get(CSRF_COOKIE) == token
    assert "httponly" not in resp.headers["set-cookie"].lower()
