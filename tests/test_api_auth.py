"""
Tests for the authentication endpoints.

Covers:
- Response envelope and codes for every /api/auth route
- Registration to login flow
- Two-factor login gating
- Security headers middleware
"""
import time

from sqlalchemy import text

from trustgate.config import POLICY_FLAG, Settings, get_settings
from trustgate.errors import UpstreamError
from trustgate.api.main import app
from conftest import envelope_of


# ============================================
# Registration Tests
# ============================================

class TestRegister:

    def test_register(self, client, provider, auth_db):
        response = client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "pw-123456", "name": "New User"},
        )

        assert response.status_code == 201
        data = envelope_of(response)
        assert data["code"] == 2001
        assert data["payload"]["email"] == "new@example.com"
        assert data["payload"]["name"] == "New User"

        user_id = data["payload"]["id"]
        profile = auth_db.get_second_factor_profile(user_id)
        assert profile["name"] == "New User"
        assert profile["two_factor_enabled"] is False
        assert provider.users["new@example.com"]["metadata"]["twoFactorEnabled"] is False

    def test_register_missing_fields(self, client):
        response = client.post("/api/auth/register", json={"email": "new@example.com"})

        assert response.status_code == 400
        data = envelope_of(response)
        assert data["code"] == 1001
        assert data["payload"]["required"] == ["email", "password", "name"]
        assert data["payload"]["received"] == ["email"]

    def test_register_rejected_by_provider(self, client, sample_user):
        response = client.post(
            "/api/auth/register",
            json={"email": sample_user["email"], "password": "pw", "name": "Again"},
        )

        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1006

    def test_register_provider_down(self, client, provider):
        provider.unavailable = True

        response = client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "pw", "name": "New"},
        )

        assert response.status_code == 500
        assert envelope_of(response)["code"] == 5001

    def test_register_profile_failure_still_succeeds(self, client, auth_db, monkeypatch):
        def fail(*args, **kwargs):
            raise UpstreamError("Data store unavailable")

        monkeypatch.setattr(auth_db, "upsert_profile", fail)

        response = client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "pw", "name": "New"},
        )
        assert response.status_code == 201
        assert envelope_of(response)["code"] == 2001


# ============================================
# Email Verification Tests
# ============================================

class TestEmailVerification:

    def test_verify_email(self, client, provider):
        client.post("/api/auth/register", json={"email": "new@example.com", "password": "pw", "name": "N"})

        response = client.get("/api/auth/verify-email", params={"token": "confirm-new@example.com"})

        assert response.status_code == 200
        assert envelope_of(response)["code"] == 2003
        assert provider.users["new@example.com"]["confirmed_at"] is not None

    def test_verify_email_missing_token(self, client):
        response = client.get("/api/auth/verify-email")
        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1003

    def test_verify_email_bad_token(self, client):
        response = client.get("/api/auth/verify-email", params={"token": "nope"})
        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1008

    def test_resend_verification(self, client, provider, settings):
        response = client.post("/api/auth/resend-verification", json={"email": "new@example.com"})

        assert response.status_code == 200
        assert envelope_of(response)["code"] == 2004
        assert provider.resent == [("new@example.com", settings.email_redirect_url)]

    def test_resend_verification_missing_email(self, client):
        response = client.post("/api/auth/resend-verification", json={})
        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1004

    def test_resend_verification_provider_down(self, client, provider):
        provider.unavailable = True

        response = client.post("/api/auth/resend-verification", json={"email": "new@example.com"})
        assert response.status_code == 500
        assert envelope_of(response)["code"] == 5004


# ============================================
# Login Tests
# ============================================

class TestLogin:

    def test_register_confirm_login(self, client):
        client.post("/api/auth/register", json={"email": "new@example.com", "password": "pw-1", "name": "N"})
        client.get("/api/auth/verify-email", params={"token": "confirm-new@example.com"})

        response = client.post("/api/auth/login", json={"email": "new@example.com", "password": "pw-1"})

        assert response.status_code == 200
        data = envelope_of(response)
        assert data["code"] == 2002
        assert "meta" not in data
        session = data["payload"]["session"]
        assert session["access_token"]
        assert isinstance(session["expires_at"], int)
        assert data["payload"]["user"]["email"] == "new@example.com"

    def test_login_unconfirmed(self, client):
        client.post("/api/auth/register", json={"email": "new@example.com", "password": "pw-1", "name": "N"})

        response = client.post("/api/auth/login", json={"email": "new@example.com", "password": "pw-1"})

        assert response.status_code == 401
        data = envelope_of(response)
        assert data["code"] == 4001
        assert data["meta"]["code"] == "EMAIL_NOT_VERIFIED"
        assert "payload" not in data

    def test_login_invalid_credentials(self, client, sample_user):
        response = client.post("/api/auth/login", json={"email": sample_user["email"], "password": "wrong"})

        assert response.status_code == 401
        assert envelope_of(response)["code"] == 4002

    def test_login_missing_fields(self, client):
        response = client.post("/api/auth/login", json={"email": "a@example.com"})

        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1002

    def test_login_provider_down(self, client, provider, sample_user):
        provider.unavailable = True

        response = client.post(
            "/api/auth/login", json={"email": sample_user["email"], "password": sample_user["password"]}
        )
        assert response.status_code == 500
        assert envelope_of(response)["code"] == 5002

    def test_login_store_down(self, client, auth_db, sample_user):
        with auth_db.get_session() as session:
            session.execute(text("DROP TABLE profiles"))

        response = client.post(
            "/api/auth/login", json={"email": sample_user["email"], "password": sample_user["password"]}
        )
        assert response.status_code == 500
        assert envelope_of(response)["code"] == 5002

    def test_malformed_body(self, client):
        response = client.post(
            "/api/auth/login-with-code",
            json={"email": "a@example.com", "password": "pw", "code": "123456", "expires_in": -5},
        )

        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1000


# ============================================
# Two-Factor Login Tests
# ============================================

def _activate_two_factor(client, headers, password, code_at):
    secret = client.post("/api/verification/enable-2fa", headers=headers).json()["payload"]["secret"]
    response = client.post(
        "/api/verification/verify-2fa",
        headers=headers,
        json={"password": password, "code": code_at(secret, -1)},
    )
    assert response.status_code == 200
    return secret


class TestTwoFactorLogin:

    def test_login_refused_when_2fa_active(self, client, sample_user, auth_headers, frozen_clock):
        _activate_two_factor(client, auth_headers, sample_user["password"], frozen_clock)

        response = client.post(
            "/api/auth/login", json={"email": sample_user["email"], "password": sample_user["password"]}
        )

        assert response.status_code == 403
        data = envelope_of(response)
        assert data["code"] == 4004
        assert data["meta"]["requiresTwoFactor"] is True
        assert "payload" not in data

    def test_login_flagged_under_flag_policy(self, client, sample_user, auth_headers, frozen_clock):
        _activate_two_factor(client, auth_headers, sample_user["password"], frozen_clock)
        app.dependency_overrides[get_settings] = lambda: Settings(two_factor_login_policy=POLICY_FLAG)

        response = client.post(
            "/api/auth/login", json={"email": sample_user["email"], "password": sample_user["password"]}
        )

        assert response.status_code == 200
        data = envelope_of(response)
        assert data["meta"] == {"requiresTwoFactor": True}
        assert data["payload"]["session"]["access_token"]

    def test_login_with_code(self, client, sample_user, auth_headers, frozen_clock):
        secret = _activate_two_factor(client, auth_headers, sample_user["password"], frozen_clock)

        response = client.post(
            "/api/auth/login-with-code",
            json={"email": sample_user["email"], "password": sample_user["password"], "code": frozen_clock(secret)},
        )

        assert response.status_code == 200
        data = envelope_of(response)
        assert data["code"] == 2006
        assert data["payload"]["session"]["access_token"]
        assert data["payload"]["user"]["id"] == sample_user["id"]

    def test_login_with_code_token_alias_and_lifetime(self, client, sample_user, auth_headers, frozen_clock):
        secret = _activate_two_factor(client, auth_headers, sample_user["password"], frozen_clock)

        response = client.post(
            "/api/auth/login-with-code",
            json={
                "email": sample_user["email"],
                "password": sample_user["password"],
                "token": frozen_clock(secret),
                "expires_in": 60,
            },
        )

        assert response.status_code == 200
        assert envelope_of(response)["payload"]["session"]["expires_at"] <= int(time.time()) + 60

    def test_login_with_code_replay(self, client, sample_user, auth_headers, frozen_clock):
        secret = _activate_two_factor(client, auth_headers, sample_user["password"], frozen_clock)
        body = {"email": sample_user["email"], "password": sample_user["password"], "code": frozen_clock(secret)}

        assert client.post("/api/auth/login-with-code", json=body).status_code == 200
        response = client.post("/api/auth/login-with-code", json=body)

        assert response.status_code == 401
        assert envelope_of(response)["code"] == 4005

    def test_login_with_code_when_not_enabled(self, client, sample_user):
        response = client.post(
            "/api/auth/login-with-code",
            json={"email": sample_user["email"], "password": sample_user["password"], "code": "123456"},
        )

        assert response.status_code == 400
        assert envelope_of(response)["code"] == 4006

    def test_login_with_numeric_code(self, client, sample_user):
        response = client.post(
            "/api/auth/login-with-code",
            json={"email": sample_user["email"], "password": sample_user["password"], "code": 123456},
        )

        assert response.status_code == 400
        assert envelope_of(response)["code"] == 4006

    def test_login_with_code_missing_code(self, client, sample_user):
        response = client.post(
            "/api/auth/login-with-code",
            json={"email": sample_user["email"], "password": sample_user["password"]},
        )

        assert response.status_code == 400
        assert envelope_of(response)["code"] == 1007


# ============================================
# Session and Security Settings Tests
# ============================================

class TestLogoutAndSecurity:

    def test_logout(self, client, provider, sample_user):
        token = provider.issue_token(sample_user["email"])

        response = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert envelope_of(response)["code"] == 2005
        assert provider.signed_out == [token]

    def test_logout_without_token(self, client):
        response = client.post("/api/auth/logout")

        assert response.status_code == 401
        assert envelope_of(response)["code"] == 4010

    def test_security_settings(self, client, provider, sample_user, auth_headers):
        client.post(
            "/api/biometric/enable",
            headers=auth_headers,
            json={"device_id": "device-a", "device_model": "iPhone 15", "device_platform": "ios"},
        )

        response = client.get(
            "/api/auth/security", headers=auth_headers, params={"device_id": "device-a"}
        )

        assert response.status_code == 200
        payload = envelope_of(response)["payload"]
        assert payload["twoFactorEnabled"] is False
        assert payload["twoFactorState"] == "NO_2FA"
        assert payload["enrollmentPending"] is False
        assert [d["device_id"] for d in payload["trustedDevices"]] == ["device-a"]
        assert payload["deviceTrusted"] is True

    def test_security_settings_pending(self, client, auth_headers):
        client.post("/api/verification/enable-2fa", headers=auth_headers)

        payload = client.get("/api/auth/security", headers=auth_headers).json()["payload"]
        assert payload["twoFactorState"] == "ENROLLMENT_PENDING"
        assert payload["enrollmentPending"] is True
        assert "deviceTrusted" not in payload


# ============================================
# Middleware Tests
# ============================================

class TestSecurityHeaders:

    def test_security_headers_present(self, client):
        response = client.get("/health/live")

        assert response.headers.get("X-Frame-Options") == "DENY"
        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("Cache-Control") == "no-store"
        assert "default-src 'none'" in response.headers.get("Content-Security-Policy", "")
        assert "X-Request-ID" in response.headers

    def test_request_id_echoed(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
