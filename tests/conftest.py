"""
Pytest configuration and shared fixtures for TrustGate tests.

This module provides common test fixtures for:
- An in-memory SQLite AuthDB with the real schema
- A fake identity provider with in-memory accounts and tokens
- A frozen TOTP clock so codes can be generated for exact time steps
- A TestClient wired to all of the above
"""
import time
import uuid
from typing import Dict, Optional
from unittest.mock import patch

import pyotp
import pytest
from fastapi.testclient import TestClient

from trustgate.api.main import app
from trustgate.api.deps import get_db, get_identity_provider
from trustgate.config import Settings, get_settings
from trustgate.database.auth_db import AuthDB
from trustgate.identity.provider import (
    ProviderError,
    ProviderSession,
    ProviderUnavailableError,
    ProviderUser,
)

# Fixed instant for TOTP tests (aligned to a 30s step boundary + 10s)
FROZEN_NOW = 1_745_670_250.0


# ============================================
# Identity Provider Fake
# ============================================

class FakeIdentityProvider:
    """
    In-memory stand-in for IdentityProvider.

    Mirrors the reason codes Supabase returns so the credential
    classification is exercised the same way.
    """

    def __init__(self):
        self.users: Dict[str, Dict] = {}
        self.tokens: Dict[str, str] = {}
        self.confirmation_tokens: Dict[str, str] = {}
        self.resent = []
        self.signed_out = []
        self.unavailable = False
        self.session_lifetime = 3600

    def _check_available(self):
        if self.unavailable:
            raise ProviderUnavailableError("connection refused")

    def _user(self, email: str) -> ProviderUser:
        record = self.users[email]
        return ProviderUser(
            id=record["id"],
            email=email,
            email_confirmed_at=record["confirmed_at"],
            metadata=dict(record["metadata"]),
        )

    # Helpers for tests

    def add_user(self, email: str, password: str, name: str = "Test User", confirmed: bool = True) -> ProviderUser:
        self.users[email] = {
            "id": f"user-{uuid.uuid4().hex[:12]}",
            "password": password,
            "confirmed_at": "2025-01-01T00:00:00Z" if confirmed else None,
            "metadata": {"name": name},
        }
        return self._user(email)

    def issue_token(self, email: str) -> str:
        token = f"token-{uuid.uuid4().hex}"
        self.tokens[token] = email
        return token

    # IdentityProvider interface

    def sign_up(self, email, password, attributes=None, redirect_to=None) -> ProviderUser:
        self._check_available()
        if email in self.users:
            raise ProviderError("User already registered", reason="user_already_exists", status=422)
        self.users[email] = {
            "id": f"user-{uuid.uuid4().hex[:12]}",
            "password": password,
            "confirmed_at": None,
            "metadata": dict(attributes or {}),
        }
        self.confirmation_tokens[f"confirm-{email}"] = email
        return self._user(email)

    def sign_in_with_password(self, email, password, requested_expiry=None):
        self._check_available()
        record = self.users.get(email)
        if record is None or record["password"] != password:
            raise ProviderError("Invalid login credentials", reason="invalid_credentials", status=400)
        if record["confirmed_at"] is None:
            raise ProviderError("Email not confirmed", reason="email_not_confirmed", status=400)
        token = self.issue_token(email)
        session = ProviderSession(access_token=token, expires_at=int(time.time()) + self.session_lifetime)
        return self._user(email), session

    def verify_email_token(self, token):
        self._check_available()
        email = self.confirmation_tokens.pop(token, None)
        if email is None:
            raise ProviderError("Token has expired or is invalid", reason="otp_expired", status=403)
        self.users[email]["confirmed_at"] = "2025-01-01T00:00:00Z"

    def resend_verification(self, email, redirect_to=None):
        self._check_available()
        self.resent.append((email, redirect_to))

    def sign_out(self, access_token):
        self._check_available()
        self.tokens.pop(access_token, None)
        self.signed_out.append(access_token)

    def get_user(self, access_token) -> ProviderUser:
        self._check_available()
        email = self.tokens.get(access_token)
        if email is None:
            raise ProviderError("invalid JWT", reason="bad_jwt", status=403)
        return self._user(email)


# ============================================
# Core Fixtures
# ============================================

@pytest.fixture
def auth_db():
    """Fresh in-memory database with the production schema."""
    db = AuthDB("sqlite://")
    db.init_schema()
    yield db
    db.engine.dispose()


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", totp_issuer="NU365")


@pytest.fixture
def frozen_clock():
    """
    Freeze the clock used for TOTP verification.

    Returns a helper that yields the code for a step offset relative to the
    frozen step: code_at(secret, 0) is the current code, code_at(secret, -1)
    the previous one.
    """
    with patch("trustgate.auth.totp.time") as mock_time:
        mock_time.time.return_value = FROZEN_NOW

        def code_at(secret: str, offset: int = 0) -> str:
            return pyotp.TOTP(secret).at(FROZEN_NOW + offset * 30)

        yield code_at


# ============================================
# API Fixtures
# ============================================

@pytest.fixture
def client(auth_db, provider, settings):
    """Test client with store, provider and settings overridden."""
    app.dependency_overrides[get_db] = lambda: auth_db
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_settings] = lambda: settings

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_user(provider):
    """A confirmed account in the fake provider."""
    email = "jane@example.com"
    password = "correct-horse-battery"
    user = provider.add_user(email, password, name="Jane")
    return {"id": user.id, "email": email, "password": password, "name": "Jane"}


@pytest.fixture
def auth_headers(provider, sample_user):
    """Bearer header for sample_user."""
    token = provider.issue_token(sample_user["email"])
    return {"Authorization": f"Bearer {token}"}


def bearer(provider: FakeIdentityProvider, email: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {provider.issue_token(email)}"}


def envelope_of(response) -> Optional[Dict]:
    data = response.json()
    assert data["httpStatus"] == response.status_code
    assert data["success"] is (response.status_code < 400)
    assert data["error"] is (response.status_code >= 400)
    return data
