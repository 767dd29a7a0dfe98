"""
Identity provider adapter (Supabase Auth).

Password hashing, email verification and session token issuance are all
delegated to Supabase. Every operation runs on its own short-lived GoTrue
client: a sign-in stores the returned session on the client that made the
call, so a shared client would carry the last user's token into other
requests. Only the pooled httpx.Client is shared, and it holds no session.

Errors are normalized into two exceptions:
- ProviderError: the provider answered and rejected the request
  (message + structured reason code when Supabase supplies one)
- ProviderUnavailableError: the provider could not be reached or timed out
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx
from supabase import AuthApiError, AuthError, AuthRetryableError
from supabase_auth import SyncGoTrueClient

from ..utils.secrets import mask_secret

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The identity provider rejected the request."""

    def __init__(self, message: str, reason: Optional[str] = None, status: Optional[int] = None):
        self.message = message or "Identity provider error"
        self.reason = reason
        self.status = status
        super().__init__(self.message)


class ProviderUnavailableError(Exception):
    """The identity provider could not be reached."""


@dataclass
class ProviderUser:
    """User as reported by the identity provider."""
    id: str
    email: Optional[str]
    email_confirmed_at: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderSession:
    """
    Session as issued by the identity provider.

    expires_at is deliberately untyped: it may be an ISO-8601 string,
    epoch seconds, or None, and is normalized by trustgate.auth.session.
    """
    access_token: str
    expires_at: Any = None
    refresh_token: Optional[str] = None


def _to_user(user: Any) -> ProviderUser:
    confirmed = getattr(user, "email_confirmed_at", None)
    if isinstance(confirmed, datetime):
        confirmed = confirmed.isoformat()
    return ProviderUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        email_confirmed_at=confirmed,
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


def _to_session(session: Any) -> ProviderSession:
    return ProviderSession(
        access_token=session.access_token,
        expires_at=getattr(session, "expires_at", None),
        refresh_token=getattr(session, "refresh_token", None),
    )


class IdentityProvider:
    """
    Thin wrapper over the Supabase Auth API.

    Example usage:
        provider = create_identity_provider(settings)
        user, session = provider.sign_in_with_password(email, password)
    """

    def __init__(
        self,
        url: str,
        key: str,
        service_role_key: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10,
    ):
        self.auth_url = f"{url.rstrip('/')}/auth/v1"
        self.key = key
        self.service_role_key = service_role_key
        self.http_client = http_client or httpx.Client(timeout=timeout)

    @property
    def has_admin(self) -> bool:
        return bool(self.service_role_key)

    def _auth(self, key: Optional[str] = None) -> SyncGoTrueClient:
        """Build a fresh auth client; its in-memory session dies with it."""
        key = key or self.key
        return SyncGoTrueClient(
            url=self.auth_url,
            headers={"apiKey": key, "Authorization": f"Bearer {key}"},
            persist_session=False,
            auto_refresh_token=False,
            http_client=self.http_client,
        )

    def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except AuthRetryableError as e:
            logger.error(f"Identity provider unavailable during {operation}: {e.message}")
            raise ProviderUnavailableError(str(e.message)) from e
        except AuthApiError as e:
            reason = getattr(e, "code", None)
            raise ProviderError(e.message, reason=reason, status=getattr(e, "status", None)) from e
        except AuthError as e:
            raise ProviderError(e.message, reason=getattr(e, "code", None)) from e
        except (httpx.HTTPError, ConnectionError, TimeoutError) as e:
            logger.error(f"Identity provider unreachable during {operation}: {e}")
            raise ProviderUnavailableError(str(e)) from e

    def sign_up(
        self,
        email: str,
        password: str,
        attributes: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> ProviderUser:
        """Register a new account; the provider sends the confirmation email."""
        options: Dict[str, Any] = {"data": attributes or {}}
        if redirect_to:
            options["email_redirect_to"] = redirect_to

        response = self._call(
            "sign_up",
            self._auth().sign_up,
            {"email": email, "password": password, "options": options},
        )
        if response.user is None:
            raise ProviderError("Registration was not accepted by the identity provider")
        return _to_user(response.user)

    def sign_in_with_password(
        self,
        email: str,
        password: str,
        requested_expiry: Optional[int] = None,
    ) -> Tuple[ProviderUser, ProviderSession]:
        """
        Check email/password and obtain a session.

        Supabase does not honour a per-request lifetime; requested_expiry is
        applied later when the session is normalized.
        """
        response = self._call(
            "sign_in_with_password",
            self._auth().sign_in_with_password,
            {"email": email, "password": password},
        )
        if response.user is None or response.session is None:
            raise ProviderError("Invalid login credentials", reason="invalid_credentials")
        return _to_user(response.user), _to_session(response.session)

    def verify_email_token(self, token: str) -> None:
        """Confirm an email address from the link token."""
        self._call(
            "verify_email_token",
            self._auth().verify_otp,
            {"token_hash": token, "type": "email"},
        )

    def resend_verification(self, email: str, redirect_to: Optional[str] = None) -> None:
        """Resend the signup confirmation email."""
        credentials: Dict[str, Any] = {"type": "signup", "email": email}
        if redirect_to:
            credentials["options"] = {"email_redirect_to": redirect_to}
        self._call("resend_verification", self._auth().resend, credentials)

    def sign_out(self, access_token: str) -> None:
        """
        Revoke the session behind an access token.

        Requires the service-role key; without one the token simply
        expires at the provider.
        """
        if not self.has_admin:
            logger.debug("No service-role key configured; sign-out is client-side only")
            return
        admin = self._auth(self.service_role_key).admin
        self._call("sign_out", admin.sign_out, access_token)

    def get_user(self, access_token: str) -> ProviderUser:
        """Resolve the user behind an access token."""
        response = self._call("get_user", self._auth().get_user, access_token)
        if response is None or response.user is None:
            raise ProviderError("Invalid or expired token", reason="bad_jwt")
        return _to_user(response.user)

    def close(self) -> None:
        self.http_client.close()


def create_identity_provider(settings) -> IdentityProvider:
    """Create the provider handle at process startup."""
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")

    provider = IdentityProvider(
        settings.supabase_url,
        settings.supabase_key,
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.provider_timeout,
    )
    logger.info(
        f"Identity provider configured: {settings.supabase_url} "
        f"(key {mask_secret(settings.supabase_key)}, admin={provider.has_admin}, "
        f"timeout={settings.provider_timeout}s)"
    )
    return provider
