"""
Second-factor state machine.

Per-account states are derived from the profile row:

    NO_2FA              no secrets
    ENROLLMENT_PENDING  pending secret stored, not yet confirmed by a code
    2FA_ACTIVE          active secret stored, flag set

Login dispatch separates "password valid" from "session issuable": for an
account with 2FA active the provider session obtained by the password check
is discarded, and a session is only returned by login_with_code after the
TOTP code has been checked.

TOTP codes are single use per active secret: the last accepted time step is
recorded and codes from that step or earlier are rejected.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from . import totp
from .credentials import CredentialResult, CredentialStatus, CredentialVerifier
from .session import build_session
from ..config import Settings
from ..database.auth_db import AuthDB
from ..errors import AuthError, ConflictError, UpstreamError
from ..identity.provider import IdentityProvider, ProviderUser
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)


class TwoFactorState(str, enum.Enum):
    NO_2FA = "NO_2FA"
    ENROLLMENT_PENDING = "ENROLLMENT_PENDING"
    TWO_FA_ACTIVE = "2FA_ACTIVE"


def state_of(profile: Optional[Dict]) -> TwoFactorState:
    """Derive the state from a profile row (missing row means NO_2FA)."""
    if not profile:
        return TwoFactorState.NO_2FA
    if profile.get("two_factor_enabled") and profile.get("totp_secret"):
        return TwoFactorState.TWO_FA_ACTIVE
    if profile.get("pending_totp_secret"):
        return TwoFactorState.ENROLLMENT_PENDING
    return TwoFactorState.NO_2FA


EMAIL_NOT_VERIFIED_MESSAGE = "Email not verified. Please check your inbox and confirm your account."


@dataclass
class LoginResult:
    """A session ready to hand to the client."""
    session: Dict[str, Any]
    user: Dict[str, Any]
    meta: Optional[Dict[str, Any]] = field(default=None)


def safe_user(user: ProviderUser) -> Dict[str, Any]:
    """Client-facing user fields only."""
    data = {"id": user.id, "email": user.email}
    name = user.metadata.get("name")
    if name:
        data["name"] = name
    return data


class TwoFactorService:
    """
    Login dispatch and TOTP enrollment lifecycle.

    Example usage:
        service = TwoFactorService(db, provider, settings)
        result = service.login("user@example.com", "password")
    """

    def __init__(self, db: AuthDB, provider: IdentityProvider, settings: Settings):
        self.db = db
        self.verifier = CredentialVerifier(provider)
        self.settings = settings

    # ==========================================
    # Helpers
    # ==========================================

    def _check_password(
        self,
        email: str,
        password: str,
        requested_expiry: Optional[int] = None,
    ) -> CredentialResult:
        """Password check for login paths; raises with the login error codes."""
        result = self.verifier.verify(email, password, requested_expiry=requested_expiry)

        if result.status is CredentialStatus.PROVIDER_UNAVAILABLE:
            raise UpstreamError("Identity provider unavailable")
        if result.status is CredentialStatus.EMAIL_UNCONFIRMED:
            raise AuthError(
                EMAIL_NOT_VERIFIED_MESSAGE,
                code=4001,
                meta={"code": "EMAIL_NOT_VERIFIED"},
            )
        if result.status is CredentialStatus.INVALID_CREDENTIALS:
            raise AuthError(result.message or "Invalid login credentials", code=4002)
        return result

    def _reverify_password(self, email: str, password: str) -> None:
        """Password re-check for enrollment changes by an authenticated caller."""
        result = self.verifier.verify(email, password)
        if result.status is CredentialStatus.PROVIDER_UNAVAILABLE:
            raise UpstreamError("Identity provider unavailable")
        if not result.authenticated:
            raise AuthError("Invalid password", code=4204)

    def _build_session(self, result: CredentialResult, requested_lifetime: Optional[int] = None) -> Dict:
        return build_session(
            result.session.access_token,
            result.session.expires_at,
            requested_lifetime=requested_lifetime,
            fallback_ttl=self.settings.session_fallback_ttl,
        )

    def get_profile(self, user_id: str) -> Optional[Dict]:
        # Store failures raise UpstreamError; never read as "no second factor"
        return self.db.get_second_factor_profile(user_id)

    def get_state(self, user_id: str) -> TwoFactorState:
        return state_of(self.get_profile(user_id))

    # ==========================================
    # Login
    # ==========================================

    def login(self, email: str, password: str) -> LoginResult:
        """
        Standard login.

        Raises:
            AuthError 4004: 2FA is active and the strict policy applies;
                the caller must use login_with_code.
        """
        result = self._check_password(email, password)
        state = self.get_state(result.user.id)

        if state is TwoFactorState.TWO_FA_ACTIVE:
            if self.settings.strict_two_factor:
                logger.info(f"Login requires second factor: {mask_email(email)}")
                raise AuthError(
                    "Two-factor authentication required",
                    code=4004,
                    http_status=403,
                    meta={
                        "code": "TWO_FACTOR_REQUIRED",
                        "requiresTwoFactor": True,
                        "next": "/api/auth/login-with-code",
                    },
                )
            logger.info(f"Login with pending second factor (flag policy): {mask_email(email)}")
            return LoginResult(
                session=self._build_session(result),
                user=safe_user(result.user),
                meta={"requiresTwoFactor": True},
            )

        logger.info(f"User logged in: {mask_email(email)}")
        return LoginResult(session=self._build_session(result), user=safe_user(result.user))

    def login_with_code(
        self,
        email: str,
        password: str,
        code: str,
        requested_lifetime: Optional[int] = None,
    ) -> LoginResult:
        """
        Login for accounts with 2FA active: password and TOTP code.

        Raises:
            AuthError 4006: 2FA is not enabled for the account.
            AuthError 4005: code invalid or already used.
        """
        result = self._check_password(email, password, requested_expiry=requested_lifetime)
        user_id = result.user.id
        profile = self.get_profile(user_id)

        if state_of(profile) is not TwoFactorState.TWO_FA_ACTIVE:
            raise AuthError(
                "Two-factor authentication is not enabled for this account",
                code=4006,
                http_status=400,
            )

        secret = profile["totp_secret"]
        step = totp.matching_step(secret, code, window=self.settings.totp_valid_window)
        if step is None or not self.db.record_totp_step(user_id, secret, step):
            logger.warning(f"Invalid 2FA code at login: {mask_email(email)}")
            raise AuthError("Invalid 2FA code", code=4005)

        logger.info(f"User logged in with 2FA: {mask_email(email)}")
        return LoginResult(
            session=self._build_session(result, requested_lifetime=requested_lifetime),
            user=safe_user(result.user),
        )

    # ==========================================
    # Enrollment Lifecycle
    # ==========================================

    def begin_enrollment(self, user_id: str, email: Optional[str]) -> totp.TotpEnrollment:
        """
        Start (or restart) TOTP enrollment.

        Overwrites any earlier pending secret. Refused while 2FA is active.
        """
        self.db.ensure_profile(user_id, email)
        enrollment = totp.begin_enrollment(email or user_id, issuer=self.settings.totp_issuer)

        if not self.db.set_pending_totp_secret(user_id, enrollment.secret):
            raise ConflictError(
                "Two-factor authentication is already enabled. Disable it first to enroll a new authenticator.",
                code=4207,
            )

        logger.info(f"2FA enrollment started for user {user_id}")
        return enrollment

    def verify_enrollment(self, user_id: str, email: str, password: str, code: str) -> None:
        """
        Confirm enrollment: promote the pending secret to active.

        Raises:
            AuthError 4204: password invalid.
            AuthError 4203: no pending enrollment.
            AuthError 4202: code invalid (including a pending secret that
                was replaced by a newer enrollment in the meantime).
        """
        self._reverify_password(email, password)
        profile = self.get_profile(user_id)

        pending = (profile or {}).get("pending_totp_secret")
        if not pending:
            raise AuthError(
                "No pending two-factor enrollment. Call enable-2fa first.",
                code=4203,
                http_status=400,
            )

        step = totp.matching_step(pending, code, window=self.settings.totp_valid_window)
        if step is None or not self.db.activate_totp_secret(user_id, pending, step):
            logger.warning(f"Invalid 2FA enrollment code for user {user_id}")
            raise AuthError("Invalid 2FA token", code=4202)

        logger.info(f"2FA enabled for user {user_id}")

    def disable(self, user_id: str, email: str, password: str, code: str) -> None:
        """
        Disable 2FA.

        Raises:
            AuthError 4204: password invalid.
            AuthError 4206: 2FA not enabled.
            AuthError 4205: code invalid or already used.
        """
        self._reverify_password(email, password)
        profile = self.get_profile(user_id)

        if state_of(profile) is not TwoFactorState.TWO_FA_ACTIVE:
            raise AuthError(
                "Two-factor authentication is not enabled",
                code=4206,
                http_status=400,
            )

        secret = profile["totp_secret"]
        step = totp.matching_step(secret, code, window=self.settings.totp_valid_window)
        if step is None or not self.db.clear_totp_secret(user_id, secret, step):
            logger.warning(f"Invalid 2FA code for disable, user {user_id}")
            raise AuthError("Invalid 2FA code", code=4205)

        logger.info(f"2FA disabled for user {user_id}")
