"""
Credential verification against the identity provider.

Turns the provider's answer to an email/password check into one of four
outcomes. "Email not confirmed" is recognised from the structured reason
code when Supabase supplies one; older provider versions only say so in the
error message, so a substring match is kept as a fallback and logged.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from ..identity.provider import (
    IdentityProvider,
    ProviderError,
    ProviderSession,
    ProviderUnavailableError,
    ProviderUser,
)
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)

EMAIL_NOT_CONFIRMED_REASON = "email_not_confirmed"
EMAIL_NOT_CONFIRMED_TEXT = "Email not confirmed"


class CredentialStatus(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    EMAIL_UNCONFIRMED = "email_unconfirmed"
    INVALID_CREDENTIALS = "invalid_credentials"
    PROVIDER_UNAVAILABLE = "provider_unavailable"


@dataclass
class CredentialResult:
    """Outcome of a password check."""
    status: CredentialStatus
    user: Optional[ProviderUser] = None
    session: Optional[ProviderSession] = None
    message: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.status is CredentialStatus.AUTHENTICATED


def is_email_unconfirmed(error: ProviderError) -> bool:
    """
    Classify a provider rejection as "email not confirmed".

    Structured reason first; message substring only as a compatibility shim.
    """
    if error.reason:
        return error.reason == EMAIL_NOT_CONFIRMED_REASON
    if EMAIL_NOT_CONFIRMED_TEXT in (error.message or ""):
        logger.warning(
            "Classified provider error as unconfirmed email from message text; "
            "provider sent no reason code"
        )
        return True
    return False


class CredentialVerifier:
    """Delegates email/password checks to the identity provider."""

    def __init__(self, provider: IdentityProvider):
        self.provider = provider

    def verify(
        self,
        email: str,
        password: str,
        requested_expiry: Optional[int] = None,
    ) -> CredentialResult:
        try:
            user, session = self.provider.sign_in_with_password(
                email, password, requested_expiry=requested_expiry
            )
        except ProviderUnavailableError as e:
            logger.error(f"Credential check failed, provider unavailable: {e}")
            return CredentialResult(
                status=CredentialStatus.PROVIDER_UNAVAILABLE,
                message="Identity provider unavailable",
            )
        except ProviderError as e:
            if is_email_unconfirmed(e):
                return CredentialResult(
                    status=CredentialStatus.EMAIL_UNCONFIRMED,
                    message=e.message,
                )
            logger.warning(f"Rejected credentials for {mask_email(email)}")
            return CredentialResult(
                status=CredentialStatus.INVALID_CREDENTIALS,
                message=e.message,
            )

        if not user.email_confirmed_at:
            return CredentialResult(
                status=CredentialStatus.EMAIL_UNCONFIRMED,
                user=user,
                message=EMAIL_NOT_CONFIRMED_TEXT,
            )

        return CredentialResult(
            status=CredentialStatus.AUTHENTICATED,
            user=user,
            session=session,
        )
