"""
FastAPI Dependencies for TrustGate API.

Provides:
- The store and identity-provider handles created at startup
- Bearer-token authentication against the identity provider
- Service factories
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..auth.devices import DeviceRegistry
from ..auth.two_factor import TwoFactorService
from ..config import Settings, get_settings
from ..database.auth_db import AuthDB
from ..errors import AuthError, UpstreamError
from ..identity.provider import IdentityProvider, ProviderError, ProviderUnavailableError, ProviderUser

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


# ============================================
# Startup-owned Handles
# ============================================

def get_db(request: Request) -> AuthDB:
    """Database handle created in the application lifespan."""
    db = getattr(request.app.state, "auth_db", None)
    if db is None:
        raise UpstreamError("Data store not configured")
    return db


def get_identity_provider(request: Request) -> IdentityProvider:
    """Identity provider handle created in the application lifespan."""
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise UpstreamError("Identity provider not configured")
    return provider


# ============================================
# Authentication Dependencies
# ============================================

async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract the bearer token.

    Raises:
        AuthError 4010: If no token was sent.
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Authorization token is required", code=4010)
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> ProviderUser:
    """
    Validate bearer token with the identity provider and return the user.

    Raises:
        AuthError 4011: If the token is invalid or expired.
        UpstreamError 5010: If the provider cannot be reached.
    """
    try:
        return provider.get_user(token)
    except ProviderUnavailableError as e:
        raise UpstreamError("Server error during authentication", code=5010) from e
    except ProviderError:
        raise AuthError("Invalid or expired token", code=4011)


# ============================================
# Services
# ============================================

def get_two_factor_service(
    db: AuthDB = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
) -> TwoFactorService:
    return TwoFactorService(db, provider, settings)


def get_device_registry(db: AuthDB = Depends(get_db)) -> DeviceRegistry:
    return DeviceRegistry(db)
