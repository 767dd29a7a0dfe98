"""
Identity provider adapter (Supabase Auth).
"""
from .provider import (
    IdentityProvider,
    ProviderUser,
    ProviderSession,
    ProviderError,
    ProviderUnavailableError,
    create_identity_provider,
)

__all__ = [
    "IdentityProvider",
    "ProviderUser",
    "ProviderSession",
    "ProviderError",
    "ProviderUnavailableError",
    "create_identity_provider",
]
