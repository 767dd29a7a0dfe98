"""
Runtime configuration for TrustGate.

All values come from environment variables (secrets via get_secret) and are
read once per process through get_settings().
"""
import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from .utils.secrets import get_secret

logger = logging.getLogger(__name__)

POLICY_STRICT = "strict"
POLICY_FLAG = "flag"
TWO_FACTOR_POLICIES = (POLICY_STRICT, POLICY_FLAG)

# Expiry used when the provider omits one (3 days)
DEFAULT_SESSION_FALLBACK_TTL = 3 * 24 * 3600


def _database_url_from_env() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "trustgate")
    user = os.getenv("POSTGRES_USER", "trustgate_user")
    password = get_secret("POSTGRES_PASSWORD", "")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


@dataclass
class Settings:
    """Process-wide settings."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    client_url: str = "http://localhost:3000"
    database_url: str = "sqlite://"
    totp_issuer: str = "NU365"
    totp_valid_window: int = 1
    session_fallback_ttl: int = DEFAULT_SESSION_FALLBACK_TTL
    two_factor_login_policy: str = POLICY_STRICT
    provider_timeout: int = 10
    cors_origins: tuple = ("http://localhost:3000",)

    def __post_init__(self):
        if self.two_factor_login_policy not in TWO_FACTOR_POLICIES:
            raise ValueError(
                f"TWO_FACTOR_LOGIN_POLICY must be one of {TWO_FACTOR_POLICIES}, "
                f"got '{self.two_factor_login_policy}'"
            )

    @property
    def email_redirect_url(self) -> str:
        return f"{self.client_url.rstrip('/')}/auth/callback"

    @property
    def strict_two_factor(self) -> bool:
        return self.two_factor_login_policy == POLICY_STRICT

    @classmethod
    def from_env(cls) -> "Settings":
        origins: List[str] = os.getenv(
            "CORS_ORIGINS", "http://localhost:3000"
        ).split(",")
        return cls(
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=get_secret("SUPABASE_ANON_KEY"),
            supabase_service_role_key=get_secret("SUPABASE_SERVICE_ROLE_KEY"),
            client_url=os.getenv("CLIENT_URL", "http://localhost:3000"),
            database_url=_database_url_from_env(),
            totp_issuer=os.getenv("TOTP_ISSUER", "NU365"),
            totp_valid_window=int(os.getenv("TOTP_VALID_WINDOW", "1")),
            session_fallback_ttl=int(
                os.getenv("SESSION_FALLBACK_TTL", str(DEFAULT_SESSION_FALLBACK_TTL))
            ),
            two_factor_login_policy=os.getenv(
                "TWO_FACTOR_LOGIN_POLICY", POLICY_STRICT
            ).strip().lower(),
            provider_timeout=int(os.getenv("PROVIDER_TIMEOUT", "10")),
            cors_origins=tuple(o.strip() for o in origins if o.strip()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get settings loaded from the environment (cached)."""
    settings = Settings.from_env()
    logger.debug(
        f"Settings loaded (policy={settings.two_factor_login_policy}, "
        f"issuer={settings.totp_issuer})"
    )
    return settings
