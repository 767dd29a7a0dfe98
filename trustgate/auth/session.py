"""
Session expiry normalization.

The identity provider reports session expiry as an ISO-8601 timestamp, as
numeric epoch seconds, or not at all. Clients always receive a single
representation: integer epoch seconds.
"""
import logging
import math
import time
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Dict, Optional

from ..config import DEFAULT_SESSION_FALLBACK_TTL

logger = logging.getLogger(__name__)


def _parse_iso_timestamp(value: str) -> Optional[int]:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return math.floor(parsed.timestamp())


def normalize_expiry(
    value: Any,
    now: Optional[float] = None,
    fallback_ttl: int = DEFAULT_SESSION_FALLBACK_TTL,
) -> int:
    """
    Convert a provider expiry value to epoch seconds.

    Precedence:
    1. String containing a date-time separator: parsed as ISO-8601, floored.
    2. Numeric: already epoch seconds, passed through.
    3. Anything else (absent, unparsable): now + fallback_ttl (3 days).

    Examples:
        >>> normalize_expiry("2025-04-26T12:24:30.000Z")
        1745670270
        >>> normalize_expiry(1745670270)
        1745670270
    """
    if isinstance(value, str) and "T" in value:
        parsed = _parse_iso_timestamp(value)
        if parsed is not None:
            return parsed
        logger.warning("Unparsable session expiry from provider, using fallback")
    elif isinstance(value, Real) and not isinstance(value, bool):
        if isinstance(value, int):
            return value
        if math.isfinite(value):
            return math.floor(value)

    current = time.time() if now is None else now
    return math.floor(current) + fallback_ttl


def build_session(
    access_token: str,
    expires_at: Any,
    requested_lifetime: Optional[int] = None,
    now: Optional[float] = None,
    fallback_ttl: int = DEFAULT_SESSION_FALLBACK_TTL,
) -> Dict[str, Any]:
    """
    Build the client-facing session object.

    When requested_lifetime is given the expiry never exceeds
    now + requested_lifetime.
    """
    current = time.time() if now is None else now
    expiry = normalize_expiry(expires_at, now=current, fallback_ttl=fallback_ttl)
    if requested_lifetime is not None and requested_lifetime > 0:
        expiry = min(expiry, math.floor(current) + int(requested_lifetime))
    return {
        "access_token": access_token,
        "expires_at": expiry,
    }
