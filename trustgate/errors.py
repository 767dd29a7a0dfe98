"""
Error taxonomy for TrustGate.

Every error carries the numeric response code bucket used by the mobile
client (1xxx bad request, 4xxx auth/forbidden/conflict, 5xxx server error)
together with the HTTP status. The API layer renders these as the standard
response envelope.
"""
from typing import Any, Dict, Optional


class TrustGateError(Exception):
    """Base class for errors rendered as an API envelope."""

    default_code = 5000
    default_status = 500
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[int] = None,
        http_status: Optional[int] = None,
        payload: Any = None,
        meta: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code if code is not None else self.default_code
        self.http_status = http_status if http_status is not None else self.default_status
        self.payload = payload
        self.meta = meta
        super().__init__(self.message)


class ValidationError(TrustGateError):
    """Missing or malformed input."""
    default_code = 1000
    default_status = 400
    default_message = "Invalid request"


class AuthError(TrustGateError):
    """Bad credentials, bad code, unconfirmed email or untrusted device."""
    default_code = 4000
    default_status = 401
    default_message = "Authentication failed"


class ConflictError(TrustGateError):
    """Request conflicts with existing state."""
    default_code = 4100
    default_status = 400
    default_message = "Conflict with existing state"


class DeviceAlreadyRegisteredError(ConflictError):
    default_code = 4103
    default_message = "Device is already registered for biometric authentication"


class UpstreamError(TrustGateError):
    """Identity provider or data store unavailable."""
    default_code = 5000
    default_status = 500
    default_message = "Upstream service unavailable"


class InternalError(TrustGateError):
    """Unexpected failure."""
    default_code = 5000
    default_status = 500
    default_message = "Internal server error"
