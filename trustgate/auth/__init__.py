"""
Authentication core for TrustGate.

This package provides:
- Credential verification (delegated to the identity provider)
- TOTP enrollment and verification
- The second-factor state machine and login dispatch
- Biometric trusted-device registry
- Session expiry normalization
"""
from .credentials import CredentialVerifier, CredentialResult, CredentialStatus
from .devices import DeviceRegistry, TrustedDevice
from .session import build_session, normalize_expiry
from .totp import begin_enrollment, verify_code, matching_step, TotpEnrollment
from .two_factor import TwoFactorService, TwoFactorState, LoginResult, state_of

__all__ = [
    "CredentialVerifier",
    "CredentialResult",
    "CredentialStatus",
    "DeviceRegistry",
    "TrustedDevice",
    "build_session",
    "normalize_expiry",
    "begin_enrollment",
    "verify_code",
    "matching_step",
    "TotpEnrollment",
    "TwoFactorService",
    "TwoFactorState",
    "LoginResult",
    "state_of",
]
