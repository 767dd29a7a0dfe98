"""
TOTP (Time-based One-Time Password) engine for TrustGate.

Implements RFC 6238 codes (6 digits, 30-second steps) using pyotp.
Compatible with Google Authenticator, Authy, and other TOTP apps.

Secrets are generated here but never activated here: the caller stores a
fresh secret as the account's pending secret until a code proves the
authenticator app was set up.
"""
import base64
import binascii
import hmac
import io
import logging
import time
from dataclasses import dataclass
from typing import Optional

import pyotp
import qrcode

logger = logging.getLogger(__name__)

DEFAULT_ISSUER = "NU365"
CODE_DIGITS = 6
STEP_SECONDS = 30


@dataclass(frozen=True)
class TotpEnrollment:
    """A freshly generated, not yet activated, TOTP secret."""
    secret: str
    enrollment_uri: str
    qr_code_base64: str


def generate_totp_secret() -> str:
    """
    Generate a new TOTP secret for enrollment.

    Returns:
        Base32-encoded secret (32 characters).
    """
    return pyotp.random_base32()


def get_totp_provisioning_uri(
    secret: str,
    identity: str,
    issuer: str = DEFAULT_ISSUER
) -> str:
    """
    Generate a provisioning URI for TOTP apps.

    Args:
        secret: Base32-encoded TOTP secret.
        identity: Account label shown in the authenticator app (email or user id).
        issuer: Application name shown in the authenticator app.

    Returns:
        otpauth:// URI string.
    """
    totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=STEP_SECONDS)
    return totp.provisioning_uri(name=identity, issuer_name=issuer)


def generate_qr_code_base64(uri: str) -> str:
    """
    Render the provisioning URI as a PNG QR code.

    Returns:
        Data URI ("data:image/png;base64,...") ready for an <img> tag.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    b64 = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{b64}"


def begin_enrollment(identity: str, issuer: str = DEFAULT_ISSUER) -> TotpEnrollment:
    """
    Generate a secret, provisioning URI and QR code for a new enrollment.

    The returned secret is not active; store it as the pending secret.
    """
    secret = generate_totp_secret()
    uri = get_totp_provisioning_uri(secret, identity, issuer)
    return TotpEnrollment(
        secret=secret,
        enrollment_uri=uri,
        qr_code_base64=generate_qr_code_base64(uri),
    )


def _clean_code(code) -> Optional[str]:
    if not isinstance(code, str):
        return None
    code = code.replace(" ", "").strip()
    if len(code) != CODE_DIGITS or not code.isdigit():
        return None
    return code


def matching_step(
    secret: Optional[str],
    code,
    window: int = 1,
    for_time: Optional[float] = None,
) -> Optional[int]:
    """
    Find the time step a code was generated for.

    Checks the current step and `window` steps on either side
    (window=1 tolerates +-30s of clock drift).

    Returns:
        The matching step counter, or None if nothing matched or the input
        is malformed.
    """
    code = _clean_code(code)
    if not secret or code is None:
        return None

    now = time.time() if for_time is None else for_time
    current = int(now // STEP_SECONDS)
    totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=STEP_SECONDS)

    try:
        # Current step first, then the neighbours
        for offset in sorted(range(-window, window + 1), key=abs):
            step = current + offset
            if hmac.compare_digest(totp.generate_otp(step), code):
                return step
    except (binascii.Error, ValueError, TypeError) as e:
        logger.warning(f"TOTP verification against malformed secret: {e}")
        return None
    return None


def verify_code(secret: Optional[str], code, window: int = 1) -> bool:
    """
    Verify a TOTP code against the secret.

    Args:
        secret: Base32-encoded TOTP secret.
        code: 6-digit code entered by the user.
        window: Number of 30-second steps tolerated either side.

    Returns:
        True if code is valid, False otherwise (including malformed input).
    """
    return matching_step(secret, code, window=window) is not None


def current_code(secret: str) -> str:
    """Current 6-digit code (for testing/debugging)."""
    return pyotp.TOTP(secret, digits=CODE_DIGITS, interval=STEP_SECONDS).now()
