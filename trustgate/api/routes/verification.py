"""
Two-Factor Enrollment Endpoints.

Enable (start enrollment), verify (activate) and disable TOTP two-factor
authentication for the authenticated user.
"""
import logging

from fastapi import APIRouter, Depends

from ..models import ApiResponse, TwoFactorCodeRequest
from ..deps import get_current_user, get_two_factor_service
from ..responses import api_response, require_fields, server_errors
from ...auth.two_factor import TwoFactorService
from ...identity.provider import ProviderUser

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/verification", tags=["Verification"])

ERROR_RESPONSES = {
    400: {"model": ApiResponse, "description": "Invalid input or state"},
    401: {"model": ApiResponse, "description": "Invalid password or code"},
    500: {"model": ApiResponse, "description": "Server error"},
}


@router.post("/enable-2fa", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def enable_two_factor(
    user: ProviderUser = Depends(get_current_user),
    service: TwoFactorService = Depends(get_two_factor_service),
):
    """
    Start two-factor enrollment.

    Returns a new secret, the otpauth:// URI and a QR code. Two-factor
    authentication is not active until confirmed with /verify-2fa; calling
    this again replaces the pending secret.
    """
    with server_errors(5201, "Server error while enabling 2FA"):
        enrollment = service.begin_enrollment(user.id, user.email)

    return api_response(
        2201,
        "2FA enrollment started. Confirm with a code from your authenticator app.",
        payload={
            "secret": enrollment.secret,
            "otpauth_url": enrollment.enrollment_uri,
            "qr_code": enrollment.qr_code_base64,
        },
    )


@router.post("/verify-2fa", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def verify_two_factor(
    body: TwoFactorCodeRequest,
    user: ProviderUser = Depends(get_current_user),
    service: TwoFactorService = Depends(get_two_factor_service),
):
    """
    Confirm enrollment with the current password and a code.

    Activates two-factor authentication on success.
    """
    require_fields(body, ["password", "code"], code=1202, message="Password and 2FA code are required")

    with server_errors(5202, "Server error during 2FA verification"):
        service.verify_enrollment(user.id, user.email, body.password, body.code)

    return api_response(2202, "2FA verification successful. Two-factor authentication is enabled.")


@router.post("/disable-2fa", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def disable_two_factor(
    body: TwoFactorCodeRequest,
    user: ProviderUser = Depends(get_current_user),
    service: TwoFactorService = Depends(get_two_factor_service),
):
    """Disable two-factor authentication (password and current code required)."""
    require_fields(body, ["password", "code"], code=1203, message="Password and 2FA code are required")

    with server_errors(5203, "Server error while disabling 2FA"):
        service.disable(user.id, user.email, body.password, body.code)

    return api_response(2203, "2FA disabled successfully")
