"""
Authentication Endpoints.

Provides registration, email verification, password login (with the
two-factor dispatch), code-gated login, logout and the combined security
settings read.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from ..models import (
    ApiResponse,
    RegisterRequest,
    LoginRequest,
    LoginWithCodeRequest,
    ResendVerificationRequest,
)
from ..deps import (
    get_db,
    get_identity_provider,
    get_bearer_token,
    get_current_user,
    get_two_factor_service,
    get_device_registry,
)
from ..responses import api_response, require_fields, server_errors
from ...auth.devices import DeviceRegistry
from ...auth.two_factor import TwoFactorService, TwoFactorState
from ...config import Settings, get_settings
from ...database.auth_db import AuthDB
from ...errors import UpstreamError, ValidationError
from ...identity.provider import IdentityProvider, ProviderError, ProviderUser
from ...utils.secrets import mask_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["Authentication"])

ERROR_RESPONSES = {
    400: {"model": ApiResponse, "description": "Invalid input"},
    401: {"model": ApiResponse, "description": "Authentication failed"},
    500: {"model": ApiResponse, "description": "Server error"},
}


@router.post("/register", status_code=201, response_model=ApiResponse, responses=ERROR_RESPONSES)
async def register(
    body: RegisterRequest,
    db: AuthDB = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
):
    """
    Register a new user account.

    The identity provider sends a confirmation email; login is refused until
    the address is confirmed.
    """
    require_fields(body, ["email", "password", "name"], code=1001)

    with server_errors(5001, "Server error during registration"):
        try:
            user = provider.sign_up(
                body.email,
                body.password,
                {"name": body.name, "twoFactorEnabled": False, "biometricEnabled": False},
                redirect_to=settings.email_redirect_url,
            )
        except ProviderError as e:
            raise ValidationError(e.message, code=1006)

        # The identity record already exists; a missing profile row is
        # recreated on first enrollment
        try:
            db.upsert_profile(user.id, user.email or body.email, body.name)
        except (UpstreamError, SQLAlchemyError) as e:
            logger.error(f"Error creating profile for user {user.id}: {e}", exc_info=True)

    logger.info(f"New user registered: {mask_email(body.email)}")

    return api_response(
        2001,
        "Registration successful. Please check your email for verification.",
        payload={"id": user.id, "email": user.email or body.email, "name": body.name},
        status_code=201,
    )


@router.post(
    "/login",
    response_model=ApiResponse,
    responses={**ERROR_RESPONSES, 403: {"model": ApiResponse, "description": "Two-factor authentication required"}},
)
async def login(
    body: LoginRequest,
    service: TwoFactorService = Depends(get_two_factor_service),
):
    """
    Authenticate with email and password.

    Accounts with two-factor authentication enabled are refused here
    (code 4004) and must use /login-with-code.
    """
    require_fields(body, ["email", "password"], code=1002, message="Email and password are required")

    with server_errors(5002, "Server error during login"):
        result = service.login(body.email, body.password)

    return api_response(
        2002,
        "Login successful",
        payload={"session": result.session, "user": result.user},
        meta=result.meta,
    )


@router.post("/login-with-code", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def login_with_code(
    body: LoginWithCodeRequest,
    service: TwoFactorService = Depends(get_two_factor_service),
):
    """
    Authenticate with email, password and a TOTP code.

    Each code is accepted once.
    """
    require_fields(
        body, ["email", "password", "code"], code=1007,
        message="Email, password and 2FA code are required",
    )

    with server_errors(5006, "Server error during login"):
        result = service.login_with_code(
            body.email, body.password, body.code, requested_lifetime=body.expires_in
        )

    return api_response(
        2006,
        "Login successful",
        payload={"session": result.session, "user": result.user},
    )


@router.get("/verify-email", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def verify_email(
    token: Optional[str] = Query(None, description="Token from the confirmation link"),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Confirm an email address."""
    if not token:
        raise ValidationError("Verification token is required", code=1003)

    with server_errors(5003, "Server error during email verification"):
        try:
            provider.verify_email_token(token)
        except ProviderError as e:
            raise ValidationError(e.message, code=1008)

    return api_response(2003, "Email verified successfully")


@router.post("/resend-verification", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def resend_verification(
    body: ResendVerificationRequest,
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
):
    """Resend the confirmation email."""
    require_fields(body, ["email"], code=1004, message="Email is required")

    with server_errors(5004, "Server error during resend verification"):
        try:
            provider.resend_verification(body.email, redirect_to=settings.email_redirect_url)
        except ProviderError as e:
            raise ValidationError(e.message, code=1009)

    return api_response(2004, "Verification email has been resent")


@router.post("/logout", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def logout(
    token: str = Depends(get_bearer_token),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Revoke the current session."""
    with server_errors(5005, "Server error during logout"):
        try:
            provider.sign_out(token)
        except ProviderError as e:
            raise ValidationError(e.message, code=1005)

    return api_response(2005, "Logout successful")


@router.get("/security", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def security_settings(
    device_id: Optional[str] = Query(None, description="Also report whether this device is trusted"),
    user: ProviderUser = Depends(get_current_user),
    service: TwoFactorService = Depends(get_two_factor_service),
    registry: DeviceRegistry = Depends(get_device_registry),
):
    """
    Read two-factor status and trusted devices together.

    The two trust mechanisms are independent; this is a read-only view.
    """
    with server_errors(5007, "Server error while reading security settings"):
        state = service.get_state(user.id)
        devices = registry.list_devices(user.id)
        payload = {
            "twoFactorEnabled": state is TwoFactorState.TWO_FA_ACTIVE,
            "twoFactorState": state.value,
            "enrollmentPending": state is TwoFactorState.ENROLLMENT_PENDING,
            "trustedDevices": [d.to_dict() for d in devices],
        }
        if device_id:
            payload["deviceTrusted"] = registry.is_trusted(user.id, device_id)

    return api_response(2007, "Security settings retrieved", payload=payload)
