"""
Pydantic Models for TrustGate API.

Request bodies keep every field optional so that missing fields are
reported with the endpoint's own response code instead of a generic
validation error.
"""
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import AliasChoices, BaseModel, Field, ConfigDict


# ============================================
# Response Envelope
# ============================================

class ApiResponse(BaseModel):
    """
    Standard response envelope.

    Every endpoint, success or failure, answers with this shape. `code` is a
    four-digit bucket: 1xxx bad request, 2xxx success, 4xxx auth/forbidden,
    5xxx server error.
    """
    error: bool
    success: bool
    code: int
    httpStatus: int
    message: str
    payload: Optional[Any] = None
    meta: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": False,
                "success": True,
                "code": 2002,
                "httpStatus": 200,
                "message": "Login successful",
                "payload": {
                    "session": {"access_token": "eyJhbGciOi...", "expires_at": 1745670270},
                    "user": {"id": "user-uuid", "email": "user@example.com"}
                }
            }
        }
    )


# ============================================
# Authentication Models
# ============================================

class RegisterRequest(BaseModel):
    """Register with email, password and display name."""
    email: Optional[str] = Field(None, description="Email address")
    password: Optional[str] = Field(None, description="Account password")
    name: Optional[str] = Field(None, description="Display name")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "securepassword123",
                "name": "John Doe"
            }
        }
    )


class LoginRequest(BaseModel):
    """Email/password login."""
    email: Optional[str] = Field(None, description="Registered email address")
    password: Optional[str] = Field(None, description="Account password")


class LoginWithCodeRequest(BaseModel):
    """
    Login for accounts with two-factor authentication enabled.

    Password is checked again together with the 6-digit code.
    """
    email: Optional[str] = Field(None, description="Registered email address")
    password: Optional[str] = Field(None, description="Account password")
    code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("code", "token"),
        description="6-digit code from the authenticator app",
    )
    expires_in: Optional[int] = Field(
        None, gt=0, description="Requested session lifetime in seconds (upper bound)"
    )

    model_config = ConfigDict(
        coerce_numbers_to_str=True,
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "securepassword123",
                "code": "123456"
            }
        }
    )


class ResendVerificationRequest(BaseModel):
    email: Optional[str] = Field(None, description="Email address to resend confirmation to")


# ============================================
# Two-Factor Models
# ============================================

class TwoFactorCodeRequest(BaseModel):
    """Password re-verification plus a TOTP code."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    password: Optional[str] = Field(None, description="Current account password")
    code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("code", "token"),
        description="6-digit code from the authenticator app",
    )


# ============================================
# Biometric Models
# ============================================

class DeviceRegisterRequest(BaseModel):
    """Register the calling device as trusted for biometric sign-in."""
    device_id: Optional[str] = Field(None, description="Stable device identifier")
    device_model: Optional[str] = Field(None, description="Device model, e.g. 'Pixel 8'")
    device_platform: Optional[str] = Field(None, description="ios, android or other")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "device_id": "6f1c2a9e-3b7d-4c1e-9a55-2f0d8e4b7c11",
                "device_model": "iPhone 15",
                "device_platform": "ios"
            }
        }
    )


class DeviceRevokeRequest(BaseModel):
    device_id: Optional[str] = Field(None, description="Device identifier to revoke")


# ============================================
# Health Models
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    version: str
    services: Dict[str, str]
    timestamp: datetime
