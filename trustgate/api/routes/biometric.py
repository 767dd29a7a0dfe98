"""
Biometric Device Endpoints.

Register and revoke trusted devices for the authenticated user. The
biometric check itself happens on the device.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..models import ApiResponse, DeviceRegisterRequest, DeviceRevokeRequest
from ..deps import get_current_user, get_device_registry
from ..responses import api_response, require_fields, server_errors
from ...auth.devices import DeviceRegistry
from ...errors import ValidationError
from ...identity.provider import ProviderUser

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/biometric", tags=["Biometric"])

ERROR_RESPONSES = {
    400: {"model": ApiResponse, "description": "Invalid input or device already registered"},
    401: {"model": ApiResponse, "description": "Authentication required"},
    500: {"model": ApiResponse, "description": "Server error"},
}


@router.post("/enable", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def enable_biometric(
    body: DeviceRegisterRequest,
    user: ProviderUser = Depends(get_current_user),
    registry: DeviceRegistry = Depends(get_device_registry),
):
    """Register the calling device as trusted."""
    require_fields(body, ["device_id", "device_model", "device_platform"], code=1101)

    with server_errors(5101, "Server error while enabling biometric"):
        device = registry.register(user.id, body.device_id, body.device_model, body.device_platform)

    return api_response(
        2101,
        "Biometric authentication enabled successfully",
        payload=device.to_dict(),
    )


@router.post("/disable", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def disable_biometric(
    body: DeviceRevokeRequest,
    user: ProviderUser = Depends(get_current_user),
    registry: DeviceRegistry = Depends(get_device_registry),
):
    """Revoke a trusted device. Succeeds even if the device was not registered."""
    require_fields(body, ["device_id"], code=1102, message="Device ID is required")

    with server_errors(5102, "Server error while disabling biometric"):
        registry.revoke(user.id, body.device_id)

    return api_response(2102, "Biometric authentication disabled successfully")


@router.get("/devices", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def list_devices(
    user: ProviderUser = Depends(get_current_user),
    registry: DeviceRegistry = Depends(get_device_registry),
):
    """List the user's trusted devices."""
    with server_errors(5104, "Server error while listing devices"):
        devices = registry.list_devices(user.id)

    return api_response(
        2104,
        "Trusted devices retrieved",
        payload={"devices": [d.to_dict() for d in devices]},
    )


@router.get("/status", response_model=ApiResponse, responses=ERROR_RESPONSES)
async def device_status(
    device_id: Optional[str] = Query(None, description="Device identifier"),
    user: ProviderUser = Depends(get_current_user),
    registry: DeviceRegistry = Depends(get_device_registry),
):
    """Whether a device is trusted for the user."""
    if not device_id:
        raise ValidationError("Device ID is required", code=1105)

    with server_errors(5105, "Server error while checking device"):
        trusted = registry.is_trusted(user.id, device_id)

    return api_response(2105, "Device status retrieved", payload={"device_id": device_id, "trusted": trusted})
