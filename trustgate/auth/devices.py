"""
Biometric trusted-device registry.

A trusted device is a (user_id, device_id) pair registered after a
successful authentication. Registration never upserts: a second register
for the same pair is rejected. Revocation is idempotent.

The registry is independent of the TOTP profile; neither store is derived
from the other.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError

from ..database.auth_db import AuthDB
from ..errors import DeviceAlreadyRegisteredError

logger = logging.getLogger(__name__)


@dataclass
class TrustedDevice:
    user_id: str
    device_id: str
    device_model: str
    device_platform: str
    created_at: Any = None

    def to_dict(self) -> Dict[str, Any]:
        created = self.created_at
        if isinstance(created, datetime):
            created = created.isoformat()
        return {
            "device_id": self.device_id,
            "device_model": self.device_model,
            "device_platform": self.device_platform,
            "registered_at": created,
        }


class DeviceRegistry:
    """Register, revoke and query trusted devices."""

    def __init__(self, db: AuthDB):
        self.db = db

    def register(
        self,
        user_id: str,
        device_id: str,
        device_model: str,
        device_platform: str,
    ) -> TrustedDevice:
        """
        Register a device as trusted for biometric sign-in.

        Raises:
            DeviceAlreadyRegisteredError: The pair is already registered
                (found on lookup, or lost a race on the primary key).
            UpstreamError: The store is unavailable.
        """
        if self.db.trusted_device_exists(user_id, device_id):
            raise DeviceAlreadyRegisteredError()

        try:
            row = self.db.insert_trusted_device(user_id, device_id, device_model, device_platform)
        except IntegrityError as e:
            logger.info(f"Concurrent registration of device for user {user_id}: {e.orig}")
            raise DeviceAlreadyRegisteredError() from e

        logger.info(f"Trusted device registered for user {user_id} ({device_platform})")
        return TrustedDevice(**row)

    def revoke(self, user_id: str, device_id: str) -> int:
        """Remove a trusted device; succeeds even if it was not registered."""
        deleted = self.db.delete_trusted_device(user_id, device_id)
        logger.info(f"Trusted device revoked for user {user_id} (rows={deleted})")
        return deleted

    def is_trusted(self, user_id: str, device_id: str) -> bool:
        return self.db.trusted_device_exists(user_id, device_id)

    def list_devices(self, user_id: str) -> List[TrustedDevice]:
        return [TrustedDevice(**row) for row in self.db.list_trusted_devices(user_id)]
