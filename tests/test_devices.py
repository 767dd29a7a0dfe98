"""
Tests for the trusted-device registry.
"""
from unittest.mock import patch

import pytest

from trustgate.auth.devices import DeviceRegistry
from trustgate.errors import DeviceAlreadyRegisteredError


@pytest.fixture
def registry(auth_db):
    return DeviceRegistry(auth_db)


class TestRegistration:
    """Test register and duplicate handling."""

    def test_register(self, registry):
        device = registry.register("user-1", "device-a", "iPhone 15", "ios")

        data = device.to_dict()
        assert data["device_id"] == "device-a"
        assert data["device_model"] == "iPhone 15"
        assert data["device_platform"] == "ios"
        assert data["registered_at"]
        assert registry.is_trusted("user-1", "device-a")

    def test_duplicate_rejected_and_single_row_kept(self, registry):
        registry.register("user-1", "device-a", "iPhone 15", "ios")

        with pytest.raises(DeviceAlreadyRegisteredError) as exc_info:
            registry.register("user-1", "device-a", "iPhone 16", "ios")

        assert exc_info.value.code == 4103
        assert exc_info.value.http_status == 400
        devices = registry.list_devices("user-1")
        assert len(devices) == 1
        assert devices[0].device_model == "iPhone 15"

    def test_race_on_primary_key_is_already_registered(self, registry, auth_db):
        registry.register("user-1", "device-a", "iPhone 15", "ios")

        # Simulate a concurrent registration that passed the existence check
        with patch.object(auth_db, "trusted_device_exists", return_value=False):
            with pytest.raises(DeviceAlreadyRegisteredError):
                registry.register("user-1", "device-a", "iPhone 15", "ios")

        assert len(registry.list_devices("user-1")) == 1

    def test_same_device_for_different_users(self, registry):
        registry.register("user-1", "device-a", "Pixel 8", "android")
        registry.register("user-2", "device-a", "Pixel 8", "android")

        assert registry.is_trusted("user-1", "device-a")
        assert registry.is_trusted("user-2", "device-a")


class TestRevocation:
    """Test revoke and queries."""

    def test_revoke(self, registry):
        registry.register("user-1", "device-a", "iPhone 15", "ios")

        assert registry.revoke("user-1", "device-a") == 1
        assert not registry.is_trusted("user-1", "device-a")

    def test_revoke_is_idempotent(self, registry):
        assert registry.revoke("user-1", "never-registered") == 0
        assert registry.revoke("user-1", "never-registered") == 0

    def test_revoke_only_affects_owner(self, registry):
        registry.register("user-1", "device-a", "iPhone 15", "ios")
        registry.register("user-2", "device-a", "iPhone 15", "ios")

        registry.revoke("user-1", "device-a")
        assert registry.is_trusted("user-2", "device-a")

    def test_register_after_revoke(self, registry):
        registry.register("user-1", "device-a", "iPhone 15", "ios")
        registry.revoke("user-1", "device-a")

        registry.register("user-1", "device-a", "iPhone 15", "ios")
        assert registry.is_trusted("user-1", "device-a")

    def test_list_devices(self, registry):
        registry.register("user-1", "device-a", "iPhone 15", "ios")
        registry.register("user-1", "device-b", "Pixel 8", "android")
        registry.register("user-2", "device-c", "Pixel 8", "android")

        ids = sorted(d.device_id for d in registry.list_devices("user-1"))
        assert ids == ["device-a", "device-b"]

    def test_list_devices_empty(self, registry):
        assert registry.list_devices("user-1") == []
