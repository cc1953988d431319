"""
Unit tests for DeviceTokenService.
"""

import pytest

from backend.src.services.device_token_service import DeviceTokenService


@pytest.fixture
def token_service(test_db_session):
    return DeviceTokenService(test_db_session)


class TestDeactivateToken:
    """Tests for single-token deactivation."""

    def test_deactivates_active_token(self, token_service, test_user, create_device_token, test_db_session):
        device = create_device_token(test_user)

        assert token_service.deactivate_token(device.token) is True

        test_db_session.refresh(device)
        assert device.is_active is False
        assert device.deactivated_at is not None
        assert token_service.get_active_tokens_for_user(test_user.id) == []

    def test_unknown_or_inactive_token(self, token_service, test_user, create_device_token):
        device = create_device_token(test_user, is_active=False)

        assert token_service.deactivate_token(device.token) is False
        assert token_service.deactivate_token("ExponentPushToken[missing]") is False


class TestDeactivateAllForUser:
    """Tests for bulk deactivation."""

    def test_only_target_user_affected(self, token_service, create_user, create_device_token):
        user = create_user()
        other = create_user()
        create_device_token(user)
        create_device_token(user)
        create_device_token(other)

        assert token_service.deactivate_all_for_user(user.id) == 2
        assert token_service.get_active_tokens_for_user(user.id) == []
        assert len(token_service.get_active_tokens_for_user(other.id)) == 1

    def test_no_tokens(self, token_service, test_user):
        assert token_service.deactivate_all_for_user(test_user.id) == 0
