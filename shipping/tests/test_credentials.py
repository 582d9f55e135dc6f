"""
Tests for carrier credentials and token handling.
"""
import pytest

from shipping.credentials import TokenManager, load_carrier_config, public_settings, save_credentials
from shipping.errors import AuthenticationFailed, ConfigurationError
from shipping.models import CarrierSettings

pytestmark = pytest.mark.django_db


class TestLoadConfig:

    def test_not_configured(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_carrier_config()
        assert exc_info.value.message == "Shiprocket service not configured"

    def test_loads_row(self, carrier_settings):
        config = load_carrier_config()
        assert config.email == "ops@example.com"
        assert config.default_courier_id == "24"
        assert config.auto_ship_enabled is True
        assert "carrier-secret" not in repr(config)

    def test_tenants_are_isolated(self, carrier_settings):
        with pytest.raises(ConfigurationError):
            load_carrier_config("other-tenant")


class TestTokenManager:

    def test_always_mints_a_fresh_token(self, carrier_config, mock_client):
        tokens = TokenManager(carrier_config, mock_client)
        mock_client.authenticate.side_effect = ["t1", "t2"]

        assert tokens.get_token() == "t1"
        assert tokens.get_token() == "t2"
        assert mock_client.authenticate.call_count == 2
        assert CarrierSettings.objects.get(tenant="default").token == "t2"


class TestSaveCredentials:

    def test_validates_before_saving(self, mock_client):
        mock_client.authenticate.side_effect = AuthenticationFailed("Invalid email and password combination")

        with pytest.raises(AuthenticationFailed):
            save_credentials("ops@example.com", "wrong", client=mock_client)

        assert public_settings()["configured"] is False
        assert not CarrierSettings.objects.exists()

    def test_failed_login_keeps_previous_credentials(self, carrier_settings, mock_client):
        mock_client.authenticate.side_effect = AuthenticationFailed("Invalid email and password combination")

        with pytest.raises(AuthenticationFailed):
            save_credentials("attacker@example.com", "x", default_courier_id=1, client=mock_client)

        carrier_settings.refresh_from_db()
        assert carrier_settings.email == "ops@example.com"
        assert carrier_settings.default_courier_id == "24"

    def test_saves_and_hides_password(self, mock_client):
        saved = save_credentials(
            "ops@example.com", "pw", default_courier_id=24, auto_ship_enabled=True, client=mock_client
        )

        assert saved["configured"] is True
        assert saved["has_password"] is True
        assert saved["default_courier_id"] == "24"
        assert saved["auto_ship_enabled"] is True
        assert "password" not in saved
        assert "pw" not in saved.values()

    def test_blank_password_keeps_stored_one(self, carrier_settings, mock_client):
        save_credentials("new@example.com", "", client=mock_client)

        mock_client.authenticate.assert_called_once_with("new@example.com", "carrier-secret")
        assert CarrierSettings.objects.get(tenant="default").password == "carrier-secret"

    def test_email_is_required(self, mock_client):
        with pytest.raises(ConfigurationError):
            save_credentials("  ", "pw", client=mock_client)
        mock_client.authenticate.assert_not_called()
