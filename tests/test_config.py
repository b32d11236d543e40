from dataclasses import FrozenInstanceError

import pytest

from realm_portal.config import DEFAULT_ADMIN_PANEL_URL, PortalConfig


class TestPortalConfig:
    def test_from_env(self):
        config = PortalConfig.from_env({
            "PUBLIC_SITE_SERVICE_KEY": "k3y",
            "ADMIN_PANEL_URL": "https://admin.realm.test/",
            "PORTAL_MIN_RESPONSE_MS": "250",
            "LOG_JSON": "false",
            "DB_AUTO_CREATE": "1",
        })

        assert config.service_key == "k3y"
        assert config.admin_panel_url == "https://admin.realm.test"
        assert config.min_response_ms == 250
        assert config.json_logs is False
        assert config.auto_create_tables is True

    def test_defaults(self):
        config = PortalConfig.from_env({})

        assert config.service_key is None
        assert not config.has_service_key
        assert config.admin_panel_url == DEFAULT_ADMIN_PANEL_URL
        assert config.freshness_window_ms == 300_000
        assert config.min_response_ms == 1000

    def test_immutable_and_key_not_in_repr(self):
        config = PortalConfig(service_key="super-secret")

        assert "super-secret" not in repr(config)
        with pytest.raises(FrozenInstanceError):
            config.service_key = "other"
