"""
Tests for settings loading from the environment and config.yaml.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from src.capirelay.config import (
    CORSSettings,
    FacebookSettings,
    Settings,
    _set_env_from_config,
    load_config_file,
    reload_settings,
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run with no relay variables set and no .env / config.yaml in cwd."""
    for name in [
        "FB_PIXEL_ID", "FB_ACCESS_TOKEN", "FB_API_VERSION", "FB_TEST_EVENT_CODE",
        "FB_GRAPH_BASE_URL", "FB_TIMEOUT_SECONDS", "ALLOWED_ORIGINS", "PORT",
        "HOST", "LOG_LEVEL", "APP_ENV", "DEBUG",
    ]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestFacebookSettings:

    def test_reads_fb_prefixed_env(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FB_PIXEL_ID", "999")
        monkeypatch.setenv("FB_ACCESS_TOKEN", "secret")
        monkeypatch.setenv("FB_API_VERSION", "v19.0")
        monkeypatch.setenv("FB_TEST_EVENT_CODE", "TEST777")

        settings = FacebookSettings()

        assert settings.is_configured
        assert settings.test_event_code == "TEST777"
        assert settings.events_url == "https://graph.facebook.com/v19.0/999/events"

    def test_missing_fields(self, clean_env: None) -> None:
        settings = FacebookSettings()

        assert not settings.is_configured
        assert settings.missing_fields == ["FB_PIXEL_ID", "FB_ACCESS_TOKEN", "FB_API_VERSION"]

    def test_blank_test_event_code_is_unset(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FB_TEST_EVENT_CODE", "  ")
        assert FacebookSettings().test_event_code is None

    def test_events_url_does_not_contain_token(self) -> None:
        settings = FacebookSettings(pixel_id="1", access_token="secret", api_version="v19.0")
        assert "secret" not in settings.events_url


class TestCORSSettings:

    def test_comma_separated_origins(self) -> None:
        cors = CORSSettings(allowed_origins="https://a.test, https://b.test ,")
        assert cors.origins == ["https://a.test", "https://b.test"]
        assert cors.is_restricted

    def test_unset_allows_all(self) -> None:
        cors = CORSSettings(allowed_origins="")
        assert cors.origins == ["*"]
        assert not cors.is_restricted


class TestSettings:

    def test_defaults(self, clean_env: None) -> None:
        settings = Settings()

        assert settings.port == 3002
        assert settings.log_level == "INFO"
        assert not settings.is_development

    def test_port_from_env(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "3000")
        monkeypatch.setenv("APP_ENV", "development")

        settings = Settings()

        assert settings.port == 3000
        assert settings.is_development


class TestConfigFile:

    def test_load_config_file(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("facebook:\n  pixel_id: '42'\n")

        assert load_config_file(str(config_path)) == {"facebook": {"pixel_id": "42"}}

    def test_missing_config_file(self, clean_env: None) -> None:
        assert load_config_file() == {}

    def test_env_overrides_config_file(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FB_PIXEL_ID", "from-env")
        config = {
            "facebook": {"pixel_id": "from-file", "api_version": "v18.0"},
            "cors": {"allowed_origins": ["https://a.test", "https://b.test"]},
        }

        with patch.dict(os.environ, {}):
            _set_env_from_config(config)
            assert os.environ["FB_PIXEL_ID"] == "from-env"
            assert os.environ["FB_API_VERSION"] == "v18.0"
            assert os.environ["ALLOWED_ORIGINS"] == "https://a.test,https://b.test"

    def test_reload_settings_reads_config_file(self, clean_env: None) -> None:
        config = {"server": {"port": 4000}, "facebook": {"pixel_id": "777"}}

        with patch.dict(os.environ, {}), \
                patch("src.capirelay.config.load_config_file", return_value=config):
            settings = reload_settings()

        assert settings.port == 4000
        assert settings.facebook.pixel_id == "777"


class TestLenientEnvironmentValues:
    """Stray host variables must not stop the service from starting."""

    def test_blank_timeout_is_unset(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FB_TIMEOUT_SECONDS", "")
        assert FacebookSettings().timeout_seconds is None

    def test_timeout_from_env(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FB_TIMEOUT_SECONDS", "2.5")
        assert FacebookSettings().timeout_seconds == 2.5

    @pytest.mark.parametrize("value", ["release", "", "0", "false"])
    def test_non_boolean_debug_is_off(self, clean_env: None, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("DEBUG", value)
        assert Settings().debug is False

    @pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
    def test_truthy_debug(self, clean_env: None, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("DEBUG", value)
        assert Settings().debug is True
