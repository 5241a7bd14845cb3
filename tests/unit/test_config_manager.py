"""Unit tests for inkscreen.core.config_manager module."""

from pathlib import Path

import pytest

from inkscreen.core.config_manager import (
    ConfigManager,
    RenderSettings,
    get_config_value,
    parse_env_file,
)
from inkscreen.core.exceptions import ConfigurationError

pytestmark = pytest.mark.unit

CONFIG_ENV_VARS = (
    "INKSCREEN_UPLOADS_DIR",
    "INKSCREEN_DATA_DIR",
    "INKSCREEN_FONTS_DIR",
    "INKSCREEN_FETCH_TIMEOUT",
    "INKSCREEN_ASSET_TIMEOUT",
    "INKSCREEN_SERVER_BIND",
    "INKSCREEN_WEB_HOST",
    "INKSCREEN_SERVER_PORT",
    "INKSCREEN_WEB_PORT",
    "INKSCREEN_CHROMIUM_PATH",
)


@pytest.fixture(autouse=True)
def clear_config_env(monkeypatch):
    """Remove configuration variables so host settings cannot leak in."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestParseEnvFile:
    """Tests for parse_env_file."""

    def test_parse_env_file_strips_quotes_and_comments(self, tmp_path):
        """Test comments, blanks and quoting are handled."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\n\nINKSCREEN_SERVER_PORT=3000\nGITHUB_TOKEN=\"abc\"\nNAME='x=y'\nnot a pair\n",
            encoding="utf-8",
        )

        result = parse_env_file(env_file)

        assert result == {"INKSCREEN_SERVER_PORT": "3000", "GITHUB_TOKEN": "abc", "NAME": "x=y"}

    def test_parse_env_file_when_missing_then_empty(self, tmp_path):
        """Test a missing file yields no values."""
        assert parse_env_file(tmp_path / "missing.env") == {}


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_build_config_from_env(self, monkeypatch):
        """Test environment variables map onto typed config keys."""
        monkeypatch.setenv("INKSCREEN_SERVER_PORT", "3000")
        monkeypatch.setenv("INKSCREEN_DATA_DIR", "/srv/designs")
        monkeypatch.setenv("DEFAULT_TIMEZONE", "Europe/Warsaw")
        monkeypatch.setenv("INKSCREEN_FETCH_TIMEOUT", "2.5")

        config = ConfigManager().build_config_from_env()

        assert config["server_port"] == 3000
        assert config["data_dir"] == Path("/srv/designs")
        assert config["default_timezone"] == "Europe/Warsaw"
        assert config["fetch_timeout"] == 2.5

    def test_build_config_prefers_first_variable_of_group(self, monkeypatch):
        """Test the inkscreen-prefixed variable wins over the generic one."""
        monkeypatch.setenv("INKSCREEN_GITHUB_TOKEN", "primary")
        monkeypatch.setenv("GITHUB_TOKEN", "secondary")

        assert ConfigManager().build_config_from_env()["github_token"] == "primary"

    def test_build_config_ignores_invalid_values(self, monkeypatch):
        """Test a value that fails conversion is dropped."""
        monkeypatch.setenv("INKSCREEN_SERVER_PORT", "eighty")

        assert "server_port" not in ConfigManager().build_config_from_env()

    def test_load_env_file_does_not_override_environment(self, tmp_path, monkeypatch):
        """Test .env values only fill in unset variables."""
        env_file = tmp_path / ".env"
        env_file.write_text("INKSCREEN_SERVER_PORT=4000\nINKSCREEN_FONTS_DIR=/fonts\n", encoding="utf-8")
        monkeypatch.setenv("INKSCREEN_SERVER_PORT", "5000")
        # Registers the variable with monkeypatch so the value loaded below is undone
        monkeypatch.setenv("INKSCREEN_FONTS_DIR", "")
        monkeypatch.delenv("INKSCREEN_FONTS_DIR")

        manager = ConfigManager(env_file)
        loaded = manager.load_env_file()
        config = manager.build_config_from_env()

        assert loaded == ["INKSCREEN_FONTS_DIR"]
        assert config["server_port"] == 5000
        assert config["fonts_dir"] == Path("/fonts")

    def test_load_full_config_without_env_file(self, tmp_path):
        """Test a missing .env file is not an error."""
        assert ConfigManager(tmp_path / ".env").load_full_config() == {}


class TestRenderSettings:
    """Tests for RenderSettings."""

    def test_from_config_defaults(self):
        """Test defaults apply for missing keys."""
        settings = RenderSettings.from_config({})

        assert settings.default_timezone == "UTC"
        assert settings.server_port == 8080
        assert settings.uploads_dir == Path("uploads")
        assert settings.github_token is None

    def test_from_config_ignores_unknown_keys(self):
        """Test unrelated keys do not fail validation."""
        settings = RenderSettings.from_config({"server_port": 9000, "unrelated": True})

        assert settings.server_port == 9000

    def test_from_config_invalid_value_raises_configuration_error(self):
        """Test out-of-range values are reported as configuration errors."""
        with pytest.raises(ConfigurationError, match="server_port"):
            RenderSettings.from_config({"server_port": 70000})


class TestGetConfigValue:
    """Tests for get_config_value."""

    def test_get_config_value_from_dict_and_object(self):
        """Test dicts and attribute objects are both supported."""
        settings = RenderSettings(server_port=1234)

        assert get_config_value({"a": 1}, "a") == 1
        assert get_config_value({}, "a", "default") == "default"
        assert get_config_value(settings, "server_port") == 1234
        assert get_config_value(settings, "missing", 5) == 5
