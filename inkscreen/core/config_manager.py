"""Configuration management for the inkscreen renderer and server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from inkscreen.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        if key:
            result[key] = val.strip().strip('"').strip("'")

    return result


class RenderSettings(BaseModel):
    """Typed view of the configuration dictionary."""

    default_timezone: str = Field(default="UTC", description="Zone used when a widget sets none")
    github_token: Optional[str] = Field(default=None, description="Token for GitHub star lookups")
    uploads_dir: Path = Field(default=Path("uploads"), description="Root of drawings/captures/widgets")
    data_dir: Path = Field(default=Path("data"), description="Directory of design JSON files")
    fonts_dir: Path = Field(default=Path("assets/fonts"), description="Directory of woff2 fonts")
    fetch_timeout: float = Field(default=10.0, gt=0, description="Outbound fetch timeout in seconds")
    asset_timeout: float = Field(default=5.0, gt=0, description="Font/image settle timeout in seconds")
    server_bind: str = Field(default="0.0.0.0", description="HTTP bind address")  # nosec B104
    server_port: int = Field(default=8080, ge=1, le=65535, description="HTTP port")
    chromium_path: Optional[str] = Field(default=None, description="Explicit Chromium executable")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "RenderSettings":
        """Build settings from a config dict, ignoring unknown keys.

        Raises:
            ConfigurationError: If a known key holds an invalid value
        """
        known = {key: value for key, value in config.items() if key in cls.model_fields}
        try:
            return cls(**known)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


# (env var names, config key, converter)
_ENV_KEYS: list[tuple[tuple[str, ...], str, Any]] = [
    (("INKSCREEN_DEFAULT_TIMEZONE", "DEFAULT_TIMEZONE"), "default_timezone", str),
    (("INKSCREEN_GITHUB_TOKEN", "GITHUB_TOKEN"), "github_token", str),
    (("INKSCREEN_UPLOADS_DIR",), "uploads_dir", Path),
    (("INKSCREEN_DATA_DIR",), "data_dir", Path),
    (("INKSCREEN_FONTS_DIR",), "fonts_dir", Path),
    (("INKSCREEN_FETCH_TIMEOUT",), "fetch_timeout", float),
    (("INKSCREEN_ASSET_TIMEOUT",), "asset_timeout", float),
    (("INKSCREEN_SERVER_BIND", "INKSCREEN_WEB_HOST"), "server_bind", str),
    (("INKSCREEN_SERVER_PORT", "INKSCREEN_WEB_PORT"), "server_port", int),
    (("INKSCREEN_CHROMIUM_PATH",), "chromium_path", str),
]


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        The first variable of each group that is set wins. Values that fail
        conversion are logged and ignored so the default applies.

        Returns:
            Configuration dictionary accepted by RenderSettings.from_config
        """
        cfg: dict[str, Any] = {}

        for env_names, key, convert in _ENV_KEYS:
            for env_name in env_names:
                raw = os.environ.get(env_name)
                if not raw:
                    continue
                try:
                    cfg[key] = convert(raw)
                except ValueError:
                    logger.warning("Invalid %s=%r; ignoring", env_name, raw)
                break

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
