"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ratwatch.config.models import ConfigError, RatWatchConfig
from ratwatch.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.ratwatch/config.toml (or RATWATCH_HOME)
        Path("/etc/ratwatch/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment overrides where the file leaves a value unset."""
    if env_url := os.environ.get("RATWATCH_DATABASE_URL"):
        database = config.setdefault("database", {})
        database.setdefault("url", env_url)

    if env_level := os.environ.get("RATWATCH_LOG_LEVEL"):
        logging_section = config.setdefault("logging", {})
        logging_section.setdefault("level", env_level)

    return config


def load_config(path: Path | None = None) -> RatWatchConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations
            and falls back to built-in defaults when none exists.

    Returns:
        Validated RatWatchConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the file is not valid TOML or fails validation.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    try:
        return RatWatchConfig.model_validate(raw_config)
    except ValidationError as e:
        source = config_path or "defaults"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e


def get_default_config() -> RatWatchConfig:
    """Get a default configuration for development/testing."""
    return RatWatchConfig()
