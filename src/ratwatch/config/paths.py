"""Centralized path management for Rat Watch.

State (config, database, logs) lives under one base directory, which can be
overridden with the RATWATCH_HOME environment variable.

Default location: ~/.ratwatch
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "RATWATCH_HOME"


@lru_cache(maxsize=1)
def get_ratwatch_home() -> Path:
    """Get the base directory for all Rat Watch data.

    Resolution order:
    1. RATWATCH_HOME environment variable (if set)
    2. ~/.ratwatch
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".ratwatch"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_ratwatch_home() / "config.toml"


def get_database_path() -> Path:
    """Get the default SQLite database path."""
    return get_ratwatch_home() / "ratwatch.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_ratwatch_home() / "logs"


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for display."""
    return {
        "home": get_ratwatch_home(),
        "config": get_config_path(),
        "database": get_database_path(),
        "logs": get_logs_path(),
    }
