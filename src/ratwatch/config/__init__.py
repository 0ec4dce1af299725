"""Configuration module."""

from ratwatch.config.loader import get_default_config, load_config
from ratwatch.config.models import (
    ConfigError,
    DatabaseConfig,
    GuildDefaultsConfig,
    IntakeConfig,
    LoggingConfig,
    RatWatchConfig,
    SchedulerConfig,
)
from ratwatch.config.paths import (
    get_config_path,
    get_database_path,
    get_logs_path,
    get_ratwatch_home,
)

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "GuildDefaultsConfig",
    "IntakeConfig",
    "LoggingConfig",
    "RatWatchConfig",
    "SchedulerConfig",
    "get_config_path",
    "get_database_path",
    "get_default_config",
    "get_logs_path",
    "get_ratwatch_home",
    "load_config",
]
