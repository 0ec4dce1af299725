"""Configuration models using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from ratwatch.config.paths import get_database_path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(Exception):
    """Configuration error."""

    pass


class DatabaseConfig(BaseModel):
    """Configuration for the watch database.

    `url` takes precedence over `path` when both are set.
    """

    path: Path = Field(default_factory=get_database_path)
    url: str | None = None

    def resolve_url(self) -> str:
        if self.url:
            return self.url
        return f"sqlite+aiosqlite:///{self.path}"


class SchedulerConfig(BaseModel):
    """Configuration for the background watch scheduler."""

    check_interval_seconds: float = 10.0
    # Overdue pending watches older than this are expired on recovery ticks
    grace_window_minutes: float = 5.0
    # None = three check intervals
    recovery_gap_seconds: float | None = None
    max_concurrent_executions: int = 5
    execution_timeout_seconds: float = 30.0
    page_size: int = 100
    heartbeat_every: int = 60

    @field_validator(
        "check_interval_seconds",
        "grace_window_minutes",
        "execution_timeout_seconds",
        "recovery_gap_seconds",
    )
    @classmethod
    def _positive_float(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("max_concurrent_executions", "page_size", "heartbeat_every")
    @classmethod
    def _positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @model_validator(mode="after")
    def _recovery_gap_covers_interval(self) -> "SchedulerConfig":
        # A gap shorter than one interval would make every tick a recovery tick
        gap = self.recovery_gap_seconds
        if gap is not None and gap < self.check_interval_seconds:
            raise ValueError(
                "recovery_gap_seconds must be at least check_interval_seconds"
            )
        return self

    @property
    def effective_recovery_gap_seconds(self) -> float:
        if self.recovery_gap_seconds is not None:
            return self.recovery_gap_seconds
        return self.check_interval_seconds * 3


class GuildDefaultsConfig(BaseModel):
    """Settings applied to guilds that have not configured Rat Watch yet."""

    timezone: str = "UTC"
    max_advance_hours: int = 24
    voting_duration_minutes: int = 5
    is_enabled: bool = True
    public_leaderboard_enabled: bool = False

    @field_validator("max_advance_hours", "voting_duration_minutes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


class IntakeConfig(BaseModel):
    """Limits applied when a watch is created."""

    min_advance_minutes: float = 1.0
    max_custom_message_length: int = 200


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: str = "INFO"
    log_to_file: bool = False

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return level


class RatWatchConfig(BaseModel):
    """Root configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    guild_defaults: GuildDefaultsConfig = Field(default_factory=GuildDefaultsConfig)
    intake: IntakeConfig = Field(default_factory=IntakeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
