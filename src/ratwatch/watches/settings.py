"""Per-guild Rat Watch settings storage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ratwatch.config.models import GuildDefaultsConfig
from ratwatch.db.models import GuildSettingsRecord
from ratwatch.watches.types import GuildWatchSettings, WatchStoreError

if TYPE_CHECKING:
    from ratwatch.db.engine import Database

logger = logging.getLogger(__name__)


class GuildSettingsUpdate(BaseModel):
    """Validated partial update of a guild's settings."""

    model_config = ConfigDict(extra="forbid")

    timezone: str | None = None
    max_advance_hours: int | None = Field(default=None, ge=1, le=24 * 365)
    voting_duration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)
    is_enabled: bool | None = None
    public_leaderboard_enabled: bool | None = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


def _to_settings(record: GuildSettingsRecord) -> GuildWatchSettings:
    return GuildWatchSettings(
        guild_id=record.guild_id,
        timezone=record.timezone,
        max_advance_hours=record.max_advance_hours,
        voting_duration_minutes=record.voting_duration_minutes,
        is_enabled=record.is_enabled,
        public_leaderboard_enabled=record.public_leaderboard_enabled,
    )


class GuildSettingsStore:
    """Reads and updates guild settings, creating rows lazily from defaults."""

    def __init__(
        self, database: Database, defaults: GuildDefaultsConfig | None = None
    ) -> None:
        self._db = database
        self._defaults = defaults or GuildDefaultsConfig()

    @property
    def defaults(self) -> GuildDefaultsConfig:
        return self._defaults

    def _new_record(self, guild_id: int) -> GuildSettingsRecord:
        return GuildSettingsRecord(
            guild_id=guild_id,
            timezone=self._defaults.timezone,
            max_advance_hours=self._defaults.max_advance_hours,
            voting_duration_minutes=self._defaults.voting_duration_minutes,
            is_enabled=self._defaults.is_enabled,
            public_leaderboard_enabled=self._defaults.public_leaderboard_enabled,
        )

    async def get_or_create(self, guild_id: int) -> GuildWatchSettings:
        """Get a guild's settings, inserting defaults on first use."""
        try:
            async with self._db.session() as session:
                record = await session.get(GuildSettingsRecord, guild_id)
                if record is not None:
                    return _to_settings(record)
                record = self._new_record(guild_id)
                session.add(record)
                await session.flush()
                logger.info("guild_settings_created", extra={"guild.id": guild_id})
                return _to_settings(record)
        except IntegrityError:
            # Another caller created the row first
            return await self.get_or_create(guild_id)
        except SQLAlchemyError as e:
            raise WatchStoreError("Failed to load guild settings") from e

    async def update_settings(self, guild_id: int, **changes) -> GuildWatchSettings:
        """Apply a partial update.

        Raises:
            pydantic.ValidationError: If a field is unknown or out of range.
        """
        update = GuildSettingsUpdate(**changes)
        values = update.model_dump(exclude_unset=True, exclude_none=True)

        await self.get_or_create(guild_id)
        try:
            async with self._db.session() as session:
                record = await session.get(GuildSettingsRecord, guild_id)
                for key, value in values.items():
                    setattr(record, key, value)
                await session.flush()
                settings = _to_settings(record)
        except SQLAlchemyError as e:
            raise WatchStoreError("Failed to update guild settings") from e

        logger.info(
            "guild_settings_updated",
            extra={"guild.id": guild_id, "settings.fields": sorted(values)},
        )
        return settings

    async def get_voting_durations(self, guild_ids: set[int]) -> dict[int, int]:
        """Voting duration in minutes per guild, defaulting for guilds without a row."""
        durations = dict.fromkeys(guild_ids, self._defaults.voting_duration_minutes)
        if not guild_ids:
            return durations
        stmt = select(
            GuildSettingsRecord.guild_id, GuildSettingsRecord.voting_duration_minutes
        ).where(GuildSettingsRecord.guild_id.in_(guild_ids))
        try:
            async with self._db.session() as session:
                rows = (await session.execute(stmt)).all()
                for guild_id, minutes in rows:
                    durations[guild_id] = minutes
        except SQLAlchemyError as e:
            raise WatchStoreError("Failed to load voting durations") from e
        return durations
