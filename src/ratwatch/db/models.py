"""SQLAlchemy ORM models."""

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC and hands back timezone-aware UTC datetimes.

    SQLite drops tzinfo, so values are normalized to UTC on the way in and
    tagged with UTC on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetimes cannot be stored; attach a timezone")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""


class WatchRecord(Base):
    """A scheduled accountability watch.

    Rows are never deleted; terminal watches feed the leaderboards.
    """

    __tablename__ = "watches"
    __table_args__ = (
        Index("ix_watches_guild_scheduled_status", "guild_id", "scheduled_at", "status"),
        Index("ix_watches_guild_accused", "guild_id", "accused_user_id"),
        # At most one pending watch per member per instant
        Index(
            "uq_watches_pending_accused_instant",
            "guild_id",
            "accused_user_id",
            "scheduled_at",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    accused_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    initiator_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    origin_message_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    custom_message: Mapped[str | None] = mapped_column(String(200), nullable=True)
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    guilty_votes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    not_guilty_votes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    voting_started_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    voting_ended_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class VoteRecord(Base):
    """One voter's choice on one watch."""

    __tablename__ = "watch_votes"
    __table_args__ = (
        UniqueConstraint("watch_id", "voter_id", name="uq_watch_votes_watch_voter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    watch_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("watches.id"), nullable=False, index=True
    )
    voter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    choice: Mapped[str] = mapped_column(String(16), nullable=False)
    cast_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )


class GuildSettingsRecord(Base):
    """Per-guild Rat Watch settings."""

    __tablename__ = "guild_watch_settings"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    timezone: Mapped[str] = mapped_column(String(100), default="UTC", nullable=False)
    max_advance_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    voting_duration_minutes: Mapped[int] = mapped_column(
        Integer, default=5, nullable=False
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    public_leaderboard_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False
    )
