"""Intake operations for the chat front end.

Callers are assumed to have authorized the acting member already. Errors the
member can fix are raised as WatchError subclasses; losing a race against the
scheduler or another member is reported through VoteOutcome and
TransitionResult instead.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ratwatch.config.models import RatWatchConfig
from ratwatch.watches.events import EventKind, WatchEvent, WatchEvents
from ratwatch.watches.leaderboard import (
    AccuserEntry,
    LeaderboardAggregator,
    LeaderboardEntry,
    UserStats,
)
from ratwatch.watches.scheduler import WatchScheduler
from ratwatch.watches.settings import GuildSettingsStore
from ratwatch.watches.store import SqlWatchStore, WatchStore
from ratwatch.watches.tally import VoteTallyEngine
from ratwatch.watches.timeparse import parse_time
from ratwatch.watches.types import (
    AdvanceTimeError,
    Clock,
    DuplicateWatchError,
    GuildWatchSettings,
    TransitionFailure,
    TransitionResult,
    VoteChoice,
    VoteOutcome,
    Watch,
    WatchesDisabledError,
    WatchFilter,
    WatchPage,
    WatchStatus,
)
from ratwatch.watches.validation import validate_advance_time

if TYPE_CHECKING:
    from ratwatch.db.engine import Database

logger = logging.getLogger(__name__)


class WatchService:
    """Creates, votes on, clears, cancels and reports on watches."""

    def __init__(
        self,
        store: WatchStore,
        settings: GuildSettingsStore,
        config: RatWatchConfig | None = None,
        clock: Clock | None = None,
        events: WatchEvents | None = None,
    ):
        self._store = store
        self._settings = settings
        self._config = config or RatWatchConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._events = events or WatchEvents()
        self._tally = VoteTallyEngine(store, clock=self._clock, events=self._events)
        self._leaderboard = LeaderboardAggregator(store)

    @classmethod
    def from_database(
        cls,
        database: Database,
        config: RatWatchConfig | None = None,
        clock: Clock | None = None,
        events: WatchEvents | None = None,
    ) -> WatchService:
        config = config or RatWatchConfig()
        return cls(
            SqlWatchStore(database),
            GuildSettingsStore(database, config.guild_defaults),
            config=config,
            clock=clock,
            events=events,
        )

    @property
    def events(self) -> WatchEvents:
        return self._events

    @property
    def store(self) -> WatchStore:
        return self._store

    @property
    def tally(self) -> VoteTallyEngine:
        return self._tally

    def create_scheduler(self) -> WatchScheduler:
        """Build a scheduler sharing this service's store, clock and events."""
        return WatchScheduler(
            self._store,
            self._settings,
            self._tally,
            self._config.scheduler,
            clock=self._clock,
            events=self._events,
        )

    async def _emit(self, kind: EventKind, watch: Watch, **details) -> None:
        await self._events.emit(WatchEvent(kind, watch, self._clock(), details))

    async def create_watch(
        self,
        guild_id: int,
        accused_user_id: int,
        initiator_user_id: int,
        channel_id: int,
        origin_message_id: int,
        raw_time_text: str,
        custom_message: str | None = None,
    ) -> Watch:
        """Schedule a new watch from the member's time text.

        Raises:
            WatchesDisabledError: Rat Watch is turned off for the guild.
            AdvanceTimeError: The time is too soon or too far out, or the
                custom message is too long.
            TimeParseError: The time text could not be understood.
            DuplicateWatchError: The member already has a watch at that time.
            WatchStoreError: Persistence failed.
        """
        settings = await self._settings.get_or_create(guild_id)
        if not settings.is_enabled:
            raise WatchesDisabledError("Rat Watch is disabled in this server")

        if custom_message is not None:
            custom_message = custom_message.strip() or None
        max_length = self._config.intake.max_custom_message_length
        if custom_message and len(custom_message) > max_length:
            raise AdvanceTimeError(
                f"Custom message cannot be longer than {max_length} characters"
            )

        now = self._clock()
        parsed = parse_time(raw_time_text, settings.timezone, now=now)
        validate_advance_time(
            parsed.utc_time,
            self._config.intake.min_advance_minutes,
            settings.max_advance_hours / 24,
            now=now,
        )

        # Concurrent requests that both pass this lookup are stopped by the
        # store, which raises the same error for the second insert
        if await self._store.find_duplicate(guild_id, accused_user_id, parsed.utc_time):
            raise DuplicateWatchError(
                "A watch for this member at that time already exists"
            )

        watch = await self._store.create(
            Watch(
                id=uuid.uuid4().hex,
                guild_id=guild_id,
                accused_user_id=accused_user_id,
                initiator_user_id=initiator_user_id,
                channel_id=channel_id,
                origin_message_id=origin_message_id,
                scheduled_at=parsed.utc_time,
                created_at=now,
                custom_message=custom_message,
            )
        )
        logger.info(
            "watch_created",
            extra={
                "watch.id": watch.id,
                "guild.id": guild_id,
                "watch.scheduled_at": watch.scheduled_at.isoformat(),
                "parse.kind": parsed.kind.value,
            },
        )
        await self._emit(EventKind.WATCH_CREATED, watch)
        return watch

    async def cast_vote(
        self, watch_id: str, voter_id: int, choice: VoteChoice
    ) -> VoteOutcome:
        return await self._tally.cast(watch_id, voter_id, choice)

    async def clear_early(
        self, watch_id: str, requesting_user_id: int
    ) -> TransitionResult:
        """The accused checks in before the deadline."""
        watch = await self._store.get_by_id(watch_id)
        if watch is None:
            return TransitionResult.failed(
                TransitionFailure.NOT_FOUND, f"Watch {watch_id} not found"
            )
        if watch.status != WatchStatus.PENDING:
            return TransitionResult.failed(
                TransitionFailure.INVALID_STATE,
                f"Only pending watches can be cleared (watch is {watch.status.value})",
                watch,
            )

        now = self._clock()
        changed = await self._store.compare_and_set_status(
            watch_id, WatchStatus.PENDING, WatchStatus.CLEARED_EARLY, {"cleared_at": now}
        )
        if not changed:
            return TransitionResult.failed(
                TransitionFailure.CONFLICT, "Watch changed before it could be cleared"
            )

        cleared = replace(watch, status=WatchStatus.CLEARED_EARLY, cleared_at=now)
        logger.info(
            "watch_cleared",
            extra={"watch.id": watch_id, "watch.cleared_by": requesting_user_id},
        )
        await self._emit(
            EventKind.WATCH_CLEARED, cleared, requesting_user_id=requesting_user_id
        )
        return TransitionResult.success(cleared)

    async def cancel_watch(self, watch_id: str, reason: str) -> TransitionResult:
        """Admin cancellation of a Pending or Voting watch."""
        watch = await self._store.get_by_id(watch_id)
        if watch is None:
            return TransitionResult.failed(
                TransitionFailure.NOT_FOUND, f"Watch {watch_id} not found"
            )
        if watch.is_terminal:
            return TransitionResult.failed(
                TransitionFailure.INVALID_STATE,
                f"Watch is already {watch.status.value}",
                watch,
            )

        changed = await self._store.compare_and_set_status(
            watch_id, watch.status, WatchStatus.CANCELLED, {"cancel_reason": reason}
        )
        if not changed:
            return TransitionResult.failed(
                TransitionFailure.CONFLICT, "Watch changed before it could be cancelled"
            )

        cancelled = replace(
            watch, status=WatchStatus.CANCELLED, cancel_reason=reason
        )
        logger.info(
            "watch_cancelled",
            extra={
                "watch.id": watch_id,
                "watch.previous_status": watch.status.value,
                "watch.cancel_reason": reason,
            },
        )
        await self._emit(EventKind.WATCH_CANCELLED, cancelled, reason=reason)
        return TransitionResult.success(cancelled)

    async def finalize_voting(self, watch_id: str) -> TransitionResult:
        """End voting now instead of waiting for the deadline."""
        return await self._tally.finalize_voting(watch_id)

    async def get_watch(self, watch_id: str) -> Watch | None:
        return await self._store.get_by_id(watch_id)

    async def list_watches(
        self, guild_id: int, filters: WatchFilter | None = None
    ) -> WatchPage:
        return await self._store.list_by_guild(guild_id, filters or WatchFilter())

    async def get_vote_tally(self, watch_id: str) -> tuple[int, int] | None:
        return await self._store.get_vote_tally(watch_id)

    async def has_active_watches(self, guild_id: int) -> bool:
        return await self._store.has_active(guild_id)

    async def recent_activity(self, guild_id: int, limit: int = 10) -> list[Watch]:
        return await self._store.list_recent(guild_id, limit)

    async def get_settings(self, guild_id: int) -> GuildWatchSettings:
        return await self._settings.get_or_create(guild_id)

    async def update_settings(self, guild_id: int, **changes) -> GuildWatchSettings:
        return await self._settings.update_settings(guild_id, **changes)

    async def user_leaderboard(
        self, guild_id: int, limit: int = 10
    ) -> list[LeaderboardEntry]:
        return await self._leaderboard.user_leaderboard(guild_id, limit)

    async def accuser_leaderboard(
        self, guild_id: int, limit: int = 10
    ) -> list[AccuserEntry]:
        return await self._leaderboard.accuser_leaderboard(guild_id, limit)

    async def user_stats(self, guild_id: int, user_id: int) -> UserStats:
        return await self._leaderboard.user_stats(guild_id, user_id)

    async def public_leaderboard(
        self, guild_id: int, limit: int = 10
    ) -> list[LeaderboardEntry] | None:
        """The user leaderboard, or None if the guild keeps it private."""
        settings = await self._settings.get_or_create(guild_id)
        if not settings.public_leaderboard_enabled:
            return None
        return await self._leaderboard.user_leaderboard(guild_id, limit)
