"""Watch persistence.

WatchStore is the protocol the engine depends on; SqlWatchStore implements it
on the async SQLAlchemy database. Every status change goes through
compare_and_set_status, a single conditional UPDATE, so the loser of a race
sees a mismatch instead of overwriting the winner.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ratwatch.db.models import VoteRecord, WatchRecord
from ratwatch.watches.lifecycle import can_transition
from ratwatch.watches.types import (
    NON_TERMINAL_STATUSES,
    TERMINAL_STATUSES,
    DuplicateWatchError,
    VoteChoice,
    VoteOutcome,
    Watch,
    WatchFilter,
    WatchPage,
    WatchStatus,
    WatchStoreError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from ratwatch.db.engine import Database

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# Columns a status change may set alongside the status itself
TRANSITION_FIELDS = frozenset(
    {"voting_started_at", "voting_ended_at", "cleared_at", "cancel_reason"}
)


@runtime_checkable
class WatchStore(Protocol):
    """Protocol for watch persistence."""

    async def create(self, watch: Watch) -> Watch:
        """Persist a new watch."""
        ...

    async def get_by_id(self, watch_id: str) -> Watch | None:
        """Get a watch by ID."""
        ...

    async def list_non_terminal(
        self,
        guild_id: int | None = None,
        after_id: str | None = None,
        limit: int = 100,
    ) -> list[Watch]:
        """List Pending and Voting watches ordered by ID."""
        ...

    async def list_by_guild(self, guild_id: int, filters: WatchFilter) -> WatchPage:
        """List a guild's watches matching the filters."""
        ...

    async def compare_and_set_status(
        self,
        watch_id: str,
        expected: WatchStatus,
        new: WatchStatus,
        fields: dict[str, Any] | None = None,
        expected_votes: tuple[int, int] | None = None,
    ) -> bool:
        """Change status only if it still equals expected."""
        ...

    async def record_vote(
        self,
        watch_id: str,
        voter_id: int,
        choice: VoteChoice,
        cast_at: datetime,
    ) -> VoteOutcome:
        """Record a vote and bump the matching counter atomically."""
        ...

    async def get_vote_tally(self, watch_id: str) -> tuple[int, int] | None:
        """Get stored (guilty, not_guilty) counters."""
        ...

    async def count_votes(self, watch_id: str) -> tuple[int, int]:
        """Count (guilty, not_guilty) from vote rows."""
        ...

    async def list_terminal(self, guild_id: int) -> list[Watch]:
        """List a guild's terminal watches."""
        ...

    async def find_duplicate(
        self, guild_id: int, accused_user_id: int, scheduled_at: datetime
    ) -> Watch | None:
        """Find a live watch for the same member at the same instant."""
        ...

    async def has_active(self, guild_id: int) -> bool:
        """Whether the guild has any Pending or Voting watch."""
        ...

    async def list_recent(self, guild_id: int, limit: int = 10) -> list[Watch]:
        """List a guild's most recently created watches."""
        ...


def record_to_watch(record: WatchRecord) -> Watch:
    return Watch(
        id=record.id,
        guild_id=record.guild_id,
        accused_user_id=record.accused_user_id,
        initiator_user_id=record.initiator_user_id,
        channel_id=record.channel_id,
        origin_message_id=record.origin_message_id,
        scheduled_at=record.scheduled_at,
        created_at=record.created_at,
        status=WatchStatus(record.status),
        custom_message=record.custom_message,
        guilty_votes=record.guilty_votes,
        not_guilty_votes=record.not_guilty_votes,
        voting_started_at=record.voting_started_at,
        voting_ended_at=record.voting_ended_at,
        cleared_at=record.cleared_at,
        cancel_reason=record.cancel_reason,
    )


def _is_pending_duplicate(error: IntegrityError) -> bool:
    # SQLite names the columns, PostgreSQL names the index
    message = str(error.orig)
    return (
        "uq_watches_pending_accused_instant" in message
        or "watches.accused_user_id" in message
    )


def _status_values(statuses: tuple[WatchStatus, ...] | list[WatchStatus]) -> list[str]:
    return [s.value for s in statuses]


class SqlWatchStore:
    """WatchStore backed by SQLAlchemy."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._db.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.warning(
                "watch_store_failed",
                extra={"store.operation": operation, "error.message": str(e)},
            )
            raise WatchStoreError(f"Failed to {operation.replace('_', ' ')}") from e

    async def create(self, watch: Watch) -> Watch:
        record = WatchRecord(
            id=watch.id,
            guild_id=watch.guild_id,
            channel_id=watch.channel_id,
            accused_user_id=watch.accused_user_id,
            initiator_user_id=watch.initiator_user_id,
            origin_message_id=watch.origin_message_id,
            custom_message=watch.custom_message,
            scheduled_at=watch.scheduled_at,
            created_at=watch.created_at,
            status=watch.status.value,
            guilty_votes=watch.guilty_votes,
            not_guilty_votes=watch.not_guilty_votes,
            voting_started_at=watch.voting_started_at,
            voting_ended_at=watch.voting_ended_at,
            cleared_at=watch.cleared_at,
            cancel_reason=watch.cancel_reason,
        )
        async with self._session("create_watch") as session:
            session.add(record)
            try:
                await session.flush()
            except IntegrityError as e:
                if not _is_pending_duplicate(e):
                    raise
                raise DuplicateWatchError(
                    "A watch for this member at that time already exists"
                ) from e
            created = record_to_watch(record)
        return created

    async def get_by_id(self, watch_id: str) -> Watch | None:
        async with self._session("get_watch") as session:
            record = await session.get(WatchRecord, watch_id)
            return record_to_watch(record) if record else None

    async def list_non_terminal(
        self,
        guild_id: int | None = None,
        after_id: str | None = None,
        limit: int = 100,
    ) -> list[Watch]:
        stmt = select(WatchRecord).where(
            WatchRecord.status.in_(_status_values(NON_TERMINAL_STATUSES))
        )
        if guild_id is not None:
            stmt = stmt.where(WatchRecord.guild_id == guild_id)
        if after_id is not None:
            stmt = stmt.where(WatchRecord.id > after_id)
        stmt = stmt.order_by(WatchRecord.id).limit(limit)

        async with self._session("list_non_terminal") as session:
            result = await session.execute(stmt)
            return [record_to_watch(r) for r in result.scalars()]

    async def list_by_guild(self, guild_id: int, filters: WatchFilter) -> WatchPage:
        stmt = select(WatchRecord).where(WatchRecord.guild_id == guild_id)
        if filters.statuses:
            stmt = stmt.where(WatchRecord.status.in_(_status_values(filters.statuses)))
        if filters.start_date is not None:
            stmt = stmt.where(WatchRecord.scheduled_at >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(WatchRecord.scheduled_at <= filters.end_date)
        if filters.accused_user_id is not None:
            stmt = stmt.where(WatchRecord.accused_user_id == filters.accused_user_id)
        if filters.initiator_user_id is not None:
            stmt = stmt.where(
                WatchRecord.initiator_user_id == filters.initiator_user_id
            )
        if filters.min_vote_count is not None:
            stmt = stmt.where(
                WatchRecord.guilty_votes + WatchRecord.not_guilty_votes
                >= filters.min_vote_count
            )
        if filters.keyword:
            stmt = stmt.where(
                WatchRecord.custom_message.icontains(filters.keyword, autoescape=True)
            )

        page = max(filters.page, 1)
        page_size = min(max(filters.page_size, 1), MAX_PAGE_SIZE)
        count_stmt = select(func.count()).select_from(stmt.subquery())
        page_stmt = (
            stmt.order_by(WatchRecord.scheduled_at.desc(), WatchRecord.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        async with self._session("list_watches") as session:
            total = (await session.execute(count_stmt)).scalar_one()
            result = await session.execute(page_stmt)
            items = [record_to_watch(r) for r in result.scalars()]
        return WatchPage(items=items, total=total, page=page, page_size=page_size)

    async def compare_and_set_status(
        self,
        watch_id: str,
        expected: WatchStatus,
        new: WatchStatus,
        fields: dict[str, Any] | None = None,
        expected_votes: tuple[int, int] | None = None,
    ) -> bool:
        if not can_transition(expected, new):
            raise ValueError(f"Illegal transition {expected.value} -> {new.value}")
        fields = fields or {}
        unknown = set(fields) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Cannot set fields on transition: {sorted(unknown)}")

        stmt = update(WatchRecord).where(
            WatchRecord.id == watch_id,
            WatchRecord.status == expected.value,
        )
        if expected_votes is not None:
            guilty, not_guilty = expected_votes
            stmt = stmt.where(
                WatchRecord.guilty_votes == guilty,
                WatchRecord.not_guilty_votes == not_guilty,
            )
        stmt = stmt.values(status=new.value, **fields).execution_options(
            synchronize_session=False
        )

        async with self._session("update_status") as session:
            result = await session.execute(stmt)
            changed = result.rowcount == 1

        logger.debug(
            "watch_status_cas",
            extra={
                "watch.id": watch_id,
                "watch.expected": expected.value,
                "watch.new": new.value,
                "watch.changed": changed,
            },
        )
        return changed

    async def record_vote(
        self,
        watch_id: str,
        voter_id: int,
        choice: VoteChoice,
        cast_at: datetime,
    ) -> VoteOutcome:
        counter = (
            "guilty_votes" if choice == VoteChoice.GUILTY else "not_guilty_votes"
        )
        # The guarded increment runs first so it takes the write lock before
        # any read, and so a watch finalized meanwhile is never incremented
        increment = (
            update(WatchRecord)
            .where(
                WatchRecord.id == watch_id,
                WatchRecord.status == WatchStatus.VOTING.value,
            )
            .values({counter: getattr(WatchRecord, counter) + 1})
            .execution_options(synchronize_session=False)
        )

        async with self._session("record_vote") as session:
            result = await session.execute(increment)
            if result.rowcount == 0:
                return await self._explain_rejected_vote(session, watch_id, voter_id)

            session.add(
                VoteRecord(
                    watch_id=watch_id,
                    voter_id=voter_id,
                    choice=choice.value,
                    cast_at=cast_at,
                )
            )
            try:
                await session.flush()
            except IntegrityError:
                # Undo the increment along with the duplicate insert
                await session.rollback()
                return VoteOutcome.ALREADY_VOTED
            return VoteOutcome.RECORDED

    async def _explain_rejected_vote(
        self, session: AsyncSession, watch_id: str, voter_id: int
    ) -> VoteOutcome:
        existing = await session.execute(
            select(VoteRecord.id).where(
                VoteRecord.watch_id == watch_id,
                VoteRecord.voter_id == voter_id,
            )
        )
        if existing.first() is not None:
            return VoteOutcome.ALREADY_VOTED
        status = (
            await session.execute(
                select(WatchRecord.status).where(WatchRecord.id == watch_id)
            )
        ).scalar_one_or_none()
        if status is None:
            return VoteOutcome.NOT_FOUND
        return VoteOutcome.NOT_IN_VOTING_STATE

    async def get_vote_tally(self, watch_id: str) -> tuple[int, int] | None:
        stmt = select(WatchRecord.guilty_votes, WatchRecord.not_guilty_votes).where(
            WatchRecord.id == watch_id
        )
        async with self._session("get_vote_tally") as session:
            row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return row.guilty_votes, row.not_guilty_votes

    async def count_votes(self, watch_id: str) -> tuple[int, int]:
        stmt = (
            select(VoteRecord.choice, func.count())
            .where(VoteRecord.watch_id == watch_id)
            .group_by(VoteRecord.choice)
        )
        async with self._session("count_votes") as session:
            rows = (await session.execute(stmt)).all()
        counts = {choice: total for choice, total in rows}
        return (
            counts.get(VoteChoice.GUILTY.value, 0),
            counts.get(VoteChoice.NOT_GUILTY.value, 0),
        )

    async def list_terminal(self, guild_id: int) -> list[Watch]:
        stmt = (
            select(WatchRecord)
            .where(
                WatchRecord.guild_id == guild_id,
                WatchRecord.status.in_(_status_values(TERMINAL_STATUSES)),
            )
            .order_by(WatchRecord.scheduled_at)
        )
        async with self._session("list_terminal") as session:
            result = await session.execute(stmt)
            return [record_to_watch(r) for r in result.scalars()]

    async def find_duplicate(
        self, guild_id: int, accused_user_id: int, scheduled_at: datetime
    ) -> Watch | None:
        stmt = (
            select(WatchRecord)
            .where(
                WatchRecord.guild_id == guild_id,
                WatchRecord.accused_user_id == accused_user_id,
                WatchRecord.scheduled_at == scheduled_at,
                WatchRecord.status != WatchStatus.CANCELLED.value,
            )
            .limit(1)
        )
        async with self._session("find_duplicate") as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
            return record_to_watch(record) if record else None

    async def has_active(self, guild_id: int) -> bool:
        stmt = (
            select(WatchRecord.id)
            .where(
                WatchRecord.guild_id == guild_id,
                WatchRecord.status.in_(_status_values(NON_TERMINAL_STATUSES)),
            )
            .limit(1)
        )
        async with self._session("has_active") as session:
            return (await session.execute(stmt)).first() is not None

    async def list_recent(self, guild_id: int, limit: int = 10) -> list[Watch]:
        stmt = (
            select(WatchRecord)
            .where(WatchRecord.guild_id == guild_id)
            .order_by(WatchRecord.created_at.desc(), WatchRecord.id)
            .limit(limit)
        )
        async with self._session("list_recent") as session:
            result = await session.execute(stmt)
            return [record_to_watch(r) for r in result.scalars()]

