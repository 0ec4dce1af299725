"""Tests for SQL watch persistence."""

from datetime import UTC, datetime, timedelta

import pytest

from ratwatch.watches.store import SqlWatchStore, WatchStore
from ratwatch.watches.types import (
    DuplicateWatchError,
    VoteChoice,
    VoteOutcome,
    WatchFilter,
    WatchStatus,
    WatchStoreError,
)
from tests.conftest import GUILD_ID, make_watch

NOW = datetime(2025, 1, 10, 15, 0, tzinfo=UTC)


class TestCreateAndGet:
    """Tests for creating and loading watches."""

    def test_implements_protocol(self, store: SqlWatchStore):
        assert isinstance(store, WatchStore)

    async def test_round_trip(self, store: SqlWatchStore):
        watch = make_watch(scheduled_at=NOW, custom_message="Touch grass")
        created = await store.create(watch)
        assert created == watch

        loaded = await store.get_by_id(watch.id)
        assert loaded == watch
        assert loaded.scheduled_at.tzinfo is not None
        assert loaded.scheduled_at.utcoffset() == timedelta(0)

    async def test_non_utc_input_is_normalized(self, store: SqlWatchStore):
        from zoneinfo import ZoneInfo

        local = datetime(2025, 1, 11, 15, 0, tzinfo=ZoneInfo("America/New_York"))
        watch = make_watch(scheduled_at=local)
        await store.create(watch)

        loaded = await store.get_by_id(watch.id)
        assert loaded.scheduled_at == datetime(2025, 1, 11, 20, 0, tzinfo=UTC)
        assert loaded.scheduled_at.tzinfo == UTC

    async def test_missing(self, store: SqlWatchStore):
        assert await store.get_by_id("nope") is None

    async def test_naive_datetime_rejected(self, store: SqlWatchStore):
        watch = make_watch(scheduled_at=NOW)
        watch.scheduled_at = datetime(2025, 1, 10, 15, 0)
        with pytest.raises(WatchStoreError):
            await store.create(watch)

    async def test_duplicate_id_raises_store_error(self, store: SqlWatchStore):
        watch = make_watch(scheduled_at=NOW, status=WatchStatus.GUILTY)
        await store.create(watch)
        with pytest.raises(WatchStoreError):
            await store.create(watch)


class TestPendingUniqueness:
    """Tests for the one-pending-watch-per-member-per-instant rule."""

    async def test_second_pending_watch_rejected(self, store: SqlWatchStore):
        """Inserting a second pending watch for the same member and instant fails."""
        first = await store.create(make_watch(scheduled_at=NOW))
        with pytest.raises(DuplicateWatchError):
            await store.create(make_watch(scheduled_at=NOW))

        page = await store.list_by_guild(GUILD_ID, WatchFilter())
        assert [w.id for w in page.items] == [first.id]

    async def test_other_members_and_instants_allowed(self, store: SqlWatchStore):
        """Only the same member at the same instant collides."""
        await store.create(make_watch(scheduled_at=NOW))
        await store.create(make_watch(scheduled_at=NOW, accused_user_id=9))
        await store.create(make_watch(scheduled_at=NOW + timedelta(minutes=1)))
        await store.create(make_watch(scheduled_at=NOW, guild_id=999))

        page = await store.list_by_guild(GUILD_ID, WatchFilter())
        assert page.total == 3

    async def test_settled_watch_does_not_block(self, store: SqlWatchStore):
        """A watch that already left pending frees the slot."""
        first = await store.create(make_watch(scheduled_at=NOW))
        await store.compare_and_set_status(
            first.id, WatchStatus.PENDING, WatchStatus.CANCELLED
        )
        second = await store.create(make_watch(scheduled_at=NOW))
        assert second.status == WatchStatus.PENDING


class TestCompareAndSet:
    """Tests for conditional status updates."""

    async def test_success_sets_fields(self, store: SqlWatchStore):
        watch = await store.create(make_watch(scheduled_at=NOW))
        changed = await store.compare_and_set_status(
            watch.id,
            WatchStatus.PENDING,
            WatchStatus.VOTING,
            {"voting_started_at": NOW},
        )
        assert changed is True

        loaded = await store.get_by_id(watch.id)
        assert loaded.status == WatchStatus.VOTING
        assert loaded.voting_started_at == NOW

    async def test_mismatch_is_noop(self, store: SqlWatchStore):
        watch = await store.create(make_watch(scheduled_at=NOW))
        await store.compare_and_set_status(
            watch.id, WatchStatus.PENDING, WatchStatus.CANCELLED
        )

        changed = await store.compare_and_set_status(
            watch.id,
            WatchStatus.PENDING,
            WatchStatus.VOTING,
            {"voting_started_at": NOW},
        )
        assert changed is False
        loaded = await store.get_by_id(watch.id)
        assert loaded.status == WatchStatus.CANCELLED
        assert loaded.voting_started_at is None

    async def test_missing_watch(self, store: SqlWatchStore):
        assert not await store.compare_and_set_status(
            "nope", WatchStatus.PENDING, WatchStatus.VOTING
        )

    async def test_expected_votes_must_match(self, store: SqlWatchStore):
        watch = await store.create(
            make_watch(
                scheduled_at=NOW,
                status=WatchStatus.VOTING,
                voting_started_at=NOW,
                guilty_votes=2,
                not_guilty_votes=1,
            )
        )
        assert not await store.compare_and_set_status(
            watch.id, WatchStatus.VOTING, WatchStatus.GUILTY, expected_votes=(1, 1)
        )
        assert await store.compare_and_set_status(
            watch.id, WatchStatus.VOTING, WatchStatus.GUILTY, expected_votes=(2, 1)
        )

    async def test_illegal_transition_rejected(self, store: SqlWatchStore):
        watch = await store.create(make_watch(scheduled_at=NOW))
        with pytest.raises(ValueError, match="Illegal transition"):
            await store.compare_and_set_status(
                watch.id, WatchStatus.PENDING, WatchStatus.GUILTY
            )

    async def test_unknown_field_rejected(self, store: SqlWatchStore):
        watch = await store.create(make_watch(scheduled_at=NOW))
        with pytest.raises(ValueError, match="Cannot set fields"):
            await store.compare_and_set_status(
                watch.id,
                WatchStatus.PENDING,
                WatchStatus.VOTING,
                {"guilty_votes": 10},
            )


class TestRecordVote:
    """Tests for vote recording."""

    async def _voting_watch(self, store: SqlWatchStore):
        return await store.create(
            make_watch(
                scheduled_at=NOW, status=WatchStatus.VOTING, voting_started_at=NOW
            )
        )

    async def test_records_and_counts(self, store: SqlWatchStore):
        watch = await self._voting_watch(store)
        assert (
            await store.record_vote(watch.id, 10, VoteChoice.GUILTY, NOW)
            == VoteOutcome.RECORDED
        )
        assert (
            await store.record_vote(watch.id, 11, VoteChoice.NOT_GUILTY, NOW)
            == VoteOutcome.RECORDED
        )
        assert await store.get_vote_tally(watch.id) == (1, 1)
        assert await store.count_votes(watch.id) == (1, 1)

    async def test_repeat_vote(self, store: SqlWatchStore):
        watch = await self._voting_watch(store)
        await store.record_vote(watch.id, 10, VoteChoice.GUILTY, NOW)

        outcome = await store.record_vote(watch.id, 10, VoteChoice.NOT_GUILTY, NOW)
        assert outcome == VoteOutcome.ALREADY_VOTED
        assert await store.get_vote_tally(watch.id) == (1, 0)
        assert await store.count_votes(watch.id) == (1, 0)

    async def test_pending_watch(self, store: SqlWatchStore):
        watch = await store.create(make_watch(scheduled_at=NOW))
        outcome = await store.record_vote(watch.id, 10, VoteChoice.GUILTY, NOW)
        assert outcome == VoteOutcome.NOT_IN_VOTING_STATE
        assert await store.get_vote_tally(watch.id) == (0, 0)

    async def test_repeat_vote_after_verdict(self, store: SqlWatchStore):
        watch = await self._voting_watch(store)
        await store.record_vote(watch.id, 10, VoteChoice.GUILTY, NOW)
        await store.compare_and_set_status(
            watch.id, WatchStatus.VOTING, WatchStatus.GUILTY
        )

        assert (
            await store.record_vote(watch.id, 10, VoteChoice.GUILTY, NOW)
            == VoteOutcome.ALREADY_VOTED
        )
        assert (
            await store.record_vote(watch.id, 11, VoteChoice.GUILTY, NOW)
            == VoteOutcome.NOT_IN_VOTING_STATE
        )

    async def test_missing_watch(self, store: SqlWatchStore):
        outcome = await store.record_vote("nope", 10, VoteChoice.GUILTY, NOW)
        assert outcome == VoteOutcome.NOT_FOUND
        assert await store.get_vote_tally("nope") is None


class TestQueries:
    """Tests for listing and lookup queries."""

    async def test_list_non_terminal_pages_by_id(self, store: SqlWatchStore):
        for i in range(5):
            await store.create(
                make_watch(id=f"{i:032x}", scheduled_at=NOW, accused_user_id=i)
            )
        await store.create(
            make_watch(id="f" * 32, scheduled_at=NOW, status=WatchStatus.GUILTY)
        )

        first = await store.list_non_terminal(limit=3)
        assert [w.id for w in first] == [f"{i:032x}" for i in range(3)]
        rest = await store.list_non_terminal(after_id=first[-1].id, limit=3)
        assert [w.id for w in rest] == [f"{i:032x}" for i in range(3, 5)]

    async def test_list_non_terminal_by_guild(self, store: SqlWatchStore):
        await store.create(make_watch(scheduled_at=NOW))
        await store.create(make_watch(scheduled_at=NOW, guild_id=999))
        watches = await store.list_non_terminal(guild_id=999)
        assert [w.guild_id for w in watches] == [999]

    async def test_list_by_guild_filters(self, store: SqlWatchStore):
        await store.create(
            make_watch(
                scheduled_at=NOW,
                accused_user_id=1,
                status=WatchStatus.GUILTY,
                guilty_votes=3,
                not_guilty_votes=1,
                custom_message="Go to the GYM",
            )
        )
        await store.create(
            make_watch(
                scheduled_at=NOW + timedelta(hours=1),
                accused_user_id=2,
                custom_message="homework 100%",
            )
        )
        await store.create(
            make_watch(scheduled_at=NOW + timedelta(days=2), accused_user_id=1)
        )
        await store.create(make_watch(scheduled_at=NOW, guild_id=999))

        page = await store.list_by_guild(GUILD_ID, WatchFilter())
        assert page.total == 3
        assert page.items[0].scheduled_at == NOW + timedelta(days=2)

        page = await store.list_by_guild(
            GUILD_ID, WatchFilter(statuses=[WatchStatus.GUILTY])
        )
        assert page.total == 1

        page = await store.list_by_guild(GUILD_ID, WatchFilter(accused_user_id=1))
        assert page.total == 2

        page = await store.list_by_guild(GUILD_ID, WatchFilter(min_vote_count=4))
        assert page.total == 1

        page = await store.list_by_guild(GUILD_ID, WatchFilter(keyword="gym"))
        assert [w.custom_message for w in page.items] == ["Go to the GYM"]

        # LIKE wildcards in the keyword are matched literally
        page = await store.list_by_guild(GUILD_ID, WatchFilter(keyword="100%"))
        assert page.total == 1

        page = await store.list_by_guild(
            GUILD_ID,
            WatchFilter(start_date=NOW + timedelta(minutes=30), end_date=NOW + timedelta(days=1)),
        )
        assert page.total == 1

    async def test_list_by_guild_paging(self, store: SqlWatchStore):
        for i in range(7):
            await store.create(make_watch(scheduled_at=NOW + timedelta(minutes=i)))

        page = await store.list_by_guild(GUILD_ID, WatchFilter(page=2, page_size=3))
        assert page.total == 7
        assert page.total_pages == 3
        assert len(page.items) == 3
        assert page.items[0].scheduled_at == NOW + timedelta(minutes=3)

    async def test_find_duplicate_ignores_cancelled(self, store: SqlWatchStore):
        watch = await store.create(make_watch(scheduled_at=NOW, accused_user_id=5))
        assert (await store.find_duplicate(GUILD_ID, 5, NOW)).id == watch.id
        assert await store.find_duplicate(GUILD_ID, 6, NOW) is None

        await store.compare_and_set_status(
            watch.id, WatchStatus.PENDING, WatchStatus.CANCELLED
        )
        assert await store.find_duplicate(GUILD_ID, 5, NOW) is None

    async def test_has_active(self, store: SqlWatchStore):
        assert not await store.has_active(GUILD_ID)
        watch = await store.create(make_watch(scheduled_at=NOW))
        assert await store.has_active(GUILD_ID)
        await store.compare_and_set_status(
            watch.id, WatchStatus.PENDING, WatchStatus.EXPIRED
        )
        assert not await store.has_active(GUILD_ID)

    async def test_list_recent_newest_first(self, store: SqlWatchStore):
        for i in range(3):
            await store.create(
                make_watch(
                    scheduled_at=NOW + timedelta(hours=5),
                    created_at=NOW + timedelta(minutes=i),
                    accused_user_id=i,
                )
            )
        recent = await store.list_recent(GUILD_ID, limit=2)
        assert [w.accused_user_id for w in recent] == [2, 1]

    async def test_list_terminal(self, store: SqlWatchStore):
        await store.create(make_watch(scheduled_at=NOW))
        await store.create(make_watch(scheduled_at=NOW, status=WatchStatus.CANCELLED))
        await store.create(make_watch(scheduled_at=NOW, status=WatchStatus.GUILTY))
        terminal = await store.list_terminal(GUILD_ID)
        assert {w.status for w in terminal} == {
            WatchStatus.CANCELLED,
            WatchStatus.GUILTY,
        }
