"""Leaderboards computed on demand from terminal watches.

Nothing here is persisted. Cancelled watches were voided by an admin and are
left out of every count.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from ratwatch.watches.store import WatchStore
from ratwatch.watches.types import Watch, WatchStatus


@dataclass
class UserWatchStats:
    times_watched: int = 0
    times_guilty: int = 0
    last_activity: datetime | None = None

    @property
    def guilty_rate(self) -> float:
        if self.times_watched == 0:
            return 0.0
        return self.times_guilty / self.times_watched

    def add(self, watch: Watch) -> None:
        self.times_watched += 1
        if watch.status == WatchStatus.GUILTY:
            self.times_guilty += 1
        if self.last_activity is None or watch.resolved_at > self.last_activity:
            self.last_activity = watch.resolved_at


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: int
    stats: UserWatchStats


@dataclass
class AccuserEntry:
    rank: int
    user_id: int
    watches_created: int
    guilty_verdicts: int

    @property
    def guilty_rate(self) -> float:
        if self.watches_created == 0:
            return 0.0
        return self.guilty_verdicts / self.watches_created


@dataclass
class UserStats:
    """One member's record, with their most recent convictions."""

    user_id: int
    stats: UserWatchStats
    recent_guilty: list[Watch] = field(default_factory=list)


def _counted(watches: list[Watch]) -> list[Watch]:
    return [w for w in watches if w.status != WatchStatus.CANCELLED]


class LeaderboardAggregator:
    def __init__(self, store: WatchStore):
        self._store = store

    async def user_leaderboard(
        self, guild_id: int, limit: int = 10
    ) -> list[LeaderboardEntry]:
        """Members with at least one guilty verdict, most convicted first."""
        by_user: dict[int, UserWatchStats] = defaultdict(UserWatchStats)
        for watch in _counted(await self._store.list_terminal(guild_id)):
            by_user[watch.accused_user_id].add(watch)

        ranked = sorted(
            ((user_id, stats) for user_id, stats in by_user.items() if stats.times_guilty),
            key=lambda item: (
                -item[1].times_guilty,
                -item[1].guilty_rate,
                -(item[1].last_activity.timestamp() if item[1].last_activity else 0),
                item[0],
            ),
        )
        return [
            LeaderboardEntry(rank=i, user_id=user_id, stats=stats)
            for i, (user_id, stats) in enumerate(ranked[:limit], start=1)
        ]

    async def accuser_leaderboard(
        self, guild_id: int, limit: int = 10
    ) -> list[AccuserEntry]:
        """Members whose accusations most often ended in a guilty verdict."""
        created: dict[int, int] = defaultdict(int)
        convictions: dict[int, int] = defaultdict(int)
        for watch in _counted(await self._store.list_terminal(guild_id)):
            created[watch.initiator_user_id] += 1
            if watch.status == WatchStatus.GUILTY:
                convictions[watch.initiator_user_id] += 1

        entries = [
            AccuserEntry(
                rank=0,
                user_id=user_id,
                watches_created=count,
                guilty_verdicts=convictions[user_id],
            )
            for user_id, count in created.items()
        ]
        entries.sort(
            key=lambda e: (-e.guilty_verdicts, -e.guilty_rate, -e.watches_created, e.user_id)
        )
        for i, entry in enumerate(entries, start=1):
            entry.rank = i
        return entries[:limit]

    async def user_stats(self, guild_id: int, user_id: int, recent: int = 5) -> UserStats:
        stats = UserWatchStats()
        guilty: list[Watch] = []
        for watch in _counted(await self._store.list_terminal(guild_id)):
            if watch.accused_user_id != user_id:
                continue
            stats.add(watch)
            if watch.status == WatchStatus.GUILTY:
                guilty.append(watch)

        guilty.sort(key=lambda w: w.resolved_at, reverse=True)
        return UserStats(user_id=user_id, stats=stats, recent_guilty=guilty[:recent])
