"""Watch subsystem: scheduling, voting and verdicts.

Public API:
- parse_time: Natural-language time text to a UTC instant
- validate_advance_time: Allowed scheduling window
- decide: Pure lifecycle decisions
- WatchStore / SqlWatchStore: Persistence with conditional status updates
- GuildSettingsStore: Per-guild settings
- VoteTallyEngine: Vote casting and verdicts
- WatchScheduler: Polling loop that advances due watches
- LeaderboardAggregator: On-demand rankings
- WatchService: Intake operations
- WatchEvents: State-change notifications
"""

from ratwatch.watches.events import EventKind, WatchEvent, WatchEvents
from ratwatch.watches.leaderboard import (
    AccuserEntry,
    LeaderboardAggregator,
    LeaderboardEntry,
    UserStats,
    UserWatchStats,
)
from ratwatch.watches.lifecycle import (
    ALLOWED_TRANSITIONS,
    Decision,
    Effect,
    can_transition,
    decide,
    verdict_for,
)
from ratwatch.watches.scheduler import TickReport, WatchScheduler
from ratwatch.watches.service import WatchService
from ratwatch.watches.settings import GuildSettingsStore, GuildSettingsUpdate
from ratwatch.watches.store import SqlWatchStore, WatchStore
from ratwatch.watches.tally import VoteTallyEngine
from ratwatch.watches.timeparse import (
    ParsedTime,
    ParseKind,
    parse_time,
    resolve_timezone,
)
from ratwatch.watches.types import (
    AdvanceTimeError,
    Clock,
    DuplicateWatchError,
    GuildWatchSettings,
    TimeParseError,
    TransitionFailure,
    TransitionResult,
    VoteChoice,
    VoteOutcome,
    Watch,
    WatchError,
    WatchesDisabledError,
    WatchFilter,
    WatchPage,
    WatchStatus,
    WatchStoreError,
)
from ratwatch.watches.validation import validate_advance_time

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AccuserEntry",
    "AdvanceTimeError",
    "Clock",
    "Decision",
    "DuplicateWatchError",
    "Effect",
    "EventKind",
    "GuildSettingsStore",
    "GuildSettingsUpdate",
    "GuildWatchSettings",
    "LeaderboardAggregator",
    "LeaderboardEntry",
    "ParseKind",
    "ParsedTime",
    "SqlWatchStore",
    "TickReport",
    "TimeParseError",
    "TransitionFailure",
    "TransitionResult",
    "UserStats",
    "UserWatchStats",
    "VoteChoice",
    "VoteOutcome",
    "VoteTallyEngine",
    "Watch",
    "WatchError",
    "WatchEvent",
    "WatchEvents",
    "WatchFilter",
    "WatchPage",
    "WatchScheduler",
    "WatchService",
    "WatchStatus",
    "WatchStore",
    "WatchStoreError",
    "WatchesDisabledError",
    "can_transition",
    "decide",
    "parse_time",
    "resolve_timezone",
    "validate_advance_time",
    "verdict_for",
]
