"""Watch types.

Public types:
- WatchStatus: Lifecycle states of a watch
- Watch: A watch snapshot as loaded from the store
- VoteChoice / VoteOutcome: Ballot choices and vote results
- GuildWatchSettings: Per-guild configuration
- TransitionResult: Outcome of a guarded status change
- WatchError and subclasses: User-correctable and persistence errors
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# Injected time source; always returns timezone-aware UTC
Clock = Callable[[], datetime]


class WatchStatus(Enum):
    """Lifecycle states of a watch."""

    PENDING = "pending"
    VOTING = "voting"
    GUILTY = "guilty"
    NOT_GUILTY = "not_guilty"
    CLEARED_EARLY = "cleared_early"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self not in (WatchStatus.PENDING, WatchStatus.VOTING)


NON_TERMINAL_STATUSES = (WatchStatus.PENDING, WatchStatus.VOTING)
TERMINAL_STATUSES = tuple(s for s in WatchStatus if s.is_terminal)


class VoteChoice(Enum):
    GUILTY = "guilty"
    NOT_GUILTY = "not_guilty"


class VoteOutcome(Enum):
    """Result of casting a vote. Only RECORDED changes the tally."""

    RECORDED = "recorded"
    ALREADY_VOTED = "already_voted"
    NOT_IN_VOTING_STATE = "not_in_voting_state"
    NOT_FOUND = "not_found"


class TransitionFailure(Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"


@dataclass
class Watch:
    """A scheduled accountability check on one guild member."""

    id: str
    guild_id: int
    accused_user_id: int
    initiator_user_id: int
    channel_id: int
    origin_message_id: int
    scheduled_at: datetime
    created_at: datetime
    status: WatchStatus = WatchStatus.PENDING
    custom_message: str | None = None
    guilty_votes: int = 0
    not_guilty_votes: int = 0
    voting_started_at: datetime | None = None
    voting_ended_at: datetime | None = None
    cleared_at: datetime | None = None
    cancel_reason: str | None = None

    @property
    def total_votes(self) -> int:
        return self.guilty_votes + self.not_guilty_votes

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def message_link(self) -> str:
        return (
            f"https://discord.com/channels/{self.guild_id}/"
            f"{self.channel_id}/{self.origin_message_id}"
        )

    @property
    def resolved_at(self) -> datetime:
        """When the watch last changed meaningfully, for activity ordering."""
        return self.voting_ended_at or self.cleared_at or self.scheduled_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data: dict[str, Any] = {
            "id": self.id,
            "guild_id": self.guild_id,
            "accused_user_id": self.accused_user_id,
            "initiator_user_id": self.initiator_user_id,
            "channel_id": self.channel_id,
            "origin_message_id": self.origin_message_id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "guilty_votes": self.guilty_votes,
            "not_guilty_votes": self.not_guilty_votes,
        }
        if self.custom_message:
            data["custom_message"] = self.custom_message
        for key in ("voting_started_at", "voting_ended_at", "cleared_at"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value.isoformat()
        if self.cancel_reason:
            data["cancel_reason"] = self.cancel_reason
        return data


@dataclass
class GuildWatchSettings:
    """Per-guild Rat Watch configuration (read-only to the engine)."""

    guild_id: int
    timezone: str = "UTC"
    max_advance_hours: int = 24
    voting_duration_minutes: int = 5
    is_enabled: bool = True
    public_leaderboard_enabled: bool = False


@dataclass
class TransitionResult:
    """Outcome of a guarded status change.

    State conflicts are expected under concurrency and are reported here
    rather than raised.
    """

    ok: bool
    watch: Watch | None = None
    failure: TransitionFailure | None = None
    detail: str | None = None

    @classmethod
    def success(cls, watch: Watch | None) -> "TransitionResult":
        return cls(ok=True, watch=watch)

    @classmethod
    def failed(
        cls,
        failure: TransitionFailure,
        detail: str,
        watch: Watch | None = None,
    ) -> "TransitionResult":
        return cls(ok=False, watch=watch, failure=failure, detail=detail)


@dataclass
class WatchFilter:
    """Filters for listing a guild's watches."""

    statuses: list[WatchStatus] | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    accused_user_id: int | None = None
    initiator_user_id: int | None = None
    min_vote_count: int | None = None
    keyword: str | None = None
    page: int = 1
    page_size: int = 25


@dataclass
class WatchPage:
    items: list[Watch] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 25

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


class WatchError(Exception):
    """Base class for errors surfaced to the intake layer."""


class TimeParseError(WatchError):
    """Time text could not be understood or is out of range."""


class AdvanceTimeError(WatchError):
    """A requested watch falls outside what the guild allows."""


class WatchesDisabledError(WatchError):
    """Rat Watch is turned off for the guild."""


class DuplicateWatchError(WatchError):
    """A watch for the same member at the same instant already exists."""


class WatchStoreError(WatchError):
    """A persistence call failed."""
