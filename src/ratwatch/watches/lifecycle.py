"""Watch lifecycle state machine.

Pure decisions only: given a watch snapshot and the current time, return the
next status (if any) and the side effects the caller should emit. Persisting
the change is the caller's job, through a conditional status update.

    Pending -> Voting | ClearedEarly | Cancelled | Expired
    Voting  -> Guilty | NotGuilty | Cancelled
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ratwatch.watches.types import Watch, WatchStatus

ALLOWED_TRANSITIONS: dict[WatchStatus, frozenset[WatchStatus]] = {
    WatchStatus.PENDING: frozenset(
        {
            WatchStatus.VOTING,
            WatchStatus.CLEARED_EARLY,
            WatchStatus.CANCELLED,
            WatchStatus.EXPIRED,
        }
    ),
    WatchStatus.VOTING: frozenset(
        {WatchStatus.GUILTY, WatchStatus.NOT_GUILTY, WatchStatus.CANCELLED}
    ),
}


def can_transition(current: WatchStatus, new: WatchStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def verdict_for(guilty_votes: int, not_guilty_votes: int) -> WatchStatus:
    """Strict majority convicts; ties and empty votes favor the accused."""
    if guilty_votes > not_guilty_votes:
        return WatchStatus.GUILTY
    return WatchStatus.NOT_GUILTY


class Effect(Enum):
    VOTING_OPENED = "voting_opened"
    VERDICT_REACHED = "verdict_reached"
    WATCH_EXPIRED = "watch_expired"


@dataclass(frozen=True)
class Decision:
    new_status: WatchStatus | None = None
    effects: tuple[Effect, ...] = ()
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def changes(self) -> bool:
        return self.new_status is not None


NO_CHANGE = Decision()


def voting_deadline(watch: Watch, voting_duration: timedelta) -> datetime | None:
    if watch.voting_started_at is None:
        return None
    return watch.voting_started_at + voting_duration


def decide(
    watch: Watch,
    now: datetime,
    *,
    voting_duration: timedelta,
    grace_window: timedelta,
    recovering: bool = False,
) -> Decision:
    """Decide the next status for a watch.

    Args:
        watch: Current snapshot.
        now: Current UTC time.
        voting_duration: How long the guild's voting window lasts.
        grace_window: How late a pending watch may still open voting when the
            scheduler is recovering from downtime.
        recovering: True on the first tick after start or after a long gap.
    """
    if watch.status == WatchStatus.PENDING:
        if now < watch.scheduled_at:
            return NO_CHANGE
        if recovering and now - watch.scheduled_at > grace_window:
            return Decision(
                new_status=WatchStatus.EXPIRED,
                effects=(Effect.WATCH_EXPIRED,),
            )
        return Decision(
            new_status=WatchStatus.VOTING,
            effects=(Effect.VOTING_OPENED,),
            fields={"voting_started_at": now},
        )

    if watch.status == WatchStatus.VOTING:
        deadline = voting_deadline(watch, voting_duration)
        # A voting watch with no start time is overdue
        if deadline is not None and now < deadline:
            return NO_CHANGE
        return Decision(
            new_status=verdict_for(watch.guilty_votes, watch.not_guilty_votes),
            effects=(Effect.VERDICT_REACHED,),
        )

    return NO_CHANGE
