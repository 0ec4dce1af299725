"""Vote casting and verdict finalization."""

import logging
from dataclasses import replace
from datetime import UTC, datetime

from ratwatch.watches.events import EventKind, WatchEvent, WatchEvents
from ratwatch.watches.lifecycle import verdict_for
from ratwatch.watches.store import WatchStore
from ratwatch.watches.types import (
    Clock,
    TransitionFailure,
    TransitionResult,
    VoteChoice,
    VoteOutcome,
    WatchStatus,
)

logger = logging.getLogger(__name__)

# Concurrent votes can keep moving the counts; give up after this many rereads
MAX_FINALIZE_ATTEMPTS = 5


def _system_clock() -> datetime:
    return datetime.now(UTC)


class VoteTallyEngine:
    """Records votes and turns closed votes into verdicts.

    Counts only change while a watch is Voting, and a verdict is only written
    if the stored counts still match the ones it was derived from.
    """

    def __init__(
        self,
        store: WatchStore,
        clock: Clock | None = None,
        events: WatchEvents | None = None,
        max_finalize_attempts: int = MAX_FINALIZE_ATTEMPTS,
    ):
        self._store = store
        self._clock = clock or _system_clock
        self._events = events
        self._max_finalize_attempts = max_finalize_attempts

    async def cast(
        self, watch_id: str, voter_id: int, choice: VoteChoice
    ) -> VoteOutcome:
        outcome = await self._store.record_vote(
            watch_id, voter_id, choice, cast_at=self._clock()
        )
        logger.info(
            "vote_cast",
            extra={
                "watch.id": watch_id,
                "vote.voter_id": voter_id,
                "vote.choice": choice.value,
                "vote.outcome": outcome.value,
            },
        )
        return outcome

    async def tally(self, watch_id: str) -> tuple[int, int]:
        """Recount (guilty, not_guilty) from the vote rows."""
        return await self._store.count_votes(watch_id)

    async def finalize_voting(
        self, watch_id: str, *, emit: bool = True
    ) -> TransitionResult:
        """Close voting with a verdict matching the stored counts.

        With emit=False the caller announces the verdict itself.
        """
        for attempt in range(1, self._max_finalize_attempts + 1):
            watch = await self._store.get_by_id(watch_id)
            if watch is None:
                return TransitionResult.failed(
                    TransitionFailure.NOT_FOUND, f"Watch {watch_id} not found"
                )
            if watch.status != WatchStatus.VOTING:
                # Someone else finalized or cancelled between our reads
                failure = (
                    TransitionFailure.INVALID_STATE
                    if attempt == 1
                    else TransitionFailure.CONFLICT
                )
                return TransitionResult.failed(
                    failure, f"Watch is {watch.status.value}, not voting", watch
                )

            counts = (watch.guilty_votes, watch.not_guilty_votes)
            verdict = verdict_for(*counts)
            now = self._clock()
            changed = await self._store.compare_and_set_status(
                watch_id,
                WatchStatus.VOTING,
                verdict,
                {"voting_ended_at": now},
                expected_votes=counts,
            )
            if changed:
                finalized = replace(watch, status=verdict, voting_ended_at=now)
                logger.info(
                    "verdict_reached",
                    extra={
                        "watch.id": watch_id,
                        "guild.id": watch.guild_id,
                        "watch.verdict": verdict.value,
                        "vote.guilty": counts[0],
                        "vote.not_guilty": counts[1],
                    },
                )
                if emit and self._events is not None:
                    await self._events.emit(
                        WatchEvent(EventKind.VERDICT_REACHED, finalized, now)
                    )
                return TransitionResult.success(finalized)

            logger.debug(
                "finalize_retry",
                extra={"watch.id": watch_id, "finalize.attempt": attempt},
            )

        return TransitionResult.failed(
            TransitionFailure.CONFLICT,
            f"Votes kept changing; gave up after {self._max_finalize_attempts} attempts",
        )
