"""Watch scheduler: polls for due watches and advances their lifecycle.

The scheduler owns the polling loop. Decisions come from the lifecycle
engine, status changes go through the store's conditional update, and
verdicts go through the tally engine.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum

from ratwatch.config.models import SchedulerConfig
from ratwatch.watches.events import EFFECT_EVENTS, WatchEvent, WatchEvents
from ratwatch.watches.lifecycle import Effect, decide
from ratwatch.watches.settings import GuildSettingsStore
from ratwatch.watches.store import WatchStore
from ratwatch.watches.tally import VoteTallyEngine
from ratwatch.watches.types import Clock, Watch, WatchStatus

logger = logging.getLogger(__name__)


class _Applied(Enum):
    UNCHANGED = "unchanged"
    TRANSITIONED = "transitioned"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass
class TickReport:
    """What a single poll did."""

    started_at: datetime
    recovering: bool
    examined: int = 0
    transitioned: int = 0
    conflicts: int = 0
    failures: int = 0
    ok: bool = True


class WatchScheduler:
    """Advances watches when they fall due.

    Example:
        scheduler = WatchScheduler(store, settings, tally, config.scheduler)
        await scheduler.start()
        ...
        await scheduler.stop()

    On the first tick after start, or after a gap longer than the recovery
    gap, pending watches more than the grace window overdue are expired
    instead of opening a vote nobody was around for.
    """

    def __init__(
        self,
        store: WatchStore,
        settings: GuildSettingsStore,
        tally: VoteTallyEngine,
        config: SchedulerConfig | None = None,
        clock: Clock | None = None,
        events: WatchEvents | None = None,
    ):
        self._store = store
        self._settings = settings
        self._tally = tally
        self._config = config or SchedulerConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._events = events
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_executions)
        self._running = False
        self._task: asyncio.Task | None = None
        self._poll_count = 0
        self._last_success: datetime | None = None

    @property
    def poll_interval(self) -> float:
        return self._config.check_interval_seconds

    @property
    def max_finalization_lag(self) -> timedelta:
        """Upper bound on how late a verdict lands after voting closes."""
        return timedelta(seconds=self._config.check_interval_seconds)

    @property
    def last_successful_tick(self) -> datetime | None:
        return self._last_success

    @property
    def is_running(self) -> bool:
        return self._running

    def _is_recovering(self, now: datetime) -> bool:
        if self._last_success is None:
            return True
        gap = timedelta(seconds=self._config.effective_recovery_gap_seconds)
        return now - self._last_success > gap

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info(
            "watch_scheduler_started",
            extra={"scheduler.interval": self._config.check_interval_seconds},
        )
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("watch_scheduler_stopped")

    async def _poll_loop(self) -> None:
        heartbeat_interval = self._config.heartbeat_every
        while self._running:
            try:
                self._poll_count += 1
                if self._poll_count % heartbeat_interval == 0:
                    logger.info(
                        "watch_scheduler_heartbeat",
                        extra={"poll.count": self._poll_count},
                    )
                await self.tick()
            except Exception as e:
                logger.error("watch_tick_error", extra={"error.message": str(e)})
            await asyncio.sleep(self._config.check_interval_seconds)

    async def tick(self) -> TickReport:
        """Run one poll over every non-terminal watch."""
        now = self._clock()
        report = TickReport(started_at=now, recovering=self._is_recovering(now))
        grace_window = timedelta(minutes=self._config.grace_window_minutes)
        page_size = self._config.page_size

        after_id: str | None = None
        try:
            while True:
                page = await self._store.list_non_terminal(
                    after_id=after_id, limit=page_size
                )
                if not page:
                    break
                durations = await self._settings.get_voting_durations(
                    {w.guild_id for w in page}
                )
                results = await asyncio.gather(
                    *(
                        self._run_one(
                            watch,
                            now,
                            voting_duration=timedelta(
                                minutes=durations[watch.guild_id]
                            ),
                            grace_window=grace_window,
                            recovering=report.recovering,
                        )
                        for watch in page
                    )
                )
                report.examined += len(page)
                report.transitioned += results.count(_Applied.TRANSITIONED)
                report.conflicts += results.count(_Applied.CONFLICT)
                report.failures += results.count(_Applied.FAILED)
                if len(page) < page_size:
                    break
                after_id = page[-1].id
        except Exception as e:
            logger.error("watch_batch_load_failed", extra={"error.message": str(e)})
            report.ok = False
            return report

        self._last_success = now
        if report.transitioned or report.failures:
            logger.info(
                "watch_tick_completed",
                extra={
                    "tick.examined": report.examined,
                    "tick.transitioned": report.transitioned,
                    "tick.conflicts": report.conflicts,
                    "tick.failures": report.failures,
                    "tick.recovering": report.recovering,
                },
            )
        return report

    async def _run_one(
        self,
        watch: Watch,
        now: datetime,
        *,
        voting_duration: timedelta,
        grace_window: timedelta,
        recovering: bool,
    ) -> _Applied:
        # Only the decision and its write run under the timeout. Events for a
        # committed transition are emitted after the slot is released.
        outcome, updated, effects = _Applied.FAILED, None, ()
        async with self._semaphore:
            try:
                outcome, updated, effects = await asyncio.wait_for(
                    self._apply(
                        watch,
                        now,
                        voting_duration=voting_duration,
                        grace_window=grace_window,
                        recovering=recovering,
                    ),
                    timeout=self._config.execution_timeout_seconds,
                )
            except TimeoutError:
                logger.error("watch_execution_timeout", extra={"watch.id": watch.id})
            except Exception as e:
                logger.error(
                    "watch_execution_failed",
                    extra={"watch.id": watch.id, "error.message": str(e)},
                )

        if self._events is not None and updated is not None:
            for effect in effects:
                await self._events.emit(WatchEvent(EFFECT_EVENTS[effect], updated, now))
        return outcome

    async def _apply(
        self,
        watch: Watch,
        now: datetime,
        *,
        voting_duration: timedelta,
        grace_window: timedelta,
        recovering: bool,
    ) -> tuple[_Applied, Watch | None, tuple[Effect, ...]]:
        """Decide and persist one transition; returns what to announce."""
        decision = decide(
            watch,
            now,
            voting_duration=voting_duration,
            grace_window=grace_window,
            recovering=recovering,
        )
        if decision.new_status is None:
            return _Applied.UNCHANGED, None, ()

        if watch.status == WatchStatus.VOTING:
            result = await self._tally.finalize_voting(watch.id, emit=False)
            if result.ok:
                return _Applied.TRANSITIONED, result.watch, decision.effects
            logger.debug(
                "watch_finalize_skipped",
                extra={"watch.id": watch.id, "transition.detail": result.detail},
            )
            return _Applied.CONFLICT, None, ()

        changed = await self._store.compare_and_set_status(
            watch.id, watch.status, decision.new_status, decision.fields
        )
        if not changed:
            logger.debug(
                "watch_transition_conflict",
                extra={"watch.id": watch.id, "watch.new": decision.new_status.value},
            )
            return _Applied.CONFLICT, None, ()

        updated = replace(watch, status=decision.new_status, **decision.fields)
        if decision.new_status == WatchStatus.EXPIRED:
            logger.warning(
                "stale_watch_expired",
                extra={
                    "watch.id": watch.id,
                    "guild.id": watch.guild_id,
                    "watch.delay_minutes": round(
                        (now - watch.scheduled_at).total_seconds() / 60, 1
                    ),
                },
            )
        else:
            logger.info(
                "watch_voting_opened",
                extra={"watch.id": watch.id, "guild.id": watch.guild_id},
            )
        return _Applied.TRANSITIONED, updated, decision.effects
