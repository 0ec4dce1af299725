"""Shared test fixtures and factories."""

import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ratwatch.config.models import RatWatchConfig, SchedulerConfig
from ratwatch.db.engine import Database
from ratwatch.db.models import Base
from ratwatch.watches.events import WatchEvent, WatchEvents
from ratwatch.watches.scheduler import WatchScheduler
from ratwatch.watches.service import WatchService
from ratwatch.watches.settings import GuildSettingsStore
from ratwatch.watches.store import SqlWatchStore
from ratwatch.watches.tally import VoteTallyEngine
from ratwatch.watches.types import Watch, WatchStatus

GUILD_ID = 1001
CHANNEL_ID = 2002

# Friday 2025-01-10 15:00 UTC (10:00 in New York)
DEFAULT_NOW = datetime(2025, 1, 10, 15, 0, tzinfo=UTC)


class FakeClock:
    """Controllable time source returning timezone-aware UTC."""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


def make_watch(
    *,
    scheduled_at: datetime,
    status: WatchStatus = WatchStatus.PENDING,
    guild_id: int = GUILD_ID,
    accused_user_id: int = 1,
    initiator_user_id: int = 2,
    created_at: datetime | None = None,
    **kwargs,
) -> Watch:
    """Build a watch with sensible defaults."""
    return Watch(
        id=kwargs.pop("id", uuid.uuid4().hex),
        guild_id=guild_id,
        accused_user_id=accused_user_id,
        initiator_user_id=initiator_user_id,
        channel_id=CHANNEL_ID,
        origin_message_id=kwargs.pop("origin_message_id", 3003),
        scheduled_at=scheduled_at,
        created_at=created_at or scheduled_at - timedelta(hours=1),
        status=status,
        **kwargs,
    )


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def config() -> RatWatchConfig:
    """Default configuration with a short poll interval."""
    return RatWatchConfig(
        scheduler=SchedulerConfig(check_interval_seconds=10, grace_window_minutes=5)
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Create a temporary config file pointing at a temporary database."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        f"""
[database]
path = "{(tmp_path / "cli.db").as_posix()}"

[scheduler]
check_interval_seconds = 5

[guild_defaults]
timezone = "America/New_York"
"""
    )
    return config_path


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db_path = tmp_path / "test.db"
    db = Database(database_path=db_path)
    await db.connect()

    # Create all tables
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db

    await db.disconnect()


# =============================================================================
# Watch Engine Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(database: Database) -> SqlWatchStore:
    return SqlWatchStore(database)


@pytest.fixture
def settings_store(database: Database, config: RatWatchConfig) -> GuildSettingsStore:
    return GuildSettingsStore(database, config.guild_defaults)


@pytest.fixture
def recorded_events() -> list[WatchEvent]:
    return []


@pytest.fixture
def events(recorded_events: list[WatchEvent]) -> WatchEvents:
    """Event registry that records everything emitted."""
    registry = WatchEvents()

    async def record(event: WatchEvent) -> None:
        recorded_events.append(event)

    registry.add_handler(record)
    return registry


@pytest.fixture
def tally(store: SqlWatchStore, clock: FakeClock, events: WatchEvents) -> VoteTallyEngine:
    return VoteTallyEngine(store, clock=clock, events=events)


@pytest.fixture
def scheduler(
    store: SqlWatchStore,
    settings_store: GuildSettingsStore,
    tally: VoteTallyEngine,
    config: RatWatchConfig,
    clock: FakeClock,
    events: WatchEvents,
) -> WatchScheduler:
    return WatchScheduler(
        store, settings_store, tally, config.scheduler, clock=clock, events=events
    )


@pytest.fixture
def service(
    store: SqlWatchStore,
    settings_store: GuildSettingsStore,
    config: RatWatchConfig,
    clock: FakeClock,
    events: WatchEvents,
) -> WatchService:
    return WatchService(store, settings_store, config=config, clock=clock, events=events)


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner(monkeypatch):
    """Create a CLI test runner with a wide console so tables don't wrap."""
    from typer.testing import CliRunner

    from ratwatch.cli.console import console

    monkeypatch.setattr(console, "width", 200)
    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})
