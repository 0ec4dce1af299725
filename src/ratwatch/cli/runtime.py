"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from ratwatch.config import RatWatchConfig, load_config
from ratwatch.db import Database, init_database
from ratwatch.watches import WatchEvents, WatchService


def open_database(config: RatWatchConfig) -> Database:
    """Create the global database for the configured URL or path."""
    if config.database.url:
        return init_database(database_url=config.database.url)
    return init_database(database_path=config.database.path)


@asynccontextmanager
async def watch_service(
    config_path: Path | None = None,
    events: WatchEvents | None = None,
) -> AsyncGenerator[WatchService, None]:
    """Connect to the database and yield a wired WatchService."""
    config = load_config(config_path)
    database = open_database(config)
    await database.connect()
    try:
        await database.create_tables()
        yield WatchService.from_database(database, config, events=events)
    finally:
        await database.disconnect()
