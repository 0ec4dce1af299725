"""Database layer."""

from ratwatch.db.engine import Database, get_database, init_database
from ratwatch.db.models import (
    Base,
    GuildSettingsRecord,
    UTCDateTime,
    VoteRecord,
    WatchRecord,
    utc_now,
)

__all__ = [
    # Engine
    "Database",
    "get_database",
    "init_database",
    # Models
    "Base",
    "GuildSettingsRecord",
    "UTCDateTime",
    "VoteRecord",
    "WatchRecord",
    "utc_now",
]
