"""CLI command modules."""

from ratwatch.cli.commands import (
    config,
    database,
    leaderboard,
    parse,
    serve,
    watches,
)

__all__ = [
    "config",
    "database",
    "leaderboard",
    "parse",
    "serve",
    "watches",
]
