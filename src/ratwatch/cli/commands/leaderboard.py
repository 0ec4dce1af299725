"""Leaderboard command."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from ratwatch.cli.console import console, create_table, error, warning


def register(app: typer.Typer) -> None:
    """Register the leaderboard command."""

    @app.command()
    def leaderboard(
        guild: Annotated[int, typer.Option("--guild", "-g", help="Guild ID")],
        accusers: Annotated[
            bool,
            typer.Option("--accusers", help="Rank accusers instead of the accused"),
        ] = False,
        limit: Annotated[
            int, typer.Option("--limit", "-n", help="Number of entries")
        ] = 10,
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Show a guild's leaderboard."""
        from ratwatch.config import ConfigError
        from ratwatch.watches import WatchStoreError

        try:
            asyncio.run(_show(config, guild, accusers, limit))
        except (ConfigError, FileNotFoundError, WatchStoreError) as e:
            error(str(e))
            raise typer.Exit(1) from None


async def _show(config_path, guild_id: int, accusers: bool, limit: int) -> None:
    from ratwatch.cli.runtime import watch_service

    async with watch_service(config_path) as service:
        if accusers:
            entries = await service.accuser_leaderboard(guild_id, limit)
        else:
            entries = await service.user_leaderboard(guild_id, limit)

    if not entries:
        warning("No verdicts yet")
        return

    if accusers:
        table = create_table(
            "Top Accusers",
            [
                ("#", {"justify": "right"}),
                ("User", "cyan"),
                ("Watches", {"justify": "right"}),
                ("Guilty", {"justify": "right"}),
                ("Rate", {"justify": "right"}),
            ],
        )
        for entry in entries:
            table.add_row(
                str(entry.rank),
                str(entry.user_id),
                str(entry.watches_created),
                str(entry.guilty_verdicts),
                f"{entry.guilty_rate:.0%}",
            )
    else:
        table = create_table(
            "Rat Leaderboard",
            [
                ("#", {"justify": "right"}),
                ("User", "cyan"),
                ("Guilty", {"justify": "right"}),
                ("Watched", {"justify": "right"}),
                ("Rate", {"justify": "right"}),
            ],
        )
        for entry in entries:
            table.add_row(
                str(entry.rank),
                str(entry.user_id),
                str(entry.stats.times_guilty),
                str(entry.stats.times_watched),
                f"{entry.stats.guilty_rate:.0%}",
            )
    console.print(table)
