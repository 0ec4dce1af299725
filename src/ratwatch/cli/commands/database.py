"""Database management commands."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from ratwatch.cli.console import error, success


def register(app: typer.Typer) -> None:
    """Register the db command group."""
    db_app = typer.Typer(help="Database management commands")

    @db_app.command("init")
    def db_init(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Create the watch tables if they do not exist."""
        from sqlalchemy.exc import SQLAlchemyError

        from ratwatch.config import ConfigError, load_config

        try:
            url = asyncio.run(_init(load_config(config)))
        except (ConfigError, FileNotFoundError, SQLAlchemyError) as e:
            error(str(e))
            raise typer.Exit(1) from None
        success(f"Database ready: {url}")

    app.add_typer(db_app, name="db")


async def _init(config) -> str:
    from ratwatch.cli.runtime import open_database

    database = open_database(config)
    await database.connect()
    try:
        await database.create_tables()
    finally:
        await database.disconnect()
    return database.url
