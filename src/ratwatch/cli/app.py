"""Main CLI application."""

import typer

from ratwatch.cli.commands import (
    config,
    database,
    leaderboard,
    parse,
    serve,
    watches,
)

app = typer.Typer(
    name="ratwatch",
    help="Rat Watch - scheduled accountability watches",
    no_args_is_help=True,
)

for command in (serve, parse, watches, leaderboard, database, config):
    command.register(app)


if __name__ == "__main__":
    app()
