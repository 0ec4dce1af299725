"""Time expression preview command."""

from datetime import datetime
from typing import Annotated

import typer

from ratwatch.cli.console import console, create_table, error, format_countdown


def register(app: typer.Typer) -> None:
    """Register the parse command."""

    @app.command()
    def parse(
        text: Annotated[str, typer.Argument(help="Time text, e.g. 'tomorrow 3pm'")],
        tz: Annotated[
            str,
            typer.Option(
                "--tz",
                "-z",
                help="IANA timezone used for wall-clock times",
            ),
        ] = "UTC",
        now: Annotated[
            datetime | None,
            typer.Option(
                "--now",
                help="Reference time in UTC (ISO format), defaults to the current time",
                formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M"],
            ),
        ] = None,
    ) -> None:
        """Show how a time expression would be scheduled.

        Examples:
            ratwatch parse 10m
            ratwatch parse "tomorrow 3pm" --tz America/New_York
        """
        from datetime import UTC

        from ratwatch.watches import TimeParseError, parse_time

        reference = now.replace(tzinfo=UTC) if now else datetime.now(UTC)
        try:
            parsed = parse_time(text, tz, now=reference)
        except TimeParseError as e:
            error(str(e))
            raise typer.Exit(1) from None

        table = create_table(
            f"'{text}'",
            [("Field", "cyan"), ("Value", "green")],
        )
        table.add_row("Kind", parsed.kind.value)
        table.add_row("UTC", parsed.utc_time.isoformat())
        table.add_row("Local", parsed.local_time.isoformat())
        table.add_row("Timezone", str(parsed.local_time.tzinfo))
        table.add_row("Fires", format_countdown(parsed.utc_time, reference))
        console.print(table)
