"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import typer

from ratwatch.cli.console import console, create_table, error, success


def register(app: typer.Typer) -> None:
    """Register the config command group."""
    config_app = typer.Typer(help="Configuration commands")

    @config_app.command("validate")
    def config_validate(
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $RATWATCH_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Validate a configuration file and show the effective settings."""
        from ratwatch.config import ConfigError, load_config
        from ratwatch.config.paths import get_config_path

        expanded_path = path.expanduser() if path else get_config_path()
        if not expanded_path.exists():
            error(f"Config file not found: {expanded_path}")
            raise typer.Exit(1)

        try:
            config_obj = load_config(expanded_path)
        except ConfigError as e:
            error(str(e))
            raise typer.Exit(1) from None

        table = create_table(
            "Configuration Summary", [("Setting", "cyan"), ("Value", "green")]
        )
        table.add_row("Database", config_obj.database.resolve_url())
        scheduler = config_obj.scheduler
        table.add_row("Check interval", f"{scheduler.check_interval_seconds:g}s")
        table.add_row("Grace window", f"{scheduler.grace_window_minutes:g}m")
        table.add_row(
            "Recovery gap", f"{scheduler.effective_recovery_gap_seconds:g}s"
        )
        table.add_row("Max concurrent", str(scheduler.max_concurrent_executions))
        defaults = config_obj.guild_defaults
        table.add_row("Default timezone", defaults.timezone)
        table.add_row("Default voting", f"{defaults.voting_duration_minutes}m")
        table.add_row("Default max advance", f"{defaults.max_advance_hours}h")
        table.add_row("Log level", config_obj.logging.level)
        console.print(table)
        success("Configuration is valid")

    app.add_typer(config_app, name="config")
