"""Watch management commands."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from ratwatch.cli.console import (
    console,
    create_table,
    dim,
    error,
    format_countdown,
    success,
    warning,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file",
    ),
]

_STATUS_STYLES = {
    "pending": "yellow",
    "voting": "cyan",
    "guilty": "red",
    "not_guilty": "green",
    "cleared_early": "green",
    "cancelled": "dim",
    "expired": "dim",
}


def _run(coro) -> None:
    from ratwatch.config import ConfigError
    from ratwatch.watches import WatchStoreError

    try:
        asyncio.run(coro)
    except (ConfigError, FileNotFoundError, WatchStoreError) as e:
        error(str(e))
        raise typer.Exit(1) from None


def register(app: typer.Typer) -> None:
    """Register the watches command group."""
    watches_app = typer.Typer(help="Inspect and manage watches")

    @watches_app.command("list")
    def watches_list(
        guild: Annotated[int, typer.Option("--guild", "-g", help="Guild ID")],
        status: Annotated[
            list[str] | None,
            typer.Option(
                "--status",
                "-s",
                help="Only show these statuses (repeatable)",
            ),
        ] = None,
        page: Annotated[int, typer.Option("--page", "-p", help="Page number")] = 1,
        config: ConfigOption = None,
    ) -> None:
        """List a guild's watches, newest scheduled first."""
        from ratwatch.watches import WatchFilter, WatchStatus

        try:
            statuses = [WatchStatus(s.lower()) for s in status] if status else None
        except ValueError:
            error(f"Unknown status. Valid: {', '.join(s.value for s in WatchStatus)}")
            raise typer.Exit(1) from None

        _run(_list(config, guild, WatchFilter(statuses=statuses, page=page)))

    @watches_app.command("cancel")
    def watches_cancel(
        watch_id: Annotated[str, typer.Argument(help="Watch ID")],
        reason: Annotated[
            str,
            typer.Option("--reason", "-r", help="Why the watch is being cancelled"),
        ],
        config: ConfigOption = None,
    ) -> None:
        """Cancel a pending or voting watch."""
        _run(_cancel(config, watch_id, reason))

    @watches_app.command("finalize")
    def watches_finalize(
        watch_id: Annotated[str, typer.Argument(help="Watch ID")],
        config: ConfigOption = None,
    ) -> None:
        """End voting now and record the verdict."""
        _run(_finalize(config, watch_id))

    app.add_typer(watches_app, name="watches")


async def _list(config_path, guild_id, filters) -> None:
    from ratwatch.cli.runtime import watch_service

    async with watch_service(config_path) as service:
        page = await service.list_watches(guild_id, filters)

    if not page.items:
        warning("No watches found")
        return

    table = create_table(
        f"Watches (page {page.page}/{max(page.total_pages, 1)})",
        [
            ("ID", "dim"),
            ("Accused", ""),
            ("Status", {}),
            ("Scheduled", ""),
            ("Votes", {"justify": "right"}),
        ],
    )
    for watch in page.items:
        style = _STATUS_STYLES.get(watch.status.value, "")
        scheduled = watch.scheduled_at.strftime("%Y-%m-%d %H:%M")
        if not watch.is_terminal:
            scheduled += f" ({format_countdown(watch.scheduled_at)})"
        table.add_row(
            watch.id,
            str(watch.accused_user_id),
            f"[{style}]{watch.status.value}[/{style}]" if style else watch.status.value,
            scheduled,
            f"{watch.guilty_votes}/{watch.not_guilty_votes}",
        )
    console.print(table)
    dim(f"{page.total} watch(es) total")


async def _cancel(config_path, watch_id, reason) -> None:
    from ratwatch.cli.runtime import watch_service

    async with watch_service(config_path) as service:
        result = await service.cancel_watch(watch_id, reason)

    if not result.ok:
        error(result.detail or "Could not cancel watch")
        raise typer.Exit(1)
    success(f"Cancelled watch {watch_id}")


async def _finalize(config_path, watch_id) -> None:
    from ratwatch.cli.runtime import watch_service

    async with watch_service(config_path) as service:
        result = await service.finalize_voting(watch_id)

    if not result.ok or result.watch is None:
        error(result.detail or "Could not finalize watch")
        raise typer.Exit(1)
    watch = result.watch
    success(
        f"Verdict for {watch_id}: {watch.status.value} "
        f"({watch.guilty_votes} guilty, {watch.not_guilty_votes} not guilty)"
    )
