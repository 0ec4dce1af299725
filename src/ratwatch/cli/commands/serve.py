"""Server command for running the watch scheduler."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Run the watch scheduler until interrupted."""
        from ratwatch.cli.console import error
        from ratwatch.config import ConfigError

        try:
            asyncio.run(_run_server(config))
        except (ConfigError, FileNotFoundError) as e:
            error(str(e))
            raise typer.Exit(1) from None
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _log_event(event) -> None:
    logger.info(
        "watch_event",
        extra={
            "event.kind": event.kind.value,
            "watch.id": event.watch.id,
            "guild.id": event.watch.guild_id,
            "watch.status": event.watch.status.value,
        },
    )


async def _run_server(config_path: Path | None = None) -> None:
    """Run the scheduler asynchronously."""
    from ratwatch.cli.runtime import watch_service
    from ratwatch.config import load_config
    from ratwatch.logging import configure_logging
    from ratwatch.watches import WatchEvents

    config = load_config(config_path)
    configure_logging(
        level=config.logging.level,
        use_rich=True,
        log_to_file=config.logging.log_to_file,
    )

    events = WatchEvents()
    events.add_handler(_log_event)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with watch_service(config_path, events=events) as service:
        scheduler = service.create_scheduler()
        await scheduler.start()
        logger.info("server_started")
        try:
            await stop_event.wait()
        finally:
            await scheduler.stop()
            logger.info("server_stopped")
