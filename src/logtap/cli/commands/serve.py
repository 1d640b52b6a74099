"""Serve command for logtap CLI.

Runs a standalone relay in the foreground. Useful for trying a viewer
against the relay without embedding it in an application; --heartbeat
emits a log line periodically so there is something to watch.
"""

from __future__ import annotations

__all__ = ["serve"]

import asyncio
import logging
import signal
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from logtap.config import RelayConfig, load_relay_config, load_relay_config_strict
from logtap.exceptions import BootstrapExhaustedError, ConfigurationError
from logtap.tap import get_log_tap, start_log_tap

from ..styling import style_error, style_label, style_success, style_url, style_warning


async def _heartbeat(interval: float) -> None:
    """Emit one facility log line per interval at several severities."""
    logger = get_log_tap().get_logger("heartbeat")
    beat = 0
    while True:
        await asyncio.sleep(interval)
        beat += 1
        logger.info("heartbeat", beat)
        logger.debug("heartbeat detail", {"beat": beat, "interval": interval})
        logger.trace("heartbeat trace", beat)


async def _serve(config: RelayConfig, heartbeat: float) -> None:
    # Suppress uvicorn's logging (the relay logs its own lifecycle)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)

    listener = await start_log_tap(config)
    if listener is None:
        click.echo(style_warning("Relay is disabled by configuration (enabled=false or LOGTAP_DISABLED)"))
        return

    click.echo(style_success("Relay started"))
    click.echo(style_label("URL") + " " + style_url(listener.url))
    click.echo()
    click.echo("Press Ctrl+C to stop")

    shutdown_event = asyncio.Event()

    def signal_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals (SIGTERM, SIGINT)."""
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    heartbeat_task = asyncio.create_task(_heartbeat(heartbeat)) if heartbeat > 0 else None

    try:
        await shutdown_event.wait()
    finally:
        if heartbeat_task is not None:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass
        await get_log_tap().stop()


@click.command("serve")
@click.option("--port", "-p", type=int, default=None, help="First candidate port (default: config value)")
@click.option("--host", default=None, help="Interface to listen on (default: config value)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Relay config file (default: $LOGTAP_CONFIG or the app config dir)",
)
@click.option(
    "--heartbeat",
    type=float,
    default=0.0,
    show_default=True,
    help="Emit a demo log line every N seconds (0 disables)",
)
def serve(port: int | None, host: str | None, config_path: Path | None, heartbeat: float) -> None:
    """Run a log relay in the foreground.

    Viewers connect over WebSocket and receive every log line emitted
    through the logtap facility in this process.
    """
    try:
        config = load_relay_config_strict(config_path) if config_path else load_relay_config()
    except ConfigurationError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)

    overrides: dict[str, object] = {}
    if port is not None:
        overrides["port"] = port
    if host is not None:
        overrides["host"] = host
    if overrides:
        try:
            config = RelayConfig.model_validate({**config.model_dump(), **overrides})
        except ValidationError as e:
            click.echo(style_error(f"Invalid option: {e}"), err=True)
            sys.exit(1)

    try:
        asyncio.run(_serve(config, heartbeat))
    except KeyboardInterrupt:
        click.echo()
    except BootstrapExhaustedError as e:
        click.echo(style_error(f"Failed to start: {e}"), err=True)
        sys.exit(1)

    click.echo("Relay stopped.")
