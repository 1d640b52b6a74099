"""Ports command for logtap CLI."""

from __future__ import annotations

__all__ = ["ports"]

import sys
from pathlib import Path

import click

from logtap.config import candidate_ports, load_relay_config, load_relay_config_strict
from logtap.exceptions import ConfigurationError

from ..styling import style_error, style_label


@click.command("ports")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Relay config file (default: $LOGTAP_CONFIG or the app config dir)",
)
def ports(config_path: Path | None) -> None:
    """Show the candidate ports the relay would try, in order.

    The first entry is the configured port; the rest are random
    fallbacks and differ on every run.
    """
    try:
        config = load_relay_config_strict(config_path) if config_path else load_relay_config()
    except ConfigurationError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)

    click.echo(style_label("Host") + f" {config.host}")
    click.echo(style_label("Candidate ports"))
    for port in candidate_ports(config):
        click.echo(f"  {port}")
