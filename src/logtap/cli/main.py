"""Main CLI entry point for logtap.

Defines the CLI group and registers all subcommands.

Commands:
    ports  - Show the candidate ports the relay would try
    serve  - Run a relay in the foreground

Subcommand help:
    logtap COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from logtap import __version__

from .commands.ports import ports
from .commands.serve import serve


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """logtap: live log relay with remote level control."""
    if version:
        click.echo(f"logtap {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(ports)
cli.add_command(serve)


def main() -> None:
    """CLI entry point."""
    cli()
