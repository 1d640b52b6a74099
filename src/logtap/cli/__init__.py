"""Command-line interface for logtap.

Provides commands for running a standalone relay and inspecting
its configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
