"""CLI output styling utilities.

Provides consistent styling helpers for CLI output:
- Cyan bold for labels
- Green for success messages (with checkmark)
- Red for error messages (with cross)
- Yellow for warnings
- Underlined for relay URLs viewers connect to
"""

from __future__ import annotations

__all__ = [
    "style_error",
    "style_label",
    "style_success",
    "style_url",
    "style_warning",
]

import click


def style_label(label: str) -> str:
    """Style a label for list/summary headers.

    Args:
        label: The label text (without colon).

    Returns:
        Styled string with cyan bold and colon suffix.

    Example:
        >>> click.echo(style_label("Relay") + " ws://127.0.0.1:54953/logtap/logs")
        Relay: ws://127.0.0.1:54953/logtap/logs
    """
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    """Style a success message with checkmark."""
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    """Style an error message with cross mark."""
    return click.style(f"✗ {message}", fg="red")


def style_warning(message: str) -> str:
    """Style a warning message with yellow color."""
    return click.style(f"Warning: {message}", fg="yellow", bold=True)


def style_url(url: str) -> str:
    """Style a relay URL so it stands out for copy/paste."""
    return click.style(url, underline=True)
