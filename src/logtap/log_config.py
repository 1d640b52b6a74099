"""Relay logging configuration.

Owns the configuration of the relay's own diagnostics logger. Other
modules get their own logger reference via:
    _logger = logging.getLogger(f"{APP_NAME}.hub")

These loggers live under the "logtap" stdlib namespace, outside the tap
facility, so relay diagnostics are never broadcast to viewers and a
failing broadcast cannot recurse into itself. Facility lines written
under "logtap.app" share the console and file handlers configured here.
"""

from __future__ import annotations

__all__ = [
    "ISO8601Formatter",
    "configure_logging",
    "log_event",
]

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from logtap.constants import APP_NAME
from logtap.models import RelaySystemEvent

_logger = logging.getLogger(APP_NAME)
_logger.setLevel(logging.INFO)
_logger.propagate = False

# Track if file logging has been configured
_file_handler_configured: bool = False


class ISO8601Formatter(logging.Formatter):
    """Formatter emitting JSONL with ISO 8601 timestamps (UTC).

    Format: YYYY-MM-DDTHH:MM:SS.sssZ
    Example: 2025-12-04T10:48:37.123Z
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        if isinstance(record.msg, dict):
            log_data = record.msg
        else:
            log_data = {"message": record.getMessage()}

        log_entry = {"time": timestamp, "level": record.levelname, **log_data}
        return json.dumps(log_entry, default=str)


class _ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        # Use getMessage() to substitute %s placeholders with args
        return f"{record.levelname}: {record.getMessage()}"


# Initialize with stderr-only until configure_logging() runs
if not _logger.handlers:
    _stderr_handler = logging.StreamHandler()
    _stderr_handler.setFormatter(_ConsoleFormatter())
    _logger.addHandler(_stderr_handler)


def configure_logging(log_dir: str | None = None, level: int = logging.INFO) -> None:
    """Configure relay logging.

    Sets up:
    - stderr handler: ``level`` and above for operator visibility
    - file handler: WARNING+ to <log_dir>/relay.jsonl, when log_dir is given

    Args:
        log_dir: Directory for the JSONL file, or None for stderr only.
        level: Minimum level for the stderr handler.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    # Close and clear any existing handlers to avoid resource leaks
    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()

    _logger.setLevel(min(level, logging.WARNING))

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(_ConsoleFormatter())
    _logger.addHandler(stderr_handler)

    if log_dir is None:
        return

    log_path = Path(log_dir).expanduser() / "relay.jsonl"
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass  # stderr will still work

    try:
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(ISO8601Formatter())
        _logger.addHandler(file_handler)
        _file_handler_configured = True
    except OSError as e:
        log_event(
            logging.WARNING,
            RelaySystemEvent(
                event="file_logging_failed",
                message="Failed to configure file logging",
                error_type=type(e).__name__,
                error_message=str(e),
                details={"log_path": str(log_path)},
            ),
        )


def log_event(level: int, event: RelaySystemEvent, logger: logging.Logger | None = None) -> None:
    """Log a RelaySystemEvent at the specified level.

    Serializes the event to a dict (excluding None values) and logs it.
    The ISO8601Formatter adds the timestamp during serialization.

    Args:
        level: Logging level (e.g., logging.INFO, logging.WARNING).
        event: The event to log.
        logger: Child logger to log through (defaults to the relay logger).
    """
    (logger or _logger).log(level, event.model_dump(exclude_none=True))
