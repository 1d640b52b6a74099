"""logtap: live log relay with remote level control.

Viewers connect over WebSocket, receive every line emitted through the
log facility, and can raise or lower the root log level at runtime.

Usage:
    from logtap import get_logger, start_log_tap

    logger = get_logger("orders")
    listener = await start_log_tap()
"""

__version__ = "0.1.0"

from logtap.severity import Severity
from logtap.tap import LogTap, get_log_tap, get_logger, start_log_tap

__all__ = [
    "LogTap",
    "Severity",
    "__version__",
    "get_log_tap",
    "get_logger",
    "start_log_tap",
]
