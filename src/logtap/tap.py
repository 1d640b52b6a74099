"""Log tap service object and process entry points.

LogTap wires the pieces together:

    LogFactory <- LoggerEntryPoint <- InterceptingLoggerFactory
                                           |  sink
                                           v
                   viewers <---------- ConnectionHub <- relay listener

One LogTap per process is exposed through get_log_tap(); tests build
their own instances.
"""

from __future__ import annotations

__all__ = [
    "LogTap",
    "get_log_tap",
    "get_logger",
    "start_log_tap",
]

import logging
from collections.abc import Iterable

from logtap.config import RelayConfig, candidate_ports, load_relay_config
from logtap.constants import APP_NAME, DEFAULT_RELAY_HOST
from logtap.facility import LogFactory, Logger, LoggerEntryPoint
from logtap.hub import ConnectionHub
from logtap.interception import InterceptingLoggerFactory
from logtap.listener import RelayListener, start_with_retry
from logtap.log_config import configure_logging, log_event
from logtap.models import RelaySystemEvent
from logtap.severity import DEFAULT_SEVERITY, LogOptions, Severity, resolve

_logger = logging.getLogger(f"{APP_NAME}.tap")


class LogTap:
    """Facility, interception, hub and listener for one process.

    Attributes:
        factory: The original logger factory.
        entry_point: What applications call to get loggers.
        interceptor: Wrapping factory toggled by the hub.
        hub: Attached viewers.
        listener: Running relay endpoint, once started.
    """

    def __init__(self, factory: LogFactory | None = None, root_level: Severity = DEFAULT_SEVERITY) -> None:
        self.factory = factory or LogFactory()
        self.entry_point = LoggerEntryPoint(self.factory)
        self.interceptor = InterceptingLoggerFactory(self.entry_point, root_level=root_level)
        self.hub = ConnectionHub(self.interceptor)
        self.interceptor.sink = self.hub.broadcast
        self.listener: RelayListener | None = None

    def get_logger(self, name: str, options: LogOptions = None) -> Logger:
        """Get a logger through the current entry point."""
        return self.entry_point(name, options)

    async def start(self, ports: Iterable[int], host: str = DEFAULT_RELAY_HOST) -> RelayListener:
        """Start the relay listener.

        Raises:
            RuntimeError: If the listener is already running.
            BootstrapExhaustedError: If no candidate port could be bound.
        """
        if self.listener is not None:
            raise RuntimeError(f"Log relay already running on {self.listener.url}")
        self.listener = await start_with_retry(self.hub, ports, host)
        return self.listener

    async def stop(self) -> None:
        """Stop the relay listener, if running."""
        if self.listener is None:
            return
        listener, self.listener = self.listener, None
        await listener.close()


# Global tap singleton
_tap: LogTap | None = None


def get_log_tap() -> LogTap:
    """Get the global log tap singleton."""
    global _tap
    if _tap is None:
        _tap = LogTap()
    return _tap


def get_logger(name: str, options: LogOptions = None) -> Logger:
    """Get a logger from the global log tap.

    Example:
        >>> logger = get_logger("orders", "DEBUG")
        >>> logger.info("order placed")
    """
    return get_log_tap().get_logger(name, options)


async def start_log_tap(config: RelayConfig | None = None, tap: LogTap | None = None) -> RelayListener | None:
    """Start the relay for this process.

    Tries the configured port, then random fallbacks.

    Args:
        config: Relay configuration (default: load_relay_config()).
        tap: Log tap to serve (default: the global singleton).

    Returns:
        The running listener, or None when the relay is disabled.

    Raises:
        BootstrapExhaustedError: If no candidate port could be bound.
    """
    config = config or load_relay_config()
    tap = tap or get_log_tap()

    if not config.enabled:
        log_event(
            logging.INFO,
            RelaySystemEvent(event="relay_disabled", message="Log relay disabled by configuration"),
            _logger,
        )
        return None

    configure_logging(config.log_dir)
    tap.interceptor.set_root_level(resolve(config.root_level))

    return await tap.start(candidate_ports(config), config.host)
