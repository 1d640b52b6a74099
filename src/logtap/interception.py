"""Logger interception for the log relay.

While at least one viewer is attached, every logger known to the facility
is re-derived through InterceptingLoggerFactory:

1. The logger is rebuilt by the original factory at TRACE so all six
   emit functions exist.
2. Those pristine functions are saved on the handle (once per activation).
3. Each slot gets a relay wrapper when the root override permits its
   severity, or a no-op otherwise. The wrapper calls the pristine function
   first, then hands a LogEvent to the broadcast sink.

Deactivation points the entry point back at the original factory,
reapplies each logger's own pre-activation level and writes the saved
functions back, so holders of a handle see the original behavior again.
"""

from __future__ import annotations

__all__ = [
    "EventSink",
    "InterceptingLoggerFactory",
]

import logging
import threading
from typing import Any, Callable

from logtap.constants import APP_NAME
from logtap.facility import (
    EMIT_SLOTS,
    SLOT_SEVERITY,
    EmitFunctions,
    LogFn,
    Logger,
    LoggerEntryPoint,
    noop,
)
from logtap.log_config import log_event
from logtap.models import LogEvent, LogEventData, RelaySystemEvent
from logtap.severity import DEFAULT_SEVERITY, LogConfig, LogOptions, Severity, config_field, resolve

_logger = logging.getLogger(f"{APP_NAME}.interception")

EventSink = Callable[[LogEvent], None]


class InterceptingLoggerFactory:
    """Wrapping logger factory with a process-wide root level override.

    Not a module global: construct one per LoggerEntryPoint (see tap.py
    for the process singleton) so tests can build a fresh instance.

    Attributes:
        sink: Receives one LogEvent per permitted log call. May be set
            after construction.
    """

    def __init__(
        self,
        entry_point: LoggerEntryPoint,
        sink: EventSink | None = None,
        root_level: Severity = DEFAULT_SEVERITY,
    ) -> None:
        self.sink = sink
        self._entry_point = entry_point
        self._original = entry_point.original
        self._root_level = root_level
        # Logger id -> level it was created or last reconfigured with
        self._original_levels: dict[str, Severity] = {}
        self._active = False
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def root_level(self) -> Severity:
        return self._root_level

    @property
    def original_levels(self) -> dict[str, Severity]:
        """Snapshot of the per-logger levels restored on deactivation."""
        with self._lock:
            return dict(self._original_levels)

    def __call__(self, name: str, options: LogOptions = None, use_root_level: bool = True) -> Logger:
        """Create or fetch a logger through the wrapping path.

        This is what the entry point serves while interception is active.

        Args:
            name: Logger id.
            options: Requested level or config. Recorded as the level to
                restore on deactivation.
            use_root_level: Gate on the root override (default) instead of
                the requested level.

        Returns:
            The stable Logger handle.
        """
        with self._lock:
            if not self._active:
                return self._original(name, options)

            if options is not None:
                self._original_levels[name] = resolve(options, self._original.default_level)
            elif name not in self._original_levels:
                existing = self._original.loggers.get(name)
                self._original_levels[name] = (
                    existing.level if existing is not None else self._original.default_level
                )

            return self._wrap(name, options, use_root_level)

    def activate(self) -> None:
        """Install relay wrappers on every known logger. Idempotent."""
        with self._lock:
            if self._active:
                return

            for logger in list(self._original.loggers.values()):
                self._original_levels.setdefault(logger.id, logger.level)

            self._entry_point.use(self)
            self._active = True
            self._rederive_all()

            log_event(
                logging.INFO,
                RelaySystemEvent(
                    event="interception_activated",
                    message=f"Log interception activated at {self._root_level.name}",
                    details={"loggers": len(self._original_levels), "root_level": self._root_level.name},
                ),
                _logger,
            )

    def deactivate(self) -> None:
        """Remove relay wrappers and restore each logger's own level. Idempotent."""
        with self._lock:
            if not self._active:
                return

            self._entry_point.use_original()
            self._active = False

            for logger_id, level in self._original_levels.items():
                self._original(logger_id, level)

            for logger in list(self._original.loggers.values()):
                if logger.pristine is not None:
                    logger.install(logger.pristine)
                    logger.pristine = None

            restored = len(self._original_levels)
            self._original_levels.clear()

            log_event(
                logging.INFO,
                RelaySystemEvent(
                    event="interception_deactivated",
                    message="Log interception deactivated, original levels restored",
                    details={"loggers": restored},
                ),
                _logger,
            )

    def set_root_level(self, level: LogOptions) -> None:
        """Store a new root override and reapply it to every known logger.

        While inactive only the stored value changes; it takes effect on
        the next activation.

        Args:
            level: Name, rank or config; unrecognized input means INFO.
        """
        with self._lock:
            self._root_level = resolve(level, DEFAULT_SEVERITY)
            if self._active:
                self._rederive_all()

            log_event(
                logging.INFO,
                RelaySystemEvent(
                    event="root_level_changed",
                    message=f"Root log level set to {self._root_level.name}",
                    details={"root_level": self._root_level.name, "active": self._active},
                ),
                _logger,
            )

    def _rederive_all(self) -> None:
        for logger in list(self._original.loggers.values()):
            self._wrap(logger.id, None, use_root_level=True)

    def _wrap(self, name: str, options: LogOptions, use_root_level: bool) -> Logger:
        logger = self._original(
            name,
            LogConfig(
                level=Severity.TRACE,
                label=config_field(options, "label"),
                prefix=config_field(options, "prefix"),
            ),
        )

        # Never re-snapshot: the slots may already hold relay wrappers
        if logger.pristine is None:
            logger.pristine = logger.emit_functions()

        effective = (
            self._root_level
            if use_root_level
            else self._original_levels.get(name, self._original.default_level)
        )

        logger.install(
            EmitFunctions(
                *(
                    self._relay(name, fn, SLOT_SEVERITY[slot]) if effective >= SLOT_SEVERITY[slot] else noop
                    for slot, fn in zip(EMIT_SLOTS, logger.pristine)
                )
            )
        )
        logger.apply_level(effective)
        return logger

    def _relay(self, logger_id: str, original_fn: LogFn, severity: Severity) -> LogFn:
        def relay(*args: Any) -> None:
            original_fn(*args)

            try:
                event = LogEvent(
                    data=LogEventData(level=severity.name, logger=logger_id, message=list(args)),
                )
                sink = self.sink
                if sink is not None:
                    sink(event)
            except Exception as e:
                _logger.error(
                    {
                        "event": "relay_failed",
                        "message": f"Failed to relay log event from {logger_id}: {e}",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }
                )

        return relay
