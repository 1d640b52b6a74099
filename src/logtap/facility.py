"""Per-module logger facility.

Applications obtain loggers by name through a LoggerEntryPoint:

    log = LoggerEntryPoint(LogFactory())
    logger = log("orders", "DEBUG")
    logger.info("order placed", order_id)

Every call with the same name returns the same mutable Logger handle.
A handle carries six emit slots (error, warn, info, log, debug, trace);
slots below the handle's level hold a no-op. Because handles are
mutated in place, anything that swaps a slot is observed by every
holder of the handle.

The entry point decides which factory serves requests. It starts on the
original LogFactory and can be pointed at a wrapping factory (see
interception.py) and back again without mutating the original.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_NAMESPACE",
    "EMIT_SLOTS",
    "EmitFunctions",
    "LOGGING_LEVELS",
    "LogFactory",
    "LogFn",
    "Logger",
    "LoggerEntryPoint",
    "LoggerFactoryFn",
    "SLOT_SEVERITY",
    "TRACE_LOG_LEVEL",
    "noop",
]

import logging
import threading
from typing import Any, Callable, NamedTuple, Protocol

from logtap.constants import APP_NAME
from logtap.severity import (
    DEFAULT_SEVERITY,
    LogOptions,
    Severity,
    config_field,
    resolve,
)

LogFn = Callable[..., None]

# Stdlib parent of facility loggers, below the package logger
DEFAULT_NAMESPACE = f"{APP_NAME}.app"

# Writer receives the handle, the slot name and the raw call arguments
Writer = Callable[["Logger", str, tuple[Any, ...]], None]

EMIT_SLOTS: tuple[str, ...] = ("error", "warn", "info", "log", "debug", "trace")

# log and info share the INFO rank
SLOT_SEVERITY: dict[str, Severity] = {
    "error": Severity.ERROR,
    "warn": Severity.WARN,
    "info": Severity.INFO,
    "log": Severity.INFO,
    "debug": Severity.DEBUG,
    "trace": Severity.TRACE,
}

# stdlib has no TRACE; it sits below DEBUG(10)
TRACE_LOG_LEVEL = 5
logging.addLevelName(TRACE_LOG_LEVEL, "TRACE")

_STDLIB_LEVELS: dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "log": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE_LOG_LEVEL,
}

# Name -> rank table exposed as LogFactory.levels (aliases included)
LOGGING_LEVELS: dict[str, int] = {
    **{severity.name: int(severity) for severity in Severity},
    "SILLY": int(Severity.TRACE),
    "VERBOSE": int(Severity.TRACE),
}


def noop(*args: Any) -> None:
    """Emit function for disabled severities."""


class EmitFunctions(NamedTuple):
    """The six emit slots of a logger, swapped as one unit."""

    error: LogFn
    warn: LogFn
    info: LogFn
    log: LogFn
    debug: LogFn
    trace: LogFn


class Logger:
    """Named logger handle.

    Emit arguments are relayed to viewers as JSON. Exceptions are sent as
    "Type: message" strings; a call carrying any other object without a
    JSON form is still logged locally but not relayed.

    Attributes:
        id: Unique logger name.
        label: Display label used for the backing stdlib logger.
        prefix: Optional text prepended to every line.
        level: Current gating severity.
        pristine: Saved emit functions while interception is active.
    """

    def __init__(self, logger_id: str, label: str | None = None, prefix: str | None = None) -> None:
        self.id = logger_id
        self.label = label or logger_id
        self.prefix = prefix
        self.level = Severity.SILENT
        self.pristine: EmitFunctions | None = None

        self.error: LogFn = noop
        self.warn: LogFn = noop
        self.info: LogFn = noop
        self.log: LogFn = noop
        self.debug: LogFn = noop
        self.trace: LogFn = noop

        self._error = False
        self._warn = False
        self._info = False
        self._debug = False
        self._trace = False

    def __call__(self, *args: Any) -> None:
        self.log(*args)

    def __repr__(self) -> str:
        return f"Logger(id={self.id!r}, level={self.level.name})"

    def emit_functions(self) -> EmitFunctions:
        """Return the currently installed emit slots."""
        return EmitFunctions(*(getattr(self, slot) for slot in EMIT_SLOTS))

    def install(self, functions: EmitFunctions) -> None:
        """Replace all six emit slots."""
        for slot, fn in zip(EMIT_SLOTS, functions):
            setattr(self, slot, fn)

    def apply_level(self, level: Severity) -> None:
        """Set the visible level and the boolean convenience flags."""
        self.level = level
        self._error = level >= Severity.ERROR
        self._warn = level >= Severity.WARN
        self._info = level >= Severity.INFO
        self._debug = level >= Severity.DEBUG
        self._trace = level >= Severity.TRACE


class LoggerFactoryFn(Protocol):
    """Anything that returns-or-creates a Logger by name."""

    def __call__(self, name: str, options: LogOptions = None) -> Logger: ...


class LogFactory:
    """Original logger factory.

    Creates handles on first reference and reconfigures them in place
    when called again with options. Lines are written to stdlib logging
    under ``<namespace>.<label>`` unless a custom writer is supplied.
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        default_level: Severity = DEFAULT_SEVERITY,
        writer: Writer | None = None,
    ) -> None:
        self.namespace = namespace
        self.default_level = default_level
        self.loggers: dict[str, Logger] = {}
        self._writer: Writer = writer or self._write_stdlib
        self._lock = threading.RLock()

        # Gating happens on the handle; stdlib must pass everything through
        logging.getLogger(namespace).setLevel(TRACE_LOG_LEVEL)

    @property
    def levels(self) -> dict[str, int]:
        return dict(LOGGING_LEVELS)

    def __call__(self, name: str, options: LogOptions = None) -> Logger:
        """Return the logger for ``name``, creating or reconfiguring it.

        Args:
            name: Logger id.
            options: Level name, rank, LogConfig or config mapping. When
                omitted, an existing logger is returned unchanged.

        Returns:
            The stable Logger handle for this name.
        """
        with self._lock:
            logger = self.loggers.get(name)
            if logger is None:
                logger = Logger(
                    name,
                    label=config_field(options, "label"),
                    prefix=config_field(options, "prefix"),
                )
                self.loggers[name] = logger
            elif options is None:
                return logger
            else:
                label = config_field(options, "label")
                prefix = config_field(options, "prefix")
                if label:
                    logger.label = label
                if prefix is not None:
                    logger.prefix = prefix

            self._configure(logger, resolve(options, self.default_level))
            return logger

    def _configure(self, logger: Logger, level: Severity) -> None:
        logger.install(
            EmitFunctions(
                *(
                    self._emitter(logger, slot) if level >= SLOT_SEVERITY[slot] else noop
                    for slot in EMIT_SLOTS
                )
            )
        )
        logger.apply_level(level)

    def _emitter(self, logger: Logger, slot: str) -> LogFn:
        rank = SLOT_SEVERITY[slot]
        writer = self._writer

        def emit(*args: Any) -> None:
            # The handle's level can drop below the one this slot was built for
            if logger.level >= rank:
                writer(logger, slot, args)

        return emit

    def _write_stdlib(self, logger: Logger, slot: str, args: tuple[Any, ...]) -> None:
        text = " ".join(str(arg) for arg in args)
        if logger.prefix:
            text = f"{logger.prefix} {text}"
        logging.getLogger(f"{self.namespace}.{logger.label}").log(_STDLIB_LEVELS[slot], "%s", text)


class LoggerEntryPoint:
    """Callable that serves logger requests from the selected factory.

    Starts on the original factory. A wrapping factory can be selected with
    use() and dropped again with use_original(); the original factory is
    never modified, so nothing of the wrapper survives a switch back.
    """

    def __init__(self, original: LogFactory) -> None:
        self._original = original
        self._current: LoggerFactoryFn = original

    @property
    def original(self) -> LogFactory:
        return self._original

    @property
    def current(self) -> LoggerFactoryFn:
        return self._current

    @property
    def wrapped(self) -> bool:
        return self._current is not self._original

    @property
    def loggers(self) -> dict[str, Logger]:
        return self._original.loggers

    @property
    def levels(self) -> dict[str, int]:
        return self._original.levels

    def __call__(self, name: str, options: LogOptions = None) -> Logger:
        return self._current(name, options)

    def use(self, factory: LoggerFactoryFn) -> None:
        self._current = factory

    def use_original(self) -> None:
        self._current = self._original
