"""Shared fixtures for logtap tests.

Every test builds its own facility, entry point and interceptor so the
process-wide singleton is never touched.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from logtap.facility import LogFactory, Logger, LoggerEntryPoint
from logtap.interception import InterceptingLoggerFactory
from logtap.models import LogEvent


@pytest.fixture
def writes() -> list[tuple[str, str, tuple[Any, ...]]]:
    """Lines that reached the facility's writer: (logger id, slot, args)."""
    return []


@pytest.fixture
def factory(writes: list[tuple[str, str, tuple[Any, ...]]]) -> LogFactory:
    """Log factory recording writes instead of going to stdlib logging."""

    def record(logger: Logger, slot: str, args: tuple[Any, ...]) -> None:
        writes.append((logger.id, slot, args))

    return LogFactory(namespace="logtap-tests", writer=record)


@pytest.fixture
def entry_point(factory: LogFactory) -> LoggerEntryPoint:
    return LoggerEntryPoint(factory)


@pytest.fixture
def events() -> list[LogEvent]:
    """Events handed to the broadcast sink."""
    return []


@pytest.fixture
def interceptor(entry_point: LoggerEntryPoint, events: list[LogEvent]) -> InterceptingLoggerFactory:
    return InterceptingLoggerFactory(entry_point, sink=events.append)


@pytest.fixture
def emit_all() -> Callable[[Logger], None]:
    """Invoke every emit slot of a logger once."""

    def call(logger: Logger) -> None:
        logger.error("Error message")
        logger.warn("Warn message")
        logger.info("Info message")
        logger.log("Log message")
        logger.debug("Debug message")
        logger.trace("Trace message")

    return call
