"""Custom exceptions for logtap.

Exceptions are organized by how far they travel:

Recovered locally (logged, never raised to callers):
    - Bind conflicts on a single candidate port
    - Invalid control directives
    - Serialization and delivery failures during broadcast

Surfaced to callers:
    - BootstrapExhaustedError: No candidate port could be bound
    - MalformedControlEnvelopeError: Inbound frame is not JSON
    - ConfigurationError: Strict config loading failed

Usage:
    from logtap.exceptions import BootstrapExhaustedError
"""

from __future__ import annotations

__all__ = [
    "BootstrapExhaustedError",
    "ConfigurationError",
    "LogTapError",
    "MalformedControlEnvelopeError",
]

from collections.abc import Sequence


class LogTapError(Exception):
    """Base class for all logtap errors."""


class BootstrapExhaustedError(LogTapError):
    """Raised when the relay listener could not bind any candidate port.

    Attributes:
        ports: Every port that was attempted, in order.
    """

    def __init__(self, ports: Sequence[int]) -> None:
        self.ports = list(ports)
        joined = ", ".join(str(port) for port in self.ports)
        super().__init__(f"Failed to start log relay on ports: {joined}")


class MalformedControlEnvelopeError(LogTapError):
    """Raised when an inbound viewer frame cannot be parsed as JSON.

    Distinct from a well-formed message that fails validation, which is
    ignored silently. A frame that is not JSON at all points to a
    protocol-level problem on the viewer side.

    Attributes:
        raw: The offending payload, truncated for logging.
    """

    # Characters of the payload kept for diagnostics
    _PREVIEW_LENGTH = 200

    def __init__(self, raw: str, reason: str) -> None:
        self.raw = raw[: self._PREVIEW_LENGTH]
        super().__init__(f"Malformed control message: {reason}")


class ConfigurationError(LogTapError):
    """Raised when the relay configuration is missing or invalid."""
