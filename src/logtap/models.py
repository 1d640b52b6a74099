"""Pydantic models for relay wire messages and internal system events.

Outbound (relay -> viewer), both wrapped in {"path": ..., "data": {...}}:
    - WelcomeEvent: sent once per connection right after accept
    - LogEvent: sent for every permitted log call

Inbound (viewer -> relay):
    - LoggingUpdate: {"command": "logging/update", "data": {"loggers": [...]}}

Internal:
    - RelaySystemEvent: structured record for the relay's own log output
"""

from __future__ import annotations

__all__ = [
    "ControlLevel",
    "LogEvent",
    "LogEventData",
    "LoggerDirective",
    "LoggingUpdate",
    "LoggingUpdateData",
    "RelayEvent",
    "RelaySystemEvent",
    "WelcomeData",
    "WelcomeEvent",
]

import time
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_serializer

from logtap.constants import RELAY_PATH, THREAD_PLACEHOLDER, WELCOME_MESSAGE

# Levels a viewer may request; SILENT and TRACE are not offered
ControlLevel = Literal["ERROR", "WARN", "INFO", "DEBUG"]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# =============================================================================
# Outbound
# =============================================================================


class LogEventData(BaseModel):
    """Payload of one relayed log line."""

    model_config = ConfigDict(frozen=True)

    level: Literal["ERROR", "WARN", "INFO", "DEBUG", "TRACE"]
    logger: str
    thread: str = THREAD_PLACEHOLDER
    type: Literal["log"] = "log"
    message: list[Any] = Field(description="Original call arguments, unchanged")
    ts: int = Field(default_factory=_now_ms, description="Epoch milliseconds")

    @field_serializer("message", when_used="json")
    def serialize_message(self, message: list[Any]) -> list[Any]:
        # Exceptions have no JSON form; other unknown objects still fail serialization
        return [f"{type(arg).__name__}: {arg}" if isinstance(arg, BaseException) else arg for arg in message]


class LogEvent(BaseModel):
    """Envelope for a relayed log line."""

    model_config = ConfigDict(frozen=True)

    path: str = RELAY_PATH
    data: LogEventData


class WelcomeData(BaseModel):
    """Payload of the greeting sent to a newly accepted viewer."""

    model_config = ConfigDict(frozen=True)

    type: Literal["welcome"] = "welcome"
    message: str = WELCOME_MESSAGE
    path: str
    remoteAddress: str
    timestamp: str = Field(default_factory=_now_iso, description="ISO 8601 timestamp (UTC)")


class WelcomeEvent(BaseModel):
    """Envelope for the greeting."""

    model_config = ConfigDict(frozen=True)

    path: str
    data: WelcomeData


RelayEvent = Union[LogEvent, WelcomeEvent]


# =============================================================================
# Inbound
# =============================================================================


class LoggerDirective(BaseModel):
    """One per-logger entry of a logging/update command."""

    logger: StrictStr
    level: ControlLevel
    group: StrictBool


class LoggingUpdateData(BaseModel):
    loggers: list[LoggerDirective]


class LoggingUpdate(BaseModel):
    """Control message sent by a viewer to change log levels."""

    command: Literal["logging/update"]
    data: LoggingUpdateData


# =============================================================================
# Internal
# =============================================================================


class RelaySystemEvent(BaseModel):
    """One relay system log entry.

    Note: 'time' is None when created, populated by ISO8601Formatter during logging.
    """

    # --- core ---
    time: Optional[str] = Field(
        None,
        description="ISO 8601 timestamp (UTC), added by formatter during serialization",
    )
    event: Optional[str] = Field(
        None,
        description="Machine-friendly event name, e.g. 'relay_started', 'viewer_attached'",
    )
    message: str = Field(description="Human-readable log message")

    # --- listener context ---
    host: Optional[str] = Field(None, description="Interface the relay is bound to")
    port: Optional[int] = Field(None, description="Port involved in the event")
    ports: Optional[list[int]] = Field(None, description="Candidate ports, in order")
    remote_address: Optional[str] = Field(None, description="Viewer address, if known")
    connections: Optional[int] = Field(None, description="Attached viewers after the event")

    # --- errors ---
    error_type: Optional[str] = Field(None, description="Exception class name")
    error_message: Optional[str] = Field(None, description="Exception message")

    # --- extra ---
    details: Optional[dict[str, Any]] = Field(None, description="Event-specific extra fields")
