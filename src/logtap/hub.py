"""Viewer connection hub.

Tracks attached viewers and owns the interception lifecycle:
- first viewer attached (0 -> 1): interception activated
- last viewer detached (1 -> 0): interception deactivated
- anything in between leaves interception alone

Also validates inbound control messages and fans log events out to
every attached viewer.
"""

from __future__ import annotations

__all__ = [
    "ConnectionHub",
    "Interceptor",
    "Viewer",
]

import json
import logging
import threading
from typing import Protocol

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from logtap.constants import APP_NAME, ROOT_LOGGER
from logtap.exceptions import MalformedControlEnvelopeError
from logtap.log_config import log_event
from logtap.models import LoggingUpdate, RelayEvent, RelaySystemEvent
from logtap.severity import LogOptions

_logger = logging.getLogger(f"{APP_NAME}.hub")


class Viewer(Protocol):
    """One attached remote connection.

    send() may be called from any thread and must not block.
    """

    def send(self, payload: str) -> None: ...


class Interceptor(Protocol):
    """The part of InterceptingLoggerFactory the hub drives."""

    def activate(self) -> None: ...

    def deactivate(self) -> None: ...

    def set_root_level(self, level: LogOptions) -> None: ...


class ConnectionHub:
    """Live viewer set with interception gating and broadcast.

    Membership changes and the activation transitions they trigger run
    under one lock, so a detach racing an attach can never leave
    interception in the wrong state.
    """

    def __init__(self, interceptor: Interceptor) -> None:
        self._interceptor = interceptor
        self._connections: set[Viewer] = set()
        # Re-entrant: a relayed log line may broadcast from inside a transition
        self._lock = threading.RLock()

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def attach(self, viewer: Viewer) -> None:
        """Add a viewer; activates interception when it is the first one."""
        with self._lock:
            if viewer in self._connections:
                return
            self._connections.add(viewer)
            count = len(self._connections)
            if count == 1:
                self._interceptor.activate()

        log_event(
            logging.INFO,
            RelaySystemEvent(event="viewer_attached", message="Viewer attached", connections=count),
            _logger,
        )

    def detach(self, viewer: Viewer) -> None:
        """Remove a viewer; deactivates interception when it was the last one."""
        with self._lock:
            if viewer not in self._connections:
                return
            self._connections.discard(viewer)
            count = len(self._connections)
            if count == 0:
                self._interceptor.deactivate()

        log_event(
            logging.INFO,
            RelaySystemEvent(event="viewer_detached", message="Viewer detached", connections=count),
            _logger,
        )

    def handle_message(self, raw: str | bytes) -> None:
        """Apply one inbound control frame.

        Args:
            raw: Frame payload as received.

        Raises:
            MalformedControlEnvelopeError: If the frame is not valid JSON.
                Well-formed frames that fail validation are ignored.
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            parsed = json.loads(text)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError is a ValueError; oversized ints and deep nesting raise the others
            raise MalformedControlEnvelopeError(text, str(e)) from e

        try:
            update = LoggingUpdate.model_validate(parsed)
        except ValidationError as e:
            _logger.debug(f"Ignoring invalid control message: {e.error_count()} validation error(s)")
            return

        for directive in update.data.loggers:
            # Per-logger control is not supported; only the root override
            if directive.logger == ROOT_LOGGER:
                self._interceptor.set_root_level(directive.level)

    def broadcast(self, event: RelayEvent) -> None:
        """Send an event to every attached viewer.

        Serialized once. A serialization failure drops the event for
        everyone; a send failure only affects that viewer.
        """
        try:
            payload = event.model_dump_json()
        except (PydanticSerializationError, TypeError, ValueError) as e:
            _logger.error(
                {
                    "event": "serialization_failed",
                    "message": f"Failed to serialize log event: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            return

        with self._lock:
            viewers = list(self._connections)

        for viewer in viewers:
            try:
                viewer.send(payload)
            except Exception as e:
                _logger.error(
                    {
                        "event": "delivery_failed",
                        "message": f"Failed to broadcast message: {e}",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }
                )
