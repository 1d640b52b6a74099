"""Tests for the relay listener: port fallback, welcome and the WebSocket endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import time
from typing import Any, Callable, Iterator
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from logtap.constants import RELAY_PATH, THREAD_PLACEHOLDER, WELCOME_MESSAGE
from logtap.exceptions import BootstrapExhaustedError
from logtap.facility import LogFactory, Logger
from logtap.listener import (
    RelayListener,
    _report_serve_failure,
    bind_first_available,
    bind_socket,
    build_welcome_event,
    create_relay_app,
    start_with_retry,
)
from logtap.severity import Severity
from logtap.tap import LogTap


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _fake_bind(free: set[int], attempts: list[int]) -> Callable[[str, int], Any]:
    """Binder that only succeeds for ports in ``free``."""

    def bind(host: str, port: int) -> Any:
        attempts.append(port)
        if port not in free:
            raise OSError(98, "Address already in use")
        return object()

    return bind


def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


class TestBindFirstAvailable:
    """Ports are tried strictly in order, stopping at the first success."""

    def test_first_port_free(self) -> None:
        attempts: list[int] = []

        port, sock = bind_first_available([5000, 5001], bind=_fake_bind({5000, 5001}, attempts))

        assert port == 5000
        assert sock is not None
        assert attempts == [5000]

    def test_falls_back_to_next_port(self) -> None:
        attempts: list[int] = []

        port, _ = bind_first_available([5000, 5001, 5002], bind=_fake_bind({5001}, attempts))

        assert port == 5001
        assert attempts == [5000, 5001]

    def test_all_ports_fail(self) -> None:
        attempts: list[int] = []

        with pytest.raises(BootstrapExhaustedError) as exc_info:
            bind_first_available([5000, 6000, 7000], bind=_fake_bind(set(), attempts))

        assert exc_info.value.ports == [5000, 6000, 7000]
        assert "5000, 6000, 7000" in str(exc_info.value)
        assert attempts == [5000, 6000, 7000]

    def test_no_candidates(self) -> None:
        with pytest.raises(BootstrapExhaustedError) as exc_info:
            bind_first_available([], bind=_fake_bind({5000}, []))

        assert exc_info.value.ports == []

    def test_real_port_in_use_is_skipped(self) -> None:
        busy = bind_socket("127.0.0.1", 0)
        busy_port = busy.getsockname()[1]
        free_port = _free_port()
        try:
            port, sock = bind_first_available([busy_port, free_port], host="127.0.0.1")
            sock.close()
        finally:
            busy.close()

        assert port == free_port


class TestBindSocket:
    def test_listening_and_non_blocking(self) -> None:
        sock = bind_socket("127.0.0.1", 0)
        try:
            assert sock.getsockname()[1] > 0
            assert sock.getblocking() is False
        finally:
            sock.close()

    def test_conflict_raises_oserror(self) -> None:
        busy = bind_socket("127.0.0.1", 0)
        try:
            with pytest.raises(OSError):
                bind_socket("127.0.0.1", busy.getsockname()[1])
        finally:
            busy.close()


class TestWelcomeEvent:
    def test_contents(self) -> None:
        event = build_welcome_event(RELAY_PATH, "10.1.2.3")

        assert event is not None
        assert event.path == RELAY_PATH
        assert event.data.type == "welcome"
        assert event.data.message == WELCOME_MESSAGE
        assert event.data.path == RELAY_PATH
        assert event.data.remoteAddress == "10.1.2.3"
        assert event.data.timestamp.endswith("Z")

    @pytest.mark.parametrize(("path", "remote"), [(None, "10.1.2.3"), (RELAY_PATH, None), ("", ""), (None, None)])
    def test_missing_context_means_no_welcome(self, path: str | None, remote: str | None) -> None:
        assert build_welcome_event(path, remote) is None


@pytest.fixture
def tap() -> LogTap:
    """LogTap writing to a throwaway stdlib namespace."""
    return LogTap(factory=LogFactory(namespace="logtap-listener-tests"))


@pytest.fixture
def client(tap: LogTap) -> Iterator[TestClient]:
    with TestClient(create_relay_app(tap.hub)) as test_client:
        yield test_client


class TestRelayEndpoint:
    """End-to-end behavior of the WebSocket endpoint."""

    def test_welcome_is_first_message(self, tap: LogTap, client: TestClient) -> None:
        with client.websocket_connect(RELAY_PATH) as ws:
            welcome = ws.receive_json()

            assert welcome["path"] == RELAY_PATH
            assert welcome["data"]["type"] == "welcome"
            assert welcome["data"]["path"] == RELAY_PATH
            assert welcome["data"]["remoteAddress"] == "testclient"
            assert tap.interceptor.active is True
            assert tap.hub.connection_count == 1

    def test_log_lines_are_relayed(self, tap: LogTap, client: TestClient) -> None:
        logger: Logger = tap.get_logger("svc")

        with client.websocket_connect(RELAY_PATH) as ws:
            ws.receive_json()
            logger.info("hello", 1, {"k": "v"})

            event = ws.receive_json()

        assert event["path"] == RELAY_PATH
        assert event["data"]["level"] == "INFO"
        assert event["data"]["logger"] == "svc"
        assert event["data"]["thread"] == THREAD_PLACEHOLDER
        assert event["data"]["type"] == "log"
        assert event["data"]["message"] == ["hello", 1, {"k": "v"}]

    def test_control_message_changes_root_level(self, tap: LogTap, client: TestClient) -> None:
        logger = tap.get_logger("svc")
        update = {
            "command": "logging/update",
            "data": {"loggers": [{"logger": "root", "level": "WARN", "group": False}]},
        }

        with client.websocket_connect(RELAY_PATH) as ws:
            ws.receive_json()
            ws.send_text(json.dumps(update))
            _wait_for(lambda: tap.interceptor.root_level == Severity.WARN)

            logger.info("filtered out")
            logger.warn("kept")
            event = ws.receive_json()

        assert event["data"]["level"] == "WARN"
        assert event["data"]["message"] == ["kept"]

    def test_malformed_frame_keeps_connection_open(self, tap: LogTap, client: TestClient) -> None:
        logger = tap.get_logger("svc")

        with client.websocket_connect(RELAY_PATH) as ws:
            ws.receive_json()
            ws.send_text("this is not json")
            ws.send_text(json.dumps({"command": "logging/update", "data": {"loggers": []}}))

            logger.error("still connected")
            event = ws.receive_json()

        assert event["data"]["message"] == ["still connected"]

    @pytest.mark.parametrize(
        "frame",
        [
            pytest.param("1" * 5000, id="int_too_long"),
            pytest.param("[" * 100000, id="nested_too_deep"),
        ],
    )
    def test_unparseable_frame_keeps_viewer_attached(self, tap: LogTap, client: TestClient, frame: str) -> None:
        """Frames json.loads rejects with non-decode errors are dropped like any malformed frame."""
        logger = tap.get_logger("svc")

        with client.websocket_connect(RELAY_PATH) as ws:
            ws.receive_json()
            ws.send_text(frame)
            ws.send_text(
                json.dumps(
                    {
                        "command": "logging/update",
                        "data": {"loggers": [{"logger": "root", "level": "DEBUG", "group": False}]},
                    }
                )
            )
            # The update is only applied if the handler survived the bad frame
            _wait_for(lambda: tap.interceptor.root_level == Severity.DEBUG)

            logger.error("still connected")
            event = ws.receive_json()

            assert tap.hub.connection_count == 1
            assert tap.interceptor.active is True

        assert event["data"]["message"] == ["still connected"]

    def test_disconnect_restores_original_behavior(
        self, tap: LogTap, client: TestClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = tap.get_logger("svc", "WARN")

        with client.websocket_connect(RELAY_PATH) as ws:
            ws.receive_json()
            assert logger.level == Severity.INFO
            snapshot = logger.pristine

        _wait_for(lambda: tap.hub.connection_count == 0)
        assert tap.interceptor.active is False
        assert logger.level == Severity.WARN
        assert logger.pristine is None
        assert snapshot is not None
        assert all(a is b for a, b in zip(logger.emit_functions(), snapshot))

        with caplog.at_level(logging.DEBUG, logger="logtap-listener-tests"):
            logger.info("below own level")
            logger.warn("at own level")
        assert [record.getMessage() for record in caplog.records] == ["at own level"]

    def test_viewer_without_remote_address_gets_logs_but_no_welcome(self, tap: LogTap) -> None:
        """No client address means no greeting; the viewer is still attached."""
        relay_app = create_relay_app(tap.hub)

        async def without_client(scope: dict[str, Any], receive: Any, send: Any) -> None:
            await relay_app({**scope, "client": None}, receive, send)

        logger = tap.get_logger("svc")

        with TestClient(without_client) as anonymous_client:
            with anonymous_client.websocket_connect(RELAY_PATH) as ws:
                _wait_for(lambda: tap.hub.connection_count == 1)
                logger.info("first frame")

                event = ws.receive_json()

        assert event["data"]["type"] == "log"
        assert event["data"]["message"] == ["first frame"]

    def test_second_viewer_keeps_interception(self, tap: LogTap, client: TestClient) -> None:
        with client.websocket_connect(RELAY_PATH) as first:
            first.receive_json()
            with client.websocket_connect(RELAY_PATH) as second:
                second.receive_json()
                assert tap.hub.connection_count == 2

            _wait_for(lambda: tap.hub.connection_count == 1)
            assert tap.interceptor.active is True

            tap.get_logger("svc").error("after second left")
            assert first.receive_json()["data"]["message"] == ["after second left"]


class TestStartWithRetry:
    @pytest.mark.asyncio
    async def test_starts_and_closes(self, tap: LogTap) -> None:
        port = _free_port()

        listener = await start_with_retry(tap.hub, [port], host="127.0.0.1")
        try:
            assert listener.port == port
            assert listener.url == f"ws://127.0.0.1:{port}{RELAY_PATH}"
            assert not listener.task.done()
        finally:
            await listener.close()

        assert listener.task.done()

    @pytest.mark.asyncio
    async def test_exhausted(self, tap: LogTap) -> None:
        with pytest.raises(BootstrapExhaustedError):
            await start_with_retry(tap.hub, [5000, 5001], bind=_fake_bind(set(), []))


class TestServeFailureReport:
    """The serve task's done-callback reports failures only."""

    @pytest.mark.asyncio
    async def test_failed_serve_is_logged(self) -> None:
        # Arrange
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        future.set_exception(RuntimeError("startup failed"))

        # Act
        with patch("logtap.listener.log_event") as log_event:
            _report_serve_failure(4000)(future)

        # Assert
        level, event = log_event.call_args.args[:2]
        assert level == logging.ERROR
        assert event.event == "relay_serve_failed"
        assert event.port == 4000
        assert event.error_type == "RuntimeError"
        assert event.error_message == "startup failed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", ["result", "cancelled"])
    async def test_clean_exit_is_not_logged(self, outcome: str) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if outcome == "result":
            future.set_result(None)
        else:
            future.cancel()

        with patch("logtap.listener.log_event") as log_event:
            _report_serve_failure(4000)(future)

        log_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_after_failed_serve(self, tap: LogTap) -> None:
        """close() still releases the socket when the server task raised."""
        sock = bind_socket("127.0.0.1", 0)

        async def failing_serve() -> None:
            raise RuntimeError("startup failed")

        task = asyncio.create_task(failing_serve())
        task.add_done_callback(_report_serve_failure(sock.getsockname()[1]))
        listener = RelayListener(host="127.0.0.1", port=sock.getsockname()[1], server=MagicMock(), task=task, sock=sock)

        await listener.close()

        assert sock.fileno() == -1
