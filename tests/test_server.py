"""
Tests for the sequential accept loop.

Tests cover:
- Serving real loopback connections one at a time
- Closing connections on success and failure
- Accept failures not stopping the loop
- Optional per-connection timeout
- Peer address formatting
"""
import socket
import threading
from unittest.mock import MagicMock, patch

import pytest
from structlog.testing import capture_logs

from echoframe.exceptions import BootstrapError, HandshakeError, ReceiveError
from echoframe.server import FramingServer, format_peer


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


def talk(port: int, payload: bytes) -> bytes:
    """Connect, send payload, half-close and read until the server closes."""
    with socket.create_connection(("127.0.0.1", port), timeout=5) as client:
        client.sendall(payload)
        client.shutdown(socket.SHUT_WR)
        received = bytearray()
        while True:
            data = client.recv(4096)
            if not data:
                break
            received += data
    return bytes(received)


class TestFormatPeer:
    """Tests for peer address formatting."""

    def test_ipv4(self):
        assert format_peer(("127.0.0.1", 5000)) == "127.0.0.1:5000"

    def test_ipv6(self):
        assert format_peer(("::1", 5000, 0, 0)) == "[::1]:5000"

    def test_other(self):
        assert format_peer("/tmp/echo.sock") == "/tmp/echo.sock"


class TestFramingServerLoopback:
    """Tests over real loopback connections."""

    def test_serves_one_connection(self, listener):
        server = FramingServer(listener)
        server.start_listening()
        port = listener.getsockname()[1]

        thread = threading.Thread(target=server.handle_next, daemon=True)
        thread.start()
        assert talk(port, b"a^bc$d^e") == b"*cdf"
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert server.connections_handled == 1

    def test_serves_connections_sequentially(self, listener):
        server = FramingServer(listener)
        server.start_listening()
        port = listener.getsockname()[1]

        def serve_two():
            server.handle_next()
            server.handle_next()

        thread = threading.Thread(target=serve_two, daemon=True)
        thread.start()
        assert talk(port, b"^HAL$") == b"*IBM"
        assert talk(port, b"^\xff$") == b"*\x00"
        thread.join(timeout=5)

        assert server.connections_handled == 2

    def test_failed_connection_is_closed_and_logged(self, listener):
        server = FramingServer(listener)
        server.start_listening()
        port = listener.getsockname()[1]
        error = ReceiveError("Cannot receive data from the client", details={"peer": "x"})

        with capture_logs() as logs, \
                patch("echoframe.server.serve_connection", side_effect=error):
            thread = threading.Thread(target=server.handle_next, daemon=True)
            thread.start()
            assert talk(port, b"") == b""
            thread.join(timeout=5)

        failures = [entry for entry in logs if entry["event"] == "connection_failed"]
        assert len(failures) == 1
        assert failures[0]["error_type"] == "ReceiveError"
        assert failures[0]["log_level"] == "error"
        assert any(entry["event"] == "connection_done" for entry in logs)
        assert server.connections_handled == 1


class TestFramingServerMocked:
    """Tests with a mocked listener."""

    def test_start_listening_uses_backlog(self):
        listener = MagicMock()
        server = FramingServer(listener)
        server.start_listening()
        listener.listen.assert_called_once_with(10)
        assert server.running is True

    def test_listen_failure_is_bootstrap_error(self):
        listener = MagicMock()
        listener.listen.side_effect = OSError(98, "Address already in use")
        server = FramingServer(listener)
        with pytest.raises(BootstrapError):
            server.start_listening()
        assert server.running is False

    def test_accept_failure_returns_false(self):
        listener = MagicMock()
        listener.accept.side_effect = OSError(24, "Too many open files")
        server = FramingServer(listener)
        server.running = True

        with capture_logs() as logs:
            assert server.handle_next() is False

        assert logs[0]["event"] == "accept_failed"

    def test_connection_closed_after_handshake_error(self):
        conn = MagicMock()
        listener = MagicMock()
        listener.accept.return_value = (conn, ("10.0.0.2", 4242))
        server = FramingServer(listener)

        with patch("echoframe.server.serve_connection", side_effect=HandshakeError("no ack")) as serve:
            assert server.handle_next() is True

        serve.assert_called_once_with(conn, peer="10.0.0.2:4242")
        conn.close.assert_called_once()
        assert server.connections_handled == 1

    def test_unexpected_error_still_closes_connection(self):
        conn = MagicMock()
        listener = MagicMock()
        listener.accept.return_value = (conn, ("10.0.0.2", 4242))
        server = FramingServer(listener)

        with patch("echoframe.server.serve_connection", side_effect=RuntimeError("bug")):
            with pytest.raises(RuntimeError):
                server.handle_next()

        conn.close.assert_called_once()

    def test_io_timeout_applied(self):
        conn = MagicMock()
        listener = MagicMock()
        listener.accept.return_value = (conn, ("10.0.0.2", 4242))
        server = FramingServer(listener, io_timeout_sec=2.5)

        with patch("echoframe.server.serve_connection"):
            server.handle_next()

        conn.settimeout.assert_called_once_with(2.5)

    def test_no_timeout_by_default(self):
        conn = MagicMock()
        listener = MagicMock()
        listener.accept.return_value = (conn, ("10.0.0.2", 4242))
        server = FramingServer(listener)

        with patch("echoframe.server.serve_connection"):
            server.handle_next()

        conn.settimeout.assert_not_called()

    @pytest.mark.parametrize("timeout", [-1, 0])
    def test_non_positive_timeout_rejected_before_accept(self, timeout):
        listener = MagicMock()

        with pytest.raises(ValueError):
            FramingServer(listener, io_timeout_sec=timeout)

        listener.accept.assert_not_called()

    def test_negative_timeout_from_settings_rejected(self):
        with patch("echoframe.server.settings") as settings:
            settings.io_timeout_sec = -1
            with pytest.raises(ValueError):
                FramingServer(MagicMock())

    def test_serve_forever_survives_accept_failure(self):
        conn = MagicMock()
        listener = MagicMock()
        server = FramingServer(listener)
        calls = []

        def accept():
            calls.append(1)
            if len(calls) == 1:
                raise OSError(103, "Software caused connection abort")
            if len(calls) == 2:
                return conn, ("10.0.0.3", 5151)
            server.running = False
            raise OSError(9, "Bad file descriptor")

        listener.accept.side_effect = accept

        with patch("echoframe.server.serve_connection") as serve:
            server.serve_forever()

        assert len(calls) == 3
        serve.assert_called_once()
        conn.close.assert_called_once()
        assert server.connections_handled == 1

    def test_stop_closes_listener(self):
        listener = MagicMock()
        listener.shutdown.side_effect = OSError(107, "Transport endpoint is not connected")
        server = FramingServer(listener)
        server.running = True
        server.stop()
        assert server.running is False
        listener.close.assert_called_once()
