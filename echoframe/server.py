"""
Sequential accept loop for the framing server.

Connections are served strictly one at a time: accept, serve to completion,
close, then accept the next. A failing connection is logged and closed; it
never stops the loop.
"""
from __future__ import annotations

import socket
from typing import Any, Optional

import structlog

from echoframe.config import settings
from echoframe.engine.connection import serve_connection
from echoframe.engine.listener import CONNECTION_BACKLOG
from echoframe.exceptions import BootstrapError, SessionError

logger = structlog.get_logger()


def format_peer(address: Any) -> str:
    """Best-effort textual peer address for logging"""
    if isinstance(address, tuple) and len(address) >= 2:
        host, port = address[0], address[1]
        if len(address) == 4 or ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(address)


class FramingServer:
    """
    Accept loop around a bound listener socket.

    The listener comes from create_listener(); this class only marks it
    passive, accepts, and hands each connection to serve_connection().
    """

    def __init__(
        self,
        listener: socket.socket,
        backlog: int = CONNECTION_BACKLOG,
        io_timeout_sec: Optional[float] = None,
    ):
        if io_timeout_sec is None:
            io_timeout_sec = settings.io_timeout_sec
        if io_timeout_sec is not None and io_timeout_sec <= 0:
            raise ValueError(f"io_timeout_sec must be positive, got {io_timeout_sec}")

        self.listener = listener
        self.backlog = backlog
        self.io_timeout_sec = io_timeout_sec
        self.running = False
        self.connections_handled = 0

    def start_listening(self) -> None:
        """Mark the listener passive with the fixed backlog."""
        try:
            self.listener.listen(self.backlog)
        except OSError as e:
            raise BootstrapError(
                "An error occurred while listening for connections",
                details={"backlog": self.backlog, "error": str(e)},
            ) from e
        self.running = True

    def handle_next(self) -> bool:
        """
        Accept and fully serve one connection.

        Returns:
            True if a connection was served, False if accept() failed
        """
        try:
            conn, address = self.listener.accept()
        except OSError as e:
            if self.running:
                logger.error("accept_failed", error=str(e), error_type=type(e).__name__)
            return False

        peer = format_peer(address)
        logger.info("connection_accepted", peer=peer)

        try:
            if self.io_timeout_sec is not None:
                conn.settimeout(self.io_timeout_sec)
            serve_connection(conn, peer=peer)
        except SessionError as e:
            logger.error(
                "connection_failed",
                peer=peer,
                error=e.message,
                error_type=type(e).__name__,
                details=e.details,
            )
        finally:
            conn.close()

        self.connections_handled += 1
        logger.info("connection_done", peer=peer)
        return True

    def serve_forever(self) -> None:
        """Listen and serve connections until stop() is called."""
        if not self.running:
            self.start_listening()
        while self.running:
            self.handle_next()

    def stop(self) -> None:
        """Stop the loop and release the listener"""
        self.running = False
        try:
            self.listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Not connected/listening; close() below still releases it
            pass
        self.listener.close()
