"""
Connection Protocol Engine - serves one accepted connection to completion.

Sends the ``*`` acknowledgment, then feeds every received byte through the
framing state machine, echoing payload bytes one at a time as they are
decoded. The caller owns the connection and must close it on every exit path.
"""
from __future__ import annotations

from typing import Optional

import structlog

from echoframe.config import settings
from echoframe.engine.framing import HANDSHAKE_BYTE, ProcessingState, advance
from echoframe.exceptions import HandshakeError, ReceiveError, SendError

logger = structlog.get_logger()

_HANDSHAKE = bytes((HANDSHAKE_BYTE,))


def send_handshake(connection, peer: str = "unknown") -> None:
    """Send the single acknowledgment byte or raise HandshakeError."""
    try:
        sent = connection.send(_HANDSHAKE)
    except OSError as e:
        raise HandshakeError(
            "Cannot send server confirmation",
            details={"peer": peer, "error": str(e), "error_type": type(e).__name__},
        ) from e

    if sent < 1:
        raise HandshakeError(
            "Cannot send server confirmation",
            details={"peer": peer, "sent": sent},
        )


def _echo_byte(connection, value: int, peer: str) -> None:
    try:
        sent = connection.send(bytes((value,)))
    except OSError as e:
        raise SendError(
            "Cannot send response to the client",
            details={"peer": peer, "error": str(e), "error_type": type(e).__name__},
        ) from e

    if sent < 1:
        raise SendError(
            "Cannot send response to the client",
            details={"peer": peer, "sent": sent},
        )


def serve_connection(
    connection,
    peer: str = "unknown",
    chunk_size: Optional[int] = None,
) -> None:
    """
    Run the handshake and framing loop over one connection.

    Args:
        connection: Connected socket-like object exposing send() and recv()
        peer: Peer address, used only for logging
        chunk_size: Maximum bytes per recv() (defaults to settings.recv_chunk_size)

    Raises:
        HandshakeError: Acknowledgment byte could not be sent
        ReceiveError: recv() failed before the peer closed the stream
        SendError: An echoed byte could not be sent
    """
    chunk_size = chunk_size or settings.recv_chunk_size

    send_handshake(connection, peer)
    logger.debug("handshake_sent", peer=peer)

    state = ProcessingState.WAITING_FOR_MESSAGE
    received = 0
    echoed = 0

    while True:
        try:
            chunk = connection.recv(chunk_size)
        except OSError as e:
            raise ReceiveError(
                "Cannot receive data from the client",
                details={"peer": peer, "error": str(e), "error_type": type(e).__name__},
            ) from e

        if not chunk:
            break

        received += len(chunk)
        for value in chunk:
            state, output = advance(state, value)
            if output is None:
                continue
            _echo_byte(connection, output, peer)
            echoed += 1

    # An open message at close is dropped without any flush
    logger.debug(
        "peer_closed",
        peer=peer,
        bytes_received=received,
        bytes_echoed=echoed,
        final_state=state.value,
    )
