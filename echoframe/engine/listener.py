"""
Listener Bootstrap - produces the bound socket the accept loop listens on.

Candidate wildcard addresses (IPv4 and IPv6) are resolved for the fixed
service port and tried in resolver order. The first candidate that survives
socket creation, SO_REUSEADDR and bind is returned; every failed candidate's
socket is closed before the next one is tried.
"""
from __future__ import annotations

import socket
from typing import Any, Dict, List, Tuple

import structlog

from echoframe.exceptions import AddressResolutionError, NoUsableAddressError

logger = structlog.get_logger()

SERVICE_PORT = 8080
CONNECTION_BACKLOG = 10

AddrInfo = Tuple[int, int, int, str, Any]


def resolve_candidates(port: int) -> List[AddrInfo]:
    """Resolve passive (bind) addresses for all local interfaces."""
    try:
        return socket.getaddrinfo(
            None,
            port,
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
    except socket.gaierror as e:
        raise AddressResolutionError(
            f"Address resolution failed for port {port}",
            details={"port": port, "error": str(e)},
        ) from e


def _bind_candidate(candidate: AddrInfo) -> socket.socket:
    """Create, configure and bind one candidate. Closes the socket on failure."""
    family, socktype, proto, _, sockaddr = candidate
    sock = socket.socket(family, socktype, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
    except OSError:
        sock.close()
        raise
    return sock


def create_listener(port: int = SERVICE_PORT) -> socket.socket:
    """
    Create a bound TCP socket for the service port.

    Args:
        port: Port to bind. Production always uses SERVICE_PORT.

    Returns:
        A bound socket, ready for listen()/accept()

    Raises:
        AddressResolutionError: Candidate addresses could not be resolved
        NoUsableAddressError: No candidate could be created and bound
    """
    failures: List[Dict[str, Any]] = []

    for candidate in resolve_candidates(port):
        family, _, _, _, sockaddr = candidate
        try:
            sock = _bind_candidate(candidate)
        except OSError as e:
            logger.warning(
                "listener_candidate_failed",
                family=socket.AddressFamily(family).name,
                address=str(sockaddr),
                error=str(e),
                error_type=type(e).__name__,
            )
            failures.append({"address": str(sockaddr), "error": str(e)})
            continue

        logger.info(
            "listener_bound",
            family=socket.AddressFamily(family).name,
            address=str(sockaddr),
            port=port,
        )
        return sock

    raise NoUsableAddressError(
        f"No available address could be bound on port {port}",
        details={"port": port, "attempts": failures},
    )
