"""
Custom Exception Hierarchy for the framing server

Bootstrap errors are fatal to the process. Session errors are local to a
single connection and never take down the accept loop.
All custom exceptions inherit from EchoFrameError base class.
"""
from typing import Optional


class EchoFrameError(Exception):
    """
    Base exception for all server-specific errors.

    Carries a human-readable message plus a details dict for structured logging.
    """
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Listener Bootstrap Errors

class BootstrapError(EchoFrameError):
    """
    The listening endpoint could not be created.

    Fatal: the process reports the failure and terminates.
    """
    pass


class AddressResolutionError(BootstrapError):
    """Resolving candidate bind addresses failed."""
    pass


class NoUsableAddressError(BootstrapError):
    """Every resolved candidate failed at socket creation, reuse or bind."""
    pass


# Per-connection Errors

class SessionError(EchoFrameError):
    """
    Failure while serving one connection.

    Base class for errors the accept loop logs before moving on.
    """
    pass


class HandshakeError(SessionError):
    """The acknowledgment byte could not be sent."""
    pass


class StreamIOError(SessionError):
    """
    Read or write on an established connection failed.

    Orderly peer close is not an error and never raises this.
    """
    pass


class ReceiveError(StreamIOError):
    """Failed to read from the connection."""
    pass


class SendError(StreamIOError):
    """Failed to write an echoed byte to the connection."""
    pass
