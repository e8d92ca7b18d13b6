"""
Framing - the two-sentinel message state machine.

A message opens with ``^`` and closes with ``$``. Inside a message every
byte is echoed back incremented by one (mod 256); outside a message every
byte is discarded. Sentinels are only control characters in the state
where they have a meaning:
- ``^`` inside a message is ordinary payload
- ``$`` outside a message is ordinary noise
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

HANDSHAKE_BYTE = ord("*")
MESSAGE_START = ord("^")
MESSAGE_END = ord("$")


class ProcessingState(str, Enum):
    """Framing state of a single connection"""

    WAITING_FOR_MESSAGE = "waiting_for_message"
    IN_MESSAGE = "in_message"


def increment_byte(value: int) -> int:
    """Increment a byte value with 8-bit wraparound (0xFF becomes 0x00)."""
    return (value + 1) % 256


def advance(state: ProcessingState, value: int) -> Tuple[ProcessingState, Optional[int]]:
    """
    Apply one input byte to the framing state machine.

    Args:
        state: Current processing state
        value: Input byte (0-255)

    Returns:
        Tuple of (next_state, output)
        - output is the byte to echo, or None when nothing is sent
    """
    if state is ProcessingState.WAITING_FOR_MESSAGE:
        if value == MESSAGE_START:
            return ProcessingState.IN_MESSAGE, None
        return state, None

    if value == MESSAGE_END:
        return ProcessingState.WAITING_FOR_MESSAGE, None
    return state, increment_byte(value)
