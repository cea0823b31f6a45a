"""Common utilities and type definitions.

This package provides shared types and constants used by both the
rendezvous server and the peer client.
"""

from common.types import (
    ROOM_CAPACITY,
    SIGNAL_TYPES,
    IceCandidate,
    Role,
    RoomName,
    SessionDescription,
    SessionID,
    SignalPayload,
    SignalType,
)

__all__ = [
    "ROOM_CAPACITY",
    "SIGNAL_TYPES",
    "IceCandidate",
    "Role",
    "RoomName",
    "SessionDescription",
    "SessionID",
    "SignalPayload",
    "SignalType",
]
