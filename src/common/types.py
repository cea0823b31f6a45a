"""Common type aliases shared by the rendezvous server and the peer client.

The types split into two groups:
- Identity types: session identifiers and room names
- Signaling types: the opaque negotiation payloads relayed between peers

Example:
    >>> from common.types import Role, SignalPayload
    >>> payload: SignalPayload = {"type": "offer", "sdp": {"type": "offer", "sdp": "v=0..."}}
    >>> Role.CREATOR.value
    'creator'
"""

from enum import Enum
from typing import Any, Literal

# Identity types
type SessionID = str
"""Opaque connection identifier assigned by the transport at connect time.

Example:
    >>> session_id: SessionID = "ws-3f9a1c0b7d2e"
"""

type RoomName = str
"""Key of a room in the router's membership table."""


# Signaling types
type SignalType = Literal["offer", "answer", "candidate"]
"""Recognized negotiation message kinds."""

SIGNAL_TYPES: frozenset[str] = frozenset({"offer", "answer", "candidate"})

type SignalPayload = dict[str, Any]
"""Negotiation payload exactly as received on the wire.

The payload always carries a ``type`` key. Offers and answers carry ``sdp``,
candidates carry ``candidate``. Everything else is opaque and relayed as-is.
"""

type SessionDescription = dict[str, str]
"""Session description blob: ``{"type": "offer" | "answer", "sdp": "..."}``."""

type IceCandidate = dict[str, Any]
"""Network candidate blob in browser JSON form.

Example:
    >>> candidate: IceCandidate = {
    ...     "candidate": "candidate:1 1 udp 2130706431 192.168.1.2 5000 typ host",
    ...     "sdpMid": "0",
    ...     "sdpMLineIndex": 0,
    ... }
"""

# Rooms never hold more than two participants.
ROOM_CAPACITY = 2


class Role(Enum):
    """Handshake role, fixed by arrival order in the room.

    - CREATOR: first arrival, produces the offer when ``ready`` arrives
    - JOINER: second arrival, answers the creator's offer
    """

    CREATOR = "creator"
    JOINER = "joiner"
