"""Peer handshake state machine.

State Transitions:
- IDLE → AWAITING_ROOM (user initiates; local media is acquired here)
- AWAITING_ROOM → WAITING_FOR_PEER (join sent)
- AWAITING_ROOM → IDLE (media acquisition failed)
- WAITING_FOR_PEER → NEGOTIATING (ready received → creator, offer received → joiner)
- WAITING_FOR_PEER → IDLE (room full, or user hangs up)
- NEGOTIATING → CONNECTED (creator: answer applied, joiner: answer sent)
- NEGOTIATING/CONNECTED → IDLE (user hangs up, or handshake failed)
- * → CLOSED (friend left, or transport disconnected)
- CLOSED → WAITING_FOR_PEER (friend left and rejoin is permitted)
- CLOSED → IDLE (ready for a new join)

States:
- IDLE: Not in a room, initiate allowed
- AWAITING_ROOM: Acquiring local media and announcing to the server
- WAITING_FOR_PEER: In the room, waiting for ready (creator) or an offer (joiner)
- NEGOTIATING: Exchanging descriptions; see PeerAgent.role
- CONNECTED: Descriptions applied, media flows once connectivity checks pass
- CLOSED: Negotiation endpoint released
"""

from enum import Enum


class HandshakeState(Enum):
    """Peer handshake states."""

    IDLE = "idle"
    AWAITING_ROOM = "awaiting_room"
    WAITING_FOR_PEER = "waiting_for_peer"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


# Valid state transitions
VALID_TRANSITIONS: dict[HandshakeState, set[HandshakeState]] = {
    HandshakeState.IDLE: {HandshakeState.AWAITING_ROOM, HandshakeState.CLOSED},
    HandshakeState.AWAITING_ROOM: {
        HandshakeState.WAITING_FOR_PEER,
        HandshakeState.IDLE,
        HandshakeState.CLOSED,
    },
    HandshakeState.WAITING_FOR_PEER: {
        HandshakeState.NEGOTIATING,
        HandshakeState.IDLE,
        HandshakeState.CLOSED,
    },
    HandshakeState.NEGOTIATING: {
        HandshakeState.CONNECTED,
        HandshakeState.IDLE,
        HandshakeState.CLOSED,
    },
    HandshakeState.CONNECTED: {HandshakeState.IDLE, HandshakeState.CLOSED},
    HandshakeState.CLOSED: {HandshakeState.WAITING_FOR_PEER, HandshakeState.IDLE},
}

# States in which remote candidates are applied
CANDIDATE_STATES = frozenset({HandshakeState.NEGOTIATING, HandshakeState.CONNECTED})

# States in which the connection holds room membership on the server
IN_ROOM_STATES = frozenset(
    {
        HandshakeState.WAITING_FOR_PEER,
        HandshakeState.NEGOTIATING,
        HandshakeState.CONNECTED,
    }
)


class InvalidTransition(ValueError):
    """Raised when a transition is not allowed from the current state."""


def check_transition(current: HandshakeState, new_state: HandshakeState) -> None:
    """Validate a transition.

    Raises:
        InvalidTransition: If ``new_state`` is not reachable from ``current``
    """
    if new_state not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Invalid state transition: {current.value} → {new_state.value}")
