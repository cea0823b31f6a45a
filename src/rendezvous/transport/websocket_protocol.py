"""WebSocket message protocol definitions.

Defines Pydantic models for the signaling events exchanged between peers and
the rendezvous server. Every frame is a JSON object with an ``event`` tag and
an optional ``data`` payload.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from common.types import SIGNAL_TYPES


class ProtocolError(ValueError):
    """Raised when a frame cannot be decoded into a known event."""


class SignalData(BaseModel):
    """Negotiation payload carried by ``signal`` events.

    Only the ``type`` tag is checked (plus the presence of ``candidate`` for
    candidate messages). All other fields are opaque and kept as received.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="offer, answer or candidate")
    sdp: Any = Field(default=None, description="Session description (offer/answer)")
    candidate: Any = Field(default=None, description="Network candidate (candidate)")

    @model_validator(mode="after")
    def check_relayable(self) -> "SignalData":
        """Reject unknown types and candidate messages without a candidate."""
        if self.type not in SIGNAL_TYPES:
            raise ValueError(
                f"signal type must be one of {sorted(SIGNAL_TYPES)}, got '{self.type}'"
            )
        if self.type == "candidate" and not self.candidate:
            raise ValueError("candidate signal is missing its 'candidate' field")
        return self


class JoinMessage(BaseModel):
    """Client → Server: request admission to the room."""

    event: Literal["join"] = "join"


class LeaveMessage(BaseModel):
    """Client → Server: leave the room without closing the connection."""

    event: Literal["leave"] = "leave"


class SignalMessage(BaseModel):
    """Client ↔ Server: opaque negotiation payload to relay.

    The server forwards the ``data`` object exactly as it arrived.
    """

    event: Literal["signal"] = "signal"
    data: dict[str, Any] = Field(..., description="Negotiation payload")

    @model_validator(mode="after")
    def check_data(self) -> "SignalMessage":
        """Validate the payload shape without replacing it."""
        SignalData.model_validate(self.data)
        return self

    @property
    def signal_type(self) -> str:
        """Payload type tag (offer, answer or candidate)."""
        return str(self.data["type"])


class LogMessage(BaseModel):
    """Server → Client: informational status text."""

    event: Literal["log"] = "log"
    data: str = Field(..., description="Status text")


class ReadyMessage(BaseModel):
    """Server → Client: a peer is present, the creator should send an offer."""

    event: Literal["ready"] = "ready"


class FullMessage(BaseModel):
    """Server → Client: the room is at capacity, admission refused."""

    event: Literal["full"] = "full"


class FriendLeftMessage(BaseModel):
    """Server → Client: the other occupant left the room."""

    event: Literal["friend_left"] = "friend_left"


# Union type for all server → client messages
ServerMessage = LogMessage | ReadyMessage | FullMessage | SignalMessage | FriendLeftMessage

# Union type for all client → server messages
ClientMessage = JoinMessage | LeaveMessage | SignalMessage

_CLIENT_MESSAGES: dict[str, type[BaseModel]] = {
    "join": JoinMessage,
    "leave": LeaveMessage,
    "signal": SignalMessage,
}

_SERVER_MESSAGES: dict[str, type[BaseModel]] = {
    "log": LogMessage,
    "ready": ReadyMessage,
    "full": FullMessage,
    "signal": SignalMessage,
    "friend_left": FriendLeftMessage,
}


def _decode(raw: str | bytes, registry: dict[str, type[BaseModel]]) -> Any:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Invalid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object")

    event = data.get("event")
    model = registry.get(event) if isinstance(event, str) else None
    if model is None:
        raise ProtocolError(f"Unknown event: {event!r}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid '{event}' message: {e.errors()[0]['msg']}") from e


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Decode a frame sent by a peer.

    Args:
        raw: WebSocket frame payload

    Returns:
        Parsed client message

    Raises:
        ProtocolError: If the frame is not valid JSON or not a known event
    """
    message: ClientMessage = _decode(raw, _CLIENT_MESSAGES)
    return message


def parse_server_message(raw: str | bytes) -> ServerMessage:
    """Decode a frame sent by the rendezvous server.

    Args:
        raw: WebSocket frame payload

    Returns:
        Parsed server message

    Raises:
        ProtocolError: If the frame is not valid JSON or not a known event
    """
    message: ServerMessage = _decode(raw, _SERVER_MESSAGES)
    return message


def encode_event(event: str, data: Any = None) -> str:
    """Encode an event envelope as a JSON text frame.

    ``data`` is omitted from the frame when it is None.
    """
    envelope: dict[str, Any] = {"event": event}
    if data is not None:
        envelope["data"] = data
    return json.dumps(envelope)
