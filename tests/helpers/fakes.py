"""In-memory stand-ins for transport sessions, channels, endpoints and media.

These let the router and the peer agent be exercised without sockets or
real media devices.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from common.types import SessionDescription
from peer.channel import SignalChannel
from peer.endpoint import EndpointCallbacks, NegotiationEndpoint, NegotiationError
from peer.media import LocalMedia, MediaAcquisitionError, MediaSource
from rendezvous.transport.base import SignalingSession
from rendezvous.transport.websocket_protocol import ClientMessage


class FakeSession(SignalingSession):
    """Signaling session recording every event sent to it."""

    def __init__(self, session_id: str, messages: list[ClientMessage] | None = None) -> None:
        self._session_id = session_id
        self._connected = True
        self._messages = messages or []
        self.sent: list[tuple[str, Any]] = []

    def send_event(self, event: str, data: Any = None) -> None:
        if self._connected:
            self.sent.append((event, data))

    async def receive_messages(self) -> AsyncIterator[ClientMessage]:
        for message in self._messages:
            if not self._connected:
                break
            yield message

    async def close(self) -> None:
        self._connected = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_connected(self) -> bool:
        return self._connected

    def events(self, name: str | None = None) -> list[tuple[str, Any]]:
        """Sent events, optionally filtered by name."""
        if name is None:
            return list(self.sent)
        return [e for e in self.sent if e[0] == name]

    def names(self) -> list[str]:
        return [event for event, _ in self.sent]


class FakeChannel(SignalChannel):
    """Signal channel recording outbound events."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.sent: list[tuple[str, Any]] = []

    async def send_event(self, event: str, data: Any = None) -> None:
        if not self.connected:
            raise ConnectionError("channel closed")
        self.sent.append((event, data))

    def names(self) -> list[str]:
        return [event for event, _ in self.sent]

    def signals(self, signal_type: str | None = None) -> list[dict[str, Any]]:
        payloads = [data for event, data in self.sent if event == "signal"]
        if signal_type is None:
            return payloads
        return [p for p in payloads if p["type"] == signal_type]


@dataclass
class FakeTrack:
    kind: str = "audio"
    stopped: bool = False

    def stop(self) -> None:
        self.stopped = True


class FakeMediaSource(MediaSource):
    """Media source that succeeds or fails on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.acquired: list[LocalMedia] = []

    async def acquire(self) -> LocalMedia:
        if self.fail:
            raise MediaAcquisitionError("Permission denied")
        media = LocalMedia(tracks=[FakeTrack()])
        self.acquired.append(media)
        return media


@dataclass
class FakeEndpoint(NegotiationEndpoint):
    """Negotiation endpoint recording calls, with injectable failures."""

    fail_offer: bool = False
    fail_answer: bool = False
    bad_candidates: set[str] = field(default_factory=set)
    callbacks: EndpointCallbacks | None = None
    tracks: list[Any] = field(default_factory=list)
    calls: list[tuple[str, Any]] = field(default_factory=list)
    closed: bool = False

    def register_callbacks(self, callbacks: EndpointCallbacks) -> None:
        self.callbacks = callbacks
        self.calls.append(("register_callbacks", None))

    def add_track(self, track: Any) -> None:
        self.tracks.append(track)
        self.calls.append(("add_track", track))

    async def create_offer(self) -> SessionDescription:
        self.calls.append(("create_offer", None))
        if self.fail_offer:
            raise NegotiationError("offer failed")
        return {"type": "offer", "sdp": "v=0 offer"}

    async def create_answer(self, offer: Any) -> SessionDescription:
        self.calls.append(("create_answer", offer))
        if self.fail_answer:
            raise NegotiationError("bad offer")
        return {"type": "answer", "sdp": "v=0 answer"}

    async def apply_answer(self, answer: Any) -> None:
        self.calls.append(("apply_answer", answer))
        if self.fail_answer:
            raise NegotiationError("bad answer")

    async def add_candidate(self, candidate: Any) -> None:
        self.calls.append(("add_candidate", candidate))
        if isinstance(candidate, dict) and candidate.get("candidate") in self.bad_candidates:
            raise NegotiationError("unparseable candidate")

    async def close(self) -> None:
        self.closed = True
        self.calls.append(("close", None))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeRemoteOutput:
    """Remote audio sink recording attach/clear calls."""

    def __init__(self) -> None:
        self.attached: list[Any] = []
        self.cleared = 0

    @property
    def active(self) -> bool:
        return bool(self.attached)

    async def attach(self, track: Any) -> None:
        self.attached.append(track)

    async def clear(self) -> None:
        self.cleared += 1
        self.attached.clear()
