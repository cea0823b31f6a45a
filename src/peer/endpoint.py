"""Media negotiation endpoint.

The negotiation endpoint is the real-time media capability the peer agent
drives: it produces and consumes session descriptions and network
candidates, and reports remote tracks and connection state through
callbacks. The agent only sees the abstract interface; ``AiortcEndpoint``
implements it on top of aiortc's ``RTCPeerConnection``.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from common.types import IceCandidate, SessionDescription
from peer.config import IceServerConfig

logger = logging.getLogger(__name__)


class NegotiationError(RuntimeError):
    """Raised when a description or candidate cannot be produced or applied."""


@dataclass
class EndpointCallbacks:
    """Asynchronous event sources of an endpoint.

    - on_track: a remote media track was received
    - on_candidate: a local network candidate was discovered
    - on_state_change: the connection state changed (new state string)
    """

    on_track: Callable[[Any], None]
    on_candidate: Callable[[IceCandidate], None]
    on_state_change: Callable[[str], None]


class NegotiationEndpoint(ABC):
    """Interface of the real-time media negotiation capability."""

    @abstractmethod
    def register_callbacks(self, callbacks: EndpointCallbacks) -> None:
        """Register the remote-track, local-candidate and state callbacks."""
        pass

    @abstractmethod
    def add_track(self, track: Any) -> None:
        """Attach a local media track to be sent to the remote peer."""
        pass

    @abstractmethod
    async def create_offer(self) -> SessionDescription:
        """Produce a local offer and apply it as the local description.

        Raises:
            NegotiationError: If the offer cannot be produced
        """
        pass

    @abstractmethod
    async def create_answer(self, offer: Any) -> SessionDescription:
        """Apply a remote offer and produce the local answer.

        Raises:
            NegotiationError: If the offer is invalid or the answer fails
        """
        pass

    @abstractmethod
    async def apply_answer(self, answer: Any) -> None:
        """Apply the remote answer to a previously created offer.

        Raises:
            NegotiationError: If the answer is invalid
        """
        pass

    @abstractmethod
    async def add_candidate(self, candidate: Any) -> None:
        """Add a remote network candidate.

        Raises:
            NegotiationError: If the candidate cannot be applied
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the endpoint and stop all transports."""
        pass


def parse_description(blob: Any, expected_type: str) -> RTCSessionDescription:
    """Build a session description from a relayed ``sdp`` field.

    Accepts the browser form ``{"type": ..., "sdp": ...}`` as well as a bare
    SDP string.

    Raises:
        NegotiationError: If the blob has the wrong shape or type
    """
    if isinstance(blob, str):
        return RTCSessionDescription(sdp=blob, type=expected_type)

    if not isinstance(blob, dict) or not isinstance(blob.get("sdp"), str):
        raise NegotiationError(f"Malformed {expected_type} description")

    desc_type = blob.get("type", expected_type)
    if desc_type != expected_type:
        raise NegotiationError(f"Expected {expected_type} description, got {desc_type!r}")
    return RTCSessionDescription(sdp=blob["sdp"], type=desc_type)


def parse_candidate(blob: Any) -> Any:
    """Build an aiortc candidate from the browser JSON form.

    Returns:
        RTCIceCandidate, or None for the end-of-candidates marker

    Raises:
        NegotiationError: If the candidate line cannot be parsed
    """
    if isinstance(blob, str):
        blob = {"candidate": blob}
    if not isinstance(blob, dict):
        raise NegotiationError("Malformed candidate")

    line = blob.get("candidate") or ""
    if not line:
        return None

    if line.startswith("candidate:"):
        line = line[len("candidate:"):]

    try:
        candidate = candidate_from_sdp(line)
    except (AssertionError, ValueError, IndexError) as e:
        raise NegotiationError(f"Unparseable candidate: {e}") from e

    candidate.sdpMid = blob.get("sdpMid")
    candidate.sdpMLineIndex = blob.get("sdpMLineIndex")
    return candidate


class AiortcEndpoint(NegotiationEndpoint):
    """Negotiation endpoint backed by aiortc.

    aiortc finishes candidate gathering inside ``setLocalDescription`` and
    embeds the candidates in the description, so ``on_candidate`` is never
    fired by this implementation. Remote candidates trickled by a browser
    peer are still applied through ``add_candidate``.
    """

    def __init__(self, ice_servers: list[IceServerConfig] | None = None) -> None:
        """Initialize endpoint.

        Args:
            ice_servers: STUN/TURN servers used for connectivity checks
        """
        configuration = RTCConfiguration(
            iceServers=[
                RTCIceServer(urls=s.urls, username=s.username, credential=s.credential)
                for s in ice_servers or []
            ]
        )
        self._pc = RTCPeerConnection(configuration=configuration)
        self._callbacks: EndpointCallbacks | None = None

    def register_callbacks(self, callbacks: EndpointCallbacks) -> None:
        self._callbacks = callbacks

        @self._pc.on("track")
        def _on_track(track: MediaStreamTrack) -> None:
            logger.info("Remote track received", extra={"kind": track.kind})
            callbacks.on_track(track)

        @self._pc.on("connectionstatechange")
        def _on_state_change() -> None:
            callbacks.on_state_change(self._pc.connectionState)

    def add_track(self, track: Any) -> None:
        self._pc.addTrack(track)

    def _local_description(self) -> SessionDescription:
        description = self._pc.localDescription
        return {"type": description.type, "sdp": description.sdp}

    async def create_offer(self) -> SessionDescription:
        try:
            offer = await self._pc.createOffer()
            await self._pc.setLocalDescription(offer)
        except Exception as e:
            raise NegotiationError(f"Failed to create offer: {e}") from e
        return self._local_description()

    async def create_answer(self, offer: Any) -> SessionDescription:
        description = parse_description(offer, "offer")
        try:
            await self._pc.setRemoteDescription(description)
            answer = await self._pc.createAnswer()
            await self._pc.setLocalDescription(answer)
        except Exception as e:
            raise NegotiationError(f"Failed to answer offer: {e}") from e
        return self._local_description()

    async def apply_answer(self, answer: Any) -> None:
        description = parse_description(answer, "answer")
        try:
            await self._pc.setRemoteDescription(description)
        except Exception as e:
            raise NegotiationError(f"Failed to apply answer: {e}") from e

    async def add_candidate(self, candidate: Any) -> None:
        parsed = parse_candidate(candidate)
        if parsed is None:
            logger.debug("Received empty candidate (end of candidates)")
            return
        try:
            await self._pc.addIceCandidate(parsed)
        except Exception as e:
            raise NegotiationError(f"Failed to add candidate: {e}") from e

    async def close(self) -> None:
        await self._pc.close()
