"""Peer agent: drives the two-party handshake for one client.

The agent owns at most one negotiation endpoint and one local media handle.
Every event source (user actions, server messages, endpoint callbacks and
transport loss) is posted onto a single queue and applied one at a time by
``run``, so a transition always completes before the next event is seen.

Roles follow arrival order on the server:
- Creator: receives ``ready``, sends the offer, applies the answer
- Joiner: never receives ``ready``; the first offer starts its handshake
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from common.types import IceCandidate, Role, SignalPayload
from peer.channel import SignalChannel
from peer.endpoint import EndpointCallbacks, NegotiationEndpoint, NegotiationError
from peer.media import LocalMedia, MediaAcquisitionError, MediaSource, RemoteAudioOutput
from peer.state import (
    CANDIDATE_STATES,
    IN_ROOM_STATES,
    HandshakeState,
    check_transition,
)
from rendezvous.transport.websocket_protocol import (
    FriendLeftMessage,
    FullMessage,
    LogMessage,
    ReadyMessage,
    ServerMessage,
    SignalMessage,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Initiate:
    """User asked to join the call."""


@dataclass(frozen=True)
class HangUp:
    """User asked to leave the call."""


@dataclass(frozen=True)
class Inbound:
    """Message received from the rendezvous server."""

    message: ServerMessage


@dataclass(frozen=True)
class RemoteTrack:
    """Endpoint callback: remote media track received."""

    generation: int
    track: Any


@dataclass(frozen=True)
class LocalCandidate:
    """Endpoint callback: local network candidate discovered."""

    generation: int
    candidate: IceCandidate


@dataclass(frozen=True)
class ConnectionStateChanged:
    """Endpoint callback: connection state changed."""

    generation: int
    state: str


@dataclass(frozen=True)
class TransportClosed:
    """The signaling connection was lost."""


type AgentEvent = (
    Initiate
    | HangUp
    | Inbound
    | RemoteTrack
    | LocalCandidate
    | ConnectionStateChanged
    | TransportClosed
)


class PeerAgent:
    """Handshake state machine for one connected client.

    Thread-safety: NOT thread-safe. Post events from the event loop only.
    """

    def __init__(
        self,
        channel: SignalChannel,
        media_source: MediaSource,
        endpoint_factory: Callable[[], NegotiationEndpoint],
        remote_output: RemoteAudioOutput | None = None,
        rejoin_on_friend_left: bool = True,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize peer agent.

        Args:
            channel: Outbound signaling channel
            media_source: Provider of the local audio handle
            endpoint_factory: Creates a fresh negotiation endpoint
            remote_output: Sink for the remote audio (discarded when omitted)
            rejoin_on_friend_left: Wait for a new peer after the current one leaves
            notify: User-facing status callback
        """
        self.channel = channel
        self.media_source = media_source
        self.endpoint_factory = endpoint_factory
        self.remote_output = remote_output or RemoteAudioOutput()
        self.rejoin_on_friend_left = rejoin_on_friend_left
        self._notify = notify or (lambda text: logger.info(text))

        self.state = HandshakeState.IDLE
        self.role: Role | None = None
        self.endpoint: NegotiationEndpoint | None = None
        self.local_media: LocalMedia | None = None
        self.offers_sent = 0

        # Incremented whenever an endpoint is created or released; callbacks
        # carrying an older generation come from a released endpoint.
        self._generation = 0
        self._events: asyncio.Queue[AgentEvent] = asyncio.Queue()

    # ------------------------------------------------------------------
    # Event sources
    # ------------------------------------------------------------------

    def post(self, event: AgentEvent) -> None:
        """Queue an event for the agent loop."""
        self._events.put_nowait(event)

    def initiate(self) -> None:
        self.post(Initiate())

    def hang_up(self) -> None:
        self.post(HangUp())

    def deliver(self, message: ServerMessage) -> None:
        self.post(Inbound(message))

    def transport_closed(self) -> None:
        self.post(TransportClosed())

    async def run(self) -> None:
        """Apply queued events until the transport closes.

        Events still queued behind the transport loss are discarded so that
        ``drain`` never waits on a stopped loop.
        """
        while True:
            event = await self._events.get()
            try:
                await self.dispatch(event)
            finally:
                self._events.task_done()

            if isinstance(event, TransportClosed):
                break

        while not self._events.empty():
            dropped = self._events.get_nowait()
            self._events.task_done()
            logger.debug(
                "Discarding event after disconnect", extra={"event": type(dropped).__name__}
            )

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        await self._events.join()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, event: AgentEvent) -> None:
        """Apply one event. Handler errors are logged, never raised."""
        try:
            if isinstance(event, Initiate):
                await self._on_initiate()
            elif isinstance(event, HangUp):
                await self._on_hang_up()
            elif isinstance(event, Inbound):
                await self._on_message(event.message)
            elif isinstance(event, RemoteTrack):
                await self._on_remote_track(event)
            elif isinstance(event, LocalCandidate):
                await self._on_local_candidate(event)
            elif isinstance(event, ConnectionStateChanged):
                self._on_connection_state(event)
            elif isinstance(event, TransportClosed):
                await self._on_transport_closed()
        except Exception as e:
            logger.exception(
                "Error handling agent event",
                extra={"event": type(event).__name__, "state": self.state.value},
            )
            self._notify(f"Error: {e}")

    def transition(self, new_state: HandshakeState) -> None:
        """Move to a new state.

        Raises:
            InvalidTransition: If the transition is not allowed
        """
        check_transition(self.state, new_state)

        old_state = self.state
        self.state = new_state

        logger.info(
            "Handshake state transition",
            extra={
                "from_state": old_state.value,
                "to_state": new_state.value,
                "role": self.role.value if self.role else None,
            },
        )

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def _on_initiate(self) -> None:
        if self.state != HandshakeState.IDLE:
            self._notify(f"Cannot join while {self.state.value}.")
            return

        self.transition(HandshakeState.AWAITING_ROOM)
        self._notify("Joining room...")

        try:
            self.local_media = await self.media_source.acquire()
        except MediaAcquisitionError as e:
            logger.warning("Local media acquisition failed", extra={"error": str(e)})
            self._notify(f"Error accessing microphone: {e}")
            self.transition(HandshakeState.IDLE)
            return

        self._notify("Microphone access granted.")

        try:
            await self.channel.send_event("join")
        except ConnectionError as e:
            self._notify(f"Could not reach the server: {e}")
            self._release_local_media()
            self.transition(HandshakeState.IDLE)
            return

        self.transition(HandshakeState.WAITING_FOR_PEER)

    async def _on_hang_up(self) -> None:
        if self.state not in IN_ROOM_STATES:
            return

        await self._send_leave()
        await self._release_endpoint()
        self._release_local_media()
        self.transition(HandshakeState.IDLE)
        self._notify("Left the room.")

    # ------------------------------------------------------------------
    # Server messages
    # ------------------------------------------------------------------

    async def _on_message(self, message: ServerMessage) -> None:
        if isinstance(message, LogMessage):
            self._notify(message.data)
        elif isinstance(message, FullMessage):
            await self._on_full()
        elif isinstance(message, ReadyMessage):
            await self._on_ready()
        elif isinstance(message, SignalMessage):
            await self._on_signal(message.data)
        elif isinstance(message, FriendLeftMessage):
            await self._on_friend_left()

    async def _on_full(self) -> None:
        if self.state not in (HandshakeState.AWAITING_ROOM, HandshakeState.WAITING_FOR_PEER):
            logger.warning("Unexpected full", extra={"state": self.state.value})
            return

        # An endpoint here was created by a stray signal and never negotiated
        if self.endpoint is not None:
            await self._release_endpoint()
        self._release_local_media()
        self.transition(HandshakeState.IDLE)
        self._notify("Room is full.")

    async def _on_ready(self) -> None:
        if self.state != HandshakeState.WAITING_FOR_PEER:
            logger.warning("Ignoring ready", extra={"state": self.state.value})
            return

        self._notify("Friend joined! Initiating call...")
        self.role = Role.CREATOR
        self.transition(HandshakeState.NEGOTIATING)
        endpoint = self._ensure_endpoint()

        try:
            offer = await endpoint.create_offer()
        except NegotiationError as e:
            await self._abort_handshake(e)
            return

        await self._send_signal({"type": "offer", "sdp": offer})
        self.offers_sent += 1
        self._notify("Sent offer to friend.")

    async def _on_signal(self, data: SignalPayload) -> None:
        if self.state not in IN_ROOM_STATES:
            logger.debug("Dropping signal outside a room", extra={"state": self.state.value})
            return

        # Lazily create the endpoint so the joiner's first offer has somewhere to go
        endpoint = self._ensure_endpoint()
        signal_type = data.get("type")

        if signal_type == "offer":
            await self._on_offer(endpoint, data)
        elif signal_type == "answer":
            await self._on_answer(endpoint, data)
        elif signal_type == "candidate":
            await self._on_candidate(endpoint, data)
        else:
            logger.warning("Unknown signal type", extra={"type": signal_type})

    async def _on_offer(self, endpoint: NegotiationEndpoint, data: SignalPayload) -> None:
        if self.state != HandshakeState.WAITING_FOR_PEER:
            logger.warning("Ignoring offer", extra={"state": self.state.value})
            return

        self._notify("Received offer. Creating answer...")
        self.role = Role.JOINER
        self.transition(HandshakeState.NEGOTIATING)

        try:
            answer = await endpoint.create_answer(data.get("sdp"))
        except NegotiationError as e:
            await self._abort_handshake(e)
            return

        await self._send_signal({"type": "answer", "sdp": answer})
        self._notify("Sent answer back to creator.")
        self.transition(HandshakeState.CONNECTED)

    async def _on_answer(self, endpoint: NegotiationEndpoint, data: SignalPayload) -> None:
        if self.state != HandshakeState.NEGOTIATING or self.role != Role.CREATOR:
            logger.warning(
                "Ignoring answer",
                extra={"state": self.state.value, "role": self.role.value if self.role else None},
            )
            return

        self._notify("Received answer. Completing handshake.")
        try:
            await endpoint.apply_answer(data.get("sdp"))
        except NegotiationError as e:
            await self._abort_handshake(e)
            return

        self.transition(HandshakeState.CONNECTED)

    async def _on_candidate(self, endpoint: NegotiationEndpoint, data: SignalPayload) -> None:
        if self.state not in CANDIDATE_STATES:
            logger.debug("Ignoring early candidate", extra={"state": self.state.value})
            return

        try:
            await endpoint.add_candidate(data.get("candidate"))
        except Exception as e:
            logger.warning("Skipping candidate", extra={"error": str(e)})
            self._notify(f"Skipped a bad candidate: {e}")

    async def _on_friend_left(self) -> None:
        if self.state not in IN_ROOM_STATES:
            return

        self._notify("Friend has left the room.")
        await self._release_endpoint()
        self.transition(HandshakeState.CLOSED)

        if self.rejoin_on_friend_left:
            self.transition(HandshakeState.WAITING_FOR_PEER)
            self._notify("Waiting for a new friend to join...")
        else:
            await self._send_leave()
            self._release_local_media()
            self.transition(HandshakeState.IDLE)

    # ------------------------------------------------------------------
    # Endpoint callbacks
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        return self.endpoint is None or generation != self._generation

    async def _on_remote_track(self, event: RemoteTrack) -> None:
        if self._is_stale(event.generation):
            return
        await self.remote_output.attach(event.track)
        self._notify("Remote audio received! Connection successful.")

    async def _on_local_candidate(self, event: LocalCandidate) -> None:
        if self._is_stale(event.generation) or self.state not in CANDIDATE_STATES:
            return
        await self._send_signal({"type": "candidate", "candidate": event.candidate})

    def _on_connection_state(self, event: ConnectionStateChanged) -> None:
        if self._is_stale(event.generation):
            return
        logger.info("Connection state changed", extra={"connection_state": event.state})
        self._notify(f"Connection state: {event.state}")

    # ------------------------------------------------------------------
    # Transport loss
    # ------------------------------------------------------------------

    async def _on_transport_closed(self) -> None:
        if self.state == HandshakeState.CLOSED:
            return

        await self._release_endpoint()
        self._release_local_media()
        self.transition(HandshakeState.CLOSED)
        self._notify("Disconnected from server.")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_endpoint(self) -> NegotiationEndpoint:
        if self.endpoint is not None:
            return self.endpoint

        self._generation += 1
        generation = self._generation
        endpoint = self.endpoint_factory()
        endpoint.register_callbacks(
            EndpointCallbacks(
                on_track=lambda track: self.post(RemoteTrack(generation, track)),
                on_candidate=lambda candidate: self.post(LocalCandidate(generation, candidate)),
                on_state_change=lambda state: self.post(ConnectionStateChanged(generation, state)),
            )
        )
        if self.local_media is not None:
            for track in self.local_media.tracks:
                endpoint.add_track(track)

        self.endpoint = endpoint
        logger.debug("Negotiation endpoint created", extra={"generation": generation})
        return endpoint

    async def _release_endpoint(self) -> None:
        endpoint, self.endpoint = self.endpoint, None
        self._generation += 1
        self.role = None

        if endpoint is not None:
            try:
                await endpoint.close()
            except Exception as e:
                logger.warning("Error closing negotiation endpoint", extra={"error": str(e)})

        await self.remote_output.clear()

    def _release_local_media(self) -> None:
        if self.local_media is not None:
            self.local_media.release()
            self.local_media = None

    async def _abort_handshake(self, error: Exception) -> None:
        logger.error("Handshake failed", extra={"error": str(error)})
        self._notify(f"Error processing signaling data: {error}")

        await self._send_leave()
        await self._release_endpoint()
        self._release_local_media()
        self.transition(HandshakeState.IDLE)

    async def _send_signal(self, payload: SignalPayload) -> None:
        try:
            await self.channel.send_event("signal", payload)
        except ConnectionError as e:
            logger.warning(
                "Could not send signal", extra={"type": payload.get("type"), "error": str(e)}
            )

    async def _send_leave(self) -> None:
        try:
            await self.channel.send_event("leave")
        except ConnectionError as e:
            logger.debug("Could not send leave", extra={"error": str(e)})
