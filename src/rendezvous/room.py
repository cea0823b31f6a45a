"""Room membership and signaling relay.

The room router admits connections into a two-party room, assigns roles by
arrival order, relays opaque negotiation payloads to the other occupant and
notifies the survivor when an occupant leaves.

All mutations of the room table happen under one asyncio lock. Outbound
events are queued on the sessions (``SignalingSession.send_event`` never
blocks), so the lock is never held across network I/O and relays from one
connection reach the other in the order they were made.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from common.types import ROOM_CAPACITY, Role, RoomName, SessionID, SignalPayload
from rendezvous.transport.base import SignalingSession

logger = logging.getLogger(__name__)

MSG_CREATED = "You created the room. Waiting for friend to join..."
MSG_JOINED = "Friend joined. Starting connection..."
MSG_FULL = "Room is full."
MSG_ALREADY_JOINED = "You are already in the room."


class JoinOutcome(Enum):
    """Result of a join attempt.

    - CREATED: room was empty, caller is the creator
    - JOINED: room had one occupant, caller is the joiner and ``ready`` was sent
    - FULL: room at capacity, caller was not admitted
    - ALREADY_MEMBER: caller already occupies a room, nothing changed
    """

    CREATED = "created"
    JOINED = "joined"
    FULL = "full"
    ALREADY_MEMBER = "already_member"


@dataclass
class Member:
    """A connection admitted into a room, with the role it was given."""

    session: SignalingSession
    role: Role

    @property
    def session_id(self) -> SessionID:
        return self.session.session_id


@dataclass
class Room:
    """Named set of at most two members, in arrival order."""

    name: RoomName
    members: list[Member] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)

    def member(self, session_id: SessionID) -> Member | None:
        for member in self.members:
            if member.session_id == session_id:
                return member
        return None

    def others(self, session_id: SessionID) -> list[Member]:
        return [m for m in self.members if m.session_id != session_id]


class RoomRouter:
    """Two-party room registry keyed by room name.

    Thread-safety: NOT thread-safe. All methods must run on the server's
    event loop; the internal lock serializes them against each other.
    """

    def __init__(self, default_room: RoomName = "always_on_chat_room") -> None:
        """Initialize router.

        Args:
            default_room: Room used when ``join`` is called without a name
        """
        self.default_room = default_room
        self._rooms: dict[RoomName, Room] = {}
        self._membership: dict[SessionID, RoomName] = {}
        self._lock = asyncio.Lock()

    async def join(
        self, session: SignalingSession, room_name: RoomName | None = None
    ) -> JoinOutcome:
        """Admit a connection into a room.

        Args:
            session: Connection requesting admission
            room_name: Room to join (defaults to ``default_room``)

        Returns:
            What happened to the request
        """
        name = room_name or self.default_room

        async with self._lock:
            if session.session_id in self._membership:
                session.send_event("log", MSG_ALREADY_JOINED)
                logger.info(
                    "Duplicate join ignored",
                    extra={"session_id": session.session_id, "room": name},
                )
                return JoinOutcome.ALREADY_MEMBER

            room = self._rooms.get(name)
            size = room.size if room is not None else 0

            logger.info("Join requested", extra={"room": name, "size": size})

            if size >= ROOM_CAPACITY:
                session.send_event("full")
                session.send_event("log", MSG_FULL)
                logger.info(
                    "Room full, join refused",
                    extra={"session_id": session.session_id, "room": name},
                )
                return JoinOutcome.FULL

            if room is None:
                room = Room(name=name)
                self._rooms[name] = room

            if size == 0:
                room.members.append(Member(session=session, role=Role.CREATOR))
                self._membership[session.session_id] = name
                session.send_event("log", MSG_CREATED)
                logger.info(
                    "Room created",
                    extra={"session_id": session.session_id, "room": name},
                )
                return JoinOutcome.CREATED

            room.members.append(Member(session=session, role=Role.JOINER))
            self._membership[session.session_id] = name
            session.send_event("log", MSG_JOINED)

            # The single trigger for the waiting occupant to start negotiating
            for other in room.others(session.session_id):
                other.session.send_event("ready")

            logger.info(
                "Room joined, signaling started",
                extra={"session_id": session.session_id, "room": name},
            )
            return JoinOutcome.JOINED

    async def relay(self, sender: SignalingSession, message: SignalPayload) -> bool:
        """Forward a negotiation payload to the other occupant, unmodified.

        Args:
            sender: Connection that sent the payload
            message: Payload exactly as received

        Returns:
            True if the payload was handed to another occupant. A sender
            outside any room, or alone in its room, is a silent no-op.
        """
        async with self._lock:
            room = self._room_of(sender.session_id)
            if room is None:
                logger.debug(
                    "Signal from connection outside any room dropped",
                    extra={"session_id": sender.session_id},
                )
                return False

            targets = room.others(sender.session_id)
            for target in targets:
                target.session.send_event("signal", message)

            logger.debug(
                "Signal relayed",
                extra={
                    "session_id": sender.session_id,
                    "room": room.name,
                    "type": message.get("type"),
                    "targets": len(targets),
                },
            )
            return bool(targets)

    async def leave(self, session: SignalingSession) -> bool:
        """Remove a connection from its room and notify the survivor.

        Args:
            session: Departing connection

        Returns:
            True if the connection was a member of a room
        """
        async with self._lock:
            room = self._room_of(session.session_id)
            if room is None:
                return False

            member = room.member(session.session_id)
            if member is not None:
                room.members.remove(member)
            del self._membership[session.session_id]

            for survivor in room.members:
                survivor.session.send_event("friend_left")

            logger.info(
                "Connection left room",
                extra={
                    "session_id": session.session_id,
                    "room": room.name,
                    "remaining": room.size,
                },
            )

            if room.size == 0:
                del self._rooms[room.name]
                logger.info("Room is now empty", extra={"room": room.name})
            return True

    def role_of(self, session_id: SessionID) -> Role | None:
        """Role recorded for a connection, or None if it is not in a room."""
        room = self._room_of(session_id)
        if room is None:
            return None
        member = room.member(session_id)
        return member.role if member is not None else None

    def members(self, room_name: RoomName | None = None) -> list[SessionID]:
        """Session ids of a room's occupants, in arrival order."""
        room = self._rooms.get(room_name or self.default_room)
        return [m.session_id for m in room.members] if room is not None else []

    def occupancy(self) -> dict[RoomName, list[dict[str, Any]]]:
        """Snapshot of every non-empty room for monitoring."""
        return {
            name: [{"session_id": m.session_id, "role": m.role.value} for m in room.members]
            for name, room in self._rooms.items()
        }

    def _room_of(self, session_id: SessionID) -> Room | None:
        name = self._membership.get(session_id)
        return self._rooms.get(name) if name is not None else None
