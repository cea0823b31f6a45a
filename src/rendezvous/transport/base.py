"""Base transport abstraction for signaling connections.

Defines the interface that transport implementations must provide so the
room router can address connections without knowing how they are carried.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from rendezvous.transport.websocket_protocol import ClientMessage


class SignalingSession(ABC):
    """Base class for transport-specific signaling sessions.

    A session is one connected participant. Outbound events are fire-and-forget
    and must reach the client in the order they were sent.
    """

    @abstractmethod
    def send_event(self, event: str, data: Any = None) -> None:
        """Queue an event for delivery to the client.

        Never blocks. Events queued on a closed session are dropped.

        Args:
            event: Event name (log, ready, full, signal, friend_left)
            data: Optional JSON-serializable payload
        """
        pass

    @abstractmethod
    async def receive_messages(self) -> AsyncIterator[ClientMessage]:
        """Receive parsed messages from the client, in arrival order.

        Malformed frames are reported back to the client and skipped.
        Iteration ends when the connection closes.

        Yields:
            ClientMessage: Next message from the client
        """
        # Using yield to make this an async generator
        if False:
            yield

    @abstractmethod
    async def close(self) -> None:
        """Clean session shutdown.

        Flushes queued events where possible and closes the connection.
        """
        pass

    @property
    @abstractmethod
    def session_id(self) -> str:
        """Unique session identifier for logging and tracking."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the session connection is still active."""
        pass


class Transport(ABC):
    """Base transport implementation.

    Manages the lifecycle of a transport server and hands out sessions for
    incoming client connections.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the transport server.

        Raises:
            RuntimeError: If the transport is already running
            OSError: If port binding fails
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the transport server and close all active sessions."""
        pass

    @abstractmethod
    async def accept_session(self) -> SignalingSession:
        """Accept a new client session.

        Blocks until a client connects.

        Raises:
            RuntimeError: If the transport is not running
        """
        pass

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Transport type identifier (e.g., 'websocket')."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        pass
