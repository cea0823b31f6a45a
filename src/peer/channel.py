"""Client side of the signaling connection."""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection

from rendezvous.transport.websocket_protocol import (
    ProtocolError,
    ServerMessage,
    encode_event,
    parse_server_message,
)

logger = logging.getLogger(__name__)


class SignalChannel(ABC):
    """Outbound half of the signaling connection, as seen by the agent."""

    @abstractmethod
    async def send_event(self, event: str, data: Any = None) -> None:
        """Send an event to the rendezvous server.

        Raises:
            ConnectionError: If the connection is closed
        """
        pass


class WebSocketSignalChannel(SignalChannel):
    """Signaling channel over an open WebSocket client connection."""

    def __init__(self, websocket: ClientConnection) -> None:
        self._websocket = websocket

    async def send_event(self, event: str, data: Any = None) -> None:
        try:
            await self._websocket.send(encode_event(event, data))
        except websockets.exceptions.ConnectionClosed as e:
            raise ConnectionError(f"Signaling connection closed: {e}") from e

        logger.debug("Sent event", extra={"event": event})

    async def messages(self) -> AsyncIterator[ServerMessage]:
        """Yield server messages until the connection closes.

        Frames that do not decode are logged and skipped.
        """
        try:
            async for raw in self._websocket:
                try:
                    yield parse_server_message(raw)
                except ProtocolError as e:
                    logger.warning("Ignoring server frame", extra={"error": str(e)})
        except websockets.exceptions.ConnectionClosed:
            logger.info("Connection closed by server")

    async def close(self) -> None:
        await self._websocket.close()
