"""WebSocket transport implementation.

Provides WebSocket-based signaling connections for the rendezvous server.
Plain HTTP requests on the same port can be answered by a request hook
(static assets); upgrade requests become signaling sessions.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response
from websockets.protocol import State

from rendezvous.transport.base import SignalingSession, Transport
from rendezvous.transport.websocket_protocol import (
    ClientMessage,
    ProtocolError,
    encode_event,
    parse_client_message,
)

logger = logging.getLogger(__name__)

type RequestHook = Callable[
    [ServerConnection, Request], Response | None | Awaitable[Response | None]
]

# Close code sent when the server is at its connection limit (try again later)
CLOSE_TRY_AGAIN_LATER = 1013


class WebSocketSession(SignalingSession):
    """WebSocket-based signaling session.

    Outbound events go through a FIFO queue drained by a single writer task,
    so callers never block on network I/O and delivery order matches the
    order of ``send_event`` calls.
    """

    def __init__(self, websocket: ServerConnection, session_id: str) -> None:
        """Initialize WebSocket session.

        Args:
            websocket: WebSocket connection
            session_id: Unique session identifier
        """
        self._websocket = websocket
        self._session_id = session_id
        self._connected = True

        # None is the writer shutdown sentinel
        self._outbound: asyncio.Queue[str | None] = asyncio.Queue()
        self._writer_task: asyncio.Task[None] | None = None

        logger.info(
            "WebSocket session initialized",
            extra={"session_id": session_id, "remote": websocket.remote_address},
        )

    @property
    def session_id(self) -> str:
        """Get unique session identifier."""
        return self._session_id

    @property
    def is_connected(self) -> bool:
        """Check if the session connection is still active."""
        return self._connected and self._websocket.state == State.OPEN

    def start(self) -> None:
        """Start the outbound writer task. Must run inside the event loop."""
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._writer_loop(), name=f"writer-{self._session_id}"
            )

    def send_event(self, event: str, data: Any = None) -> None:
        """Queue an event for delivery to the client."""
        if not self._connected:
            logger.debug(
                "Dropping event for closed session",
                extra={"session_id": self._session_id, "event": event},
            )
            return

        self._outbound.put_nowait(encode_event(event, data))

    async def _writer_loop(self) -> None:
        """Send queued frames one at a time, in order."""
        while True:
            frame = await self._outbound.get()
            if frame is None:
                break

            try:
                await self._websocket.send(frame)
            except websockets.exceptions.ConnectionClosed:
                self._connected = False
                logger.info(
                    "Connection closed while sending",
                    extra={"session_id": self._session_id},
                )
                break
            except Exception as e:
                logger.error(
                    "Failed to send message",
                    extra={"session_id": self._session_id, "error": str(e)},
                )

    async def receive_messages(self) -> AsyncIterator[ClientMessage]:
        """Receive parsed messages from the client.

        Malformed frames are answered with a ``log`` event and skipped.
        """
        try:
            async for raw_message in self._websocket:
                try:
                    message = parse_client_message(raw_message)
                except ProtocolError as e:
                    logger.warning(
                        "Rejected client message",
                        extra={"session_id": self._session_id, "error": str(e)},
                    )
                    self.send_event("log", f"Rejected message: {e}")
                    continue

                logger.debug(
                    "Client message received",
                    extra={"session_id": self._session_id, "event": message.event},
                )
                yield message

        except websockets.exceptions.ConnectionClosed:
            logger.info(
                "WebSocket connection closed by client",
                extra={"session_id": self._session_id},
            )
        finally:
            self._connected = False

    async def close(self) -> None:
        """Flush queued events and close the connection."""
        self._connected = False

        logger.info("Closing WebSocket session", extra={"session_id": self._session_id})

        if self._writer_task is not None:
            self._outbound.put_nowait(None)
            try:
                await asyncio.wait_for(self._writer_task, timeout=1.0)
            except TimeoutError:
                self._writer_task.cancel()
            self._writer_task = None

        try:
            await self._websocket.close()
        except Exception as e:
            logger.warning(
                "Error during session close",
                extra={"session_id": self._session_id, "error": str(e)},
            )


class WebSocketTransport(Transport):
    """WebSocket transport server.

    Manages the WebSocket server lifecycle and creates WebSocketSession
    instances for incoming client connections.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 3000,
        max_connections: int = 100,
        request_hook: RequestHook | None = None,
    ) -> None:
        """Initialize WebSocket transport.

        Args:
            host: Bind host address
            port: Bind port (0 picks an ephemeral port)
            max_connections: Maximum concurrent connections
            request_hook: Optional websockets ``process_request`` hook used to
                answer plain HTTP requests on the same port
        """
        self._host = host
        self._port = port
        self._max_connections = max_connections
        self._request_hook = request_hook
        self._server: Server | None = None
        self._running = False
        self._session_queue: asyncio.Queue[WebSocketSession] = asyncio.Queue()
        self._active: dict[str, WebSocketSession] = {}

        logger.info(
            "WebSocket transport initialized",
            extra={"host": host, "port": port, "max_connections": max_connections},
        )

    @property
    def transport_type(self) -> str:
        """Transport type identifier."""
        return "websocket"

    @property
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        return self._running

    @property
    def port(self) -> int:
        """Bound port (resolved after start when configured as 0)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return int(sock.getsockname()[1])
        return self._port

    @property
    def active_sessions(self) -> int:
        """Number of currently open sessions."""
        return len(self._active)

    async def start(self) -> None:
        """Start the WebSocket server.

        Raises:
            RuntimeError: If the transport is already running
            OSError: If port binding fails
        """
        if self._running:
            raise RuntimeError("WebSocket transport is already running")

        logger.info(
            "Starting WebSocket server", extra={"host": self._host, "port": self._port}
        )

        try:
            self._server = await serve(
                self._handle_connection,
                self._host,
                self._port,
                process_request=self._request_hook,
                max_size=2**20,  # 1MB max message size
            )
        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": self._host, "port": self._port, "error": str(e)},
            )
            raise

        self._running = True
        logger.info(
            "WebSocket server started",
            extra={"host": self._host, "port": self.port},
        )

    async def stop(self) -> None:
        """Stop the WebSocket server and close open sessions."""
        if not self._running:
            return

        logger.info("Stopping WebSocket server")

        self._running = False

        for session in list(self._active.values()):
            await session.close()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("WebSocket server stopped")

    async def accept_session(self) -> WebSocketSession:
        """Accept a new client session.

        Raises:
            RuntimeError: If the transport is not running
        """
        if not self._running:
            raise RuntimeError("WebSocket transport is not running")

        return await self._session_queue.get()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Handle an incoming WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        if len(self._active) >= self._max_connections:
            logger.warning(
                "Connection limit reached, refusing connection",
                extra={"remote": websocket.remote_address},
            )
            await websocket.close(CLOSE_TRY_AGAIN_LATER, "server at capacity")
            return

        session_id = f"ws-{uuid.uuid4().hex[:12]}"

        logger.info(
            "New WebSocket connection",
            extra={"session_id": session_id, "remote": websocket.remote_address},
        )

        session = WebSocketSession(websocket, session_id)
        session.start()
        self._active[session_id] = session

        # Queue session for the server to accept
        await self._session_queue.put(session)

        # Keep connection alive until closed
        try:
            await websocket.wait_closed()
        finally:
            self._active.pop(session_id, None)
            logger.info("WebSocket connection closed", extra={"session_id": session_id})
