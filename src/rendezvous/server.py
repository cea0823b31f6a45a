"""Rendezvous server with WebSocket signaling and room routing.

Main server implementation that:
1. Starts the WebSocket transport (signaling + static assets on one port)
2. Provides HTTP health check endpoints
3. Accepts client sessions
4. Routes join/signal/leave messages through the room router
5. Translates disconnects into friend_left notifications
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from aiohttp.web import Application, AppRunner, TCPSite
from dotenv import load_dotenv

from rendezvous.config import SignalingConfig
from rendezvous.health import setup_health_routes
from rendezvous.room import RoomRouter
from rendezvous.transport.base import SignalingSession
from rendezvous.transport.static import StaticAssetHandler
from rendezvous.transport.websocket_protocol import (
    ClientMessage,
    JoinMessage,
    LeaveMessage,
    SignalMessage,
)
from rendezvous.transport.websocket_transport import WebSocketTransport

logger = logging.getLogger(__name__)


class SignalingServer:
    """Rendezvous server.

    Owns the transport, the room router and the optional health server. Each
    accepted session runs in its own task and feeds its messages to the
    router one at a time, in arrival order.
    """

    def __init__(self, config: SignalingConfig, router: RoomRouter | None = None) -> None:
        """Initialize rendezvous server.

        Args:
            config: Server configuration
            router: Room router (created from config when omitted)
        """
        self.config = config
        self.router = router or RoomRouter(default_room=config.room.name)

        static_dir = config.server.static_dir
        request_hook = StaticAssetHandler(static_dir) if static_dir is not None else None

        self.transport = WebSocketTransport(
            host=config.server.host,
            port=config.server.port,
            max_connections=config.server.max_connections,
            request_hook=request_hook,
        )

        self._health_runner: AppRunner | None = None
        self._accept_task: asyncio.Task[None] | None = None
        self._session_tasks: set[asyncio.Task[None]] = set()

    @property
    def port(self) -> int:
        """Signaling port actually bound."""
        return self.transport.port

    async def start(self) -> None:
        """Bind the transport, start the health server and begin accepting.

        Raises:
            OSError: If the signaling port cannot be bound
        """
        await self.transport.start()

        if self.config.health.enabled:
            health_app = Application()
            setup_health_routes(health_app, self.router, self.transport)

            self._health_runner = AppRunner(health_app)
            await self._health_runner.setup()
            site = TCPSite(self._health_runner, self.config.health.host, self.config.health.port)
            await site.start()
            logger.info("Health check server started", extra={"port": self.config.health.port})

        self._accept_task = asyncio.create_task(self._accept_loop(), name="accept-loop")

        logger.info(
            "Rendezvous server ready",
            extra={"port": self.port, "room": self.router.default_room},
        )

    async def stop(self) -> None:
        """Stop accepting, close sessions and release the ports."""
        logger.info("Shutting down rendezvous server")

        if self._accept_task is not None:
            self._accept_task.cancel()
            try:
                await self._accept_task
            except asyncio.CancelledError:
                pass
            self._accept_task = None

        await self.transport.stop()

        if self._session_tasks:
            logger.info(
                "Waiting for sessions to complete", extra={"count": len(self._session_tasks)}
            )
            await asyncio.wait(
                self._session_tasks, timeout=self.config.graceful_shutdown_timeout_s
            )

        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None
            logger.info("Health check server stopped")

        logger.info("Rendezvous server stopped")

    async def _accept_loop(self) -> None:
        while True:
            session = await self.transport.accept_session()
            logger.info("New session accepted", extra={"session_id": session.session_id})
            task = asyncio.create_task(
                self.handle_session(session), name=f"session-{session.session_id}"
            )
            self._session_tasks.add(task)
            task.add_done_callback(self._session_tasks.discard)

    async def handle_session(self, session: SignalingSession) -> None:
        """Run one connection until it disconnects.

        Disconnect is translated into a departure from the room, which
        notifies the remaining occupant with ``friend_left``.
        """
        try:
            async for message in session.receive_messages():
                await self.dispatch(session, message)
        except Exception as e:
            logger.exception(
                "Session handler error",
                extra={"session_id": session.session_id, "error": str(e)},
            )
        finally:
            await self.router.leave(session)
            await session.close()
            logger.info("Session ended", extra={"session_id": session.session_id})

    async def dispatch(self, session: SignalingSession, message: ClientMessage) -> None:
        """Apply one client message to the room router."""
        if isinstance(message, JoinMessage):
            await self.router.join(session)

        elif isinstance(message, SignalMessage):
            await self.router.relay(session, message.data)

        elif isinstance(message, LeaveMessage):
            await self.router.leave(session)

        else:
            logger.warning(
                "Unhandled message",
                extra={"session_id": session.session_id, "event": message.event},
            )


async def start_server(config: SignalingConfig, stop_event: asyncio.Event | None = None) -> None:
    """Run the rendezvous server until ``stop_event`` is set or a signal arrives.

    Args:
        config: Server configuration
        stop_event: Optional externally controlled shutdown event

    Raises:
        OSError: If the signaling port cannot be bound
    """
    stop_event = stop_event or asyncio.Event()
    server = SignalingServer(config)
    await server.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform or outside the main thread
            pass

    print(f"Voice chat signaling server running at http://localhost:{server.port}")

    try:
        await stop_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        await server.stop()


def main() -> None:
    """Entry point for the rendezvous server."""
    parser = argparse.ArgumentParser(description="Two-party voice call rendezvous server")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs") / "signaling.yaml",
        help="Path to server config YAML file",
    )
    parser.add_argument("--host", type=str, default=None, help="Override bind host")
    parser.add_argument("--port", type=int, default=None, help="Override signaling port")
    args = parser.parse_args()

    load_dotenv()

    config = SignalingConfig.from_yaml_with_defaults(args.config)
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Loaded configuration", extra={"config_path": str(args.config)})

    try:
        asyncio.run(start_server(config))
    except OSError as e:
        logger.error(f"Cannot bind signaling port {config.server.port}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Rendezvous server interrupted")


if __name__ == "__main__":
    main()
