"""Health check endpoints for the rendezvous server.

Provides HTTP endpoints for load balancers and monitoring tools, plus a
read-only view of room occupancy.
"""

import logging
import time
from typing import Any

from aiohttp import web

from rendezvous.room import RoomRouter

logger = logging.getLogger(__name__)


class HealthCheckHandler:
    """Health check handler.

    Provides /health, /liveness and /rooms endpoints.
    """

    def __init__(self, router: RoomRouter, transport: Any = None) -> None:
        """Initialize health check handler.

        Args:
            router: Room router whose occupancy is reported
            transport: WebSocketTransport instance (optional)
        """
        self.router = router
        self.transport = transport
        self.start_time = time.time()

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Returns:
            200 OK: Signaling transport is accepting connections
            503 Service Unavailable: Transport is not running
        """
        transport_ok = self.transport is None or self.transport.is_running
        status_code = 200 if transport_ok else 503

        response_data = {
            "status": "healthy" if transport_ok else "unhealthy",
            "uptime_seconds": time.time() - self.start_time,
            "transport": transport_ok,
            "connections": self.transport.active_sessions if self.transport else 0,
            "rooms": len(self.router.occupancy()),
        }

        logger.debug("Health check performed", extra={"status": response_data["status"]})

        return web.json_response(response_data, status=status_code)

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Liveness check endpoint. Always 200 while the process runs."""
        return web.json_response(
            {
                "status": "alive",
                "uptime_seconds": time.time() - self.start_time,
            },
            status=200,
        )

    async def rooms(self, request: web.Request) -> web.Response:
        """Room occupancy endpoint: room name → members with roles."""
        return web.json_response({"rooms": self.router.occupancy()}, status=200)


def setup_health_routes(
    app: web.Application,
    router: RoomRouter,
    transport: Any = None,
) -> None:
    """Set up health check routes on application.

    Args:
        app: aiohttp Application instance
        router: Room router
        transport: WebSocketTransport instance (optional)
    """
    handler = HealthCheckHandler(router=router, transport=transport)

    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/liveness", handler.liveness_check)
    app.router.add_get("/rooms", handler.rooms)

    logger.info("Health check endpoints configured: /health, /liveness, /rooms")
