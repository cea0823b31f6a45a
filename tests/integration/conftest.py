"""Integration test fixtures and utilities.

Provides shared fixtures for:
- Rendezvous server lifecycle on ephemeral ports
- WebSocket client helpers that speak the signaling envelope
"""

import asyncio
import json
import logging
import socket
from collections.abc import AsyncIterator
from typing import Any

import pytest_asyncio
from websockets.asyncio.client import ClientConnection

from rendezvous.config import SignalingConfig
from rendezvous.server import SignalingServer

logger = logging.getLogger(__name__)


# ============================================================================
# Utility Functions
# ============================================================================


def get_free_port() -> int:
    """Get a free TCP port for binding.

    Returns:
        Port number that was free at the time of the call
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


async def send_event(ws: ClientConnection, event: str, data: Any = None) -> None:
    """Send a signaling envelope."""
    envelope: dict[str, Any] = {"event": event}
    if data is not None:
        envelope["data"] = data
    await ws.send(json.dumps(envelope))


async def recv_event(ws: ClientConnection, timeout: float = 2.0) -> dict[str, Any]:
    """Receive and decode the next signaling envelope."""
    raw = await asyncio.wait_for(ws.recv(), timeout=timeout)
    message: dict[str, Any] = json.loads(raw)
    return message


async def recv_until(
    ws: ClientConnection, event: str, timeout: float = 2.0
) -> list[dict[str, Any]]:
    """Receive envelopes up to and including the first ``event``."""
    received = []
    while True:
        message = await recv_event(ws, timeout)
        received.append(message)
        if message["event"] == event:
            return received


async def assert_silent(ws: ClientConnection, timeout: float = 0.2) -> None:
    """Assert nothing arrives within ``timeout``."""
    try:
        message = await asyncio.wait_for(ws.recv(), timeout=timeout)
    except TimeoutError:
        return
    raise AssertionError(f"Unexpected message: {message}")


# ============================================================================
# Server Fixtures
# ============================================================================


def make_config(health: bool = False) -> SignalingConfig:
    return SignalingConfig.model_validate(
        {
            "server": {"host": "127.0.0.1", "port": 0},
            "health": {"enabled": health, "host": "127.0.0.1", "port": get_free_port()},
        }
    )


@pytest_asyncio.fixture
async def signaling_server() -> AsyncIterator[SignalingServer]:
    """Running rendezvous server on an ephemeral port, health disabled."""
    server = SignalingServer(make_config())
    await server.start()
    logger.info("Test server started", extra={"port": server.port})
    try:
        yield server
    finally:
        await server.stop()


@pytest_asyncio.fixture
async def server_url(signaling_server: SignalingServer) -> str:
    return f"ws://127.0.0.1:{signaling_server.port}"
