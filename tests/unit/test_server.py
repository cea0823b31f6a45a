"""Unit tests for rendezvous server session handling and health routes."""

import pytest
from aiohttp import test_utils, web

from rendezvous.config import SignalingConfig
from rendezvous.health import setup_health_routes
from rendezvous.room import MSG_CREATED, RoomRouter
from rendezvous.server import SignalingServer
from rendezvous.transport.websocket_protocol import (
    JoinMessage,
    LeaveMessage,
    SignalMessage,
)
from tests.helpers.fakes import FakeSession

OFFER = {"type": "offer", "sdp": {"type": "offer", "sdp": "v=0"}}


@pytest.fixture
def server() -> SignalingServer:
    config = SignalingConfig.model_validate(
        {"server": {"host": "127.0.0.1", "port": 0}, "health": {"enabled": False}}
    )
    return SignalingServer(config)


class TestHandleSession:
    """Test per-connection message handling."""

    @pytest.mark.asyncio
    async def test_join_signal_and_disconnect(self, server: SignalingServer) -> None:
        a = FakeSession("a")
        b = FakeSession("b", [JoinMessage(), SignalMessage(data=OFFER)])

        await server.dispatch(a, JoinMessage())
        await server.handle_session(b)

        assert a.sent == [
            ("log", MSG_CREATED),
            ("ready", None),
            ("signal", OFFER),
            ("friend_left", None),
        ]
        assert b.is_connected is False
        assert server.router.members() == ["a"]

    @pytest.mark.asyncio
    async def test_leave_keeps_connection_open(self, server: SignalingServer) -> None:
        a, b = FakeSession("a"), FakeSession("b")
        await server.dispatch(a, JoinMessage())
        await server.dispatch(b, JoinMessage())

        await server.dispatch(b, LeaveMessage())

        assert a.names()[-1] == "friend_left"
        assert b.is_connected is True
        assert server.router.members() == ["a"]

    @pytest.mark.asyncio
    async def test_disconnect_outside_room_is_silent(self, server: SignalingServer) -> None:
        a, b, c = FakeSession("a"), FakeSession("b"), FakeSession("c", [JoinMessage()])
        await server.dispatch(a, JoinMessage())
        await server.dispatch(b, JoinMessage())

        await server.handle_session(c)

        assert c.names() == ["full", "log"]
        assert "friend_left" not in a.names() + b.names()

    def test_router_uses_configured_room(self) -> None:
        config = SignalingConfig.model_validate({"room": {"name": "lobby"}})
        assert SignalingServer(config).router.default_room == "lobby"


class FakeTransport:
    def __init__(self, running: bool = True) -> None:
        self.is_running = running
        self.active_sessions = 3


async def health_client(
    router: RoomRouter, transport: FakeTransport | None
) -> test_utils.TestClient:
    app = web.Application()
    setup_health_routes(app, router, transport)
    client = test_utils.TestClient(test_utils.TestServer(app))
    await client.start_server()
    return client


class TestHealthRoutes:
    """Test the aiohttp health endpoints."""

    @pytest.mark.asyncio
    async def test_health_ok(self) -> None:
        client = await health_client(RoomRouter(), FakeTransport())
        try:
            response = await client.get("/health")
            body = await response.json()
        finally:
            await client.close()

        assert response.status == 200
        assert body["status"] == "healthy"
        assert body["connections"] == 3
        assert body["rooms"] == 0

    @pytest.mark.asyncio
    async def test_health_unavailable_when_transport_down(self) -> None:
        client = await health_client(RoomRouter(), FakeTransport(running=False))
        try:
            response = await client.get("/health")
        finally:
            await client.close()

        assert response.status == 503

    @pytest.mark.asyncio
    async def test_liveness(self) -> None:
        client = await health_client(RoomRouter(), None)
        try:
            response = await client.get("/liveness")
            body = await response.json()
        finally:
            await client.close()

        assert body["status"] == "alive"

    @pytest.mark.asyncio
    async def test_rooms_snapshot(self) -> None:
        router = RoomRouter()
        await router.join(FakeSession("a"))
        client = await health_client(router, None)
        try:
            response = await client.get("/rooms")
            body = await response.json()
        finally:
            await client.close()

        assert body == {
            "rooms": {"always_on_chat_room": [{"session_id": "a", "role": "creator"}]}
        }
