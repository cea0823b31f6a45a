"""Transport layer for signaling connections.

Provides the session/transport abstraction and its WebSocket implementation.
"""

from rendezvous.transport.base import SignalingSession, Transport
from rendezvous.transport.static import StaticAssetHandler
from rendezvous.transport.websocket_transport import (
    WebSocketSession,
    WebSocketTransport,
)

__all__ = [
    "SignalingSession",
    "StaticAssetHandler",
    "Transport",
    "WebSocketSession",
    "WebSocketTransport",
]
