"""Rendezvous server for two-party voice calls.

This package provides the WebSocket signaling transport, the two-party room
router and the health endpoints. Peers find each other through a room and
exchange negotiation payloads here before talking directly.
"""

__version__ = "0.1.0"
