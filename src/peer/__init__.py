"""Peer client for two-party voice calls.

This package provides the handshake agent, the aiortc-backed negotiation
endpoint and media helpers, and the interactive command-line client.
"""

__version__ = "0.1.0"
