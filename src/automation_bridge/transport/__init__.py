"""Transport abstraction layer.

Provides the socket interface the bridge core is written against:
- WebSocket - default transport to the peer (websockets library)
- Mock - in-memory sockets for tests
"""

from .base import (
    CLOSE_ABNORMAL,
    CLOSE_GOING_AWAY,
    CLOSE_HANDSHAKE_INVALID_PAYLOAD,
    CLOSE_HANDSHAKE_TIMEOUT,
    CLOSE_HANDSHAKE_UNEXPECTED_TYPE,
    CLOSE_HEARTBEAT_TIMEOUT,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    BridgeSocket,
    SocketClosedError,
    SocketFactory,
)
from .mock import MockBridgeSocket, MockSocketFactory
from .websocket import WebSocketBridgeSocket, connect_websocket

__all__ = [
    # Base abstractions
    "BridgeSocket",
    "SocketClosedError",
    "SocketFactory",
    # Close codes
    "CLOSE_ABNORMAL",
    "CLOSE_GOING_AWAY",
    "CLOSE_HANDSHAKE_INVALID_PAYLOAD",
    "CLOSE_HANDSHAKE_TIMEOUT",
    "CLOSE_HANDSHAKE_UNEXPECTED_TYPE",
    "CLOSE_HEARTBEAT_TIMEOUT",
    "CLOSE_INTERNAL_ERROR",
    "CLOSE_NORMAL",
    # WebSocket implementation
    "WebSocketBridgeSocket",
    "connect_websocket",
    # Mock implementation
    "MockBridgeSocket",
    "MockSocketFactory",
]
