"""Transport abstraction for the bridge.

The bridge talks to the peer through a ``BridgeSocket``: an already-open,
bidirectional text-message socket. The default implementation wraps the
``websockets`` library; tests use ``MockBridgeSocket``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

# Close codes
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_ABNORMAL = 1006
CLOSE_INTERNAL_ERROR = 1011
CLOSE_HANDSHAKE_TIMEOUT = 4002
CLOSE_HANDSHAKE_INVALID_PAYLOAD = 4003
CLOSE_HANDSHAKE_UNEXPECTED_TYPE = 4004
CLOSE_HEARTBEAT_TIMEOUT = 4005


class SocketClosedError(ConnectionError):
    """Raised by ``BridgeSocket.recv``/``send`` once the socket is closed."""

    def __init__(self, code: int = CLOSE_ABNORMAL, reason: str = "") -> None:
        super().__init__(f"Socket closed (code={code}, reason={reason})")
        self.code = code
        self.reason = reason


@runtime_checkable
class BridgeSocket(Protocol):
    """Protocol for transport sockets used by the bridge.

    Implementations must:
    - return whole text (or UTF-8 bytes) frames from ``recv``
    - raise SocketClosedError from ``recv`` once the socket is closed
    - make ``close`` safe to call more than once
    """

    @property
    def is_open(self) -> bool:
        """True while frames can be sent."""
        ...

    @property
    def subprotocol(self) -> str | None:
        """Negotiated sub-protocol, if any."""
        ...

    @property
    def remote_address(self) -> tuple[str, int] | None:
        """(host, port) of the peer, if known."""
        ...

    async def send(self, text: str) -> None:
        """Send one text frame."""
        ...

    async def recv(self) -> str | bytes:
        """Receive the next frame."""
        ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Close the socket with the given close code."""
        ...


# Opens a socket: (url, protocols, headers) -> BridgeSocket
SocketFactory = Callable[[str, list[str], dict[str, str]], Awaitable[BridgeSocket]]
