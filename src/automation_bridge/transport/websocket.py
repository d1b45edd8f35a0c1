"""WebSocket transport built on the ``websockets`` library.

The bridge is the client; the peer hosts the WebSocket server.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import CLOSE_ABNORMAL, CLOSE_NORMAL, SocketClosedError

logger = logging.getLogger(__name__)


def _close_details(exc: Any) -> tuple[int, str]:
    """Extract (code, reason) from a websockets ConnectionClosed."""
    frame = getattr(exc, "rcvd", None) or getattr(exc, "sent", None)
    if frame is None:
        return CLOSE_ABNORMAL, str(exc)
    return frame.code, frame.reason


class WebSocketBridgeSocket:
    """BridgeSocket over a websockets client connection."""

    def __init__(self, connection: Any) -> None:
        self._ws = connection  # websockets.asyncio.client.ClientConnection

    @property
    def is_open(self) -> bool:
        from websockets.protocol import State

        return self._ws.state is State.OPEN

    @property
    def subprotocol(self) -> str | None:
        return self._ws.subprotocol

    @property
    def remote_address(self) -> tuple[str, int] | None:
        address = self._ws.remote_address
        if not address:
            return None
        return address[0], address[1]

    async def send(self, text: str) -> None:
        from websockets.exceptions import ConnectionClosed

        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            raise SocketClosedError(*_close_details(e)) from e

    async def recv(self) -> str | bytes:
        from websockets.exceptions import ConnectionClosed

        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise SocketClosedError(*_close_details(e)) from e

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        await self._ws.close(code=code, reason=reason)


async def connect_websocket(
    url: str,
    protocols: list[str],
    headers: dict[str, str],
) -> WebSocketBridgeSocket:
    """Open a WebSocket to the peer.

    Compression is disabled and the library-level frame size limit is lifted
    so that the bridge applies its own oversized-frame drop policy.

    Raises:
        OSError: If the TCP connection cannot be established
        websockets.exceptions.InvalidHandshake: If the upgrade is refused
    """
    try:
        import websockets
    except ImportError as e:
        raise ImportError(
            "websockets package required for the WebSocket transport. "
            "Install with: pip install websockets"
        ) from e

    logger.debug(f"Opening WebSocket {url} (protocols={protocols})")
    connection = await websockets.connect(
        url,
        subprotocols=protocols or None,
        additional_headers=headers or None,
        compression=None,
        max_size=None,
        # Liveness is handled by the bridge heartbeat
        ping_interval=None,
        open_timeout=None,
    )
    return WebSocketBridgeSocket(connection)
