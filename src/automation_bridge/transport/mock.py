"""In-memory transport for testing.

Allows injecting inbound frames and recording outbound ones.
No actual I/O - everything is in-memory.

Usage:
    socket = MockBridgeSocket(
        responder=lambda req: {"type": "response", "requestId": req["requestId"],
                               "success": True},
    )
    bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
    response = await bridge.send_request("get_actors")

    assert socket.sent_messages[-1]["action"] == "get_actors"
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from .base import CLOSE_NORMAL, SocketClosedError

# (request frame) -> reply frame(s) or None for no reply
Responder = Callable[[dict[str, Any]], "dict[str, Any] | list[dict[str, Any]] | None"]

_CLOSED = object()


class MockBridgeSocket:
    """BridgeSocket test double.

    Args:
        auto_ack: Reply to ``hello`` with an ``ack`` automatically
        ack_metadata: Extra fields merged into the automatic ack
        responder: Called for every outbound ``request`` frame
        subprotocol: Reported negotiated sub-protocol
        remote_address: Reported peer address
    """

    def __init__(
        self,
        *,
        auto_ack: bool = True,
        ack_metadata: dict[str, Any] | None = None,
        responder: Responder | None = None,
        subprotocol: str | None = "mcp-automation",
        remote_address: tuple[str, int] | None = ("127.0.0.1", 8091),
    ) -> None:
        self.auto_ack = auto_ack
        self.ack_metadata = ack_metadata or {}
        self.responder = responder
        self._subprotocol = subprotocol
        self._remote_address = remote_address
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self.sent: list[str] = []
        self.send_error: Exception | None = None
        self.close_code: int | None = None
        self.close_reason: str | None = None

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def subprotocol(self) -> str | None:
        return self._subprotocol

    @property
    def remote_address(self) -> tuple[str, int] | None:
        return self._remote_address

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        """Outbound frames decoded from JSON."""
        return [json.loads(text) for text in self.sent]

    def sent_of_type(self, frame_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent_messages if m.get("type") == frame_type]

    def feed(self, frame: dict[str, Any] | str | bytes) -> None:
        """Queue an inbound frame (dicts are JSON-encoded)."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbound.put_nowait(frame)

    def simulate_close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Close from the peer side."""
        if self._closed:
            return
        self._closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(_CLOSED)

    async def send(self, text: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self._closed:
            raise SocketClosedError(self.close_code or CLOSE_NORMAL, self.close_reason or "")
        self.sent.append(text)

        frame = json.loads(text)
        if frame.get("type") == "hello" and self.auto_ack:
            self.feed({"type": "ack", **self.ack_metadata})
        elif frame.get("type") == "request" and self.responder is not None:
            replies = self.responder(frame)
            if replies is None:
                return
            for reply in replies if isinstance(replies, list) else [replies]:
                self.feed(reply)

    async def recv(self) -> str | bytes:
        if self._closed and self._inbound.empty():
            raise SocketClosedError(self.close_code or CLOSE_NORMAL, self.close_reason or "")
        item = await self._inbound.get()
        if item is _CLOSED:
            raise SocketClosedError(self.close_code or CLOSE_NORMAL, self.close_reason or "")
        return item

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        self.simulate_close(code, reason)


class MockSocketFactory:
    """SocketFactory that hands out prepared mock sockets in order.

    Records every (url, protocols, headers) call. When ``error`` is set,
    every call raises it instead of returning a socket.
    """

    def __init__(self, *sockets: MockBridgeSocket, error: Exception | None = None) -> None:
        self._sockets = list(sockets)
        self.error = error
        self.calls: list[tuple[str, list[str], dict[str, str]]] = []

    def add(self, socket: MockBridgeSocket) -> None:
        self._sockets.append(socket)

    async def __call__(
        self, url: str, protocols: list[str], headers: dict[str, str]
    ) -> MockBridgeSocket:
        self.calls.append((url, list(protocols), dict(headers)))
        if self.error is not None:
            raise self.error
        if not self._sockets:
            raise ConnectionRefusedError(f"No mock socket available for {url}")
        return self._sockets.pop(0)
