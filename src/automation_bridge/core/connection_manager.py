"""Connection tracking for the automation bridge.

Owns every live transport socket to the peer, designates one as primary
for outbound sends, and runs the liveness heartbeat.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..protocol import BridgeMessage, PingMessage
from ..transport import CLOSE_HEARTBEAT_TIMEOUT, BridgeSocket

logger = logging.getLogger(__name__)

# A connection silent for this many heartbeat intervals is considered dead
HEARTBEAT_STALE_INTERVALS = 3


@dataclass
class ConnectionInfo:
    """Metadata for one live transport socket."""

    connection_id: str
    socket: BridgeSocket
    port: int
    connected_at: datetime
    remote_address: str | None = None
    remote_port: int | None = None
    protocol: str | None = None
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    last_seen: float = field(default_factory=time.monotonic)


class ConnectionManager:
    """Tracks zero or more sockets to the same peer.

    The first registered socket becomes primary. Removing the primary does
    not promote another socket.
    """

    def __init__(self, heartbeat_interval_ms: int = 0) -> None:
        self._sockets: dict[BridgeSocket, ConnectionInfo] = {}
        self._primary: BridgeSocket | None = None
        self._heartbeat_interval_ms = max(0, heartbeat_interval_ms)
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._last_message_time: datetime | None = None
        self._background: set[asyncio.Task[None]] = set()

    def register_socket(
        self,
        socket: BridgeSocket,
        port: int,
        metadata: dict[str, Any] | None = None,
        remote_address: str | None = None,
        remote_port: int | None = None,
    ) -> ConnectionInfo:
        """Track a socket that completed the handshake."""
        metadata = metadata or {}
        session_id = metadata.get("sessionId")
        info = ConnectionInfo(
            connection_id=f"conn_{uuid.uuid4().hex[:12]}",
            socket=socket,
            port=port,
            connected_at=datetime.now(UTC),
            remote_address=remote_address,
            remote_port=remote_port,
            protocol=socket.subprotocol,
            session_id=session_id if isinstance(session_id, str) else None,
            metadata=dict(metadata),
        )
        self._sockets[socket] = info
        if self._primary is None:
            self._primary = socket
        logger.debug(
            f"Registered connection {info.connection_id} "
            f"(port={port}, session={info.session_id}, primary={self._primary is socket})"
        )
        return info

    def remove_socket(self, socket: BridgeSocket) -> ConnectionInfo | None:
        """Forget a socket. Returns its record, or None if unknown."""
        info = self._sockets.pop(socket, None)
        if info is None:
            return None
        if self._primary is socket:
            self._primary = None
        if not self._sockets:
            self.stop_heartbeat()
        logger.debug(f"Removed connection {info.connection_id}")
        return info

    def is_connected(self) -> bool:
        return len(self._sockets) > 0

    def get_primary_socket(self) -> BridgeSocket | None:
        return self._primary

    def get_active_sockets(self) -> dict[BridgeSocket, ConnectionInfo]:
        return dict(self._sockets)

    def get_connection_info(self, socket: BridgeSocket) -> ConnectionInfo | None:
        return self._sockets.get(socket)

    def get_heartbeat_interval_ms(self) -> int:
        return self._heartbeat_interval_ms

    def get_last_message_time(self) -> datetime | None:
        return self._last_message_time

    def update_last_message_time(self, socket: BridgeSocket | None = None) -> None:
        """Record inbound activity (globally and for ``socket`` if given)."""
        self._last_message_time = datetime.now(UTC)
        if socket is not None and (info := self._sockets.get(socket)) is not None:
            info.last_seen = time.monotonic()

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_to(self, socket: BridgeSocket, message: BridgeMessage) -> bool:
        """Send a frame to one socket. Failures are logged, not raised."""
        if not socket.is_open:
            return False
        try:
            await socket.send(message.to_json())
            return True
        except Exception as e:
            logger.error(f"Failed to send {message.type} frame: {e}")
            return False

    async def broadcast(self, message: BridgeMessage) -> int:
        """Send a frame to every open socket. Returns the number reached."""
        if not self._sockets:
            logger.warning(f"Attempted to broadcast {message.type} without any active connections")
            return 0
        sent = 0
        for socket in list(self._sockets):
            if await self.send_to(socket, message):
                sent += 1
        return sent

    # =========================================================================
    # Heartbeat
    # =========================================================================

    def start_heartbeat(self) -> None:
        """Start the periodic ping loop (no-op if disabled or running)."""
        if self._heartbeat_interval_ms <= 0:
            return
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        interval = self._heartbeat_interval_ms / 1000
        stale_after = interval * HEARTBEAT_STALE_INTERVALS
        try:
            while self._sockets:
                await asyncio.sleep(interval)
                now = time.monotonic()
                for socket, info in list(self._sockets.items()):
                    if not socket.is_open:
                        continue
                    if now - info.last_seen > stale_after:
                        logger.warning(
                            f"Connection {info.connection_id} silent for "
                            f"{now - info.last_seen:.1f}s, closing"
                        )
                        self._schedule_close(socket, CLOSE_HEARTBEAT_TIMEOUT, "Heartbeat timeout")
                        continue
                    await self.send_to(socket, PingMessage())
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Heartbeat loop failed")

    # =========================================================================
    # Teardown
    # =========================================================================

    def close_all(self, code: int, reason: str) -> int:
        """Request close of every socket without waiting for completion.

        Records are removed only when each socket's close is observed.
        """
        self.stop_heartbeat()
        sockets = list(self._sockets)
        for socket in sockets:
            self._schedule_close(socket, code, reason)
        return len(sockets)

    def _schedule_close(self, socket: BridgeSocket, code: int, reason: str) -> None:
        task = asyncio.create_task(self._close_quietly(socket, code, reason))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _close_quietly(self, socket: BridgeSocket, code: int, reason: str) -> None:
        try:
            await socket.close(code, reason)
        except Exception as e:
            logger.debug(f"Error while closing socket: {e}")

    async def wait_closed(self, timeout: float = 5.0) -> None:
        """Wait for pending close requests to finish (bounded)."""
        if not self._background:
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                asyncio.gather(*self._background, return_exceptions=True), timeout
            )
