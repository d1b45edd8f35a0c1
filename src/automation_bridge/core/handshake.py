"""Handshake protocol between the bridge and the peer.

After the transport opens, the bridge sends ``hello`` and waits for exactly
one ``ack`` before any application traffic. A separate, optional version
check compares the peer version against the minimum supported one and only
ever degrades gracefully.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field

from ..errors import HandshakeError
from ..protocol import HelloMessage, MessageType
from ..transport import (
    CLOSE_HANDSHAKE_INVALID_PAYLOAD,
    CLOSE_HANDSHAKE_TIMEOUT,
    CLOSE_HANDSHAKE_UNEXPECTED_TYPE,
    CLOSE_INTERNAL_ERROR,
    BridgeSocket,
    SocketClosedError,
)

logger = logging.getLogger(__name__)

# Update when releasing new versions
SERVER_VERSION = "0.6.0"

# Minimum peer version for full feature support
MIN_PEER_VERSION = "0.5.0"

# Features considered unavailable on peers older than MIN_PEER_VERSION
DEGRADED_FEATURES = ["transactions", "reparent_material_instance", "semanticMaterialGraph"]

REDACTED = "REDACTED"


def compare_versions(v1: str, v2: str) -> int:
    """Compare two dotted numeric versions.

    Missing components count as 0, as do non-numeric ones.

    Returns:
        1 if v1 > v2, -1 if v1 < v2, 0 if equal
    """

    def parts(version: str) -> list[int]:
        result = []
        for token in version.split("."):
            try:
                result.append(int(token))
            except ValueError:
                result.append(0)
        return result

    p1, p2 = parts(v1), parts(v2)
    for i in range(max(len(p1), len(p2))):
        a = p1[i] if i < len(p1) else 0
        b = p2[i] if i < len(p2) else 0
        if a > b:
            return 1
        if a < b:
            return -1
    return 0


class VersionCheckResult(BaseModel):
    """Outcome of the version compatibility check. Always successful."""

    success: bool = True
    warning: str | None = None
    degraded_features: list[str] = Field(default_factory=list)
    peer_version: str | None = None
    server_version: str = SERVER_VERSION


async def check_version_compatibility(
    get_peer_info: Callable[[], Awaitable[dict[str, Any]]],
    min_version: str = MIN_PEER_VERSION,
) -> VersionCheckResult:
    """Check the peer version against ``min_version``.

    Args:
        get_peer_info: Async function returning {"version": ..., "capabilities": [...]}
        min_version: Minimum version for full feature support

    Returns:
        A successful result, with a warning and degraded features when the
        peer is too old or its version is unknown
    """
    try:
        peer_info = await get_peer_info()
    except Exception as e:
        logger.warning(f"Version check failed, proceeding with defaults: {e}")
        return VersionCheckResult(warning="Could not verify peer version")

    peer_version = peer_info.get("version")
    if not isinstance(peer_version, str) or not peer_version.strip():
        logger.warning("Peer did not report a version, proceeding with defaults")
        return VersionCheckResult(warning="Could not verify peer version")

    if compare_versions(peer_version, min_version) < 0:
        logger.warning(f"Peer version {peer_version} < required {min_version}")
        return VersionCheckResult(
            warning=f"Peer version {peer_version} may not support all features. Update recommended.",
            degraded_features=list(DEGRADED_FEATURES),
            peer_version=peer_version,
        )

    logger.info(
        f"Version check successful. Peer version: {peer_version}, server version: {SERVER_VERSION}"
    )
    return VersionCheckResult(peer_version=peer_version)


def peer_info_from_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Extract version info from sanitized ack metadata."""
    version = metadata.get("version") or metadata.get("pluginVersion")
    capabilities = metadata.get("capabilities")
    return {
        "version": version if isinstance(version, str) else None,
        "capabilities": capabilities if isinstance(capabilities, list) else [],
    }


class HandshakeHandler:
    """Runs the hello/ack exchange on a freshly opened socket."""

    DEFAULT_HANDSHAKE_TIMEOUT_MS = 5000
    DEFAULT_HELLO_DELAY_MS = 500

    def __init__(
        self,
        capability_token: str | None = None,
        hello_delay_ms: int = DEFAULT_HELLO_DELAY_MS,
    ) -> None:
        """Initialize the handler.

        Args:
            capability_token: Shared secret sent in the hello frame
            hello_delay_ms: Pause before hello so the peer can attach its listener
        """
        self._capability_token = capability_token
        self._hello_delay_ms = max(0, hello_delay_ms)

    async def initiate_handshake(
        self,
        socket: BridgeSocket,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """Perform the handshake.

        The delay, the hello send and the wait for ack share one deadline.

        Returns:
            Sanitized ack metadata (no ``type``, capability token redacted)

        Raises:
            HandshakeError: On timeout, malformed payload, unexpected frame
                type, transport error, or close before the ack
        """
        timeout_ms = timeout_ms or self.DEFAULT_HANDSHAKE_TIMEOUT_MS
        try:
            async with asyncio.timeout(timeout_ms / 1000):
                await asyncio.sleep(self._hello_delay_ms / 1000)
                if not socket.is_open:
                    logger.warning("Socket closed before hello could be sent")
                    raise HandshakeError("Socket closed before hello could be sent")
                hello = HelloMessage(capability_token=self._capability_token)
                logger.debug("Sending hello")
                await socket.send(hello.to_json())
                data = await socket.recv()
        except HandshakeError:
            raise
        except TimeoutError:
            logger.warning("Handshake timed out")
            await self._close(socket, CLOSE_HANDSHAKE_TIMEOUT, "Handshake timeout")
            raise HandshakeError("Handshake timeout", close_code=CLOSE_HANDSHAKE_TIMEOUT) from None
        except SocketClosedError as e:
            raise HandshakeError(f"Socket closed during handshake (code={e.code})") from e
        except Exception as e:
            logger.error(f"Transport error during handshake: {e}")
            await self._close(socket, CLOSE_INTERNAL_ERROR, "Handshake transport error")
            raise HandshakeError(
                f"Transport error during handshake: {e}", close_code=CLOSE_INTERNAL_ERROR
            ) from e

        try:
            text = data.decode("utf-8") if isinstance(data, bytes) else data
            parsed = json.loads(text)
            if not isinstance(parsed, dict):
                raise ValueError("handshake frame is not a JSON object")
        except (ValueError, UnicodeDecodeError) as e:
            logger.error(f"Received non-JSON message during handshake: {e}")
            await self._close(socket, CLOSE_HANDSHAKE_INVALID_PAYLOAD, "Invalid JSON payload")
            raise HandshakeError(
                "Invalid JSON payload", close_code=CLOSE_HANDSHAKE_INVALID_PAYLOAD
            ) from e

        frame_type = parsed.get("type")
        if frame_type != MessageType.ACK.value:
            logger.warning(f"Expected ack handshake, received {frame_type}")
            await self._close(socket, CLOSE_HANDSHAKE_UNEXPECTED_TYPE, "Handshake expected ack")
            raise HandshakeError(
                f"Handshake expected ack, got {frame_type}",
                close_code=CLOSE_HANDSHAKE_UNEXPECTED_TYPE,
            )

        return self.sanitize_metadata(parsed)

    @staticmethod
    def sanitize_metadata(payload: dict[str, Any]) -> dict[str, Any]:
        sanitized = {k: v for k, v in payload.items() if k != "type"}
        if "capabilityToken" in sanitized:
            sanitized["capabilityToken"] = REDACTED
        return sanitized

    async def _close(self, socket: BridgeSocket, code: int, reason: str) -> None:
        try:
            await socket.close(code, reason)
        except Exception as e:
            logger.debug(f"Error closing socket after failed handshake: {e}")
