"""Bridge core - connections, handshake, request tracking and routing."""

from .connection_manager import HEARTBEAT_STALE_INTERVALS, ConnectionInfo, ConnectionManager
from .handshake import (
    DEGRADED_FEATURES,
    MIN_PEER_VERSION,
    SERVER_VERSION,
    HandshakeHandler,
    VersionCheckResult,
    check_version_compatibility,
    compare_versions,
    peer_info_from_metadata,
)
from .message_handler import MessageHandler
from .request_tracker import PendingRequest, RequestTracker

__all__ = [
    # Connections
    "ConnectionInfo",
    "ConnectionManager",
    "HEARTBEAT_STALE_INTERVALS",
    # Handshake
    "DEGRADED_FEATURES",
    "HandshakeHandler",
    "MIN_PEER_VERSION",
    "SERVER_VERSION",
    "VersionCheckResult",
    "check_version_compatibility",
    "compare_versions",
    "peer_info_from_metadata",
    # Requests
    "MessageHandler",
    "PendingRequest",
    "RequestTracker",
]
