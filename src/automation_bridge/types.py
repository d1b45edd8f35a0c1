"""Status and outcome models returned by the bridge."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .core.handshake import VersionCheckResult
from .launcher import LaunchMode


class BridgeState(str, Enum):
    """Connection-oriented lifecycle of the bridge."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    CONNECTED = "connected"


class ConnectionStatus(BaseModel):
    """One live connection as reported in the status snapshot."""

    connection_id: str
    session_id: str | None = None
    remote_address: str | None = None
    remote_port: int | None = None
    port: int
    protocol: str | None = None
    connected_at: datetime
    is_primary: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class HandshakeRecord(BaseModel):
    at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class HandshakeFailureRecord(BaseModel):
    at: datetime
    reason: str
    close_code: int | None = None


class DisconnectRecord(BaseModel):
    at: datetime
    code: int
    reason: str


class ErrorRecord(BaseModel):
    at: datetime
    message: str


class AutoLaunchStatus(BaseModel):
    enabled: bool = False
    project_path: str | None = None
    mode: LaunchMode = LaunchMode.HEADLESS
    timeout_ms: int = 0
    launched: bool = False


class BridgeStatus(BaseModel):
    """Read-only snapshot of the bridge, computed on demand."""

    enabled: bool
    state: BridgeState
    host: str
    port: int
    connected: bool
    connections: list[ConnectionStatus] = Field(default_factory=list)
    last_handshake: HandshakeRecord | None = None
    last_handshake_failure: HandshakeFailureRecord | None = None
    last_disconnect: DisconnectRecord | None = None
    last_error: ErrorRecord | None = None
    last_message_at: datetime | None = None
    last_request_sent_at: datetime | None = None
    pending_requests: int = 0
    pending_request_details: list[dict[str, Any]] = Field(default_factory=list)
    queued_requests: int = 0
    max_pending_requests: int
    max_queued_requests: int
    heartbeat_interval_ms: int
    version_check: VersionCheckResult | None = None
    auto_launch: AutoLaunchStatus = Field(default_factory=AutoLaunchStatus)


class LaunchOutcome(BaseModel):
    """Result of ``AutomationBridge.launch_and_connect``."""

    success: bool
    pid: int | None = None
    connected: bool = False
    message: str
    error: str | None = None
