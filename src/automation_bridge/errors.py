"""Error taxonomy for the automation bridge.

Every failure a caller can observe maps onto one of these kinds, so callers
can tell "peer too slow" from "connection lost" from "could not transmit".
Each error carries a machine-readable ``code`` in SCREAMING_SNAKE_CASE.
"""

from __future__ import annotations

# Attached to responses whose echoed action does not match the request.
# Delivered as a failed response, never raised.
ACTION_MISMATCH_CODE = "ACTION_PREFIX_MISMATCH"


class BridgeError(Exception):
    """Base class for all automation bridge errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class ConnectivityError(BridgeError, ConnectionError):
    """Not connected, lazy connect failed, or auto-launch failed."""

    code = "BRIDGE_DISCONNECTED"


class ConnectionLostError(BridgeError, ConnectionError):
    """The peer disconnected while the request was pending."""

    code = "BRIDGE_DISCONNECTED"


class BridgeStoppedError(ConnectionLostError):
    """The bridge was stopped while the request was pending or queued."""

    code = "OPERATION_CANCELLED"


class HandshakeError(BridgeError):
    """The hello/ack exchange failed.

    ``close_code`` is the WebSocket close code used to close the socket,
    or None when the socket was already gone.
    """

    code = "HANDSHAKE_FAILED"

    def __init__(self, message: str, *, close_code: int | None = None) -> None:
        super().__init__(message)
        self.close_code = close_code


class RequestTimeoutError(BridgeError, TimeoutError):
    """No settlement before the per-request deadline."""

    code = "TIMEOUT"


class EventTimeoutError(BridgeError, TimeoutError):
    """Initial response arrived but the completion event did not."""

    code = "EVENT_TIMEOUT"


class SendFailureError(BridgeError):
    """The request could not be written to the transport."""

    code = "SEND_FAILED"


class CapacityError(BridgeError):
    """Concurrency limit reached and the secondary queue is full."""

    code = "EDITOR_BUSY"


class DisabledError(BridgeError):
    """The bridge is disabled by configuration."""

    code = "BRIDGE_DISABLED"


class LaunchError(BridgeError):
    """The peer process could not be launched or never became ready."""

    code = "LAUNCH_FAILED"
