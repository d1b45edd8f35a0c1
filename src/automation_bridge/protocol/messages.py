"""Wire envelope for the automation bridge.

Every frame is a single JSON object with a ``type`` field. Field names on the
wire are camelCase (``requestId``, ``capabilityToken``); Python attributes are
snake_case. Fields the peer adds beyond the known ones are preserved.

Example (request / response pair):
    {"type": "request", "requestId": "req_abc123", "action": "get_actors",
     "payload": {"level": "Main"}}
    {"type": "response", "requestId": "req_abc123", "success": true,
     "result": {"actors": []}}
"""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MessageType(str, Enum):
    """All frame types in the protocol."""

    # Handshake
    HELLO = "hello"
    ACK = "ack"

    # Application traffic
    REQUEST = "request"
    RESPONSE = "response"
    EVENT = "event"

    # Liveness and shutdown
    PING = "ping"
    PONG = "pong"
    GOODBYE = "goodbye"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


class BridgeMessage(BaseModel):
    """Base frame. Unknown frame types parse into this class."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    type: str

    def to_json(self) -> str:
        """Serialize for the wire (camelCase, unset optionals omitted)."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HelloMessage(BridgeMessage):
    """First frame sent by the bridge after the transport opens."""

    type: str = MessageType.HELLO.value
    capability_token: str | None = None


class AckMessage(BridgeMessage):
    """Peer reply to hello; may carry arbitrary peer metadata."""

    type: str = MessageType.ACK.value
    session_id: str | None = None
    capability_token: str | None = None


class RequestMessage(BridgeMessage):
    """Application request sent to the peer."""

    type: str = MessageType.REQUEST.value
    request_id: str = Field(default_factory=new_request_id)
    action: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ResponseMessage(BridgeMessage):
    """Peer response to a request.

    ``action`` is the optional action echo used for cross-checking.
    """

    type: str = MessageType.RESPONSE.value
    request_id: str | None = None
    success: bool | None = None
    message: Any = None
    error: Any = None
    result: Any = None
    action: Any = None

    @property
    def echoed_action(self) -> str | None:
        """Action the peer claims to answer (top level first, then result)."""
        if isinstance(self.action, str) and self.action:
            return self.action
        if isinstance(self.result, dict):
            candidate = self.result.get("action")
            if isinstance(candidate, str) and candidate:
                return candidate
        return None


class EventMessage(BridgeMessage):
    """Out-of-band event; completes a pending request when requestId matches."""

    type: str = MessageType.EVENT.value
    request_id: str | None = None
    event: Any = None
    payload: Any = None
    result: Any = None
    message: Any = None


class PingMessage(BridgeMessage):
    type: str = MessageType.PING.value
    timestamp: str = Field(default_factory=_now_iso)


class PongMessage(BridgeMessage):
    type: str = MessageType.PONG.value
    timestamp: str = Field(default_factory=_now_iso)


class GoodbyeMessage(BridgeMessage):
    """Shutdown notice, sent by either side."""

    type: str = MessageType.GOODBYE.value
    reason: str | None = None
    timestamp: str = Field(default_factory=_now_iso)


MESSAGE_CLASSES: dict[str, type[BridgeMessage]] = {
    MessageType.HELLO.value: HelloMessage,
    MessageType.ACK.value: AckMessage,
    MessageType.REQUEST.value: RequestMessage,
    MessageType.RESPONSE.value: ResponseMessage,
    MessageType.EVENT.value: EventMessage,
    MessageType.PING.value: PingMessage,
    MessageType.PONG.value: PongMessage,
    MessageType.GOODBYE.value: GoodbyeMessage,
}


def parse_message(data: str | dict[str, Any]) -> BridgeMessage:
    """Parse an inbound frame into its typed message class.

    Raises:
        json.JSONDecodeError: If the text is not JSON
        ValueError: If the frame is not an object or fails validation
    """
    parsed = json.loads(data) if isinstance(data, str) else data
    if not isinstance(parsed, dict):
        raise ValueError(f"Frame must be a JSON object, got {type(parsed).__name__}")
    frame_type = parsed.get("type")
    if not isinstance(frame_type, str):
        raise ValueError("Frame is missing a string 'type' field")
    cls = MESSAGE_CLASSES.get(frame_type, BridgeMessage)
    return cls.model_validate(parsed)
