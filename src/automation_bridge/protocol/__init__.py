"""Protocol layer - typed wire frames for the automation bridge."""

from .messages import (
    MESSAGE_CLASSES,
    AckMessage,
    BridgeMessage,
    EventMessage,
    GoodbyeMessage,
    HelloMessage,
    MessageType,
    PingMessage,
    PongMessage,
    RequestMessage,
    ResponseMessage,
    new_request_id,
    parse_message,
)

__all__ = [
    "MESSAGE_CLASSES",
    "AckMessage",
    "BridgeMessage",
    "EventMessage",
    "GoodbyeMessage",
    "HelloMessage",
    "MessageType",
    "PingMessage",
    "PongMessage",
    "RequestMessage",
    "ResponseMessage",
    "new_request_id",
    "parse_message",
]
