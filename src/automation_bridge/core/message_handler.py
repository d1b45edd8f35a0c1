"""Inbound frame routing.

Classifies each inbound frame and settles pending requests. Actions with a
completion rule follow a two-phase protocol:

    AWAITING_INITIAL -> AWAITING_EVENT -> SETTLED

The first response is stored; failure or an explicit done marker settles at
once. Otherwise the next response, or an ``event`` frame with the same
requestId, settles the request with the event fields taking precedence over
the initial response. Frames for settled requests are dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..config import ActionEchoPolicy
from ..errors import ACTION_MISMATCH_CODE
from ..protocol import (
    BridgeMessage,
    EventMessage,
    MessageType,
    PongMessage,
    ResponseMessage,
)
from ..transport import BridgeSocket
from .connection_manager import ConnectionManager
from .request_tracker import RequestTracker

logger = logging.getLogger(__name__)


def _safe_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


class MessageHandler:
    """Routes inbound frames to the request tracker or connection manager."""

    def __init__(
        self,
        request_tracker: RequestTracker,
        connection_manager: ConnectionManager | None = None,
        action_echo: ActionEchoPolicy | None = None,
    ) -> None:
        self._tracker = request_tracker
        self._connections = connection_manager
        self._action_echo = action_echo or ActionEchoPolicy()

    async def handle_message(
        self, message: BridgeMessage, socket: BridgeSocket | None = None
    ) -> None:
        """Dispatch one parsed inbound frame."""
        match message.type:
            case MessageType.RESPONSE.value:
                self._handle_response(message)  # type: ignore[arg-type]
            case MessageType.EVENT.value:
                self._handle_event(message)  # type: ignore[arg-type]
            case MessageType.PING.value:
                if socket is not None and self._connections is not None:
                    await self._connections.send_to(socket, PongMessage())
            case MessageType.PONG.value:
                # Liveness already refreshed by the reader
                pass
            case MessageType.GOODBYE.value:
                logger.info(f"Peer initiated shutdown: {message.to_wire()}")
            case _:
                logger.debug(f"Received {message.type} frame with no handler")

    def _handle_response(self, response: ResponseMessage) -> None:
        request_id = response.request_id
        if not request_id:
            logger.warning("Received response without requestId")
            return

        pending = self._tracker.get_pending_request(request_id)
        if pending is None:
            logger.debug(f"No pending request found for requestId={request_id}")
            return

        checked = self.enforce_action_match(response, pending.action)

        if not pending.wait_for_event or pending.initial_response is not None:
            # Single-phase, or the second response completes a two-phase request
            self._tracker.resolve_request(request_id, checked)
            return

        if checked.success is False:
            self._tracker.resolve_request(request_id, checked)
            return

        rule = pending.completion_rule
        if rule is not None and isinstance(checked.result, dict):
            if checked.result.get(rule.done_marker) is True:
                self._tracker.resolve_request(request_id, checked)
                return

        self._tracker.begin_event_wait(request_id, checked)
        logger.debug(
            f"Received initial response for {pending.action}, waiting for completion event..."
        )

    def _handle_event(self, event: EventMessage) -> None:
        request_id = event.request_id if isinstance(event.request_id, str) else None
        pending = self._tracker.get_pending_request(request_id) if request_id else None
        if request_id is None or pending is None:
            logger.debug(f"Received event with no pending request: {event.event}")
            return

        initial = pending.initial_response
        result = event.result if isinstance(event.result, dict) else {}

        base_success = initial.success if initial is not None else None
        event_success = result.get("success")
        success = event_success if isinstance(event_success, bool) else base_success

        if isinstance(result.get("message"), str):
            message = result["message"]
        elif isinstance(event.message, str):
            message = event.message
        elif event.event is not None:
            message = _safe_str(event.event)
        else:
            message = initial.message if initial is not None else None

        if isinstance(result.get("error"), str):
            error = result["error"]
        else:
            error = initial.error if initial is not None else None

        if event.result is not None:
            merged_result = event.result
        elif event.payload is not None:
            merged_result = event.payload
        else:
            merged_result = initial.result if initial is not None else None

        synthetic = ResponseMessage(
            request_id=request_id,
            success=success,
            message=message,
            error=error,
            result=merged_result,
        )
        logger.info(f"Event resolved pending request {request_id} (event={event.event or ''})")
        self._tracker.resolve_request(request_id, synthetic)

    def enforce_action_match(
        self, response: ResponseMessage, expected_action: str
    ) -> ResponseMessage:
        """Cross-check the echoed action against the requested one.

        A mismatch does not drop the response; the caller receives it with
        ``success`` forced to False and a note appended to ``message``.
        """
        expected = (expected_action or "").lower()
        echoed = response.echoed_action
        if not expected or not echoed:
            return response

        if echoed.startswith(self._action_echo.path_prefixes):
            return response

        got = echoed.lower()
        if expected in self._action_echo.consolidated_actions and got != expected:
            return response

        if got.startswith(expected) or expected.startswith(got):
            return response

        logger.warning(f"Response action mismatch (expected~='{expected}', got='{echoed}')")
        note = f"Response action mismatch (expected~='{expected}', got='{echoed}')"
        original = _safe_str(response.message)
        message = f"{original} {note}" if original else note
        return response.model_copy(
            update={
                "success": False,
                "error": response.error or ACTION_MISMATCH_CODE,
                "message": message,
            }
        )
