"""Pending request table for the automation bridge.

Every in-flight application request has one entry holding the future the
caller awaits and the timers that bound it. Entries are settled exactly
once and removed on settlement; late responses find nothing and are dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..config import DEFAULT_COALESCE_PREFIXES, DEFAULT_EVENT_TIMEOUT_MS, CompletionRule
from ..errors import EventTimeoutError, RequestTimeoutError
from ..protocol import ResponseMessage, new_request_id

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """An in-flight request waiting for its response."""

    request_id: str
    action: str
    future: asyncio.Future[ResponseMessage]
    timeout_ms: int
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started: float = field(default_factory=time.monotonic)
    completion_rule: CompletionRule | None = None
    timeout_handle: asyncio.TimerHandle | None = None
    initial_response: ResponseMessage | None = None
    event_timeout_handle: asyncio.TimerHandle | None = None
    coalesce_key: str | None = None

    @property
    def wait_for_event(self) -> bool:
        """True if a completion event must follow the initial response."""
        return self.completion_rule is not None

    @property
    def event_timeout_ms(self) -> int:
        if self.completion_rule is None:
            return DEFAULT_EVENT_TIMEOUT_MS
        return self.completion_rule.event_timeout_ms


def mark_retrieved(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


class RequestTracker:
    """Authoritative map of in-flight requests.

    Also owns concurrency accounting and the coalescing index that folds
    concurrent duplicate reads into one wire round trip.
    """

    def __init__(
        self,
        max_pending_requests: int = 25,
        completion_rules: Mapping[str, CompletionRule] | None = None,
        coalesce_prefixes: tuple[str, ...] = DEFAULT_COALESCE_PREFIXES,
    ) -> None:
        self._max_pending = max(1, max_pending_requests)
        self._completion_rules = dict(completion_rules or {})
        self._coalesce_prefixes = tuple(coalesce_prefixes)
        self._pending: dict[str, PendingRequest] = {}
        self._coalesced: dict[str, asyncio.Future[ResponseMessage]] = {}
        self._last_request_sent_at: datetime | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_request(
        self,
        action: str,
        payload: dict[str, Any] | None,
        timeout_ms: int,
    ) -> tuple[str, asyncio.Future[ResponseMessage]]:
        """Register a new request and start its timeout.

        Returns:
            (request_id, future) - the future settles with the response or
            one of the bridge errors
        """
        loop = asyncio.get_running_loop()
        request_id = new_request_id()
        while request_id in self._pending:
            request_id = new_request_id()

        future: asyncio.Future[ResponseMessage] = loop.create_future()
        future.add_done_callback(mark_retrieved)

        pending = PendingRequest(
            request_id=request_id,
            action=action,
            future=future,
            timeout_ms=timeout_ms,
            payload=dict(payload or {}),
            completion_rule=self._completion_rules.get(action),
        )
        pending.timeout_handle = loop.call_later(
            timeout_ms / 1000, self._on_request_timeout, request_id
        )
        self._pending[request_id] = pending
        logger.debug(
            f"Created request {request_id} ({action}, timeout={timeout_ms}ms, "
            f"wait_for_event={pending.wait_for_event})"
        )
        return request_id, future

    def resolve_request(self, request_id: str, response: ResponseMessage) -> bool:
        """Settle a request with a response. Returns False if not pending."""
        pending = self._take(request_id)
        if pending is None:
            logger.debug(f"Ignoring resolution of settled or unknown request {request_id}")
            return False
        if not pending.future.done():
            pending.future.set_result(response)
        return True

    def reject_request(self, request_id: str, error: BaseException) -> bool:
        """Settle a request with an error. Returns False if not pending."""
        pending = self._take(request_id)
        if pending is None:
            logger.debug(f"Ignoring rejection of settled or unknown request {request_id}")
            return False
        if not pending.future.done():
            pending.future.set_exception(error)
        return True

    def reject_all(self, error: BaseException) -> int:
        """Reject every pending request. Returns the number rejected."""
        request_ids = list(self._pending)
        for request_id in request_ids:
            self.reject_request(request_id, error)
        if request_ids:
            logger.info(f"Rejected {len(request_ids)} pending request(s): {error}")
        return len(request_ids)

    def begin_event_wait(self, request_id: str, initial_response: ResponseMessage) -> bool:
        """Record the initial response and switch to the event deadline.

        The request deadline is replaced by the completion event deadline.
        """
        pending = self._pending.get(request_id)
        if pending is None:
            return False
        pending.initial_response = initial_response
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
            pending.timeout_handle = None
        loop = asyncio.get_running_loop()
        pending.event_timeout_handle = loop.call_later(
            pending.event_timeout_ms / 1000, self._on_event_timeout, request_id
        )
        return True

    def _take(self, request_id: str) -> PendingRequest | None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return None
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if pending.event_timeout_handle is not None:
            pending.event_timeout_handle.cancel()
        key = pending.coalesce_key
        if key is not None and self._coalesced.get(key) is pending.future:
            del self._coalesced[key]
        return pending

    def _on_request_timeout(self, request_id: str) -> None:
        pending = self._pending.get(request_id)
        if pending is None:
            return
        try:
            logger.warning(f"Request {request_id} ({pending.action}) timed out")
            self.reject_request(
                request_id,
                RequestTimeoutError(
                    f"Request timed out after {pending.timeout_ms}ms for {pending.action}"
                ),
            )
        except Exception:
            logger.exception(f"Failed to time out request {request_id}")

    def _on_event_timeout(self, request_id: str) -> None:
        pending = self._pending.get(request_id)
        if pending is None:
            return
        try:
            logger.warning(f"Completion event for {request_id} ({pending.action}) timed out")
            self.reject_request(
                request_id,
                EventTimeoutError(f"Timed out waiting for completion event for {pending.action}"),
            )
        except Exception:
            logger.exception(f"Failed to time out completion event for {request_id}")

    # =========================================================================
    # Accounting
    # =========================================================================

    def get_pending_request(self, request_id: str) -> PendingRequest | None:
        return self._pending.get(request_id)

    def get_pending_count(self) -> int:
        return len(self._pending)

    def get_max_pending_requests(self) -> int:
        return self._max_pending

    def has_capacity(self) -> bool:
        return len(self._pending) < self._max_pending

    def get_pending_details(self) -> list[dict[str, Any]]:
        now = time.monotonic()
        return [
            {
                "requestId": p.request_id,
                "action": p.action,
                "ageMs": int((now - p.started) * 1000),
                "waitingForEvent": p.initial_response is not None,
            }
            for p in self._pending.values()
        ]

    def update_last_request_sent_at(self) -> None:
        self._last_request_sent_at = datetime.now(UTC)

    def get_last_request_sent_at(self) -> datetime | None:
        return self._last_request_sent_at

    # =========================================================================
    # Coalescing
    # =========================================================================

    def is_coalescable(self, action: str) -> bool:
        return any(action.startswith(prefix) for prefix in self._coalesce_prefixes)

    def create_coalesce_key(self, action: str, payload: dict[str, Any] | None) -> str | None:
        """Derive a stable key for read-only actions, else None."""
        if not self.is_coalescable(action):
            return None
        try:
            serialized = json.dumps(payload or {}, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError):
            return None
        return f"{action}:{serialized}"

    def get_coalesced_request(self, key: str) -> asyncio.Future[ResponseMessage] | None:
        future = self._coalesced.get(key)
        if future is None:
            return None
        if future.done():
            del self._coalesced[key]
            return None
        return future

    def set_coalesced_request(self, key: str, future: asyncio.Future[ResponseMessage]) -> None:
        if future.done():
            return
        self._coalesced[key] = future
        for pending in self._pending.values():
            if pending.future is future:
                pending.coalesce_key = key
                break
