"""Bridge lifecycle events.

The event set is closed: subscribers pick a ``BridgeEventType`` and receive
a ``BridgeEvent``. Callbacks may be sync or async; a failing callback is
logged and never affects the bridge or the other subscribers.

Usage:
    unsubscribe = bridge.on(BridgeEventType.CONNECTED, on_connected)
    ...
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum
from functools import partial
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class BridgeEventType(str, Enum):
    """Kinds of lifecycle events emitted by the bridge."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    HANDSHAKE_FAILED = "handshake_failed"
    ERROR = "error"
    MESSAGE = "message"


class BridgeEvent(BaseModel):
    """One emitted event and its properties."""

    type: BridgeEventType
    properties: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


EventCallback = Callable[[BridgeEvent], Awaitable[None] | None]


class EventEmitter:
    """Per-bridge observer list keyed by event type.

    Sync callbacks run inline. Coroutine callbacks run as background tasks
    so a slow subscriber never holds up the reader that emitted the event.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[BridgeEventType, list[EventCallback]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def on(self, event_type: BridgeEventType, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to an event type.

        Returns:
            Unsubscribe function
        """
        self._subscriptions.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            subscribers = self._subscriptions.get(event_type, [])
            if callback in subscribers:
                subscribers.remove(callback)

        return unsubscribe

    def once(self, event_type: BridgeEventType, callback: EventCallback) -> Callable[[], None]:
        """Subscribe for the next event of ``event_type`` only."""
        unsubscribe: Callable[[], None]

        def wrapper(event: BridgeEvent) -> Awaitable[None] | None:
            unsubscribe()
            return callback(event)

        unsubscribe = self.on(event_type, wrapper)
        return unsubscribe

    def subscriber_count(self, event_type: BridgeEventType) -> int:
        return len(self._subscriptions.get(event_type, []))

    def emit(self, event_type: BridgeEventType, **properties: Any) -> None:
        """Notify every subscriber of ``event_type`` without waiting on them."""
        event = BridgeEvent(type=event_type, properties=properties)
        # Copy so callbacks may unsubscribe while we iterate
        for callback in list(self._subscriptions.get(event_type, [])):
            try:
                result = callback(event)
            except Exception:
                logger.exception(f"Error in subscriber for {event_type.value}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(partial(self._on_callback_done, event_type))

    def _on_callback_done(self, event_type: BridgeEventType, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.error(
                f"Error in subscriber for {event_type.value}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def running_callbacks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self, timeout: float = 5.0) -> None:
        """Wait for running async callbacks; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} event subscriber(s) still running")
            await asyncio.gather(*still_running, return_exceptions=True)

    def clear(self) -> None:
        self._subscriptions = {}
