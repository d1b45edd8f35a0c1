"""Unit tests for the bridge event emitter."""

from __future__ import annotations

import asyncio

import pytest

from automation_bridge.events import BridgeEvent, BridgeEventType, EventEmitter


class TestEventEmitter:
    """Tests for subscribe, emit and unsubscribe."""

    def test_emit_to_subscribers(self) -> None:
        """Subscribers of the type receive the event and its properties."""
        emitter = EventEmitter()
        received: list[BridgeEvent] = []
        emitter.on(BridgeEventType.CONNECTED, received.append)
        emitter.on(BridgeEventType.DISCONNECTED, received.append)

        emitter.emit(BridgeEventType.CONNECTED, port=8091)

        assert len(received) == 1
        assert received[0].type == BridgeEventType.CONNECTED
        assert received[0].properties == {"port": 8091}

    @pytest.mark.asyncio
    async def test_async_callback(self) -> None:
        """Async callbacks run in the background and finish."""
        emitter = EventEmitter()
        received = []

        async def callback(event: BridgeEvent) -> None:
            received.append(event.properties["error"])

        emitter.on(BridgeEventType.ERROR, callback)
        emitter.emit(BridgeEventType.ERROR, error="boom")
        await emitter.wait_idle()

        assert received == ["boom"]
        assert emitter.running_callbacks == 0

    @pytest.mark.asyncio
    async def test_emit_does_not_wait_for_async_callbacks(self) -> None:
        """A blocked async subscriber does not hold up emit or later subscribers."""
        emitter = EventEmitter()
        release = asyncio.Event()
        received: list[BridgeEvent] = []

        async def blocked(event: BridgeEvent) -> None:
            await release.wait()

        emitter.on(BridgeEventType.MESSAGE, blocked)
        emitter.on(BridgeEventType.MESSAGE, received.append)

        emitter.emit(BridgeEventType.MESSAGE)

        assert len(received) == 1
        assert emitter.running_callbacks == 1
        release.set()
        await emitter.wait_idle()
        assert emitter.running_callbacks == 0

    @pytest.mark.asyncio
    async def test_wait_idle_cancels_stragglers(self) -> None:
        """Callbacks still running after the timeout are cancelled."""
        emitter = EventEmitter()

        async def forever(event: BridgeEvent) -> None:
            await asyncio.Event().wait()

        emitter.on(BridgeEventType.MESSAGE, forever)
        emitter.emit(BridgeEventType.MESSAGE)
        await emitter.wait_idle(timeout=0.01)

        assert emitter.running_callbacks == 0

    def test_unsubscribe(self) -> None:
        """The returned function removes the subscription."""
        emitter = EventEmitter()
        received: list[BridgeEvent] = []
        unsubscribe = emitter.on(BridgeEventType.MESSAGE, received.append)

        unsubscribe()
        unsubscribe()
        emitter.emit(BridgeEventType.MESSAGE)

        assert received == []
        assert emitter.subscriber_count(BridgeEventType.MESSAGE) == 0

    def test_once(self) -> None:
        """once() fires a single time."""
        emitter = EventEmitter()
        received: list[BridgeEvent] = []
        emitter.once(BridgeEventType.CONNECTED, received.append)

        emitter.emit(BridgeEventType.CONNECTED)
        emitter.emit(BridgeEventType.CONNECTED)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_failing_callbacks_isolated(self) -> None:
        """Raising subscribers, sync or async, do not stop the others."""
        emitter = EventEmitter()
        received: list[BridgeEvent] = []

        def broken(event: BridgeEvent) -> None:
            raise RuntimeError("subscriber bug")

        async def broken_async(event: BridgeEvent) -> None:
            raise RuntimeError("async subscriber bug")

        emitter.on(BridgeEventType.ERROR, broken)
        emitter.on(BridgeEventType.ERROR, broken_async)
        emitter.on(BridgeEventType.ERROR, received.append)

        emitter.emit(BridgeEventType.ERROR, error="x")
        await emitter.wait_idle()

        assert len(received) == 1

    def test_clear(self) -> None:
        """clear() drops every subscription."""
        emitter = EventEmitter()
        emitter.on(BridgeEventType.CONNECTED, lambda e: None)
        emitter.clear()
        assert emitter.subscriber_count(BridgeEventType.CONNECTED) == 0
