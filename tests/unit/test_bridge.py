"""Unit tests for AutomationBridge.

Drives the orchestrator end to end over MockBridgeSocket:
- Lazy, single-flight connection and best-effort start
- Capacity limit, FIFO queue and coalescing
- Timeouts, two-phase completion and action-echo mismatch
- Disconnect and stop semantics
- Auto-launch
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

import pytest

from automation_bridge.bridge import CAPABILITY_HEADERS, AutomationBridge
from automation_bridge.config import BridgeConfig
from automation_bridge.errors import (
    ACTION_MISMATCH_CODE,
    BridgeStoppedError,
    CapacityError,
    ConnectionLostError,
    ConnectivityError,
    DisabledError,
    LaunchError,
    RequestTimeoutError,
    SendFailureError,
)
from automation_bridge.events import BridgeEvent, BridgeEventType
from automation_bridge.launcher import LaunchOptions, LaunchResult, wait_until_ready
from automation_bridge.protocol import ResponseMessage
from automation_bridge.transport import (
    CLOSE_GOING_AWAY,
    CLOSE_HANDSHAKE_UNEXPECTED_TYPE,
    MockBridgeSocket,
    MockSocketFactory,
)
from automation_bridge.types import BridgeState


def respond(socket: MockBridgeSocket, frame: dict[str, Any], **fields: Any) -> None:
    """Feed a successful response for a sent request frame."""
    socket.feed({"type": "response", "requestId": frame["requestId"], "success": True, **fields})


async def wait_for_requests(
    socket: MockBridgeSocket, count: int, timeout: float = 1.0
) -> list[dict[str, Any]]:
    """Wait until ``count`` request frames have been sent."""
    async with asyncio.timeout(timeout):
        while len(socket.sent_of_type("request")) < count:
            await asyncio.sleep(0.005)
    return socket.sent_of_type("request")


def echo_ok(frame: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "response",
        "requestId": frame["requestId"],
        "success": True,
        "result": {"echo": frame["payload"]},
    }


class FakeLauncher:
    """Launcher that makes the peer reachable when launched."""

    def __init__(self, factory: MockSocketFactory, socket: MockBridgeSocket) -> None:
        self.factory = factory
        self.socket = socket
        self.launches: list[LaunchOptions] = []
        self.waits = 0

    async def launch(self, options: LaunchOptions) -> LaunchResult:
        self.launches.append(options)
        self.factory.error = None
        self.factory.add(self.socket)
        return LaunchResult(pid=4242, command="peer", args=[options.project_path])

    async def wait_until_ready(self, timeout_ms, poll_interval_ms, predicate) -> None:
        self.waits += 1
        await wait_until_ready(timeout_ms, poll_interval_ms, predicate)


# =============================================================================
# Connection Tests
# =============================================================================


class TestConnection:
    """Tests for start, lazy connect and handshake failures."""

    @pytest.mark.asyncio
    async def test_lazy_connect_on_first_request(self, fast_config: BridgeConfig) -> None:
        """The first request connects, handshakes and is answered."""
        socket = MockBridgeSocket(responder=echo_ok)
        factory = MockSocketFactory(socket)
        bridge = AutomationBridge(fast_config, socket_factory=factory)

        assert not bridge.is_connected()
        response = await bridge.send_request("spawn_actor", {"name": "Cube"})

        assert response.success is True
        assert response.result == {"echo": {"name": "Cube"}}
        assert bridge.is_connected()
        assert bridge.state == BridgeState.CONNECTED
        assert [m["type"] for m in socket.sent_messages] == ["hello", "request"]
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_start_connects(self, fast_config: BridgeConfig) -> None:
        """start() establishes the connection and emits CONNECTED."""
        socket = MockBridgeSocket(ack_metadata={"sessionId": "sess_1"})
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        events: list[BridgeEvent] = []
        bridge.on(BridgeEventType.CONNECTED, events.append)

        await bridge.start()

        assert bridge.is_connected()
        assert len(events) == 1
        assert events[0].properties["session_id"] == "sess_1"
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_start_failure_does_not_raise(self, fast_config: BridgeConfig) -> None:
        """A failed initial attempt is logged and emitted, not raised."""
        factory = MockSocketFactory(error=ConnectionRefusedError("refused"))
        bridge = AutomationBridge(fast_config, socket_factory=factory)
        errors: list[BridgeEvent] = []
        bridge.on(BridgeEventType.ERROR, errors.append)

        await bridge.start()

        assert not bridge.is_connected()
        assert len(errors) == 1
        assert "refused" in bridge.get_status().last_error.message
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_start_timeout_emits_error(self, fast_config: BridgeConfig) -> None:
        """A peer that never answers the connect times out with an error event."""

        async def unresponsive(url: str, protocols: list[str], headers: dict[str, str]):
            await asyncio.Event().wait()

        config = replace(fast_config, connect_timeout_ms=50)
        bridge = AutomationBridge(config, socket_factory=unresponsive)
        errors: list[BridgeEvent] = []
        bridge.on(BridgeEventType.ERROR, errors.append)

        await bridge.start()

        assert not bridge.is_connected()
        assert [e.properties["error"] for e in errors] == ["Lazy connection timeout"]
        assert bridge.get_status().last_error.message == "Lazy connection timeout"
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_start_handshake_failure_emits_error(self, fast_config: BridgeConfig) -> None:
        """A failed handshake during start emits both failure events."""
        socket = MockBridgeSocket(auto_ack=False)
        socket.feed({"type": "event", "event": "too_early"})
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        errors: list[BridgeEvent] = []
        failures: list[BridgeEvent] = []
        bridge.on(BridgeEventType.ERROR, errors.append)
        bridge.on(BridgeEventType.HANDSHAKE_FAILED, failures.append)

        await bridge.start()

        assert not bridge.is_connected()
        assert len(errors) == 1
        assert len(failures) == 1
        assert "Handshake failed" in bridge.get_status().last_error.message
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_slow_connected_subscriber(self, fast_config: BridgeConfig) -> None:
        """A subscriber still busy with CONNECTED does not stall the connect."""
        socket = MockBridgeSocket(responder=echo_ok)
        config = replace(fast_config, connect_timeout_ms=100)
        bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
        release = asyncio.Event()

        async def slow(event: BridgeEvent) -> None:
            await release.wait()

        bridge.on(BridgeEventType.CONNECTED, slow)

        response = await bridge.send_request("spawn_actor")

        assert response.success is True
        assert bridge.get_status().last_error is None
        release.set()
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_disabled(self, fast_config: BridgeConfig) -> None:
        """A disabled bridge never connects and rejects requests."""
        factory = MockSocketFactory(MockBridgeSocket())
        bridge = AutomationBridge(replace(fast_config, enabled=False), socket_factory=factory)

        await bridge.start()
        with pytest.raises(DisabledError):
            await bridge.send_request("get_actors")

        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connectivity_error(
        self, fast_config: BridgeConfig
    ) -> None:
        """A failed lazy connect fails the request without queuing it."""
        bridge = AutomationBridge(
            fast_config, socket_factory=MockSocketFactory(error=OSError("no route"))
        )

        with pytest.raises(ConnectivityError):
            await bridge.send_request("get_actors")

        assert bridge.get_status().queued_requests == 0

    @pytest.mark.asyncio
    async def test_single_flight_connect(self, fast_config: BridgeConfig) -> None:
        """Concurrent callers share one connection attempt."""
        socket = MockBridgeSocket(responder=echo_ok)
        factory = MockSocketFactory(socket)
        bridge = AutomationBridge(fast_config, socket_factory=factory)

        results = await asyncio.gather(
            *(bridge.send_request("spawn_actor", {"i": i}) for i in range(5))
        )

        assert all(r.success for r in results)
        assert len(factory.calls) == 1
        assert len(socket.sent_of_type("hello")) == 1
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_handshake_failure(self, fast_config: BridgeConfig) -> None:
        """A handshake violation is reported and no connection is recorded."""
        socket = MockBridgeSocket(auto_ack=False)
        socket.feed({"type": "event", "event": "too_early"})
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        failures: list[BridgeEvent] = []
        bridge.on(BridgeEventType.HANDSHAKE_FAILED, failures.append)

        with pytest.raises(ConnectivityError):
            await bridge.send_request("get_actors")

        status = bridge.get_status()
        assert status.connections == []
        assert status.last_handshake_failure is not None
        assert status.last_handshake_failure.close_code == CLOSE_HANDSHAKE_UNEXPECTED_TYPE
        assert socket.close_code == CLOSE_HANDSHAKE_UNEXPECTED_TYPE
        assert len(failures) == 1

    @pytest.mark.asyncio
    async def test_capability_headers_and_protocols(self, fast_config: BridgeConfig) -> None:
        """The token goes out as headers and the protocols are offered."""
        factory = MockSocketFactory(MockBridgeSocket())
        config = replace(fast_config, capability_token="secret", protocols=["custom"])
        bridge = AutomationBridge(config, socket_factory=factory)

        await bridge.start()

        url, protocols, headers = factory.calls[0]
        assert url == "ws://127.0.0.1:8091"
        assert protocols == ["custom"]
        assert {name: headers[name] for name in CAPABILITY_HEADERS} == {
            name: "secret" for name in CAPABILITY_HEADERS
        }
        await bridge.stop()


# =============================================================================
# Admission Tests
# =============================================================================


class TestAdmission:
    """Tests for capacity, queueing and coalescing."""

    @pytest.mark.asyncio
    async def test_queue_and_capacity(self, fast_config: BridgeConfig) -> None:
        """Overflow waits in FIFO order and the queue is bounded."""
        socket = MockBridgeSocket()
        config = replace(fast_config, max_pending_requests=2, max_queued_requests=1)
        bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        tasks = [
            asyncio.create_task(bridge.send_request("spawn_actor", {"i": i})) for i in range(3)
        ]
        sent = await wait_for_requests(socket, 2)
        assert bridge.get_status().queued_requests == 1

        with pytest.raises(CapacityError):
            await bridge.send_request("spawn_actor", {"i": 3})

        respond(socket, sent[0], message="first")
        sent = await wait_for_requests(socket, 3)
        assert sent[2]["payload"] == {"i": 2}

        respond(socket, sent[1], message="second")
        respond(socket, sent[2], message="third")
        results = await asyncio.gather(*tasks)

        assert [r.message for r in results] == ["first", "second", "third"]
        assert bridge.get_status().pending_requests == 0
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_coalescing(self, fast_config: BridgeConfig) -> None:
        """Concurrent duplicate reads share one frame and one outcome."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        first = asyncio.create_task(bridge.send_request("get_actors", {"level": "Main"}))
        second = asyncio.create_task(bridge.send_request("get_actors", {"level": "Main"}))
        sent = await wait_for_requests(socket, 1)
        await asyncio.sleep(0.01)

        assert len(socket.sent_of_type("request")) == 1
        respond(socket, sent[0], result={"actors": ["Cube"]})

        a, b = await asyncio.gather(first, second)
        assert a is b
        assert a.result == {"actors": ["Cube"]}
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_coalesced_callers_share_rejection(self, fast_config: BridgeConfig) -> None:
        """Callers joined on one read also share its failure."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        results = await asyncio.gather(
            bridge.send_request("get_actors", {"level": "Main"}, timeout_ms=50),
            bridge.send_request("get_actors", {"level": "Main"}, timeout_ms=50),
            return_exceptions=True,
        )

        assert isinstance(results[0], RequestTimeoutError)
        assert results[0] is results[1]
        assert len(socket.sent_of_type("request")) == 1
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_queued_duplicates_share_one_frame(self, fast_config: BridgeConfig) -> None:
        """Identical reads queued behind a slow request go out once."""
        socket = MockBridgeSocket()
        config = replace(fast_config, max_pending_requests=1)
        bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        slow = asyncio.create_task(bridge.send_request("spawn_actor"))
        (slow_frame,) = await wait_for_requests(socket, 1)
        reads = [
            asyncio.create_task(bridge.send_request("get_actors", {"level": "Main"}))
            for _ in range(2)
        ]
        await asyncio.sleep(0.01)
        assert bridge.get_status().queued_requests == 2

        respond(socket, slow_frame)
        sent = await wait_for_requests(socket, 2)
        await asyncio.sleep(0.01)

        assert len(socket.sent_of_type("request")) == 2
        assert sent[1]["action"] == "get_actors"
        assert bridge.get_status().queued_requests == 0

        respond(socket, sent[1], result={"actors": ["Cube"]})
        a, b = await asyncio.gather(*reads)
        assert a is b
        assert a.result == {"actors": ["Cube"]}
        await slow
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_queue_served_before_newcomers(self, fast_config: BridgeConfig) -> None:
        """A freed slot goes to the oldest waiting request, not a new caller."""
        socket = MockBridgeSocket()
        config = replace(fast_config, max_pending_requests=1)
        bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        first = asyncio.create_task(bridge.send_request("spawn_actor", {"i": 0}))
        (frame,) = await wait_for_requests(socket, 1)
        waiting = asyncio.create_task(bridge.send_request("spawn_actor", {"i": 1}))
        await asyncio.sleep(0.01)

        # Admit a newcomer in the same tick the slot frees up
        bridge._tracker.resolve_request(
            frame["requestId"], ResponseMessage(request_id=frame["requestId"], success=True)
        )
        newcomer = bridge._admit("spawn_actor", {"i": 2}, 1000)

        sent = await wait_for_requests(socket, 2)
        assert sent[1]["payload"] == {"i": 1}

        respond(socket, sent[1])
        sent = await wait_for_requests(socket, 3)
        assert sent[2]["payload"] == {"i": 2}
        respond(socket, sent[2])

        await asyncio.gather(first, waiting, newcomer)
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_writes_not_coalesced(self, fast_config: BridgeConfig) -> None:
        """Mutating actions always get their own frame."""
        socket = MockBridgeSocket(responder=echo_ok)
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        await asyncio.gather(
            bridge.send_request("spawn_actor", {"name": "A"}),
            bridge.send_request("spawn_actor", {"name": "A"}),
        )

        assert len(socket.sent_of_type("request")) == 2
        await bridge.stop()


# =============================================================================
# Settlement Tests
# =============================================================================


class TestSettlement:
    """Tests for timeouts, completion events and echo validation."""

    @pytest.mark.asyncio
    async def test_timeout_and_late_response(self, fast_config: BridgeConfig) -> None:
        """A silent peer times the request out; a late reply is discarded."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        with pytest.raises(RequestTimeoutError):
            await bridge.send_request("spawn_actor", timeout_ms=50)

        respond(socket, socket.sent_of_type("request")[0])
        await asyncio.sleep(0.01)

        assert bridge.get_status().pending_requests == 0
        assert bridge.is_connected()
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_zero_timeout_is_honoured(self, fast_config: BridgeConfig) -> None:
        """An explicit zero deadline is not replaced by the default."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        async with asyncio.timeout(1):
            with pytest.raises(RequestTimeoutError, match="after 0ms"):
                await bridge.send_request("spawn_actor", timeout_ms=0)
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_non_string_message_accepted(self, fast_config: BridgeConfig) -> None:
        """A structured message field does not invalidate the response."""
        socket = MockBridgeSocket(
            responder=lambda f: {
                "type": "response",
                "requestId": f["requestId"],
                "success": True,
                "message": {"detail": "ok"},
                "result": {"v": 1},
            }
        )
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))

        response = await bridge.send_request("spawn_actor", timeout_ms=500)

        assert response.success is True
        assert response.message == {"detail": "ok"}
        assert response.result == {"v": 1}
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_message_subscriber_can_send_request(self, fast_config: BridgeConfig) -> None:
        """A MESSAGE subscriber may issue a request and receive its answer."""
        socket = MockBridgeSocket(responder=echo_ok)
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()
        answers = []

        async def on_message(event: BridgeEvent) -> None:
            if event.properties["message"].get("type") == "goodbye":
                answers.append(await bridge.send_request("get_level_info", timeout_ms=500))

        bridge.on(BridgeEventType.MESSAGE, on_message)
        socket.feed({"type": "goodbye", "reason": "restarting"})

        async with asyncio.timeout(1):
            while not answers:
                await asyncio.sleep(0.005)

        assert answers[0].success is True
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_two_phase_completion(self, fast_config: BridgeConfig) -> None:
        """A save settles only on its completion event."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        task = asyncio.create_task(bridge.send_request("save_asset", {"path": "/Game/A"}))
        (frame,) = await wait_for_requests(socket, 1)
        respond(socket, frame, message="Save queued")
        await asyncio.sleep(0.02)

        assert not task.done()

        socket.feed(
            {
                "type": "event",
                "requestId": frame["requestId"],
                "event": "asset_saved",
                "result": {"message": "Saved", "saved": True},
            }
        )
        response = await task

        assert response.success is True
        assert response.message == "Saved"
        assert response.result == {"message": "Saved", "saved": True}
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_action_mismatch(self, fast_config: BridgeConfig) -> None:
        """A foreign action echo resolves as a failure."""
        socket = MockBridgeSocket(
            responder=lambda f: {
                "type": "response",
                "requestId": f["requestId"],
                "success": True,
                "action": "bar",
            }
        )
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))

        response = await bridge.send_request("foo")

        assert response.success is False
        assert response.error == ACTION_MISMATCH_CODE
        assert "Response action mismatch" in response.message
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_send_failure(self, fast_config: BridgeConfig) -> None:
        """A transport write error rejects with SendFailureError."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()
        socket.send_error = RuntimeError("broken pipe")

        with pytest.raises(SendFailureError):
            await bridge.send_request("spawn_actor")

        assert bridge.get_status().pending_requests == 0
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_oversized_and_invalid_frames_dropped(self, fast_config: BridgeConfig) -> None:
        """Oversized or malformed frames are dropped and reading continues."""
        socket = MockBridgeSocket()
        config = replace(fast_config, max_message_size=256)
        bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        task = asyncio.create_task(bridge.send_request("spawn_actor"))
        (frame,) = await wait_for_requests(socket, 1)
        respond(socket, frame, result="x" * 1000)
        socket.feed("{not json")
        await asyncio.sleep(0.02)
        assert not task.done()

        respond(socket, frame, message="small")
        assert (await task).message == "small"
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_ping_answered(self, fast_config: BridgeConfig) -> None:
        """Peer pings get a pong."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        socket.feed({"type": "ping"})
        await asyncio.sleep(0.02)

        assert len(socket.sent_of_type("pong")) == 1
        await bridge.stop()


# =============================================================================
# Disconnect and Stop Tests
# =============================================================================


class TestDisconnect:
    """Tests for connection loss and shutdown."""

    @pytest.mark.asyncio
    async def test_disconnect_rejects_all_pending(self, fast_config: BridgeConfig) -> None:
        """Losing the only connection rejects every pending request."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()
        disconnects: list[BridgeEvent] = []
        bridge.on(BridgeEventType.DISCONNECTED, disconnects.append)

        tasks = [
            asyncio.create_task(bridge.send_request("spawn_actor", {"i": i})) for i in range(3)
        ]
        await wait_for_requests(socket, 3)
        socket.simulate_close(1006, "peer crashed")

        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, ConnectionLostError) for r in results)
        assert not bridge.is_connected()
        assert disconnects[0].properties["code"] == 1006
        assert bridge.get_status().last_disconnect.reason == "peer crashed"

    @pytest.mark.asyncio
    async def test_disconnect_rejects_queue(self, fast_config: BridgeConfig) -> None:
        """Queued requests are rejected when the connection drops."""
        socket = MockBridgeSocket()
        config = replace(fast_config, max_pending_requests=1)
        bridge = AutomationBridge(config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        pending = asyncio.create_task(bridge.send_request("spawn_actor", {"i": 0}))
        queued = asyncio.create_task(bridge.send_request("spawn_actor", {"i": 1}))
        await wait_for_requests(socket, 1)
        await asyncio.sleep(0.01)
        socket.simulate_close(1006, "gone")

        with pytest.raises(ConnectionLostError):
            await pending
        with pytest.raises(ConnectionLostError):
            await queued
        assert bridge.get_status().queued_requests == 0

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self, fast_config: BridgeConfig) -> None:
        """The next request reconnects lazily."""
        first = MockBridgeSocket(responder=echo_ok)
        second = MockBridgeSocket(responder=echo_ok)
        factory = MockSocketFactory(first, second)
        bridge = AutomationBridge(fast_config, socket_factory=factory)

        await bridge.send_request("spawn_actor")
        first.simulate_close(1006, "gone")
        await asyncio.sleep(0.01)
        response = await bridge.send_request("spawn_actor")

        assert response.success is True
        assert len(factory.calls) == 2
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_stop(self, fast_config: BridgeConfig) -> None:
        """stop() says goodbye, closes and rejects pending work."""
        socket = MockBridgeSocket()
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        task = asyncio.create_task(bridge.send_request("spawn_actor"))
        await wait_for_requests(socket, 1)
        await bridge.stop()

        with pytest.raises(BridgeStoppedError):
            await task
        assert socket.sent_of_type("goodbye")[0]["reason"] == "Server shutdown"
        assert socket.close_code == CLOSE_GOING_AWAY
        assert not bridge.is_connected()
        assert bridge.state == BridgeState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_stop_when_never_connected(self, fast_config: BridgeConfig) -> None:
        """stop() is safe without a connection."""
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory())
        await bridge.stop()
        assert not bridge.is_connected()

    @pytest.mark.asyncio
    async def test_context_manager(self, fast_config: BridgeConfig) -> None:
        """async with starts and stops the bridge."""
        socket = MockBridgeSocket()
        async with AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket)) as bridge:
            assert bridge.is_connected()
        assert socket.close_code == CLOSE_GOING_AWAY


# =============================================================================
# Status Tests
# =============================================================================


class TestStatus:
    """Tests for the status snapshot."""

    @pytest.mark.asyncio
    async def test_status_snapshot(self, fast_config: BridgeConfig) -> None:
        """The snapshot aggregates connection, handshake and version state."""
        socket = MockBridgeSocket(
            ack_metadata={"sessionId": "sess_1", "version": "0.4.0", "capabilityToken": "t"}
        )
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory(socket))
        await bridge.start()

        status = bridge.get_status()

        assert status.connected is True
        assert status.state == BridgeState.CONNECTED
        assert status.connections[0].session_id == "sess_1"
        assert status.connections[0].is_primary is True
        assert status.last_handshake.metadata["capabilityToken"] == "REDACTED"
        assert status.version_check.peer_version == "0.4.0"
        assert status.version_check.degraded_features
        assert status.max_pending_requests == fast_config.max_pending_requests
        # Serializable for reporting
        assert status.model_dump(mode="json")["connections"][0]["session_id"] == "sess_1"
        await bridge.stop()


# =============================================================================
# Auto-launch Tests
# =============================================================================


class TestAutoLaunch:
    """Tests for one-shot auto-launch and manual launches."""

    @pytest.mark.asyncio
    async def test_auto_launch_once(self, fast_config: BridgeConfig) -> None:
        """A failed connect launches the peer once, then connects."""
        socket = MockBridgeSocket(responder=echo_ok)
        factory = MockSocketFactory(error=ConnectionRefusedError("refused"))
        launcher = FakeLauncher(factory, socket)
        bridge = AutomationBridge(fast_config, socket_factory=factory, launcher=launcher)
        bridge.configure_auto_launch("/tmp/Project.uproject", timeout_ms=1000, poll_interval_ms=10)

        response = await bridge.send_request("spawn_actor")

        assert response.success is True
        assert len(launcher.launches) == 1
        assert launcher.launches[0].project_path == "/tmp/Project.uproject"
        assert bridge.get_auto_launch_config().launched is True

        socket.simulate_close(1006, "gone")
        await asyncio.sleep(0.01)
        factory.error = ConnectionRefusedError("refused")

        with pytest.raises(ConnectivityError):
            await bridge.send_request("spawn_actor")
        assert len(launcher.launches) == 1

    @pytest.mark.asyncio
    async def test_auto_launch_disabled(self, fast_config: BridgeConfig) -> None:
        """disable_auto_launch stops automatic launches."""
        factory = MockSocketFactory(error=ConnectionRefusedError("refused"))
        launcher = FakeLauncher(factory, MockBridgeSocket())
        bridge = AutomationBridge(fast_config, socket_factory=factory, launcher=launcher)
        bridge.configure_auto_launch("/tmp/Project.uproject")
        bridge.disable_auto_launch()

        with pytest.raises(ConnectivityError):
            await bridge.send_request("spawn_actor")

        assert launcher.launches == []
        assert bridge.get_auto_launch_config().enabled is False

    @pytest.mark.asyncio
    async def test_commandlet_does_not_wait(self, fast_config: BridgeConfig) -> None:
        """Commandlet launches report success without a connection."""
        factory = MockSocketFactory()
        launcher = FakeLauncher(factory, MockBridgeSocket())
        bridge = AutomationBridge(fast_config, socket_factory=factory, launcher=launcher)

        outcome = await bridge.launch_and_connect("/tmp/Project.uproject", mode="commandlet")

        assert outcome.success is True
        assert outcome.connected is False
        assert outcome.pid == 4242
        assert launcher.waits == 0

    @pytest.mark.asyncio
    async def test_manual_launch_requires_project(self, fast_config: BridgeConfig) -> None:
        """Launching without any project path fails."""
        bridge = AutomationBridge(fast_config, socket_factory=MockSocketFactory())

        with pytest.raises(LaunchError):
            await bridge.launch_and_connect()
