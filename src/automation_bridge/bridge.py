"""Automation bridge orchestrator.

Single public entry point. Owns start/stop, demand-driven connection to the
peer, concurrency-gated request admission and one-shot auto-launch.

Lifecycle:
    DISCONNECTED -> CONNECTING -> HANDSHAKING -> CONNECTED -> DISCONNECTED

Connections are never retried in the background. Every ``send_request``
that finds the bridge disconnected makes one lazy attempt, shared by all
concurrent callers. When the last connection drops, every pending and
queued request is rejected; callers resubmit.

Usage:
    async with AutomationBridge(BridgeConfig.from_env()) as bridge:
        response = await bridge.send_request("get_actors", {"level": "Main"})
        if response.success:
            ...
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from functools import partial
from typing import Any

from .config import AutoLaunchConfig, BridgeConfig
from .core import (
    ConnectionManager,
    HandshakeHandler,
    MessageHandler,
    RequestTracker,
    VersionCheckResult,
    check_version_compatibility,
    peer_info_from_metadata,
)
from .core.request_tracker import mark_retrieved
from .errors import (
    BridgeStoppedError,
    CapacityError,
    ConnectivityError,
    ConnectionLostError,
    DisabledError,
    HandshakeError,
    LaunchError,
    SendFailureError,
)
from .events import BridgeEventType, EventCallback, EventEmitter
from .launcher import LaunchMode, LaunchOptions, PeerLauncher, SubprocessLauncher
from .protocol import GoodbyeMessage, RequestMessage, ResponseMessage, parse_message
from .transport import (
    CLOSE_ABNORMAL,
    CLOSE_GOING_AWAY,
    BridgeSocket,
    SocketClosedError,
    SocketFactory,
    connect_websocket,
)
from .types import (
    AutoLaunchStatus,
    BridgeState,
    BridgeStatus,
    ConnectionStatus,
    DisconnectRecord,
    ErrorRecord,
    HandshakeFailureRecord,
    HandshakeRecord,
    LaunchOutcome,
)

logger = logging.getLogger(__name__)

CAPABILITY_HEADERS = ("X-Automation-Capability", "X-Automation-Capability-Token")

# Frames are traced at debug level up to this many characters
LOG_TRUNCATE = 1000


@dataclass
class _QueuedRequest:
    """A request admitted while at capacity, waiting for a free slot."""

    action: str
    payload: dict[str, Any]
    timeout_ms: int
    future: asyncio.Future[ResponseMessage]


def _copy_outcome(
    source: asyncio.Future[ResponseMessage], target: asyncio.Future[ResponseMessage]
) -> None:
    if target.done():
        return
    if source.cancelled():
        target.cancel()
    elif (exc := source.exception()) is not None:
        target.set_exception(exc)
    else:
        target.set_result(source.result())


def _now() -> datetime:
    return datetime.now(UTC)


class AutomationBridge:
    """Client bridge to a single automation peer.

    Args:
        config: Bridge configuration (defaults to ``BridgeConfig.from_env()``)
        socket_factory: Opens a transport socket; defaults to WebSocket
        launcher: Starts the peer process for auto-launch
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        socket_factory: SocketFactory | None = None,
        launcher: PeerLauncher | None = None,
    ) -> None:
        self.config = config or BridgeConfig.from_env()
        self._socket_factory = socket_factory or connect_websocket
        self._launcher = launcher or SubprocessLauncher()

        self._connections = ConnectionManager(self.config.heartbeat_interval_ms)
        self._tracker = RequestTracker(
            max_pending_requests=self.config.max_pending_requests,
            completion_rules=self.config.completion_rules,
            coalesce_prefixes=self.config.coalesce_prefixes,
        )
        self._handler = MessageHandler(self._tracker, self._connections, self.config.action_echo)
        self._handshake = HandshakeHandler(
            capability_token=self.config.capability_token,
            hello_delay_ms=self.config.hello_delay_ms,
        )
        self._events = EventEmitter()

        self._state = BridgeState.DISCONNECTED
        self._queue: deque[_QueuedRequest] = deque()
        self._connection_task: asyncio.Task[None] | None = None
        self._reader_tasks: dict[BridgeSocket, asyncio.Task[None]] = {}
        self._send_tasks: set[asyncio.Task[None]] = set()

        self._auto_launch: AutoLaunchConfig = replace(self.config.auto_launch)
        self._launch_task: asyncio.Task[LaunchOutcome] | None = None
        self._peer_launched = False

        self._last_handshake: HandshakeRecord | None = None
        self._last_handshake_failure: HandshakeFailureRecord | None = None
        self._last_disconnect: DisconnectRecord | None = None
        self._last_error: ErrorRecord | None = None
        self._version_check: VersionCheckResult | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Make one best-effort connection attempt.

        Never raises on connection failure; requests connect lazily anyway.
        """
        if not self.config.enabled:
            logger.info("Automation bridge disabled by configuration")
            return
        if self.is_connected():
            return
        logger.info(f"Starting automation bridge client for {self.config.url}")
        try:
            await self._connect_once()
        except Exception as e:
            logger.warning(f"Initial connection to {self.config.url} failed: {e}")

    async def stop(self) -> None:
        """Notify the peer, close every connection and reject all work.

        Safe to call when never connected.
        """
        if self._connections.is_connected():
            await self._connections.broadcast(GoodbyeMessage(reason="Server shutdown"))

        stopped = BridgeStoppedError("Automation bridge server stopped")
        self._tracker.reject_all(stopped)
        self._reject_queue(stopped)

        for task in (self._connection_task, self._launch_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
        self._connection_task = None
        self._launch_task = None

        self._connections.close_all(CLOSE_GOING_AWAY, "Server shutdown")

        reader_tasks = list(self._reader_tasks.values())
        self._reader_tasks.clear()
        for task in reader_tasks:
            task.cancel()
        await asyncio.gather(*reader_tasks, return_exceptions=True)

        for task in list(self._send_tasks):
            task.cancel()

        for socket in list(self._connections.get_active_sockets()):
            await self._forget_socket(socket, CLOSE_GOING_AWAY, "Server shutdown")

        await self._connections.wait_closed()
        await self._events.wait_idle()
        self._state = BridgeState.DISCONNECTED
        logger.info("Automation bridge stopped")

    async def __aenter__(self) -> AutomationBridge:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    def is_connected(self) -> bool:
        return self._connections.is_connected()

    @property
    def state(self) -> BridgeState:
        return self._state

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event_type: BridgeEventType, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to a lifecycle event. Returns an unsubscribe function."""
        return self._events.on(event_type, callback)

    def once(self, event_type: BridgeEventType, callback: EventCallback) -> Callable[[], None]:
        return self._events.once(event_type, callback)

    # =========================================================================
    # Requests
    # =========================================================================

    async def send_request(
        self,
        action: str,
        payload: dict[str, Any] | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> ResponseMessage:
        """Send an application request and wait for its settlement.

        Args:
            action: Action name understood by the peer
            payload: JSON-serializable request body
            timeout_ms: Per-request deadline (defaults to config)

        Returns:
            The peer response. An action-echo mismatch is returned as a
            response with ``success`` False, not raised.

        Raises:
            DisabledError: Bridge disabled by configuration
            ConnectivityError: Not connected and the lazy connect failed
            CapacityError: Concurrency limit reached and the queue is full
            RequestTimeoutError: No settlement before the deadline
            EventTimeoutError: Completion event did not arrive in time
            SendFailureError: The frame could not be transmitted
            ConnectionLostError: The peer disconnected while pending
        """
        if not self.config.enabled:
            raise DisabledError("Automation bridge disabled")

        if not self.is_connected():
            await self._ensure_connected()

        if timeout_ms is None:
            timeout_ms = self.config.request_timeout_ms
        future = self._admit(action, dict(payload or {}), timeout_ms)
        # Shielded: a cancelled caller must not cancel a shared future
        return await asyncio.shield(future)

    send_automation_request = send_request

    def _admit(
        self, action: str, payload: dict[str, Any], timeout_ms: int
    ) -> asyncio.Future[ResponseMessage]:
        coalesce_key = self._tracker.create_coalesce_key(action, payload)
        if coalesce_key is not None:
            existing = self._tracker.get_coalesced_request(coalesce_key)
            if existing is not None:
                logger.debug(f"Coalescing {action} with an in-flight request")
                return existing

        # Waiting requests keep their place ahead of newcomers
        if self._queue or not self._tracker.has_capacity():
            if len(self._queue) >= self.config.max_queued_requests:
                raise CapacityError(
                    f"Automation bridge request queue is full "
                    f"(max: {self.config.max_queued_requests}). Please retry later."
                )
            future: asyncio.Future[ResponseMessage] = asyncio.get_running_loop().create_future()
            future.add_done_callback(mark_retrieved)
            self._queue.append(_QueuedRequest(action, payload, timeout_ms, future))
            logger.debug(f"Queued {action} ({len(self._queue)} waiting)")
            if self._tracker.has_capacity():
                asyncio.get_running_loop().call_soon(self._drain_queue)
            return future

        return self._dispatch(action, payload, timeout_ms, coalesce_key)

    def _dispatch(
        self,
        action: str,
        payload: dict[str, Any],
        timeout_ms: int,
        coalesce_key: str | None,
    ) -> asyncio.Future[ResponseMessage]:
        # Capacity is reserved synchronously; transmission happens in a task
        request_id, future = self._tracker.create_request(action, payload, timeout_ms)
        if coalesce_key is not None:
            self._tracker.set_coalesced_request(coalesce_key, future)
        future.add_done_callback(self._drain_queue)

        message = RequestMessage(request_id=request_id, action=action, payload=payload)
        task = asyncio.create_task(self._transmit(message))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)
        return future

    async def _transmit(self, message: RequestMessage) -> None:
        socket = self._connections.get_primary_socket()
        if socket is None or not socket.is_open:
            logger.warning("Attempted to send automation message without an active primary connection")
            self._tracker.reject_request(
                message.request_id, SendFailureError("Failed to send request")
            )
            return

        text = message.to_json()
        logger.debug(f"Sending frame: {text[:LOG_TRUNCATE]}")
        try:
            await socket.send(text)
        except Exception as e:
            logger.error(f"Failed to send automation message: {e}")
            self._record_error(f"Failed to send request: {e}")
            self._tracker.reject_request(
                message.request_id, SendFailureError(f"Failed to send request: {e}")
            )
            info = self._connections.get_connection_info(socket)
            self._events.emit(
                BridgeEventType.ERROR,
                error=str(e),
                port=info.port if info else self.config.port,
            )
            return
        self._tracker.update_last_request_sent_at()

    def _drain_queue(self, _settled: asyncio.Future[Any] | None = None) -> None:
        """Move queued requests onto free slots in FIFO order.

        A head item that duplicates an in-flight read joins it without
        needing a slot.
        """
        while self._queue and self.is_connected():
            item = self._queue[0]
            if item.future.done():
                self._queue.popleft()
                continue
            coalesce_key = self._tracker.create_coalesce_key(item.action, item.payload)
            inner = (
                self._tracker.get_coalesced_request(coalesce_key)
                if coalesce_key is not None
                else None
            )
            if inner is None:
                if not self._tracker.has_capacity():
                    break
                inner = self._dispatch(item.action, item.payload, item.timeout_ms, coalesce_key)
            self._queue.popleft()
            inner.add_done_callback(partial(_copy_outcome, target=item.future))

    def _reject_queue(self, error: BaseException) -> int:
        rejected = 0
        while self._queue:
            item = self._queue.popleft()
            if not item.future.done():
                item.future.set_exception(error)
                rejected += 1
        if rejected:
            logger.info(f"Rejected {rejected} queued request(s): {error}")
        return rejected

    # =========================================================================
    # Connection
    # =========================================================================

    async def _ensure_connected(self) -> None:
        logger.info("Automation bridge not connected, attempting lazy connection...")
        try:
            await self._connect_once()
        except BridgeStoppedError:
            raise
        except Exception as e:
            logger.error(f"Lazy connection failed: {e}")
            if self._launch_in_progress() or self._can_auto_launch():
                logger.info("Connection failed, attempting auto-launch...")
                if await self._attempt_auto_launch() and self.is_connected():
                    logger.info("Auto-launch successful, connection established")
                    return
                raise ConnectivityError(
                    f"Failed to establish connection to peer (auto-launch also failed): {e}"
                ) from e
            raise ConnectivityError(f"Failed to establish connection to peer: {e}") from e

        if not self.is_connected():
            raise ConnectivityError("Automation bridge not connected")

    async def _connect_once(self) -> None:
        """Join the in-flight connection attempt, starting one if needed."""
        if self.is_connected():
            return
        task = self._connection_task
        if task is None or task.done():
            task = asyncio.create_task(self._connect())
            task.add_done_callback(mark_retrieved)
            self._connection_task = task

        try:
            await asyncio.wait_for(asyncio.shield(task), self.config.connect_timeout_ms / 1000)
        except TimeoutError:
            logger.error(f"Connection to {self.config.url} timed out")
            self._record_error("Lazy connection timeout")
            self._events.emit(
                BridgeEventType.ERROR, error="Lazy connection timeout", port=self.config.port
            )
            raise ConnectivityError("Lazy connection timeout") from None
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                raise BridgeStoppedError("Connection attempt cancelled") from None
            raise

    async def _connect(self) -> None:
        url = self.config.url
        self._state = BridgeState.CONNECTING
        try:
            try:
                socket = await self._socket_factory(
                    url, list(self.config.protocols), self._headers()
                )
            except Exception as e:
                logger.error(f"Failed to connect to {url}: {e}")
                self._record_error(f"Failed to connect to {url}: {e}")
                self._events.emit(BridgeEventType.ERROR, error=str(e), port=self.config.port)
                raise ConnectivityError(f"Failed to connect to {url}: {e}") from e

            self._state = BridgeState.HANDSHAKING
            try:
                metadata = await self._handshake.initiate_handshake(
                    socket, self.config.handshake_timeout_ms
                )
            except HandshakeError as e:
                self._last_handshake_failure = HandshakeFailureRecord(
                    at=_now(), reason=str(e), close_code=e.close_code
                )
                self._record_error(f"Handshake failed: {e}")
                self._events.emit(
                    BridgeEventType.HANDSHAKE_FAILED,
                    reason=str(e),
                    close_code=e.close_code,
                    port=self.config.port,
                )
                self._events.emit(BridgeEventType.ERROR, error=str(e), port=self.config.port)
                raise
            except asyncio.CancelledError:
                with contextlib.suppress(Exception):
                    await socket.close(CLOSE_GOING_AWAY, "Server shutdown")
                raise

            async def get_peer_info() -> dict[str, Any]:
                return peer_info_from_metadata(metadata)

            self._version_check = await check_version_compatibility(get_peer_info)
            self._register(socket, metadata)
        finally:
            if not self.is_connected():
                self._state = BridgeState.DISCONNECTED

        info = self._connections.get_connection_info(socket)
        self._events.emit(
            BridgeEventType.CONNECTED,
            connection_id=info.connection_id if info else None,
            session_id=info.session_id if info else None,
            port=self.config.port,
            protocol=socket.subprotocol,
            metadata=metadata,
        )

    def _register(self, socket: BridgeSocket, metadata: dict[str, Any]) -> None:
        remote = socket.remote_address
        info = self._connections.register_socket(
            socket,
            self.config.port,
            metadata,
            remote_address=remote[0] if remote else None,
            remote_port=remote[1] if remote else None,
        )
        self._last_handshake = HandshakeRecord(at=_now(), metadata=metadata)
        self._state = BridgeState.CONNECTED
        self._connections.start_heartbeat()
        self._reader_tasks[socket] = asyncio.create_task(self._read_loop(socket))
        logger.info(
            f"Automation bridge connected (connection={info.connection_id}, "
            f"session={info.session_id}, protocol={info.protocol})"
        )

    def _headers(self) -> dict[str, str]:
        token = self.config.capability_token
        if not token:
            return {}
        return {name: token for name in CAPABILITY_HEADERS}

    # =========================================================================
    # Inbound
    # =========================================================================

    async def _read_loop(self, socket: BridgeSocket) -> None:
        try:
            while True:
                data = await socket.recv()
                try:
                    await self._handle_frame(socket, data)
                except Exception:
                    logger.exception("Failed to handle automation message")
        except asyncio.CancelledError:
            pass
        except SocketClosedError as e:
            await self._handle_close(socket, e.code, e.reason)
        except Exception as e:
            logger.error(f"Automation bridge socket error: {e}")
            self._record_error(f"Socket error: {e}")
            self._events.emit(BridgeEventType.ERROR, error=str(e), port=self.config.port)
            with contextlib.suppress(Exception):
                await socket.close(CLOSE_ABNORMAL, "Socket error")
            await self._handle_close(socket, CLOSE_ABNORMAL, str(e))

    async def _handle_frame(self, socket: BridgeSocket, data: str | bytes) -> None:
        self._connections.update_last_message_time(socket)

        size = len(data) if isinstance(data, bytes) else len(data.encode("utf-8"))
        if size > self.config.max_message_size:
            logger.warning(
                f"Dropping oversized automation message ({size} bytes, "
                f"max {self.config.max_message_size})"
            )
            return

        try:
            text = data.decode("utf-8") if isinstance(data, bytes) else data
            logger.debug(f"Received frame: {text[:LOG_TRUNCATE]}")
            message = parse_message(text)
        except ValueError as e:
            logger.error(f"Received invalid automation message: {e}")
            return

        await self._handler.handle_message(message, socket)
        self._events.emit(BridgeEventType.MESSAGE, message=message.to_wire())

    async def _handle_close(self, socket: BridgeSocket, code: int, reason: str) -> None:
        self._reader_tasks.pop(socket, None)
        await self._forget_socket(socket, code, reason)

    async def _forget_socket(self, socket: BridgeSocket, code: int, reason: str) -> None:
        info = self._connections.remove_socket(socket)
        if info is None:
            return
        self._last_disconnect = DisconnectRecord(at=_now(), code=code, reason=reason)
        logger.info(
            f"Automation bridge connection {info.connection_id} closed (code={code}, reason={reason})"
        )

        if not self._connections.is_connected():
            self._state = BridgeState.DISCONNECTED
            lost = ConnectionLostError(reason or "Connection to peer lost")
            self._tracker.reject_all(lost)
            self._reject_queue(lost)

        self._events.emit(
            BridgeEventType.DISCONNECTED,
            connection_id=info.connection_id,
            code=code,
            reason=reason,
            port=info.port,
        )

    def _record_error(self, message: str) -> None:
        self._last_error = ErrorRecord(at=_now(), message=message)

    # =========================================================================
    # Auto-launch
    # =========================================================================

    def configure_auto_launch(
        self,
        project_path: str,
        *,
        mode: LaunchMode | str = LaunchMode.HEADLESS,
        enabled: bool = True,
        timeout_ms: int = 120_000,
        poll_interval_ms: int = 2_000,
        editor_path: str | None = None,
        additional_args: str | None = None,
    ) -> None:
        """Launch the peer automatically the first time a connection fails."""
        self._auto_launch = AutoLaunchConfig(
            project_path=project_path,
            mode=LaunchMode(mode),
            enabled=enabled,
            timeout_ms=timeout_ms,
            poll_interval_ms=poll_interval_ms,
            editor_path=editor_path,
            additional_args=additional_args,
        )
        logger.info(
            f"Auto-launch configured: project={project_path}, "
            f"mode={self._auto_launch.mode.value}, enabled={enabled}"
        )

    def disable_auto_launch(self) -> None:
        self._auto_launch.enabled = False
        logger.info("Auto-launch disabled")

    def get_auto_launch_config(self) -> AutoLaunchStatus:
        return AutoLaunchStatus(
            enabled=self._auto_launch.enabled,
            project_path=self._auto_launch.project_path,
            mode=self._auto_launch.mode,
            timeout_ms=self._auto_launch.timeout_ms,
            launched=self._peer_launched,
        )

    async def launch_and_connect(
        self,
        project_path: str | None = None,
        *,
        mode: LaunchMode | str | None = None,
        editor_path: str | None = None,
        additional_args: str | None = None,
        commandlet_name: str | None = None,
        commandlet_args: str | None = None,
    ) -> LaunchOutcome:
        """Launch the peer and wait until the bridge is connected to it.

        Manual launches are allowed any time, regardless of the auto-launch
        guard. Arguments default to the auto-launch configuration.

        Raises:
            LaunchError: If the project path is missing or the launch fails
        """
        project_path = project_path or self._auto_launch.project_path
        if not project_path:
            raise LaunchError("Project path is required for launching the peer")
        launch_mode = LaunchMode(mode) if mode is not None else self._auto_launch.mode

        logger.info(f"Launching peer: project={project_path}, mode={launch_mode.value}")
        options = LaunchOptions(
            project_path=project_path,
            mode=launch_mode,
            editor_path=editor_path or self._auto_launch.editor_path,
            additional_args=additional_args or self._auto_launch.additional_args,
            commandlet_name=commandlet_name,
            commandlet_args=commandlet_args,
            detached=True,
        )
        try:
            result = await self._launcher.launch(options)
        except LaunchError as e:
            logger.error(f"Failed to launch peer: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to launch peer: {e}")
            raise LaunchError(f"Failed to launch peer: {e}") from e

        self._peer_launched = True
        logger.info(f"Peer process started with pid {result.pid}")

        if launch_mode == LaunchMode.COMMANDLET:
            return LaunchOutcome(
                success=True,
                pid=result.pid,
                connected=False,
                message="Commandlet launched (no connection expected)",
            )

        try:
            await self._launcher.wait_until_ready(
                self._auto_launch.timeout_ms,
                self._auto_launch.poll_interval_ms,
                self._probe_connection,
            )
        except LaunchError as e:
            logger.warning(f"Peer launched but connection timed out: {e}")
            return LaunchOutcome(
                success=False,
                pid=result.pid,
                connected=False,
                message=f"Peer launched but connection not established: {e}",
                error=str(e),
            )

        return LaunchOutcome(
            success=True,
            pid=result.pid,
            connected=True,
            message="Peer launched and connection established",
        )

    async def _probe_connection(self) -> bool:
        if self.is_connected():
            return True
        try:
            await self._connect_once()
        except Exception as e:
            logger.debug(f"Peer not ready yet: {e}")
            return False
        return self.is_connected()

    def _can_auto_launch(self) -> bool:
        return (
            self._auto_launch.enabled
            and bool(self._auto_launch.project_path)
            and not self._peer_launched
        )

    def _launch_in_progress(self) -> bool:
        return self._launch_task is not None and not self._launch_task.done()

    async def _attempt_auto_launch(self) -> bool:
        """Launch the peer at most once per bridge; concurrent callers share it."""
        task = self._launch_task
        if task is None or task.done():
            if not self._can_auto_launch():
                return False
            logger.info("Attempting auto-launch of peer...")
            task = asyncio.create_task(self.launch_and_connect())
            task.add_done_callback(mark_retrieved)
            self._launch_task = task
        try:
            outcome = await asyncio.shield(task)
        except Exception as e:
            logger.error(f"Auto-launch failed: {e}")
            self._record_error(f"Auto-launch failed: {e}")
            return False
        return outcome.connected

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> BridgeStatus:
        """Compute a read-only snapshot of the bridge."""
        primary = self._connections.get_primary_socket()
        connections = [
            ConnectionStatus(
                connection_id=info.connection_id,
                session_id=info.session_id,
                remote_address=info.remote_address,
                remote_port=info.remote_port,
                port=info.port,
                protocol=info.protocol,
                connected_at=info.connected_at,
                is_primary=socket is primary,
                metadata=info.metadata,
            )
            for socket, info in self._connections.get_active_sockets().items()
        ]
        return BridgeStatus(
            enabled=self.config.enabled,
            state=self._state,
            host=self.config.host,
            port=self.config.port,
            connected=self.is_connected(),
            connections=connections,
            last_handshake=self._last_handshake,
            last_handshake_failure=self._last_handshake_failure,
            last_disconnect=self._last_disconnect,
            last_error=self._last_error,
            last_message_at=self._connections.get_last_message_time(),
            last_request_sent_at=self._tracker.get_last_request_sent_at(),
            pending_requests=self._tracker.get_pending_count(),
            pending_request_details=self._tracker.get_pending_details(),
            queued_requests=len(self._queue),
            max_pending_requests=self._tracker.get_max_pending_requests(),
            max_queued_requests=self.config.max_queued_requests,
            heartbeat_interval_ms=self._connections.get_heartbeat_interval_ms(),
            version_check=self._version_check,
            auto_launch=self.get_auto_launch_config(),
        )
