"""
Relay Hub.

Accepts WebSocket connections from bridge agents, broadcasts controller
commands to all of them and routes their replies back:

    controller ──► RelayHub.broadcast ──► Connection.queue ──► writer task ──► agent
    agent ──► _handle_socket ──► _dispatch ──► correlator / recent_results / handlers

Each connection owns a bounded outbound queue drained by its own writer task,
so one stalled peer only ever loses its own messages.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from aiohttp import WSMsgType, web

from strudel_bridge.config.base_config import HubConfig
from strudel_bridge.hub.correlator import SnapshotCorrelator
from strudel_bridge.protocol import messages
from strudel_bridge.protocol.errors import BindError, ProtocolError, TransportError
from strudel_bridge.protocol.messages import BridgeMessage, MessageType
from strudel_bridge.utils.async_helpers import call_handler, spawn
from strudel_bridge.utils.logging_config import LogContext

logger = logging.getLogger(__name__)

MessageHandler = Callable[[BridgeMessage, "Connection"], Any]
LifecycleListener = Callable[[str, "Connection"], Any]


@dataclass
class Connection:
    """One agent's transport session, owned by the hub."""
    connection_id: str
    transport: Any  # web.WebSocketResponse or anything with .closed / .send_str
    queue: "asyncio.Queue[str]"
    connected_at: datetime = field(default_factory=datetime.now)
    remote: Optional[str] = None
    alive: bool = True

    # Metadata from the agent's browser_ready announcement
    agent_info: Dict[str, Any] = field(default_factory=dict)
    # Latest agent self-report from a health_response
    health: Dict[str, Any] = field(default_factory=dict)

    writer_task: Optional[asyncio.Task] = None
    sent_count: int = 0
    dropped_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.alive and not getattr(self.transport, "closed", False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "remote": self.remote,
            "connected_at": self.connected_at.isoformat(),
            "open": self.is_open,
            "ready": bool(self.agent_info),
            "agent": self.agent_info,
            "health": self.health,
            "sent": self.sent_count,
            "dropped": self.dropped_count,
            "queued": self.queue.qsize(),
        }


class RelayHub:
    """
    WebSocket relay between a controller and any number of agents.

    Usage:
        hub = RelayHub(HubConfig(port=3001))
        await hub.start()

        hub.broadcast(messages.execute_code('s("bd sd")'))
        code = await hub.request_snapshot(timeout_ms=5000)

        await hub.stop()
    """

    def __init__(self, config: Optional[HubConfig] = None):
        self.config = config or HubConfig()
        self.correlator = SnapshotCorrelator()
        self.recent_results: Deque[Dict[str, Any]] = deque(maxlen=self.config.max_recent_results)

        self._connections: Dict[str, Connection] = {}
        self._handlers: Dict[str, List[MessageHandler]] = {}
        self._global_handlers: List[MessageHandler] = []
        self._lifecycle_listeners: List[LifecycleListener] = []
        self._observer_tasks: Set[asyncio.Task] = set()

        self._runner: Optional[web.AppRunner] = None
        self._host: Optional[str] = None
        self._port: Optional[int] = None
        self._running = False
        self._started_at: Optional[float] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, port: Optional[int] = None, host: Optional[str] = None) -> None:
        """
        Bind the listening socket.

        Returns once the listener accepts connections.

        Raises:
            BindError: The port is unavailable.
        """
        if self._running:
            return

        host = host or self.config.host
        port = self.config.port if port is None else port

        app = web.Application()
        app.router.add_get("/", self._handle_socket)
        app.router.add_get("/ws", self._handle_socket)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()

        site = web.TCPSite(runner, host, port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise BindError(host, port, e) from e

        self._runner = runner
        self._host = host
        self._port = runner.addresses[0][1] if runner.addresses else port
        self._running = True
        self._started_at = time.time()

        logger.info(f"Relay hub listening on ws://{host}:{self._port}")

    async def stop(self) -> None:
        """Close all connections, release pending snapshots and unbind."""
        if not self._running and self._runner is None and not self._connections:
            return

        self._running = False

        for connection in list(self._connections.values()):
            await self.detach(connection, reason="hub stopping")

        released = self.correlator.cancel_all()
        if released:
            logger.info(f"Released {released} pending snapshot requests")

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        logger.info("Relay hub stopped")

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Connection set
    # =========================================================================

    async def _handle_socket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        connection = self.attach(ws, remote=request.remote)
        origin = request.headers.get("Origin")
        if origin:
            logger.info(f"Agent {connection.connection_id} origin: {origin}")

        reason = "closed"
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self.handle_frame(connection, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    reason = f"error: {ws.exception()}"
                    logger.warning(f"WebSocket error on {connection.connection_id}: {ws.exception()}")
                    break
        finally:
            await self.detach(connection, reason=reason)

        return ws

    def attach(self, transport: Any, remote: Optional[str] = None) -> Connection:
        """Add a transport to the live set and queue the welcome message."""
        connection = Connection(
            connection_id=uuid.uuid4().hex[:12],
            transport=transport,
            queue=asyncio.Queue(maxsize=self.config.send_queue_size),
            remote=remote,
        )
        self._connections[connection.connection_id] = connection
        connection.writer_task = spawn(
            self._writer(connection),
            name=f"hub-writer-{connection.connection_id}",
        )

        logger.info(
            f"Agent connected: {connection.connection_id} from {remote or 'unknown'} "
            f"(total: {len(self._connections)})"
        )
        self.send_to(connection, messages.connected(self.config.welcome_message))
        self._notify_lifecycle("connected", connection)
        return connection

    async def detach(self, connection: Connection, reason: str = "closed") -> None:
        """Remove a connection from the live set and close its transport."""
        self._remove(connection, reason)
        await self._close_transport(connection)

    def _remove(self, connection: Connection, reason: str) -> bool:
        if self._connections.pop(connection.connection_id, None) is None:
            return False

        connection.alive = False
        writer = connection.writer_task
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()

        logger.info(
            f"Agent disconnected: {connection.connection_id} ({reason}, "
            f"remaining: {len(self._connections)})"
        )
        self._notify_lifecycle("disconnected", connection)
        return True

    async def _close_transport(self, connection: Connection) -> None:
        transport = connection.transport
        if getattr(transport, "closed", True):
            return
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing {connection.connection_id}: {e}")

    async def _writer(self, connection: Connection) -> None:
        """Drain one connection's outbound queue."""
        while True:
            payload = await connection.queue.get()
            try:
                await connection.transport.send_str(payload)
                connection.sent_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(str(TransportError(connection.connection_id, e)))
                self._remove(connection, reason="write failed")
                await self._close_transport(connection)
                return

    def has_connected_clients(self) -> bool:
        return len(self._connections) > 0

    def client_count(self) -> int:
        return len(self._connections)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    # =========================================================================
    # Outbound
    # =========================================================================

    def _enqueue(self, connection: Connection, payload: str) -> bool:
        if not connection.is_open:
            return False
        try:
            connection.queue.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            connection.dropped_count += 1
            logger.warning(
                f"Outbound queue full for {connection.connection_id}, dropping message "
                f"(dropped: {connection.dropped_count})"
            )
            return False

    def send_to(self, connection: Connection, message: BridgeMessage) -> bool:
        """Queue a message for one connection."""
        return self._enqueue(connection, message.to_json())

    def broadcast(self, message: BridgeMessage) -> int:
        """
        Queue a message for every open connection.

        Closed connections and connections with a full queue are skipped.

        Returns:
            Number of connections the message was queued for.
        """
        payload = message.to_json()
        delivered = 0
        for connection in list(self._connections.values()):
            if self._enqueue(connection, payload):
                delivered += 1

        logger.debug(
            f"Broadcast {message.type_name} to {delivered}/{len(self._connections)} agents"
        )
        return delivered

    async def request_snapshot(self, timeout_ms: Optional[int] = None) -> str:
        """
        Ask the agents for the current editor content.

        Returns:
            The first matching reply, or "" if none arrives in time.
        """
        if not self.has_connected_clients():
            return ""

        if timeout_ms is None:
            timeout_ms = self.config.snapshot_timeout_ms

        pending = self.correlator.open(timeout=timeout_ms / 1000.0)
        with LogContext(request_id=pending.request_id):
            if self.broadcast(messages.get_current_code(pending.request_id)) == 0:
                # Nobody will answer
                self.correlator.resolve(pending.request_id, "")

            return await self.correlator.wait(pending)

    # =========================================================================
    # Inbound
    # =========================================================================

    async def handle_frame(self, connection: Connection, raw: str) -> None:
        """Parse and dispatch one inbound text frame."""
        try:
            message = BridgeMessage.from_json(raw)
        except ProtocolError as e:
            logger.warning(f"Failed to parse message from {connection.connection_id}: {e}")
            return

        try:
            self._dispatch(connection, message)
        except Exception as e:
            logger.error(
                f"Failed to handle {message.type_name} from {connection.connection_id}: {e}",
                exc_info=True,
            )
            return
        self._notify_handlers(connection, message)

    def _dispatch(self, connection: Connection, message: BridgeMessage) -> None:
        data = message.data or {}
        msg_type = message.type

        if msg_type == MessageType.BROWSER_READY:
            connection.agent_info = dict(data)
            logger.info(
                f"Agent {connection.connection_id} ready: editor_found={data.get('editor_found')}, "
                f"url={data.get('url')}"
            )

        elif msg_type == MessageType.EXECUTION_RESULT:
            result = dict(data)
            result.setdefault("connection_id", connection.connection_id)
            self.recent_results.append(result)
            if data.get("success"):
                logger.info(f"Execution on {connection.connection_id}: success")
            else:
                logger.warning(
                    f"Execution on {connection.connection_id}: failed ({data.get('error')})"
                )

        elif msg_type == MessageType.CURRENT_CODE:
            if not self.correlator.resolve(message.request_id, message.code or ""):
                logger.debug(f"Ignoring stale snapshot reply {message.request_id}")

        elif msg_type == MessageType.HEALTH_CHECK:
            self.send_to(connection, messages.health_response("ok"))

        elif msg_type == MessageType.HEALTH_RESPONSE:
            if data:
                connection.health = dict(data)
            logger.debug(f"health_response from {connection.connection_id}: {message.status}")

        elif msg_type == MessageType.CONNECTED:
            logger.debug(f"{message.type_name} from {connection.connection_id}")

        elif msg_type == MessageType.ERROR:
            logger.error(f"Agent {connection.connection_id} error: {data.get('error')}")

        else:
            logger.warning(f"Unhandled message type from {connection.connection_id}: {message.type_name}")

    def register_handler(
        self,
        handler: MessageHandler,
        message_types: Optional[List[MessageType]] = None,
    ) -> None:
        """Register an observer for inbound messages (sync or async)."""
        if message_types:
            for message_type in message_types:
                key = MessageType(message_type).value
                self._handlers.setdefault(key, []).append(handler)
        else:
            self._global_handlers.append(handler)

    def on_connection_change(self, listener: LifecycleListener) -> None:
        """Register a listener called with ("connected" | "disconnected", connection)."""
        self._lifecycle_listeners.append(listener)

    def _notify_handlers(self, connection: Connection, message: BridgeMessage) -> None:
        handlers = self._handlers.get(message.type_name, []) + self._global_handlers
        for handler in handlers:
            self._track(spawn(call_handler(handler, message, connection), name="hub-message-handler"))

    def _notify_lifecycle(self, event: str, connection: Connection) -> None:
        for listener in self._lifecycle_listeners:
            self._track(spawn(call_handler(listener, event, connection), name="hub-lifecycle-listener"))

    def _track(self, task: asyncio.Task) -> None:
        self._observer_tasks.add(task)
        task.add_done_callback(self._observer_tasks.discard)

    # =========================================================================
    # Observation
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "host": self._host,
            "port": self._port,
            "uptime_seconds": time.time() - self._started_at if self._started_at else 0.0,
            "client_count": self.client_count(),
            "connections": [c.to_dict() for c in self._connections.values()],
            "pending_snapshots": self.correlator.pending_count,
            "recent_results": len(self.recent_results),
        }
