"""
Bridge agent.

Runs next to the editor page: holds one WebSocket session to the relay hub,
turns incoming commands into queued tasks, runs them against the page through
the strategy chains and reports every outcome back.

Each BridgeAgent owns its queue, state machine and chains. Several agents can
live in one process (tests run a hub and agents side by side).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Set

import aiohttp

from strudel_bridge import __version__
from strudel_bridge.agent.connection import (
    ConnectionStateMachine,
    ConnectionStatus,
    ReconnectPolicy,
)
from strudel_bridge.agent.editor_chains import EditorChains, build_editor_chains
from strudel_bridge.agent.execution_queue import (
    ExecutionQueue,
    ExecutionTask,
    TaskAction,
    TaskOutcome,
)
from strudel_bridge.agent.surface import EditorSurface
from strudel_bridge.config.base_config import AgentConfig
from strudel_bridge.protocol import messages
from strudel_bridge.protocol.errors import ProtocolError
from strudel_bridge.protocol.messages import BridgeMessage, MessageType
from strudel_bridge.utils.async_helpers import cancel_and_wait, run_with_timeout, spawn
from strudel_bridge.utils.logging_config import log_duration, set_agent_id

logger = logging.getLogger(__name__)

NO_EDITOR_ERROR = "No editor found"


class BridgeAgent:
    """
    Connects an editor surface to the relay hub.

    Usage:
        surface = await PlaywrightSurface.launch(config.target_url)
        agent = BridgeAgent(config, surface)
        await agent.start()
        ...
        await agent.stop()
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        surface: Optional[EditorSurface] = None,
        session: Optional[aiohttp.ClientSession] = None,
        agent_id: Optional[str] = None,
        chains: Optional[EditorChains] = None,
    ):
        if surface is None:
            raise ValueError("BridgeAgent needs an editor surface")

        self.config = config or AgentConfig()
        self.surface = surface
        self.agent_id = agent_id or f"agent-{uuid.uuid4().hex[:8]}"

        self.machine = ConnectionStateMachine(
            ReconnectPolicy(
                base_delay=self.config.reconnect_base_delay,
                max_delay=self.config.reconnect_max_delay,
                max_attempts=self.config.max_reconnect_attempts,
            )
        )
        self.chains = chains or build_editor_chains(surface)
        self.queue = ExecutionQueue(
            runner=self.run_task,
            on_outcome=self._report_outcome,
            cooldown=self.config.task_cooldown,
        )

        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

        self._running = False
        self._main_task: Optional[asyncio.Task] = None
        self._health_task: Optional[asyncio.Task] = None
        self._reply_tasks: Set[asyncio.Task] = set()
        self._reconnect_requested = asyncio.Event()

        self.messages_received = 0
        self.results_sent = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        set_agent_id(self.agent_id)
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._main_task = spawn(self._run(), name=f"{self.agent_id}-session")
        logger.info(f"Agent {self.agent_id} started (hub={self.config.hub_url})")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        await self.queue.close()

        for task in list(self._reply_tasks):
            await cancel_and_wait(task)
        await cancel_and_wait(self._health_task)
        await cancel_and_wait(self._main_task)

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

        logger.info(f"Agent {self.agent_id} stopped")

    @property
    def status(self) -> ConnectionStatus:
        return self.machine.status

    @property
    def is_connected(self) -> bool:
        return self.machine.is_connected and self._ws is not None and not self._ws.closed

    def reconnect(self) -> bool:
        """
        Manual recovery after the reconnect budget is spent.

        Returns:
            True if the agent left the `error` state and will try again.
        """
        if not self.machine.is_terminal:
            logger.info(f"Manual reconnect ignored in state {self.status.value}")
            return False

        logger.info("Manual reconnect requested")
        self.machine.reset()
        self._reconnect_requested.set()
        return True

    async def wait_for_status(self, status: ConnectionStatus, timeout: float = 5.0) -> bool:
        """Poll until the machine reaches `status`."""
        async def poll() -> bool:
            while self.machine.status != status:
                await asyncio.sleep(0.01)
            return True

        try:
            return await asyncio.wait_for(poll(), timeout=timeout)
        except asyncio.TimeoutError:
            return False

    # =========================================================================
    # Session loop
    # =========================================================================

    async def _detect(self) -> None:
        found = await self.surface.wait_until_ready(timeout=self.config.detection_timeout)
        self.machine.mark_detected(found)
        if not found:
            logger.warning(
                f"Editor not detected within {self.config.detection_timeout}s; "
                "connecting anyway"
            )

    async def _run(self) -> None:
        await self._detect()

        while self._running:
            if self.machine.is_terminal:
                logger.error(
                    f"Agent {self.agent_id} gave up after {self.machine.policy.max_attempts} "
                    "reconnect attempts; waiting for a manual reconnect"
                )
                await self._reconnect_requested.wait()
                self._reconnect_requested.clear()
                continue

            self.machine.begin_attempt()
            error = await self._connect_once()
            if not self._running:
                break

            self.machine.connection_lost(error)
            delay = self.machine.schedule_retry()
            if delay is not None:
                await asyncio.sleep(delay)

    async def _connect_once(self) -> Optional[Exception]:
        """One connection attempt plus the session it opens. Returns the failure, if any."""
        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(self.config.hub_url),
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Connection attempt timed out after {self.config.connect_timeout}s")
            return ConnectionError(f"connect timeout ({self.config.connect_timeout}s)")
        except (aiohttp.ClientError, OSError) as e:
            logger.warning(f"Failed to connect to {self.config.hub_url}: {e}")
            return e

        return await self._session_loop(ws)

    async def _session_loop(self, ws: aiohttp.ClientWebSocketResponse) -> Optional[Exception]:
        self._ws = ws
        self.machine.connection_succeeded()
        logger.info(f"Connected to hub at {self.config.hub_url}")

        await self._announce()
        self._health_task = spawn(self._health_loop(), name=f"{self.agent_id}-health")

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    break
            error = ws.exception()
            logger.info(f"Disconnected from hub (code={ws.close_code})")
            return error
        finally:
            await cancel_and_wait(self._health_task)
            self._health_task = None
            self._ws = None
            if not ws.closed:
                await ws.close()

    async def _announce(self) -> None:
        info = await run_with_timeout(
            self.surface.describe(), timeout=self.config.connect_timeout, default={}
        )
        await self.send(messages.browser_ready(
            url=info.get("url"),
            user_agent=info.get("user_agent"),
            editor_found=self.surface.editor_found,
            editor_type=self.surface.editor_type,
            detected=self.machine.detected,
            audio_ready=self.surface.audio_ready,
            version=__version__,
            agent_id=self.agent_id,
        ))

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.health_check_interval)
            await self.send(messages.health_check())
            if not self.surface.editor_found:
                await run_with_timeout(
                    self.surface.locate_editor(), timeout=self.config.connect_timeout, default=False
                )

    # =========================================================================
    # Messages
    # =========================================================================

    async def send(self, message: BridgeMessage) -> bool:
        ws = self._ws
        if ws is None or ws.closed:
            logger.debug(f"Not connected, dropping outbound {message.type_name}")
            return False

        try:
            await ws.send_str(message.to_json())
            return True
        except Exception as e:
            logger.warning(f"Failed to send {message.type_name}: {e}")
            return False

    async def handle_message(self, raw: str) -> None:
        try:
            message = BridgeMessage.from_json(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping malformed message from hub: {e}")
            await self.send(messages.agent_error(f"Malformed message: {e}"))
            return

        self.messages_received += 1
        kind = message.type

        if kind == MessageType.EXECUTE_CODE:
            if not message.code:
                await self.send(messages.execution_result(
                    False, "execute_code carried no code", action=TaskAction.EXECUTE.value
                ))
                return
            self.queue.enqueue(ExecutionTask(code=message.code, comment=message.comment))

        elif kind == MessageType.STOP_ALL:
            self.queue.enqueue(ExecutionTask.stop())

        elif kind == MessageType.GET_CURRENT_CODE:
            task = spawn(self._reply_snapshot(message.request_id), name=f"{self.agent_id}-snapshot")
            self._reply_tasks.add(task)
            task.add_done_callback(self._reply_tasks.discard)

        elif kind == MessageType.HEALTH_CHECK:
            await self.send(messages.health_response(details=self.status_dict()))

        elif kind == MessageType.HEALTH_RESPONSE:
            logger.debug(f"Health response: {message.status}")

        elif kind == MessageType.CONNECTED:
            logger.info(f"Hub says: {(message.data or {}).get('message')}")

        else:
            logger.debug(f"Ignoring message type {message.type_name}")

    async def _reply_snapshot(self, request_id: Optional[str]) -> None:
        code = await self.read_editor()
        await self.send(messages.current_code(code, request_id))

    async def read_editor(self) -> str:
        """Current editor content, "" if no read strategy worked."""
        if not self.surface.editor_found:
            await self.surface.locate_editor()
        result = await self.chains.read.run()
        return result.value if result.success else ""

    # =========================================================================
    # Tasks
    # =========================================================================

    @log_duration(logger, logging.DEBUG, "Execution task")
    async def run_task(self, task: ExecutionTask) -> TaskOutcome:
        if task.action == TaskAction.STOP:
            return await self._run_stop()
        return await self._run_execute(task)

    async def _run_execute(self, task: ExecutionTask) -> TaskOutcome:
        code = f"{task.comment}\n{task.code}" if task.comment else task.code

        if not self.surface.editor_found and not await self.surface.locate_editor():
            return TaskOutcome(success=False, action=TaskAction.EXECUTE, error=NO_EDITOR_ERROR)

        applied = await self.chains.apply.run(code)
        if not applied.success:
            return TaskOutcome(
                success=False,
                action=TaskAction.EXECUTE,
                error=applied.error,
                data={"attempted": applied.attempted},
            )

        await asyncio.sleep(self.config.settle_delay)
        await self.surface.prime_audio()

        evaluated = await self.chains.evaluate.run(code)
        if not evaluated.success:
            return TaskOutcome(
                success=False,
                action=TaskAction.EXECUTE,
                error=evaluated.error,
                data={"apply_strategy": applied.strategy, "attempted": evaluated.attempted},
            )

        logger.info(f"Pattern applied via {applied.strategy}, evaluated via {evaluated.strategy}")
        return TaskOutcome(
            success=True,
            action=TaskAction.EXECUTE,
            strategy=evaluated.strategy,
            data={"apply_strategy": applied.strategy},
        )

    async def _run_stop(self) -> TaskOutcome:
        result = await self.chains.stop.run()
        if result.success:
            logger.info(f"Playback stopped via {result.strategy}")
        return TaskOutcome(
            success=result.success,
            action=TaskAction.STOP,
            error=result.error,
            strategy=result.strategy,
        )

    async def _report_outcome(self, task: ExecutionTask, outcome: TaskOutcome) -> None:
        sent = await self.send(messages.execution_result(
            outcome.success,
            outcome.error,
            action=outcome.action.value,
            strategy=outcome.strategy,
            audio_ready=self.surface.audio_ready,
            duration=round(outcome.duration, 3),
            **outcome.data,
        ))
        if sent:
            self.results_sent += 1
        else:
            logger.warning(f"Result of {task.action.value} task not delivered (hub unreachable)")

    # =========================================================================
    # Observations
    # =========================================================================

    def status_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "hub_url": self.config.hub_url,
            "connection": self.machine.to_dict(),
            "editor_found": self.surface.editor_found,
            "editor_type": self.surface.editor_type,
            "audio_ready": self.surface.audio_ready,
            "queue": self.queue.stats(),
            "messages_received": self.messages_received,
            "results_sent": self.results_sent,
        }
