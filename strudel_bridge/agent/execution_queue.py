"""
Serialized execution queue for the agent.

Tasks run strictly one at a time in arrival order. After each task the
queue waits a fixed cooldown so the editor can settle before the next
change. A failing task is reported and the queue carries on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from strudel_bridge.utils.async_helpers import call_handler, cancel_and_wait, spawn

logger = logging.getLogger(__name__)


class TaskAction(str, Enum):
    EXECUTE = "execute"
    STOP = "stop"


@dataclass
class ExecutionTask:
    """A unit of work received from the hub."""
    code: str = ""
    comment: Optional[str] = None
    enqueued_at: float = field(default_factory=time.time)
    action: TaskAction = TaskAction.EXECUTE

    @classmethod
    def stop(cls) -> "ExecutionTask":
        return cls(action=TaskAction.STOP)


@dataclass
class TaskOutcome:
    """Result of running one task, reported individually."""
    success: bool
    action: TaskAction = TaskAction.EXECUTE
    error: Optional[str] = None
    strategy: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def duration(self) -> float:
        return max(0.0, self.finished_at - self.started_at)


TaskRunner = Callable[[ExecutionTask], Awaitable[TaskOutcome]]
OutcomeCallback = Callable[[ExecutionTask, TaskOutcome], Any]


class ExecutionQueue:
    """
    FIFO queue with a single drain task.

    Example:
        queue = ExecutionQueue(runner=agent.run_task, on_outcome=agent.report, cooldown=0.5)
        queue.enqueue(ExecutionTask(code='s("bd sd")'))
        await queue.join()
    """

    def __init__(
        self,
        runner: TaskRunner,
        on_outcome: Optional[OutcomeCallback] = None,
        cooldown: float = 0.5,
    ):
        self._runner = runner
        self._on_outcome = on_outcome
        self.cooldown = cooldown

        self._tasks: Deque[ExecutionTask] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self._running: Optional[ExecutionTask] = None

        self.completed = 0
        self.failed = 0

    # =========================================================================
    # Mutators
    # =========================================================================

    def enqueue(self, task: ExecutionTask) -> int:
        """
        Append a task and make sure a drain is running.

        Must be called from the event loop thread. Returns the queue depth
        after the append.
        """
        self._tasks.append(task)
        logger.debug(f"Queued {task.action.value} task (depth={len(self._tasks)})")

        if not self.is_draining:
            self._drain_task = spawn(self._drain(), name="execution-queue-drain")
        return len(self._tasks)

    async def _drain(self) -> None:
        while self._tasks:
            task = self._tasks.popleft()
            self._running = task
            try:
                outcome = await self._run_one(task)
            finally:
                self._running = None

            if outcome.success:
                self.completed += 1
            else:
                self.failed += 1

            if self._on_outcome is not None:
                await call_handler(self._on_outcome, task, outcome)

            await asyncio.sleep(self.cooldown)

    async def _run_one(self, task: ExecutionTask) -> TaskOutcome:
        started = time.time()
        try:
            outcome = await self._runner(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{task.action.value} task failed: {e}", exc_info=True)
            outcome = TaskOutcome(success=False, action=task.action, error=str(e))

        outcome.started_at = outcome.started_at or started
        outcome.finished_at = time.time()
        logger.debug(
            f"{task.action.value} task finished in {outcome.duration:.2f}s "
            f"(success={outcome.success})"
        )
        return outcome

    async def join(self) -> None:
        """Wait until everything queued so far has been drained."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    async def close(self) -> None:
        """Cancel the drain and discard queued tasks."""
        dropped = len(self._tasks)
        self._tasks.clear()
        await cancel_and_wait(self._drain_task)
        self._drain_task = None
        if dropped:
            logger.info(f"Discarded {dropped} queued task(s)")

    # =========================================================================
    # Observations
    # =========================================================================

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def current(self) -> Optional[ExecutionTask]:
        return self._running

    def stats(self) -> Dict[str, Any]:
        return {
            "pending": self.pending,
            "draining": self.is_draining,
            "completed": self.completed,
            "failed": self.failed,
            "current": self.current.action.value if self.current else None,
            "cooldown": self.cooldown,
        }
