"""Tests for the serialized execution queue."""

import asyncio
import time

import pytest

from strudel_bridge.agent.execution_queue import (
    ExecutionQueue,
    ExecutionTask,
    TaskAction,
    TaskOutcome,
)


class RecordingRunner:
    """Runner that tracks order and overlap."""

    def __init__(self, duration: float = 0.01, fail_on=()):
        self.duration = duration
        self.fail_on = set(fail_on)
        self.active = 0
        self.max_active = 0
        self.started = []
        self.finished_at = []

    async def __call__(self, task: ExecutionTask) -> TaskOutcome:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.append((task.code, time.monotonic()))
        try:
            await asyncio.sleep(self.duration)
            if task.code in self.fail_on:
                raise RuntimeError(f"cannot run {task.code}")
            return TaskOutcome(success=True, action=task.action, strategy="fake")
        finally:
            self.active -= 1
            self.finished_at.append(time.monotonic())


class TestExecutionQueue:
    @pytest.mark.asyncio
    async def test_fifo_and_never_concurrent(self):
        runner = RecordingRunner()
        queue = ExecutionQueue(runner, cooldown=0.0)

        for i in range(5):
            queue.enqueue(ExecutionTask(code=f"n({i})"))
        await queue.join()

        assert [code for code, _ in runner.started] == [f"n({i})" for i in range(5)]
        assert runner.max_active == 1

    @pytest.mark.asyncio
    async def test_cooldown_between_tasks(self):
        runner = RecordingRunner(duration=0.0)
        queue = ExecutionQueue(runner, cooldown=0.05)

        queue.enqueue(ExecutionTask(code="a"))
        queue.enqueue(ExecutionTask(code="b"))
        await queue.join()

        gap = runner.started[1][1] - runner.finished_at[0]
        assert gap >= 0.04

    @pytest.mark.asyncio
    async def test_failure_does_not_halt_queue(self):
        outcomes = []
        runner = RecordingRunner(fail_on={"bad"})
        queue = ExecutionQueue(
            runner,
            on_outcome=lambda task, outcome: outcomes.append((task.code, outcome)),
            cooldown=0.0,
        )

        for code in ("first", "bad", "last"):
            queue.enqueue(ExecutionTask(code=code))
        await queue.join()

        assert [code for code, _ in outcomes] == ["first", "bad", "last"]
        assert [o.success for _, o in outcomes] == [True, False, True]
        assert outcomes[1][1].error == "cannot run bad"
        assert queue.completed == 2
        assert queue.failed == 1

    @pytest.mark.asyncio
    async def test_tasks_added_while_draining_go_to_tail(self):
        runner = RecordingRunner(duration=0.02)
        queue = ExecutionQueue(runner, cooldown=0.0)

        queue.enqueue(ExecutionTask(code="a"))
        queue.enqueue(ExecutionTask(code="b"))
        await asyncio.sleep(0.005)
        assert queue.is_draining
        queue.enqueue(ExecutionTask(code="c"))
        await queue.join()

        assert [code for code, _ in runner.started] == ["a", "b", "c"]
        assert runner.max_active == 1

    @pytest.mark.asyncio
    async def test_stop_tasks_share_the_queue(self):
        runner = RecordingRunner(duration=0.0)
        actions = []
        queue = ExecutionQueue(
            runner,
            on_outcome=lambda task, outcome: actions.append(outcome.action),
            cooldown=0.0,
        )

        queue.enqueue(ExecutionTask(code="n(0)"))
        queue.enqueue(ExecutionTask.stop())
        await queue.join()

        assert actions == [TaskAction.EXECUTE, TaskAction.STOP]

    @pytest.mark.asyncio
    async def test_close_discards_pending(self):
        runner = RecordingRunner(duration=0.05)
        queue = ExecutionQueue(runner, cooldown=0.0)

        for i in range(4):
            queue.enqueue(ExecutionTask(code=f"n({i})"))
        await asyncio.sleep(0.01)
        await queue.close()

        assert queue.pending == 0
        assert not queue.is_draining
        assert len(runner.started) == 1

    @pytest.mark.asyncio
    async def test_idle_queue_restarts_drain(self):
        runner = RecordingRunner(duration=0.0)
        queue = ExecutionQueue(runner, cooldown=0.0)

        queue.enqueue(ExecutionTask(code="a"))
        await queue.join()
        assert not queue.is_draining

        queue.enqueue(ExecutionTask(code="b"))
        await queue.join()

        assert [code for code, _ in runner.started] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stats_report_running_task(self):
        release = asyncio.Event()

        async def blocking_runner(task):
            await release.wait()
            return TaskOutcome(success=True, action=task.action)

        queue = ExecutionQueue(blocking_runner, cooldown=0.0)
        queue.enqueue(ExecutionTask.stop())
        await asyncio.sleep(0.01)

        assert queue.current is not None
        assert queue.stats()["current"] == "stop"

        release.set()
        await queue.join()
        assert queue.current is None
        assert queue.stats()["current"] is None
