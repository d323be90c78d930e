"""Tests for the bridge agent's command handling."""

import json
import time

import pytest

from conftest import FakeSurface, FakeStrudelPage, eventually, settle
from strudel_bridge.agent import editor_chains
from strudel_bridge.agent.bridge_agent import BridgeAgent
from strudel_bridge.agent.connection import ConnectionStatus
from strudel_bridge.agent.execution_queue import ExecutionTask, TaskAction
from strudel_bridge.protocol import messages


class FakeWebSocket:
    """Stands in for the agent's hub session."""

    def __init__(self):
        self.sent = []
        self.closed = False

    async def send_str(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True

    def of_type(self, message_type):
        return [m for m in self.sent if m["type"] == message_type]


@pytest.fixture
def ws():
    return FakeWebSocket()


def make_agent(agent_config, surface, ws=None):
    agent = BridgeAgent(agent_config, surface, agent_id="agent-test")
    agent._ws = ws
    return agent


class TestExecuteTask:
    @pytest.mark.asyncio
    async def test_comment_prefixed_and_evaluated(self, agent_config, page):
        agent = make_agent(agent_config, page)

        outcome = await agent.run_task(ExecutionTask(code='s("bd sd")', comment="// drums"))

        assert outcome.success
        assert outcome.strategy == "global_eval_function"
        assert outcome.data["apply_strategy"] == "codemirror_dispatch"
        assert page.content == '// drums\ns("bd sd")'
        assert page.evaluated == ['// drums\ns("bd sd")']
        assert page.audio_ready is True

    @pytest.mark.asyncio
    async def test_apply_runs_before_evaluate(self, agent_config, page):
        agent = make_agent(agent_config, page)

        await agent.run_task(ExecutionTask(code="n(0)"))

        scripts = page.scripts_called()
        assert scripts.index(editor_chains.CODEMIRROR_DISPATCH) < scripts.index(
            editor_chains.GLOBAL_EVAL_FUNCTION
        )

    @pytest.mark.asyncio
    async def test_settle_delay_between_apply_and_evaluate(self, agent_config, page):
        agent_config.settle_delay = 0.05
        agent = make_agent(agent_config, page)
        stamps = {}

        def apply(arg):
            applied = page._dispatch(arg)
            stamps["applied"] = time.monotonic()
            return applied

        def evaluate(code):
            stamps["evaluating"] = time.monotonic()
            return page._evaluate(code)

        page.responses[editor_chains.CODEMIRROR_DISPATCH] = apply
        page.responses[editor_chains.GLOBAL_EVAL_FUNCTION] = evaluate

        outcome = await agent.run_task(ExecutionTask(code="n(0)"))

        assert outcome.success
        assert stamps["evaluating"] - stamps["applied"] >= 0.045

    @pytest.mark.asyncio
    async def test_no_editor(self, agent_config):
        agent = make_agent(agent_config, FakeSurface(editor=None))

        outcome = await agent.run_task(ExecutionTask(code="n(0)"))

        assert not outcome.success
        assert outcome.error == "No editor found"

    @pytest.mark.asyncio
    async def test_apply_exhausted(self, agent_config):
        surface = FakeSurface()
        agent = make_agent(agent_config, surface)

        outcome = await agent.run_task(ExecutionTask(code="n(0)"))

        assert not outcome.success
        assert outcome.error.startswith("No apply strategy succeeded")
        assert editor_chains.GLOBAL_EVAL_FUNCTION not in surface.scripts_called()

    @pytest.mark.asyncio
    async def test_stop_task(self, agent_config, page):
        page.playing = True
        agent = make_agent(agent_config, page)

        outcome = await agent.run_task(ExecutionTask.stop())

        assert outcome.success
        assert outcome.action == TaskAction.STOP
        assert outcome.strategy == "global_stop_function"
        assert page.playing is False

    @pytest.mark.asyncio
    async def test_stop_exhausted(self, agent_config):
        agent = make_agent(agent_config, FakeSurface())

        outcome = await agent.run_task(ExecutionTask.stop())

        assert not outcome.success
        assert outcome.error == "No stop strategy succeeded (tried: global_stop_function, stop_button)"


class TestMessageHandling:
    @pytest.mark.asyncio
    async def test_execute_code_reports_result(self, agent_config, page, ws):
        agent = make_agent(agent_config, page, ws)

        await agent.handle_message(messages.execute_code('s("hh*8")').to_json())
        await agent.queue.join()

        result = ws.of_type("execution_result")[0]["data"]
        assert result["success"] is True
        assert result["action"] == "execute"
        assert result["strategy"] == "global_eval_function"
        assert result["audio_ready"] is True
        assert page.content == 's("hh*8")'

    @pytest.mark.asyncio
    async def test_failures_reported_not_raised(self, agent_config, ws):
        agent = make_agent(agent_config, FakeSurface(editor=None), ws)

        await agent.handle_message(messages.execute_code("n(0)").to_json())
        await agent.handle_message(messages.stop_all().to_json())
        await agent.queue.join()

        results = [m["data"] for m in ws.of_type("execution_result")]
        assert [r["action"] for r in results] == ["execute", "stop"]
        assert results[0]["error"] == "No editor found"
        assert results[1]["success"] is False

    @pytest.mark.asyncio
    async def test_execute_without_code(self, agent_config, page, ws):
        agent = make_agent(agent_config, page, ws)

        await agent.handle_message(json.dumps({"type": "execute_code"}))

        assert ws.of_type("execution_result")[0]["data"]["success"] is False
        assert agent.queue.pending == 0

    @pytest.mark.asyncio
    async def test_snapshot_reply(self, agent_config, page, ws):
        page.content = 'note("a c e")'
        agent = make_agent(agent_config, page, ws)

        await agent.handle_message(messages.get_current_code("req-1").to_json())
        assert await eventually(lambda: ws.of_type("current_code"))

        reply = ws.of_type("current_code")[0]
        assert reply == {"type": "current_code", "code": 'note("a c e")', "requestId": "req-1"}

    @pytest.mark.asyncio
    async def test_snapshot_reply_when_unreadable(self, agent_config, ws):
        agent = make_agent(agent_config, FakeSurface(), ws)

        await agent.handle_message(messages.get_current_code("req-2").to_json())
        assert await eventually(lambda: ws.of_type("current_code"))

        assert ws.of_type("current_code")[0]["code"] == ""

    @pytest.mark.asyncio
    async def test_health_check_answered(self, agent_config, page, ws):
        agent = make_agent(agent_config, page, ws)

        await agent.handle_message(messages.health_check().to_json())

        response = ws.of_type("health_response")[0]
        assert response["status"] == "ok"
        assert response["data"]["agent_id"] == "agent-test"
        assert response["data"]["queue"]["current"] is None
        assert response["data"]["connection"]["status"] == "waiting"

    @pytest.mark.asyncio
    async def test_malformed_message_reported(self, agent_config, page, ws):
        agent = make_agent(agent_config, page, ws)

        await agent.handle_message("{{{")
        await agent.handle_message(messages.connected("hello").to_json())
        await settle()

        assert agent.messages_received == 1
        errors = ws.of_type("error")
        assert len(errors) == 1
        assert errors[0]["data"]["error"].startswith("Malformed message")
        assert len(ws.sent) == 1

    @pytest.mark.asyncio
    async def test_send_without_session(self, agent_config, page):
        agent = make_agent(agent_config, page)
        assert await agent.send(messages.health_check()) is False


class TestManualReconnect:
    def test_ignored_unless_terminal(self, agent_config, page):
        agent = make_agent(agent_config, page)
        assert agent.reconnect() is False
        assert agent.status == ConnectionStatus.WAITING

    def test_leaves_error_state(self, agent_config, page):
        agent = make_agent(agent_config, page)
        for _ in range(agent_config.max_reconnect_attempts + 1):
            agent.machine.begin_attempt()
            agent.machine.connection_lost()
            agent.machine.schedule_retry()
        assert agent.status == ConnectionStatus.ERROR

        assert agent.reconnect() is True
        assert agent.status == ConnectionStatus.WAITING

    def test_requires_surface(self, agent_config):
        with pytest.raises(ValueError):
            BridgeAgent(agent_config)
