"""Tests for the MCP tool replies."""

import asyncio
import json

import pytest

from conftest import FakeTransport, settle
from strudel_bridge.hub.controller import BridgeController
from strudel_bridge.hub.relay_hub import RelayHub
from strudel_bridge.tools.mcp_server import (
    NO_BROWSER_TEXT,
    NO_CODE_TEXT,
    BridgeTools,
    create_mcp_server,
)
from strudel_bridge.tools.reference import REFERENCE_URI, STRUDEL_REFERENCE


@pytest.fixture
def hub(hub_config):
    return RelayHub(hub_config)


@pytest.fixture
def tools(hub):
    return BridgeTools(BridgeController(hub), default_port=3001)


class TestExecutePattern:
    @pytest.mark.asyncio
    async def test_blank_code(self, tools):
        assert await tools.execute_pattern("   ") == NO_CODE_TEXT

    @pytest.mark.asyncio
    async def test_no_browser(self, tools):
        assert await tools.execute_pattern('s("bd")') == NO_BROWSER_TEXT

    @pytest.mark.asyncio
    async def test_sends_code(self, hub, tools):
        transport = FakeTransport()
        hub.attach(transport)

        reply = await tools.execute_pattern('s("bd*4")')
        await settle()

        assert reply.startswith("Pattern sent to browser")
        assert 's("bd*4")' in reply
        assert transport.of_type("execute_code") == [{"type": "execute_code", "code": 's("bd*4")'}]
        await hub.stop()


class TestStopAndStatus:
    @pytest.mark.asyncio
    async def test_stop_without_browser(self, tools):
        assert await tools.stop_pattern() == "No browser connected."

    @pytest.mark.asyncio
    async def test_stop_broadcasts(self, hub, tools):
        transport = FakeTransport()
        hub.attach(transport)

        assert await tools.stop_pattern() == "Stopped all playing patterns."
        await settle()

        assert transport.of_type("stop_all")
        await hub.stop()

    @pytest.mark.asyncio
    async def test_status_disconnected(self, tools):
        text = await tools.get_connection_status()

        assert "- Browser connected: No" in text
        assert "- Active connections: 0" in text
        assert "port 3001" in text

    @pytest.mark.asyncio
    async def test_status_connected(self, hub, tools):
        hub.attach(FakeTransport())

        text = await tools.get_connection_status()

        assert "- Browser connected: Yes" in text
        assert "Ready to play Strudel patterns!" in text
        await hub.stop()


class TestCurrentPattern:
    @pytest.mark.asyncio
    async def test_reads_editor(self, hub, tools):
        transport = FakeTransport()
        connection = hub.attach(transport)

        reply = asyncio.ensure_future(tools.get_current_pattern(timeout_ms=1000))
        await settle()
        request_id = transport.of_type("get_current_code")[0]["requestId"]
        await hub.handle_frame(
            connection,
            json.dumps({"type": "current_code", "code": 'note("c e")', "requestId": request_id}),
        )

        assert 'note("c e")' in await reply
        await hub.stop()

    @pytest.mark.asyncio
    async def test_unanswered(self, hub, tools):
        hub.attach(FakeTransport())

        assert "did not answer" in await tools.get_current_pattern(timeout_ms=50)
        await hub.stop()


class TestServer:
    @pytest.mark.asyncio
    async def test_tools_and_reference_registered(self, tools):
        server = create_mcp_server(tools)

        names = {tool.name for tool in await server.list_tools()}
        resources = await server.list_resources()

        assert names == {
            "execute_pattern",
            "stop_pattern",
            "get_connection_status",
            "get_current_pattern",
        }
        assert [str(resource.uri).rstrip("/") for resource in resources] == [REFERENCE_URI]
        assert "hush()" in STRUDEL_REFERENCE
