"""
Strudel Bridge MCP tools.

Exposes the controller operations to an MCP client over stdio:

    execute_pattern(code)     place code in the live editor and evaluate it
    stop_pattern()            stop playback
    get_connection_status()   report connected agents
    get_current_pattern()     read the editor content

plus the strudel://reference resource. The relay hub runs in the same event
loop; stdout belongs to the MCP transport, so logs go to stderr.

Usage:
    python run_bridge.py mcp
"""

from __future__ import annotations

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from strudel_bridge.hub.controller import BridgeController
from strudel_bridge.tools.reference import REFERENCE_URI, STRUDEL_REFERENCE

logger = logging.getLogger(__name__)

SERVER_NAME = "strudel-bridge"

NO_BROWSER_TEXT = (
    "No browser connected. Please open strudel.cc and start the bridge agent "
    "(python run_bridge.py agent)."
)
NO_CODE_TEXT = "Error: No code provided. Please provide valid Strudel code to execute."


class BridgeTools:
    """
    Text replies for each MCP tool, computed from the controller.

    Kept apart from the MCP wiring so the replies can be exercised without a
    client session.
    """

    def __init__(self, controller: BridgeController, default_port: Optional[int] = None):
        self.controller = controller
        self.default_port = default_port

    async def execute_pattern(self, code: str) -> str:
        if not isinstance(code, str) or not code.strip():
            return NO_CODE_TEXT
        if not self.controller.connection_status()["connected"]:
            return NO_BROWSER_TEXT

        logger.info(f"Executing Strudel code ({len(code)} chars)")
        result = self.controller.send_command(code)
        if not result.success:
            return f"Failed to execute pattern: {result.message}"
        return (
            "Pattern sent to browser and should now be playing!\n\n"
            f"Executed code:\n```javascript\n{code}\n```"
        )

    async def stop_pattern(self) -> str:
        if not self.controller.connection_status()["connected"]:
            return "No browser connected."

        result = self.controller.stop()
        if not result.success:
            return f"Failed to stop: {result.message}"
        return "Stopped all playing patterns."

    async def get_connection_status(self) -> str:
        status = self.controller.connection_status()
        connected = status["connected"]
        port = status["port"] or self.default_port
        footer = (
            "Ready to play Strudel patterns!"
            if connected
            else "Please open strudel.cc and start the bridge agent."
        )
        return (
            "Connection Status:\n"
            f"- Browser connected: {'Yes' if connected else 'No'}\n"
            f"- Active connections: {status['count']}\n"
            f"- WebSocket server: Running on port {port}\n\n"
            f"{footer}"
        )

    async def get_current_pattern(self, timeout_ms: int = 5000) -> str:
        if not self.controller.connection_status()["connected"]:
            return "No browser connected."

        code = await self.controller.fetch_snapshot(timeout_ms)
        if not code:
            return "The editor is empty or did not answer in time."
        return f"Current editor content:\n```javascript\n{code}\n```"


def create_mcp_server(tools: BridgeTools) -> FastMCP:
    """Register the bridge tools and the reference resource on a FastMCP server."""
    server = FastMCP(SERVER_NAME)

    @server.tool(
        name="execute_pattern",
        description=(
            "Execute raw Strudel code in the connected browser. The caller writes "
            "the code; this tool only delivers it. Read the strudel://reference "
            "resource before first use for syntax and API documentation."
        ),
    )
    async def execute_pattern(code: str) -> str:
        return await tools.execute_pattern(code)

    @server.tool(name="stop_pattern", description="Stop all currently playing patterns")
    async def stop_pattern() -> str:
        return await tools.stop_pattern()

    @server.tool(
        name="get_connection_status",
        description="Check if a browser is connected and ready.",
    )
    async def get_connection_status() -> str:
        return await tools.get_connection_status()

    @server.tool(
        name="get_current_pattern",
        description="Read the code currently in the live editor.",
    )
    async def get_current_pattern(timeout_ms: int = 5000) -> str:
        return await tools.get_current_pattern(timeout_ms)

    @server.resource(
        REFERENCE_URI,
        name="Strudel API Reference",
        description="Strudel live coding syntax, sounds, effects and examples",
        mime_type="text/markdown",
    )
    def strudel_reference() -> str:
        return STRUDEL_REFERENCE

    return server
