"""
Tool-invocation surface for the Strudel bridge.

Provides:
- BridgeTools: text replies for the MCP tools
- create_mcp_server: FastMCP server with the tools and the reference resource
"""

from strudel_bridge.tools.reference import (
    REFERENCE_URI,
    STRUDEL_REFERENCE,
)

from strudel_bridge.tools.mcp_server import (
    BridgeTools,
    create_mcp_server,
)

__all__ = [
    # Reference
    "REFERENCE_URI",
    "STRUDEL_REFERENCE",
    # MCP
    "BridgeTools",
    "create_mcp_server",
]
