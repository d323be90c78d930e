"""
Controller-facing operations on top of the relay hub.

This is the surface a tool-invocation layer or the HTTP API calls. "No agent
connected" is reported as an unsuccessful CommandResult, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from strudel_bridge.hub.relay_hub import RelayHub
from strudel_bridge.protocol import messages
from strudel_bridge.protocol.errors import NoAgentConnectedError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of handing a command to the hub."""
    success: bool
    message: str
    delivered: int = 0
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: Exception) -> "CommandResult":
        return cls(success=False, message=str(error), error=type(error).__name__)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BridgeController:
    """
    Command entry point for the controller.

    Example:
        controller = BridgeController(hub)
        result = controller.send_command('s("bd sd")', comment="// basic beat")
        if not result.success:
            print(result.message)
    """

    def __init__(self, hub: RelayHub):
        self.hub = hub

    def send_command(self, code: str, comment: Optional[str] = None) -> CommandResult:
        """Broadcast an execute_code command."""
        if not isinstance(code, str) or not code.strip():
            raise ValueError("code must be a non-empty string")

        if not self.hub.has_connected_clients():
            logger.warning("execute_code requested with no agent connected")
            return CommandResult.failure(NoAgentConnectedError())

        delivered = self.hub.broadcast(messages.execute_code(code, comment))
        if delivered == 0:
            return CommandResult.failure(
                NoAgentConnectedError("No agent accepted the command (all connections busy or closing)")
            )

        summary = f"Pattern sent to {delivered} agent{'s' if delivered != 1 else ''}"
        if comment:
            summary += f": {comment}"
        return CommandResult(success=True, message=summary, delivered=delivered)

    def stop(self) -> CommandResult:
        """Broadcast a stop_all command."""
        if not self.hub.has_connected_clients():
            return CommandResult.failure(NoAgentConnectedError())

        delivered = self.hub.broadcast(messages.stop_all())
        if delivered == 0:
            return CommandResult.failure(
                NoAgentConnectedError("No agent accepted the stop command")
            )
        return CommandResult(success=True, message="Stop command sent", delivered=delivered)

    def connection_status(self) -> Dict[str, Any]:
        count = self.hub.client_count()
        return {
            "connected": count > 0,
            "count": count,
            "port": self.hub.port,
        }

    async def fetch_snapshot(self, timeout_ms: Optional[int] = None) -> str:
        """Current editor content from the agents, "" if unavailable."""
        return await self.hub.request_snapshot(timeout_ms)

    def recent_results(self, limit: int = 10) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        return list(self.hub.recent_results)[-limit:]
