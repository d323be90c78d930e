"""
Strudel Bridge Test Configuration
=================================

Shared fakes: in-memory transports for the hub and scripted editor surfaces
for the agent.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import pytest

from strudel_bridge.agent import editor_chains
from strudel_bridge.agent.surface import (
    DESCRIBE_SCRIPT,
    LOCATE_EDITOR_SCRIPT,
    PRIME_AUDIO_SCRIPT,
    EditorSurface,
)
from strudel_bridge.config.base_config import AgentConfig, HubConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: tests that open real sockets")


# =============================================================================
# Async helpers
# =============================================================================

async def settle(rounds: int = 5) -> None:
    """Let spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def eventually(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll until predicate() is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


# =============================================================================
# Hub transports
# =============================================================================

class FakeTransport:
    """Records frames the hub writes to it."""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False

    async def send_str(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True

    def messages(self) -> List[Dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.messages() if m["type"] == message_type]


class StalledTransport(FakeTransport):
    """A peer whose first write never completes."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def send_str(self, data: str) -> None:
        await self.release.wait()
        self.sent.append(data)


class FailingTransport(FakeTransport):
    """A peer whose writes always fail."""

    async def send_str(self, data: str) -> None:
        raise ConnectionResetError("peer went away")


# =============================================================================
# Editor surfaces
# =============================================================================

class FakeSurface(EditorSurface):
    """
    Surface whose script results are looked up by script text.

    A response may be a plain value, an exception instance (raised) or a
    callable taking the script argument.
    """

    def __init__(self, editor: Optional[str] = ".cm-editor", responses: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.calls: List[tuple] = []
        self.keys: List[str] = []
        self.responses: Dict[str, Any] = {
            LOCATE_EDITOR_SCRIPT: {"selector": editor, "className": "cm-editor"} if editor else None,
            PRIME_AUDIO_SCRIPT: True,
            DESCRIBE_SCRIPT: {
                "url": "https://strudel.cc/",
                "userAgent": "FakeBrowser/1.0",
                "title": "Strudel REPL",
            },
        }
        self.responses.update(responses or {})

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append((script, arg))
        response = self.responses.get(script)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(arg)
        return response

    async def press(self, keys: str) -> None:
        self.keys.append(keys)

    def scripts_called(self) -> List[str]:
        return [script for script, _ in self.calls]


class FakeStrudelPage(FakeSurface):
    """A CodeMirror 6 page with a global evaluate and hush."""

    def __init__(self, content: str = 'note("c e g")'):
        super().__init__()
        self.content = content
        self.evaluated: List[str] = []
        self.playing = False
        self.responses.update({
            editor_chains.CODEMIRROR_DISPATCH: self._dispatch,
            editor_chains.GLOBAL_EVAL_FUNCTION: self._evaluate,
            editor_chains.GLOBAL_STOP_FUNCTION: self._hush,
            editor_chains.CODEMIRROR_STATE: lambda selector: self.content,
        })

    def _dispatch(self, arg):
        _, code = arg
        self.content = code
        return True

    def _evaluate(self, code):
        self.evaluated.append(code)
        self.playing = True
        return True

    def _hush(self, _):
        self.playing = False
        return True


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def hub_config():
    return HubConfig(host="127.0.0.1", port=0, snapshot_timeout_ms=300, send_queue_size=8)


@pytest.fixture
def agent_config():
    return AgentConfig(
        hub_url="ws://127.0.0.1:1",
        connect_timeout=1.0,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
        max_reconnect_attempts=3,
        health_check_interval=30.0,
        task_cooldown=0.0,
        settle_delay=0.0,
        detection_timeout=0.0,
    )


@pytest.fixture
def page():
    return FakeStrudelPage()
