"""Tests for the launcher's argument handling and signal wiring."""

import asyncio
import os
import signal

import pytest

from conftest import eventually
from run_bridge import _install_signal_handlers, apply_overrides, build_parser
from strudel_bridge.config.base_config import BridgeConfig


class TestArguments:
    def test_mcp_subcommand_overrides_hub(self):
        args = build_parser().parse_args(["--log-level", "DEBUG", "mcp", "--port", "4100"])

        config = apply_overrides(BridgeConfig(), args)

        assert args.command == "mcp"
        assert config.hub.port == 4100
        assert config.log_level == "DEBUG"

    def test_hub_flags(self):
        args = build_parser().parse_args(["hub", "--api-port", "4200", "--no-api"])

        config = apply_overrides(BridgeConfig(), args)

        assert config.api.port == 4200
        assert config.api.enabled is False

    def test_agent_flags(self):
        args = build_parser().parse_args(
            ["agent", "--hub-url", "ws://hub:3001", "--url", "http://localhost:4321", "--headless"]
        )

        config = apply_overrides(BridgeConfig(), args)

        assert config.agent.hub_url == "ws://hub:3001"
        assert config.agent.target_url == "http://localhost:4321"
        assert config.agent.headless is True


@pytest.mark.skipif(not hasattr(signal, "SIGHUP"), reason="POSIX signals only")
class TestSignals:
    @pytest.mark.asyncio
    async def test_sighup_triggers_reconnect(self):
        loop = asyncio.get_running_loop()
        shutdown = asyncio.Event()
        calls = []
        _install_signal_handlers(shutdown, reconnect=lambda: calls.append("reconnect") or True)

        try:
            os.kill(os.getpid(), signal.SIGHUP)
            assert await eventually(lambda: calls == ["reconnect"])
            assert not shutdown.is_set()
        finally:
            for sig in (signal.SIGHUP, signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    @pytest.mark.asyncio
    async def test_sigterm_sets_shutdown(self):
        loop = asyncio.get_running_loop()
        shutdown = asyncio.Event()
        _install_signal_handlers(shutdown)

        try:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(shutdown.wait(), timeout=2.0)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
