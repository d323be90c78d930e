#!/usr/bin/env python3
"""
Strudel Bridge launcher.

Runs either side of the bridge:

    controller ──HTTP──► hub (relay, :3001 WebSocket + :3002 API) ◄──WebSocket── agent ──► strudel.cc

RUN:
    python3 run_bridge.py hub                   # relay hub + controller API
    python3 run_bridge.py agent                 # browser agent against strudel.cc
    python3 run_bridge.py mcp                   # relay hub behind an MCP stdio server
    kill -HUP <agent pid>                       # agent: reconnect after giving up
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, Optional

from strudel_bridge.config.base_config import BridgeConfig, load_config
from strudel_bridge.protocol.errors import BindError
from strudel_bridge.utils.logging_config import LoggingConfig, set_component, setup_logging

logger = logging.getLogger("strudel_bridge.launcher")


def _install_signal_handlers(
    shutdown: asyncio.Event,
    reconnect: Optional[Callable[[], bool]] = None,
) -> None:
    """SIGINT/SIGTERM end the run; SIGHUP, when given, triggers a manual reconnect."""
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal...")
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    if reconnect is not None:
        def reconnect_handler():
            logger.info("Received SIGHUP, reconnecting...")
            reconnect()

        loop.add_signal_handler(signal.SIGHUP, reconnect_handler)


# =============================================================================
# hub
# =============================================================================

async def run_hub(config: BridgeConfig) -> int:
    from strudel_bridge.hub.controller import BridgeController
    from strudel_bridge.hub.relay_hub import RelayHub

    set_component("hub")
    hub = RelayHub(config.hub)
    controller = BridgeController(hub)

    try:
        await hub.start()
    except BindError as e:
        logger.error(str(e))
        return 1

    shutdown = asyncio.Event()
    _install_signal_handlers(shutdown)

    server_task: Optional[asyncio.Task] = None
    server = None
    if config.api.enabled:
        import uvicorn

        from strudel_bridge.api.server import create_app

        server = uvicorn.Server(uvicorn.Config(
            create_app(controller),
            host=config.api.host,
            port=config.api.port,
            log_level=config.log_level.lower(),
            log_config=None,
        ))
        server_task = asyncio.create_task(server.serve(), name="controller-api")
        logger.info(f"Controller API: http://{config.api.host}:{config.api.port}")

    waiters = {asyncio.create_task(shutdown.wait(), name="shutdown-wait")}
    if server_task is not None:
        waiters.add(server_task)
    await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

    if server is not None:
        server.should_exit = True
        await server_task
    for task in waiters:
        task.cancel()

    await hub.stop()
    return 0


# =============================================================================
# agent
# =============================================================================

async def run_agent(config: BridgeConfig) -> int:
    from strudel_bridge.agent.bridge_agent import BridgeAgent
    from strudel_bridge.agent.surface import PlaywrightSurface

    set_component("agent")
    surface = await PlaywrightSurface.launch(
        config.agent.target_url,
        headless=config.agent.headless,
    )
    agent = BridgeAgent(config.agent, surface)

    shutdown = asyncio.Event()
    _install_signal_handlers(shutdown, reconnect=agent.reconnect)

    try:
        await agent.start()
        await shutdown.wait()
    finally:
        await agent.stop()
        await surface.close()
    return 0


# =============================================================================
# mcp
# =============================================================================

async def run_mcp(config: BridgeConfig) -> int:
    from strudel_bridge.hub.controller import BridgeController
    from strudel_bridge.hub.relay_hub import RelayHub
    from strudel_bridge.tools.mcp_server import BridgeTools, create_mcp_server

    set_component("hub")
    hub = RelayHub(config.hub)

    try:
        await hub.start()
    except BindError as e:
        logger.error(str(e))
        return 1

    server = create_mcp_server(BridgeTools(BridgeController(hub), default_port=config.hub.port))
    logger.info(f"MCP server on stdio, relay hub on ws://{config.hub.host}:{hub.port}")

    try:
        await server.run_stdio_async()
    finally:
        await hub.stop()
    return 0


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Strudel Bridge - drive a live Strudel editor from a controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 run_bridge.py hub                          # Hub on :3001, API on :3002
  python3 run_bridge.py hub --port 4001 --no-api     # Hub only, custom port
  python3 run_bridge.py agent --headless             # Agent without a visible window
  python3 run_bridge.py --config bridge.yaml agent   # Settings from YAML
        """,
    )

    parser.add_argument("--config", type=Path, help="YAML config file")

    # Logging
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", choices=["rich", "json"], default="rich")
    parser.add_argument("--log-file", type=Path, help="Log file path")

    sub = parser.add_subparsers(dest="command", required=True)

    hub = sub.add_parser("hub", help="Run the relay hub and controller API")
    hub.add_argument("--host", help="Hub bind address")
    hub.add_argument("--port", type=int, help="Hub WebSocket port")
    hub.add_argument("--api-port", type=int, help="Controller API port")
    hub.add_argument("--no-api", action="store_true", help="Do not serve the controller API")

    agent = sub.add_parser("agent", help="Run a browser agent")
    agent.add_argument("--hub-url", help="Hub WebSocket URL")
    agent.add_argument("--url", help="Editor page to open")
    agent.add_argument("--headless", action="store_true", help="Run the browser headless")

    mcp = sub.add_parser("mcp", help="Run the relay hub behind an MCP stdio server")
    mcp.add_argument("--host", help="Hub bind address")
    mcp.add_argument("--port", type=int, help="Hub WebSocket port")

    return parser


def apply_overrides(config: BridgeConfig, args: argparse.Namespace) -> BridgeConfig:
    """Fold command line flags into the loaded config."""
    overrides = {"hub": {}, "agent": {}, "api": {}}

    if args.log_level:
        overrides["log_level"] = args.log_level

    if args.command in ("hub", "mcp"):
        if args.host:
            overrides["hub"]["host"] = args.host
        if args.port is not None:
            overrides["hub"]["port"] = args.port
        if getattr(args, "api_port", None) is not None:
            overrides["api"]["port"] = args.api_port
        if getattr(args, "no_api", False):
            overrides["api"]["enabled"] = False
    else:
        if args.hub_url:
            overrides["agent"]["hub_url"] = args.hub_url
        if args.url:
            overrides["agent"]["target_url"] = args.url
        if args.headless:
            overrides["agent"]["headless"] = True

    merged = config.to_dict()
    for section in ("hub", "agent", "api"):
        merged[section].update(overrides.pop(section))
    merged.update(overrides)
    return BridgeConfig.from_dict(merged)


async def main(argv: Optional[list] = None) -> int:
    """Main entry point for the bridge."""
    args = build_parser().parse_args(argv)

    config = apply_overrides(await load_config(args.config), args)

    setup_logging(LoggingConfig(
        level=config.log_level,
        format=args.log_format,
        log_file=args.log_file,
    ))

    if args.command == "hub":
        return await run_hub(config)
    if args.command == "mcp":
        return await run_mcp(config)
    return await run_agent(config)


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
