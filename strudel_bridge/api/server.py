"""
Strudel Bridge controller API.

Provides REST endpoints over the relay hub for:
- Sending patterns to connected agents
- Stopping playback
- Reading the live editor content
- Connection status and recent execution results

Usage:
    python -m strudel_bridge.api.server
    # or
    python run_bridge.py hub
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from strudel_bridge import __version__
from strudel_bridge.config.base_config import ApiConfig, HubConfig
from strudel_bridge.hub.controller import BridgeController, CommandResult
from strudel_bridge.hub.relay_hub import RelayHub

logger = logging.getLogger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = __version__
    timestamp: str
    hub_running: bool = False
    agents: int = 0


class StatusResponse(BaseModel):
    """Connection status."""
    connected: bool
    count: int
    port: Optional[int] = None
    hub: Dict[str, Any] = Field(default_factory=dict)


class ExecuteRequest(BaseModel):
    """Pattern to run in the connected editors."""
    code: str = Field(min_length=1)
    comment: Optional[str] = None


class CommandResponse(BaseModel):
    """Outcome of a controller command."""
    success: bool
    message: str
    delivered: int = 0
    error: Optional[str] = None


class SnapshotResponse(BaseModel):
    """Current editor content."""
    code: str
    empty: bool


class ResultsResponse(BaseModel):
    """Recent execution results reported by agents."""
    results: List[Dict[str, Any]]
    count: int


# ============================================================================
# Application
# ============================================================================

def _command_response(result: CommandResult) -> Any:
    if not result.success:
        return JSONResponse(status_code=409, content=result.to_dict())
    return CommandResponse(**result.to_dict())


def create_app(controller: BridgeController, manage_hub: bool = False) -> FastAPI:
    """
    Build the API around a controller.

    Args:
        controller: Controller whose hub the routes talk to
        manage_hub: Start the hub on startup and stop it on shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Strudel Bridge API starting...")
        if manage_hub and not controller.hub.is_running:
            await controller.hub.start()
        yield
        logger.info("Strudel Bridge API shutting down...")
        if manage_hub:
            await controller.hub.stop()

    app = FastAPI(
        title="Strudel Bridge API",
        description="Controller API for driving Strudel editors through the relay hub",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.controller = controller

    # ------------------------------------------------------------------------
    # Health & Status
    # ------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            timestamp=datetime.now().isoformat(),
            hub_running=controller.hub.is_running,
            agents=controller.hub.client_count(),
        )

    @app.get("/api/status", response_model=StatusResponse)
    async def get_status():
        status = controller.connection_status()
        return StatusResponse(**status, hub=controller.hub.status())

    # ------------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------------

    @app.post("/api/execute", response_model=CommandResponse)
    async def execute(request: ExecuteRequest):
        """Send a pattern to every connected agent."""
        try:
            result = controller.send_command(request.code, request.comment)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return _command_response(result)

    @app.post("/api/stop", response_model=CommandResponse)
    async def stop():
        """Stop playback on every connected agent."""
        return _command_response(controller.stop())

    @app.get("/api/snapshot", response_model=SnapshotResponse)
    async def snapshot(timeout_ms: Optional[int] = Query(default=None, ge=1, le=60000)):
        """Current editor content; empty when no agent answers in time."""
        code = await controller.fetch_snapshot(timeout_ms)
        return SnapshotResponse(code=code, empty=not code)

    @app.get("/api/results", response_model=ResultsResponse)
    async def results(limit: int = Query(default=10, ge=1, le=100)):
        items = controller.recent_results(limit)
        return ResultsResponse(results=items, count=len(items))

    return app


# ============================================================================
# Main Entry Point
# ============================================================================

def main():
    """Run the hub and the API server."""
    import uvicorn

    from strudel_bridge.utils.logging_config import LoggingConfig, setup_logging

    setup_logging(LoggingConfig())

    hub_config = HubConfig()
    api_config = ApiConfig()
    controller = BridgeController(RelayHub(hub_config))
    app = create_app(controller, manage_hub=True)

    logger.info("=" * 60)
    logger.info("Strudel Bridge API Server")
    logger.info("=" * 60)
    logger.info(f"Relay hub: ws://{hub_config.host}:{hub_config.port}")
    logger.info(f"Listening: http://{api_config.host}:{api_config.port}")
    logger.info("")
    logger.info("Endpoints:")
    logger.info(f"  GET  http://localhost:{api_config.port}/health")
    logger.info(f"  GET  http://localhost:{api_config.port}/api/status")
    logger.info(f"  POST http://localhost:{api_config.port}/api/execute")
    logger.info(f"  POST http://localhost:{api_config.port}/api/stop")
    logger.info(f"  GET  http://localhost:{api_config.port}/api/snapshot")
    logger.info("=" * 60)

    uvicorn.run(
        app,
        host=api_config.host,
        port=api_config.port,
        log_level="info",
        log_config=None,
    )


if __name__ == "__main__":
    main()
