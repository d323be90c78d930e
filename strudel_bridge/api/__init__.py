"""
Controller HTTP API for the Strudel bridge.

Provides:
- create_app: FastAPI application over a BridgeController
- main: serve the hub and API with uvicorn
"""

from strudel_bridge.api.server import (
    create_app,
    main,
)

__all__ = [
    "create_app",
    "main",
]
