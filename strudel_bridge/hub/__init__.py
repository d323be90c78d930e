"""
Hub module for the Strudel bridge.

Provides:
- RelayHub: WebSocket relay between the controller and bridge agents
- SnapshotCorrelator: request/response matching for editor snapshots
- BridgeController: controller-facing command operations
"""

from strudel_bridge.hub.correlator import (
    PendingCorrelation,
    SnapshotCorrelator,
)

from strudel_bridge.hub.relay_hub import (
    Connection,
    RelayHub,
)

from strudel_bridge.hub.controller import (
    BridgeController,
    CommandResult,
)

__all__ = [
    "PendingCorrelation",
    "SnapshotCorrelator",
    "Connection",
    "RelayHub",
    "BridgeController",
    "CommandResult",
]
