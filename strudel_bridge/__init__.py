"""
Strudel Bridge - remote control for a live Strudel editor

Provides:
- Relay Hub: WebSocket fan-out from one controller to many editor agents
- Snapshot correlation: request/response reads of the live editor content
- Bridge Agent: browser-side session with reconnect backoff and health checks
- Execution Queue: strictly serialized pattern execution with settle time
- Fallback strategy chains for applying, evaluating and stopping code
- Controller HTTP API (FastAPI)
"""

__version__ = "0.1.0"

# Wire protocol
from strudel_bridge.protocol import (
    PROTOCOL_VERSION,
    BridgeMessage,
    MessageType,
    BridgeError,
    BindError,
    TransportError,
    ProtocolError,
    NoAgentConnectedError,
    StrategyExhaustedError,
    CorrelationTimeoutError,
    MaxReconnectError,
    InvalidTransitionError,
)

# Configuration
from strudel_bridge.config import (
    HubConfig,
    AgentConfig,
    ApiConfig,
    BridgeConfig,
    load_config,
    get_config,
)

# Hub side
from strudel_bridge.hub import (
    RelayHub,
    Connection,
    SnapshotCorrelator,
    BridgeController,
    CommandResult,
)

# Agent side
from strudel_bridge.agent import (
    BridgeAgent,
    ExecutionQueue,
    ExecutionTask,
    TaskOutcome,
    ConnectionStateMachine,
    ConnectionStatus,
    ReconnectPolicy,
    Strategy,
    StrategyChain,
    ChainResult,
    EditorSurface,
    PlaywrightSurface,
    build_editor_chains,
)

# Utilities
from strudel_bridge.utils import (
    setup_logging,
    LoggingConfig,
)

__all__ = [
    "__version__",
    # Protocol
    "PROTOCOL_VERSION",
    "BridgeMessage",
    "MessageType",
    "BridgeError",
    "BindError",
    "TransportError",
    "ProtocolError",
    "NoAgentConnectedError",
    "StrategyExhaustedError",
    "CorrelationTimeoutError",
    "MaxReconnectError",
    "InvalidTransitionError",
    # Config
    "HubConfig",
    "AgentConfig",
    "ApiConfig",
    "BridgeConfig",
    "load_config",
    "get_config",
    # Hub
    "RelayHub",
    "Connection",
    "SnapshotCorrelator",
    "BridgeController",
    "CommandResult",
    # Agent
    "BridgeAgent",
    "ExecutionQueue",
    "ExecutionTask",
    "TaskOutcome",
    "ConnectionStateMachine",
    "ConnectionStatus",
    "ReconnectPolicy",
    "Strategy",
    "StrategyChain",
    "ChainResult",
    "EditorSurface",
    "PlaywrightSurface",
    "build_editor_chains",
    # Utils
    "setup_logging",
    "LoggingConfig",
]
