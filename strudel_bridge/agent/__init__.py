"""
Agent module for the Strudel bridge.

Provides:
- BridgeAgent: hub session, command handling and result reporting
- ExecutionQueue: strictly serialized FIFO task runner with cooldown
- ConnectionStateMachine: connection lifecycle and reconnect backoff
- StrategyChain: ordered fallback tactics for editor operations
- EditorSurface / PlaywrightSurface: handle on the live editor page
"""

from strudel_bridge.agent.strategies import (
    ChainResult,
    Strategy,
    StrategyChain,
)

from strudel_bridge.agent.surface import (
    EDITOR_SELECTORS,
    EditorSurface,
    PlaywrightSurface,
)

from strudel_bridge.agent.editor_chains import (
    EditorChains,
    build_apply_chain,
    build_editor_chains,
    build_evaluate_chain,
    build_read_chain,
    build_stop_chain,
)

from strudel_bridge.agent.execution_queue import (
    ExecutionQueue,
    ExecutionTask,
    TaskAction,
    TaskOutcome,
)

from strudel_bridge.agent.connection import (
    ConnectionStateMachine,
    ConnectionStatus,
    ReconnectPolicy,
)

from strudel_bridge.agent.bridge_agent import BridgeAgent

__all__ = [
    # Strategies
    "ChainResult",
    "Strategy",
    "StrategyChain",
    # Surfaces
    "EDITOR_SELECTORS",
    "EditorSurface",
    "PlaywrightSurface",
    # Concrete chains
    "EditorChains",
    "build_apply_chain",
    "build_editor_chains",
    "build_evaluate_chain",
    "build_read_chain",
    "build_stop_chain",
    # Queue
    "ExecutionQueue",
    "ExecutionTask",
    "TaskAction",
    "TaskOutcome",
    # Connection
    "ConnectionStateMachine",
    "ConnectionStatus",
    "ReconnectPolicy",
    # Agent
    "BridgeAgent",
]
