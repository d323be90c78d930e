"""
Wire protocol for the Strudel bridge.

Provides:
- BridgeMessage: the immutable JSON message shared by hub and agent
- MessageType: the message catalog
- The bridge error taxonomy
"""

from strudel_bridge.protocol.errors import (
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

from strudel_bridge.protocol.messages import (
    PROTOCOL_VERSION,
    BridgeMessage,
    MessageType,
)

__all__ = [
    # Errors
    "BridgeError",
    "BindError",
    "TransportError",
    "ProtocolError",
    "NoAgentConnectedError",
    "StrategyExhaustedError",
    "CorrelationTimeoutError",
    "MaxReconnectError",
    "InvalidTransitionError",
    # Messages
    "PROTOCOL_VERSION",
    "BridgeMessage",
    "MessageType",
]
