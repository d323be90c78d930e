"""
Error taxonomy for the Strudel bridge.

Transport and strategy failures are absorbed by the hub and agent and turned
into structured results; only BindError and InvalidTransitionError are meant
to reach a caller as exceptions.
"""

from __future__ import annotations

from typing import Optional, Sequence


class BridgeError(Exception):
    """Base class for bridge errors."""


class BindError(BridgeError):
    """The relay hub could not open its listening endpoint."""

    def __init__(self, host: str, port: int, reason: Optional[BaseException] = None):
        self.host = host
        self.port = port
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot bind relay hub to {host}:{port}{detail}")


class TransportError(BridgeError):
    """A read or write on one connection failed."""

    def __init__(self, connection_id: str, reason: Optional[BaseException] = None):
        self.connection_id = connection_id
        self.reason = reason
        super().__init__(f"Transport failure on connection {connection_id}: {reason}")


class ProtocolError(BridgeError):
    """An inbound frame was not a valid bridge message."""


class NoAgentConnectedError(BridgeError):
    """A command was requested while no agent is connected."""

    def __init__(self, message: str = ""):
        super().__init__(
            message
            or "No browser connected. Please open strudel.cc and enable the bridge agent."
        )


class StrategyExhaustedError(BridgeError):
    """Every strategy in a fallback chain failed."""

    def __init__(self, operation: str, attempted: Sequence[str] = ()):
        self.operation = operation
        self.attempted = tuple(attempted)
        tried = ", ".join(self.attempted) or "none"
        super().__init__(f"No {operation} strategy succeeded (tried: {tried})")


class CorrelationTimeoutError(BridgeError):
    """A snapshot request received no reply before its deadline."""

    def __init__(self, request_id: str, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Snapshot request {request_id} timed out after {timeout:.3f}s")


class MaxReconnectError(BridgeError):
    """The agent exhausted its reconnect budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Max reconnection attempts reached ({attempts})")


class InvalidTransitionError(BridgeError):
    """A connection state transition that the state machine does not allow."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid connection transition: {current} -> {target}")
