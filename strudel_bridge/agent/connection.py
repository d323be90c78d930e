"""
Agent connection state machine and reconnect policy.

    waiting ──► connecting ──► connected ──► disconnected ──► connecting ...
       │            │                              │
       ▼            ▼                              ▼
  detected/timeout  error ◄────────────────────── error   (terminal until reset)

The attempt counter only grows while disconnected and goes back to zero on a
successful connect. Once it exceeds the budget the machine parks in `error`
and issues no further attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from strudel_bridge.protocol.errors import InvalidTransitionError, MaxReconnectError

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    WAITING = "waiting"
    DETECTED = "detected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    TIMEOUT = "timeout"
    ERROR = "error"


_TRANSITIONS: Dict[ConnectionStatus, FrozenSet[ConnectionStatus]] = {
    ConnectionStatus.WAITING: frozenset({
        ConnectionStatus.CONNECTING,
        ConnectionStatus.DETECTED,
        ConnectionStatus.TIMEOUT,
    }),
    ConnectionStatus.DETECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.TIMEOUT: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset({
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
        ConnectionStatus.ERROR,
    }),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.DISCONNECTED: frozenset({
        ConnectionStatus.CONNECTING,
        ConnectionStatus.ERROR,
    }),
    ConnectionStatus.ERROR: frozenset({ConnectionStatus.WAITING}),
}

StatusListener = Callable[[ConnectionStatus, ConnectionStatus], Any]


@dataclass(frozen=True)
class ReconnectPolicy:
    """Linear backoff with a cap and an attempt budget."""
    base_delay: float = 1.0
    max_delay: float = 10.0
    max_attempts: int = 10

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * max(attempt, 1), self.max_delay)


class ConnectionStateMachine:
    """
    Owns the agent's ConnectionStatus. Nothing else writes it.

    Example:
        machine = ConnectionStateMachine(ReconnectPolicy(max_attempts=3))
        machine.begin_attempt()
        machine.connection_lost()
        delay = machine.schedule_retry()   # 1.0
    """

    def __init__(self, policy: Optional[ReconnectPolicy] = None):
        self.policy = policy or ReconnectPolicy()
        self._status = ConnectionStatus.WAITING
        self.attempts = 0
        self.detected = False
        self.last_error: Optional[Exception] = None
        self.changed_at = datetime.now()
        self._listeners: List[StatusListener] = []

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    @property
    def is_terminal(self) -> bool:
        return self._status == ConnectionStatus.ERROR

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def can_transition(self, target: ConnectionStatus) -> bool:
        return target in _TRANSITIONS[self._status]

    def _transition(self, target: ConnectionStatus) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self._status.value, target.value)

        previous = self._status
        self._status = target
        self.changed_at = datetime.now()
        logger.info(f"Connection status: {previous.value} -> {target.value}")

        for listener in list(self._listeners):
            try:
                listener(previous, target)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

    # =========================================================================
    # Events
    # =========================================================================

    def begin_attempt(self) -> bool:
        """Enter `connecting`. False when parked in `error`."""
        if self.is_terminal:
            return False
        self._transition(ConnectionStatus.CONNECTING)
        return True

    def connection_succeeded(self) -> None:
        self._transition(ConnectionStatus.CONNECTED)
        self.attempts = 0
        self.last_error = None

    def connection_lost(self, error: Optional[Exception] = None) -> None:
        if error is not None:
            self.last_error = error
        if self._status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            self._transition(ConnectionStatus.DISCONNECTED)

    def schedule_retry(self) -> Optional[float]:
        """
        Count a failed or lost session and pick the next backoff.

        Returns:
            Seconds to wait before the next attempt, or None once the budget
            is spent and the machine has moved to `error`.
        """
        self.attempts += 1

        if self.attempts > self.policy.max_attempts:
            self.last_error = MaxReconnectError(self.policy.max_attempts)
            logger.error(str(self.last_error))
            self._transition(ConnectionStatus.ERROR)
            return None

        delay = self.policy.delay(self.attempts)
        logger.info(
            f"Reconnecting in {delay:.1f}s "
            f"(attempt {self.attempts}/{self.policy.max_attempts})"
        )
        return delay

    def mark_detected(self, found: bool) -> None:
        """Record target-UI readiness; surfaced as a state only while waiting."""
        self.detected = found
        if self._status == ConnectionStatus.WAITING:
            self._transition(ConnectionStatus.DETECTED if found else ConnectionStatus.TIMEOUT)

    def reset(self) -> None:
        """Manual recovery out of `error`."""
        if self._status != ConnectionStatus.ERROR:
            raise InvalidTransitionError(self._status.value, ConnectionStatus.WAITING.value)
        self.attempts = 0
        self.last_error = None
        self._transition(ConnectionStatus.WAITING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self._status.value,
            "attempts": self.attempts,
            "max_attempts": self.policy.max_attempts,
            "detected": self.detected,
            "last_error": str(self.last_error) if self.last_error else None,
            "since": self.changed_at.isoformat(),
        }
