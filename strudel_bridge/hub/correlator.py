"""
Snapshot request correlation.

Each outstanding "get_current_code" request is keyed by a random request id
and resolved exactly once: by the matching "current_code" reply or by its
deadline, whichever comes first. Resolution removes the entry, so a late
reply or a late timer finds nothing to act on.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Dict, Optional

from strudel_bridge.protocol.errors import CorrelationTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class PendingCorrelation:
    """One in-flight snapshot request."""
    request_id: str
    future: "asyncio.Future[str]"
    deadline: float  # time.monotonic()
    timeout: float

    @property
    def resolved(self) -> bool:
        return self.future.done()


class SnapshotCorrelator:
    """
    Matches snapshot replies to their requests.

    Example:
        pending = correlator.open(timeout=5.0)
        hub.broadcast(get_current_code(pending.request_id))
        code = await correlator.wait(pending)  # "" on timeout
    """

    def __init__(self, token_bytes: int = 8):
        self._token_bytes = token_bytes
        self._pending: Dict[str, PendingCorrelation] = {}

    def _new_request_id(self) -> str:
        while True:
            request_id = secrets.token_hex(self._token_bytes)
            if request_id not in self._pending:
                return request_id

    def open(self, timeout: float) -> PendingCorrelation:
        """Register a new pending request."""
        loop = asyncio.get_running_loop()
        pending = PendingCorrelation(
            request_id=self._new_request_id(),
            future=loop.create_future(),
            deadline=time.monotonic() + timeout,
            timeout=timeout,
        )
        self._pending[pending.request_id] = pending
        return pending

    def resolve(self, request_id: Optional[str], value: str) -> bool:
        """
        Resolve a pending request with a reply.

        Returns:
            True if a pending request was resolved, False if none matched
            (unknown id, already resolved or already timed out).
        """
        if not request_id:
            return False

        pending = self._pending.pop(request_id, None)
        if pending is None or pending.future.done():
            logger.debug(f"No pending snapshot request for {request_id}")
            return False

        pending.future.set_result(value)
        return True

    async def wait(self, pending: PendingCorrelation) -> str:
        """
        Wait for a request's reply.

        Returns:
            The reply, or "" if the deadline passed first.
        """
        remaining = max(0.0, pending.deadline - time.monotonic())
        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(str(CorrelationTimeoutError(pending.request_id, pending.timeout)))
            return ""
        finally:
            self._expire(pending)

    def _expire(self, pending: PendingCorrelation) -> None:
        # Only drop the entry if it is still ours
        if self._pending.get(pending.request_id) is pending:
            del self._pending[pending.request_id]
        if not pending.future.done():
            pending.future.cancel()

    def cancel_all(self) -> int:
        """Release every pending request with an empty reply. Returns the count."""
        cancelled = 0
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_result("")
                cancelled += 1
        self._pending.clear()
        return cancelled

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)
