"""
Fallback strategy chains.

A chain is an ordered list of alternative tactics for one operation against
an editor whose internals are unknown. Strategies run in priority order and
the first accepted result wins; a strategy that raises or reports failure
just hands over to the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple

from strudel_bridge.protocol.errors import StrategyExhaustedError

logger = logging.getLogger(__name__)

AttemptFn = Callable[[Any], Awaitable[Any]]


def _truthy(value: Any) -> bool:
    return bool(value)


@dataclass(frozen=True)
class Strategy:
    """One tactic. Holds no state of its own."""
    name: str
    attempt: AttemptFn


@dataclass
class ChainResult:
    """Outcome of running a chain."""
    operation: str
    success: bool
    strategy: Optional[str] = None
    value: Any = None
    attempted: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def raise_for_status(self) -> "ChainResult":
        if not self.success:
            raise StrategyExhaustedError(self.operation, self.attempted)
        return self


class StrategyChain:
    """
    Ordered fallback list for one operation.

    Example:
        chain = StrategyChain("apply", [
            Strategy("codemirror_dispatch", dispatch_update),
            Strategy("textarea_value", set_textarea),
        ])
        result = await chain.run(code)
        if result.success:
            print(f"applied via {result.strategy}")
    """

    def __init__(
        self,
        operation: str,
        strategies: Iterable[Strategy],
        accept: Callable[[Any], bool] = _truthy,
    ):
        self.operation = operation
        self.strategies: Tuple[Strategy, ...] = tuple(strategies)
        self.accept = accept

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.strategies]

    async def run(self, payload: Any = None) -> ChainResult:
        """
        Try each strategy once, top to bottom, until one succeeds.

        Never raises for strategy failures; exhaustion is reported in the result.
        """
        attempted: List[str] = []

        for strategy in self.strategies:
            attempted.append(strategy.name)
            try:
                value = await strategy.attempt(payload)
            except Exception as e:
                logger.debug(f"{self.operation}: strategy {strategy.name} raised: {e}")
                continue

            if self.accept(value):
                logger.debug(f"{self.operation}: strategy {strategy.name} succeeded")
                return ChainResult(
                    operation=self.operation,
                    success=True,
                    strategy=strategy.name,
                    value=value,
                    attempted=attempted,
                )

            logger.debug(f"{self.operation}: strategy {strategy.name} reported failure")

        error = StrategyExhaustedError(self.operation, attempted)
        logger.warning(str(error))
        return ChainResult(
            operation=self.operation,
            success=False,
            attempted=attempted,
            error=str(error),
        )

    def __len__(self) -> int:
        return len(self.strategies)

    def __repr__(self) -> str:
        return f"StrategyChain({self.operation!r}, {self.names})"
