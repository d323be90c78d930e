"""
Async utility helpers for the Strudel bridge.

Provides:
- call_handler: invoke a sync or async callback, logging its failures
- spawn: create a background task whose crash is logged, not lost
- cancel_and_wait: cancel a task and wait for it to unwind
- run_with_timeout: await with a deadline, returning a default on expiry
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_handler(handler: Callable[..., Any], *args: Any) -> bool:
    """
    Call a sync or async handler, absorbing its exceptions.

    Returns:
        True if the handler completed, False if it raised.
    """
    try:
        result = handler(*args)
        if inspect.isawaitable(result):
            await result
        return True
    except asyncio.CancelledError:
        raise
    except Exception as e:
        name = getattr(handler, "__qualname__", repr(handler))
        logger.error(f"Handler {name} failed: {e}", exc_info=True)
        return False


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} crashed: {exc}", exc_info=exc)


def spawn(coro: Coroutine[Any, Any, T], name: Optional[str] = None) -> "asyncio.Task[T]":
    """
    Start a background task on the running loop.

    Example:
        self._health_task = spawn(self._health_loop(), name="health-check")
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    task.add_done_callback(_log_task_failure)
    return task


async def cancel_and_wait(task: Optional[asyncio.Task]) -> None:
    """Cancel a task and wait until it has finished unwinding."""
    if task is None or task.done():
        return

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Task {task.get_name()} raised while cancelling: {e}")


async def run_with_timeout(
    coro: Awaitable[T],
    timeout: float,
    default: Optional[T] = None,
) -> Optional[T]:
    """
    Run coroutine with timeout, returning default on timeout.

    Example:
        found = await run_with_timeout(surface.locate_editor(), timeout=5.0, default=False)
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Operation timed out after {timeout}s")
        return default
