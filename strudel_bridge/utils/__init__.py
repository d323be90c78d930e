"""
Utilities module for the Strudel bridge.

Provides:
- Async helpers (handler dispatch, background tasks, timeouts)
- Structured logging configuration
"""

from strudel_bridge.utils.async_helpers import (
    call_handler,
    spawn,
    cancel_and_wait,
    run_with_timeout,
)

from strudel_bridge.utils.logging_config import (
    setup_logging,
    LoggingConfig,
    LogContext,
    set_component,
    set_agent_id,
    log_duration,
)

__all__ = [
    # Async helpers
    "call_handler",
    "spawn",
    "cancel_and_wait",
    "run_with_timeout",
    # Logging
    "setup_logging",
    "LoggingConfig",
    "LogContext",
    "set_component",
    "set_agent_id",
    "log_duration",
]
