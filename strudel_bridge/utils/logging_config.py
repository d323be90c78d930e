"""
Logging setup for the Strudel bridge.

Hub and agent log through module loggers; this module decides where the
records go. Development gets a colored single-line console format, files and
`--log-format json` get one JSON object per line. Context variables tag every
record with the running component ("hub", "agent", "api"), the agent id and
any fields bound with `LogContext` (a snapshot's request id, for instance).
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

_component: ContextVar[Optional[str]] = ContextVar("component", default=None)
_agent_id: ContextVar[Optional[str]] = ContextVar("agent_id", default=None)
_bound_fields: ContextVar[Dict[str, Any]] = ContextVar("bound_fields", default={})

# Attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def set_component(component: str) -> None:
    _component.set(component)


def set_agent_id(agent_id: str) -> None:
    _agent_id.set(agent_id)


def _correlation() -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if _component.get():
        fields["component"] = _component.get()
    if _agent_id.get():
        fields["agent_id"] = _agent_id.get()
    if _bound_fields.get():
        fields["context"] = dict(_bound_fields.get())
    return fields


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

        {"timestamp": "...Z", "level": "INFO", "logger": "strudel_bridge.hub.relay_hub",
         "message": "Agent connected", "component": "hub",
         "context": {"request_id": "..."}, "extra": {"duration_ms": 3.1}}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_correlation())

        extra = {
            key: value for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class RichConsoleFormatter(logging.Formatter):
    """Colored `HH:MM:SS.mmm LEVEL logger [component, agent=...]: message` lines."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        tags = []
        if _component.get():
            tags.append(_component.get())
        if _agent_id.get():
            tags.append(f"agent={_agent_id.get()}")
        tag_str = f" [{', '.join(tags)}]" if tags else ""

        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelname, "")
        line = (
            f"{self.DIM}{clock}{self.RESET} "
            f"{color}{self.BOLD}{record.levelname:<8}{self.RESET} "
            f"{self.DIM}{record.name}{self.RESET}{tag_str}: {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


@dataclass
class LoggingConfig:
    level: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_LOG_LEVEL", "INFO")
    )
    # "rich" or "json"
    format: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_LOG_FORMAT", "rich")
    )

    log_file: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["STRUDEL_BRIDGE_LOG_FILE"])
        if os.getenv("STRUDEL_BRIDGE_LOG_FILE") else None
    )
    max_file_size_mb: int = 10
    backup_count: int = 3

    console_enabled: bool = True

    quiet_loggers: List[str] = field(
        default_factory=lambda: ["aiohttp.access", "uvicorn.access", "asyncio", "playwright"]
    )


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Install bridge handlers on the root logger, replacing any present."""
    config = config or LoggingConfig()
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    # stderr: stdout may be a tool-invocation transport
    if config.console_enabled:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(
            StructuredFormatter() if config.format == "json" else RichConsoleFormatter()
        )
        root.addHandler(console)

    if config.log_file:
        log_file = Path(config.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(StructuredFormatter())
        root.addHandler(file_handler)

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("strudel_bridge").setLevel(level)


class LogContext:
    """
    Bind fields to every record logged inside the block.

        with LogContext(request_id=pending.request_id):
            logger.info("Snapshot requested")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = _bound_fields.set({**_bound_fields.get(), **self._fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _bound_fields.reset(self._token)


def log_duration(
    logger: logging.Logger,
    level: int = logging.INFO,
    message: str = "Operation completed",
) -> Callable:
    """Log how long the decorated coroutine took, and failures at ERROR."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.error(
                    f"{message} failed after {elapsed_ms:.1f}ms: {e}",
                    extra={"duration_ms": elapsed_ms, "function": func.__name__},
                )
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.log(
                level,
                f"{message} took {elapsed_ms:.1f}ms",
                extra={"duration_ms": elapsed_ms, "function": func.__name__},
            )
            return result

        return wrapper

    return decorator
