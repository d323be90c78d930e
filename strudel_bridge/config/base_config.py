"""
Configuration for the Strudel bridge.

Dataclass sections (hub, agent, api) that load from dicts, YAML files or
STRUDEL_BRIDGE_* environment variables. String values may reference the
environment as ${NAME}, ${NAME:-fallback} or ${NAME:?message}.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union, get_type_hints

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="BaseConfig")

ENV_PREFIX = "STRUDEL_BRIDGE_"

_ENV_REFERENCE = re.compile(
    r"\$\{(?P<name>[A-Z_][A-Z0-9_]*)"
    r"(?::-(?P<fallback>[^}]*)|:\?(?P<message>[^}]*))?\}"
)
_TRUTHY = frozenset({"true", "1", "yes", "on"})

# Process-wide cached config
_config_instance: Optional["BridgeConfig"] = None
_config_lock = asyncio.Lock()


def _expand_env(value: Any) -> Any:
    """Resolve ${...} references in strings, walking into dicts and lists."""
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if not isinstance(value, str):
        return value

    def substitute(match: re.Match) -> str:
        name = match.group("name")
        if name in os.environ:
            return os.environ[name]
        if match.group("fallback") is not None:
            return match.group("fallback")
        if match.group("message") is not None:
            raise ValueError(match.group("message") or f"{name} must be set")
        # A bare reference is only fatal when it is the whole value
        if match.group(0) == value:
            raise ValueError(f"Environment variable {name} is not set")
        return match.group(0)

    expanded = _ENV_REFERENCE.sub(substitute, value)
    return os.path.expanduser(expanded) if expanded.startswith("~") else expanded


def _coerce(value: Any, annotation: Any) -> Any:
    """Convert a loaded (often string) value to the field's annotated type."""
    if value is None:
        return None

    if getattr(annotation, "__origin__", None) is Union:
        members = [arg for arg in annotation.__args__ if arg is not type(None)]
        return _coerce(value, members[0]) if len(members) == 1 else value

    if annotation is bool:
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return bool(value)
    if annotation is int:
        return int(float(value)) if value != "" else 0
    if annotation is float:
        return float(value) if value != "" else 0.0
    if annotation is Path:
        return Path(value).expanduser() if value else None

    if isinstance(annotation, type) and not isinstance(value, annotation):
        try:
            return annotation(value)
        except (TypeError, ValueError):
            return value
    return value


@dataclass
class BaseConfig:
    """Shared loading and serialization for every config section."""

    @classmethod
    def _field_types(cls) -> Dict[str, Any]:
        hints = get_type_hints(cls)
        return {name: hints.get(name, Any) for name in cls.__dataclass_fields__}

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        types = cls._field_types()
        known = {
            key: _coerce(value, types[key])
            for key, value in _expand_env(data or {}).items()
            if key in types
        }
        return cls(**known)

    @classmethod
    def from_yaml(cls: Type[T], path: Union[str, Path]) -> T:
        import yaml

        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        return cls.from_dict(yaml.safe_load(path.read_text()) or {})

    @classmethod
    def from_env(cls: Type[T], prefix: str = ENV_PREFIX) -> T:
        """Build a section from PREFIX + FIELD_NAME variables."""
        data = {
            name: os.environ[f"{prefix}{name}".upper()]
            for name in cls.__dataclass_fields__
            if f"{prefix}{name}".upper() in os.environ
        }
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: str(value) if isinstance(value, Path) else value
            for key, value in asdict(self).items()
        }

    def merge(self: T, overrides: Dict[str, Any]) -> T:
        """Copy of this config with `overrides` applied."""
        merged = self.to_dict()
        merged.update(overrides)
        return self.__class__.from_dict(merged)



@dataclass
class HubConfig(BaseConfig):
    """Configuration for the relay hub."""

    host: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_HUB_HOST", "127.0.0.1")
    )
    port: int = field(
        default_factory=lambda: int(os.getenv("STRUDEL_BRIDGE_HUB_PORT", "3001"))
    )

    # Per-connection outbound buffer; a full buffer drops broadcasts for that peer
    send_queue_size: int = 64

    snapshot_timeout_ms: int = field(
        default_factory=lambda: int(os.getenv("STRUDEL_BRIDGE_SNAPSHOT_TIMEOUT_MS", "5000"))
    )
    max_recent_results: int = 100
    welcome_message: str = "Connected to Strudel MCP Bridge"


@dataclass
class AgentConfig(BaseConfig):
    """Configuration for a bridge agent."""

    hub_url: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_HUB_URL", "ws://localhost:3001")
    )

    # Connection lifecycle (seconds)
    connect_timeout: float = 5.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 10.0
    max_reconnect_attempts: int = field(
        default_factory=lambda: int(os.getenv("STRUDEL_BRIDGE_MAX_RECONNECTS", "10"))
    )
    health_check_interval: float = 30.0

    # Settle times for the target editor (seconds)
    task_cooldown: float = 0.5
    settle_delay: float = 1.0

    # Browser surface
    target_url: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_TARGET_URL", "https://strudel.cc")
    )
    headless: bool = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_HEADLESS", "false").lower() == "true"
    )
    detection_timeout: float = 30.0


@dataclass
class ApiConfig(BaseConfig):
    """Configuration for the controller HTTP API."""

    enabled: bool = True
    host: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_API_HOST", "127.0.0.1")
    )
    port: int = field(
        default_factory=lambda: int(os.getenv("STRUDEL_BRIDGE_API_PORT", "3002"))
    )


@dataclass
class BridgeConfig(BaseConfig):
    """
    Master configuration combining hub, agent and API settings.
    """

    hub: HubConfig = field(default_factory=HubConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    log_level: str = field(
        default_factory=lambda: os.getenv("STRUDEL_BRIDGE_LOG_LEVEL", "INFO")
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        data = data or {}
        global_settings = _expand_env(
            {k: v for k, v in data.items() if k not in ("hub", "agent", "api")}
        )
        return cls(
            hub=HubConfig.from_dict(data.get("hub") or {}),
            agent=AgentConfig.from_dict(data.get("agent") or {}),
            api=ApiConfig.from_dict(data.get("api") or {}),
            **{k: v for k, v in global_settings.items() if k in cls.__dataclass_fields__},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hub": self.hub.to_dict(),
            "agent": self.agent.to_dict(),
            "api": self.api.to_dict(),
            "log_level": self.log_level,
        }


async def load_config(
    path: Optional[Union[str, Path]] = None,
    reload: bool = False,
) -> BridgeConfig:
    """
    Load or get cached configuration.

    Args:
        path: Path to a YAML config file. If None, uses defaults.
        reload: Force reload even if cached.

    Returns:
        BridgeConfig instance.
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    async with _config_lock:
        if _config_instance is not None and not reload:
            return _config_instance

        if path is None:
            _config_instance = BridgeConfig()
        else:
            _config_instance = BridgeConfig.from_yaml(path)

        logger.info(
            f"Configuration loaded: hub port {_config_instance.hub.port}, "
            f"agent -> {_config_instance.agent.hub_url}"
        )
        return _config_instance


def get_config() -> Optional[BridgeConfig]:
    """Get cached config synchronously. Returns None if not loaded."""
    return _config_instance
