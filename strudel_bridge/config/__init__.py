"""
Configuration module for the Strudel bridge.

Provides dataclass-based configuration with:
- YAML file loading
- Environment variable interpolation
- Type coercion
- Defaults matching the reference timings
"""

from strudel_bridge.config.base_config import (
    BaseConfig,
    HubConfig,
    AgentConfig,
    ApiConfig,
    BridgeConfig,
    load_config,
    get_config,
)

__all__ = [
    "BaseConfig",
    "HubConfig",
    "AgentConfig",
    "ApiConfig",
    "BridgeConfig",
    "load_config",
    "get_config",
]
