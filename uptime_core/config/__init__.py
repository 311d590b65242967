"""
Configuration module for the uptime engine.

Provides dataclass-based configuration with:
- YAML file loading
- Environment variable interpolation
- Type coercion and validation
- Sensible defaults
"""

from uptime_core.config.base_config import (
    BaseConfig,
    MonitorConfig,
    UptimeSettings,
    default_checks,
    load_config,
)

__all__ = [
    "BaseConfig",
    "MonitorConfig",
    "UptimeSettings",
    "default_checks",
    "load_config",
]
