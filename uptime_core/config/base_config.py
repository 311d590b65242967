"""
Configuration system for the uptime engine.

Features:
- Dataclass-based configuration with type hints
- YAML file loading with environment variable interpolation
- Environment overrides (UPTIME_* variables)
- Validation and defaults

A config file looks like:

    monitor:
      base_url: ${SITE_URL:-http://localhost:4321}
      incident_threshold: 3
      recovery_threshold: 2
    checks:
      - id: api-health
        name: API Health Endpoint
        url: /api/health
        interval: 30
        timeout: 5
        retries: 1
        critical: true
    maintenance:
      - name: Database upgrade
        start_time: 1767225600
        end_time: 1767226200
        affected_services: [database-health]
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union, get_type_hints

import yaml

from uptime_core.core.error_handling import ConfigurationError
from uptime_core.core.models import CheckDefinition, MaintenanceWindow, parse_bool

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="BaseConfig")

ENV_PREFIX = "UPTIME_"
DAY = 86400.0


# ============================================================================
# ENVIRONMENT INTERPOLATION & COERCION
# ============================================================================

def _interpolate_env_vars(value: Any) -> Any:
    """
    Recursively interpolate environment variables in config values.

    Supports formats:
    - ${VAR_NAME} - Required, raises if not set
    - ${VAR_NAME:-default} - Optional with default
    - ${VAR_NAME:?error message} - Required with custom error
    """
    if isinstance(value, str):
        pattern = r"\$\{([A-Z_][A-Z0-9_]*)(?:(:-)([^}]*))?(?:(:\?)([^}]*))?\}"

        def replace_var(match: re.Match) -> str:
            var_name = match.group(1)
            has_default = match.group(2) is not None
            default_value = match.group(3) or ""
            has_error = match.group(4) is not None
            error_msg = match.group(5) or f"Required environment variable {var_name} is not set"

            env_value = os.environ.get(var_name)

            if env_value is not None:
                return env_value
            elif has_default:
                return default_value
            elif has_error:
                raise ConfigurationError(error_msg)
            raise ConfigurationError(f"Environment variable {var_name} is not set")

        return re.sub(pattern, replace_var, value)

    elif isinstance(value, dict):
        return {k: _interpolate_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_interpolate_env_vars(item) for item in value]

    return value


def _coerce_type(value: Any, target_type: Any) -> Any:
    """Coerce a value to the target type."""
    if value is None:
        return None

    origin = getattr(target_type, "__origin__", None)

    # Handle Optional types
    if origin is Union:
        non_none_types = [t for t in target_type.__args__ if t is not type(None)]
        if len(non_none_types) == 1:
            return _coerce_type(value, non_none_types[0])
        return value

    # Handle List (comma-separated strings come from the environment)
    if origin is list:
        item_type = target_type.__args__[0] if target_type.__args__ else str
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        if not isinstance(value, list):
            value = [value]
        return [_coerce_type(item, item_type) for item in value]

    # Handle bool (special case because bool("false") is True)
    if target_type is bool:
        return parse_bool(value)

    try:
        if target_type is int:
            return int(float(value))
        if target_type is float:
            return float(value)
        if target_type is str:
            return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Cannot convert {value!r} to {target_type.__name__}") from e

    return value


# ============================================================================
# BASE CONFIG
# ============================================================================

@dataclass
class BaseConfig:
    """Base configuration class with YAML loading and env var interpolation."""

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """Create config from dictionary with env var interpolation."""
        interpolated = _interpolate_env_vars(data or {})
        field_types = get_type_hints(cls)

        filtered = {}
        for key, value in interpolated.items():
            if key in cls.__dataclass_fields__:
                filtered[key] = _coerce_type(value, field_types[key])
            else:
                logger.warning(f"[Config] Ignoring unknown {cls.__name__} key: {key}")

        return cls(**filtered)

    @classmethod
    def from_yaml(cls: Type[T], path: Union[str, Path]) -> T:
        """Load config from YAML file with env var interpolation."""
        return cls.from_dict(_read_yaml(path))

    @classmethod
    def from_env(cls: Type[T], prefix: str = ENV_PREFIX) -> T:
        """Create config entirely from environment variables."""
        return cls.from_dict(_env_overrides(cls, prefix))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def merge(self: T, other: Dict[str, Any]) -> T:
        """Create new config with overrides merged in."""
        current = self.to_dict()
        current.update(_interpolate_env_vars(other))
        return self.__class__.from_dict(current)


def _read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _env_overrides(cls: Type[BaseConfig], prefix: str) -> Dict[str, Any]:
    data = {}
    for name in cls.__dataclass_fields__:
        env_value = os.environ.get(f"{prefix}{name}".upper())
        if env_value is not None:
            data[name] = env_value
    return data


# ============================================================================
# MONITOR CONFIG
# ============================================================================

@dataclass
class MonitorConfig(BaseConfig):
    """
    Engine-wide settings.

    Every field can be overridden with an ``UPTIME_<FIELD>`` environment
    variable; ``load_config`` applies those on top of the YAML values.
    """

    enabled: bool = True
    base_url: str = "http://localhost:4321"

    # Check defaults (applied to checks that omit them)
    default_interval: float = 60.0
    default_timeout: float = 30.0
    default_retries: int = 3
    locations: List[str] = field(default_factory=lambda: ["local"])

    # State machine
    incident_threshold: int = 3
    recovery_threshold: int = 2

    # Retention and windows
    result_capacity: int = 1000
    result_retention_seconds: float = 7 * DAY
    incident_retention_seconds: float = 30 * DAY
    metrics_window_seconds: float = DAY
    recent_incident_window_seconds: float = 7 * DAY
    cleanup_interval_seconds: float = 600.0

    # Status page
    degraded_uptime_threshold: float = 99.0

    # Prober
    backoff_base_seconds: float = 1.0

    # Maintenance
    auto_transition_maintenance: bool = True

    register_default_checks: bool = False
    log_level: str = "INFO"

    def validate(self) -> None:
        problems = []
        if self.incident_threshold < 1:
            problems.append("incident_threshold must be >= 1")
        if self.recovery_threshold < 1:
            problems.append("recovery_threshold must be >= 1")
        if self.result_capacity < 1:
            problems.append("result_capacity must be >= 1")
        for name in (
            "default_interval",
            "default_timeout",
            "result_retention_seconds",
            "incident_retention_seconds",
            "metrics_window_seconds",
            "recent_incident_window_seconds",
            "cleanup_interval_seconds",
        ):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")
        if self.default_retries < 0:
            problems.append("default_retries must be >= 0")
        if self.backoff_base_seconds < 0:
            problems.append("backoff_base_seconds must be >= 0")
        if not 0 <= self.degraded_uptime_threshold <= 100:
            problems.append("degraded_uptime_threshold must be within 0..100")
        if not self.locations:
            problems.append("locations must not be empty")
        if problems:
            raise ConfigurationError("Invalid monitor config: " + "; ".join(problems))

    def check_defaults(self) -> Dict[str, Any]:
        """Values filled into check definitions that omit them."""
        return {
            "interval": self.default_interval,
            "timeout": self.default_timeout,
            "retries": self.default_retries,
            "locations": list(self.locations),
        }


@dataclass
class UptimeSettings:
    """Everything a config file describes."""
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    checks: List[CheckDefinition] = field(default_factory=list)
    maintenance: List[MaintenanceWindow] = field(default_factory=list)


def load_config(path: Optional[Union[str, Path]] = None) -> UptimeSettings:
    """
    Load settings from a YAML file (or defaults when ``path`` is None),
    then apply ``UPTIME_*`` environment overrides to the monitor section.

    Raises ConfigurationError (or CheckValidationError) on invalid input.
    """
    data = _read_yaml(path) if path is not None else {}

    monitor_data = dict(data.get("monitor") or {})
    monitor_data.update(_env_overrides(MonitorConfig, ENV_PREFIX))
    monitor = MonitorConfig.from_dict(monitor_data)
    monitor.validate()

    defaults = monitor.check_defaults()
    checks = []
    seen = set()
    for raw in _interpolate_env_vars(data.get("checks") or []):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Check entries must be mappings, got {raw!r}")
        check = CheckDefinition.from_dict(raw, defaults=defaults)
        check.validate()
        if check.id in seen:
            raise ConfigurationError(f"Duplicate check id in config: {check.id}")
        seen.add(check.id)
        checks.append(check)

    if not checks and monitor.register_default_checks:
        checks = default_checks(monitor)

    maintenance = []
    for raw in _interpolate_env_vars(data.get("maintenance") or []):
        try:
            maintenance.append(MaintenanceWindow.from_dict(raw))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid maintenance window {raw!r}: {e}") from e

    logger.info(
        f"[Config] Loaded {len(checks)} checks and {len(maintenance)} maintenance windows"
        + (f" from {path}" if path else "")
    )
    return UptimeSettings(monitor=monitor, checks=checks, maintenance=maintenance)


def default_checks(config: Optional[MonitorConfig] = None) -> List[CheckDefinition]:
    """The stock checks for the portfolio site the monitor was built for."""
    config = config or MonitorConfig()
    locations = list(config.locations)
    specs = [
        ("main-site", "Main Website", "/", 10, 60, 2, ["website", "critical"], True),
        ("api-health", "API Health Endpoint", "/api/health", 5, 30, 1, ["api", "health"], True),
        ("database-health", "Database Health", "/api/health/database", 5, 60, 2,
         ["database", "infrastructure"], True),
        ("portfolio-api", "Portfolio API", "/api/portfolio", 10, 300, 1, ["api", "portfolio"], False),
        ("blog-api", "Blog API", "/api/blog", 10, 300, 1, ["api", "blog"], False),
    ]
    return [
        CheckDefinition(
            id=check_id,
            name=name,
            url=url,
            timeout=float(timeout),
            interval=float(interval),
            retries=retries,
            tags=tags,
            critical=critical,
            locations=list(locations),
        )
        for check_id, name, url, timeout, interval, retries, tags, critical in specs
    ]
