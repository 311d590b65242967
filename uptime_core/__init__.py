"""
Uptime Core - Service Health & Incident-Management Engine
"""

__version__ = "1.0.0"

from uptime_core.config import MonitorConfig, load_config
from uptime_core.core.models import CheckDefinition, MaintenanceWindow
from uptime_core.monitoring.engine import UptimeEngine

__all__ = [
    "UptimeEngine",
    "MonitorConfig",
    "load_config",
    "CheckDefinition",
    "MaintenanceWindow",
    "__version__",
]
