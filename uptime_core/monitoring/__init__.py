"""
Monitoring components: scheduling, probing, metrics, incidents,
maintenance and the status page, composed by UptimeEngine.
"""

from uptime_core.monitoring.engine import (
    UptimeEngine,
    get_uptime_engine,
    init_uptime_engine,
    shutdown_uptime_engine,
)
from uptime_core.monitoring.events import (
    INCIDENT_CREATED,
    INCIDENT_RESOLVED,
    INCIDENT_UPDATED,
    EventDispatcher,
)
from uptime_core.monitoring.incidents import (
    IncidentManager,
    IncidentTransition,
    Monitoring,
    Outage,
    TransitionKind,
)
from uptime_core.monitoring.maintenance import MaintenanceGate
from uptime_core.monitoring.prober import HttpProber
from uptime_core.monitoring.results import MetricsAggregator, ResultStore, percentile_nearest_rank
from uptime_core.monitoring.scheduler import CheckScheduler
from uptime_core.monitoring.status_page import StatusPageAggregator

__all__ = [
    # Engine
    "UptimeEngine",
    "get_uptime_engine",
    "init_uptime_engine",
    "shutdown_uptime_engine",
    # Events
    "EventDispatcher",
    "INCIDENT_CREATED",
    "INCIDENT_RESOLVED",
    "INCIDENT_UPDATED",
    # Components
    "CheckScheduler",
    "HttpProber",
    "ResultStore",
    "MetricsAggregator",
    "percentile_nearest_rank",
    "IncidentManager",
    "IncidentTransition",
    "TransitionKind",
    "Monitoring",
    "Outage",
    "MaintenanceGate",
    "StatusPageAggregator",
]
