"""
Status Page Aggregator.

Derives a per-service status for every check plus one overall system
status, and bundles recent incidents and upcoming maintenance into a
StatusSnapshot.

Per-service precedence:
    maintenance > open incident (by severity) > low uptime > operational

Overall status is the most severe status among critical checks; when no
critical check is off operational it is the most severe among all checks.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from uptime_core.core.models import (
    CheckDefinition,
    IncidentSeverity,
    ServiceMetrics,
    ServiceStatus,
    ServiceSummary,
    StatusSnapshot,
)
from uptime_core.monitoring.incidents import IncidentManager
from uptime_core.monitoring.maintenance import MaintenanceGate

logger = logging.getLogger(__name__)

SEVERITY_TO_STATUS: Dict[IncidentSeverity, ServiceStatus] = {
    IncidentSeverity.CRITICAL: ServiceStatus.MAJOR_OUTAGE,
    IncidentSeverity.HIGH: ServiceStatus.PARTIAL_OUTAGE,
    IncidentSeverity.MEDIUM: ServiceStatus.DEGRADED,
}


def most_severe(statuses: Iterable[ServiceStatus]) -> ServiceStatus:
    return max(statuses, key=lambda s: s.rank, default=ServiceStatus.OPERATIONAL)


class StatusPageAggregator:
    """Build StatusSnapshots from engine-owned state."""

    def __init__(
        self,
        incidents: IncidentManager,
        maintenance: MaintenanceGate,
        metrics_for: Callable[[str], ServiceMetrics],
        degraded_uptime_threshold: float = 99.0,
        recent_incident_window: float = 7 * 86400.0,
    ):
        self._incidents = incidents
        self._maintenance = maintenance
        self._metrics_for = metrics_for
        self.degraded_uptime_threshold = degraded_uptime_threshold
        self.recent_incident_window = recent_incident_window

    def service_status(
        self,
        check: CheckDefinition,
        metrics: Optional[ServiceMetrics],
        now: float,
    ) -> ServiceStatus:
        if self._maintenance.is_suppressed(check.id, now):
            return ServiceStatus.MAINTENANCE

        incident = self._incidents.get_active_incident_for_check(check.id)
        if incident is not None and incident.severity in SEVERITY_TO_STATUS:
            return SEVERITY_TO_STATUS[incident.severity]

        if metrics is not None and metrics.uptime < self.degraded_uptime_threshold:
            return ServiceStatus.DEGRADED

        return ServiceStatus.OPERATIONAL

    def overall_status(
        self,
        services: List[ServiceSummary],
        critical_ids: Iterable[str],
    ) -> ServiceStatus:
        critical = set(critical_ids)
        critical_worst = most_severe(s.status for s in services if s.id in critical)
        if critical_worst is not ServiceStatus.OPERATIONAL:
            return critical_worst
        return most_severe(s.status for s in services)

    def build(self, checks: Iterable[CheckDefinition], now: float) -> StatusSnapshot:
        checks = list(checks)
        services = [self._summarize(check, now) for check in checks]

        recent = sorted(
            (
                i for i in self._incidents.get_all_incidents()
                if now - i.start_time < self.recent_incident_window
            ),
            key=lambda i: i.start_time,
            reverse=True,
        )

        return StatusSnapshot(
            overall_status=self.overall_status(services, (c.id for c in checks if c.critical)),
            services=services,
            incidents=recent,
            maintenance=self._maintenance.upcoming(),
            last_updated=now,
        )

    def _summarize(self, check: CheckDefinition, now: float) -> ServiceSummary:
        try:
            metrics = self._metrics_for(check.id)
            status = self.service_status(check, metrics, now)
        except Exception as e:
            logger.error(f"[StatusPage] Could not summarize {check.id}: {e}")
            metrics, status = None, ServiceStatus.OPERATIONAL

        resolved = [
            i for i in self._incidents.get_incidents_for_check(check.id)
            if not i.is_open
        ]
        last_incident = max((i.start_time for i in resolved), default=None)

        return ServiceSummary(
            id=check.id,
            name=check.name,
            status=status,
            uptime=metrics.uptime if metrics else 100.0,
            response_time=metrics.avg_response_time if metrics else 0.0,
            last_incident=last_incident,
        )
