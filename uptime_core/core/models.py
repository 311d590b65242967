"""
Data model for the uptime engine.

Entities:
- CheckDefinition: one monitored endpoint
- ProbeResult: one probe outcome (immutable once recorded)
- ServiceMetrics: rolling SLA metrics, recomputed on demand
- Incident / IncidentUpdate: outage lifecycle record and its timeline
- MaintenanceWindow: planned suppression of probing
- ServiceSummary / StatusSnapshot: the external status page contract

Timestamps are epoch seconds, durations are seconds, latencies are
milliseconds.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from uptime_core.core.error_handling import CheckValidationError


# ============================================================================
# Enums
# ============================================================================

class ServiceStatus(str, Enum):
    """Externally visible status of one service, or of the whole system."""
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    PARTIAL_OUTAGE = "partial_outage"
    MAJOR_OUTAGE = "major_outage"
    MAINTENANCE = "maintenance"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    ServiceStatus.OPERATIONAL: 0,
    ServiceStatus.MAINTENANCE: 1,
    ServiceStatus.DEGRADED: 2,
    ServiceStatus.PARTIAL_OUTAGE: 3,
    ServiceStatus.MAJOR_OUTAGE: 4,
}


class IncidentStatus(str, Enum):
    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class IncidentSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class UpdateKind(str, Enum):
    STATUS_CHANGE = "status_change"
    UPDATE = "update"
    RESOLUTION = "resolution"
    POSTMORTEM = "postmortem"


class MaintenanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


HTTP_METHODS = ("GET", "POST", "HEAD", "PUT", "DELETE")


def generate_id(prefix: str, now: float) -> str:
    """Sortable, collision-resistant id: ``prefix_<ms>_<random>``."""
    return f"{prefix}_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"


def parse_bool(value: Any) -> bool:
    """Read a config flag; strings count as true only for true/1/yes/on."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp).isoformat()


# ============================================================================
# Checks and results
# ============================================================================

@dataclass
class CheckDefinition:
    """Configuration for one monitored target."""
    id: str
    name: str
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    expected_status: List[int] = field(default_factory=lambda: [200])
    expected_content: Optional[str] = None
    timeout: float = 30.0
    interval: float = 60.0
    retries: int = 3
    enabled: bool = True
    tags: List[str] = field(default_factory=list)
    critical: bool = False
    locations: List[str] = field(default_factory=lambda: ["local"])
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Fields an update() patch may not change
    IMMUTABLE_FIELDS = ("id",)

    def validate(self) -> None:
        """Raise CheckValidationError listing every problem found."""
        problems = []
        if not self.id or not str(self.id).strip():
            problems.append("id must not be empty")
        if not self.url or not str(self.url).strip():
            problems.append("url must not be empty")
        if self.method.upper() not in HTTP_METHODS:
            problems.append(f"method must be one of {', '.join(HTTP_METHODS)}")
        if not isinstance(self.interval, (int, float)) or self.interval <= 0:
            problems.append("interval must be positive")
        if not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            problems.append("timeout must be positive")
        if not isinstance(self.retries, int) or self.retries < 0:
            problems.append("retries must be >= 0")
        if not self.expected_status:
            problems.append("expected_status must list at least one status code")
        if not self.locations:
            problems.append("locations must not be empty")
        if problems:
            raise CheckValidationError(self.id, problems)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> "CheckDefinition":
        """
        Build a check from a config mapping.

        ``defaults`` supplies interval/timeout/retries/locations when the
        mapping omits them. ``critical`` may be given at top level or under
        ``metadata``.
        """
        merged = dict(defaults or {})
        merged.update({k: v for k, v in data.items() if v is not None})

        metadata = dict(merged.get("metadata") or {})
        critical = merged.get("critical", metadata.get("critical", False))
        expected = merged.get("expected_status", [200])
        if isinstance(expected, int):
            expected = [expected]

        return cls(
            id=str(merged.get("id", "")),
            name=str(merged.get("name") or merged.get("id", "")),
            url=str(merged.get("url", "")),
            method=str(merged.get("method", "GET")).upper(),
            headers=dict(merged.get("headers") or {}),
            body=merged.get("body"),
            expected_status=[int(code) for code in expected],
            expected_content=merged.get("expected_content"),
            timeout=float(merged.get("timeout", 30.0)),
            interval=float(merged.get("interval", 60.0)),
            retries=int(merged.get("retries", 3)),
            enabled=parse_bool(merged.get("enabled", True)),
            tags=list(merged.get("tags") or []),
            critical=parse_bool(critical),
            locations=list(merged.get("locations") or ["local"]),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
            "body": self.body,
            "expected_status": list(self.expected_status),
            "expected_content": self.expected_content,
            "timeout": self.timeout,
            "interval": self.interval,
            "retries": self.retries,
            "enabled": self.enabled,
            "tags": list(self.tags),
            "critical": self.critical,
            "locations": list(self.locations),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class ProbeResult:
    """One probe outcome. Never mutated after creation."""
    check_id: str
    timestamp: float
    success: bool
    response_time: float
    status_code: Optional[int] = None
    error: Optional[str] = None
    location: str = "local"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check_id": self.check_id,
            "timestamp": self.timestamp,
            "datetime": _iso(self.timestamp),
            "success": self.success,
            "response_time": round(self.response_time, 2),
            "status_code": self.status_code,
            "error": self.error,
            "location": self.location,
            "details": dict(self.details),
        }


@dataclass
class ServiceMetrics:
    """Rolling SLA metrics for one check."""
    uptime: float = 100.0
    availability: float = 100.0
    avg_response_time: float = 0.0
    response_time_p95: float = 0.0
    response_time_p99: float = 0.0
    total_checks: int = 0
    successful_checks: int = 0
    failed_checks: int = 0
    last_check: float = 0.0
    last_success: float = 0.0
    last_failure: float = 0.0
    mttr: float = 0.0
    mtbf: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime": round(self.uptime, 3),
            "availability": round(self.availability, 3),
            "avg_response_time": round(self.avg_response_time, 2),
            "response_time_p95": round(self.response_time_p95, 2),
            "response_time_p99": round(self.response_time_p99, 2),
            "total_checks": self.total_checks,
            "successful_checks": self.successful_checks,
            "failed_checks": self.failed_checks,
            "last_check": self.last_check,
            "last_success": self.last_success,
            "last_failure": self.last_failure,
            "mttr": self.mttr,
            "mtbf": self.mtbf,
        }


# ============================================================================
# Incidents
# ============================================================================

@dataclass
class IncidentUpdate:
    """One timeline entry on an incident."""
    status: IncidentStatus
    message: str
    author: str
    kind: UpdateKind = UpdateKind.UPDATE
    timestamp: float = 0.0
    id: str = ""
    assigned_to: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IncidentUpdate":
        return cls(
            status=IncidentStatus(data["status"]),
            message=str(data.get("message", "")),
            author=str(data.get("author", "operator")),
            kind=UpdateKind(data.get("kind", data.get("type", UpdateKind.UPDATE.value))),
            timestamp=float(data.get("timestamp") or 0.0),
            id=str(data.get("id", "")),
            assigned_to=data.get("assigned_to"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "datetime": _iso(self.timestamp),
            "status": self.status.value,
            "message": self.message,
            "author": self.author,
            "kind": self.kind.value,
        }


@dataclass
class Incident:
    """A tracked period during which one or more checks are considered down."""
    id: str
    title: str
    description: str
    status: IncidentStatus
    severity: IncidentSeverity
    affected_services: List[str]
    start_time: float
    created_by: str = "system"
    end_time: Optional[float] = None
    duration: Optional[float] = None
    assigned_to: Optional[str] = None
    timeline: List[IncidentUpdate] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    auto_created: bool = False
    root_cause: Optional[str] = None
    resolution: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status is not IncidentStatus.RESOLVED

    def affects(self, check_id: str) -> bool:
        return check_id in self.affected_services

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "severity": self.severity.value,
            "affected_services": list(self.affected_services),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "created_by": self.created_by,
            "assigned_to": self.assigned_to,
            "timeline": [u.to_dict() for u in self.timeline],
            "metadata": dict(self.metadata),
            "tags": list(self.tags),
            "auto_created": self.auto_created,
            "root_cause": self.root_cause,
            "resolution": self.resolution,
        }


# ============================================================================
# Maintenance
# ============================================================================

@dataclass
class MaintenanceWindow:
    """Planned time range during which probing is suppressed for named checks."""
    name: str
    start_time: float
    end_time: float
    affected_services: List[str]
    description: str = ""
    status: MaintenanceStatus = MaintenanceStatus.SCHEDULED
    created_by: str = "operator"
    notifications: bool = True
    id: str = ""

    def covers(self, check_id: str, now: float) -> bool:
        return (
            self.status is MaintenanceStatus.IN_PROGRESS
            and check_id in self.affected_services
            and self.start_time <= now <= self.end_time
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaintenanceWindow":
        return cls(
            name=str(data["name"]),
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]),
            affected_services=list(data.get("affected_services") or []),
            description=str(data.get("description", "")),
            created_by=str(data.get("created_by", "operator")),
            notifications=parse_bool(data.get("notifications", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "affected_services": list(self.affected_services),
            "status": self.status.value,
            "created_by": self.created_by,
            "notifications": self.notifications,
        }


# ============================================================================
# Status page
# ============================================================================

@dataclass
class ServiceSummary:
    id: str
    name: str
    status: ServiceStatus
    uptime: float
    response_time: float
    last_incident: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "uptime": round(self.uptime, 3),
            "responseTime": round(self.response_time, 2),
        }
        if self.last_incident is not None:
            data["lastIncident"] = self.last_incident
        return data


@dataclass
class StatusSnapshot:
    """The aggregated, externally consumable view of system health."""
    overall_status: ServiceStatus
    services: List[ServiceSummary]
    incidents: List[Incident]
    maintenance: List[MaintenanceWindow]
    last_updated: float

    def service(self, check_id: str) -> Optional[ServiceSummary]:
        for summary in self.services:
            if summary.id == check_id:
                return summary
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallStatus": self.overall_status.value,
            "services": [s.to_dict() for s in self.services],
            "incidents": [i.to_dict() for i in self.incidents],
            "maintenance": [m.to_dict() for m in self.maintenance],
            "lastUpdated": self.last_updated,
        }
