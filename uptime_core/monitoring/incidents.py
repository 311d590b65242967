"""
Incident Manager.

A per-check failure-threshold state machine that opens, updates and
resolves Incident records. Each check is in exactly one of two states:

    Monitoring(failures)                   no outage tracked
    Outage(incident_id, failures, successes)
                                           an open incident is bound

    Monitoring --(failures reaches incident_threshold)--> Outage
    Outage     --(successes reaches recovery_threshold)--> Monitoring(0)

The manager never raises into its caller: unknown ids yield False/None.
State changes are reported back as IncidentTransition values so the
engine can publish them as events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

from uptime_core.core.models import (
    CheckDefinition,
    Incident,
    IncidentSeverity,
    IncidentStatus,
    IncidentUpdate,
    ProbeResult,
    UpdateKind,
    generate_id,
)

logger = logging.getLogger(__name__)

MONITOR_AUTHOR = "uptime-monitor"
RECOVERY_AUTHOR = "auto-recovery"


# ============================================================================
# Per-check state
# ============================================================================

@dataclass(frozen=True)
class Monitoring:
    failures: int = 0


@dataclass(frozen=True)
class Outage:
    incident_id: str
    failures: int = 0
    successes: int = 0


CheckState = Union[Monitoring, Outage]


class TransitionKind(str, Enum):
    CREATED = "incident-created"
    RESOLVED = "incident-resolved"
    UPDATED = "incident-updated"


@dataclass(frozen=True)
class IncidentTransition:
    kind: TransitionKind
    incident: Incident


# ============================================================================
# Incident Manager
# ============================================================================

class IncidentManager:
    """Owns every Incident and the per-check outage state."""

    def __init__(self, incident_threshold: int = 3, recovery_threshold: int = 2):
        if incident_threshold < 1 or recovery_threshold < 1:
            raise ValueError("incident and recovery thresholds must be >= 1")
        self.incident_threshold = incident_threshold
        self.recovery_threshold = recovery_threshold
        self._incidents: Dict[str, Incident] = {}
        self._states: Dict[str, CheckState] = {}

    # =========================================================
    # State machine
    # =========================================================

    def state_of(self, check_id: str) -> CheckState:
        return self._states.get(check_id, Monitoring())

    def consecutive_failures(self, check_id: str) -> int:
        return self.state_of(check_id).failures

    def forget_check(self, check_id: str) -> None:
        """Drop outage state for a removed check. Incidents are kept as history."""
        self._states.pop(check_id, None)

    def handle_result(
        self,
        check: CheckDefinition,
        result: ProbeResult,
        now: float,
    ) -> Optional[IncidentTransition]:
        """Advance the check's state with one ProbeResult."""
        try:
            state = self._current_state(check.id)
            if result.success:
                return self._on_success(check, state, now)
            return self._on_failure(check, state, result, now)
        except Exception as e:
            logger.error(f"[Incidents] Failed to evaluate result for {check.id}: {e}")
            return None

    def _current_state(self, check_id: str) -> CheckState:
        state = self.state_of(check_id)
        if isinstance(state, Outage):
            incident = self._incidents.get(state.incident_id)
            if incident is None or not incident.is_open:
                # Resolved out of band or purged
                state = Monitoring()
                self._states[check_id] = state
        return state

    def _on_failure(
        self,
        check: CheckDefinition,
        state: CheckState,
        result: ProbeResult,
        now: float,
    ) -> Optional[IncidentTransition]:
        if isinstance(state, Outage):
            self._states[check.id] = Outage(state.incident_id, state.failures + 1, 0)
            return None

        failures = state.failures + 1
        if failures < self.incident_threshold:
            self._states[check.id] = Monitoring(failures)
            return None

        existing = self.get_active_incident_for_check(check.id)
        if existing is not None:
            self._states[check.id] = Outage(existing.id, failures, 0)
            return None

        incident = self._open_auto_incident(check, result, failures, now)
        self._states[check.id] = Outage(incident.id, failures, 0)
        return IncidentTransition(TransitionKind.CREATED, incident)

    def _on_success(
        self,
        check: CheckDefinition,
        state: CheckState,
        now: float,
    ) -> Optional[IncidentTransition]:
        if isinstance(state, Monitoring):
            self._states[check.id] = Monitoring()
            return None

        successes = state.successes + 1
        if successes < self.recovery_threshold:
            self._states[check.id] = Outage(state.incident_id, 0, successes)
            return None

        self._states[check.id] = Monitoring()
        incident = self._incidents[state.incident_id]
        self._close(
            incident,
            now,
            author=RECOVERY_AUTHOR,
            message=(
                f"Service {check.name} has recovered after "
                f"{successes} consecutive successful checks"
            ),
        )
        logger.info(f"[Incidents] Auto-resolved {incident.id}: {incident.title}")
        return IncidentTransition(TransitionKind.RESOLVED, incident)

    def _open_auto_incident(
        self,
        check: CheckDefinition,
        result: ProbeResult,
        failures: int,
        now: float,
    ) -> Incident:
        last_error = result.error or "Unknown error"
        return self.create_incident(
            title=f"{check.name} is down",
            description=(
                f"Service {check.name} has failed {failures} consecutive health checks. "
                f"Last error: {last_error}"
            ),
            severity=IncidentSeverity.CRITICAL if check.critical else IncidentSeverity.HIGH,
            affected_services=[check.id],
            now=now,
            created_by=MONITOR_AUTHOR,
            auto_created=True,
            tags=list(check.tags),
            metadata={
                "check_id": check.id,
                "consecutive_failures": failures,
                "last_error": result.error,
                "last_status_code": result.status_code,
                "last_response_time": result.response_time,
            },
            initial_message=(
                f"Incident created automatically after {failures} consecutive "
                f"failed checks (last error: {last_error})"
            ),
        )

    # =========================================================
    # Incident records
    # =========================================================

    def create_incident(
        self,
        title: str,
        now: float,
        description: str = "",
        severity: IncidentSeverity = IncidentSeverity.MEDIUM,
        affected_services: Optional[List[str]] = None,
        created_by: str = "system",
        auto_created: bool = False,
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict] = None,
        initial_message: Optional[str] = None,
    ) -> Incident:
        incident = Incident(
            id=generate_id("incident", now),
            title=title or "Service Incident",
            description=description,
            status=IncidentStatus.INVESTIGATING,
            severity=severity,
            affected_services=list(affected_services or []),
            start_time=now,
            created_by=created_by,
            tags=list(tags or []),
            metadata=dict(metadata or {}),
            auto_created=auto_created,
        )
        incident.timeline.append(IncidentUpdate(
            id=generate_id("update", now),
            timestamp=now,
            status=IncidentStatus.INVESTIGATING,
            message=initial_message or f"Incident opened by {created_by}",
            author=created_by,
            kind=UpdateKind.STATUS_CHANGE,
        ))
        self._incidents[incident.id] = incident
        logger.warning(
            f"[Incidents] Created {incident.id}: {incident.title} "
            f"(severity={incident.severity.value})"
        )
        return incident

    def update_incident(
        self,
        incident_id: str,
        update: IncidentUpdate,
        now: float,
    ) -> Optional[IncidentTransition]:
        """
        Append a manual update.

        Returns None when the incident is unknown or already resolved; the
        caller reports that as False. A resolved update yields a RESOLVED
        transition, anything else an UPDATED one.
        """
        incident = self._incidents.get(incident_id)
        if incident is None or not incident.is_open:
            return None

        timestamp = update.timestamp or now
        entry = IncidentUpdate(
            id=update.id or generate_id("update", timestamp),
            timestamp=timestamp,
            status=update.status,
            message=update.message,
            author=update.author,
            kind=update.kind,
        )
        if update.assigned_to:
            incident.assigned_to = update.assigned_to

        if update.status is IncidentStatus.RESOLVED:
            if entry.kind is UpdateKind.UPDATE:
                entry.kind = UpdateKind.RESOLUTION
            self._finish(incident, timestamp, entry)
            incident.resolution = update.message or incident.resolution
            logger.info(f"[Incidents] {incident.id} resolved by {update.author}")
            return IncidentTransition(TransitionKind.RESOLVED, incident)

        incident.timeline.append(entry)
        incident.status = update.status
        logger.info(f"[Incidents] {incident.id} -> {update.status.value} ({update.author})")
        return IncidentTransition(TransitionKind.UPDATED, incident)

    def resolve_incident(
        self,
        incident_id: str,
        now: float,
        resolved_by: str = "operator",
        resolution: str = "Resolved",
    ) -> Optional[Incident]:
        """Resolve an open incident. None when unknown or already resolved."""
        incident = self._incidents.get(incident_id)
        if incident is None or not incident.is_open:
            return None
        self._close(incident, now, author=resolved_by, message=resolution)
        return incident

    def _close(self, incident: Incident, now: float, author: str, message: str) -> None:
        entry = IncidentUpdate(
            id=generate_id("update", now),
            timestamp=now,
            status=IncidentStatus.RESOLVED,
            message=message,
            author=author,
            kind=UpdateKind.RESOLUTION,
        )
        self._finish(incident, now, entry)
        incident.resolution = message

    @staticmethod
    def _finish(incident: Incident, end_time: float, entry: IncidentUpdate) -> None:
        incident.status = IncidentStatus.RESOLVED
        incident.end_time = end_time
        incident.duration = end_time - incident.start_time
        incident.timeline.append(entry)

    # =========================================================
    # Queries
    # =========================================================

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def get_all_incidents(self) -> List[Incident]:
        return list(self._incidents.values())

    def get_active_incidents(self) -> List[Incident]:
        return [i for i in self._incidents.values() if i.is_open]

    def get_active_incident_for_check(self, check_id: str) -> Optional[Incident]:
        for incident in self._incidents.values():
            if incident.is_open and incident.affects(check_id):
                return incident
        return None

    def get_incidents_for_check(self, check_id: str) -> List[Incident]:
        return [i for i in self._incidents.values() if i.affects(check_id)]

    def purge_resolved_before(self, cutoff: float) -> int:
        """Delete resolved incidents whose end_time is older than ``cutoff``."""
        stale = [
            incident_id
            for incident_id, incident in self._incidents.items()
            if not incident.is_open and incident.end_time is not None and incident.end_time < cutoff
        ]
        for incident_id in stale:
            del self._incidents[incident_id]
        return len(stale)
