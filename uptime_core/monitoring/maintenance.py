"""
Maintenance Window Gate.

Planned windows suppress scheduled probes (and therefore incident
creation) for the checks they cover. Lifecycle:

    scheduled -> in_progress -> completed
    scheduled | in_progress -> cancelled

A window only suppresses while it is in_progress and the current time is
inside [start_time, end_time]. Status flips are honored immediately.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from uptime_core.core.models import MaintenanceStatus, MaintenanceWindow, generate_id

logger = logging.getLogger(__name__)

_ALLOWED = {
    MaintenanceStatus.SCHEDULED: {MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.CANCELLED},
    MaintenanceStatus.IN_PROGRESS: {MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED},
    MaintenanceStatus.COMPLETED: set(),
    MaintenanceStatus.CANCELLED: set(),
}


class MaintenanceGate:
    """Registry of maintenance windows and the suppression predicate."""

    def __init__(self):
        self._windows: Dict[str, MaintenanceWindow] = {}

    def schedule(self, window: MaintenanceWindow, now: float) -> str:
        """Register ``window`` in scheduled status and return its id."""
        if window.end_time < window.start_time:
            raise ValueError("maintenance window ends before it starts")
        window.id = window.id or generate_id("maintenance", now)
        window.status = MaintenanceStatus.SCHEDULED
        self._windows[window.id] = window
        logger.info(
            f"[Maintenance] Scheduled {window.name} ({window.id}) "
            f"for {', '.join(window.affected_services) or 'no services'}"
        )
        return window.id

    def transition(self, window_id: str, target: MaintenanceStatus) -> bool:
        window = self._windows.get(window_id)
        if window is None:
            return False
        if target not in _ALLOWED[window.status]:
            logger.debug(
                f"[Maintenance] Ignored {window.status.value} -> {target.value} for {window_id}"
            )
            return False
        logger.info(f"[Maintenance] {window.name}: {window.status.value} -> {target.value}")
        window.status = target
        return True

    def start(self, window_id: str) -> bool:
        return self.transition(window_id, MaintenanceStatus.IN_PROGRESS)

    def complete(self, window_id: str) -> bool:
        return self.transition(window_id, MaintenanceStatus.COMPLETED)

    def cancel(self, window_id: str) -> bool:
        return self.transition(window_id, MaintenanceStatus.CANCELLED)

    def is_suppressed(self, check_id: str, now: float) -> bool:
        return any(w.covers(check_id, now) for w in self._windows.values())

    def sync(self, now: float) -> List[str]:
        """
        Move windows along by the clock: start those whose start time has
        arrived, complete those whose end time has passed. Returns the ids
        that changed.
        """
        changed = []
        for window in list(self._windows.values()):
            if window.status is MaintenanceStatus.SCHEDULED and window.start_time <= now:
                self.start(window.id)
                changed.append(window.id)
            if window.status is MaintenanceStatus.IN_PROGRESS and now > window.end_time:
                self.complete(window.id)
                if window.id not in changed:
                    changed.append(window.id)
        return changed

    def get(self, window_id: str) -> Optional[MaintenanceWindow]:
        return self._windows.get(window_id)

    def all(self) -> List[MaintenanceWindow]:
        return list(self._windows.values())

    def upcoming(self) -> List[MaintenanceWindow]:
        """Scheduled and in-progress windows, soonest first."""
        active = (MaintenanceStatus.SCHEDULED, MaintenanceStatus.IN_PROGRESS)
        return sorted(
            (w for w in self._windows.values() if w.status in active),
            key=lambda w: w.start_time,
        )

    def purge_finished_before(self, cutoff: float) -> int:
        finished = (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED)
        stale = [
            wid for wid, w in self._windows.items()
            if w.status in finished and w.end_time < cutoff
        ]
        for wid in stale:
            del self._windows[wid]
        return len(stale)
