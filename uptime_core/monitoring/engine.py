"""
Uptime Engine.

The single owner of all monitoring state. It wires the scheduler, prober,
result store, metrics aggregator, incident manager, maintenance gate and
status page together, and is the only code path that mutates them:

    Scheduler -> Prober -> process_result()
                              |- ResultStore.record
                              |- IncidentManager.handle_result
                              '- EventDispatcher.emit

Usage:
    engine = UptimeEngine(MonitorConfig(base_url="https://example.com"))
    engine.register_check(CheckDefinition(id="api", name="API", url="/api/health"))
    engine.subscribe("incident-created", notify_on_call)
    await engine.start()
    ...
    snapshot = engine.status_page()
    await engine.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from uptime_core.config.base_config import MonitorConfig, UptimeSettings
from uptime_core.core.clock import SystemClock
from uptime_core.core.error_handling import (
    ClassifiedError,
    ConfigurationError,
    ErrorCategory,
    ErrorRegistry,
)
from uptime_core.core.models import (
    CheckDefinition,
    Incident,
    IncidentSeverity,
    IncidentUpdate,
    MaintenanceWindow,
    ProbeResult,
    ServiceMetrics,
    StatusSnapshot,
)
from uptime_core.monitoring.events import INCIDENT_CREATED, INCIDENT_RESOLVED, EventDispatcher
from uptime_core.monitoring.incidents import IncidentManager, IncidentTransition
from uptime_core.monitoring.maintenance import MaintenanceGate
from uptime_core.monitoring.prober import HttpProber
from uptime_core.monitoring.results import MetricsAggregator, ResultStore
from uptime_core.monitoring.scheduler import CheckScheduler
from uptime_core.monitoring.status_page import StatusPageAggregator

logger = logging.getLogger(__name__)


class UptimeEngine:
    """Owns checks, results, incidents and maintenance windows."""

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        clock: Optional[Any] = None,
        prober: Optional[Any] = None,
    ):
        self.config = config or MonitorConfig()
        self.config.validate()
        self.clock = clock or SystemClock()
        self.prober = prober or HttpProber(
            base_url=self.config.base_url,
            backoff_base=self.config.backoff_base_seconds,
            clock=self.clock,
            sleep=self.clock.sleep,
        )

        self.results = ResultStore(capacity=self.config.result_capacity)
        self.metrics = MetricsAggregator(self.results, window_seconds=self.config.metrics_window_seconds)
        self.incidents = IncidentManager(
            incident_threshold=self.config.incident_threshold,
            recovery_threshold=self.config.recovery_threshold,
        )
        self.maintenance = MaintenanceGate()
        self.events = EventDispatcher()
        self.errors = ErrorRegistry()
        self.scheduler = CheckScheduler(
            on_tick=self._run_check,
            is_suppressed=self.is_suppressed,
            clock=self.clock,
        )
        self.status = StatusPageAggregator(
            incidents=self.incidents,
            maintenance=self.maintenance,
            metrics_for=self._compute_metrics,
            degraded_uptime_threshold=self.config.degraded_uptime_threshold,
            recent_incident_window=self.config.recent_incident_window_seconds,
        )

        self._running = False
        self._housekeeping_task: Optional[asyncio.Task] = None
        self._processed = 0
        self._discarded = 0

    @classmethod
    def from_settings(
        cls,
        settings: UptimeSettings,
        clock: Optional[Any] = None,
        prober: Optional[Any] = None,
    ) -> "UptimeEngine":
        """Build an engine and load the checks and windows a config file lists."""
        engine = cls(settings.monitor, clock=clock, prober=prober)
        for check in settings.checks:
            engine.register_check(check)
        for window in settings.maintenance:
            engine.schedule_maintenance_window(window)
        return engine

    @property
    def running(self) -> bool:
        return self._running

    # =========================================================
    # Check configuration
    # =========================================================

    def register_check(self, check: CheckDefinition) -> None:
        """
        Add a check. Raises CheckValidationError for an invalid definition
        and DuplicateCheckError when the id is taken; in both cases nothing
        is scheduled.
        """
        self.scheduler.register(check)

    def unregister_check(self, check_id: str) -> bool:
        """Remove a check with its results and outage state. Incidents stay as history."""
        if not self.scheduler.unregister(check_id):
            return False
        self.results.discard(check_id)
        self.incidents.forget_check(check_id)
        self.errors.forget(check_id)
        return True

    def update_check(self, check_id: str, patch: Dict[str, Any]) -> bool:
        return self.scheduler.update(check_id, patch)

    def get_check(self, check_id: str) -> Optional[CheckDefinition]:
        return self.scheduler.get(check_id)

    def get_all_checks(self) -> List[CheckDefinition]:
        return self.scheduler.checks()

    # =========================================================
    # Probing
    # =========================================================

    async def _run_check(self, check: CheckDefinition) -> None:
        for location in check.locations:
            result = await self.prober.probe(check, location)
            await self.process_result(result)

    def run_check_now(self, check_id: str) -> bool:
        """Fire one out-of-band tick. False when unknown, busy or suppressed."""
        return self.scheduler.trigger(check_id)

    async def wait_idle(self) -> None:
        await self.scheduler.wait_idle()

    async def process_result(self, result: ProbeResult) -> Optional[IncidentTransition]:
        """
        Apply one ProbeResult to engine state.

        Results for unknown checks, or for checks under active maintenance,
        are dropped without effect.
        """
        check = self.scheduler.get(result.check_id)
        if check is None:
            self._discarded += 1
            logger.debug(f"[Uptime] Dropping result for unknown check {result.check_id}")
            return None
        if self.is_suppressed(check.id):
            self._discarded += 1
            logger.debug(f"[Uptime] Dropping result for {check.id} (maintenance)")
            return None

        self.results.record(result)
        self._processed += 1

        transition = self.incidents.handle_result(check, result, self.clock.now())

        if not result.success:
            self.errors.record(check.id, self._classify(result))
            logger.warning(
                f"[Uptime] {check.name} check failed: {result.error} "
                f"({self.incidents.consecutive_failures(check.id)} consecutive)"
            )

        if transition is not None:
            await self.events.emit(transition.kind.value, transition.incident)
        return transition

    @staticmethod
    def _classify(result: ProbeResult) -> ClassifiedError:
        try:
            category = ErrorCategory(result.details.get("error_category", ErrorCategory.INTERNAL.value))
        except ValueError:
            category = ErrorCategory.INTERNAL
        return ClassifiedError(
            category=category,
            message=result.error or "Unknown error",
            is_retryable=category is not ErrorCategory.INTERNAL,
            context={"status_code": result.status_code, "location": result.location},
            timestamp=result.timestamp,
        )

    # =========================================================
    # Metrics
    # =========================================================

    def _compute_metrics(self, check_id: str) -> ServiceMetrics:
        return self.metrics.compute(
            check_id,
            self.clock.now(),
            self.incidents.get_incidents_for_check(check_id),
        )

    def metrics_for(self, check_id: str) -> Optional[ServiceMetrics]:
        if check_id not in self.scheduler:
            return None
        return self._compute_metrics(check_id)

    def get_all_metrics(self) -> Dict[str, ServiceMetrics]:
        return {check.id: self._compute_metrics(check.id) for check in self.scheduler.checks()}

    def recent_results(self, check_id: str, limit: int = 50) -> List[ProbeResult]:
        """Newest-last slice of a check's stored results."""
        results = self.results.results_for(check_id)
        return results[-limit:] if limit > 0 else []

    # =========================================================
    # Incidents
    # =========================================================

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self.incidents.get_incident(incident_id)

    def get_active_incidents(self) -> List[Incident]:
        return self.incidents.get_active_incidents()

    def get_all_incidents(self) -> List[Incident]:
        return sorted(self.incidents.get_all_incidents(), key=lambda i: i.start_time, reverse=True)

    async def create_incident(
        self,
        title: str,
        description: str = "",
        severity: Union[IncidentSeverity, str] = IncidentSeverity.MEDIUM,
        affected_services: Optional[List[str]] = None,
        created_by: str = "operator",
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Incident:
        """Open a manual incident and publish ``incident-created``."""
        incident = self.incidents.create_incident(
            title=title,
            now=self.clock.now(),
            description=description,
            severity=IncidentSeverity(severity),
            affected_services=affected_services,
            created_by=created_by,
            tags=tags,
            metadata=metadata,
        )
        await self.events.emit(INCIDENT_CREATED, incident)
        return incident

    async def update_incident(
        self,
        incident_id: str,
        update: Union[IncidentUpdate, Dict[str, Any]],
    ) -> bool:
        """Append a timeline update. False when the incident is unknown or resolved."""
        if isinstance(update, dict):
            try:
                update = IncidentUpdate.from_dict(update)
            except (KeyError, ValueError) as e:
                raise ConfigurationError(f"Invalid incident update: {e}") from e

        transition = self.incidents.update_incident(incident_id, update, self.clock.now())
        if transition is None:
            return False
        await self.events.emit(transition.kind.value, transition.incident)
        return True

    async def resolve_incident(
        self,
        incident_id: str,
        resolved_by: str = "operator",
        resolution: str = "Resolved",
    ) -> bool:
        """Resolve an open incident. Resolving twice is a no-op returning False."""
        incident = self.incidents.resolve_incident(
            incident_id, self.clock.now(), resolved_by=resolved_by, resolution=resolution
        )
        if incident is None:
            return False
        await self.events.emit(INCIDENT_RESOLVED, incident)
        return True

    # =========================================================
    # Maintenance
    # =========================================================

    def schedule_maintenance_window(self, window: Union[MaintenanceWindow, Dict[str, Any]]) -> str:
        if isinstance(window, dict):
            try:
                window = MaintenanceWindow.from_dict(window)
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid maintenance window: {e}") from e
        try:
            return self.maintenance.schedule(window, self.clock.now())
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def start_maintenance(self, window_id: str) -> bool:
        return self.maintenance.start(window_id)

    def complete_maintenance(self, window_id: str) -> bool:
        return self.maintenance.complete(window_id)

    def cancel_maintenance(self, window_id: str) -> bool:
        return self.maintenance.cancel(window_id)

    def get_maintenance_windows(self) -> List[MaintenanceWindow]:
        return sorted(self.maintenance.all(), key=lambda w: w.start_time)

    def is_suppressed(self, check_id: str) -> bool:
        now = self.clock.now()
        if self.config.auto_transition_maintenance:
            self.maintenance.sync(now)
        return self.maintenance.is_suppressed(check_id, now)

    # =========================================================
    # Status page and events
    # =========================================================

    def status_page(self) -> StatusSnapshot:
        now = self.clock.now()
        if self.config.auto_transition_maintenance:
            self.maintenance.sync(now)
        return self.status.build(self.scheduler.checks(), now)

    def subscribe(self, event: str, callback: Callable[[Incident], Any]) -> None:
        self.events.subscribe(event, callback)

    def unsubscribe(self, event: str, callback: Callable[[Incident], Any]) -> bool:
        return self.events.unsubscribe(event, callback)

    # =========================================================
    # Lifecycle and housekeeping
    # =========================================================

    async def start(self) -> None:
        """Arm every enabled check and start the housekeeping loop."""
        if self._running:
            return
        if not self.config.enabled:
            logger.info("[Uptime] Monitoring disabled by configuration")
            return

        self._running = True
        self.scheduler.start()
        self._housekeeping_task = asyncio.create_task(
            self._housekeeping_loop(),
            name="uptime_housekeeping",
        )
        logger.info(f"[Uptime] Engine started with {len(self.scheduler.checks())} checks")

    async def stop(self) -> None:
        """Cancel timers, in-flight ticks and housekeeping; close the prober."""
        self._running = False
        await self.scheduler.stop()
        if self._housekeeping_task:
            self._housekeeping_task.cancel()
            try:
                await self._housekeeping_task
            except asyncio.CancelledError:
                pass
            self._housekeeping_task = None
        close = getattr(self.prober, "close", None)
        if close is not None:
            await close()
        logger.info("[Uptime] Engine stopped")

    async def _housekeeping_loop(self) -> None:
        while self._running:
            try:
                if self.config.auto_transition_maintenance:
                    self.maintenance.sync(self.clock.now())
                self.cleanup()
            except Exception as e:
                logger.error(f"[Uptime] Housekeeping failed: {e}")
            await self.clock.sleep(self.config.cleanup_interval_seconds)

    def cleanup(self) -> Dict[str, int]:
        """Purge results, resolved incidents and finished windows past retention."""
        now = self.clock.now()
        removed = {
            "results": self.results.purge_older_than(now - self.config.result_retention_seconds),
            "incidents": self.incidents.purge_resolved_before(now - self.config.incident_retention_seconds),
            "maintenance": self.maintenance.purge_finished_before(now - self.config.incident_retention_seconds),
        }
        if any(removed.values()):
            logger.info(
                f"[Uptime] Cleanup removed {removed['results']} results, "
                f"{removed['incidents']} incidents, {removed['maintenance']} maintenance windows"
            )
        return removed

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "checks": len(self.scheduler.checks()),
            "results_processed": self._processed,
            "results_discarded": self._discarded,
            "stored_results": sum(self.results.count(cid) for cid in self.results.check_ids()),
            "active_incidents": len(self.incidents.get_active_incidents()),
            "total_incidents": len(self.incidents.get_all_incidents()),
            "maintenance_windows": len(self.maintenance.all()),
            "scheduler": self.scheduler.get_stats(),
            "errors": self.errors.get_stats(),
        }


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_engine: Optional[UptimeEngine] = None


def get_uptime_engine(config: Optional[MonitorConfig] = None) -> UptimeEngine:
    """Get global uptime engine instance."""
    global _engine
    if _engine is None:
        _engine = UptimeEngine(config)
    return _engine


async def init_uptime_engine(config: Optional[MonitorConfig] = None) -> UptimeEngine:
    """Initialize and start the global uptime engine."""
    engine = get_uptime_engine(config)
    await engine.start()
    return engine


async def shutdown_uptime_engine() -> None:
    """Stop and drop the global uptime engine."""
    global _engine
    if _engine:
        await _engine.stop()
        _engine = None
