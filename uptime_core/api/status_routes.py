"""
HTTP status API.

Exposes the engine's status snapshot, metrics, incidents and maintenance
windows as a FastAPI router that can be mounted on any application.

Usage:
    from uptime_core.api.status_routes import create_status_routes
    app.include_router(create_status_routes(engine), prefix="/api/monitoring")
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from uptime_core.core.error_handling import ConfigurationError
from uptime_core.core.models import IncidentUpdate, MaintenanceWindow
from uptime_core.monitoring.engine import UptimeEngine

logger = logging.getLogger(__name__)

_SEVERITY_PATTERN = "^(low|medium|high|critical)$"
_INCIDENT_STATUS_PATTERN = "^(investigating|identified|monitoring|resolved)$"
_UPDATE_KIND_PATTERN = "^(status_change|update|resolution|postmortem)$"


# =============================================================================
# REQUEST MODELS
# =============================================================================

class IncidentCreateRequest(BaseModel):
    """Manual incident."""
    title: str = Field(min_length=1)
    description: str = ""
    severity: str = Field(default="medium", pattern=_SEVERITY_PATTERN)
    affected_services: List[str] = Field(default_factory=list)
    created_by: str = Field(default="operator")
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IncidentUpdateRequest(BaseModel):
    """Timeline entry appended to an incident."""
    status: str = Field(pattern=_INCIDENT_STATUS_PATTERN)
    message: str = Field(min_length=1)
    author: str = Field(default="operator")
    kind: str = Field(default="update", pattern=_UPDATE_KIND_PATTERN)
    assigned_to: Optional[str] = None


class IncidentResolveRequest(BaseModel):
    resolved_by: str = Field(default="operator")
    resolution: str = Field(default="Resolved")


class MaintenanceRequest(BaseModel):
    """Planned maintenance window."""
    name: str = Field(min_length=1)
    start_time: float
    end_time: float
    affected_services: List[str] = Field(default_factory=list)
    description: str = ""
    created_by: str = Field(default="operator")
    notifications: bool = True


# =============================================================================
# ROUTES
# =============================================================================

def create_status_routes(engine: UptimeEngine) -> APIRouter:
    """
    Create FastAPI routes for the status API.

    Unknown check, incident and window ids map to 404; an update to a
    resolved incident or an invalid maintenance transition maps to 409.
    """
    router = APIRouter(tags=["monitoring"])

    @router.get("/status")
    async def get_status():
        """Aggregated status page snapshot."""
        return engine.status_page().to_dict()

    @router.get("/stats")
    async def get_stats():
        return engine.get_stats()

    # -------------------------------------------------------------------------
    # Checks and metrics
    # -------------------------------------------------------------------------

    @router.get("/checks")
    async def list_checks():
        return [check.to_dict() for check in engine.get_all_checks()]

    @router.get("/checks/{check_id}/results")
    async def get_check_results(check_id: str, limit: int = Query(default=50, ge=1, le=1000)):
        if engine.get_check(check_id) is None:
            raise HTTPException(status_code=404, detail=f"Check not found: {check_id}")
        return [r.to_dict() for r in engine.recent_results(check_id, limit)]

    @router.post("/checks/{check_id}/run")
    async def run_check(check_id: str):
        """Fire one probe out of schedule."""
        if engine.get_check(check_id) is None:
            raise HTTPException(status_code=404, detail=f"Check not found: {check_id}")
        return {"check_id": check_id, "triggered": engine.run_check_now(check_id)}

    @router.get("/metrics")
    async def get_all_metrics():
        return {check_id: m.to_dict() for check_id, m in engine.get_all_metrics().items()}

    @router.get("/metrics/{check_id}")
    async def get_metrics(check_id: str):
        metrics = engine.metrics_for(check_id)
        if metrics is None:
            raise HTTPException(status_code=404, detail=f"Check not found: {check_id}")
        return metrics.to_dict()

    # -------------------------------------------------------------------------
    # Incidents
    # -------------------------------------------------------------------------

    @router.get("/incidents")
    async def list_incidents(active: bool = False):
        incidents = engine.get_active_incidents() if active else engine.get_all_incidents()
        return [i.to_dict() for i in incidents]

    @router.post("/incidents", status_code=201)
    async def create_incident(request: IncidentCreateRequest):
        incident = await engine.create_incident(**request.model_dump())
        return incident.to_dict()

    @router.get("/incidents/{incident_id}")
    async def get_incident(incident_id: str):
        incident = engine.get_incident(incident_id)
        if incident is None:
            raise HTTPException(status_code=404, detail=f"Incident not found: {incident_id}")
        return incident.to_dict()

    @router.post("/incidents/{incident_id}/updates")
    async def add_incident_update(incident_id: str, request: IncidentUpdateRequest):
        if engine.get_incident(incident_id) is None:
            raise HTTPException(status_code=404, detail=f"Incident not found: {incident_id}")
        if not await engine.update_incident(incident_id, IncidentUpdate.from_dict(request.model_dump())):
            raise HTTPException(status_code=409, detail=f"Incident already resolved: {incident_id}")
        return engine.get_incident(incident_id).to_dict()

    @router.post("/incidents/{incident_id}/resolve")
    async def resolve_incident(incident_id: str, request: Optional[IncidentResolveRequest] = None):
        if engine.get_incident(incident_id) is None:
            raise HTTPException(status_code=404, detail=f"Incident not found: {incident_id}")
        request = request or IncidentResolveRequest()
        if not await engine.resolve_incident(incident_id, request.resolved_by, request.resolution):
            raise HTTPException(status_code=409, detail=f"Incident already resolved: {incident_id}")
        return engine.get_incident(incident_id).to_dict()

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @router.get("/maintenance")
    async def list_maintenance():
        return [w.to_dict() for w in engine.get_maintenance_windows()]

    @router.post("/maintenance", status_code=201)
    async def schedule_maintenance(request: MaintenanceRequest):
        try:
            window_id = engine.schedule_maintenance_window(MaintenanceWindow(**request.model_dump()))
        except ConfigurationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return engine.maintenance.get(window_id).to_dict()

    @router.post("/maintenance/{window_id}/{action}")
    async def transition_maintenance(window_id: str, action: str):
        handlers = {
            "start": engine.start_maintenance,
            "complete": engine.complete_maintenance,
            "cancel": engine.cancel_maintenance,
        }
        if action not in handlers:
            raise HTTPException(status_code=400, detail=f"Unknown maintenance action: {action}")
        window = engine.maintenance.get(window_id)
        if window is None:
            raise HTTPException(status_code=404, detail=f"Maintenance window not found: {window_id}")
        if not handlers[action](window_id):
            raise HTTPException(
                status_code=409,
                detail=f"Cannot {action} maintenance window in status {window.status.value}",
            )
        return window.to_dict()

    return router


def create_app(engine: UptimeEngine, prefix: str = "/api/monitoring") -> FastAPI:
    """Standalone application serving the status API."""
    from uptime_core import __version__

    app = FastAPI(title="Uptime Core", version=__version__)
    app.include_router(create_status_routes(engine), prefix=prefix)
    return app


__all__ = [
    "IncidentCreateRequest",
    "IncidentUpdateRequest",
    "IncidentResolveRequest",
    "MaintenanceRequest",
    "create_status_routes",
    "create_app",
]
