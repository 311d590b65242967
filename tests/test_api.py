"""Tests for the FastAPI status routes."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from uptime_core.api.status_routes import create_app
from uptime_core.core.models import IncidentSeverity

PREFIX = "/api/monitoring"


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


@pytest.fixture
def seeded(engine, make_check, make_result, clock):
    """Engine with two checks, one of them in an open incident."""
    engine.register_check(make_check("api-health", critical=True))
    engine.register_check(make_check("portfolio-api"))

    async def seed():
        for _ in range(3):
            clock.advance(30)
            await engine.process_result(make_result("api-health", False))
            await engine.process_result(make_result("portfolio-api", True))

    asyncio.run(seed())
    return engine


class TestStatusEndpoints:

    def test_status_snapshot(self, seeded, client):
        response = client.get(f"{PREFIX}/status")
        assert response.status_code == 200

        data = response.json()
        assert data["overallStatus"] == "major_outage"
        services = {s["id"]: s for s in data["services"]}
        assert services["api-health"]["status"] == "major_outage"
        assert services["portfolio-api"]["status"] == "operational"
        assert services["portfolio-api"]["responseTime"] == 120.0
        assert len(data["incidents"]) == 1

    def test_checks_and_results(self, seeded, client):
        checks = client.get(f"{PREFIX}/checks").json()
        assert [c["id"] for c in checks] == ["api-health", "portfolio-api"]

        results = client.get(f"{PREFIX}/checks/api-health/results", params={"limit": 2}).json()
        assert len(results) == 2
        assert results[-1]["success"] is False

        assert client.get(f"{PREFIX}/checks/missing/results").status_code == 404

    def test_metrics(self, seeded, client):
        all_metrics = client.get(f"{PREFIX}/metrics").json()
        assert all_metrics["api-health"]["uptime"] == 0.0
        assert all_metrics["portfolio-api"]["uptime"] == 100.0

        single = client.get(f"{PREFIX}/metrics/portfolio-api").json()
        assert single["total_checks"] == 3
        assert client.get(f"{PREFIX}/metrics/missing").status_code == 404

    def test_stats(self, seeded, client):
        stats = client.get(f"{PREFIX}/stats").json()
        assert stats["checks"] == 2
        assert stats["active_incidents"] == 1


class TestIncidentEndpoints:

    def test_list_and_get(self, seeded, client):
        incidents = client.get(f"{PREFIX}/incidents").json()
        assert len(incidents) == 1
        incident_id = incidents[0]["id"]

        assert client.get(f"{PREFIX}/incidents", params={"active": True}).json()[0]["id"] == incident_id
        detail = client.get(f"{PREFIX}/incidents/{incident_id}").json()
        assert detail["severity"] == "critical"
        assert detail["auto_created"] is True
        assert client.get(f"{PREFIX}/incidents/incident_missing").status_code == 404

    def test_create_update_resolve(self, engine, client):
        created = client.post(f"{PREFIX}/incidents", json={
            "title": "Checkout slow",
            "severity": "high",
            "affected_services": ["portfolio-api"],
        })
        assert created.status_code == 201
        incident_id = created.json()["id"]
        assert engine.get_incident(incident_id).severity is IncidentSeverity.HIGH

        updated = client.post(f"{PREFIX}/incidents/{incident_id}/updates", json={
            "status": "identified",
            "message": "Cache node down",
            "author": "ops",
        })
        assert updated.status_code == 200
        assert updated.json()["status"] == "identified"
        assert updated.json()["timeline"][-1]["message"] == "Cache node down"

        resolved = client.post(f"{PREFIX}/incidents/{incident_id}/resolve", json={"resolution": "Node replaced"})
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"
        assert resolved.json()["resolution"] == "Node replaced"

        again = client.post(f"{PREFIX}/incidents/{incident_id}/updates", json={
            "status": "monitoring",
            "message": "late",
        })
        assert again.status_code == 409

    def test_validation_errors(self, client):
        assert client.post(f"{PREFIX}/incidents", json={"title": ""}).status_code == 422
        assert client.post(f"{PREFIX}/incidents", json={"title": "x", "severity": "apocalyptic"}).status_code == 422

    def test_update_unknown_incident(self, client):
        response = client.post(f"{PREFIX}/incidents/incident_missing/updates", json={
            "status": "identified",
            "message": "?",
        })
        assert response.status_code == 404


class TestMaintenanceEndpoints:

    def test_schedule_and_transition(self, engine, client, clock):
        created = client.post(f"{PREFIX}/maintenance", json={
            "name": "Database upgrade",
            "start_time": clock.now() - 60,
            "end_time": clock.now() + 600,
            "affected_services": ["database-health"],
        })
        assert created.status_code == 201
        window_id = created.json()["id"]
        assert created.json()["status"] == "scheduled"

        started = client.post(f"{PREFIX}/maintenance/{window_id}/start")
        assert started.status_code == 200
        assert started.json()["status"] == "in_progress"
        assert engine.is_suppressed("database-health") is True

        assert client.post(f"{PREFIX}/maintenance/{window_id}/start").status_code == 409
        assert client.post(f"{PREFIX}/maintenance/{window_id}/complete").json()["status"] == "completed"
        assert engine.is_suppressed("database-health") is False

        listed = client.get(f"{PREFIX}/maintenance").json()
        assert [w["id"] for w in listed] == [window_id]

    def test_errors(self, client, clock):
        backwards = client.post(f"{PREFIX}/maintenance", json={
            "name": "backwards",
            "start_time": clock.now(),
            "end_time": clock.now() - 10,
        })
        assert backwards.status_code == 422
        assert client.post(f"{PREFIX}/maintenance/maintenance_missing/start").status_code == 404
        assert client.post(f"{PREFIX}/maintenance/maintenance_missing/explode").status_code == 400
