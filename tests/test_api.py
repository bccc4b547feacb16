"""
test_api.py — HTTP surface tests with FastAPI's TestClient.

Covers:
    • Root and health probes
    • Simulation endpoint (dry run, live, validation errors)
    • Acknowledgment endpoint (first, duplicate, unknown alert)
    • Escalation status and attempt audit trail
    • Settings GET/PUT with propagation to monitor and escalation
    • Monitor start/stop/tick
    • Error envelope shape

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.app.core.container import build_container
from backend.app.escalation.models import Channel, Contact, ContactRole
from backend.app.main import create_app
from backend.app.threat.models import VesselPosition


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

TOHOKU = {"epicenterLat": 38.2, "epicenterLon": 142.8, "magnitude": 8.2}


def _empty_feeds(request: httpx.Request) -> httpx.Response:
    if request.url.host == "www.tsunami.gov":
        return httpx.Response(200, json={"events": []})
    return httpx.Response(200, json={"features": []})


@pytest.fixture
def calls():
    return []


@pytest.fixture
def client(clock, calls):
    def _record(channel):
        async def _send(contact, message):
            calls.append((channel.value, contact.contact_id))
        return _send

    def factory():
        container = build_container(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_empty_feeds)),
            adapters={c: _record(c) for c in Channel},
            timer_factory=clock,
        )
        seen = datetime.now(timezone.utc) - timedelta(minutes=5)
        container.vessels.record(VesselPosition("V001", 35.6, 139.8, seen, "Pacific Star"))
        container.contacts.assign("V001", Contact(
            "C-CAPT", "Capt. Mori", ContactRole.CAPTAIN,
            phone="+81900000001", whatsapp="+81900000001",
        ))
        return container

    with TestClient(create_app(container_factory=factory)) as test_client:
        yield test_client


def _simulate_live(client) -> dict:
    response = client.post("/api/v1/simulation/tsunami", json={**TOHOKU, "sendNotifications": True})
    assert response.status_code == 200
    return response.json()


# ═══════════════════════════════════════════════════════════════════════════
# Root & health
# ═══════════════════════════════════════════════════════════════════════════

class TestRoot:

    def test_root(self, client):
        body = client.get("/").json()
        assert "threat-assessment" in body["modules"]

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness(self, client):
        body = client.get("/health/ready").json()
        assert body["status"] == "ready"
        assert body["monitor"]["running"] is False

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


# ═══════════════════════════════════════════════════════════════════════════
# Simulation
# ═══════════════════════════════════════════════════════════════════════════

class TestSimulationEndpoint:

    def test_dry_run_default(self, client, calls):
        body = client.post("/api/v1/simulation/tsunami", json=TOHOKU).json()
        assert body["dryRun"] is True
        assert body["summary"]["alertsCreated"] == 1
        assert body["affectedVessels"][0]["severity"] == "critical"
        assert calls == []

    def test_live_run_notifies(self, client, calls):
        body = _simulate_live(client)
        assert body["summary"]["notificationsSent"] == 2
        assert sorted(calls) == [("sms", "C-CAPT"), ("whatsapp", "C-CAPT")]

    def test_invalid_coordinate_envelope(self, client):
        response = client.post(
            "/api/v1/simulation/tsunami",
            json={"epicenterLat": 95.0, "epicenterLon": 142.8, "magnitude": 8.0},
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "INVALID_COORDINATE"
        assert error["status"] == 422

    def test_negative_magnitude_envelope(self, client):
        response = client.post(
            "/api/v1/simulation/tsunami", json={**TOHOKU, "magnitude": -2.0},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_PARAMETER"

    def test_unknown_fault_type_rejected(self, client):
        response = client.post(
            "/api/v1/simulation/tsunami", json={**TOHOKU, "faultType": "oblique"},
        )
        assert response.status_code == 422

    def test_missing_magnitude_rejected(self, client):
        response = client.post(
            "/api/v1/simulation/tsunami", json={"epicenterLat": 38.2, "epicenterLon": 142.8},
        )
        assert response.status_code == 422


# ═══════════════════════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════════════════════

class TestAlertEndpoints:

    def test_acknowledge_then_duplicate(self, client):
        alert_id = _simulate_live(client)["alerts"][0]["alertId"]

        first = client.post(
            f"/api/v1/alerts/{alert_id}/acknowledge", json={"acknowledgedBy": "Capt. Mori"},
        ).json()
        assert first["success"] is True
        assert first["alreadyAcknowledged"] is False
        assert first["alert"]["acknowledged"] is True
        assert first["alert"]["acknowledgedBy"] == "Capt. Mori"
        assert first["alert"]["escalationState"] == "acknowledged"

        second = client.post(f"/api/v1/alerts/{alert_id}/acknowledge").json()
        assert second["success"] is True
        assert second["alreadyAcknowledged"] is True
        assert second["alert"]["acknowledgedBy"] == "Capt. Mori"

    def test_escalation_status(self, client):
        alert_id = _simulate_live(client)["alerts"][0]["alertId"]
        client.post(f"/api/v1/alerts/{alert_id}/acknowledge")

        status = client.get(f"/api/v1/alerts/{alert_id}/escalation").json()
        assert status["state"] == "acknowledged"
        assert status["currentStep"] == 1
        assert status["totalSteps"] == 3
        assert status["policyId"] == "tsunami-default"

    def test_attempts(self, client):
        alert_id = _simulate_live(client)["alerts"][0]["alertId"]
        body = client.get(f"/api/v1/alerts/{alert_id}/attempts").json()
        assert body["count"] == 2
        assert {a["channel"] for a in body["attempts"]} == {"sms", "whatsapp"}
        assert all(a["outcome"] == "sent" for a in body["attempts"])

    def test_get_alert(self, client):
        alert_id = _simulate_live(client)["alerts"][0]["alertId"]
        body = client.get(f"/api/v1/alerts/{alert_id}").json()
        assert body["alertId"] == alert_id
        assert body["threat"]["severity"] == "critical"

    @pytest.mark.parametrize("suffix, method", [
        ("/acknowledge", "post"),
        ("/escalation", "get"),
        ("/attempts", "get"),
        ("", "get"),
    ])
    def test_unknown_alert_404(self, client, suffix, method):
        response = getattr(client, method)(f"/api/v1/alerts/ALR-MISSING{suffix}")
        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["path"].startswith("/api/v1/alerts/ALR-MISSING")


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════

class TestSettingsEndpoints:

    def test_get_camel_case(self, client):
        body = client.get("/api/v1/settings").json()
        assert body["version"] == 1
        assert "checkInterval" in body["monitoring"]
        assert "alertLevels" in body

    def test_put_partial_and_propagate_interval(self, client):
        body = client.put("/api/v1/settings", json={"monitoring": {"checkInterval": 120}}).json()
        assert body["version"] == 2
        assert body["monitoring"]["checkInterval"] == 120
        assert client.get("/api/v1/monitor/status").json()["checkInterval"] == 120

    def test_put_invalid_rejected(self, client):
        response = client.put("/api/v1/settings", json={"monitoring": {"checkInterval": 3}})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SETTINGS_VALIDATION_FAILED"
        assert client.get("/api/v1/settings").json()["version"] == 1

    def test_disabled_channel_applies_to_escalation(self, client, calls):
        client.put("/api/v1/settings", json={"notifications": {"sms": {"enabled": False}}})
        body = _simulate_live(client)
        assert body["summary"]["notificationsSent"] == 1
        assert calls == [("whatsapp", "C-CAPT")]


# ═══════════════════════════════════════════════════════════════════════════
# Monitor
# ═══════════════════════════════════════════════════════════════════════════

class TestMonitorEndpoints:

    def test_tick(self, client):
        body = client.post("/api/v1/monitor/tick").json()
        assert body["skipped"] is False
        assert body["failedSources"] == []
        assert body["earthquakesFetched"] == 0
        assert client.get("/api/v1/monitor/status").json()["tickCount"] == 1

    def test_start_stop_idempotent(self, client):
        assert client.post("/api/v1/monitor/start").json()["started"] is True
        assert client.post("/api/v1/monitor/start").json()["started"] is False
        assert client.get("/api/v1/monitor/status").json()["running"] is True
        assert client.post("/api/v1/monitor/stop").json()["stopped"] is True
        assert client.post("/api/v1/monitor/stop").json()["stopped"] is False

    def test_tick_skipped_when_disabled(self, client):
        client.put("/api/v1/settings", json={"monitoring": {"tsunamiMonitoring": False}})
        assert client.post("/api/v1/monitor/tick").json()["skipped"] is True
