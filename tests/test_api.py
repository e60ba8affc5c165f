"""
test_api.py — HTTP routes, health probes and the WebSocket push channel.

The app runs with an in-memory SQLite ward store seeded with the demo
wards, a prediction service that always answers 503 (so the dashboard
serves the local store, status "degraded"), no weather source and no
remote incident endpoint.  Background timers are disabled.

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from monsoon.app.core.config import settings
from monsoon.app.core.database import configure_engine
from monsoon.app.incidents.feed import LocalIncidentStore
from monsoon.app.ingestion.prediction_client import PredictionClient
from monsoon.app.ingestion.weather_service import WeatherService
from monsoon.app.main import create_app
from monsoon.app.realtime.events import Topic
from monsoon.app.services import build_services

from conftest import make_sqlite_engine


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_BACKGROUND_JOBS", False)
    monkeypatch.setattr(settings, "SEED_DEMO_WARDS", True)
    configure_engine(make_sqlite_engine())

    def services_factory():
        return build_services(
            prediction=PredictionClient(
                base_url="http://predict.test/api",
                transport=httpx.MockTransport(lambda request: httpx.Response(503)),
            ),
            weather=WeatherService(openweather_key="", imd_key="", simulation=False),
            incident_store=LocalIncidentStore(str(tmp_path / "incidents.json")),
            incident_url="",
            retry_delay=0,
        )

    with TestClient(create_app(services_factory)) as test_client:
        yield test_client


# ═══════════════════════════════════════════════════════════════════════════
# Root & health
# ═══════════════════════════════════════════════════════════════════════════

class TestRootAndHealth:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["websocket"] == "/ws"
        assert "ward-aggregation" in body["modules"]

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert response.headers["X-Process-Time"].endswith("ms")

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_deep_health_is_degraded(self, client):
        report = client.get("/health").json()
        assert report["status"] == "degraded"
        components = {c["name"]: c for c in report["components"]}
        assert components["ward_store"]["details"]["wards"] == 8
        assert components["prediction_service"]["status"] == "degraded"
        assert components["weather"]["status"] == "degraded"
        assert components["dispatcher"]["status"] == "healthy"

    def test_readiness_serves_while_degraded(self, client):
        assert client.get("/health/ready").status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# Wards
# ═══════════════════════════════════════════════════════════════════════════

class TestWardRoutes:

    def test_list(self, client):
        body = client.get("/api/v1/wards").json()
        assert body["success"] is True
        assert body["count"] == 8
        assert body["data"][0]["name"] == "Connaught Place"

    def test_filters(self, client):
        body = client.get("/api/v1/wards", params={"risk_level": "critical"}).json()
        assert body["count"] == 4
        body = client.get("/api/v1/wards", params={"min_score": 90}).json()
        assert [w["name"] for w in body["data"]] == ["Dwarka", "Greater Kailash"]

    def test_bad_filter_rejected(self, client):
        assert client.get("/api/v1/wards", params={"risk_level": "purple"}).status_code == 422

    def test_statistics(self, client):
        body = client.get("/api/v1/wards/statistics").json()
        assert body["data"]["by_risk_level"] == {"critical": 4, "alert": 2, "safe": 2}
        assert body["data"]["preparedness"]["average"] == 42

    def test_high_risk(self, client):
        body = client.get("/api/v1/wards/high-risk").json()
        assert [w["id"] for w in body["data"]] == ["4", "2", "6", "8", "7", "1"]

    def test_by_zone(self, client):
        body = client.get("/api/v1/wards/zone/South Delhi").json()
        assert [w["name"] for w in body["data"]] == ["Greater Kailash", "Sangam Vihar"]

    def test_get_one(self, client):
        body = client.get("/api/v1/wards/3").json()
        assert body["data"]["name"] == "Greater Kailash"
        assert body["data"]["risk_level"] == "safe"

    def test_get_missing(self, client):
        response = client.get("/api/v1/wards/404")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    def test_create(self, client):
        response = client.post("/api/v1/wards", json={
            "name": "Okhla",
            "zone": "South",
            "forecast_rainfall_3h": 80,
            "failure_threshold": 40,
        })
        assert response.status_code == 201
        ward = response.json()["data"]
        assert ward["id"] == "9"
        assert ward["zone"] == "South Delhi"
        assert (ward["risk_level"], ward["preparedness_score"]) == ("critical", 10)
        assert client.get("/api/v1/wards").json()["count"] == 9

    def test_create_duplicate_id_conflicts(self, client):
        response = client.post("/api/v1/wards", json={"id": "1", "name": "Dup"})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_create_requires_name(self, client):
        assert client.post("/api/v1/wards", json={"zone": "South Delhi"}).status_code == 422

    def test_update_recomputes_risk(self, client):
        response = client.put("/api/v1/wards/5", json={"forecast_rainfall_3h": 60})
        assert response.status_code == 200
        ward = response.json()["data"]
        assert (ward["risk_level"], ward["preparedness_score"]) == ("critical", 12)

    def test_update_half_pair_rejected(self, client):
        response = client.put("/api/v1/wards/5", json={"risk_level": "critical"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_update_missing(self, client):
        assert client.put("/api/v1/wards/404", json={"name": "Nowhere"}).status_code == 404

    def test_delete(self, client):
        assert client.delete("/api/v1/wards/1").status_code == 200
        assert client.delete("/api/v1/wards/1").status_code == 404
        assert client.get("/api/v1/wards").json()["count"] == 7


# ═══════════════════════════════════════════════════════════════════════════
# Dashboard & alerts
# ═══════════════════════════════════════════════════════════════════════════

class TestDashboardRoutes:

    def test_dashboard_from_local_store(self, client):
        data = client.get("/api/v1/dashboard").json()["data"]
        assert data["status"] == "degraded"
        assert data["source"] == "local"
        assert len(data["wards"]) == 8
        assert len(data["markers"]) == 8
        assert data["incidents"] == []
        assert data["infrastructure"]["drainage_stress"][0]["name"] == "Sangam Vihar"
        assert len(data["errors"]) == 2

    def test_forced_refresh_advances_generation(self, client):
        first = client.get("/api/v1/dashboard").json()["data"]["generation"]
        second = client.post("/api/v1/dashboard/refresh").json()["data"]["generation"]
        assert second > first

    def test_alerts(self, client):
        body = client.get("/api/v1/alerts").json()
        alerts = body["data"]
        assert sorted(a["ward_id"] for a in alerts) == ["1", "2", "4", "6", "7", "8"]
        weight = {"critical": 3, "alert": 2, "safe": 1}
        keys = [(-weight[a["risk_level"]], a["preparedness_score"]) for a in alerts]
        assert keys == sorted(keys)
        assert [a["ward_id"] for a in alerts[-2:]] == ["7", "1"]
        assert body["data"][0]["severity"] == "critical"
        assert client.get("/api/v1/alerts", params={"limit": 2}).json()["count"] == 2

    def test_ward_alert(self, client):
        body = client.get("/api/v1/alerts/ward/2").json()
        assert body["count"] == 1
        assert body["data"][0]["ward_id"] == "2"
        assert body["data"][0]["severity"] == "critical"
        assert body["notices"] == []

    def test_ward_alert_for_safe_ward_is_empty(self, client):
        body = client.get("/api/v1/alerts/ward/3").json()
        assert body["count"] == 0
        assert body["data"] == []

    def test_ward_alert_unknown_ward(self, client):
        response = client.get("/api/v1/alerts/ward/404")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_notice_issue_list_dismiss(self, client):
        response = client.post("/api/v1/alerts/notices", json={
            "severity": "high",
            "message": "Heavy rainfall expected in Karol Bagh",
            "ward_ids": ["2"],
            "expected_rainfall_mm": 45,
        })
        assert response.status_code == 201
        notice = response.json()["data"]
        assert notice["id"].startswith("ALT-")
        assert notice["status"] == "active"
        assert notice["expires_at"] > notice["issued_at"]

        listed = client.get("/api/v1/alerts/notices").json()
        assert [n["id"] for n in listed["data"]] == [notice["id"]]
        assert client.get("/api/v1/alerts/notices", params={"ward_id": "6"}).json()["count"] == 0
        ward = client.get("/api/v1/alerts/ward/2").json()
        assert [n["id"] for n in ward["notices"]] == [notice["id"]]

        dismissed = client.delete(f"/api/v1/alerts/notices/{notice['id']}").json()["data"]
        assert dismissed["status"] == "dismissed"
        assert dismissed["dismissed_at"] is not None
        assert client.get("/api/v1/alerts/notices").json()["count"] == 0

    def test_dismiss_unknown_notice(self, client):
        response = client.delete("/api/v1/alerts/notices/ALT-MISSING")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_notice_requires_message(self, client):
        response = client.post("/api/v1/alerts/notices", json={"ward_ids": ["2"]})
        assert response.status_code == 422

    def test_export(self, client):
        response = client.get("/api/v1/dashboard/export")
        assert response.status_code == 200
        assert "delhi-flood-report-" in response.headers["content-disposition"]
        assert response.json()["summary"] == {"total": 8, "critical": 4, "alert": 2, "safe": 2}

    def test_weather_status(self, client):
        data = client.get("/api/v1/dashboard/weather").json()["data"]
        assert data["primary"] == "none"
        assert data["last_run"] is None

    def test_dispatcher_status(self, client):
        data = client.get("/api/v1/dashboard/dispatcher").json()["data"]
        assert data["running"] is False


# ═══════════════════════════════════════════════════════════════════════════
# Incidents
# ═══════════════════════════════════════════════════════════════════════════

class TestIncidentRoutes:

    def test_submit_uses_ward_location(self, client):
        client.get("/api/v1/dashboard")
        response = client.post("/api/v1/incidents", json={"type": "waterlogging", "ward_id": "6"})
        assert response.status_code == 201
        incident = response.json()["data"]
        assert incident["ward_name"] == "Sangam Vihar"
        assert incident["location"]["source"] == "ward"
        assert incident["status"] == "pending"

        listed = client.get("/api/v1/incidents").json()
        assert listed["count"] == 1
        assert listed["data"][0]["id"] == incident["id"]

    def test_submit_with_gps(self, client):
        incident = client.post("/api/v1/incidents", json={
            "type": "pothole", "ward_id": "1", "severity": 3,
            "latitude": 28.632, "longitude": 77.219, "accuracy": 8,
        }).json()["data"]
        assert incident["location"]["source"] == "gps"
        assert incident["severity"] == 3

    @pytest.mark.parametrize("body", [
        {"type": "flood", "ward_id": "1"},
        {"type": "pothole", "ward_id": ""},
        {"type": "pothole", "ward_id": "1", "severity": 5},
    ])
    def test_invalid_reports(self, client, body):
        assert client.post("/api/v1/incidents", json=body).status_code == 422

    def test_incident_export(self, client):
        client.post("/api/v1/incidents", json={"type": "drainage", "ward_id": "2"})
        doc = client.get("/api/v1/incidents/export").json()
        assert len(doc["incidents"]) == 1
        assert doc["summary"]["total"] == 8


# ═══════════════════════════════════════════════════════════════════════════
# WebSocket
# ═══════════════════════════════════════════════════════════════════════════

class TestWebSocket:

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong"}
            ws.send_text('{"event": "ping"}')
            assert ws.receive_json() == {"event": "pong"}

    def test_incident_pushed_to_socket(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong"}
            client.post("/api/v1/incidents", json={"type": "pothole", "ward_id": "3"})
            message = ws.receive_json()
            assert message["event"] == "incident-new"
            assert message["data"]["ward_id"] == "3"

    def test_dashboard_pushed_after_refresh(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong"}
            client.post("/api/v1/dashboard/refresh")
            message = ws.receive_json()
            assert message["event"] == "dashboard"
            assert message["data"]["status"] == "degraded"

    def test_connect_receives_current_view_and_requests_refresh(self, client):
        generation = client.get("/api/v1/dashboard").json()["data"]["generation"]
        bus = client.app.state.services.bus
        with client.websocket_connect("/ws") as ws:
            message = ws.receive_json()
            assert message["event"] == "dashboard"
            assert message["data"]["generation"] == generation
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong"}
            assert bus.published[Topic.RECONNECT] == 1
