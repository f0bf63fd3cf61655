"""
HTTP API tests covering ingestion through alert emission.
"""

import time
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app.main import create_app


def _reading(device_id, value, minutes_ago=1):
    at = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return {"deviceId": device_id, "energyConsumed": value, "timestamp": at.isoformat()}


def test_health(client):
    """Health reports the inbound queue depth."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["queue_depth"] == 0


def test_ingest_accepted(client, unique_id):
    """A valid reading is accepted for asynchronous persistence."""
    response = client.post("/api/v1/ingestions", json=_reading(f"dev-{unique_id}", 2.5))

    assert response.status_code == 201
    assert response.json() == {"status": "accepted"}


def test_ingest_rejects_non_positive_energy(client, unique_id):
    """energyConsumed must be strictly positive."""
    response = client.post("/api/v1/ingestions", json=_reading(f"dev-{unique_id}", 0))

    assert response.status_code == 422


def test_ingest_rejects_missing_device(client):
    """deviceId is required."""
    response = client.post(
        "/api/v1/ingestions",
        json={"energyConsumed": 1.0, "timestamp": datetime.now(timezone.utc).isoformat()},
    )

    assert response.status_code == 422


def test_last_run_before_any_run(client):
    """No report exists until the first aggregation run."""
    response = client.get("/api/v1/usages/last-run")

    assert response.status_code == 404


def test_empty_window_check(client):
    """A check with no telemetry reports an empty window."""
    response = client.post("/api/v1/usages/check")

    assert response.status_code == 200
    assert response.json()["outcome"] == "empty_window"
    assert client.get("/api/v1/usages/last-run").json()["outcome"] == "empty_window"


def test_telemetry_to_alert_flow(client, directory, unique_id):
    """Readings over the owner's threshold produce one alert on the alert topic."""
    owner_id = f"user-{unique_id}"
    directory.add_device(f"A-{unique_id}", owner_id)
    directory.add_device(f"B-{unique_id}", owner_id)
    directory.add_user(owner_id, threshold=10.0, email="owner@example.com")

    client.post("/api/v1/ingestions", json=_reading(f"A-{unique_id}", 4.0))
    client.post("/api/v1/ingestions", json=_reading(f"B-{unique_id}", 9.0, minutes_ago=2))

    time.sleep(0.2)

    report = client.post("/api/v1/usages/check").json()
    assert report["outcome"] == "completed"
    assert report["alerts_emitted"] == 1
    assert report["owner_totals"] == {owner_id: 13.0}

    alerts = client.get("/api/v1/alerts").json()
    assert alerts == [
        {
            "ownerId": owner_id,
            "message": "Energy consumption threshold exceeded",
            "threshold": 10.0,
            "energyConsumed": 13.0,
            "contactAddress": "owner@example.com",
        }
    ]


def test_ingestion_rejected_under_backpressure(settings, redis_client, http_client):
    """Ingestion is refused once the inbound queue passes the reject threshold."""
    settings = settings.model_copy(
        update={"backpressure_queue_threshold": 0, "backpressure_reject_threshold": 0}
    )
    app = create_app(settings, redis_client=redis_client, http_client=http_client)

    with TestClient(app) as client:
        response = client.post("/api/v1/ingestions", json=_reading("d1", 1.0))

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "5"
    assert "ingestion" in response.json()["error"]


def test_ingestion_throttled_before_reject(settings, redis_client, http_client):
    """Between the two thresholds ingestion is throttled, other routes are not."""
    settings = settings.model_copy(
        update={"backpressure_queue_threshold": 0, "backpressure_reject_threshold": 100}
    )
    app = create_app(settings, redis_client=redis_client, http_client=http_client)

    with TestClient(app) as client:
        response = client.post("/api/v1/ingestions", json=_reading("d1", 1.0))
        health = client.get("/health")

    assert response.status_code == 429
    assert "ingestion" in response.json()["error"]
    assert response.json()["pending_events"] == 0
    assert health.status_code == 200


def test_manual_checks_are_not_limited_per_tick(client):
    """Operator-triggered checks run every time, even within one tick."""
    first = client.post("/api/v1/usages/check")
    second = client.post("/api/v1/usages/check")

    assert first.json()["outcome"] == "empty_window"
    assert second.json()["outcome"] == "empty_window"
