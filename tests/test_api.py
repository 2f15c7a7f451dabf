import pytest
from fastapi.testclient import TestClient

from app.main import create_application
from app.schemas.health import HealthCheckResult, HealthStatus
from app.services.health_monitor import HealthMonitor


@pytest.fixture
def check_state() -> dict:
    return {"status": HealthStatus.HEALTHY}


@pytest.fixture
def monitor(clock, check_state) -> HealthMonitor:
    async def storefront():
        return HealthCheckResult(status=check_state["status"], message="storefront")

    monitor = HealthMonitor(interval=60.0, clock=clock)
    monitor.add_check("storefront", storefront)
    return monitor


@pytest.fixture
def app(settings, service, monitor):
    app = create_application(settings, error_service=service, health_monitor=monitor)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("Database connection lost")

    return app


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


def test_root(client):
    assert client.get("/").json() == {"name": "Eden Parfum API", "version": "1.0.0", "docs": None}


def test_response_headers(client):
    response = client.get("/api/health/live", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Response-Time"].endswith("ms")
    assert response.json()["alive"] is True


# ==================== HEALTH ====================


def test_basic_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "healthy"
    assert body["environment"] == "development"


def test_detailed_status(client):
    response = client.get("/api/health/status")
    assert response.status_code == 200
    body = response.json()
    assert body["health"]["overall"] == "healthy"
    assert body["health"]["checks"]["storefront"]["message"] == "storefront"
    assert body["monitoring"]["checks_count"] == 1
    assert "memory" in body["system"]


def test_readiness_follows_overall_health(client, check_state):
    assert client.get("/api/health/ready").status_code == 200

    check_state["status"] = HealthStatus.CRITICAL
    report = client.post("/api/health/check").json()
    assert report["overall"] == "critical"

    response = client.get("/api/health/ready")
    assert response.status_code == 503
    assert response.json()["ready"] is False
    assert client.get("/api/health/status").status_code == 503


def test_history_and_trends(client):
    for _ in range(3):
        client.post("/api/health/check")

    history = client.get("/api/health/history", params={"limit": 2}).json()
    assert len(history) == 2
    assert history[-1]["summary"]["health_percentage"] == 100

    trends = client.get("/api/health/trends").json()
    assert trends["trend"] == "stable"
    assert trends["average_health"] == 100

    assert client.get("/api/health/history", params={"limit": 0}).status_code == 422


def test_health_metrics(client):
    body = client.get("/api/health/metrics").json()
    assert body["health_overall_status"] == 1
    assert body["health_checks_total"] == 1
    assert body["system_memory_total_mb"] > 0


# ==================== MONITORING ====================


def test_test_notification_is_recorded(client):
    response = client.post("/api/monitoring/test-notification")
    assert response.status_code == 200
    error_id = response.json()["error_id"]

    error = client.get(f"/api/monitoring/errors/{error_id}").json()
    assert error["severity"] == "critical"
    assert error["type"] == "test_error"
    assert error["context"]["source"] == "manual_test"

    listing = client.get("/api/monitoring/errors", params={"severity": "critical"}).json()
    assert listing["count"] == 1
    assert listing["errors"][0]["id"] == error_id


def test_test_notification_reaches_channels(app, mailer, webhooks):
    with TestClient(app) as client:
        client.post("/api/monitoring/test-notification")

    # Shutdown waits for in-flight dispatches
    assert len(mailer.sent) == 1
    assert len(webhooks.requests) == 3


def test_unknown_error_id_is_404_and_reported(client, service):
    response = client.get("/api/monitoring/errors/ERR_missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Error with ID 'ERR_missing' not found"

    record = service.error_history[-1]
    assert record.name == "NotFoundError"
    assert record.severity == "medium"
    assert record.context.url == "/api/monitoring/errors/ERR_missing"
    assert record.context.method == "GET"


def test_unhandled_exception_is_reported_and_hidden(client, service):
    response = client.get("/boom")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal Server Error"}

    record = service.error_history[-1]
    assert record.name == "RuntimeError"
    assert record.severity == "critical"
    assert record.context.status_code == 500
    assert record.context.url == "/boom"


def test_dashboard(client):
    client.get("/boom")
    client.get("/boom")

    body = client.get("/api/monitoring/dashboard").json()
    assert body["total_errors"] == 2
    assert body["by_severity"] == {"critical": 2}
    assert body["top_errors"][0]["count"] == 2
    assert body["time_range_label"] == "Last Hour"

    assert client.get("/api/monitoring/dashboard", params={"time_range": 0}).status_code == 422


def test_stats_ranges(client):
    client.get("/boom")
    body = client.get("/api/monitoring/stats").json()
    assert set(body) == {"last_hour", "last_6_hours", "last_24_hours", "last_7_days"}
    assert body["last_7_days"]["errors"]["total"] == 1


def test_config_hides_secrets(client):
    body = client.get("/api/monitoring/config").json()
    assert body["active_channels"] == ["email", "slack", "discord", "webhook"]
    assert body["limits"]["cooldown_seconds"] == 300
    assert "hooks.slack.test" not in str(body)


def test_monitoring_health(client):
    response = client.get("/api/monitoring/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_time_range_beyond_retention_is_rejected(client, service):
    response = client.get("/api/monitoring/errors", params={"time_range": 8 * 86_400_000})
    assert response.status_code == 422
    assert response.json()["detail"] == "time_range exceeds error retention"
    assert service.error_history[-1].severity == "high"


def test_default_monitor_checks_mounted_routes(settings, service):
    app = create_application(settings, error_service=service)
    assert "api_endpoints" in app.state.health_monitor.checks

    with TestClient(app) as client:
        report = client.post("/api/health/check").json()

    endpoints = report["checks"]["api_endpoints"]
    assert endpoints["status"] == "healthy"
    assert endpoints["metrics"]["missing"] == []
