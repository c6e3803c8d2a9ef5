"""
Tests for the health probes
"""
from fitness_api.routes import health as health_routes
from fitness_api.routes.health import overall_status


def test_overall_status():
    assert overall_status({"a": {"status": "healthy"}, "b": {"status": "healthy"}}) == "healthy"
    assert overall_status({"a": {"status": "healthy"}, "b": {"status": "degraded"}}) == "degraded"
    assert overall_status({"a": {"status": "degraded"}, "b": {"status": "unhealthy"}}) == "unhealthy"


def test_health_reports_dependencies(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "test"
    assert set(body["checks"]) == {"database", "cache"}
    assert body["summary"] == {"total": 2, "healthy": 2, "degraded": 0, "unhealthy": 0}


def test_health_unhealthy_cache_returns_503(client, monkeypatch):
    async def broken():
        raise ConnectionError("connection refused")

    monkeypatch.setattr(health_routes, "_cache_probe", broken)
    response = client.get("/health")
    assert response.status_code == 503
    cache = response.json()["checks"]["cache"]
    assert cache["status"] == "unhealthy"
    assert cache["error"] == "connection refused"


def test_readiness_depends_on_database(client, monkeypatch):
    assert client.get("/health/readiness").json()["status"] == "ready"

    async def down():
        return False

    monkeypatch.setattr(health_routes, "_database_probe", down)
    response = client.get("/health/readiness")
    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_liveness_and_root(client):
    assert client.get("/health/liveness").json()["status"] == "alive"
    assert client.get("/healthz").json() == {"status": "ok", "database": "ok"}
    root = client.get("/").json()
    assert root["endpoints"]["auth"] == "/api/auth"
