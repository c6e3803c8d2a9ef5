"""
Tests for the cross-cutting middleware: errors, request context, CORS,
rate limiting, sanitization and the audit trail
"""
import logging

from starlette.requests import Request

from fitness_api.config import settings
from fitness_api.middleware.audit import redact
from fitness_api.middleware.rate_limit import login_delay
from fitness_api.middleware.sanitization import sanitize_value
from fitness_api.models.schemas import LogActivityRequest
from tests.conftest import run


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "ROUTE_NOT_FOUND"
    assert body["error"]["message"] == "Route GET /api/does-not-exist not found"


def test_correlation_id_and_security_headers(client):
    generated = client.get("/health/liveness")
    assert generated.headers["X-Correlation-ID"]
    assert generated.headers["X-Content-Type-Options"] == "nosniff"
    assert generated.headers["X-Frame-Options"] == "DENY"

    echoed = client.get("/api/does-not-exist", headers={"X-Correlation-ID": "abc-123"})
    assert echoed.headers["X-Correlation-ID"] == "abc-123"
    assert echoed.json()["error"]["correlation_id"] == "abc-123"


def test_cors_preflight(client):
    allowed = client.options(
        "/api/auth/login",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert allowed.status_code == 200
    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3000"

    denied = client.options(
        "/api/auth/login",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"},
    )
    assert "access-control-allow-origin" not in denied.headers


def test_rate_limit_returns_429(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)

    for _ in range(3):
        assert client.post("/api/auth/register", json={}).status_code == 400

    limited = client.post("/api/auth/register", json={})
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) >= 1
    error = limited.json()["error"]
    assert error["code"] == "RATE_LIMIT_EXCEEDED"
    assert error["details"]["limit"] == 3
    assert error["details"]["remaining"] == 0


def test_failed_logins_are_limited(client, monkeypatch, make_user):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    account = make_user()
    monkeypatch.setattr(login_delay, "max_delay", 0)

    for _ in range(5):
        response = client.post("/api/auth/login", json={"email": account.email, "password": "wrong"})
        assert response.status_code == 401

    blocked = client.post("/api/auth/login", json={"email": account.email, "password": "secret123"})
    assert blocked.status_code == 429


def test_progressive_delay_counts_and_clears_failures(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    request = Request({"type": "http", "headers": [], "client": ("10.0.0.7", 5000)})

    for _ in range(3):
        run(login_delay.record_failure(request))
    assert login_delay.failures(request) == 3

    run(login_delay.reset(request))
    assert login_delay.failures(request) == 0


def test_sanitize_value():
    cleaned = sanitize_value(
        {
            "name": "  <b>Jane</b> ",
            "notes": "a & b",
            "email": " jane@example.com ",
            "$where": "1 == 1",
            "profile.role": "admin",
            "tags": ["  x  "],
        }
    )
    assert cleaned == {
        "name": "&lt;b&gt;Jane&lt;/b&gt;",
        "notes": "a &amp; b",
        "email": "jane@example.com",
        "tags": ["x"],
    }


def test_request_bodies_are_sanitized(client, user_headers):
    client.post(
        "/api/activity/log",
        json={
            "activity_type": "meal_logged",
            "activity_data": {"meal_details": {"meal_type": "Dinner", "meal_description": "<i>Soup</i>"}},
        },
        headers=user_headers,
    )
    timeline = client.get("/api/activity/timeline", headers=user_headers).json()["data"]
    meal = timeline["activities"][0]["diet_activity"]["meal_history"][0]
    assert meal["meal_description"] == "&lt;i&gt;Soup&lt;/i&gt;"


def test_nested_free_text_is_escaped_once():
    request = LogActivityRequest(
        activity_type="meal_logged",
        activity_data={"meal_details": {"meal_type": "Lunch", "meal_description": " Fish & chips "}},
    )
    assert request.activity_data.meal_details.meal_description == "Fish &amp; chips"


def test_logged_meal_is_stored_escaped_once(client, user_headers):
    client.post(
        "/api/activity/log",
        json={
            "activity_type": "meal_logged",
            "activity_data": {"meal_details": {"meal_type": "Lunch", "meal_description": "Fish & chips"}},
        },
        headers=user_headers,
    )
    timeline = client.get("/api/activity/timeline", headers=user_headers).json()["data"]
    meal = timeline["activities"][0]["diet_activity"]["meal_history"][0]
    assert meal["meal_description"] == "Fish &amp; chips"


def test_name_pattern_checks_the_unescaped_value(client):
    response = client.post(
        "/api/auth/register",
        json={
            "username": "mary_ob",
            "email": "mary@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
            "name": "Mary O'Brien",
        },
    )
    assert response.status_code == 201
    assert response.json()["data"]["user"]["name"] == "Mary O&#x27;Brien"


def test_redact():
    assert redact({"email": "a@b.c", "password": "x", "nested": [{"token": "t"}]}) == {
        "email": "a@b.c",
        "password": "[REDACTED]",
        "nested": [{"token": "[REDACTED]"}],
    }


def test_audit_event_is_logged(client, caplog):
    caplog.set_level(logging.INFO, logger="fitness_api.audit")
    client.post(
        "/api/auth/register",
        json={
            "username": "audited",
            "email": "audited@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
            "name": "Audited User",
        },
    )
    records = [r for r in caplog.records if r.name == "fitness_api.audit" and r.getMessage().startswith("AUDIT_EVENT")]
    assert len(records) == 1
    audit = records[0].audit
    assert audit["event"] == "auth.register"
    assert audit["status_code"] == 201
    assert audit["success"] is True
    assert audit["request_data"]["password"] == "[REDACTED]"


def test_failed_login_is_audited(client, caplog):
    caplog.set_level(logging.INFO, logger="fitness_api.audit")
    client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope"})
    failures = [r for r in caplog.records if r.getMessage() == "AUTH_FAILURE"]
    assert failures
    assert failures[0].audit["email"] == "ghost@example.com"
