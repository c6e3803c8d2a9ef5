"""
Tests for the authentication endpoints
"""
import time
from datetime import timedelta

from fitness_api.database.models import User, utcnow
from fitness_api.middleware.auth import issued_before_password_change
from tests.conftest import PASSWORD, headers_for

REGISTER_BODY = {
    "username": "jane_doe",
    "email": "Jane@Example.com",
    "password": "secret123",
    "confirm_password": "secret123",
    "name": "Jane Doe",
}


def _register(client, **overrides):
    return client.post("/api/auth/register", json={**REGISTER_BODY, **overrides})


def _login(client, email="jane@example.com", password="secret123"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_register_returns_user_and_tokens(client):
    response = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "ok"
    assert body["data"]["user"]["email"] == "jane@example.com"
    assert "password_hash" not in body["data"]["user"]
    assert body["data"]["tokens"]["access_token"]
    assert body["data"]["tokens"]["refresh_token"]


def test_register_duplicate_email(client):
    _register(client)
    response = _register(client, username="someone_else")
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["message"] == "Email address is already registered"
    assert error["code"] == "EMAIL_EXISTS"


def test_register_duplicate_username(client):
    _register(client)
    response = _register(client, email="other@example.com")
    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Username is already taken"


def test_register_validation(client):
    response = _register(client, username="no spaces allowed", confirm_password="different")
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["errors"]


def test_login_success_and_failure(client):
    _register(client)
    response = _login(client)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["last_login"] is not None

    bad = _login(client, password="wrong-password")
    assert bad.status_code == 401
    assert bad.json()["error"]["message"] == "Invalid email or password"

    unknown = _login(client, email="nobody@example.com")
    assert unknown.status_code == 401
    assert unknown.json()["error"]["message"] == "Invalid email or password"


def test_login_rejects_inactive_user(client, make_user):
    make_user(email="inactive@example.com", is_active=False)
    response = _login(client, email="inactive@example.com", password=PASSWORD)
    assert response.status_code == 401


def test_refresh_rotates_and_blacklists(client):
    tokens = _register(client).json()["data"]["tokens"]

    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    new_tokens = response.json()["data"]["tokens"]
    assert new_tokens["refresh_token"] != tokens["refresh_token"]

    reused = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401


def test_refresh_rejects_garbage(client):
    response = client.post("/api/auth/refresh", json={"refresh_token": "not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid token"


def test_logout_blacklists_access_token(client):
    tokens = _register(client).json()["data"]["tokens"]
    headers = _bearer(tokens["access_token"])

    response = client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers)
    assert response.status_code == 200

    profile = client.get("/api/auth/profile", headers=headers)
    assert profile.status_code == 401
    assert profile.json()["error"]["code"] == "AUTHENTICATION_FAILED"

    refresh = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refresh.status_code == 401


def test_missing_and_malformed_authorization(client):
    missing = client.get("/api/auth/profile")
    assert missing.status_code == 401
    assert missing.json()["error"]["message"] == "Authorization header is required"

    malformed = client.get("/api/auth/profile", headers={"Authorization": "Token abc"})
    assert malformed.status_code == 401
    assert malformed.json()["error"]["message"] == (
        'Invalid authorization header format. Expected "Bearer <token>"'
    )


def test_forgot_and_reset_password(client):
    _register(client)

    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    known = client.post("/api/auth/forgot-password", json={"email": "jane@example.com"})
    assert unknown.status_code == known.status_code == 200
    assert unknown.json()["message"] == known.json()["message"] == (
        "If the email exists, a reset link has been sent"
    )

    token = known.json()["data"]["reset_token"]
    reset = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new"})
    assert reset.status_code == 200

    assert _login(client).status_code == 401
    assert _login(client, password="brand-new").status_code == 200

    again = client.post("/api/auth/reset-password", json={"token": token, "password": "another"})
    assert again.status_code == 400


def test_email_verification_flow(client):
    data = _register(client).json()["data"]
    headers = _bearer(data["tokens"]["access_token"])

    response = client.post("/api/auth/verify-email", json={"token": data["verification_token"]})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email_verified"] is True

    resend = client.post("/api/auth/resend-verification", headers=headers)
    assert resend.status_code == 409

    bad = client.post("/api/auth/verify-email", json={"token": "unknown"})
    assert bad.status_code == 400


def test_change_password(client):
    tokens = _register(client).json()["data"]["tokens"]
    headers = _bearer(tokens["access_token"])

    wrong = client.post(
        "/api/auth/change-password",
        json={"current_password": "nope", "new_password": "changed1"},
        headers=headers,
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"]["message"] == "Current password is incorrect"

    response = client.post(
        "/api/auth/change-password",
        json={"current_password": "secret123", "new_password": "changed1"},
        headers=headers,
    )
    assert response.status_code == 200
    assert _login(client, password="changed1").status_code == 200
    assert client.get("/api/auth/profile", headers=headers).status_code == 401


def test_tokens_issued_before_password_change_are_rejected(client, make_user):
    account = make_user()
    headers = headers_for(account)
    assert client.get("/api/auth/profile", headers=headers).status_code == 200

    changed = make_user(password_changed_at=utcnow() + timedelta(minutes=1))
    response = client.get("/api/auth/profile", headers=headers_for(changed))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_FAILED"


def test_issued_before_password_change():
    now = int(time.time())
    user = User(password_changed_at=utcnow())
    assert issued_before_password_change({"iat": now - 10}, user) is True
    assert issued_before_password_change({"iat": now + 1}, user) is False
    assert issued_before_password_change({"iat": now - 10}, User()) is False


def test_profile_update_merges_sections(client):
    tokens = _register(client).json()["data"]["tokens"]
    headers = _bearer(tokens["access_token"])

    client.put("/api/auth/profile", json={"demographics": {"age": 30, "weight_kg": 70}}, headers=headers)
    response = client.put("/api/auth/profile", json={"demographics": {"height_cm": 175}}, headers=headers)
    assert response.status_code == 200
    demographics = response.json()["data"]["user"]["demographics"]
    assert demographics == {"age": 30, "weight_kg": 70, "height_cm": 175}


def test_sessions_listing_and_revocation(client):
    tokens = _register(client).json()["data"]["tokens"]
    _login(client)
    headers = _bearer(tokens["access_token"])

    sessions = client.get("/api/auth/sessions", headers=headers).json()["data"]["sessions"]
    assert len(sessions) == 2
    assert sum(1 for s in sessions if s["is_current"]) == 1

    revoke = client.delete(f"/api/auth/sessions/{sessions[0]['session_id']}", headers=headers)
    assert revoke.status_code == 200

    missing = client.delete("/api/auth/sessions/does-not-exist", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["message"] == "Session not found"


def test_firebase_login_creates_account(client, monkeypatch):
    from fitness_api.routes import auth as auth_routes

    monkeypatch.setattr(
        auth_routes,
        "verify_id_token",
        lambda token: {"uid": "abc", "email": "Fire@Example.com", "name": "Fire User", "email_verified": True},
    )
    first = client.post("/api/auth/firebase", json={"id_token": "token"})
    assert first.status_code == 200
    assert first.json()["data"]["is_new_user"] is True
    assert first.json()["data"]["user"]["email"] == "fire@example.com"

    second = client.post("/api/auth/firebase", json={"id_token": "token"})
    assert second.json()["data"]["is_new_user"] is False


def test_firebase_login_rejects_invalid_token(client, monkeypatch):
    from fitness_api.routes import auth as auth_routes

    monkeypatch.setattr(auth_routes, "verify_id_token", lambda token: None)
    response = client.post("/api/auth/firebase", json={"id_token": "token"})
    assert response.status_code == 401
