"""
Tests for the device session endpoints
"""
from datetime import timedelta

from sqlalchemy import update

from fitness_api.database.models import UserSession, utcnow
from fitness_api.database.queries import db_session
from tests.conftest import run

SESSION_BODY = {
    "device_info": {
        "device_type": "Mobile Phone",
        "os": "iOS 17",
        "app_version": "2.4.0",
        "user_agent": "FitnessApp/2.4.0",
    },
    "network_info": {"ip_address": "203.0.113.7", "location": {"city": "Izmir", "country": "TR"}},
}


async def _expire(session_id):
    async with db_session() as session:
        await session.execute(
            update(UserSession)
            .where(UserSession.id == session_id)
            .values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await session.commit()


def _create(client, user_id, headers, **overrides):
    return client.post(f"/api/sessions/{user_id}/create", json={**SESSION_BODY, **overrides}, headers=headers)


def test_create_session(client, user, admin_headers):
    response = _create(client, user.id, admin_headers, expiration_hours=2)
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["session_token"]
    assert data["is_active"] is True
    assert data["network_info"]["ip_address"] == "203.0.113.7"


def test_create_session_requires_admin(client, user, user_headers):
    assert _create(client, user.id, user_headers).status_code == 403


def test_create_session_validates_ip(client, user, admin_headers):
    response = _create(client, user.id, admin_headers, network_info={"ip_address": "not-an-ip"})
    assert response.status_code == 400


def test_active_session_limit(client, user, admin_headers):
    ids = [_create(client, user.id, admin_headers).json()["data"]["id"] for _ in range(6)]

    history = client.get(f"/api/sessions/{user.id}/history", headers=admin_headers).json()["data"]
    assert history["statistics"]["total_sessions"] == 6
    assert history["statistics"]["active_sessions"] == 5

    inactive = client.get(
        f"/api/sessions/{user.id}/history", params={"is_active": "false"}, headers=admin_headers
    ).json()["data"]
    assert [s["id"] for s in inactive["sessions"]] == [ids[0]]


def test_update_session(client, user, admin_headers):
    session_id = _create(client, user.id, admin_headers).json()["data"]["id"]

    response = client.put(
        f"/api/sessions/{session_id}/update",
        json={"network_info": {"ip_address": "198.51.100.2"}},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["network_info"]["ip_address"] == "198.51.100.2"
    assert data["device_info"]["os"] == "iOS 17"


def test_update_expired_session(client, user, admin_headers):
    session_id = _create(client, user.id, admin_headers).json()["data"]["id"]
    run(_expire(session_id))

    response = client.put(f"/api/sessions/{session_id}/update", json={}, headers=admin_headers)
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "SESSION_EXPIRED"


def test_update_and_terminate_missing_session(client, admin_headers):
    assert client.put("/api/sessions/missing/update", json={}, headers=admin_headers).status_code == 404
    response = client.delete("/api/sessions/missing", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SESSION_NOT_FOUND"


def test_terminate_session(client, user, admin_headers):
    session_id = _create(client, user.id, admin_headers).json()["data"]["id"]
    response = client.delete(f"/api/sessions/{session_id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False

    again = client.put(f"/api/sessions/{session_id}/update", json={}, headers=admin_headers)
    assert again.status_code == 401


def test_history_filters_device_type(client, user, admin_headers, user_headers):
    _create(client, user.id, admin_headers)
    tablet = {**SESSION_BODY["device_info"], "device_type": "Tablet"}
    _create(client, user.id, admin_headers, device_info=tablet)

    mine = client.get("/api/sessions/history", params={"device_type": "tab"}, headers=user_headers).json()["data"]
    assert len(mine["sessions"]) == 1
    assert mine["sessions"][0]["device_info"]["device_type"] == "Tablet"
    assert mine["pagination"]["total_count"] == 1
    assert mine["statistics"]["total_sessions"] == 2

    paged = client.get("/api/sessions/history", params={"limit": 1}, headers=user_headers).json()["data"]
    assert len(paged["sessions"]) == 1
    assert paged["pagination"]["has_next"] is True
