"""
Tests for the user management endpoints
"""
from fitness_api.database.models import Branch
from fitness_api.database.queries import db_session
from tests.conftest import headers_for, run


async def _insert_branch(name="Downtown Gym", city="Istanbul", machines=None) -> str:
    async with db_session() as session:
        branch = Branch(name=name, city=city, is_active=True, machines=machines or [])
        session.add(branch)
        await session.commit()
        return branch.id


def test_admin_only_routes_reject_regular_users(client, user, user_headers):
    response = client.get(f"/api/users/{user.id}", headers=user_headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["code"] == "INSUFFICIENT_PERMISSIONS"
    assert error["details"] == {"required": ["admin"], "current": "user"}


def test_create_user_and_duplicates(client, admin_headers):
    body = {
        "username": "new_member",
        "email": "member@example.com",
        "password": "secret123",
        "name": "New Member",
        "demographics": {"age": 25, "gender": "Female"},
    }
    created = client.post("/api/users/create", json=body, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["data"]["user"]["demographics"] == {"age": 25, "gender": "Female"}

    duplicate = client.post("/api/users/create", json=body, headers=admin_headers)
    assert duplicate.status_code == 409


def test_get_user_not_found(client, admin_headers):
    response = client.get("/api/users/missing-id", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "USER_NOT_FOUND"


def test_search_users(client, make_user, admin_headers):
    make_user(name="Alice Runner", demographics={"gender": "Female"}, fitness_profile={"level": "advanced"})
    make_user(name="Bob Lifter", demographics={"gender": "Male"}, fitness_profile={"level": "beginner"})

    by_text = client.get("/api/users/search", params={"query": "alice"}, headers=admin_headers).json()["data"]
    assert [u["name"] for u in by_text["users"]] == ["Alice Runner"]

    by_gender = client.get("/api/users/search", params={"gender": "Male"}, headers=admin_headers).json()["data"]
    assert [u["name"] for u in by_gender["users"]] == ["Bob Lifter"]

    paged = client.get("/api/users/search", params={"limit": 1, "page": 2}, headers=admin_headers).json()["data"]
    assert len(paged["users"]) == 1
    assert paged["pagination"]["current_page"] == 2
    assert paged["pagination"]["has_prev"] is True
    assert paged["pagination"]["total_count"] == 3

    by_level = client.get(
        "/api/users/search", params={"fitness_level": "advanced", "gender": "Female"}, headers=admin_headers
    ).json()["data"]
    assert [u["name"] for u in by_level["users"]] == ["Alice Runner"]
    assert by_level["pagination"]["total_count"] == 1


def test_search_users_by_branch_city(client, make_user, admin_headers):
    make_user(name="Cem Swimmer", branches=[{"branch_id": "b1", "branch_name": "Istanbul Central"}])
    make_user(name="Dana Walker")

    found = client.get("/api/users/search", params={"city": "istanbul"}, headers=admin_headers).json()["data"]
    assert [u["name"] for u in found["users"]] == ["Cem Swimmer"]
    assert found["pagination"]["total_count"] == 1


def test_status_update_and_account_deletion(client, user, admin_headers, user_headers):
    response = client.put(f"/api/users/{user.id}/status", json={"is_active": False}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False

    # Inactive users can no longer authenticate
    assert client.get("/api/auth/profile", headers=user_headers).status_code == 401

    deleted = client.delete(f"/api/users/{user.id}/account", headers=admin_headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/users/{user.id}", headers=admin_headers).status_code == 404


def test_branch_membership(client, user, admin_headers, user_headers):
    branch_id = run(_insert_branch())

    joined = client.post(f"/api/users/{user.id}/branches/join", json={"branch_id": branch_id}, headers=admin_headers)
    assert joined.status_code == 200
    assert joined.json()["data"]["branch"]["branch_name"] == "Downtown Gym"

    again = client.post(f"/api/users/{user.id}/branches/join", json={"branch_id": branch_id}, headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_MEMBER"

    missing = client.post(f"/api/users/{user.id}/branches/join", json={"branch_id": "nope"}, headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "BRANCH_NOT_FOUND"

    own = client.get(f"/api/users/{user.id}/branches", headers=user_headers).json()["data"]
    assert own["total"] == 1

    left = client.delete(f"/api/users/{user.id}/branches/{branch_id}", headers=admin_headers)
    assert left.status_code == 200
    not_member = client.delete(f"/api/users/{user.id}/branches/{branch_id}", headers=admin_headers)
    assert not_member.json()["error"]["code"] == "NOT_MEMBER"


def test_ownership_is_enforced(client, user, make_user):
    other = make_user()
    response = client.get(f"/api/users/{user.id}/privacy", headers=headers_for(other))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "OWNERSHIP_OR_ADMIN_REQUIRED"


def test_body_metrics_update_and_history(client, user, user_headers):
    first = client.put(
        f"/api/users/{user.id}/body-metrics",
        json={"demographics": {"weight_kg": 80, "height_cm": 180}, "body_composition": {"body_fat_percentage": 20}},
        headers=user_headers,
    )
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["bmi"] == 24.69
    assert data["bmi_category"] == "Normal weight"
    # 30 year old male: 88.362 + 13.397*80 + 4.799*180 - 5.677*30
    assert data["body_composition"]["basal_metabolic_rate_kcal"] == 1854

    client.put(
        f"/api/users/{user.id}/body-metrics",
        json={"demographics": {"weight_kg": 78}, "body_composition": {"body_fat_percentage": 18}},
        headers=user_headers,
    )
    history = client.get(f"/api/users/{user.id}/body-metrics/history", headers=user_headers).json()["data"]
    assert history["pagination"]["total_count"] == 2
    progress = history["progress"]
    assert progress["weight_change"] == -2
    assert progress["body_fat_change"] == -2


def test_privacy_and_export(client, user, user_headers, admin_headers):
    privacy = client.get(f"/api/users/{user.id}/privacy", headers=user_headers).json()["data"]["privacy_settings"]
    assert privacy["profile_visibility"] == "friends"
    assert privacy["allow_health_data_export"] is True

    export = client.get(f"/api/users/{user.id}/health-data/export", headers=admin_headers)
    assert export.status_code == 200
    assert export.json()["data"]["user_info"]["username"] == user.username

    client.put(f"/api/users/{user.id}/privacy", json={"allow_health_data_export": False}, headers=user_headers)
    denied = client.get(f"/api/users/{user.id}/health-data/export", headers=admin_headers)
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "EXPORT_NOT_ALLOWED"


def test_export_requires_verified_email(client, user, make_user):
    unverified_admin = make_user(role="admin")
    response = client.get(f"/api/users/{user.id}/health-data/export", headers=headers_for(unverified_admin))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "EMAIL_VERIFICATION_REQUIRED"


def test_preferences_defaults_and_update(client, user, user_headers):
    defaults = client.get(f"/api/users/{user.id}/preferences", headers=user_headers).json()["data"]["preferences"]
    assert "notifications" in defaults

    response = client.put(
        f"/api/users/{user.id}/preferences",
        json={"workout": {"default_rest_time": 90}, "app_configuration": {"theme": "dark"}},
        headers=user_headers,
    )
    assert response.status_code == 200
    preferences = response.json()["data"]["preferences"]
    assert preferences["workout"]["default_rest_time"] == 90
    assert preferences["app_configuration"]["theme"] == "dark"
    assert preferences["notifications"] == defaults["notifications"]

    invalid = client.put(
        f"/api/users/{user.id}/preferences", json={"workout": {"default_rest_time": 5}}, headers=user_headers
    )
    assert invalid.status_code == 400


def test_device_tokens(client, user, user_headers):
    body = {"token": "push-token-1", "platform": "ios", "device_id": "iphone"}
    first = client.post(f"/api/users/{user.id}/devices", json=body, headers=user_headers)
    assert first.status_code == 201

    replaced = client.post(
        f"/api/users/{user.id}/devices", json={**body, "token": "push-token-2"}, headers=user_headers
    )
    token_id = replaced.json()["data"]["device"]["id"]

    removed = client.delete(f"/api/users/{user.id}/devices/{token_id}", headers=user_headers)
    assert removed.status_code == 200
    assert removed.json()["data"]["remaining_devices"] == 0

    missing = client.delete(f"/api/users/{user.id}/devices/{token_id}", headers=user_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "TOKEN_NOT_FOUND"
