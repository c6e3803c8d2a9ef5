"""
Tests for activity logging, timeline, summary and streaks
"""
from datetime import date, timedelta

from fitness_api.database.models import utcnow
from fitness_api.services.activity_service import compute_streaks

WORKOUT = {
    "activity_type": "workout_completed",
    "activity_data": {
        "workout_details": {
            "exercise_id": "ex-1",
            "exercise_name": "Squat",
            "completed_sets": 3,
            "completed_reps": 10,
        },
        "calories_burned": 120,
        "active_minutes": 30,
    },
    "points": 10,
}

MEAL = {
    "activity_type": "meal_logged",
    "activity_data": {"meal_details": {"meal_type": "Lunch", "meal_description": "Chicken & rice"}},
    "points": 5,
}


def _days_ago(days):
    return (utcnow() - timedelta(days=days)).isoformat()


def test_compute_streaks_counts_consecutive_days():
    today = date(2024, 3, 10)
    days = [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3), date(2024, 3, 9), date(2024, 3, 10)]
    assert compute_streaks(days, today=today) == {"current": 2, "max": 3}


def test_compute_streaks_current_requires_recent_activity():
    today = date(2024, 3, 10)
    assert compute_streaks([date(2024, 3, 7), date(2024, 3, 8)], today=today) == {"current": 0, "max": 2}
    assert compute_streaks([date(2024, 3, 8), date(2024, 3, 9)], today=today) == {"current": 2, "max": 2}
    assert compute_streaks([], today=today) == {"current": 0, "max": 0}


def test_compute_streaks_ignores_gaps_and_duplicates():
    today = date(2024, 3, 10)
    days = [date(2024, 3, 10), date(2024, 3, 10), date(2024, 3, 8)]
    assert compute_streaks(days, today=today) == {"current": 1, "max": 1}


def test_log_workout_awards_points(client, user_headers):
    response = client.post("/api/activity/log", json=WORKOUT, headers=user_headers)
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["activity_type"] == "workout_completed"
    assert data["points_earned"] == 10
    assert data["summary"]["total_workouts"] == 1
    assert data["summary"]["total_points"] == 10
    assert data["summary"]["calories_burned"] == 120

    profile = client.get("/api/auth/profile", headers=user_headers).json()["data"]["user"]
    assert profile["total_points"] == 10


def test_log_same_day_reuses_row(client, user_headers):
    first = client.post("/api/activity/log", json=WORKOUT, headers=user_headers).json()["data"]
    second = client.post("/api/activity/log", json=MEAL, headers=user_headers).json()["data"]
    assert first["activity_id"] == second["activity_id"]
    assert second["summary"]["total_meals"] == 1
    assert second["summary"]["total_points"] == 15


def test_log_rejects_unknown_type(client, user_headers):
    response = client.post(
        "/api/activity/log", json={"activity_type": "nap_taken", "activity_data": {}}, headers=user_headers
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_ACTIVITY_TYPE"


def test_admin_logs_for_user(client, user, user_headers, admin_headers):
    response = client.post(f"/api/activity/{user.id}/log", json=MEAL, headers=admin_headers)
    assert response.status_code == 201

    forbidden = client.post(f"/api/activity/{user.id}/log", json=MEAL, headers=user_headers)
    assert forbidden.status_code == 403


def test_timeline_filters_by_type(client, user_headers):
    client.post("/api/activity/log", json={**WORKOUT, "date": _days_ago(2)}, headers=user_headers)
    client.post("/api/activity/log", json={**MEAL, "date": _days_ago(1)}, headers=user_headers)
    client.post("/api/activity/log", json=WORKOUT, headers=user_headers)

    everything = client.get("/api/activity/timeline", headers=user_headers).json()["data"]
    assert everything["pagination"]["total_count"] == 3
    dates = [item["date"] for item in everything["activities"]]
    assert dates == sorted(dates, reverse=True)

    workouts = client.get("/api/activity/timeline", params={"type": "workout"}, headers=user_headers).json()["data"]
    assert workouts["pagination"]["total_count"] == 2
    assert all(item["diet_activity"] is None for item in workouts["activities"])

    paged = client.get("/api/activity/timeline", params={"limit": 2, "page": 2}, headers=user_headers).json()["data"]
    assert len(paged["activities"]) == 1
    assert paged["pagination"]["has_next"] is False
    assert paged["pagination"]["has_prev"] is True


def test_summary_totals_and_streaks(client, user_headers):
    for days in (3, 1, 0):
        client.post("/api/activity/log", json={**WORKOUT, "date": _days_ago(days)}, headers=user_headers)
    client.post("/api/activity/log", json={**MEAL, "date": _days_ago(0)}, headers=user_headers)
    client.post(
        "/api/activity/log",
        json={
            "activity_type": "goal_achieved",
            "activity_data": {"achievement": {"achievement_id": "a1", "achievement_name": "First Week"}},
            "points": 50,
        },
        headers=user_headers,
    )

    response = client.get("/api/activity/summary", params={"period": "week"}, headers=user_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totals"]["total_workouts"] == 3
    assert data["totals"]["total_meals"] == 1
    assert data["totals"]["total_points"] == 85
    assert data["totals"]["active_days"] == 3
    assert data["averages"]["workouts_per_day"] == 1.0
    assert data["averages"]["meals_per_day"] == 0.33
    assert data["averages"]["points_per_day"] == 28.33
    assert data["streaks"]["current_workout_streak"] == 2
    assert data["streaks"]["max_workout_streak"] == 2
    assert data["streaks"]["current_meal_streak"] == 1
    assert data["top_achievements"][0]["achievement_name"] == "First Week"
    assert data["top_achievements"][0]["total_points"] == 50


def test_summary_rejects_bad_period(client, user_headers):
    response = client.get("/api/activity/summary", params={"period": "year"}, headers=user_headers)
    assert response.status_code == 400


def test_update_activity_recomputes_completion(client, user_headers):
    activity_id = client.post("/api/activity/log", json=WORKOUT, headers=user_headers).json()["data"]["activity_id"]

    response = client.put(
        f"/api/activity/{activity_id}",
        json={"workout_activity": {"assigned_workouts": 2}},
        headers=user_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["workout_activity"]["completion_percentage"] == 50

    missing = client.put("/api/activity/not-a-row", json={}, headers=user_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "ACTIVITY_NOT_FOUND"
