"""
Tests for analytics events, engagement, aggregation and workout analytics
"""
from datetime import date, datetime, timedelta

from fitness_api.database.models import utcnow
from fitness_api.database.queries import db_session
from fitness_api.services.analytics_service import AnalyticsService, bucket_start, engagement_score
from tests.conftest import run


def _event(client, user_id, headers, **overrides):
    body = {
        "event_type": "app_interaction",
        "event_name": "screen_view",
        "event_data": {"screen": "home", "duration": 1800000},
        "session_id": "s-1",
    }
    body.update(overrides)
    return client.post(f"/api/analytics/{user_id}/events", json=body, headers=headers)


def test_bucket_start_periods():
    moment = datetime(2024, 5, 16, 13, 45)  # Thursday
    assert bucket_start(moment, "daily") == date(2024, 5, 16)
    assert bucket_start(moment, "weekly") == date(2024, 5, 13)
    assert bucket_start(moment, "monthly") == date(2024, 5, 1)


def test_engagement_score_is_capped():
    assert engagement_score(1800000) == 5.0
    assert engagement_score(36000000 * 20) == 100.0


def test_log_event_requires_admin_and_existing_user(client, user, user_headers, admin_headers):
    created = _event(client, user.id, admin_headers)
    assert created.status_code == 201
    assert created.json()["data"]["event_id"]

    assert _event(client, user.id, user_headers).status_code == 403

    missing = _event(client, "missing-user", admin_headers)
    assert missing.status_code == 404


def test_log_event_validates_type(client, user, admin_headers):
    response = _event(client, user.id, admin_headers, event_type="unknown")
    assert response.status_code == 400


def test_engagement_metrics(client, user, admin_headers):
    _event(client, user.id, admin_headers)
    _event(client, user.id, admin_headers, session_id="s-2", event_data={"screen": "home", "duration": 600000})
    _event(
        client,
        user.id,
        admin_headers,
        event_type="feature_usage",
        event_name="plan_opened",
        event_data={"feature": "workout_plan"},
    )

    response = client.get(f"/api/analytics/{user.id}/engagement", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"]["total_events"] == 3
    assert data["summary"]["unique_sessions"] == 2
    assert data["summary"]["active_days"] == 1
    assert data["feature_usage"][0]["feature"] == "workout_plan"
    assert data["screen_time"] == [{"screen": "home", "total_duration": 2400000.0, "visits": 2}]


def test_engagement_rejects_inverted_range(client, user, admin_headers):
    response = client.get(
        f"/api/analytics/{user.id}/engagement",
        params={"start_date": "2024-02-01T00:00:00", "end_date": "2024-01-01T00:00:00"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_aggregation_real_time_then_stored(client, user, admin_headers):
    _event(client, user.id, admin_headers)
    _event(client, user.id, admin_headers, event_type="api_call", event_name="get_plan", event_data={})
    _event(client, user.id, admin_headers, event_type="error", event_name="crash", event_data={"error_code": "E1"})

    live = client.get(f"/api/analytics/{user.id}/aggregation", headers=admin_headers).json()["data"]
    assert live["is_real_time"] is True
    assert live["summary"]["total_periods"] == 1
    metrics = live["aggregated_data"][0]["metrics"]
    assert metrics["api_calls"] == 1
    assert metrics["errors"] == 1
    assert metrics["session_count"] == 1
    assert metrics["engagement_score"] == 5.0

    stored = client.post(f"/api/analytics/{user.id}/aggregation", headers=admin_headers)
    assert stored.status_code == 200
    assert stored.json()["data"]["total_periods"] == 1

    persisted = client.get(f"/api/analytics/{user.id}/aggregation", headers=admin_headers).json()["data"]
    assert persisted["is_real_time"] is False
    assert persisted["summary"]["total_sessions"] == 1
    assert persisted["summary"]["average_engagement"] == 5.0


def test_performance_metrics(client, user, admin_headers, user_headers):
    for duration, success in ((100, True), (300, False)):
        _event(
            client,
            user.id,
            admin_headers,
            event_type="performance",
            event_name="request",
            event_data={"action": "GET /plans", "duration": duration, "success": success},
        )

    assert client.get("/api/analytics/performance", headers=user_headers).status_code == 403

    data = client.get("/api/analytics/performance", headers=admin_headers).json()["data"]
    api = data["api_metrics"][0]
    assert api["action"] == "GET /plans"
    assert api["avg_duration"] == 200
    assert api["total_calls"] == 2
    assert api["success_rate"] == 50
    assert data["overall"]["failed_requests"] == 1


def test_workout_daily_and_weekly(client, user_headers):
    client.post(
        "/api/activity/log",
        json={
            "activity_type": "workout_completed",
            "activity_data": {
                "workout_details": {
                    "exercise_id": "ex-2",
                    "exercise_name": "Row",
                    "completed_sets": 4,
                    "completed_reps": 12,
                },
                "calories_burned": 200,
                "active_minutes": 40,
            },
        },
        headers=user_headers,
    )

    daily = client.get("/api/analytics/workout/daily", headers=user_headers).json()["data"]
    metrics = daily["performance_metrics"]
    assert metrics["total_workouts"] == 1
    assert metrics["total_sets"] == 4
    assert metrics["total_reps"] == 12
    assert daily["consistency_score"] == round(100 / 7, 2)

    weekly = client.get("/api/analytics/workout/weekly", params={"weeks": 2}, headers=user_headers).json()["data"]
    assert weekly["weeks"] == 2
    assert weekly["workout_streaks"]["current_streak"] == 1
    assert sum(week["total_workouts"] for week in weekly["weekly_stats"]) == 1

    too_many = client.get("/api/analytics/workout/weekly", params={"weeks": 60}, headers=user_headers)
    assert too_many.status_code == 400


def test_purge_drops_events_past_retention(client, user, admin_headers):
    old = (utcnow() - timedelta(days=120)).isoformat()
    _event(client, user.id, admin_headers, timestamp=old)
    _event(client, user.id, admin_headers)

    async def purge():
        async with db_session() as session:
            return await AnalyticsService.purge_expired(session)

    assert run(purge()) == 1
    remaining = client.get(
        f"/api/analytics/{user.id}/engagement",
        params={"start_date": (utcnow() - timedelta(days=365)).isoformat()},
        headers=admin_headers,
    ).json()["data"]
    assert remaining["summary"]["total_events"] == 1
