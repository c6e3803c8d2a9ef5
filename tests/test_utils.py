"""
Tests for helpers: body metrics, tokens, the in-memory store and validators
"""
from datetime import date, datetime, timezone

import pytest

from fitness_api.services.cache import InMemoryCache
from fitness_api.services.tokens import (
    extract_bearer_token,
    generate_token_pair,
    parse_expiry,
    verify_access_token,
    verify_refresh_token,
)
from fitness_api.utils.body_metrics import (
    calculate_bmi,
    calculate_bmr,
    calculate_progress,
    get_bmi_category,
    validate_body_metrics,
)
from fitness_api.utils.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from fitness_api.utils.validators import naive_utc, pagination, resolve_date_range, validate_period
from tests.conftest import run


def test_bmi_and_category():
    assert calculate_bmi(70, 175) == 22.86
    assert get_bmi_category(17) == "Underweight"
    assert get_bmi_category(27.5) == "Overweight"
    assert get_bmi_category(31) == "Obesity"
    with pytest.raises(ValueError):
        calculate_bmi(0, 175)


def test_bmr_by_gender():
    assert calculate_bmr(80, 180, 30, "Male") == 1854
    assert calculate_bmr(60, 165, 25, "Female") == 1405
    average = calculate_bmr(70, 170, 40, "Other")
    assert calculate_bmr(70, 170, 40, "Female") < average < calculate_bmr(70, 170, 40, "Male")


def test_progress_between_snapshots():
    previous = {"demographics": {"weight_kg": 80, "bmi": 24.7}, "body_composition": {"body_fat_percentage": 20}}
    current = {"demographics": {"weight_kg": 76, "bmi": 23.5}, "body_composition": {"body_fat_percentage": 18}}
    progress = calculate_progress(current, previous)
    assert progress["weight_change"] == -4
    assert progress["weight_change_percent"] == -5
    assert progress["body_fat_change"] == -2
    assert progress["muscle_mass_change_percent"] == 0


def test_validate_body_metrics_warnings():
    assert validate_body_metrics({"bmi": 22}, {"body_fat_percentage": 20}) == {"is_valid": True, "warnings": []}
    result = validate_body_metrics({"bmi": 42, "weight_kg": 100}, {"skeletal_muscle_mass_kg": 70})
    assert result["is_valid"] is False
    assert len(result["warnings"]) == 2


def test_parse_expiry():
    assert parse_expiry("15m") == 900
    assert parse_expiry("7d") == 604800
    assert parse_expiry("30s") == 30
    with pytest.raises(ValueError):
        parse_expiry("soon")


def test_token_pair_types_are_not_interchangeable():
    tokens = generate_token_pair("u1", "a@example.com", "alice", "user")
    payload = verify_access_token(tokens["access_token"])
    assert payload["user_id"] == "u1"
    assert payload["role"] == "user"
    assert verify_refresh_token(tokens["refresh_token"])["token_id"] == tokens["token_id"]

    with pytest.raises(AuthenticationError):
        verify_access_token(tokens["refresh_token"])


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc") == "abc"
    for header in (None, "", "Bearer", "Basic abc", "Bearer a b"):
        with pytest.raises(AuthenticationError):
            extract_bearer_token(header)


def test_in_memory_cache():
    store = InMemoryCache()

    async def scenario():
        plan = {"name": "PPL", "days": ["push"], "created": date(2024, 1, 1)}
        await store.set("plan:1", plan, ttl=60)
        plan["days"].append("pull")

        cached = await store.get("plan:1")
        assert cached == {"name": "PPL", "days": ["push"], "created": "2024-01-01"}
        cached["days"].append("legs")
        assert (await store.get("plan:1"))["days"] == ["push"]

        assert 0 < await store.ttl("plan:1") <= 60
        assert await store.ttl("missing") == -2
        assert await store.delete("plan:1", "missing") == 1
        assert await store.exists("plan:1") is False

    run(scenario())


def test_validators():
    assert validate_period("week") == "week"
    with pytest.raises(ValidationError):
        validate_period("year")

    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert naive_utc(aware) == datetime(2024, 1, 1, 12, 0)

    start, end = resolve_date_range(None, datetime(2024, 1, 31), 30)
    assert start == datetime(2024, 1, 1)
    with pytest.raises(ValidationError):
        resolve_date_range(datetime(2024, 2, 1), datetime(2024, 1, 1), 30)

    assert pagination(45, 2, 20) == {
        "current_page": 2,
        "total_pages": 3,
        "total_count": 45,
        "has_next": True,
        "has_prev": True,
        "limit": 20,
    }


def test_error_codes():
    assert ConflictError("Taken").code == "CONFLICT"
    assert ConflictError("Taken").status_code == 409
    assert ValidationError("Bad").code == "VALIDATION_ERROR"
    missing = NotFoundError("Workout plan", code="PLAN_NOT_FOUND")
    assert missing.message == "Workout plan not found"
    assert missing.status_code == 404
