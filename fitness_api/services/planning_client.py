"""
HTTP client for the external workout and diet planning services.

Requests go through a circuit breaker and responses are cached in the
key-value store. In mock mode (the default for local runs) built-in plans
are returned instead of calling the remote service. When the breaker is
open or a call fails, a fallback plan derived from the mock is used.
"""
import copy
import hashlib
import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import httpx

from fitness_api.config import settings
from fitness_api.services.cache import get_cache

logger = logging.getLogger(__name__)

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
MEAL_SLOTS = ["Breakfast", "Snack 1", "Lunch", "Snack 2", "Dinner"]

# Wire format of the workout planning service
MOCK_WORKOUT_PLAN: Dict[str, Any] = {
    "planId": "mock-plan-12345",
    "planName": "Push Pull Legs",
    "weeklySchedule": 3,
    "difficultyLevel": "beginner",
    "planDuration": 8,
    "workoutDays": [
        {
            "dayName": "Day 1 - Push",
            "muscleGroup": "Push",
            "estimatedDuration": 60,
            "isRestDay": False,
            "exercises": [
                {"exerciseId": "ex-001", "name": "Bench Press", "description": "Chest compound movement",
                 "sets": 3, "reps": "8-12", "restTime": 90, "muscleGroup": "Chest",
                 "equipment": "Barbell", "difficulty": "beginner"},
                {"exerciseId": "ex-002", "name": "Overhead Press", "description": "Shoulder compound movement",
                 "sets": 3, "reps": "8-12", "restTime": 90, "muscleGroup": "Shoulders",
                 "equipment": "Barbell", "difficulty": "beginner"},
                {"exerciseId": "ex-003", "name": "Tricep Dips", "description": "Tricep isolation movement",
                 "sets": 3, "reps": "10-15", "restTime": 60, "muscleGroup": "Triceps",
                 "equipment": "Bodyweight", "difficulty": "beginner"},
            ],
        },
        {
            "dayName": "Day 2 - Pull",
            "muscleGroup": "Pull",
            "estimatedDuration": 60,
            "isRestDay": False,
            "exercises": [
                {"exerciseId": "ex-004", "name": "Pull-ups", "description": "Back compound movement",
                 "sets": 3, "reps": "5-10", "restTime": 90, "muscleGroup": "Back",
                 "equipment": "Bodyweight", "difficulty": "beginner"},
                {"exerciseId": "ex-005", "name": "Barbell Rows", "description": "Back compound movement",
                 "sets": 3, "reps": "8-12", "restTime": 90, "muscleGroup": "Back",
                 "equipment": "Barbell", "difficulty": "beginner"},
                {"exerciseId": "ex-006", "name": "Bicep Curls", "description": "Bicep isolation movement",
                 "sets": 3, "reps": "12-15", "restTime": 60, "muscleGroup": "Biceps",
                 "equipment": "Dumbbell", "difficulty": "beginner"},
            ],
        },
        {
            "dayName": "Day 3 - Legs",
            "muscleGroup": "Legs",
            "estimatedDuration": 75,
            "isRestDay": False,
            "exercises": [
                {"exerciseId": "ex-007", "name": "Squats", "description": "Leg compound movement",
                 "sets": 3, "reps": "8-12", "restTime": 120, "muscleGroup": "Quadriceps",
                 "equipment": "Barbell", "difficulty": "beginner"},
                {"exerciseId": "ex-008", "name": "Romanian Deadlifts", "description": "Hamstring compound movement",
                 "sets": 3, "reps": "8-12", "restTime": 90, "muscleGroup": "Hamstrings",
                 "equipment": "Barbell", "difficulty": "beginner"},
                {"exerciseId": "ex-009", "name": "Calf Raises", "description": "Calf isolation movement",
                 "sets": 3, "reps": "15-20", "restTime": 45, "muscleGroup": "Calves",
                 "equipment": "Bodyweight", "difficulty": "beginner"},
            ],
        },
    ],
}

# Wire format of the diet planning service
_MOCK_MEALS = {
    "Breakfast": ("Oatmeal with berries and Greek yogurt", "Oatmeal bowl", 450),
    "Snack 1": ("Apple with almond butter", "Apple & almonds", 200),
    "Lunch": ("Grilled chicken breast with quinoa and vegetables", "Chicken quinoa", 600),
    "Snack 2": ("Protein shake with banana", "Protein shake", 250),
    "Dinner": ("Baked salmon with sweet potato and broccoli", "Salmon dinner", 500),
}

MOCK_DIET_PLAN: Dict[str, Any] = {
    "target_weight": "70",
    "macros": {
        "Total Calories": "2000",
        "Total Carbs": "250g",
        "Total Protein": "150g",
        "Total Fat": "67g",
        "Total Fiber": "30g",
    },
    "meal_plan": [
        {
            "day": day,
            "meals": {slot: meal[0] for slot, meal in _MOCK_MEALS.items()},
            "short_names": {slot: meal[1] for slot, meal in _MOCK_MEALS.items()},
            "calories": {slot: meal[2] for slot, meal in _MOCK_MEALS.items()},
        }
        for day in range(1, 8)
    ],
}

BUILTIN_EXERCISE_LIBRARY: List[Dict[str, Any]] = [
    {
        "exercise_id": "ex-001",
        "name": "Bench Press",
        "description": "Chest compound movement",
        "muscle_group": "Chest",
        "equipment": "Barbell",
        "difficulty": "beginner",
        "video_url": "https://example.com/bench-press-video",
        "image_url": "https://example.com/bench-press-image",
    },
    {
        "exercise_id": "ex-002",
        "name": "Squats",
        "description": "Leg compound movement",
        "muscle_group": "Quadriceps",
        "equipment": "Barbell",
        "difficulty": "beginner",
        "video_url": "https://example.com/squats-video",
        "image_url": "https://example.com/squats-image",
    },
]


class PlanningServiceError(Exception):
    """Raised when the planning service returns an unusable response"""


class CircuitBreaker:
    """
    Three-state breaker: CLOSED until `threshold` consecutive failures, then
    OPEN for `reset_timeout` seconds, then HALF_OPEN for one trial request.
    """

    def __init__(self, name: str, threshold: int, reset_timeout: float):
        self.name = name
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self.state = CLOSED
        self.failure_count = 0
        self.next_attempt_time = 0.0

    def allow_request(self) -> bool:
        if self.state == OPEN:
            if time.monotonic() >= self.next_attempt_time:
                self.state = HALF_OPEN
                logger.info("Circuit breaker %s transitioning to HALF_OPEN", self.name)
                return True
            return False
        return True

    def record_success(self) -> None:
        if self.state != CLOSED:
            logger.info("Circuit breaker %s reset to CLOSED", self.name)
        self.state = CLOSED
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == HALF_OPEN or self.failure_count >= self.threshold:
            self.state = OPEN
            self.next_attempt_time = time.monotonic() + self.reset_timeout
            logger.warning(
                "Circuit breaker %s opened after %d failures", self.name, self.failure_count
            )


def _profile_hash(profile: Dict[str, Any]) -> str:
    encoded = json.dumps(profile, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()[:16]


def parse_number(value: Any) -> float:
    """Parse "250g" / "2000" / 2000 into a float"""
    if isinstance(value, (int, float)):
        return float(value)
    digits = "".join(ch for ch in str(value or "") if ch.isdigit() or ch == ".")
    return float(digits) if digits else 0.0


def normalize_workout_plan(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a workout planning service response to the stored layout

    Raises:
        PlanningServiceError: If required fields are missing or malformed
    """
    if not isinstance(raw, dict):
        raise PlanningServiceError("Workout plan response is not an object")
    if not raw.get("planId") or not raw.get("planName") or not raw.get("workoutDays"):
        raise PlanningServiceError("Workout plan response is missing required fields")

    days = []
    try:
        for day in raw["workoutDays"]:
            days.append({
                "day_name": day.get("dayName"),
                "muscle_group": day.get("muscleGroup"),
                "estimated_duration": day.get("estimatedDuration"),
                "is_rest_day": bool(day.get("isRestDay", False)),
                "exercises": [
                    {
                        "exercise_id": exercise.get("exerciseId"),
                        "name": exercise.get("name"),
                        "description": exercise.get("description"),
                        "sets": exercise.get("sets"),
                        "reps": exercise.get("reps"),
                        "weight": exercise.get("weight"),
                        "rest_time": exercise.get("restTime", 60),
                        "notes": exercise.get("notes"),
                        "muscle_group": exercise.get("muscleGroup"),
                        "equipment": exercise.get("equipment"),
                        "difficulty": exercise.get("difficulty"),
                        "video_url": exercise.get("videoUrl"),
                        "image_url": exercise.get("imageUrl"),
                    }
                    for exercise in day.get("exercises") or []
                ],
            })
    except (KeyError, TypeError, AttributeError) as e:
        raise PlanningServiceError(f"Malformed workout plan response: {e!r}") from e
    return {
        "plan_id": raw["planId"],
        "plan_name": raw["planName"],
        "weekly_schedule": raw.get("weeklySchedule", 3),
        "difficulty_level": raw.get("difficultyLevel"),
        "plan_duration": raw.get("planDuration"),
        "workout_days": days,
    }


def normalize_diet_plan(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a diet planning service response to the stored layout

    Raises:
        PlanningServiceError: If required fields are missing or malformed
    """
    if not isinstance(raw, dict):
        raise PlanningServiceError("Diet plan response is not an object")
    macros = raw.get("macros") or {}
    if not raw.get("meal_plan") or "Total Calories" not in macros:
        raise PlanningServiceError("Diet plan response is missing required fields")

    meal_plan = []
    try:
        for entry in raw["meal_plan"]:
            day_number = int(entry["day"])
            meals = []
            for order, slot in enumerate(MEAL_SLOTS, start=1):
                description = (entry.get("meals") or {}).get(slot)
                if not description:
                    continue
                meals.append({
                    "meal_type": slot,
                    "meal_order": order,
                    "meal_description": description,
                    "short_name": (entry.get("short_names") or {}).get(slot, slot),
                    "calories": (entry.get("calories") or {}).get(slot, 0),
                })
            meal_plan.append({
                "day": day_number,
                "day_name": DAY_NAMES[(day_number - 1) % 7],
                "meals": meals,
                "total_calories": sum(meal["calories"] for meal in meals),
            })
    except (KeyError, TypeError, AttributeError) as e:
        raise PlanningServiceError(f"Malformed diet plan response: {e!r}") from e

    return {
        "plan_id": raw.get("plan_id") or f"diet-{uuid.uuid4().hex[:12]}",
        "plan_name": raw.get("plan_name") or "Personalized Diet Plan",
        "target_weight_kg": parse_number(raw.get("target_weight")) or None,
        "total_macros": {
            "calories": str(macros.get("Total Calories")),
            "carbs": str(macros.get("Total Carbs", "0g")),
            "protein": str(macros.get("Total Protein", "0g")),
            "fat": str(macros.get("Total Fat", "0g")),
            "fiber": str(macros.get("Total Fiber", "0g")),
        },
        "meal_plan": meal_plan,
    }


def mock_workout_plan(profile: Dict[str, Any]) -> Dict[str, Any]:
    plan = copy.deepcopy(MOCK_WORKOUT_PLAN)
    level = profile.get("fitness_level") or "beginner"
    plan["planId"] = f"mock-plan-{int(time.time())}-{uuid.uuid4().hex[:9]}"
    plan["difficultyLevel"] = level
    plan["planName"] = f"{plan['planName']} - {level}"
    weekly_days = profile.get("weekly_workout_days")
    if profile.get("goal") == "weight_loss":
        plan["weeklySchedule"] = max(4, weekly_days or 4)
    elif profile.get("goal") == "muscle_building":
        plan["weeklySchedule"] = max(3, weekly_days or 3)
    return plan


def mock_diet_plan(profile: Dict[str, Any]) -> Dict[str, Any]:
    plan = copy.deepcopy(MOCK_DIET_PLAN)
    plan["plan_id"] = f"mock-diet-{int(time.time())}-{uuid.uuid4().hex[:9]}"
    if profile.get("target_weight_kg"):
        plan["target_weight"] = str(profile["target_weight_kg"])

    adjustment = 1.0
    if profile.get("goal") == "weight_loss":
        adjustment = 0.8
    elif profile.get("goal") == "weight_gain":
        adjustment = 1.2
    if profile.get("gender") == "Female":
        adjustment *= 0.9
    plan["macros"]["Total Calories"] = str(round(int(plan["macros"]["Total Calories"]) * adjustment))
    return plan


class PlanningClient:
    """
    Client for one planning service ("workout" or "diet")

    Args:
        kind: "workout" or "diet"
        base_url: Service base URL
        api_key: Bearer token sent on every request
        timeout: Request timeout in seconds
        mock_mode: Return built-in plans instead of calling the service
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    ENDPOINTS = {"workout": "/workout-plans", "diet": "/diet-plans"}
    CACHE_PREFIXES = {"workout": "cache:workout-plans:", "diet": "cache:diet-plans:"}

    def __init__(
        self,
        kind: str,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        mock_mode: bool = True,
        cache_ttl: int = 86400,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.kind = kind
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.mock_mode = mock_mode
        self.cache_ttl = cache_ttl
        self.breaker = breaker or CircuitBreaker(
            f"{kind}-planning",
            settings.CIRCUIT_BREAKER_THRESHOLD,
            settings.CIRCUIT_BREAKER_RESET_SECONDS,
        )
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": f"fitness-api/{settings.APP_VERSION}",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _mock(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        return mock_workout_plan(profile) if self.kind == "workout" else mock_diet_plan(profile)

    def _normalize(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return normalize_workout_plan(raw) if self.kind == "workout" else normalize_diet_plan(raw)

    def _fallback(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Using fallback %s plan", self.kind)
        plan = self._normalize(self._mock(profile))
        plan["source"] = "fallback"
        return plan

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self.transport,
        ) as client:
            logger.info("POST %s%s", self.base_url, self.ENDPOINTS[self.kind])
            response = await client.post(self.ENDPOINTS[self.kind], json=payload)
            response.raise_for_status()
            return response.json()

    async def create_plan(self, user_id: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        """
        Request a personalized plan for a user profile

        Args:
            user_id: Owner of the plan (part of the cache key)
            profile: Profile fields sent to the service

        Returns:
            Normalized plan with a "source" of external, mock, cache or fallback
        """
        if not self.breaker.allow_request():
            logger.warning("Circuit breaker %s is open, using fallback", self.breaker.name)
            return self._fallback(profile)

        cache = get_cache()
        cache_key = f"{self.CACHE_PREFIXES[self.kind]}plan:{user_id}:{_profile_hash(profile)}"
        cached = await cache.get(cache_key)
        if cached is not None:
            logger.info("Returning cached %s plan for user %s", self.kind, user_id)
            return {**cached, "source": "cache"}

        if self.mock_mode:
            plan = self._normalize(self._mock(profile))
            plan["source"] = "mock"
            logger.info("Using mock %s plan for user %s", self.kind, user_id)
        else:
            try:
                raw = await self._post({"user_id": user_id, "user_profile": profile})
                plan = self._normalize(raw)
            except (httpx.HTTPError, ValueError, PlanningServiceError) as e:
                self.breaker.record_failure()
                logger.error("%s planning request failed for user %s: %s", self.kind, user_id, e)
                return self._fallback(profile)
            self.breaker.record_success()
            plan["source"] = "external"

        await cache.set(cache_key, plan, self.cache_ttl)
        return plan


def _build_client(kind: str) -> PlanningClient:
    if kind == "workout":
        return PlanningClient(
            "workout",
            settings.WORKOUT_PLANNING_SERVICE_URL,
            settings.WORKOUT_PLANNING_SERVICE_API_KEY,
            settings.PLANNING_SERVICE_TIMEOUT,
            settings.PLANNING_MOCK_MODE,
            settings.PLAN_CACHE_TTL_SECONDS,
        )
    return PlanningClient(
        "diet",
        settings.DIET_PLANNING_SERVICE_URL,
        settings.DIET_PLANNING_SERVICE_API_KEY,
        settings.PLANNING_SERVICE_TIMEOUT,
        settings.PLANNING_MOCK_MODE,
        settings.PLAN_CACHE_TTL_SECONDS,
    )


_clients: Dict[str, PlanningClient] = {}


def get_planning_client(kind: str) -> PlanningClient:
    if kind not in _clients:
        _clients[kind] = _build_client(kind)
    return _clients[kind]


def set_planning_client(kind: str, client: Optional[PlanningClient]) -> None:
    """Replace (or with None, reset) the shared client for a service"""
    if client is None:
        _clients.pop(kind, None)
    else:
        _clients[kind] = client
