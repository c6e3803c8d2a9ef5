"""
Activity service - daily activity logging, timeline and summary statistics
"""
import copy
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import (
    User,
    UserActivity,
    empty_diet_activity,
    empty_goals,
    empty_workout_activity,
    utcnow,
)
from fitness_api.database.queries import execute_with_retry
from fitness_api.utils.errors import NotFoundError, ValidationError
from fitness_api.utils.validators import pagination

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = ("workout_completed", "meal_logged", "meal_uploaded", "goal_achieved")
TIMELINE_TYPES = ("workout", "meal", "achievement")
PERIOD_DAYS = {"day": 0, "week": 7, "month": 30}


def _has_workouts(row: UserActivity) -> bool:
    workout = row.workout_activity or {}
    return bool(workout.get("completed_workouts") or workout.get("workout_history"))


def _has_meals(row: UserActivity) -> bool:
    diet = row.diet_activity or {}
    return bool(diet.get("completed_meals") or diet.get("meal_history") or diet.get("uploaded_meals"))


def _has_achievements(row: UserActivity) -> bool:
    return bool((row.goals or {}).get("achievements"))


def compute_streaks(days: Sequence[date], today: Optional[date] = None) -> Dict[str, int]:
    """
    Current and longest run of consecutive days

    Args:
        days: Days on which the activity happened (any order)
        today: Reference day for the current streak

    Returns:
        {"current": n, "max": m}; the current streak is 0 unless the latest
        day is today or yesterday
    """
    today = today or utcnow().date()
    ordered = sorted(set(days))
    if not ordered:
        return {"current": 0, "max": 0}

    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    latest = ordered[-1]
    current_streak = 0
    if latest >= today - timedelta(days=1):
        current_streak = 1
        for index in range(len(ordered) - 1, 0, -1):
            if ordered[index] - ordered[index - 1] != timedelta(days=1):
                break
            current_streak += 1
    return {"current": current_streak, "max": longest}


class ActivityService:
    """Service for user activity operations"""

    @staticmethod
    async def get_or_create_day(session: AsyncSession, user_id: str, day: date) -> UserActivity:
        result = await execute_with_retry(
            session,
            select(UserActivity).where(UserActivity.user_id == user_id, UserActivity.date == day),
        )
        activity = result.scalar_one_or_none()
        if activity is None:
            activity = UserActivity(user_id=user_id, date=day)
            activity.workout_activity = empty_workout_activity()
            activity.diet_activity = empty_diet_activity()
            activity.points_earned = []
            activity.goals = empty_goals()
            activity.calories_burned = 0
            activity.active_minutes = 0
            session.add(activity)
        return activity

    @staticmethod
    async def log_activity(
        session: AsyncSession,
        user: User,
        activity_type: str,
        activity_data: Dict[str, Any],
        day: date,
        points: int = 0,
    ) -> Dict[str, Any]:
        """
        Record one activity on the user's day

        Args:
            session: Database session
            user: Owner of the activity
            activity_type: One of ACTIVITY_TYPES
            activity_data: Validated activity payload
            day: Calendar day the activity belongs to
            points: Points to award

        Returns:
            activity_id, activity_type, points_earned and the day summary
        """
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationError(
                "Invalid activity type",
                code="INVALID_ACTIVITY_TYPE",
                details={"allowed": list(ACTIVITY_TYPES)},
            )

        activity = await ActivityService.get_or_create_day(session, user.id, day)
        workout = copy.deepcopy(activity.workout_activity or {})
        diet = copy.deepcopy(activity.diet_activity or {})
        goals = copy.deepcopy(activity.goals or empty_goals())
        points_earned = list(activity.points_earned or [])
        now = utcnow().isoformat()

        if activity_type == "workout_completed":
            workout["completed_workouts"] = int(workout.get("completed_workouts") or 0) + 1
            details = activity_data.get("workout_details")
            if details:
                workout.setdefault("workout_history", []).append({**details, "completed_at": now})
            if activity_data.get("calories_burned"):
                activity.calories_burned = (activity.calories_burned or 0) + activity_data["calories_burned"]
            if activity_data.get("active_minutes"):
                activity.active_minutes = int((activity.active_minutes or 0) + activity_data["active_minutes"])
        elif activity_type == "meal_logged":
            diet["completed_meals"] = int(diet.get("completed_meals") or 0) + 1
            details = activity_data.get("meal_details")
            if details:
                was_on_schedule = details.get("was_on_schedule")
                diet.setdefault("meal_history", []).append({
                    **details,
                    "was_on_schedule": True if was_on_schedule is None else was_on_schedule,
                    "consumed_at": now,
                })
        elif activity_type == "meal_uploaded":
            details = activity_data.get("upload_details")
            if details:
                diet.setdefault("uploaded_meals", []).append({
                    **details,
                    "is_verified": bool(details.get("is_verified")),
                    "uploaded_at": now,
                })
        elif activity_type == "goal_achieved":
            achievement = activity_data.get("achievement")
            if achievement:
                goals.setdefault("achievements", []).append({
                    **achievement,
                    "completed_at": now,
                    "points": points,
                })

        if points > 0:
            points_earned.append({
                "points": points,
                "reason": activity_data.get("points_reason") or f"{activity_type} completed",
                "awarded_at": now,
            })
            user.total_points = (user.total_points or 0) + points

        assigned = int(workout.get("assigned_workouts") or 0)
        if assigned > 0:
            workout["completion_percentage"] = round(
                int(workout.get("completed_workouts") or 0) / assigned * 100, 2
            )

        activity.workout_activity = workout
        activity.diet_activity = diet
        activity.goals = goals
        activity.points_earned = points_earned
        activity.refresh_summary()
        await session.commit()
        await session.refresh(activity)

        logger.info("Activity %s logged for user %s on %s", activity_type, user.id, day)
        return {
            "activity_id": activity.id,
            "activity_type": activity_type,
            "points_earned": points,
            "summary": activity.summary(),
        }

    @staticmethod
    def _filter_for_type(row: UserActivity, activity_type: str) -> Optional[Dict[str, Any]]:
        data = row.to_dict()
        if activity_type == "workout":
            if not _has_workouts(row):
                return None
            data["diet_activity"] = None
            data["goals"] = None
        elif activity_type == "meal":
            if not _has_meals(row):
                return None
            data["workout_activity"] = None
            data["goals"] = None
        elif activity_type == "achievement":
            if not _has_achievements(row):
                return None
            data["workout_activity"] = None
            data["diet_activity"] = None
        return data

    @staticmethod
    async def timeline(
        session: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
        activity_type: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        if activity_type and activity_type not in TIMELINE_TYPES:
            raise ValidationError("Invalid activity type filter", details={"allowed": list(TIMELINE_TYPES)})

        conditions = [
            UserActivity.user_id == user_id,
            UserActivity.date >= start.date(),
            UserActivity.date <= end.date(),
        ]
        statement = select(UserActivity).where(*conditions).order_by(UserActivity.date.desc())

        if activity_type:
            result = await execute_with_retry(session, statement)
            entries = [
                entry for entry in (
                    ActivityService._filter_for_type(row, activity_type) for row in result.scalars().all()
                ) if entry is not None
            ]
            total = len(entries)
            offset = (page - 1) * limit
            entries = entries[offset:offset + limit]
        else:
            count_result = await execute_with_retry(
                session, select(func.count(UserActivity.id)).where(*conditions)
            )
            total = count_result.scalar_one()
            result = await execute_with_retry(session, statement.offset((page - 1) * limit).limit(limit))
            entries = [row.to_dict() for row in result.scalars().all()]

        return {
            "activities": entries,
            "pagination": pagination(total, page, limit),
            "filters": {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "activity_type": activity_type,
            },
        }

    @staticmethod
    async def summary(session: AsyncSession, user_id: str, start: datetime, end: datetime) -> Dict[str, Any]:
        """
        Totals, per-day averages, streaks and top achievements for a range
        """
        conditions = [
            UserActivity.user_id == user_id,
            UserActivity.date >= start.date(),
            UserActivity.date <= end.date(),
        ]
        totals_result = await execute_with_retry(
            session,
            select(
                func.coalesce(func.sum(UserActivity.total_workouts), 0),
                func.coalesce(func.sum(UserActivity.total_meals), 0),
                func.coalesce(func.sum(UserActivity.total_points), 0),
                func.coalesce(func.sum(UserActivity.calories_consumed), 0),
                func.coalesce(func.sum(UserActivity.calories_burned), 0),
                func.coalesce(func.sum(UserActivity.active_minutes), 0),
                func.count(UserActivity.id),
            ).where(*conditions),
        )
        workouts, meals, points, consumed, burned, minutes, active_days = totals_result.one()

        result = await execute_with_retry(
            session, select(UserActivity).where(*conditions).order_by(UserActivity.date.asc())
        )
        rows: List[UserActivity] = list(result.scalars().all())

        achievements: Dict[str, Dict[str, Any]] = {}
        total_achievements = 0
        for row in rows:
            for achievement in (row.goals or {}).get("achievements") or []:
                total_achievements += 1
                name = achievement.get("achievement_name") or achievement.get("achievement_id")
                bucket = achievements.setdefault(
                    name, {"achievement_name": name, "total_points": 0, "count": 0, "last_completed": None}
                )
                bucket["total_points"] += int(achievement.get("points") or 0)
                bucket["count"] += 1
                completed_at = achievement.get("completed_at")
                if completed_at and (bucket["last_completed"] is None or completed_at > bucket["last_completed"]):
                    bucket["last_completed"] = completed_at
        top_achievements = sorted(achievements.values(), key=lambda a: a["total_points"], reverse=True)[:10]

        workout_streaks = compute_streaks([row.date for row in rows if (row.total_workouts or 0) > 0])
        meal_streaks = compute_streaks([row.date for row in rows if (row.total_meals or 0) > 0])

        total_days = max(1, (end.date() - start.date()).days + 1)
        active_days = int(active_days)

        def per_day(total) -> float:
            return round(float(total) / active_days, 2) if active_days else 0

        return {
            "period": {
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "total_days": total_days,
            },
            "totals": {
                "total_workouts": int(workouts),
                "total_meals": int(meals),
                "total_points": int(points),
                "total_calories_consumed": float(consumed),
                "total_calories_burned": float(burned),
                "total_active_minutes": int(minutes),
                "total_achievements": total_achievements,
                "active_days": active_days,
            },
            "averages": {
                "workouts_per_day": per_day(workouts),
                "meals_per_day": per_day(meals),
                "points_per_day": per_day(points),
                "calories_consumed_per_day": per_day(consumed),
                "calories_burned_per_day": per_day(burned),
                "active_minutes_per_day": per_day(minutes),
            },
            "streaks": {
                "current_workout_streak": workout_streaks["current"],
                "max_workout_streak": workout_streaks["max"],
                "current_meal_streak": meal_streaks["current"],
                "max_meal_streak": meal_streaks["max"],
            },
            "top_achievements": top_achievements,
        }

    @staticmethod
    async def update_activity(
        session: AsyncSession, user_id: str, activity_id: str, update: Dict[str, Any]
    ) -> UserActivity:
        result = await execute_with_retry(
            session,
            select(UserActivity).where(UserActivity.id == activity_id, UserActivity.user_id == user_id),
        )
        activity = result.scalar_one_or_none()
        if activity is None:
            raise NotFoundError("Activity", code="ACTIVITY_NOT_FOUND")

        workout = copy.deepcopy(activity.workout_activity or {})
        diet = copy.deepcopy(activity.diet_activity or {})
        goals = copy.deepcopy(activity.goals or empty_goals())

        for key, value in (update.get("workout_activity") or {}).items():
            if value is not None:
                workout[key] = value
        for key, value in (update.get("diet_activity") or {}).items():
            if value is not None:
                diet[key] = value
        daily_goals = (update.get("goals") or {}).get("daily_goals") or {}
        if daily_goals:
            merged = dict(goals.get("daily_goals") or {})
            merged.update({key: value for key, value in daily_goals.items() if value is not None})
            goals["daily_goals"] = merged

        assigned = int(workout.get("assigned_workouts") or 0)
        completed = int(workout.get("completed_workouts") or 0)
        workout["completion_percentage"] = round(completed / assigned * 100, 2) if assigned > 0 else 0

        activity.workout_activity = workout
        activity.diet_activity = diet
        activity.goals = goals
        activity.refresh_summary()
        await session.commit()
        await session.refresh(activity)
        return activity
