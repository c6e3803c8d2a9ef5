"""
Plan service - workout and diet plans cached from the planning services
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import Branch, DietPlan, User, WorkoutPlan, utcnow
from fitness_api.database.queries import execute_with_retry
from fitness_api.services.planning_client import BUILTIN_EXERCISE_LIBRARY, get_planning_client, parse_number
from fitness_api.utils.errors import NotFoundError, ValidationError
from fitness_api.utils.validators import pagination

logger = logging.getLogger(__name__)

PLAN_MODELS = {"workout": WorkoutPlan, "diet": DietPlan}
ACTIVE_PLAN_KEYS = {"workout": "workout_plan_id", "diet": "diet_plan_id"}
CACHE_EXPIRY = timedelta(hours=24)
REFRESH_INTERVAL = timedelta(days=14)


def _workout_profile_complete(user: User) -> bool:
    demographics = user.demographics or {}
    fitness = user.fitness_profile or {}
    return bool(
        fitness.get("level") and fitness.get("goal")
        and demographics.get("age") and demographics.get("height_cm") and demographics.get("weight_kg")
    )


def _diet_profile_complete(user: User) -> bool:
    demographics = user.demographics or {}
    return bool(
        (user.fitness_profile or {}).get("goal")
        and demographics.get("age") and demographics.get("height_cm")
        and demographics.get("weight_kg") and demographics.get("gender")
    )


def profile_complete(user: User, kind: str) -> bool:
    return _workout_profile_complete(user) if kind == "workout" else _diet_profile_complete(user)


def machine_map(branch: Optional[Branch]) -> Optional[Dict[str, Dict[str, Any]]]:
    """Branch machines keyed by lowercased machine name"""
    if branch is None:
        return None
    machines = {}
    for machine in branch.machines or []:
        name = str(machine.get("name") or "").lower()
        if name:
            machines[name] = {
                "is_available": machine.get("is_available", True),
                "maintenance_status": machine.get("maintenance_status"),
                "qr_code": machine.get("qr_code"),
                "location": machine.get("location"),
                "type": machine.get("type"),
            }
    return machines


def _with_availability(exercise: Dict[str, Any], machines: Optional[Dict[str, Dict[str, Any]]]) -> Dict[str, Any]:
    info = None
    if machines:
        info = machines.get(str(exercise.get("name") or "").lower()) or machines.get(
            str(exercise.get("equipment") or "").lower()
        )
    return {**exercise, "machine_availability": info}


def _plan_summary(plan: WorkoutPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "plan_id": plan.plan_id,
        "plan_name": plan.plan_name,
        "weekly_schedule": plan.weekly_schedule,
        "difficulty_level": plan.difficulty_level,
        "plan_duration": plan.plan_duration,
        "workout_days_count": len(plan.workout_days or []),
        "last_refreshed": plan.last_refreshed.isoformat(),
        "next_refresh_date": plan.next_refresh_date.isoformat(),
        "cache_expiry": plan.cache_expiry.isoformat(),
        "source": plan.source,
    }


def _diet_summary(plan: DietPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "plan_id": plan.plan_id,
        "plan_name": plan.plan_name,
        "target_weight_kg": plan.target_weight_kg,
        "total_macros": plan.total_macros or {},
        "meal_days_count": len(plan.meal_plan or []),
        "last_refreshed": plan.last_refreshed.isoformat(),
        "next_refresh_date": plan.next_refresh_date.isoformat(),
        "cache_expiry": plan.cache_expiry.isoformat(),
        "source": plan.source,
    }


class PlanService:
    """Service for workout and diet plan operations"""

    @staticmethod
    async def active_plan(session: AsyncSession, user_id: str, kind: str):
        model = PLAN_MODELS[kind]
        result = await execute_with_retry(
            session,
            select(model)
            .where(model.user_id == user_id, model.is_active.is_(True))
            .order_by(model.created_at.desc())
            .limit(1),
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def require_active_plan(session: AsyncSession, user_id: str, kind: str):
        plan = await PlanService.active_plan(session, user_id, kind)
        if plan is None:
            raise NotFoundError(
                f"Active {kind} plan",
                code="NO_ACTIVE_PLAN",
                details={"endpoint": f"/api/integrations/{kind}-plans"},
            )
        return plan

    @staticmethod
    async def get_branch(session: AsyncSession, branch_id: Optional[str]) -> Optional[Branch]:
        if not branch_id:
            return None
        result = await execute_with_retry(session, select(Branch).where(Branch.id == branch_id))
        branch = result.scalar_one_or_none()
        if branch is None:
            logger.warning("Branch %s not found; continuing without machine availability", branch_id)
        return branch

    @staticmethod
    async def create_workout_plan(
        session: AsyncSession,
        user: User,
        force_refresh: bool = False,
        weekly_workout_days: Optional[int] = None,
        custom_preferences: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Create or refresh a user's workout plan

        Args:
            session: Database session
            user: Plan owner
            force_refresh: Replace an active, unexpired plan
            weekly_workout_days: Requested training days per week
            custom_preferences: Passed through to the planning service

        Returns:
            (response data, created) where created is False when the existing plan was kept
        """
        if not _workout_profile_complete(user):
            raise ValidationError(
                "Incomplete user profile. Please complete your fitness profile and demographics "
                "to create a workout plan.",
                code="INCOMPLETE_PROFILE",
            )

        existing = await PlanService.active_plan(session, user.id, "workout")
        now = utcnow()
        if existing is not None and not force_refresh and existing.cache_expiry > now:
            logger.info("Returning existing active workout plan %s for user %s", existing.plan_id, user.id)
            return {
                "workout_plan": existing.to_dict(),
                "is_new_plan": False,
                "next_refresh_date": existing.next_refresh_date.isoformat(),
            }, False

        demographics = user.demographics or {}
        fitness = user.fitness_profile or {}
        profile = {
            "fitness_level": fitness.get("level"),
            "goal": fitness.get("goal"),
            "age": demographics.get("age"),
            "height_cm": demographics.get("height_cm"),
            "weight_kg": demographics.get("weight_kg"),
            "activity_level": demographics.get("activity_level") or "moderate",
            "health_conditions": fitness.get("health_conditions") or [],
            "weekly_workout_days": weekly_workout_days or 3,
        }
        if custom_preferences:
            profile["custom_preferences"] = custom_preferences

        external = await get_planning_client("workout").create_plan(user.id, profile)

        await session.execute(
            update(WorkoutPlan)
            .where(WorkoutPlan.user_id == user.id, WorkoutPlan.is_active.is_(True))
            .values(is_active=False)
        )
        plan = WorkoutPlan(
            user_id=user.id,
            plan_id=external["plan_id"],
            plan_name=external["plan_name"],
            is_active=True,
            source="external",
            workout_days=external["workout_days"],
            weekly_schedule=external.get("weekly_schedule") or 3,
            plan_duration=external.get("plan_duration"),
            difficulty_level=external.get("difficulty_level"),
            user_context=profile,
            last_refreshed=now,
            next_refresh_date=now + REFRESH_INTERVAL,
            cache_expiry=now + CACHE_EXPIRY,
        )
        session.add(plan)
        await session.flush()
        user.active_plans = {**(user.active_plans or {}), "workout_plan_id": plan.id}
        await session.commit()
        await session.refresh(plan)

        logger.info(
            "Workout plan %s created for user %s (%s, refresh=%s)",
            plan.plan_id, user.id, external.get("source"), existing is not None,
        )
        return {
            "workout_plan": _plan_summary(plan),
            "is_new_plan": True,
            "is_refresh": existing is not None,
            "next_refresh_date": plan.next_refresh_date.isoformat(),
            "metadata": {
                "source": external.get("source"),
                "user_profile_used": {
                    "fitness_level": profile["fitness_level"],
                    "goal": profile["goal"],
                    "weekly_workout_days": profile["weekly_workout_days"],
                },
            },
        }, True

    @staticmethod
    async def create_diet_plan(
        session: AsyncSession,
        user: User,
        force_refresh: bool = False,
        custom_preferences: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Create or refresh a user's diet plan (same contract as create_workout_plan)"""
        if not _diet_profile_complete(user):
            raise ValidationError(
                "Incomplete user profile. Please complete your demographics and fitness goal "
                "to create a diet plan.",
                code="INCOMPLETE_PROFILE",
            )

        existing = await PlanService.active_plan(session, user.id, "diet")
        now = utcnow()
        if existing is not None and not force_refresh and existing.cache_expiry > now:
            return {
                "diet_plan": existing.to_dict(),
                "is_new_plan": False,
                "next_refresh_date": existing.next_refresh_date.isoformat(),
            }, False

        demographics = user.demographics or {}
        profile = {
            "goal": (user.fitness_profile or {}).get("goal"),
            "age": demographics.get("age"),
            "height_cm": demographics.get("height_cm"),
            "weight_kg": demographics.get("weight_kg"),
            "target_weight_kg": demographics.get("target_weight_kg"),
            "gender": demographics.get("gender"),
            "activity_level": demographics.get("activity_level") or "moderate",
            "allergies": demographics.get("allergies") or [],
            "health_conditions": (user.fitness_profile or {}).get("health_conditions") or [],
        }
        if custom_preferences:
            profile["custom_preferences"] = custom_preferences

        external = await get_planning_client("diet").create_plan(user.id, profile)

        await session.execute(
            update(DietPlan)
            .where(DietPlan.user_id == user.id, DietPlan.is_active.is_(True))
            .values(is_active=False)
        )
        plan = DietPlan(
            user_id=user.id,
            plan_id=external["plan_id"],
            plan_name=external["plan_name"],
            target_weight_kg=external.get("target_weight_kg"),
            is_active=True,
            source="external",
            total_macros=external["total_macros"],
            meal_plan=external["meal_plan"],
            last_refreshed=now,
            next_refresh_date=now + REFRESH_INTERVAL,
            cache_expiry=now + CACHE_EXPIRY,
        )
        session.add(plan)
        await session.flush()
        user.active_plans = {**(user.active_plans or {}), "diet_plan_id": plan.id}
        user.current_macros = {
            key: parse_number(value) for key, value in external["total_macros"].items()
        }
        await session.commit()
        await session.refresh(plan)

        logger.info("Diet plan %s created for user %s (%s)", plan.plan_id, user.id, external.get("source"))
        return {
            "diet_plan": _diet_summary(plan),
            "is_new_plan": True,
            "is_refresh": existing is not None,
            "next_refresh_date": plan.next_refresh_date.isoformat(),
            "metadata": {"source": external.get("source")},
        }, True

    @staticmethod
    async def plan_status(session: AsyncSession, user: User, kind: str) -> Dict[str, Any]:
        model = PLAN_MODELS[kind]
        plan = await PlanService.active_plan(session, user.id, kind)
        complete = profile_complete(user, kind)
        now = utcnow()

        status, needs_refresh, is_expired = "none", False, False
        if plan is not None:
            is_expired = plan.cache_expiry < now
            needs_refresh = plan.next_refresh_date <= now
            status = "expired" if is_expired else "needs_refresh" if needs_refresh else "active"

        count = await execute_with_retry(session, select(func.count(model.id)).where(model.user_id == user.id))
        current = None
        if plan is not None:
            current = _plan_summary(plan) if kind == "workout" else _diet_summary(plan)
        return {
            "plan_status": status,
            "has_active_plan": plan is not None,
            "profile_complete": complete,
            "needs_refresh": needs_refresh,
            "is_expired": is_expired,
            "current_plan": current,
            "cache_expiry": plan.cache_expiry.isoformat() if plan else None,
            "next_refresh_date": plan.next_refresh_date.isoformat() if plan else None,
            "statistics": {"total_plans_count": count.scalar_one(), "can_create_plan": complete},
            "recommendations": {
                "should_create_plan": plan is None and complete,
                "should_refresh_plan": needs_refresh,
                "should_complete_profile": not complete,
                "should_update_expired_plan": is_expired,
            },
        }

    @staticmethod
    async def deactivate_plan(session: AsyncSession, user: User, kind: str, plan_id: str) -> Dict[str, Any]:
        model = PLAN_MODELS[kind]
        result = await execute_with_retry(
            session,
            select(model).where(model.plan_id == plan_id, model.user_id == user.id, model.is_active.is_(True)),
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError(f"Active {kind} plan", code="PLAN_NOT_FOUND")

        plan.is_active = False
        active_plans = dict(user.active_plans or {})
        active_plans.pop(ACTIVE_PLAN_KEYS[kind], None)
        user.active_plans = active_plans
        await session.commit()

        logger.info("%s plan %s deactivated for user %s", kind.capitalize(), plan_id, user.id)
        return {
            "id": plan.id,
            "plan_id": plan.plan_id,
            "plan_name": plan.plan_name,
            "deactivated_at": utcnow().isoformat(),
        }

    @staticmethod
    async def daily_workout(session: AsyncSession, user: User, branch_id: Optional[str] = None) -> Dict[str, Any]:
        plan = await PlanService.require_active_plan(session, user.id, "workout")
        now = utcnow()
        if plan.cache_expiry < now:
            logger.warning("Workout plan %s for user %s has expired", plan.plan_id, user.id)

        machines = machine_map(await PlanService.get_branch(session, branch_id))
        data = plan.to_dict()
        data["workout_days"] = [
            {**day, "exercises": [_with_availability(exercise, machines) for exercise in day.get("exercises") or []]}
            for day in plan.workout_days or []
        ]
        data["metadata"] = {
            "is_expired": plan.cache_expiry < now,
            "next_refresh_date": plan.next_refresh_date.isoformat(),
            "last_refreshed": plan.last_refreshed.isoformat(),
            "source": plan.source,
            "branch_id": branch_id,
            "machine_availability_included": machines is not None,
        }
        return data

    @staticmethod
    async def workout_day(
        session: AsyncSession, user: User, muscle_group: str, branch_id: Optional[str] = None
    ) -> Dict[str, Any]:
        plan = await PlanService.require_active_plan(session, user.id, "workout")
        days = plan.workout_days or []
        day = next(
            (item for item in days if str(item.get("muscle_group") or "").lower() == muscle_group.lower()),
            None,
        )
        if day is None:
            raise NotFoundError(
                f"Muscle group '{muscle_group}'",
                code="MUSCLE_GROUP_NOT_FOUND",
                details={"available_muscle_groups": [item.get("muscle_group") for item in days]},
            )

        machines = machine_map(await PlanService.get_branch(session, branch_id))
        return {
            "workout_day": {
                **day,
                "exercises": [_with_availability(exercise, machines) for exercise in day.get("exercises") or []],
            },
            "plan_info": {"plan_id": plan.plan_id, "plan_name": plan.plan_name},
            "metadata": {
                "is_expired": plan.cache_expiry < utcnow(),
                "branch_id": branch_id,
                "machine_availability_included": machines is not None,
            },
        }

    @staticmethod
    async def exercise_library(
        session: AsyncSession,
        user: Optional[User],
        muscle_group: Optional[str] = None,
        equipment: Optional[str] = None,
        difficulty: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """
        Deduplicated exercises from the caller's active plan, or the built-in library
        """
        exercises: List[Dict[str, Any]] = []
        source = "builtin"
        plan = await PlanService.active_plan(session, user.id, "workout") if user else None
        if plan is not None:
            seen = set()
            for day in plan.workout_days or []:
                for exercise in day.get("exercises") or []:
                    key = exercise.get("exercise_id") or exercise.get("name")
                    if key in seen:
                        continue
                    seen.add(key)
                    exercises.append(exercise)
            source = "plan"
        else:
            exercises = [dict(exercise) for exercise in BUILTIN_EXERCISE_LIBRARY]

        def matches(exercise: Dict[str, Any], field: str, wanted: Optional[str]) -> bool:
            return not wanted or str(exercise.get(field) or "").lower() == wanted.lower()

        exercises = [
            exercise for exercise in exercises
            if matches(exercise, "muscle_group", muscle_group)
            and matches(exercise, "equipment", equipment)
            and matches(exercise, "difficulty", difficulty)
        ]
        offset = (page - 1) * limit
        return {
            "exercises": exercises[offset:offset + limit],
            "pagination": pagination(len(exercises), page, limit),
            "filters": {"muscle_group": muscle_group, "equipment": equipment, "difficulty": difficulty},
            "source": source,
        }

    @staticmethod
    async def daily_nutrition(session: AsyncSession, user: User) -> Dict[str, Any]:
        plan = await PlanService.require_active_plan(session, user.id, "diet")
        meal_plan = plan.meal_plan or []
        days = [
            {
                "day": day["day"],
                "day_name": day.get("day_name"),
                "meals": sorted(day.get("meals") or [], key=lambda meal: meal.get("meal_order", 0)),
                "total_calories": sum(meal.get("calories", 0) for meal in day.get("meals") or []),
                "meal_count": len(day.get("meals") or []),
            }
            for day in meal_plan
        ]
        avg_calories = sum(day["total_calories"] for day in days) / max(len(days), 1)
        return {
            "diet_plan": _diet_summary(plan),
            "weekly_meal_plan": days,
            "summary": {
                "total_days": len(days),
                "avg_calories_per_day": round(avg_calories),
                "total_meals_per_day": days[0]["meal_count"] if days else 0,
                "target_weight": plan.target_weight_kg,
                "macro_targets": plan.total_macros or {},
            },
            "metadata": {"is_expired": plan.cache_expiry < utcnow()},
        }

    @staticmethod
    async def day_meals(session: AsyncSession, user: User, day: int) -> Dict[str, Any]:
        if day < 1 or day > 7:
            raise ValidationError("Day must be between 1 and 7", code="INVALID_DAY")
        plan = await PlanService.require_active_plan(session, user.id, "diet")
        entry = next((item for item in plan.meal_plan or [] if int(item.get("day", 0)) == day), None)
        if entry is None:
            raise NotFoundError(f"Meal plan for day {day}", code="DAY_NOT_FOUND")

        meals = sorted(entry.get("meals") or [], key=lambda meal: meal.get("meal_order", 0))
        total = sum(meal.get("calories", 0) for meal in meals)
        return {
            "day": {
                "number": day,
                "name": entry.get("day_name"),
                "total_calories": total,
                "meal_count": len(meals),
            },
            "meals": meals,
            "nutrition_summary": {
                "total_calories": total,
                "avg_calories_per_meal": round(total / max(len(meals), 1)),
                "meal_distribution": {
                    meal["meal_type"]: round(meal.get("calories", 0) / total * 100) if total else 0
                    for meal in meals
                },
            },
        }

    @staticmethod
    async def macros(session: AsyncSession, user: User) -> Dict[str, Any]:
        """
        Current macro targets: the user's own values, else the active diet plan's
        """
        plan = await PlanService.active_plan(session, user.id, "diet")
        if user.current_macros:
            targets = dict(user.current_macros)
            source = "user"
        elif plan is not None:
            targets = {key: parse_number(value) for key, value in (plan.total_macros or {}).items()}
            source = "diet_plan"
        else:
            raise NotFoundError("Active diet plan", code="NO_ACTIVE_PLAN")

        calories = float(targets.get("calories") or 0)
        macro_calories = {
            "carbs": float(targets.get("carbs") or 0) * 4,
            "protein": float(targets.get("protein") or 0) * 4,
            "fat": float(targets.get("fat") or 0) * 9,
        }
        return {
            "macro_targets": targets,
            "macro_calories": macro_calories,
            "macro_percentages": {
                key: round(value / calories * 100) if calories else 0 for key, value in macro_calories.items()
            },
            "source": source,
            "diet_plan_info": _diet_summary(plan) if plan is not None else None,
        }
