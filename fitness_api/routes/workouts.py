"""
Workout plan endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User, utcnow
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit
from fitness_api.middleware.auth import get_current_user, get_optional_user
from fitness_api.middleware.rate_limit import general_rate_limit
from fitness_api.services.plan_service import PlanService
from fitness_api.utils.responses import ok

router = APIRouter(prefix="/api/workouts")


@router.get("/health")
async def workouts_health():
    return ok({"service": "workouts", "timestamp": utcnow().isoformat()}, "Workouts service is healthy")


@router.get(
    "/daily",
    dependencies=[Depends(general_rate_limit), Depends(audit("workout.daily_read"))],
)
async def daily_workout(
    branch_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """
    The caller's active workout plan

    Args:
        branch_id: When given, exercises carry machine availability for that branch
    """
    return ok(await PlanService.daily_workout(session, user, branch_id))


@router.get("/library", dependencies=[Depends(general_rate_limit)])
async def exercise_library(
    muscle_group: Optional[str] = None,
    equipment: Optional[str] = None,
    difficulty: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_db),
):
    result = await PlanService.exercise_library(
        session, user, muscle_group, equipment, difficulty, page, limit
    )
    return ok(result)


@router.get(
    "/days/{muscle_group}",
    dependencies=[Depends(general_rate_limit), Depends(audit("workout.day_read"))],
)
async def workout_day(
    muscle_group: str,
    branch_id: Optional[str] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return ok(await PlanService.workout_day(session, user, muscle_group, branch_id))
