"""
Workout and diet plan integration endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit
from fitness_api.middleware.auth import get_current_user
from fitness_api.middleware.rate_limit import general_rate_limit, strict_rate_limit
from fitness_api.models.schemas import DietPlanRequest, WorkoutPlanRequest
from fitness_api.services.plan_service import PlanService
from fitness_api.services.user_service import UserService
from fitness_api.utils.errors import AuthorizationError
from fitness_api.utils.responses import ok

router = APIRouter(prefix="/api/integrations")


async def plan_owner(session: AsyncSession, caller: User, target_user_id: Optional[str]) -> User:
    """Admins may act on another user's plans; everyone else only on their own"""
    if not target_user_id or target_user_id == caller.id:
        return caller
    if not caller.is_admin:
        raise AuthorizationError(
            "Access denied: you can only access your own resources",
            code="OWNERSHIP_OR_ADMIN_REQUIRED",
        )
    return await UserService.get_user(session, target_user_id)


# Workout plans

@router.post(
    "/workout-plans",
    dependencies=[Depends(strict_rate_limit), Depends(audit("plan.workout_create"))],
)
async def create_workout_plan(
    payload: WorkoutPlanRequest,
    response: Response,
    caller: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await plan_owner(session, caller, payload.target_user_id)
    data, created = await PlanService.create_workout_plan(
        session,
        user,
        force_refresh=payload.force_refresh,
        weekly_workout_days=payload.weekly_workout_days,
        custom_preferences=payload.custom_preferences,
    )
    if created:
        response.status_code = 201
        message = "Workout plan refreshed successfully" if data.get("is_refresh") else "Workout plan created successfully"
    else:
        message = "Active workout plan already exists"
    return ok(data, message)


@router.get("/workout-plans/status", dependencies=[Depends(general_rate_limit)])
async def workout_plan_status(
    user_id: Optional[str] = None,
    caller: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await plan_owner(session, caller, user_id)
    return ok(await PlanService.plan_status(session, user, "workout"))


@router.delete(
    "/workout-plans/{plan_id}",
    dependencies=[Depends(general_rate_limit), Depends(audit("plan.workout_delete"))],
)
async def deactivate_workout_plan(
    plan_id: str,
    user_id: Optional[str] = None,
    caller: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await plan_owner(session, caller, user_id)
    data = await PlanService.deactivate_plan(session, user, "workout", plan_id)
    return ok(data, "Workout plan deactivated successfully")


# Diet plans

@router.post(
    "/diet-plans",
    dependencies=[Depends(strict_rate_limit), Depends(audit("plan.diet_create"))],
)
async def create_diet_plan(
    payload: DietPlanRequest,
    response: Response,
    caller: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await plan_owner(session, caller, payload.target_user_id)
    data, created = await PlanService.create_diet_plan(
        session,
        user,
        force_refresh=payload.force_refresh,
        custom_preferences=payload.custom_preferences,
    )
    if created:
        response.status_code = 201
        message = "Diet plan refreshed successfully" if data.get("is_refresh") else "Diet plan created successfully"
    else:
        message = "Active diet plan already exists"
    return ok(data, message)


@router.get("/diet-plans/status", dependencies=[Depends(general_rate_limit)])
async def diet_plan_status(
    user_id: Optional[str] = None,
    caller: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await plan_owner(session, caller, user_id)
    return ok(await PlanService.plan_status(session, user, "diet"))


@router.delete(
    "/diet-plans/{plan_id}",
    dependencies=[Depends(general_rate_limit), Depends(audit("plan.diet_delete"))],
)
async def deactivate_diet_plan(
    plan_id: str,
    user_id: Optional[str] = None,
    caller: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await plan_owner(session, caller, user_id)
    data = await PlanService.deactivate_plan(session, user, "diet", plan_id)
    return ok(data, "Diet plan deactivated successfully")
