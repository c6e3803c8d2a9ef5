"""
Nutrition plan endpoints
"""
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User, utcnow
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit
from fitness_api.middleware.auth import get_current_user
from fitness_api.middleware.rate_limit import nutrition_rate_limit
from fitness_api.services.plan_service import PlanService
from fitness_api.utils.responses import ok

router = APIRouter(prefix="/api/nutrition")


@router.get("/health")
async def nutrition_health():
    return ok({"service": "nutrition", "timestamp": utcnow().isoformat()}, "Nutrition service is healthy")


@router.get(
    "/daily",
    dependencies=[Depends(nutrition_rate_limit), Depends(audit("nutrition.daily_read"))],
)
async def daily_nutrition(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return ok(await PlanService.daily_nutrition(session, user))


@router.get(
    "/daily/{day}",
    dependencies=[Depends(nutrition_rate_limit), Depends(audit("nutrition.day_read"))],
)
async def day_meals(
    day: int = Path(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """Meals for one plan day (1 = Monday ... 7 = Sunday)"""
    return ok(await PlanService.day_meals(session, user, day))


@router.get(
    "/macros",
    dependencies=[Depends(nutrition_rate_limit), Depends(audit("nutrition.macros_read"))],
)
async def macros(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return ok(await PlanService.macros(session, user))
