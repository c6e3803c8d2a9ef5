"""
Activity tracking endpoints
"""
from datetime import datetime, time, timedelta
from typing import Literal, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User, utcnow
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit
from fitness_api.middleware.auth import get_current_user, require_admin
from fitness_api.middleware.rate_limit import general_rate_limit
from fitness_api.models.schemas import LogActivityRequest, UpdateActivityRequest
from fitness_api.services.activity_service import PERIOD_DAYS, ActivityService
from fitness_api.services.user_service import UserService
from fitness_api.utils.responses import ok
from fitness_api.utils.validators import resolve_date_range, to_day, validate_period

router = APIRouter(prefix="/api/activity")

TimelineType = Literal["workout", "meal", "achievement"]


def summary_range(
    period: str, start_date: Optional[datetime], end_date: Optional[datetime]
) -> Tuple[datetime, datetime]:
    """
    Explicit start/end win over the named period

    Returns:
        (start, end) naive UTC datetimes
    """
    if start_date and end_date:
        return resolve_date_range(start_date, end_date, 0)
    validate_period(period)
    end = utcnow()
    start = datetime.combine(end.date() - timedelta(days=PERIOD_DAYS[period]), time.min)
    return start, end


async def _log(session: AsyncSession, user: User, payload: LogActivityRequest):
    result = await ActivityService.log_activity(
        session,
        user,
        payload.activity_type,
        payload.activity_data.model_dump(exclude_none=True),
        to_day(payload.date),
        payload.points,
    )
    return ok(result, "Activity logged successfully")


async def _timeline(session, user_id, start_date, end_date, activity_type, page, limit):
    start, end = resolve_date_range(start_date, end_date, 30)
    result = await ActivityService.timeline(session, user_id, start, end, activity_type, page, limit)
    return ok(result)


async def _summary(session, user_id, period, start_date, end_date):
    start, end = summary_range(period, start_date, end_date)
    return ok(await ActivityService.summary(session, user_id, start, end))


async def _update(session, user_id, activity_id, payload: UpdateActivityRequest):
    activity = await ActivityService.update_activity(
        session, user_id, activity_id, payload.model_dump(exclude_none=True)
    )
    return ok(activity.to_dict(), "Activity updated successfully")


# Caller's own activity

@router.post(
    "/log",
    status_code=201,
    dependencies=[Depends(general_rate_limit), Depends(audit("activity.log"))],
)
async def log_activity(
    payload: LogActivityRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return await _log(session, user, payload)


@router.get("/timeline")
async def get_timeline(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    type: Optional[TimelineType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return await _timeline(session, user.id, start_date, end_date, type, page, limit)


@router.get("/summary")
async def get_summary(
    period: str = "week",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return await _summary(session, user.id, period, start_date, end_date)


@router.put("/{activity_id}", dependencies=[Depends(audit("activity.update"))])
async def update_activity(
    activity_id: str,
    payload: UpdateActivityRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return await _update(session, user.id, activity_id, payload)


# Admin access to any user's activity

@router.post(
    "/{user_id}/log",
    status_code=201,
    dependencies=[Depends(general_rate_limit), Depends(audit("activity.log"))],
)
async def log_activity_for_user(
    user_id: str,
    payload: LogActivityRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    return await _log(session, user, payload)


@router.get("/{user_id}/timeline")
async def get_user_timeline(
    user_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    type: Optional[TimelineType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    return await _timeline(session, user_id, start_date, end_date, type, page, limit)


@router.get("/{user_id}/summary")
async def get_user_summary(
    user_id: str,
    period: str = "week",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    return await _summary(session, user_id, period, start_date, end_date)


@router.put("/{user_id}/{activity_id}", dependencies=[Depends(audit("activity.update"))])
async def update_user_activity(
    user_id: str,
    activity_id: str,
    payload: UpdateActivityRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    return await _update(session, user_id, activity_id, payload)
