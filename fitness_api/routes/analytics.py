"""
Analytics endpoints
"""
from datetime import date, datetime, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User, utcnow
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit, client_ip
from fitness_api.middleware.auth import get_current_user, require_admin
from fitness_api.middleware.rate_limit import general_rate_limit
from fitness_api.models.schemas import EventType, LogEventRequest
from fitness_api.services.analytics_service import AnalyticsService
from fitness_api.services.user_service import UserService
from fitness_api.utils.responses import ok
from fitness_api.utils.validators import naive_utc, resolve_date_range

router = APIRouter(prefix="/api/analytics")

AggregationPeriod = Literal["daily", "weekly", "monthly"]


@router.get("/performance")
async def performance_metrics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    event_type: EventType = "performance",
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    """API response times and error counts (defaults to the last 24 hours)"""
    end = naive_utc(end_date) if end_date else utcnow()
    start = naive_utc(start_date) if start_date else end - timedelta(hours=24)
    return ok(await AnalyticsService.performance(session, start, end, event_type))


@router.get("/workout/daily")
async def daily_workout_analytics(
    day: Optional[date] = Query(None, alias="date"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return ok(await AnalyticsService.daily_workout(session, user.id, day or utcnow().date()))


@router.get("/workout/weekly")
async def weekly_workout_analytics(
    weeks: int = Query(4, ge=1, le=52),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return ok(await AnalyticsService.weekly_workout(session, user.id, weeks))


@router.post(
    "/{user_id}/events",
    status_code=201,
    dependencies=[Depends(general_rate_limit), Depends(audit("analytics.event_log"))],
)
async def log_event(
    user_id: str,
    payload: LogEventRequest,
    request: Request,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    await UserService.get_user(session, user_id)
    data = payload.model_dump(exclude_none=True)
    data["ip_address"] = str(payload.ip_address) if payload.ip_address else client_ip(request)
    if payload.timestamp:
        data["timestamp"] = naive_utc(payload.timestamp)
    event = await AnalyticsService.log_event(session, user_id, data)
    return ok(
        {"event_id": event.id, "timestamp": event.timestamp.isoformat()},
        "Event logged successfully",
    )


@router.get("/{user_id}/engagement")
async def engagement_metrics(
    user_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    start, end = resolve_date_range(start_date, end_date, 30)
    return ok(await AnalyticsService.engagement(session, user_id, start, end))


@router.get("/{user_id}/aggregation")
async def aggregated_data(
    user_id: str,
    period: AggregationPeriod = "daily",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=365),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    start, end = resolve_date_range(start_date, end_date, 30)
    return ok(await AnalyticsService.aggregation(session, user_id, period, start, end, limit))


@router.post("/{user_id}/aggregation", dependencies=[Depends(audit("analytics.aggregate"))])
async def store_aggregates(
    user_id: str,
    period: AggregationPeriod = "daily",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    start, end = resolve_date_range(start_date, end_date, 30)
    stored = await AnalyticsService.persist_aggregates(session, user_id, period, start, end)
    return ok({"period": period, "aggregated_data": stored, "total_periods": len(stored)}, "Aggregates stored")
