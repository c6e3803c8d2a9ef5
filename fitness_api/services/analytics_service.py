"""
Analytics service - usage events, engagement metrics, aggregation and workout analytics
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import AggregatedAnalytics, AnalyticsEvent, UserActivity, utcnow
from fitness_api.database.queries import execute_with_retry
from fitness_api.services.activity_service import compute_streaks
from fitness_api.services.cache import get_cache

logger = logging.getLogger(__name__)

EVENT_RETENTION_DAYS = 90
AGGREGATION_PERIODS = ("daily", "weekly", "monthly")
OVERALL_EVENT_TYPES = ("app_interaction", "api_call", "performance")
WORKOUT_CACHE_PREFIX = "analytics:workout:"
DAILY_CACHE_TTL = 3600
WEEKLY_CACHE_TTL = 86400
MS_PER_HOUR = 3_600_000


def _day_str(value: Any) -> str:
    # date() comes back as a string on sqlite and a date on postgres
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def bucket_start(moment: datetime, period: str) -> date:
    """First day of the daily / ISO-weekly / monthly bucket containing a timestamp"""
    day = moment.date()
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    if period == "monthly":
        return day.replace(day=1)
    return day


def engagement_score(total_duration_ms: float) -> float:
    """Ten points per hour of use, capped at 100"""
    return round(min(100.0, total_duration_ms / MS_PER_HOUR * 10), 2)


class AnalyticsService:
    """Service for analytics operations"""

    @staticmethod
    async def log_event(session: AsyncSession, user_id: str, payload: Dict[str, Any]) -> AnalyticsEvent:
        """
        Persist one analytics event

        Args:
            session: Database session
            user_id: Owner of the event
            payload: Validated event body (event_data flattened into columns)

        Returns:
            The stored event
        """
        event_data = payload.get("event_data") or {}
        event = AnalyticsEvent(
            user_id=user_id,
            session_id=payload.get("session_id"),
            event_type=payload["event_type"],
            event_name=payload["event_name"],
            timestamp=payload.get("timestamp") or utcnow(),
            ip_address=payload.get("ip_address"),
            feature=event_data.get("feature"),
            action=event_data.get("action"),
            screen=event_data.get("screen"),
            duration=event_data.get("duration"),
            success=event_data.get("success"),
            error_code=event_data.get("error_code"),
            event_metadata=event_data.get("metadata"),
            device_info=payload.get("device_info"),
        )
        session.add(event)
        await session.commit()
        await session.refresh(event)
        logger.info("Analytics event %s (%s) logged for user %s", event.event_name, event.event_type, user_id)
        return event

    @staticmethod
    async def engagement(session: AsyncSession, user_id: str, start: datetime, end: datetime) -> Dict[str, Any]:
        in_range = [
            AnalyticsEvent.user_id == user_id,
            AnalyticsEvent.timestamp >= start,
            AnalyticsEvent.timestamp <= end,
        ]

        totals = await execute_with_retry(
            session,
            select(func.count(AnalyticsEvent.id), func.count(distinct(AnalyticsEvent.session_id))).where(*in_range),
        )
        total_events, unique_sessions = totals.one()

        features = await execute_with_retry(
            session,
            select(
                AnalyticsEvent.feature,
                func.count(AnalyticsEvent.id).label("count"),
                func.max(AnalyticsEvent.timestamp),
            )
            .where(*in_range, AnalyticsEvent.event_type == "feature_usage")
            .group_by(AnalyticsEvent.feature)
            .order_by(func.count(AnalyticsEvent.id).desc())
            .limit(10),
        )
        feature_usage = [
            {"feature": feature, "count": count, "last_used": _iso(last_used)}
            for feature, count, last_used in features.all()
        ]

        screens = await execute_with_retry(
            session,
            select(
                AnalyticsEvent.screen,
                func.sum(AnalyticsEvent.duration).label("total_duration"),
                func.count(AnalyticsEvent.id),
            )
            .where(
                *in_range,
                AnalyticsEvent.event_type == "app_interaction",
                AnalyticsEvent.duration.is_not(None),
            )
            .group_by(AnalyticsEvent.screen)
            .order_by(func.sum(AnalyticsEvent.duration).desc()),
        )
        screen_time = [
            {"screen": screen, "total_duration": float(total or 0), "visits": visits}
            for screen, total, visits in screens.all()
        ]

        day = func.date(AnalyticsEvent.timestamp)
        days = await execute_with_retry(
            session,
            select(
                day.label("day"),
                func.count(AnalyticsEvent.id),
                func.count(distinct(AnalyticsEvent.feature)),
                func.coalesce(func.sum(AnalyticsEvent.duration), 0),
            )
            .where(*in_range)
            .group_by(day)
            .order_by(day),
        )
        daily_stats = [
            {
                "date": _day_str(value),
                "events": events,
                "unique_features": unique_features,
                "total_duration": float(total_duration),
            }
            for value, events, unique_features, total_duration in days.all()
        ]

        active_days = len(daily_stats)
        return {
            "summary": {
                "total_events": total_events,
                "unique_sessions": unique_sessions,
                "active_days": active_days,
                "average_events_per_day": round(total_events / active_days, 2) if active_days else 0,
            },
            "feature_usage": feature_usage,
            "screen_time": screen_time,
            "daily_stats": daily_stats,
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        }

    @staticmethod
    async def compute_aggregates(
        session: AsyncSession, user_id: str, period: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        """
        Bucket raw events into daily, ISO-weekly or monthly metrics

        Returns:
            [{"date", "period", "metrics"}] ordered by bucket start
        """
        result = await execute_with_retry(
            session,
            select(
                AnalyticsEvent.timestamp,
                AnalyticsEvent.session_id,
                AnalyticsEvent.event_type,
                AnalyticsEvent.feature,
                AnalyticsEvent.screen,
                AnalyticsEvent.duration,
            ).where(
                AnalyticsEvent.user_id == user_id,
                AnalyticsEvent.timestamp >= start,
                AnalyticsEvent.timestamp <= end,
            ),
        )

        buckets: Dict[date, Dict[str, Any]] = {}
        for timestamp, session_id, event_type, feature, screen, duration in result.all():
            bucket = buckets.setdefault(
                bucket_start(timestamp, period),
                {"sessions": set(), "screens": set(), "features": {}, "duration": 0.0, "api_calls": 0, "errors": 0},
            )
            if session_id:
                bucket["sessions"].add(session_id)
            if screen:
                bucket["screens"].add(screen)
            if feature:
                bucket["features"][feature] = bucket["features"].get(feature, 0) + 1
            bucket["duration"] += duration or 0
            if event_type == "api_call":
                bucket["api_calls"] += 1
            elif event_type == "error":
                bucket["errors"] += 1

        return [
            {
                "date": start_day.isoformat(),
                "period": period,
                "metrics": {
                    "session_count": len(bucket["sessions"]),
                    "total_duration": bucket["duration"],
                    "feature_usage": bucket["features"],
                    "api_calls": bucket["api_calls"],
                    "errors": bucket["errors"],
                    "unique_screens": len(bucket["screens"]),
                    "engagement_score": engagement_score(bucket["duration"]),
                },
            }
            for start_day, bucket in sorted(buckets.items())
        ]

    @staticmethod
    async def aggregation(
        session: AsyncSession, user_id: str, period: str, start: datetime, end: datetime, limit: int = 50
    ) -> Dict[str, Any]:
        result = await execute_with_retry(
            session,
            select(AggregatedAnalytics)
            .where(
                AggregatedAnalytics.user_id == user_id,
                AggregatedAnalytics.period == period,
                AggregatedAnalytics.date >= start.date(),
                AggregatedAnalytics.date <= end.date(),
            )
            .order_by(AggregatedAnalytics.date.desc())
            .limit(limit),
        )
        stored = [row.to_dict() for row in result.scalars().all()]
        date_range = {"start_date": start.isoformat(), "end_date": end.isoformat()}

        if not stored:
            computed = await AnalyticsService.compute_aggregates(session, user_id, period, start, end)
            return {
                "aggregated_data": computed,
                "period": period,
                "is_real_time": True,
                "summary": {"total_periods": len(computed), "date_range": date_range},
            }

        total_sessions = sum(item["metrics"].get("session_count", 0) for item in stored)
        total_duration = sum(item["metrics"].get("total_duration", 0) for item in stored)
        average_engagement = sum(item["metrics"].get("engagement_score", 0) for item in stored) / len(stored)
        return {
            "aggregated_data": stored,
            "period": period,
            "is_real_time": False,
            "summary": {
                "total_periods": len(stored),
                "total_sessions": total_sessions,
                "total_duration": total_duration,
                "average_engagement": round(average_engagement, 2),
                "date_range": date_range,
            },
        }

    @staticmethod
    async def persist_aggregates(
        session: AsyncSession, user_id: str, period: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        """Compute buckets and upsert them into aggregated_analytics"""
        computed = await AnalyticsService.compute_aggregates(session, user_id, period, start, end)
        for item in computed:
            bucket_day = date.fromisoformat(item["date"])
            result = await execute_with_retry(
                session,
                select(AggregatedAnalytics).where(
                    AggregatedAnalytics.user_id == user_id,
                    AggregatedAnalytics.period == period,
                    AggregatedAnalytics.date == bucket_day,
                ),
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(AggregatedAnalytics(user_id=user_id, date=bucket_day, period=period, metrics=item["metrics"]))
            else:
                row.metrics = item["metrics"]
        await session.commit()
        logger.info("Stored %d %s aggregates for user %s", len(computed), period, user_id)
        return computed

    @staticmethod
    async def performance(
        session: AsyncSession, start: datetime, end: datetime, event_type: str = "performance"
    ) -> Dict[str, Any]:
        in_range = [AnalyticsEvent.timestamp >= start, AnalyticsEvent.timestamp <= end]
        succeeded = case((AnalyticsEvent.success.is_(True), 1), else_=0)
        failed = case((AnalyticsEvent.success.is_(False), 1), else_=0)

        api = await execute_with_retry(
            session,
            select(
                AnalyticsEvent.action,
                func.avg(AnalyticsEvent.duration),
                func.min(AnalyticsEvent.duration),
                func.max(AnalyticsEvent.duration),
                func.count(AnalyticsEvent.id),
                func.avg(succeeded),
            )
            .where(*in_range, AnalyticsEvent.event_type == event_type, AnalyticsEvent.duration.is_not(None))
            .group_by(AnalyticsEvent.action)
            .order_by(func.avg(AnalyticsEvent.duration).desc()),
        )
        api_metrics = [
            {
                "action": action,
                "avg_duration": round(float(avg or 0), 2),
                "min_duration": float(low or 0),
                "max_duration": float(high or 0),
                "total_calls": calls,
                "success_rate": round(float(rate or 0) * 100, 2),
            }
            for action, avg, low, high, calls, rate in api.all()
        ]

        errors = await execute_with_retry(
            session,
            select(AnalyticsEvent.error_code, func.count(AnalyticsEvent.id), func.max(AnalyticsEvent.timestamp))
            .where(*in_range, AnalyticsEvent.event_type == "error")
            .group_by(AnalyticsEvent.error_code)
            .order_by(func.count(AnalyticsEvent.id).desc()),
        )
        error_metrics = [
            {"error_code": code, "count": count, "last_occurrence": _iso(last)}
            for code, count, last in errors.all()
        ]

        overall_result = await execute_with_retry(
            session,
            select(
                func.count(AnalyticsEvent.id),
                func.avg(AnalyticsEvent.duration),
                func.coalesce(func.sum(succeeded), 0),
                func.coalesce(func.sum(failed), 0),
            ).where(*in_range, AnalyticsEvent.event_type.in_(OVERALL_EVENT_TYPES)),
        )
        total, avg_response, successful, unsuccessful = overall_result.one()
        return {
            "api_metrics": api_metrics,
            "error_metrics": error_metrics,
            "overall": {
                "total_events": total,
                "avg_response_time": round(float(avg_response or 0), 2),
                "successful_requests": int(successful),
                "failed_requests": int(unsuccessful),
                "success_rate": round(successful / total * 100, 2) if total else 0,
                "error_rate": round(unsuccessful / total * 100, 2) if total else 0,
            },
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        }

    @staticmethod
    async def daily_workout(session: AsyncSession, user_id: str, day: date) -> Dict[str, Any]:
        """
        Completion, volume and 7-day consistency for one day (cached for an hour)
        """
        cache = get_cache()
        cache_key = f"{WORKOUT_CACHE_PREFIX}daily:{user_id}:{day.isoformat()}"
        cached = await cache.get(cache_key)
        if cached is not None:
            logger.info("Returning cached daily workout analytics for user %s", user_id)
            return cached

        window_start = day - timedelta(days=6)
        result = await execute_with_retry(
            session,
            select(UserActivity).where(
                UserActivity.user_id == user_id,
                UserActivity.date >= window_start,
                UserActivity.date <= day,
            ),
        )
        rows = {row.date: row for row in result.scalars().all()}
        today = rows.get(day)

        history = ((today.workout_activity or {}).get("workout_history") or []) if today else []
        active_days = sum(1 for row in rows.values() if (row.total_workouts or 0) > 0)
        payload = {
            "date": day.isoformat(),
            "completion_percentage": (today.workout_activity or {}).get("completion_percentage", 0) if today else 0,
            "consistency_score": round(active_days / 7 * 100, 2),
            "performance_metrics": {
                "total_workouts": today.total_workouts if today else 0,
                "total_exercises": len(history),
                "total_sets": sum(int(item.get("completed_sets") or 0) for item in history),
                "total_reps": sum(int(item.get("completed_reps") or 0) for item in history),
                "calories_burned": today.calories_burned if today else 0,
                "active_minutes": today.active_minutes if today else 0,
            },
        }
        await cache.set(cache_key, payload, DAILY_CACHE_TTL)
        return payload

    @staticmethod
    async def weekly_workout(session: AsyncSession, user_id: str, weeks: int = 4) -> Dict[str, Any]:
        """
        Per ISO week workout totals and streaks (cached for a day)
        """
        cache = get_cache()
        cache_key = f"{WORKOUT_CACHE_PREFIX}weekly:{user_id}:{weeks}"
        cached = await cache.get(cache_key)
        if cached is not None:
            logger.info("Returning cached weekly workout analytics for user %s", user_id)
            return cached

        end = utcnow().date()
        start = end - timedelta(days=weeks * 7)
        result = await execute_with_retry(
            session,
            select(UserActivity)
            .where(UserActivity.user_id == user_id, UserActivity.date >= start, UserActivity.date <= end)
            .order_by(UserActivity.date.asc()),
        )
        rows = list(result.scalars().all())

        weekly: Dict[date, Dict[str, int]] = {}
        for row in rows:
            workout = row.workout_activity or {}
            week = weekly.setdefault(
                row.date - timedelta(days=row.date.weekday()), {"workouts": 0, "assigned": 0, "completed": 0}
            )
            week["workouts"] += row.total_workouts or 0
            week["assigned"] += int(workout.get("assigned_workouts") or 0)
            week["completed"] += int(workout.get("completed_workouts") or 0)

        weekly_stats = [
            {
                "week_start": week_start.isoformat(),
                "week_end": (week_start + timedelta(days=6)).isoformat(),
                "total_workouts": stats["workouts"],
                "completion_rate": (
                    round(min(100.0, stats["completed"] / stats["assigned"] * 100), 2) if stats["assigned"] else 0
                ),
            }
            for week_start, stats in sorted(weekly.items())
        ]

        workout_days = [row.date for row in rows if (row.total_workouts or 0) > 0]
        streaks = compute_streaks(workout_days, today=end)
        payload = {
            "weeks": weeks,
            "weekly_stats": weekly_stats,
            "workout_streaks": {
                "current_streak": streaks["current"],
                "longest_streak": streaks["max"],
                "last_workout": workout_days[-1].isoformat() if workout_days else None,
            },
        }
        await cache.set(cache_key, payload, WEEKLY_CACHE_TTL)
        return payload

    @staticmethod
    async def purge_expired(session: AsyncSession, retention_days: int = EVENT_RETENTION_DAYS) -> int:
        """Delete analytics events older than the retention window"""
        cutoff = utcnow() - timedelta(days=retention_days)
        result = await session.execute(delete(AnalyticsEvent).where(AnalyticsEvent.timestamp < cutoff))
        await session.commit()
        logger.info("Purged %d analytics events older than %s", result.rowcount, cutoff.date())
        return result.rowcount
