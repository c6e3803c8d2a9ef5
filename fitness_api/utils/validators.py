"""
Validation utilities shared by the route modules
"""
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from fitness_api.database.models import utcnow
from fitness_api.utils.errors import ValidationError


def validate_period(period: str, allowed=("day", "week", "month")) -> str:
    """
    Validate time period parameter

    Args:
        period: Period to validate
        allowed: Accepted values

    Returns:
        Validated period

    Raises:
        ValidationError: If period is invalid
    """
    if period not in allowed:
        quoted = ", ".join(f"'{value}'" for value in allowed)
        raise ValidationError(f"Invalid period. Must be one of {quoted}")
    return period


def resolve_date_range(
    start: Optional[datetime],
    end: Optional[datetime],
    default_days: int,
) -> Tuple[datetime, datetime]:
    """
    Fill in a missing start/end and check ordering

    Args:
        start: Requested range start
        end: Requested range end
        default_days: Window size used when start is missing

    Returns:
        (start, end) as naive UTC datetimes
    """
    end = naive_utc(end) if end else utcnow()
    start = naive_utc(start) if start else end - timedelta(days=default_days)
    if start > end:
        raise ValidationError("start_date must be before end_date")
    return start, end


def naive_utc(value: datetime) -> datetime:
    """Convert an aware timestamp to naive UTC"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_day(value: Optional[datetime]) -> date:
    """Calendar day of a timestamp (today when missing)"""
    if value is None:
        return utcnow().date()
    return naive_utc(value).date()


def pagination(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total,
        "has_next": page < total_pages,
        "has_prev": page > 1,
        "limit": limit,
    }
