"""
SQLAlchemy table definitions
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (stored without tz info on every backend)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


DEFAULT_PRIVACY_SETTINGS = {
    "share_basic_metrics": True,
    "share_body_composition": False,
    "share_health_conditions": False,
    "share_progress_photos": False,
    "share_workout_data": True,
    "share_nutrition_data": False,
    "profile_visibility": "friends",
    "allow_health_data_export": True,
}

DEFAULT_PREFERENCES = {
    "notifications": {
        "workout_reminders": True,
        "meal_reminders": True,
        "achievement_alerts": True,
        "social_updates": False,
        "weekly_reports": True,
        "push_notifications": True,
        "email_notifications": True,
        "sms_notifications": False,
    },
    "app_configuration": {
        "theme": "auto",
        "language": "en",
        "timezone": "UTC",
        "units": "metric",
        "start_of_week": "monday",
        "auto_sync": True,
    },
    "workout": {
        "rest_timer_sound": True,
        "form_tips": True,
        "auto_progress_photos": False,
        "default_rest_time": 60,
    },
    "diet": {
        "calorie_goal_reminders": True,
        "meal_plan_notifications": True,
        "nutrition_insights": True,
        "water_reminders": True,
    },
}


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(30), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    last_login = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    demographics = Column(JSON, nullable=False, default=dict)
    fitness_profile = Column(JSON, nullable=False, default=dict)
    body_composition = Column(JSON, nullable=False, default=dict)
    active_plans = Column(JSON, nullable=False, default=dict)
    branches = Column(JSON, nullable=False, default=list)
    current_macros = Column(JSON, nullable=False, default=dict)
    total_points = Column(Integer, nullable=False, default=0)
    privacy_settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_PRIVACY_SETTINGS))
    preferences = Column(JSON, nullable=True)
    device_tokens = Column(JSON, nullable=False, default=list)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_public(self) -> dict:
        """Serialized user without credentials"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "demographics": self.demographics or {},
            "fitness_profile": self.fitness_profile or {},
            "body_composition": self.body_composition or {},
            "active_plans": self.active_plans or {},
            "branches": self.branches or [],
            "current_macros": self.current_macros or {},
            "total_points": self.total_points or 0,
            "privacy_settings": self.privacy_settings or dict(DEFAULT_PRIVACY_SETTINGS),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class UserSession(TimestampMixin, Base):
    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(Text, nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    last_accessed = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    device_info = Column(JSON, nullable=False, default=dict)
    network_info = Column(JSON, nullable=False, default=dict)

    def is_expired(self, now: datetime = None) -> bool:
        return self.expires_at <= (now or utcnow())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "expires_at": self.expires_at.isoformat(),
            "last_accessed": self.last_accessed.isoformat() if self.last_accessed else None,
            "is_active": self.is_active,
            "device_info": self.device_info or {},
            "network_info": self.network_info or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def empty_workout_activity() -> dict:
    return {
        "assigned_workouts": 0,
        "completed_workouts": 0,
        "completion_percentage": 0,
        "workout_history": [],
    }


def empty_diet_activity() -> dict:
    return {
        "scheduled_meals": 0,
        "completed_meals": 0,
        "meal_history": [],
        "uploaded_meals": [],
    }


def empty_goals() -> dict:
    return {"daily_goals": {}, "achievements": []}


class UserActivity(TimestampMixin, Base):
    __tablename__ = "user_activities"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_user_activity_day"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    workout_activity = Column(JSON, nullable=False, default=empty_workout_activity)
    diet_activity = Column(JSON, nullable=False, default=empty_diet_activity)
    points_earned = Column(JSON, nullable=False, default=list)
    goals = Column(JSON, nullable=False, default=empty_goals)

    total_workouts = Column(Integer, nullable=False, default=0)
    total_meals = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    calories_consumed = Column(Float, nullable=False, default=0)
    calories_burned = Column(Float, nullable=False, default=0)
    active_minutes = Column(Integer, nullable=False, default=0)

    def refresh_summary(self) -> None:
        """Recompute the derived summary columns from the activity sections"""
        workout = self.workout_activity or {}
        diet = self.diet_activity or {}
        self.total_workouts = int(workout.get("completed_workouts") or 0)
        self.total_meals = int(diet.get("completed_meals") or 0)
        self.total_points = sum(int(entry.get("points") or 0) for entry in (self.points_earned or []))
        self.calories_consumed = float(
            sum(meal.get("calories") or 0 for meal in diet.get("uploaded_meals") or [])
        )

    def summary(self) -> dict:
        return {
            "total_workouts": self.total_workouts or 0,
            "total_meals": self.total_meals or 0,
            "total_points": self.total_points or 0,
            "calories_consumed": self.calories_consumed or 0,
            "calories_burned": self.calories_burned or 0,
            "active_minutes": self.active_minutes or 0,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "workout_activity": self.workout_activity or empty_workout_activity(),
            "diet_activity": self.diet_activity or empty_diet_activity(),
            "points_earned": self.points_earned or [],
            "goals": self.goals or empty_goals(),
            "summary": self.summary(),
        }


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(100), nullable=True, index=True)
    event_type = Column(String(30), nullable=False, index=True)
    event_name = Column(String(100), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    ip_address = Column(String(45), nullable=True)

    feature = Column(String(100), nullable=True)
    action = Column(String(100), nullable=True)
    screen = Column(String(100), nullable=True)
    duration = Column(Float, nullable=True)
    success = Column(Boolean, nullable=True)
    error_code = Column(String(100), nullable=True)
    event_metadata = Column(JSON, nullable=True)
    device_info = Column(JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "event_type": self.event_type,
            "event_name": self.event_name,
            "timestamp": self.timestamp.isoformat(),
            "ip_address": self.ip_address,
            "event_data": {
                "feature": self.feature,
                "action": self.action,
                "screen": self.screen,
                "duration": self.duration,
                "success": self.success,
                "error_code": self.error_code,
                "metadata": self.event_metadata,
            },
            "device_info": self.device_info,
        }


class AggregatedAnalytics(TimestampMixin, Base):
    __tablename__ = "aggregated_analytics"
    __table_args__ = (UniqueConstraint("user_id", "date", "period", name="uq_aggregated_bucket"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    period = Column(String(10), nullable=False)
    metrics = Column(JSON, nullable=False, default=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "period": self.period,
            "metrics": self.metrics or {},
        }


class BodyMetricsHistory(TimestampMixin, Base):
    __tablename__ = "body_metrics_history"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recorded_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    demographics = Column(JSON, nullable=False, default=dict)
    body_composition = Column(JSON, nullable=False, default=dict)
    source = Column(String(20), nullable=False, default="manual")
    notes = Column(String(500), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "recorded_at": self.recorded_at.isoformat(),
            "demographics": self.demographics or {},
            "body_composition": self.body_composition or {},
            "source": self.source,
            "notes": self.notes,
        }


class Branch(TimestampMixin, Base):
    __tablename__ = "branches"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    city = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    machines = Column(JSON, nullable=False, default=list)


class WorkoutPlan(TimestampMixin, Base):
    __tablename__ = "workout_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(String(100), nullable=False, index=True)
    plan_name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    source = Column(String(20), nullable=False, default="external")
    cache_expiry = Column(DateTime, nullable=False)
    last_refreshed = Column(DateTime, nullable=False, default=utcnow)
    next_refresh_date = Column(DateTime, nullable=False)
    workout_days = Column(JSON, nullable=False, default=list)
    weekly_schedule = Column(Integer, nullable=False, default=3)
    plan_duration = Column(Integer, nullable=True)
    difficulty_level = Column(String(20), nullable=True)
    user_context = Column(JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "plan_name": self.plan_name,
            "is_active": self.is_active,
            "source": self.source,
            "cache_expiry": self.cache_expiry.isoformat(),
            "last_refreshed": self.last_refreshed.isoformat(),
            "next_refresh_date": self.next_refresh_date.isoformat(),
            "workout_days": self.workout_days or [],
            "weekly_schedule": self.weekly_schedule,
            "plan_duration": self.plan_duration,
            "difficulty_level": self.difficulty_level,
        }


class DietPlan(TimestampMixin, Base):
    __tablename__ = "diet_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(String(100), nullable=False, index=True)
    plan_name = Column(String(200), nullable=False)
    target_weight_kg = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    source = Column(String(20), nullable=False, default="external")
    cache_expiry = Column(DateTime, nullable=False)
    last_refreshed = Column(DateTime, nullable=False, default=utcnow)
    next_refresh_date = Column(DateTime, nullable=False)
    total_macros = Column(JSON, nullable=False, default=dict)
    meal_plan = Column(JSON, nullable=False, default=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "plan_name": self.plan_name,
            "target_weight_kg": self.target_weight_kg,
            "is_active": self.is_active,
            "source": self.source,
            "cache_expiry": self.cache_expiry.isoformat(),
            "last_refreshed": self.last_refreshed.isoformat(),
            "next_refresh_date": self.next_refresh_date.isoformat(),
            "total_macros": self.total_macros or {},
            "meal_plan": self.meal_plan or [],
        }
