"""
Pydantic models for request validation
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import EmailStr, Field, IPvAnyAddress, field_validator, model_validator

from fitness_api.middleware.sanitization import SanitizedModel

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
NAME_PATTERN = r"^[a-zA-Z\s\-']+$"

Gender = Literal["Male", "Female", "Other"]
FitnessLevel = Literal["beginner", "intermediate", "advanced"]
FitnessGoal = Literal["weight_loss", "weight_gain", "muscle_building", "maintenance"]


class _EmailModel(SanitizedModel):
    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def _lower_email(cls, value):
        return value.lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Profile fragments
# ---------------------------------------------------------------------------

class Demographics(SanitizedModel):
    age: Optional[int] = Field(None, ge=13, le=120)
    height_cm: Optional[float] = Field(None, ge=50, le=300)
    weight_kg: Optional[float] = Field(None, ge=20, le=500)
    gender: Optional[Gender] = None
    target_weight_kg: Optional[float] = Field(None, ge=20, le=500)
    bmi: Optional[float] = Field(None, ge=10, le=50)
    allergies: Optional[List[str]] = None
    activity_level: Optional[str] = None


class FitnessProfile(SanitizedModel):
    level: Optional[FitnessLevel] = None
    rest_day: Optional[str] = None
    goal: Optional[FitnessGoal] = None
    goal_weight_diff: Optional[float] = None
    health_conditions: Optional[List[str]] = None


class BodyComposition(SanitizedModel):
    body_age: Optional[float] = Field(None, ge=10, le=120)
    fat_mass_kg: Optional[float] = Field(None, ge=0, le=200)
    skeletal_muscle_mass_kg: Optional[float] = Field(None, ge=0, le=100)
    rohrer_index: Optional[float] = Field(None, ge=5, le=30)
    body_fat_percentage: Optional[float] = Field(None, ge=0, le=100)
    waist_to_hip_ratio: Optional[float] = Field(None, ge=0.5, le=2.0)
    visceral_fat_area_cm2: Optional[float] = Field(None, ge=0, le=500)
    visceral_fat_level: Optional[float] = Field(None, ge=1, le=30)
    subcutaneous_fat_mass_kg: Optional[float] = Field(None, ge=0, le=100)
    extracellular_water_l: Optional[float] = Field(None, ge=0, le=50)
    body_cell_mass_kg: Optional[float] = Field(None, ge=0, le=100)
    bcm_to_ecw_ratio: Optional[float] = Field(None, ge=0, le=5)
    ecw_to_tbw_ratio: Optional[float] = Field(None, ge=0, le=1)
    tbw_to_ffm_ratio: Optional[float] = Field(None, ge=0, le=1)
    basal_metabolic_rate_kcal: Optional[float] = Field(None, ge=800, le=5000)
    protein_grams: Optional[float] = Field(None, ge=0, le=50000)
    minerals_mg: Optional[float] = Field(None, ge=0, le=10000)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(_EmailModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=3, max_length=128)
    confirm_password: str
    name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Password confirmation does not match password")
        return self


class CreateUserRequest(_EmailModel):
    """Admin user creation payload"""
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=3, max_length=128)
    name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    role: Literal["user", "admin"] = "user"
    demographics: Optional[Demographics] = None
    fitness_profile: Optional[FitnessProfile] = None
    body_composition: Optional[BodyComposition] = None
    current_macros: Optional[Dict[str, Any]] = None
    total_points: int = Field(0, ge=0)


class LoginRequest(_EmailModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshTokenRequest(SanitizedModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(SanitizedModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(_EmailModel):
    email: EmailStr


class ResetPasswordRequest(SanitizedModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=3, max_length=128)


class VerifyEmailRequest(SanitizedModel):
    token: str = Field(..., min_length=1)


class ChangePasswordRequest(SanitizedModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=3, max_length=128)


class FirebaseLoginRequest(SanitizedModel):
    id_token: str = Field(..., min_length=1)


class UpdateProfileRequest(SanitizedModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    demographics: Optional[Demographics] = None
    fitness_profile: Optional[FitnessProfile] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UpdateStatusRequest(SanitizedModel):
    is_active: bool


class JoinBranchRequest(SanitizedModel):
    branch_id: str = Field(..., min_length=1)


class BodyMetricsUpdate(SanitizedModel):
    demographics: Optional[Demographics] = None
    body_composition: Optional[BodyComposition] = None
    notes: Optional[str] = Field(None, max_length=500)


class PrivacySettingsUpdate(SanitizedModel):
    share_basic_metrics: Optional[bool] = None
    share_body_composition: Optional[bool] = None
    share_health_conditions: Optional[bool] = None
    share_progress_photos: Optional[bool] = None
    share_workout_data: Optional[bool] = None
    share_nutrition_data: Optional[bool] = None
    profile_visibility: Optional[Literal["public", "friends", "private"]] = None
    allow_health_data_export: Optional[bool] = None


class NotificationPreferences(SanitizedModel):
    workout_reminders: Optional[bool] = None
    meal_reminders: Optional[bool] = None
    achievement_alerts: Optional[bool] = None
    social_updates: Optional[bool] = None
    weekly_reports: Optional[bool] = None
    push_notifications: Optional[bool] = None
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None


class AppConfiguration(SanitizedModel):
    theme: Optional[Literal["light", "dark", "auto"]] = None
    language: Optional[str] = Field(None, min_length=2, max_length=5)
    timezone: Optional[str] = None
    units: Optional[Literal["metric", "imperial"]] = None
    start_of_week: Optional[Literal["monday", "sunday"]] = None
    auto_sync: Optional[bool] = None


class WorkoutPreferences(SanitizedModel):
    rest_timer_sound: Optional[bool] = None
    form_tips: Optional[bool] = None
    auto_progress_photos: Optional[bool] = None
    default_rest_time: Optional[int] = Field(None, ge=30, le=300)


class DietPreferences(SanitizedModel):
    calorie_goal_reminders: Optional[bool] = None
    meal_plan_notifications: Optional[bool] = None
    nutrition_insights: Optional[bool] = None
    water_reminders: Optional[bool] = None


class PreferencesUpdate(SanitizedModel):
    notifications: Optional[NotificationPreferences] = None
    app_configuration: Optional[AppConfiguration] = None
    workout: Optional[WorkoutPreferences] = None
    diet: Optional[DietPreferences] = None


class DeviceTokenRequest(SanitizedModel):
    token: str = Field(..., min_length=1, max_length=500)
    platform: Literal["ios", "android", "web"]
    device_id: str = Field(..., min_length=1, max_length=100)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class DeviceInfo(SanitizedModel):
    device_type: str = Field(..., max_length=100)
    os: str = Field(..., max_length=50)
    app_version: str = Field(..., max_length=20)
    user_agent: str = Field(..., max_length=500)


class Location(SanitizedModel):
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)


class NetworkInfo(SanitizedModel):
    ip_address: IPvAnyAddress
    location: Optional[Location] = None


class CreateSessionRequest(SanitizedModel):
    device_info: DeviceInfo
    network_info: NetworkInfo
    expiration_hours: int = Field(24, ge=1, le=720)


class UpdateSessionRequest(SanitizedModel):
    device_info: Optional[DeviceInfo] = None
    network_info: Optional[NetworkInfo] = None


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

class WorkoutDetails(SanitizedModel):
    exercise_id: str = Field(..., min_length=1)
    exercise_name: str = Field(..., max_length=100)
    machine_id: Optional[str] = None
    completed_sets: int = Field(..., ge=0)
    completed_reps: Optional[int] = Field(None, ge=0)
    completed_seconds: Optional[float] = Field(None, ge=0)
    performance_notes: Optional[str] = Field(None, max_length=500)


class MealDetails(SanitizedModel):
    meal_type: Literal["Breakfast", "Lunch", "Dinner", "Snack"]
    meal_description: str = Field(..., max_length=500)
    was_on_schedule: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=300)


class Macros(SanitizedModel):
    carbs: float = Field(..., ge=0)
    fat: float = Field(..., ge=0)
    protein: float = Field(..., ge=0)
    fiber: float = Field(..., ge=0)


class UploadDetails(SanitizedModel):
    image_url: str = Field(..., pattern=r"^https?://.+\.(jpg|jpeg|png|gif|webp)$")
    calories: float = Field(..., ge=0)
    macros: Macros
    ai_version: str = Field(..., max_length=20)
    meal_detected: str = Field(..., max_length=200)
    is_verified: Optional[bool] = None


class AchievementDetails(SanitizedModel):
    achievement_id: str = Field(..., max_length=50)
    achievement_name: str = Field(..., max_length=100)


class ActivityData(SanitizedModel):
    workout_details: Optional[WorkoutDetails] = None
    meal_details: Optional[MealDetails] = None
    upload_details: Optional[UploadDetails] = None
    achievement: Optional[AchievementDetails] = None
    calories_burned: Optional[float] = Field(None, ge=0)
    active_minutes: Optional[float] = Field(None, ge=0)
    points_reason: Optional[str] = Field(None, max_length=200)


class LogActivityRequest(SanitizedModel):
    activity_type: str
    activity_data: ActivityData
    date: Optional[datetime] = None
    points: int = Field(0, ge=0)


class WorkoutActivityUpdate(SanitizedModel):
    assigned_workouts: Optional[int] = Field(None, ge=0)
    completed_workouts: Optional[int] = Field(None, ge=0)


class DietActivityUpdate(SanitizedModel):
    scheduled_meals: Optional[int] = Field(None, ge=0)
    completed_meals: Optional[int] = Field(None, ge=0)


class DailyGoals(SanitizedModel):
    workouts: Optional[int] = Field(None, ge=0)
    meals: Optional[int] = Field(None, ge=0)
    calories: Optional[float] = Field(None, ge=0)
    steps: Optional[int] = Field(None, ge=0)


class GoalsUpdate(SanitizedModel):
    daily_goals: Optional[DailyGoals] = None


class UpdateActivityRequest(SanitizedModel):
    workout_activity: Optional[WorkoutActivityUpdate] = None
    diet_activity: Optional[DietActivityUpdate] = None
    goals: Optional[GoalsUpdate] = None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

EventType = Literal["app_interaction", "api_call", "feature_usage", "performance", "error"]


class EventData(SanitizedModel):
    feature: Optional[str] = Field(None, max_length=50)
    action: Optional[str] = Field(None, max_length=50)
    screen: Optional[str] = Field(None, max_length=50)
    duration: Optional[float] = Field(None, ge=0)
    success: Optional[bool] = None
    error_code: Optional[str] = Field(None, max_length=20)
    metadata: Optional[Dict[str, Any]] = None


class EventDeviceInfo(SanitizedModel):
    device_type: Optional[str] = Field(None, max_length=50)
    os: Optional[str] = Field(None, max_length=30)
    app_version: Optional[str] = Field(None, max_length=20)


class LogEventRequest(SanitizedModel):
    event_type: EventType
    event_name: str = Field(..., min_length=1, max_length=100)
    event_data: Optional[EventData] = None
    session_id: Optional[str] = None
    device_info: Optional[EventDeviceInfo] = None
    ip_address: Optional[IPvAnyAddress] = None
    timestamp: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Plan integrations
# ---------------------------------------------------------------------------

class WorkoutPlanRequest(SanitizedModel):
    target_user_id: Optional[str] = None
    force_refresh: bool = False
    weekly_workout_days: Optional[int] = Field(None, ge=1, le=7)
    custom_preferences: Optional[Dict[str, Any]] = None


class DietPlanRequest(SanitizedModel):
    target_user_id: Optional[str] = None
    force_refresh: bool = False
    custom_preferences: Optional[Dict[str, Any]] = None
