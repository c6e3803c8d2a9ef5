"""
User management endpoints
"""
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit, record_data_access
from fitness_api.middleware.auth import require_admin, require_email_verification, require_user_or_admin
from fitness_api.middleware.rate_limit import general_rate_limit, register_rate_limit
from fitness_api.models.schemas import (
    BodyMetricsUpdate,
    CreateUserRequest,
    DeviceTokenRequest,
    JoinBranchRequest,
    PreferencesUpdate,
    PrivacySettingsUpdate,
    UpdateProfileRequest,
    UpdateStatusRequest,
)
from fitness_api.services.user_service import UserService
from fitness_api.utils.errors import AuthorizationError
from fitness_api.utils.responses import ok
from fitness_api.utils.validators import naive_utc, pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users")


# Static paths first so they are not captured by /{user_id}

@router.post(
    "/create",
    status_code=201,
    dependencies=[Depends(register_rate_limit), Depends(audit("user.create"))],
)
async def create_user(
    payload: CreateUserRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.create_user(session, payload.model_dump(exclude_none=True))
    return ok({"user": user.to_public()}, "User created successfully")


@router.get("/search")
async def search_users(
    request: Request,
    query: Optional[str] = Query(None, max_length=100),
    gender: Optional[Literal["Male", "Female", "Other"]] = None,
    fitness_level: Optional[Literal["beginner", "intermediate", "advanced"]] = None,
    city: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = None,
    email_verified: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    """
    Search users by name, username or email

    Args:
        query: Case-insensitive text matched against name, username and email
        city: Matched against the names of the user's branches
        page: Page number (1-based)
        limit: Page size
    """
    result = await UserService.search_users(
        session,
        query=query,
        gender=gender,
        fitness_level=fitness_level,
        city=city,
        is_active=is_active,
        email_verified=email_verified,
        page=page,
        limit=limit,
    )
    record_data_access(request, "users", [user.id for user in result["users"]])
    return ok(
        {
            "users": [user.to_public() for user in result["users"]],
            "pagination": pagination(result["total"], page, limit),
            "filters": {
                "query": query,
                "gender": gender,
                "fitness_level": fitness_level,
                "city": city,
                "is_active": is_active,
                "email_verified": email_verified,
            },
        }
    )


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    return ok({"user": user.to_public()})


@router.get("/{user_id}/profile")
async def get_profile(
    user_id: str,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    return ok(
        {
            "user_id": user.id,
            "name": user.name,
            "demographics": user.demographics or {},
            "fitness_profile": user.fitness_profile or {},
            "body_composition": user.body_composition or {},
            "current_macros": user.current_macros or {},
            "active_plans": user.active_plans or {},
            "total_points": user.total_points or 0,
        }
    )


@router.put("/{user_id}/profile", dependencies=[Depends(audit("user.profile_update"))])
async def update_profile(
    user_id: str,
    payload: UpdateProfileRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    user = await UserService.update_profile(session, user, payload.model_dump(exclude_none=True))
    return ok({"user": user.to_public()}, "Profile updated successfully")


@router.put("/{user_id}/status", dependencies=[Depends(audit("user.status_update"))])
async def update_status(
    user_id: str,
    payload: UpdateStatusRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.set_status(session, user_id, payload.is_active)
    state = "activated" if user.is_active else "deactivated"
    return ok({"user_id": user.id, "is_active": user.is_active}, f"User {state} successfully")


@router.delete("/{user_id}/account", dependencies=[Depends(audit("user.account_delete"))])
async def delete_account(
    user_id: str,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    await UserService.delete_account(session, user_id)
    return ok({"user_id": user_id}, "User account deleted successfully")


# Branches

@router.get("/{user_id}/branches")
async def get_branches(
    user_id: str,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    branches = user.branches or []
    return ok({"user_id": user.id, "branches": branches, "total": len(branches)})


@router.post(
    "/{user_id}/branches/join",
    dependencies=[Depends(general_rate_limit), Depends(audit("user.branch_join"))],
)
async def join_branch(
    user_id: str,
    payload: JoinBranchRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    membership = await UserService.join_branch(session, user_id, payload.branch_id)
    return ok({"user_id": user_id, "branch": membership}, "User added to branch successfully")


@router.delete("/{user_id}/branches/{branch_id}", dependencies=[Depends(audit("user.branch_leave"))])
async def leave_branch(
    user_id: str,
    branch_id: str,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    remaining = await UserService.leave_branch(session, user_id, branch_id)
    return ok({"user_id": user_id, "branches": remaining}, "User removed from branch successfully")


# Body metrics

@router.get("/{user_id}/body-metrics")
async def get_body_metrics(
    user_id: str,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    return ok(UserService.body_metrics_view(user))


@router.put("/{user_id}/body-metrics", dependencies=[Depends(audit("user.body_metrics_update"))])
async def update_body_metrics(
    user_id: str,
    payload: BodyMetricsUpdate,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    data = payload.model_dump(exclude_none=True)
    view = await UserService.update_body_metrics(
        session,
        user_id,
        demographics=data.get("demographics"),
        body_composition=data.get("body_composition"),
        notes=data.get("notes"),
    )
    return ok(view, "Body metrics updated successfully")


@router.get("/{user_id}/body-metrics/history")
async def body_metrics_history(
    user_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    result = await UserService.body_metrics_history(
        session,
        user_id,
        start=naive_utc(start_date) if start_date else None,
        end=naive_utc(end_date) if end_date else None,
        page=page,
        limit=limit,
    )
    return ok(
        {
            "history": result["history"],
            "progress": result["progress"],
            "pagination": pagination(result["total"], page, limit),
        }
    )


# Privacy and health data export

@router.get("/{user_id}/privacy")
async def get_privacy(
    user_id: str,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    return ok({"user_id": user.id, "privacy_settings": UserService.privacy_settings(user)})


@router.put("/{user_id}/privacy", dependencies=[Depends(audit("user.privacy_update"))])
async def update_privacy(
    user_id: str,
    payload: PrivacySettingsUpdate,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    privacy = await UserService.update_privacy(session, user_id, payload.model_dump(exclude_none=True))
    return ok({"user_id": user_id, "privacy_settings": privacy}, "Privacy settings updated successfully")


@router.get(
    "/{user_id}/health-data/export",
    dependencies=[Depends(require_email_verification), Depends(audit("user.health_data_export"))],
)
async def export_health_data(
    user_id: str,
    request: Request,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    if not UserService.privacy_settings(user).get("allow_health_data_export"):
        raise AuthorizationError(
            "User has not allowed health data export", code="EXPORT_NOT_ALLOWED"
        )
    export = await UserService.export_health_data(session, user)
    record_data_access(request, "health_data", [user.id])
    logger.info("Health data exported for user %s by %s", user.id, admin.id)
    return ok(export, "Health data exported successfully")


# Preferences

@router.get("/{user_id}/preferences")
async def get_preferences(
    user_id: str,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.get_user(session, user_id)
    return ok({"user_id": user.id, "preferences": UserService.preferences(user)})


@router.put("/{user_id}/preferences", dependencies=[Depends(audit("user.preferences_update"))])
async def update_preferences(
    user_id: str,
    payload: PreferencesUpdate,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    update = {
        section: values.model_dump(exclude_none=True) if values is not None else None
        for section, values in (
            ("notifications", payload.notifications),
            ("app_configuration", payload.app_configuration),
            ("workout", payload.workout),
            ("diet", payload.diet),
        )
    }
    preferences = await UserService.update_preferences(session, user_id, update)
    return ok({"user_id": user_id, "preferences": preferences}, "Preferences updated successfully")


# Device tokens

@router.post(
    "/{user_id}/devices",
    status_code=201,
    dependencies=[Depends(general_rate_limit), Depends(audit("user.device_register"))],
)
async def register_device(
    user_id: str,
    payload: DeviceTokenRequest,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    entry = await UserService.register_device(
        session, user_id, payload.token, payload.platform, payload.device_id
    )
    return ok({"user_id": user_id, "device": entry}, "Device token registered successfully")


@router.delete("/{user_id}/devices/{token_id}", dependencies=[Depends(audit("user.device_remove"))])
async def remove_device(
    user_id: str,
    token_id: str,
    caller: User = Depends(require_user_or_admin),
    session: AsyncSession = Depends(get_db),
):
    remaining = await UserService.remove_device(session, user_id, token_id)
    return ok({"user_id": user_id, "remaining_devices": remaining}, "Device token removed successfully")
