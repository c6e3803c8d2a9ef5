"""
Device session endpoints
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit
from fitness_api.middleware.auth import get_current_user, require_admin
from fitness_api.middleware.rate_limit import general_rate_limit
from fitness_api.models.schemas import CreateSessionRequest, UpdateSessionRequest
from fitness_api.services.session_service import SessionService
from fitness_api.services.user_service import UserService
from fitness_api.utils.responses import ok
from fitness_api.utils.validators import naive_utc

router = APIRouter(prefix="/api/sessions")


async def _history(session, user_id, page, limit, start_date, end_date, device_type, is_active):
    result = await SessionService.history(
        session,
        user_id,
        page=page,
        limit=limit,
        start=naive_utc(start_date) if start_date else None,
        end=naive_utc(end_date) if end_date else None,
        device_type=device_type,
        is_active=is_active,
    )
    return ok(result)


@router.get("/history")
async def my_session_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    device_type: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    return await _history(session, user.id, page, limit, start_date, end_date, device_type, is_active)


@router.post(
    "/{user_id}/create",
    status_code=201,
    dependencies=[Depends(general_rate_limit), Depends(audit("session.create"))],
)
async def create_session(
    user_id: str,
    payload: CreateSessionRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    """
    Open a device session for a user

    Only five sessions stay active per user; the oldest are deactivated.
    """
    await UserService.get_user(session, user_id)
    body = payload.model_dump(mode="json", exclude_none=True)
    user_session = await SessionService.create_session(
        session,
        user_id,
        body["device_info"],
        body["network_info"],
        payload.expiration_hours,
    )
    data = user_session.to_dict()
    data["session_token"] = user_session.session_token
    return ok(data, "Session created successfully")


@router.put("/{session_id}/update", dependencies=[Depends(audit("session.update"))])
async def update_session(
    session_id: str,
    payload: UpdateSessionRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    body = payload.model_dump(mode="json", exclude_none=True)
    user_session = await SessionService.update_session(
        session,
        session_id,
        device_info=body.get("device_info"),
        network_info=body.get("network_info"),
    )
    return ok(user_session.to_dict(), "Session updated successfully")


@router.delete("/{session_id}", dependencies=[Depends(audit("session.terminate"))])
async def terminate_session(
    session_id: str,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    user_session = await SessionService.terminate_session(session, session_id)
    return ok({"session_id": user_session.id, "is_active": user_session.is_active}, "Session terminated successfully")


@router.get("/{user_id}/history")
async def user_session_history(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    device_type: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = None,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    return await _history(session, user_id, page, limit, start_date, end_date, device_type, is_active)
