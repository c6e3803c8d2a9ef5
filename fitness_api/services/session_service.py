"""
Session service - device session lifecycle and history
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import UserSession, new_id, utcnow
from fitness_api.database.queries import execute_with_retry
from fitness_api.services.tokens import generate_session_token
from fitness_api.utils.errors import AuthenticationError, NotFoundError
from fitness_api.utils.validators import pagination

logger = logging.getLogger(__name__)

MAX_ACTIVE_SESSIONS = 5


class SessionService:
    """Service for device session operations"""

    @staticmethod
    async def create_session(
        session: AsyncSession,
        user_id: str,
        device_info: Dict[str, Any],
        network_info: Dict[str, Any],
        expiration_hours: int = 24,
    ) -> UserSession:
        """
        Open a device session, retiring the oldest ones beyond the active limit

        Args:
            session: Database session
            user_id: Session owner
            device_info: Device description
            network_info: IP address and optional location
            expiration_hours: Lifetime of the session token

        Returns:
            The new session
        """
        now = utcnow()
        result = await execute_with_retry(
            session,
            select(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True), UserSession.expires_at > now)
            .order_by(UserSession.created_at.asc()),
        )
        active = list(result.scalars().all())
        overflow = len(active) - (MAX_ACTIVE_SESSIONS - 1)
        for old in active[:max(0, overflow)]:
            old.is_active = False
            logger.info("Deactivated session %s for user %s (active session limit)", old.id, user_id)

        session_id = new_id()
        user_session = UserSession(
            id=session_id,
            user_id=user_id,
            session_token=generate_session_token(user_id, session_id, expiration_hours),
            expires_at=now + timedelta(hours=expiration_hours),
            last_accessed=now,
            is_active=True,
            device_info=device_info,
            network_info=network_info,
        )
        session.add(user_session)
        await session.commit()
        await session.refresh(user_session)

        logger.info(
            "Session %s created for user %s (%s)", session_id, user_id, device_info.get("device_type")
        )
        return user_session

    @staticmethod
    async def get_session(session: AsyncSession, session_id: str) -> UserSession:
        result = await execute_with_retry(session, select(UserSession).where(UserSession.id == session_id))
        user_session = result.scalar_one_or_none()
        if user_session is None:
            raise NotFoundError("Session", code="SESSION_NOT_FOUND")
        return user_session

    @staticmethod
    async def update_session(
        session: AsyncSession,
        session_id: str,
        device_info: Optional[Dict[str, Any]] = None,
        network_info: Optional[Dict[str, Any]] = None,
    ) -> UserSession:
        """
        Touch an active session

        Raises:
            NotFoundError: SESSION_NOT_FOUND
            AuthenticationError: SESSION_EXPIRED when inactive or past expiry
        """
        user_session = await SessionService.get_session(session, session_id)
        now = utcnow()
        if not user_session.is_active or user_session.is_expired(now):
            if user_session.is_active:
                user_session.is_active = False
                await session.commit()
            raise AuthenticationError("Session is expired or inactive", code="SESSION_EXPIRED")

        user_session.last_accessed = now
        if device_info:
            user_session.device_info = {**(user_session.device_info or {}), **device_info}
        if network_info:
            user_session.network_info = {**(user_session.network_info or {}), **network_info}
        await session.commit()
        await session.refresh(user_session)
        return user_session

    @staticmethod
    async def terminate_session(session: AsyncSession, session_id: str) -> UserSession:
        user_session = await SessionService.get_session(session, session_id)
        user_session.is_active = False
        await session.commit()
        logger.info("Session %s terminated", session_id)
        return user_session

    @staticmethod
    async def history(
        session: AsyncSession,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        device_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Paginated session history with overall statistics

        Returns:
            dict with sessions, pagination and statistics
        """
        conditions = [UserSession.user_id == user_id]
        if start:
            conditions.append(UserSession.created_at >= start)
        if end:
            conditions.append(UserSession.created_at <= end)
        if is_active is not None:
            conditions.append(UserSession.is_active.is_(is_active))

        result = await execute_with_retry(
            session, select(UserSession).where(*conditions).order_by(UserSession.created_at.desc())
        )
        rows = list(result.scalars().all())
        if device_type:
            needle = device_type.lower()
            rows = [
                row for row in rows if needle in str((row.device_info or {}).get("device_type") or "").lower()
            ]

        total_count = len(rows)
        offset = (page - 1) * limit
        page_rows = rows[offset:offset + limit]

        totals = await execute_with_retry(
            session, select(func.count(UserSession.id)).where(UserSession.user_id == user_id)
        )
        total_sessions = totals.scalar_one()
        active = await execute_with_retry(
            session,
            select(func.count(UserSession.id)).where(
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
                UserSession.expires_at > utcnow(),
            ),
        )
        active_sessions = active.scalar_one()

        return {
            "sessions": [row.to_dict() for row in page_rows],
            "pagination": pagination(total_count, page, limit),
            "statistics": {
                "total_sessions": total_sessions,
                "active_sessions": active_sessions,
                "inactive_sessions": total_sessions - active_sessions,
            },
        }
