"""
Authentication and authorization dependencies
"""
import logging
from datetime import timezone
from typing import Iterable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import User
from fitness_api.database.queries import execute_with_retry, get_db
from fitness_api.services.cache import get_cache
from fitness_api.services.tokens import extract_bearer_token, verify_access_token
from fitness_api.utils.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

BLACKLIST_PREFIX = "auth:blacklist:"


async def is_token_blacklisted(token: str) -> bool:
    return await get_cache().exists(f"{BLACKLIST_PREFIX}{token}")


def issued_before_password_change(payload: dict, user: User) -> bool:
    """`iat` has second precision, so a token from the same second still passes"""
    if user.password_changed_at is None or payload.get("iat") is None:
        return False
    changed_at = user.password_changed_at.replace(tzinfo=timezone.utc).timestamp()
    return int(payload["iat"]) < int(changed_at)


async def _authenticate(request: Request, authorization: Optional[str], session: AsyncSession) -> User:
    try:
        token = extract_bearer_token(authorization)
        if await is_token_blacklisted(token):
            raise AuthenticationError("Token has been revoked")
        payload = verify_access_token(token)

        result = await execute_with_retry(session, select(User).where(User.id == payload.get("user_id")))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive")
        if issued_before_password_change(payload, user):
            raise AuthenticationError("Token was issued before the password changed")
    except AuthenticationError as e:
        logger.warning("Authentication failed on %s: %s", request.url.path, e.message)
        raise AuthenticationError(e.message, code="AUTHENTICATION_FAILED")

    request.state.user = user
    request.state.access_token = token
    return user


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user"""
    return await _authenticate(request, authorization, session)


async def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous requests (or bad tokens) yield None"""
    if not authorization:
        return None
    try:
        return await _authenticate(request, authorization, session)
    except AuthenticationError:
        return None


async def require_email_verification(user: User = Depends(get_current_user)) -> User:
    if not user.email_verified:
        raise AuthorizationError(
            "Email verification required", code="EMAIL_VERIFICATION_REQUIRED"
        )
    return user


def require_role(roles: Iterable[str]):
    """Dependency factory restricting a route to the given roles"""
    allowed = list(roles)

    async def _require_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise AuthorizationError(
                "Insufficient permissions",
                code="INSUFFICIENT_PERMISSIONS",
                details={"required": allowed, "current": user.role},
            )
        return user

    return _require_role


require_admin = require_role(["admin"])


async def require_user_or_admin(user_id: str, user: User = Depends(get_current_user)) -> User:
    """The path user_id must be the caller unless the caller is an admin"""
    if user.id != user_id and not user.is_admin:
        raise AuthorizationError(
            "Access denied: you can only access your own resources",
            code="OWNERSHIP_OR_ADMIN_REQUIRED",
        )
    return user
