"""
Auth service - registration, login and token/session lifecycle
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

import bcrypt
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.config import settings
from fitness_api.database.models import User, utcnow
from fitness_api.database.queries import execute_with_retry
from fitness_api.services.cache import get_cache
from fitness_api.services.tokens import (
    generate_token_pair,
    seconds_until_expiry,
    verify_refresh_token,
)
from fitness_api.utils.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

BLACKLIST_TTL = 24 * 3600
RESET_TOKEN_TTL = 3600
VERIFICATION_TOKEN_TTL = 24 * 3600
FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


def _refresh_key(user_id: str) -> str:
    return f"auth:refresh:{user_id}"


def _session_key(user_id: str, token_id: str) -> str:
    return f"auth:refresh:{user_id}:{token_id}"


def _sessions_key(user_id: str) -> str:
    return f"user_sessions:{user_id}"


async def hash_password(password: str) -> str:
    """bcrypt hash using the configured cost factor (runs off the event loop)"""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = await asyncio.to_thread(bcrypt.hashpw, password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


async def verify_password(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(
        bcrypt.checkpw, password.encode("utf-8"), password_hash.encode("utf-8")
    )


class AuthService:
    """Service for authentication operations"""

    @staticmethod
    async def find_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
        result = await execute_with_retry(session, select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure_unique(session: AsyncSession, email: str, username: str) -> None:
        """
        Raise ConflictError if the email or username is taken

        Args:
            session: Database session
            email: Email to check (lowercased)
            username: Username to check
        """
        result = await execute_with_retry(
            session,
            select(User.email, User.username).where(
                or_(User.email == email.lower(), User.username == username)
            ),
        )
        for row in result.all():
            if row.email == email.lower():
                raise ConflictError("Email address is already registered", code="EMAIL_EXISTS")
            raise ConflictError("Username is already taken", code="USERNAME_EXISTS")

    @staticmethod
    async def issue_tokens(user: User, device: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Generate a token pair and record the refresh session

        Args:
            user: Authenticated user
            device: ip / user_agent for the session listing

        Returns:
            Token pair
        """
        tokens = generate_token_pair(user.id, user.email, user.username, user.role)
        store = get_cache()
        ttl = tokens["refresh_expires_in"]
        token_id = tokens["token_id"]

        await store.set(_refresh_key(user.id), token_id, ttl)
        await store.set(
            _session_key(user.id, token_id),
            {
                "session_id": token_id,
                "created_at": utcnow().isoformat(),
                "ip": (device or {}).get("ip"),
                "user_agent": (device or {}).get("user_agent"),
            },
            ttl,
        )
        sessions: List[str] = await store.get(_sessions_key(user.id)) or []
        if token_id not in sessions:
            sessions.append(token_id)
        await store.set(_sessions_key(user.id), sessions, ttl)
        return tokens

    @staticmethod
    async def register(
        session: AsyncSession,
        username: str,
        email: str,
        password: str,
        name: str,
        device: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        await AuthService.ensure_unique(session, email, username)

        user = User(
            username=username,
            email=email.lower(),
            password_hash=await hash_password(password),
            name=name,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)

        verification_token = await AuthService.create_verification_token(user.id)
        tokens = await AuthService.issue_tokens(user, device)
        logger.info("User registered: %s", user.id)
        return {"user": user, "tokens": tokens, "verification_token": verification_token}

    @staticmethod
    async def login(
        session: AsyncSession,
        email: str,
        password: str,
        device: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        user = await AuthService.find_user_by_email(session, email)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")
        if not await verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        user.last_login = utcnow()
        await session.commit()
        await session.refresh(user)

        tokens = await AuthService.issue_tokens(user, device)
        logger.info("User logged in: %s", user.id)
        return {"user": user, "tokens": tokens}

    @staticmethod
    async def blacklist_token(token: str, ttl: int = BLACKLIST_TTL) -> None:
        await get_cache().set(f"auth:blacklist:{token}", True, max(1, ttl))

    @staticmethod
    async def refresh(session: AsyncSession, refresh_token: str) -> Dict[str, Any]:
        """Rotate a refresh token; the old one is blacklisted"""
        store = get_cache()
        if await store.exists(f"auth:blacklist:{refresh_token}"):
            raise AuthenticationError("Refresh token has been revoked", code="TOKEN_REVOKED")

        payload = verify_refresh_token(refresh_token)
        user_id = payload["user_id"]
        stored_token_id = await store.get(_refresh_key(user_id))
        if stored_token_id != payload["token_id"]:
            raise AuthenticationError("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

        result = await execute_with_retry(session, select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive", code="INVALID_REFRESH_TOKEN")

        previous = await store.get(_session_key(user_id, payload["token_id"])) or {}
        await AuthService.remove_session(user_id, payload["token_id"])
        await AuthService.blacklist_token(refresh_token, seconds_until_expiry(payload) or BLACKLIST_TTL)
        return await AuthService.issue_tokens(
            user, {"ip": previous.get("ip"), "user_agent": previous.get("user_agent")}
        )

    @staticmethod
    async def logout(user_id: str, access_token: str, refresh_token: Optional[str] = None) -> None:
        store = get_cache()
        await store.delete(_refresh_key(user_id))
        await AuthService.blacklist_token(access_token)
        if refresh_token:
            await AuthService.blacklist_token(refresh_token)
            try:
                payload = verify_refresh_token(refresh_token)
            except AuthenticationError:
                payload = None
            if payload and payload.get("user_id") == user_id:
                await AuthService.remove_session(user_id, payload["token_id"])
        logger.info("User logged out: %s", user_id)

    @staticmethod
    async def invalidate_all_sessions(user_id: str) -> None:
        store = get_cache()
        sessions: List[str] = await store.get(_sessions_key(user_id)) or []
        keys = [_session_key(user_id, token_id) for token_id in sessions]
        await store.delete(_refresh_key(user_id), _sessions_key(user_id), *keys)

    @staticmethod
    async def remove_session(user_id: str, token_id: str) -> bool:
        store = get_cache()
        sessions: List[str] = await store.get(_sessions_key(user_id)) or []
        removed = await store.delete(_session_key(user_id, token_id))
        if token_id in sessions:
            sessions.remove(token_id)
            await store.set(_sessions_key(user_id), sessions, seconds_or_default(await store.ttl(_sessions_key(user_id))))
        if await store.get(_refresh_key(user_id)) == token_id:
            await store.delete(_refresh_key(user_id))
        return bool(removed)

    @staticmethod
    async def list_sessions(user_id: str) -> List[Dict[str, Any]]:
        store = get_cache()
        current = await store.get(_refresh_key(user_id))
        sessions = []
        for token_id in await store.get(_sessions_key(user_id)) or []:
            data = await store.get(_session_key(user_id, token_id))
            if data:
                sessions.append({**data, "is_current": token_id == current})
        return sessions

    @staticmethod
    async def revoke_session(user_id: str, session_id: str) -> None:
        if not await AuthService.remove_session(user_id, session_id):
            raise NotFoundError("Session", code="SESSION_NOT_FOUND")

    @staticmethod
    async def forgot_password(session: AsyncSession, email: str) -> Optional[str]:
        """
        Store a reset token for the account, if any

        Returns:
            The reset token (for delivery by mail), or None for unknown emails
        """
        user = await AuthService.find_user_by_email(session, email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown email")
            return None
        token = str(uuid.uuid4())
        await get_cache().set(f"auth:reset:{token}", user.id, RESET_TOKEN_TTL)
        logger.info("Password reset token issued for %s", user.id)
        return token

    @staticmethod
    async def reset_password(session: AsyncSession, token: str, password: str) -> None:
        store = get_cache()
        user_id = await store.get(f"auth:reset:{token}")
        if not user_id:
            raise ValidationError("Invalid or expired reset token", code="INVALID_RESET_TOKEN")

        result = await execute_with_retry(session, select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise ValidationError("Invalid or expired reset token", code="INVALID_RESET_TOKEN")

        user.password_hash = await hash_password(password)
        user.password_changed_at = utcnow()
        await session.commit()
        await store.delete(f"auth:reset:{token}")
        await AuthService.invalidate_all_sessions(user.id)
        logger.info("Password reset for %s", user.id)

    @staticmethod
    async def create_verification_token(user_id: str) -> str:
        token = str(uuid.uuid4())
        await get_cache().set(f"email_verification:{token}", user_id, VERIFICATION_TOKEN_TTL)
        return token

    @staticmethod
    async def verify_email(session: AsyncSession, token: str) -> User:
        store = get_cache()
        user_id = await store.get(f"email_verification:{token}")
        if not user_id:
            raise ValidationError("Invalid or expired verification token", code="INVALID_VERIFICATION_TOKEN")

        result = await execute_with_retry(session, select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", code="USER_NOT_FOUND")

        user.email_verified = True
        await session.commit()
        await session.refresh(user)
        await store.delete(f"email_verification:{token}")
        return user

    @staticmethod
    async def resend_verification(user: User) -> str:
        if user.email_verified:
            raise ConflictError("Email is already verified", code="EMAIL_ALREADY_VERIFIED")
        return await AuthService.create_verification_token(user.id)

    @staticmethod
    async def change_password(
        session: AsyncSession, user: User, current_password: str, new_password: str
    ) -> None:
        if not await verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect", code="INVALID_PASSWORD")
        user.password_hash = await hash_password(new_password)
        user.password_changed_at = utcnow()
        await session.commit()
        await AuthService.invalidate_all_sessions(user.id)

    @staticmethod
    async def firebase_login(
        session: AsyncSession, claims: Dict[str, Any], device: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Sign in with verified Firebase claims, creating the account on first use
        """
        email = (claims.get("email") or "").lower()
        if not email:
            raise AuthenticationError("Firebase token has no email", code="AUTHENTICATION_FAILED")

        user = await AuthService.find_user_by_email(session, email)
        created = False
        if user is None:
            base = "".join(ch for ch in email.split("@")[0] if ch.isalnum() or ch == "_")[:20] or "user"
            username = f"{base}_{uuid.uuid4().hex[:6]}"
            user = User(
                username=username,
                email=email,
                password_hash=await hash_password(uuid.uuid4().hex),
                name=(claims.get("name") or base)[:100],
                email_verified=bool(claims.get("email_verified")),
            )
            session.add(user)
            created = True
        elif not user.is_active:
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        user.last_login = utcnow()
        await session.commit()
        await session.refresh(user)
        tokens = await AuthService.issue_tokens(user, device)
        return {"user": user, "tokens": tokens, "created": created}


def seconds_or_default(ttl: int) -> int:
    return ttl if ttl and ttl > 0 else 7 * 24 * 3600
