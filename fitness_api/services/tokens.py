"""
JWT helpers for access, refresh and device session tokens
"""
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt  # PyJWT

from fitness_api.config import settings
from fitness_api.utils.errors import AuthenticationError

ALGORITHM = "HS256"
_EXPIRY_PATTERN = re.compile(r"^(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_expiry(expiry: str) -> int:
    """
    Convert an expiry string such as "15m" or "7d" to seconds

    Raises:
        ValueError: If the string is not <number><s|m|h|d>
    """
    match = _EXPIRY_PATTERN.match(expiry or "")
    if not match:
        raise ValueError(f"Invalid expiry format: {expiry}")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _sign(payload: Dict[str, Any], secret: str, expires_in: int) -> str:
    issued_at = _now()
    claims = {
        **payload,
        "jti": str(uuid.uuid4()),
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=expires_in),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def _verify(token: str, secret: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired", code="TOKEN_EXPIRED")
    except jwt.ImmatureSignatureError:
        raise AuthenticationError("Token not active yet", code="TOKEN_NOT_ACTIVE")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")


def generate_token_pair(user_id: str, email: str, username: str, role: str) -> Dict[str, Any]:
    """
    Issue an access/refresh token pair

    Returns:
        dict with access_token, refresh_token, token_id, expires_in and
        refresh_expires_in (seconds)
    """
    access_ttl = parse_expiry(settings.JWT_EXPIRES_IN)
    refresh_ttl = parse_expiry(settings.JWT_REFRESH_EXPIRES_IN)
    token_id = str(uuid.uuid4())

    access_token = _sign(
        {"user_id": user_id, "email": email, "username": username, "role": role, "type": "access"},
        settings.JWT_SECRET,
        access_ttl,
    )
    refresh_token = _sign(
        {"user_id": user_id, "token_id": token_id, "type": "refresh"},
        settings.JWT_REFRESH_SECRET,
        refresh_ttl,
    )
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "Bearer",
        "token_id": token_id,
        "expires_in": access_ttl,
        "refresh_expires_in": refresh_ttl,
    }


def verify_access_token(token: str) -> Dict[str, Any]:
    payload = _verify(token, settings.JWT_SECRET)
    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    return payload


def verify_refresh_token(token: str) -> Dict[str, Any]:
    payload = _verify(token, settings.JWT_REFRESH_SECRET)
    if payload.get("type") != "refresh" or not payload.get("token_id"):
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    return payload


def generate_session_token(user_id: str, session_id: str, hours: int) -> str:
    """Sign the opaque token stored on a device session"""
    return _sign(
        {"user_id": user_id, "session_id": session_id, "type": "session"},
        settings.SESSION_TOKEN_SECRET,
        hours * 3600,
    )


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header

    Raises:
        AuthenticationError: If the header is missing or not "Bearer <token>"
    """
    if not authorization:
        raise AuthenticationError("Authorization header is required", code="AUTHENTICATION_FAILED")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise AuthenticationError(
            'Invalid authorization header format. Expected "Bearer <token>"',
            code="AUTHENTICATION_FAILED",
        )
    return parts[1].strip()


def seconds_until_expiry(payload: Dict[str, Any]) -> int:
    exp = payload.get("exp")
    if not exp:
        return 0
    return max(0, int(exp - _now().timestamp()))
