"""
Authentication endpoints
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.config import settings
from fitness_api.database.models import User
from fitness_api.database.queries import get_db
from fitness_api.middleware.audit import audit, audit_failed_auth, client_ip
from fitness_api.middleware.auth import get_current_user
from fitness_api.middleware.rate_limit import (
    auth_rate_limit,
    email_rate_limit,
    login_delay,
    login_rate_limit,
    password_reset_rate_limit,
    register_rate_limit,
)
from fitness_api.models.schemas import (
    ChangePasswordRequest,
    FirebaseLoginRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
)
from fitness_api.services.auth_service import FORGOT_PASSWORD_MESSAGE, AuthService
from fitness_api.services.firebase_auth import verify_id_token
from fitness_api.services.user_service import UserService
from fitness_api.utils.errors import AuthenticationError
from fitness_api.utils.responses import ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth")


def _device(request: Request) -> dict:
    return {"ip": client_ip(request), "user_agent": request.headers.get("user-agent", "")}


@router.post(
    "/register",
    status_code=201,
    dependencies=[Depends(register_rate_limit), Depends(audit("auth.register"))],
)
async def register(
    payload: RegisterRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
):
    """
    Create an account and sign it in

    Returns:
        The new user, a token pair and (outside production) the email verification token
    """
    result = await AuthService.register(
        session,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        device=_device(request),
    )
    request.state.user = result["user"]
    data = {"user": result["user"].to_public(), "tokens": result["tokens"]}
    if not settings.is_production:
        data["verification_token"] = result["verification_token"]
    return ok(data, "User registered successfully")


@router.post(
    "/login",
    dependencies=[Depends(login_rate_limit), Depends(login_delay), Depends(audit("auth.login"))],
)
async def login(
    payload: LoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
):
    try:
        result = await AuthService.login(session, payload.email, payload.password, _device(request))
    except AuthenticationError as e:
        await login_rate_limit.hit(request)
        await login_delay.record_failure(request)
        audit_failed_auth(request, e.message, payload.email)
        raise

    await login_delay.reset(request)
    request.state.user = result["user"]
    return ok({"user": result["user"].to_public(), "tokens": result["tokens"]}, "Login successful")


@router.post("/refresh", dependencies=[Depends(auth_rate_limit), Depends(audit("auth.refresh"))])
async def refresh(payload: RefreshTokenRequest, session: AsyncSession = Depends(get_db)):
    tokens = await AuthService.refresh(session, payload.refresh_token)
    return ok({"tokens": tokens}, "Token refreshed successfully")


@router.post("/logout", dependencies=[Depends(audit("auth.logout"))])
async def logout(
    request: Request,
    payload: Optional[LogoutRequest] = None,
    user: User = Depends(get_current_user),
):
    await AuthService.logout(
        user.id,
        request.state.access_token,
        payload.refresh_token if payload else None,
    )
    return ok(message="Logout successful")


@router.post(
    "/forgot-password",
    dependencies=[Depends(password_reset_rate_limit), Depends(audit("auth.forgot_password"))],
)
async def forgot_password(payload: ForgotPasswordRequest, session: AsyncSession = Depends(get_db)):
    """Always answers the same way so account existence is not disclosed"""
    token = await AuthService.forgot_password(session, payload.email)
    data = {"reset_token": token} if token and not settings.is_production else None
    return ok(data, FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    dependencies=[Depends(password_reset_rate_limit), Depends(audit("auth.reset_password"))],
)
async def reset_password(payload: ResetPasswordRequest, session: AsyncSession = Depends(get_db)):
    await AuthService.reset_password(session, payload.token, payload.password)
    return ok(message="Password has been reset successfully")


@router.post("/verify-email", dependencies=[Depends(audit("auth.verify_email"))])
async def verify_email(payload: VerifyEmailRequest, session: AsyncSession = Depends(get_db)):
    user = await AuthService.verify_email(session, payload.token)
    return ok({"user": user.to_public()}, "Email verified successfully")


@router.post(
    "/resend-verification",
    dependencies=[Depends(email_rate_limit), Depends(audit("auth.resend_verification"))],
)
async def resend_verification(user: User = Depends(get_current_user)):
    token = await AuthService.resend_verification(user)
    data = {"verification_token": token} if not settings.is_production else None
    return ok(data, "Verification email sent")


@router.post(
    "/change-password",
    dependencies=[Depends(auth_rate_limit), Depends(audit("auth.change_password"))],
)
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    await AuthService.change_password(session, user, payload.current_password, payload.new_password)
    await AuthService.blacklist_token(request.state.access_token)
    return ok(message="Password changed successfully. Please log in again")


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return ok({"user": user.to_public()})


@router.put("/profile", dependencies=[Depends(audit("auth.update_profile"))])
async def update_profile(
    payload: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    user = await UserService.update_profile(session, user, payload.model_dump(exclude_none=True))
    return ok({"user": user.to_public()}, "Profile updated successfully")


@router.get("/sessions")
async def list_sessions(user: User = Depends(get_current_user)):
    sessions = await AuthService.list_sessions(user.id)
    return ok({"sessions": sessions, "total": len(sessions)})


@router.delete("/sessions/{session_id}", dependencies=[Depends(audit("auth.revoke_session"))])
async def revoke_session(session_id: str, user: User = Depends(get_current_user)):
    await AuthService.revoke_session(user.id, session_id)
    return ok(message="Session revoked successfully")


@router.post(
    "/firebase",
    dependencies=[Depends(auth_rate_limit), Depends(audit("auth.firebase"))],
)
async def firebase_login(
    payload: FirebaseLoginRequest,
    request: Request,
    session: AsyncSession = Depends(get_db),
):
    """
    Exchange a Firebase ID token for an API token pair

    The account is matched by email and created on first sign-in.
    """
    claims = verify_id_token(payload.id_token)
    if not claims:
        audit_failed_auth(request, "Invalid Firebase ID token")
        raise AuthenticationError("Invalid or expired Firebase token", code="AUTHENTICATION_FAILED")

    result = await AuthService.firebase_login(session, claims, _device(request))
    request.state.user = result["user"]
    return ok(
        {"user": result["user"].to_public(), "tokens": result["tokens"], "is_new_user": result["created"]},
        "Login successful",
    )
