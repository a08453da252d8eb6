"""
Authentication API endpoints.
"""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.dependencies import get_current_user
from src.auth.jwt import COOKIE_NAME, create_access_token
from src.config import settings
from src.db import get_db
from src.errors import UnauthorizedError
from src.models import AuditAction, User, utc_now
from src.schemas.auth import LoginRequest, LoginResponse, ProfileResponse
from src.utils.audit import get_client_ip, log_action
from src.utils.password import verify_password

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate by email and password.

    The token is returned in the body for API clients and also set as an
    httpOnly cookie for browsers.
    """
    result = await db.execute(
        select(User).where(func.lower(User.email) == credentials.email.strip().lower())
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise UnauthorizedError("Account is disabled")

    roles = sorted(role.value for role in user.role_set)
    token = create_access_token(user.id, roles)

    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.jwt_expire_hours * 3600,
    )

    user.last_active_at = utc_now()
    await log_action(
        db=db,
        user_id=user.id,
        action=AuditAction.LOGIN,
        ip_address=get_client_ip(request),
    )

    return LoginResponse(
        message="Login successful",
        access_token=token,
        user=ProfileResponse.model_validate(user),
    )


@router.get("/me", response_model=ProfileResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Current user's profile."""
    return current_user
