"""
FastAPI dependencies for authentication.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.jwt import get_token_from_request, verify_token
from src.db import get_db
from src.errors import ForbiddenError, UnauthorizedError
from src.models import User, UserRole


async def authenticate_token(db: AsyncSession, token: Optional[str]) -> User:
    """
    Resolve a raw token to an active user.

    Shared by the HTTP dependencies and the WebSocket handshake.

    Raises:
        UnauthorizedError: missing/invalid token, unknown or disabled user
    """
    if not token:
        raise UnauthorizedError("Not authenticated")

    payload = verify_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")

    user = await db.get(User, payload["user_id"])
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("User account is disabled")

    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user.

    Raises 401 if not authenticated or user is inactive.
    """
    return await authenticate_token(db, get_token_from_request(request))


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Raises 403 unless the user holds the admin role."""
    if UserRole.ADMIN not in current_user.role_set:
        raise ForbiddenError("Admin access required")
    return current_user
