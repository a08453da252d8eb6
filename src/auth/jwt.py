"""
JWT token management.

Browsers get the token in an httpOnly cookie; API and mobile clients send
it as a bearer header; WebSocket clients pass it as `?token=`.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from jose import JWTError, jwt

from src.config import settings

# JWT configuration
ALGORITHM = "HS256"
TOKEN_TYPE = "access"
COOKIE_NAME = "access_token"


def create_access_token(
    user_id: int,
    roles: List[str],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User's database ID
        roles: User's role names
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=settings.jwt_expire_hours))

    payload = {
        "sub": str(user_id),
        "roles": list(roles),
        "exp": expire,
        "type": TOKEN_TYPE,
        "iat": now,
    }

    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Returns:
        {"user_id": int, "roles": [...]}, or None if the token is
        invalid, expired or not an access token
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[ALGORITHM],
        )
    except JWTError:
        return None

    if payload.get("type") != TOKEN_TYPE:
        return None

    user_id = payload.get("sub")
    roles = payload.get("roles")
    if not user_id or not isinstance(roles, list):
        return None

    try:
        return {"user_id": int(user_id), "roles": roles}
    except ValueError:
        return None


def get_token_from_request(request) -> Optional[str]:
    """Bearer header first, then the httpOnly cookie."""
    header = request.headers.get("Authorization")
    if header:
        scheme, _, token = header.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return request.cookies.get(COOKIE_NAME)
