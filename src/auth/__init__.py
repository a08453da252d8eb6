"""Authentication module."""

from src.auth.dependencies import authenticate_token, get_current_user, require_admin
from src.auth.jwt import create_access_token, verify_token

__all__ = [
    "authenticate_token",
    "create_access_token",
    "verify_token",
    "get_current_user",
    "require_admin",
]
