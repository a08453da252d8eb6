"""Authentication schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.models.user import KycStatus


class LoginRequest(BaseModel):
    """Login request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class ProfileResponse(BaseModel):
    """Authenticated user's own profile."""

    id: int
    email: str
    name: str
    phone: Optional[str] = None
    roles: List[str]
    kyc_status: KycStatus
    is_active: bool

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """Login response."""

    error: bool = False
    message: str
    access_token: str
    token_type: str = "bearer"
    user: ProfileResponse


class TokenPayload(BaseModel):
    """JWT token payload."""

    user_id: int
    roles: List[str]
