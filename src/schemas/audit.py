"""Audit log schemas (admin only)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from src.schemas.common import Pagination


class AuditLogResponse(BaseModel):
    """Single audit log entry."""

    id: int
    user_id: int
    user_email: Optional[str] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    error: bool = False
    logs: List[AuditLogResponse]
    pagination: Pagination
