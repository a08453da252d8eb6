"""Admin audit log API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.auth.dependencies import require_admin
from src.db import get_db
from src.models import AuditAction, AuditLog, User
from src.schemas.audit import AuditLogListResponse, AuditLogResponse
from src.schemas.common import Pagination

router = APIRouter(prefix="/audit")


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    user_id: Optional[int] = Query(None),
    action: Optional[AuditAction] = Query(None),
    target_type: Optional[str] = Query(None),
    target_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
):
    """List audit logs, newest first. `target_type=order&target_id=N` gives one order's trail."""
    query = select(AuditLog).options(selectinload(AuditLog.user))

    if user_id:
        query = query.where(AuditLog.user_id == user_id)
    if action:
        query = query.where(AuditLog.action == action)
    if target_type:
        query = query.where(AuditLog.target_type == target_type)
    if target_id:
        query = query.where(AuditLog.target_id == target_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    logs = (await db.execute(query)).scalars().all()

    return AuditLogListResponse(
        logs=[
            AuditLogResponse(
                id=log.id,
                user_id=log.user_id,
                user_email=log.user.email if log.user else None,
                action=log.action.value,
                target_type=log.target_type,
                target_id=log.target_id,
                metadata=log.action_metadata,
                ip_address=log.ip_address,
                created_at=log.created_at,
            )
            for log in logs
        ],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/actions")
async def list_audit_actions(
    current_user: User = Depends(require_admin),
):
    """List all possible audit actions."""
    return {"error": False, "actions": [action.value for action in AuditAction]}
