"""Admin dispute review endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.dependencies import require_admin
from src.db import get_db
from src.models import DisputeStatus, User
from src.schemas.dispute import (
    DisputeEnvelope,
    DisputeListResponse,
    DisputeResolve,
    DisputeResponse,
)
from src.services import disputes as dispute_service
from src.utils.audit import get_client_ip

router = APIRouter(prefix="/disputes")


@router.get("", response_model=DisputeListResponse)
async def list_disputes(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
    dispute_status: Optional[DisputeStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Dispute queue, newest first."""
    disputes, pagination = await dispute_service.list_disputes(
        db, current_user, status=dispute_status, page=page, limit=limit
    )
    return DisputeListResponse(
        disputes=[DisputeResponse.model_validate(d) for d in disputes],
        pagination=pagination,
    )


@router.patch("/{dispute_id}", response_model=DisputeEnvelope)
async def resolve_dispute(
    request: Request,
    dispute_id: int,
    data: DisputeResolve,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Move a dispute to under_review, resolved or rejected.

    Closing it releases the order: `order_outcome` (cancel/resume) on
    resolve, falling back to the configured policy; resume on reject.
    """
    dispute = await dispute_service.resolve_dispute(
        db, dispute_id, current_user, data, get_client_ip(request)
    )
    return DisputeEnvelope(
        message=f"Dispute {dispute.status.value}",
        dispute=DisputeResponse.model_validate(dispute),
    )
