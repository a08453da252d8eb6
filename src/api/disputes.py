"""Dispute API endpoints for buyers and sellers."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.dependencies import get_current_user
from src.db import get_db
from src.models import User
from src.schemas.dispute import (
    DisputeCommentCreate,
    DisputeCreate,
    DisputeEnvelope,
    DisputeListResponse,
    DisputeResponse,
)
from src.services import disputes as dispute_service
from src.utils.audit import get_client_ip

router = APIRouter(prefix="/disputes", tags=["Disputes"])


@router.post("", response_model=DisputeEnvelope, status_code=status.HTTP_201_CREATED)
async def file_dispute(
    request: Request,
    data: DisputeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    File a dispute on an order (buyer or seller).

    409 with `dispute_id` if the order already has an active dispute.
    """
    dispute = await dispute_service.file_dispute(db, current_user, data, get_client_ip(request))
    return DisputeEnvelope(
        message="Dispute filed successfully",
        dispute=DisputeResponse.model_validate(dispute),
    )


@router.get("/my-disputes", response_model=DisputeListResponse)
async def list_my_disputes(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    disputes, pagination = await dispute_service.list_my_disputes(db, current_user, page, limit)
    return DisputeListResponse(
        disputes=[DisputeResponse.model_validate(d) for d in disputes],
        pagination=pagination,
    )


@router.get("/{dispute_id}", response_model=DisputeEnvelope)
async def get_dispute(
    dispute_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    dispute = await dispute_service.get_dispute(db, dispute_id, current_user)
    return DisputeEnvelope(dispute=DisputeResponse.model_validate(dispute))


@router.post("/{dispute_id}/comments", response_model=DisputeEnvelope, status_code=status.HTTP_201_CREATED)
async def add_comment(
    request: Request,
    dispute_id: int,
    data: DisputeCommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    dispute = await dispute_service.add_comment(
        db, dispute_id, current_user, data.text, get_client_ip(request)
    )
    return DisputeEnvelope(
        message="Comment added",
        dispute=DisputeResponse.model_validate(dispute),
    )
