"""Dispute schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.models.dispute import DisputeCategory, DisputeStatus
from src.models.order import OrderStatus
from src.schemas.common import Pagination


class DisputeAttachment(BaseModel):
    url: str = Field(..., min_length=1, max_length=1000)
    type: Literal["image", "pdf", "file"] = "image"


class DisputeCreate(BaseModel):
    """File a dispute on an order."""

    order_id: int
    reason: str = Field(..., min_length=1, max_length=10000)
    category: DisputeCategory = DisputeCategory.OTHER
    attachments: List[DisputeAttachment] = Field(default_factory=list)


class DisputeCommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=10000)


class DisputeResolve(BaseModel):
    """Admin decision on a dispute."""

    status: Literal["under_review", "resolved", "rejected"]
    admin_notes: Optional[str] = Field(None, max_length=2000)
    resolution: Optional[str] = Field(None, max_length=2000)
    order_outcome: Optional[Literal["cancel", "resume"]] = None


class DisputeCommentResponse(BaseModel):
    id: int
    user_id: int
    text: str
    is_admin_comment: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class DisputeResponse(BaseModel):
    id: int
    order_id: int
    reporter_id: int
    reason: str
    category: DisputeCategory
    attachments: List[DisputeAttachment] = Field(default_factory=list)
    status: DisputeStatus
    order_status_before: OrderStatus
    admin_notes: Optional[str] = None
    resolution: Optional[str] = None
    order_outcome: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    comments: List[DisputeCommentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DisputeEnvelope(BaseModel):
    error: bool = False
    message: Optional[str] = None
    dispute: DisputeResponse


class DisputeListResponse(BaseModel):
    error: bool = False
    disputes: List[DisputeResponse]
    pagination: Pagination
