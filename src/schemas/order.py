"""Order schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from src.models.order import OrderStatus, PaymentStatus
from src.schemas.common import Pagination, PartySummary


class MeetingInfo(BaseModel):
    """Where and when the parties meet. All fields optional for partial updates."""

    date: Optional[datetime] = None
    place: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=1000)


class OrderCreate(BaseModel):
    """Buyer's order intent."""

    listing_id: int
    selected_payment_method: str = Field(..., min_length=1, max_length=50)
    meeting_info: Optional[MeetingInfo] = None
    buyer_note: Optional[str] = Field(None, max_length=1000)


class OrderUpdate(BaseModel):
    """
    PATCH body. Each field is gated separately:
    status, payment_status and seller_note by seller or admin, evidence and
    meeting info by any party.
    """

    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    note: Optional[str] = Field(None, max_length=500)
    payment_evidence: Optional[str] = Field(None, min_length=1, max_length=1000)
    meeting_info: Optional[MeetingInfo] = None
    seller_note: Optional[str] = Field(None, max_length=1000)


class StatusChange(BaseModel):
    """Status transition request."""

    status: OrderStatus
    note: Optional[str] = Field(None, max_length=500)


class StatusHistoryEntry(BaseModel):
    status: OrderStatus
    changed_by: Optional[int]
    timestamp: datetime
    note: Optional[str] = None

    model_config = {"from_attributes": True}


class PaymentEvidenceEntry(BaseModel):
    url: str
    uploaded_by: int
    uploaded_at: datetime

    model_config = {"from_attributes": True}


class ListingSummary(BaseModel):
    id: int
    title: str

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    """Full order view for its parties and admins."""

    id: int
    listing_id: int
    buyer_id: int
    seller_id: int
    price_agreed: Decimal
    currency: str
    selected_payment_method: str
    status: OrderStatus
    payment_status: PaymentStatus
    meeting_info: dict = Field(default_factory=dict)
    buyer_note: Optional[str] = None
    seller_note: Optional[str] = None
    version: int
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    payment_evidence: List[PaymentEvidenceEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Related info
    listing: Optional[ListingSummary] = None
    buyer: Optional[PartySummary] = None
    seller: Optional[PartySummary] = None

    model_config = {"from_attributes": True}


class OrderEnvelope(BaseModel):
    error: bool = False
    message: Optional[str] = None
    order: OrderResponse


class OrderListResponse(BaseModel):
    """Paginated list of orders."""

    error: bool = False
    orders: List[OrderResponse]
    pagination: Pagination


class OrderUpdateEvent(BaseModel):
    """Payload of the `order_update` real-time event."""

    order_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    version: int
    message: str
