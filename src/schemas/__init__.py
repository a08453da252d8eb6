"""Pydantic schemas for request/response validation."""

from src.schemas.auth import LoginRequest, LoginResponse, ProfileResponse, TokenPayload
from src.schemas.common import Pagination, PartySummary
from src.schemas.dispute import (
    DisputeCommentCreate,
    DisputeCreate,
    DisputeEnvelope,
    DisputeListResponse,
    DisputeResolve,
    DisputeResponse,
)
from src.schemas.invoice import InvoiceEnvelope, InvoiceResponse
from src.schemas.message import (
    Attachment,
    MessageCreate,
    MessageEnvelope,
    MessageListResponse,
    MessageResponse,
    UnreadCountResponse,
)
from src.schemas.order import (
    MeetingInfo,
    OrderCreate,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    OrderUpdate,
    OrderUpdateEvent,
    StatusChange,
)

__all__ = [
    # Auth
    "LoginRequest",
    "LoginResponse",
    "ProfileResponse",
    "TokenPayload",
    # Common
    "Pagination",
    "PartySummary",
    # Order
    "MeetingInfo",
    "OrderCreate",
    "OrderUpdate",
    "OrderResponse",
    "OrderEnvelope",
    "OrderListResponse",
    "OrderUpdateEvent",
    "StatusChange",
    # Message
    "Attachment",
    "MessageCreate",
    "MessageResponse",
    "MessageEnvelope",
    "MessageListResponse",
    "UnreadCountResponse",
    # Dispute
    "DisputeCreate",
    "DisputeCommentCreate",
    "DisputeResolve",
    "DisputeResponse",
    "DisputeEnvelope",
    "DisputeListResponse",
    # Invoice
    "InvoiceResponse",
    "InvoiceEnvelope",
]
