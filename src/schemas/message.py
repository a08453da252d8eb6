"""Message schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.schemas.common import Pagination


class Attachment(BaseModel):
    url: str = Field(..., min_length=1, max_length=1000)
    type: Literal["image", "pdf", "file"] = "file"
    name: Optional[str] = Field(None, max_length=255)
    size: Optional[int] = Field(None, ge=0)


class MessageCreate(BaseModel):
    """
    Send a message on an order.

    There is no recipient field: the recipient is always the
    other party of the order.
    """

    order_id: int
    text: str = Field(..., max_length=20000)
    attachments: List[Attachment] = Field(default_factory=list)


class MessageResponse(BaseModel):
    id: int
    order_id: int
    sender_id: int
    recipient_id: int
    text: str
    attachments: List[Attachment] = Field(default_factory=list)
    is_read: bool
    read_at: Optional[datetime] = None
    delivered_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageEnvelope(BaseModel):
    error: bool = False
    message: Optional[str] = None
    data: MessageResponse


class MessageListResponse(BaseModel):
    error: bool = False
    messages: List[MessageResponse]
    pagination: Pagination


class UnreadCountResponse(BaseModel):
    error: bool = False
    unread_count: int
