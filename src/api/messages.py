"""Message API endpoints (REST fallback for the real-time channel)."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.dependencies import get_current_user
from src.db import get_db
from src.models import User
from src.schemas.message import (
    MessageCreate,
    MessageEnvelope,
    MessageListResponse,
    MessageResponse,
    UnreadCountResponse,
)
from src.services import messaging
from src.utils.audit import get_client_ip

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("", response_model=MessageEnvelope, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: Request,
    data: MessageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = await messaging.send_message(
        db,
        current_user,
        data.order_id,
        data.text,
        data.attachments,
        get_client_ip(request),
    )
    return MessageEnvelope(message="Message sent", data=MessageResponse.model_validate(message))


# Declared before /{message_id} routes so the literal path wins
@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UnreadCountResponse(unread_count=await messaging.unread_count(db, current_user))


@router.get("/order/{order_id}", response_model=MessageListResponse)
async def list_messages(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
):
    """Conversation for an order, oldest first. Marks the caller's unread messages as read."""
    messages, pagination = await messaging.list_messages(db, order_id, current_user, page, limit)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        pagination=pagination,
    )


@router.post("/{message_id}/read", response_model=MessageEnvelope)
async def mark_read(
    message_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = await messaging.mark_read(db, message_id, current_user)
    return MessageEnvelope(data=MessageResponse.model_validate(message))
