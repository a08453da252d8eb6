"""
Order conversations between buyer and seller.

Messages are persisted before any real-time fan-out, so a client that
missed an event can always catch up over REST.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.errors import ForbiddenError, NotFoundError, ValidationFailedError
from src.models import AuditAction, Message, User, utc_now
from src.realtime import events
from src.realtime.registry import order_room, user_room
from src.schemas.common import Pagination
from src.schemas.message import Attachment, MessageResponse
from src.services.orders import load_order
from src.services.permissions import Capability, Party, other_party, require_capability
from src.utils.audit import log_action

logger = logging.getLogger(__name__)


def clean_text(text: Optional[str]) -> str:
    """Trim and validate message text."""
    text = (text or "").strip()
    if not text:
        raise ValidationFailedError("Message text is required")
    if len(text) > settings.message_max_length:
        raise ValidationFailedError(
            f"Message text must be at most {settings.message_max_length} characters"
        )
    return text


def message_payload(message: Message) -> dict:
    return MessageResponse.model_validate(message).model_dump(mode="json")


async def send_message(
    db: AsyncSession,
    sender: User,
    order_id: int,
    text: str,
    attachments: Optional[Sequence[Attachment]] = None,
    ip_address: Optional[str] = None,
) -> Message:
    """
    Persist a message from one party to the other.

    The recipient is always derived from the order, never taken from the
    client.
    """
    order = await load_order(db, order_id)
    require_capability(order, sender, Capability.SEND_MESSAGE)
    recipient_id = other_party(order, sender.id)

    text = clean_text(text)
    attachments = list(attachments or [])
    if len(attachments) > settings.message_max_attachments:
        raise ValidationFailedError(
            f"At most {settings.message_max_attachments} attachments per message"
        )

    message = Message(
        order_id=order.id,
        sender_id=sender.id,
        recipient_id=recipient_id,
        text=text,
        attachments=[a.model_dump(mode="json", exclude_none=True) for a in attachments],
        is_read=False,
    )
    db.add(message)
    await db.flush()

    await log_action(
        db,
        user_id=sender.id,
        action=AuditAction.SEND_MESSAGE,
        target_type="message",
        target_id=message.id,
        action_metadata={"order_id": order.id},
        ip_address=ip_address,
    )
    await db.commit()
    logger.info(f"Message {message.id} sent on order {order.id} by user {sender.id}")

    await events.publish(
        [user_room(recipient_id), order_room(order.id)],
        events.NEW_MESSAGE,
        message_payload(message),
    )
    return message


async def list_messages(
    db: AsyncSession,
    order_id: int,
    user: User,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[Message], Pagination]:
    """
    Conversation for an order, oldest first.

    Viewing counts as reading: every unread message addressed to the
    requester is marked read before the page is returned. Admin views
    change nothing.
    """
    order = await load_order(db, order_id)
    party = require_capability(order, user, Capability.VIEW_ORDER)

    if party != Party.ADMIN:
        unread_ids = list(
            (
                await db.execute(
                    select(Message.id).where(
                        Message.order_id == order.id,
                        Message.recipient_id == user.id,
                        Message.is_read == False,
                    )
                )
            ).scalars().all()
        )
        if unread_ids:
            read_at = utc_now()
            await db.execute(
                update(Message)
                .where(Message.id.in_(unread_ids), Message.is_read == False)
                .values(is_read=True, read_at=read_at)
            )
            await db.commit()
            await events.publish(
                [user_room(other_party(order, user.id))],
                events.MESSAGES_READ,
                {
                    "order_id": order.id,
                    "message_ids": unread_ids,
                    "count": len(unread_ids),
                    "read_at": read_at.isoformat(),
                },
            )

    total = await db.scalar(select(func.count(Message.id)).where(Message.order_id == order.id))
    result = await db.execute(
        select(Message)
        .where(Message.order_id == order.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all()), Pagination.build(page, limit, total)


async def unread_count(db: AsyncSession, user: User) -> int:
    """Served by the (recipient_id, is_read) index."""
    count = await db.scalar(
        select(func.count(Message.id)).where(
            Message.recipient_id == user.id,
            Message.is_read == False,
        )
    )
    return count or 0


async def mark_read(db: AsyncSession, message_id: int, user: User) -> Message:
    """Recipient-only and idempotent: `read_at` is set once."""
    message = await db.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.recipient_id != user.id:
        raise ForbiddenError("Only the recipient can mark a message as read")
    if message.is_read:
        return message

    message.is_read = True
    message.read_at = utc_now()
    await db.commit()

    read_at = message.read_at.isoformat()
    await events.publish(
        [user_room(user.id)],
        events.MESSAGES_READ,
        {"order_id": message.order_id, "message_ids": [message.id], "count": 1, "read_at": read_at},
    )
    await events.publish(
        [user_room(message.sender_id)],
        events.MESSAGE_READ,
        {"order_id": message.order_id, "message_id": message.id, "read_at": read_at},
    )
    return message
