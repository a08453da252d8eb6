"""
Dispute overlay on orders.

Filing freezes the order in `disputed`; only an admin decision releases
it, either to `cancelled` or back to the status it had when the dispute
was filed.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ValidationFailedError,
)
from src.models import (
    ACTIVE_DISPUTE_STATUSES,
    AuditAction,
    Dispute,
    DisputeComment,
    DisputeStatus,
    Order,
    OrderStatus,
    User,
    utc_now,
)
from src.realtime import events
from src.realtime.registry import ADMIN_ROOM, order_room, user_room
from src.schemas.common import Pagination
from src.schemas.dispute import DisputeCreate, DisputeResolve
from src.services import orders as order_service
from src.services.order_state import is_terminal
from src.services.permissions import Capability, Party, require_admin, require_capability
from src.utils.audit import log_action

logger = logging.getLogger(__name__)


def _clean(text: str, limit: int, label: str) -> str:
    text = (text or "").strip()
    if not text:
        raise ValidationFailedError(f"{label} is required")
    if len(text) > limit:
        raise ValidationFailedError(f"{label} must be at most {limit} characters")
    return text


async def get_active_dispute(db: AsyncSession, order_id: int) -> Optional[Dispute]:
    result = await db.execute(
        select(Dispute)
        .where(
            Dispute.order_id == order_id,
            Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
        )
        .order_by(Dispute.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _load_dispute(db: AsyncSession, dispute_id: int) -> Dispute:
    result = await db.execute(
        select(Dispute)
        .where(Dispute.id == dispute_id)
        .execution_options(populate_existing=True)
    )
    dispute = result.scalar_one_or_none()
    if dispute is None:
        raise NotFoundError("Dispute not found")
    return dispute


async def alert_admin(dispute: Dispute, order: Order) -> None:
    """
    Tell the admin desk a dispute was filed.

    Goes to connected admins and the log addressed to the admin inbox;
    delivery is best-effort and never affects the filing.
    """
    logger.warning(
        f"Dispute alert for {settings.admin_email}: dispute {dispute.id} on order {order.id} "
        f"({dispute.category.value}) reported by user {dispute.reporter_id}"
    )
    await events.notify(
        ADMIN_ROOM,
        events.NOTIFY_DISPUTE_FILED,
        {
            "dispute_id": dispute.id,
            "order_id": order.id,
            "category": dispute.category.value,
            "reporter_id": dispute.reporter_id,
        },
    )


async def file_dispute(
    db: AsyncSession,
    reporter: User,
    data: DisputeCreate,
    ip_address: Optional[str] = None,
) -> Dispute:
    """
    Open a dispute and freeze the order.

    Raises:
        ForbiddenError: reporter is not the buyer or seller
        ConflictError: an open/under-review dispute exists (details carry its id)
        InvalidOperationError: order already delivered or cancelled
    """
    order = await order_service.load_order(db, data.order_id)
    require_capability(order, reporter, Capability.FILE_DISPUTE)
    reason = _clean(data.reason, settings.dispute_reason_max_length, "Dispute reason")

    existing = await get_active_dispute(db, order.id)
    if existing is not None:
        raise ConflictError(
            "An active dispute already exists for this order",
            details={"dispute_id": existing.id},
        )
    if is_terminal(order.status):
        raise InvalidOperationError(f"Cannot dispute an order that is {order.status.value}")

    dispute = Dispute(
        order_id=order.id,
        reporter_id=reporter.id,
        reason=reason,
        category=data.category,
        attachments=[a.model_dump(mode="json") for a in data.attachments],
        status=DisputeStatus.OPEN,
        order_status_before=order.status,
    )
    try:
        db.add(dispute)
        # the active-dispute unique index fires here if another filing won
        await db.flush()

        order_service.mark_disputed(order, reporter.id, dispute.id)
        await log_action(
            db,
            user_id=reporter.id,
            action=AuditAction.FILE_DISPUTE,
            target_type="dispute",
            target_id=dispute.id,
            action_metadata={"order_id": order.id, "category": data.category.value},
            ip_address=ip_address,
        )
        await order_service.commit_order_change(db)
    except (IntegrityError, ConflictError):
        # lost the race against a concurrent filing on the same order
        await db.rollback()
        existing = await get_active_dispute(db, data.order_id)
        raise ConflictError(
            "An active dispute already exists for this order",
            details={"dispute_id": existing.id if existing else None},
        )
    dispute = await _load_dispute(db, dispute.id)

    logger.info(f"Dispute {dispute.id} filed on order {order.id} by user {reporter.id}")

    await order_service.publish_order_update(order, "Order is under dispute", include_buyer=True)
    await events.notify(
        user_room(order.seller_id if reporter.id == order.buyer_id else order.buyer_id),
        events.NOTIFY_DISPUTE_FILED,
        {"dispute_id": dispute.id, "order_id": order.id, "category": dispute.category.value},
    )
    await alert_admin(dispute, order)
    return dispute


async def get_dispute(db: AsyncSession, dispute_id: int, user: User) -> Dispute:
    dispute = await _load_dispute(db, dispute_id)
    order = await order_service.load_order(db, dispute.order_id)
    require_capability(order, user, Capability.VIEW_ORDER)
    return dispute


async def add_comment(
    db: AsyncSession,
    dispute_id: int,
    user: User,
    text: str,
    ip_address: Optional[str] = None,
) -> Dispute:
    """Append a comment. Parties and admins only; closed disputes stay readable but frozen."""
    dispute = await _load_dispute(db, dispute_id)
    order = await order_service.load_order(db, dispute.order_id)
    party = require_capability(order, user, Capability.COMMENT_DISPUTE)
    if not dispute.is_active:
        raise InvalidOperationError("Dispute is closed")
    text = _clean(text, settings.dispute_comment_max_length, "Comment")

    dispute.comments.append(
        DisputeComment(user_id=user.id, text=text, is_admin_comment=party == Party.ADMIN)
    )
    await log_action(
        db,
        user_id=user.id,
        action=AuditAction.COMMENT_DISPUTE,
        target_type="dispute",
        target_id=dispute.id,
        ip_address=ip_address,
    )
    await db.commit()
    dispute = await _load_dispute(db, dispute.id)

    await events.publish(
        [order_room(order.id)],
        events.NOTIFICATION,
        {
            "type": events.NOTIFY_DISPUTE_UPDATED,
            "payload": {"dispute_id": dispute.id, "order_id": order.id, "comment_by": user.id},
        },
    )
    return dispute


async def resolve_dispute(
    db: AsyncSession,
    dispute_id: int,
    admin: User,
    data: DisputeResolve,
    ip_address: Optional[str] = None,
) -> Dispute:
    """
    Admin decision.

    - under_review: order stays frozen
    - resolved: order cancelled or resumed, per `order_outcome` or the
      configured policy
    - rejected: order resumes where it was
    """
    require_admin(admin)
    dispute = await _load_dispute(db, dispute_id)
    if not dispute.is_active:
        raise InvalidOperationError(f"Dispute is already {dispute.status.value}")
    if data.status == DisputeStatus.UNDER_REVIEW.value and data.order_outcome is not None:
        raise ValidationFailedError("order_outcome applies only when closing a dispute")

    new_status = DisputeStatus(data.status)
    dispute.status = new_status
    if data.admin_notes is not None:
        dispute.admin_notes = data.admin_notes
    if data.resolution is not None:
        dispute.resolution = data.resolution
    dispute.reviewed_by = admin.id
    dispute.reviewed_at = utc_now()

    outcome = None
    if new_status == DisputeStatus.RESOLVED:
        outcome = data.order_outcome or settings.dispute_resolution_policy
    elif new_status == DisputeStatus.REJECTED:
        outcome = "resume"

    order = await order_service.load_order(db, dispute.order_id)
    if outcome is not None:
        dispute.order_outcome = outcome
    if outcome is not None and order.status == OrderStatus.DISPUTED:
        order_service.release_dispute(order, outcome, dispute.order_status_before, admin.id, dispute.id)

    await log_action(
        db,
        user_id=admin.id,
        action=AuditAction.RESOLVE_DISPUTE,
        target_type="dispute",
        target_id=dispute.id,
        action_metadata={"status": new_status.value, "order_outcome": outcome},
        ip_address=ip_address,
    )
    await order_service.commit_order_change(db)
    dispute = await _load_dispute(db, dispute.id)

    logger.info(
        f"Dispute {dispute.id} set to {new_status.value} by admin {admin.id}"
        + (f", order {order.id} {outcome}" if outcome else "")
    )

    update = {"dispute_id": dispute.id, "order_id": order.id, "status": new_status.value, "order_outcome": outcome}
    for user_id in (order.buyer_id, order.seller_id):
        await events.notify(user_room(user_id), events.NOTIFY_DISPUTE_UPDATED, update)
    if outcome is not None:
        await order_service.publish_order_update(
            order, f"Dispute closed, order {order.status.value}", include_buyer=True
        )
    return dispute


async def list_my_disputes(
    db: AsyncSession,
    user: User,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dispute], Pagination]:
    """Disputes on orders where the user is buyer or seller, newest first."""
    condition = or_(Order.buyer_id == user.id, Order.seller_id == user.id)
    total = await db.scalar(
        select(func.count(Dispute.id)).join(Order, Order.id == Dispute.order_id).where(condition)
    )
    result = await db.execute(
        select(Dispute)
        .join(Order, Order.id == Dispute.order_id)
        .where(condition)
        .order_by(Dispute.created_at.desc(), Dispute.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), Pagination.build(page, limit, total)


async def list_disputes(
    db: AsyncSession,
    admin: User,
    status: Optional[DisputeStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dispute], Pagination]:
    """Admin queue, optionally filtered by status."""
    require_admin(admin)
    query = select(Dispute)
    count_query = select(func.count(Dispute.id))
    if status is not None:
        query = query.where(Dispute.status == status)
        count_query = count_query.where(Dispute.status == status)

    total = await db.scalar(count_query)
    result = await db.execute(
        query.order_by(Dispute.created_at.desc(), Dispute.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), Pagination.build(page, limit, total)
