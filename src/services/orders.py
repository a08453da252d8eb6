"""
Order service: creation, status transitions and party-editable fields.

Every public function takes the acting User, checks capabilities, mutates,
commits, and only then publishes real-time events. A stale `version` at
commit time surfaces as ConflictError.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.config import settings
from src.errors import (
    ConflictError,
    InvalidOperationError,
    InvalidPaymentMethodError,
    NotFoundError,
    ValidationFailedError,
)
from src.models import (
    AuditAction,
    Order,
    OrderStatus,
    OrderStatusHistory,
    PaymentEvidence,
    PaymentStatus,
    User,
)
from src.realtime import events
from src.realtime.registry import order_room, user_room
from src.schemas.common import Pagination
from src.schemas.order import MeetingInfo, OrderCreate, OrderUpdate, OrderUpdateEvent
from src.services.listings import get_orderable_listing
from src.services.order_state import (
    check_transition,
    payment_status_after,
    payment_status_for,
)
from src.services.permissions import Capability, Party, require_capability
from src.utils.audit import log_action

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "payment_status", "payment_evidence", "meeting_info", "seller_note")


async def load_order(db: AsyncSession, order_id: int) -> Order:
    """Fetch an order with its relationships refreshed from the database."""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def commit_order_change(db: AsyncSession) -> None:
    """Commit, turning a lost optimistic-lock race into ConflictError."""
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ConflictError("Order was modified concurrently, reload and retry")


def record_status(
    order: Order,
    status: OrderStatus,
    changed_by: Optional[int],
    note: Optional[str] = None,
) -> None:
    """Set the status and append its history row in the same unit of work."""
    order.status = status
    order.status_history.append(
        OrderStatusHistory(status=status, changed_by=changed_by, note=note)
    )


def mark_disputed(order: Order, reporter_id: int, dispute_id: int) -> None:
    """System transition into `disputed`; not subject to the party rules."""
    record_status(order, OrderStatus.DISPUTED, reporter_id, f"Dispute #{dispute_id} filed")
    order.payment_status = PaymentStatus.DISPUTED


def release_dispute(
    order: Order,
    outcome: str,
    status_before: OrderStatus,
    admin_id: int,
    dispute_id: int,
) -> None:
    """Take a disputed order out of the freeze: cancel it or resume where it was."""
    if outcome == "cancel":
        record_status(order, OrderStatus.CANCELLED, admin_id, f"Dispute #{dispute_id} closed: cancelled")
    else:
        record_status(order, status_before, admin_id, f"Dispute #{dispute_id} closed: resumed")
        order.payment_status = payment_status_for(status_before)


def order_update_payload(order: Order, message: str) -> dict:
    return OrderUpdateEvent(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        version=order.version,
        message=message,
    ).model_dump(mode="json")


async def publish_order_update(order: Order, message: str, include_buyer: bool = False) -> None:
    rooms = [order_room(order.id), user_room(order.seller_id)]
    if include_buyer:
        rooms.append(user_room(order.buyer_id))
    await events.publish(rooms, events.ORDER_UPDATE, order_update_payload(order, message))


async def create_order(
    db: AsyncSession,
    buyer: User,
    data: OrderCreate,
    ip_address: Optional[str] = None,
) -> Order:
    """
    Create an order intent in `requested`.

    Price and currency are copied from the listing now and never re-read.
    """
    listing = await get_orderable_listing(db, data.listing_id)

    if listing.seller_id == buyer.id:
        raise InvalidOperationError("You cannot order your own listing")
    if data.selected_payment_method not in (listing.payment_methods or []):
        raise InvalidPaymentMethodError(
            f"Payment method '{data.selected_payment_method}' is not offered for this listing"
        )

    meeting = data.meeting_info.model_dump(mode="json", exclude_none=True) if data.meeting_info else {}
    order = Order(
        listing_id=listing.id,
        buyer_id=buyer.id,
        seller_id=listing.seller_id,
        price_agreed=listing.price,
        currency=listing.currency or settings.default_currency,
        selected_payment_method=data.selected_payment_method,
        status=OrderStatus.REQUESTED,
        payment_status=PaymentStatus.NONE,
        meeting_info=meeting,
        buyer_note=data.buyer_note,
    )
    record_status(order, OrderStatus.REQUESTED, buyer.id, "Order created")
    db.add(order)
    await db.flush()

    await log_action(
        db,
        user_id=buyer.id,
        action=AuditAction.CREATE_ORDER,
        target_type="order",
        target_id=order.id,
        action_metadata={"listing_id": listing.id, "payment_method": data.selected_payment_method},
        ip_address=ip_address,
    )
    await db.commit()
    order = await load_order(db, order.id)

    logger.info(f"Order {order.id} created by buyer {buyer.id} for listing {listing.id}")

    summary = {
        "order_id": order.id,
        "listing_id": listing.id,
        "listing_title": listing.title,
        "buyer_id": buyer.id,
        "buyer_name": buyer.name,
        "price_agreed": str(order.price_agreed),
        "currency": order.currency,
    }
    await events.notify(user_room(order.seller_id), events.NOTIFY_NEW_ORDER, summary)
    await events.publish([user_room(buyer.id)], events.ORDER_CREATED, summary)
    return order


async def get_order(db: AsyncSession, order_id: int, user: User) -> Order:
    """Buyer, seller or admin only."""
    order = await load_order(db, order_id)
    require_capability(order, user, Capability.VIEW_ORDER)
    return order


def _apply_status(order: Order, actor: User, party: Party, new_status: OrderStatus, note: Optional[str]) -> OrderStatus:
    old_status = order.status
    check_transition(old_status, new_status, party, settings.buyer_cancellable_statuses)
    record_status(order, new_status, actor.id, note)
    order.payment_status = payment_status_after(new_status, order.payment_status)
    return old_status


async def _announce_status(order: Order, actor: User, old_status: OrderStatus) -> None:
    message = f"Order status changed to {order.status.value}"
    await publish_order_update(order, message)
    if actor.id != order.buyer_id:
        await events.notify(
            user_room(order.buyer_id),
            events.NOTIFY_ORDER_STATUS_CHANGED,
            {
                "order_id": order.id,
                "old_status": old_status.value,
                "status": order.status.value,
                "message": message,
            },
        )


async def transition_status(
    db: AsyncSession,
    order_id: int,
    actor: User,
    new_status: OrderStatus,
    note: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Order:
    """
    Manual status change.

    Raises:
        ForbiddenError: actor is not a party, or not allowed this change
        InvalidTransitionError: illegal from the current status
        ConflictError: another transition committed first
    """
    order = await load_order(db, order_id)
    party = require_capability(order, actor, Capability.VIEW_ORDER)
    old_status = _apply_status(order, actor, party, new_status, note)

    await log_action(
        db,
        user_id=actor.id,
        action=AuditAction.CHANGE_ORDER_STATUS,
        target_type="order",
        target_id=order.id,
        action_metadata={"old_status": old_status.value, "new_status": new_status.value},
        ip_address=ip_address,
    )
    await commit_order_change(db)

    logger.info(f"Order {order.id}: {old_status.value} -> {new_status.value} by user {actor.id}")
    await _announce_status(order, actor, old_status)
    return order


def _merge_meeting_info(order: Order, info: MeetingInfo) -> None:
    # new dict so the JSON column is flagged dirty
    merged = dict(order.meeting_info or {})
    merged.update(info.model_dump(mode="json", exclude_unset=True, exclude_none=True))
    order.meeting_info = merged


async def add_payment_evidence(
    db: AsyncSession,
    order_id: int,
    actor: User,
    url: str,
    ip_address: Optional[str] = None,
) -> Order:
    """Append an immutable evidence entry; allowed in any status."""
    order = await load_order(db, order_id)
    require_capability(order, actor, Capability.ADD_EVIDENCE)
    url = url.strip()
    if not url:
        raise ValidationFailedError("Payment evidence URL is required")

    order.payment_evidence.append(PaymentEvidence(url=url, uploaded_by=actor.id))
    await log_action(
        db,
        user_id=actor.id,
        action=AuditAction.ADD_PAYMENT_EVIDENCE,
        target_type="order",
        target_id=order.id,
        ip_address=ip_address,
    )
    await commit_order_change(db)
    logger.info(f"Payment evidence added to order {order.id} by user {actor.id}")
    return order


async def update_meeting_info(
    db: AsyncSession,
    order_id: int,
    actor: User,
    info: MeetingInfo,
    ip_address: Optional[str] = None,
) -> Order:
    """Shallow-merge meeting details; absent fields are kept."""
    order = await load_order(db, order_id)
    require_capability(order, actor, Capability.UPDATE_MEETING)
    _merge_meeting_info(order, info)

    await log_action(
        db,
        user_id=actor.id,
        action=AuditAction.UPDATE_MEETING_INFO,
        target_type="order",
        target_id=order.id,
        ip_address=ip_address,
    )
    await commit_order_change(db)
    return order


async def update_seller_note(
    db: AsyncSession,
    order_id: int,
    actor: User,
    note: str,
    ip_address: Optional[str] = None,
) -> Order:
    order = await load_order(db, order_id)
    require_capability(order, actor, Capability.UPDATE_SELLER_NOTE)
    order.seller_note = note

    await log_action(
        db,
        user_id=actor.id,
        action=AuditAction.UPDATE_SELLER_NOTE,
        target_type="order",
        target_id=order.id,
        ip_address=ip_address,
    )
    await commit_order_change(db)
    return order


async def update_order(
    db: AsyncSession,
    order_id: int,
    actor: User,
    data: OrderUpdate,
    ip_address: Optional[str] = None,
) -> Order:
    """
    PATCH /orders/{id}: any combination of status, payment status, evidence,
    meeting info and seller note, applied in one transaction.

    An explicit payment_status is applied after any status change, so it
    overrides the value the transition would have set. `disputed` is only
    ever set by filing a dispute.

    Every requested field is authorized before anything is changed, so a
    partially permitted request fails as a whole.
    """
    fields = data.model_dump(exclude_unset=True)
    if not any(fields.get(k) is not None for k in UPDATABLE_FIELDS):
        raise ValidationFailedError("Nothing to update")

    order = await load_order(db, order_id)
    party = require_capability(order, actor, Capability.VIEW_ORDER)
    if data.payment_evidence is not None:
        require_capability(order, actor, Capability.ADD_EVIDENCE)
    if data.meeting_info is not None:
        require_capability(order, actor, Capability.UPDATE_MEETING)
    if data.seller_note is not None:
        require_capability(order, actor, Capability.UPDATE_SELLER_NOTE)
    if data.payment_status is not None:
        require_capability(order, actor, Capability.SET_PAYMENT_STATUS)
        if data.payment_status == PaymentStatus.DISPUTED:
            raise ValidationFailedError("Payment status 'disputed' is set by filing a dispute")
        if order.status == OrderStatus.DISPUTED:
            raise InvalidOperationError("Payment status is frozen while the order is disputed")

    old_status = None
    changes: List[str] = []
    if data.status is not None:
        old_status = _apply_status(order, actor, party, data.status, data.note)
        changes.append("status")
    old_payment_status = order.payment_status
    if data.payment_status is not None and data.payment_status != order.payment_status:
        order.payment_status = data.payment_status
        changes.append("payment_status")
    if data.payment_evidence is not None:
        url = data.payment_evidence.strip()
        if not url:
            raise ValidationFailedError("Payment evidence URL is required")
        order.payment_evidence.append(PaymentEvidence(url=url, uploaded_by=actor.id))
        changes.append("payment_evidence")
    if data.meeting_info is not None:
        _merge_meeting_info(order, data.meeting_info)
        changes.append("meeting_info")
    if data.seller_note is not None:
        order.seller_note = data.seller_note
        changes.append("seller_note")

    if old_status is not None:
        await log_action(
            db,
            user_id=actor.id,
            action=AuditAction.CHANGE_ORDER_STATUS,
            target_type="order",
            target_id=order.id,
            action_metadata={"old_status": old_status.value, "new_status": order.status.value},
            ip_address=ip_address,
        )
    if "payment_status" in changes:
        await log_action(
            db,
            user_id=actor.id,
            action=AuditAction.UPDATE_PAYMENT_STATUS,
            target_type="order",
            target_id=order.id,
            action_metadata={"old": old_payment_status.value, "new": order.payment_status.value},
            ip_address=ip_address,
        )
    for name, action in (
        ("payment_evidence", AuditAction.ADD_PAYMENT_EVIDENCE),
        ("meeting_info", AuditAction.UPDATE_MEETING_INFO),
        ("seller_note", AuditAction.UPDATE_SELLER_NOTE),
    ):
        if name in changes:
            await log_action(
                db,
                user_id=actor.id,
                action=action,
                target_type="order",
                target_id=order.id,
                ip_address=ip_address,
            )
    await commit_order_change(db)
    logger.info(f"Order {order.id} updated by user {actor.id}: {', '.join(changes)}")

    if old_status is not None:
        await _announce_status(order, actor, old_status)
    elif "payment_status" in changes:
        await publish_order_update(
            order, f"Payment status changed to {order.payment_status.value}", include_buyer=True
        )
    return order


async def list_my_orders(
    db: AsyncSession,
    user: User,
    role: str = "buyer",
    status: Optional[OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Order], Pagination]:
    """Orders where the user is the buyer (or seller), newest first."""
    if role not in ("buyer", "seller"):
        raise ValidationFailedError("role must be 'buyer' or 'seller'")
    party_column = Order.buyer_id if role == "buyer" else Order.seller_id

    query = select(Order).where(party_column == user.id)
    count_query = select(func.count(Order.id)).where(party_column == user.id)
    if status is not None:
        query = query.where(Order.status == status)
        count_query = count_query.where(Order.status == status)

    total = await db.scalar(count_query)
    result = await db.execute(
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), Pagination.build(page, limit, total)
