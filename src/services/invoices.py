"""
Invoice request bridge.

The API only queues a pending invoice with a snapshot of the order; the
invoice worker renders it out of band.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.errors import ConflictError, NotFoundError
from src.models import AuditAction, Invoice, InvoiceStatus, Order, User, utc_now
from src.services.orders import load_order
from src.services.permissions import Capability, require_capability
from src.utils.audit import log_action

logger = logging.getLogger(__name__)

# Collisions only happen when two requests number the same year at once
NUMBERING_ATTEMPTS = 3


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:06d}"


async def next_invoice_number(db: AsyncSession, year: Optional[int] = None) -> str:
    """Highest number issued this year plus one; the sequence restarts every January."""
    year = year or utc_now().year
    prefix = f"INV-{year}-"
    last = await db.scalar(
        select(func.max(Invoice.invoice_number)).where(Invoice.invoice_number.like(f"{prefix}%"))
    )
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return format_invoice_number(year, sequence)


def build_template_data(order: Order, invoice_number: str) -> dict:
    """Everything the worker needs to render, so it never reads orders itself."""

    def party(user) -> dict:
        return {"id": user.id, "name": user.name, "email": user.email, "phone": user.phone}

    created_at: datetime = order.created_at
    return {
        "invoice_number": invoice_number,
        "order_id": order.id,
        "order_status": order.status.value,
        "order_created_at": created_at.isoformat() if created_at else None,
        "listing_id": order.listing_id,
        "listing_title": order.listing.title if order.listing else None,
        "price": str(order.price_agreed),
        "currency": order.currency,
        "payment_method": order.selected_payment_method,
        "buyer": party(order.buyer),
        "seller": party(order.seller),
        "issued_at": utc_now().isoformat(),
    }


async def latest_invoice(db: AsyncSession, order_id: int) -> Optional[Invoice]:
    result = await db.execute(
        select(Invoice)
        .where(Invoice.order_id == order_id)
        .order_by(Invoice.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def request_invoice(
    db: AsyncSession,
    order_id: int,
    actor: User,
    ip_address: Optional[str] = None,
) -> Tuple[Invoice, bool]:
    """
    Queue an invoice for the order, or return the one already there.

    A completed, pending or processing invoice is returned as is; only a
    failed (or missing) invoice leads to a new pending record.

    Returns:
        (invoice, created)
    """
    order = await load_order(db, order_id)
    require_capability(order, actor, Capability.REQUEST_INVOICE)

    existing = await latest_invoice(db, order.id)
    if existing is not None and existing.status != InvoiceStatus.FAILED:
        return existing, False

    for attempt in range(1, NUMBERING_ATTEMPTS + 1):
        number = await next_invoice_number(db)
        invoice = Invoice(
            order_id=order.id,
            issuer_id=actor.id,
            invoice_number=number,
            template_data=build_template_data(order, number),
            status=InvoiceStatus.PENDING,
            attempts=0,
        )
        db.add(invoice)
        try:
            await db.flush()
            await log_action(
                db,
                user_id=actor.id,
                action=AuditAction.REQUEST_INVOICE,
                target_type="invoice",
                target_id=invoice.id,
                action_metadata={"order_id": order.id, "invoice_number": number},
                ip_address=ip_address,
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(f"Invoice number {number} taken (attempt {attempt}), retrying")
            order = await load_order(db, order_id)
            continue

        logger.info(f"Invoice {number} queued for order {order.id} by user {actor.id}")
        return invoice, True

    raise ConflictError("Could not allocate an invoice number, retry")


async def get_invoice(db: AsyncSession, order_id: int, user: User) -> Invoice:
    """Latest invoice for the order; buyer, seller or admin."""
    order = await load_order(db, order_id)
    require_capability(order, user, Capability.VIEW_INVOICE)
    invoice = await latest_invoice(db, order.id)
    if invoice is None:
        raise NotFoundError("No invoice has been requested for this order")
    return invoice
