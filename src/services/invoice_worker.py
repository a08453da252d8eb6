"""
Invoice worker: renders queued invoices to PDF.

The invoices table is the queue. Each pass claims pending rows one at a
time (pending -> processing, attempts + 1), renders from the stored
template snapshot, and either completes the row or puts it back as
pending until `invoice_max_attempts` is reached. Rows left in processing
by a worker that died are reclaimed once they go stale.
"""

import asyncio
import io
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable, Optional, Set

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.db import AsyncSessionLocal
from src.models import Invoice, InvoiceStatus, utc_now
from src.realtime import events
from src.realtime.registry import user_room

logger = logging.getLogger(__name__)


def render_invoice_pdf(data: dict) -> bytes:
    """Render the invoice snapshot to PDF bytes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=1 * inch,
        bottomMargin=1 * inch,
        title=data["invoice_number"],
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "InvoiceTitle",
        parent=styles["Heading1"],
        fontSize=18,
        spaceAfter=20,
        alignment=TA_CENTER,
        textColor=colors.HexColor("#1F4E79"),
    )
    heading_style = ParagraphStyle(
        "InvoiceHeading",
        parent=styles["Heading2"],
        fontSize=13,
        spaceBefore=14,
        spaceAfter=8,
        textColor=colors.HexColor("#1F4E79"),
    )
    note_style = ParagraphStyle(
        "InvoiceNote",
        parent=styles["Normal"],
        fontSize=9,
        textColor=colors.grey,
    )

    def table(rows, widths):
        t = Table(rows, colWidths=widths)
        t.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F8F9FA")),
                    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 10),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#DEE2E6")),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("LEFTPADDING", (0, 0), (-1, -1), 6),
                    ("RIGHTPADDING", (0, 0), (-1, -1), 6),
                ]
            )
        )
        return t

    buyer = data.get("buyer") or {}
    seller = data.get("seller") or {}
    content = [
        Paragraph(f"Invoice {data['invoice_number']}", title_style),
        table(
            [
                ["Issued:", data.get("issued_at", "")[:10]],
                ["Order:", f"#{data['order_id']}"],
                ["Order date:", (data.get("order_created_at") or "")[:10]],
                ["Status:", data.get("order_status", "")],
            ],
            [1.8 * inch, 4.5 * inch],
        ),
        Paragraph("Parties", heading_style),
        table(
            [
                ["", "Seller", "Buyer"],
                ["Name", seller.get("name") or "", buyer.get("name") or ""],
                ["Email", seller.get("email") or "", buyer.get("email") or ""],
                ["Phone", seller.get("phone") or "", buyer.get("phone") or ""],
            ],
            [1.2 * inch, 2.6 * inch, 2.6 * inch],
        ),
        Paragraph("Item", heading_style),
        table(
            [
                ["Listing:", data.get("listing_title") or f"#{data.get('listing_id')}"],
                ["Price:", f"{data['price']} {data['currency']}"],
                ["Payment method:", data.get("payment_method", "")],
            ],
            [1.8 * inch, 4.5 * inch],
        ),
        Spacer(1, 24),
        Paragraph(
            "Payment was arranged directly between buyer and seller. "
            "This document records the agreed order and is not a payment receipt.",
            note_style,
        ),
    ]
    doc.build(content)
    return buffer.getvalue()


def store_pdf(invoice_number: str, pdf: bytes) -> str:
    """Write the PDF under the storage dir and return its public URL."""
    directory = Path(settings.invoice_storage_dir)
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{invoice_number}.pdf").write_bytes(pdf)
    return f"{settings.invoice_base_url.rstrip('/')}/{invoice_number}.pdf"


async def claim_next_invoice(db: AsyncSession, skip_ids: Iterable[int] = ()) -> Optional[Invoice]:
    """
    Move the oldest claimable invoice to processing and return it.

    Claimable means pending, or stuck in processing for longer than
    `invoice_processing_timeout_seconds` (the worker that claimed it
    died mid-render). A stuck row that already used its last attempt is
    marked failed instead of being claimed again.
    """
    skip_ids = set(skip_ids)
    while True:
        stale_before = utc_now() - timedelta(seconds=settings.invoice_processing_timeout_seconds)
        query = select(Invoice).where(
            or_(
                Invoice.status == InvoiceStatus.PENDING,
                and_(
                    Invoice.status == InvoiceStatus.PROCESSING,
                    Invoice.updated_at < stale_before,
                ),
            )
        )
        if skip_ids:
            query = query.where(Invoice.id.not_in(skip_ids))
        result = await db.execute(
            query
            .order_by(Invoice.id)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            return None

        if invoice.status == InvoiceStatus.PROCESSING:
            logger.warning(
                f"Invoice {invoice.invoice_number} abandoned in processing since {invoice.updated_at}"
            )
            if invoice.attempts >= settings.invoice_max_attempts:
                invoice.status = InvoiceStatus.FAILED
                invoice.error_message = "Abandoned while processing"
                await db.commit()
                skip_ids.add(invoice.id)
                continue

        invoice.status = InvoiceStatus.PROCESSING
        invoice.attempts += 1
        await db.commit()
        return invoice


async def process_invoice(db: AsyncSession, invoice: Invoice) -> bool:
    """
    Render and store one claimed invoice.

    Returns:
        True if the invoice completed
    """
    started = time.monotonic()
    try:
        pdf = await asyncio.to_thread(render_invoice_pdf, invoice.template_data)
        url = await asyncio.to_thread(store_pdf, invoice.invoice_number, pdf)
    except Exception as e:
        logger.exception(f"Invoice {invoice.invoice_number} render failed (attempt {invoice.attempts})")
        invoice.error_message = str(e)[:1000]
        if invoice.attempts >= settings.invoice_max_attempts:
            invoice.status = InvoiceStatus.FAILED
        else:
            invoice.status = InvoiceStatus.PENDING
        await db.commit()
        return False

    invoice.status = InvoiceStatus.COMPLETED
    invoice.generated_pdf_url = url
    invoice.file_size = len(pdf)
    invoice.generation_time_ms = int((time.monotonic() - started) * 1000)
    invoice.completed_at = utc_now()
    invoice.error_message = None
    await db.commit()
    logger.info(f"Invoice {invoice.invoice_number} completed ({invoice.file_size} bytes)")

    await events.publish(
        [user_room(invoice.issuer_id)],
        events.INVOICE_READY,
        {
            "invoice_id": invoice.id,
            "order_id": invoice.order_id,
            "invoice_number": invoice.invoice_number,
            "url": url,
        },
    )
    return True


async def invoice_worker_iteration(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    batch_size: int = 10,
) -> int:
    """
    Process up to `batch_size` pending invoices.

    Returns:
        Number of invoices processed (completed or not)
    """
    # a failed render waits for the next pass rather than retrying at once
    seen: Set[int] = set()
    async with session_factory() as db:
        while len(seen) < batch_size:
            invoice = await claim_next_invoice(db, skip_ids=seen)
            if invoice is None:
                break
            seen.add(invoice.id)
            await process_invoice(db, invoice)
    return len(seen)


async def run_invoice_worker(interval_seconds: Optional[int] = None):
    """Run the worker loop forever (stand-alone mode)."""
    interval_seconds = interval_seconds or settings.invoice_worker_interval_seconds
    logger.info(f"Starting invoice worker (interval: {interval_seconds}s)")

    while True:
        try:
            processed = await invoice_worker_iteration()
            if processed:
                logger.debug(f"Invoice worker processed {processed} invoices")
        except Exception as e:
            logger.error(f"Invoice worker error: {e}")

        await asyncio.sleep(interval_seconds)
