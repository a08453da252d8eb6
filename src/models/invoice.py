"""
Invoice model. Doubles as the work queue for the invoice worker.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin


class InvoiceStatus(str, Enum):
    """Generation state of an invoice."""
    PENDING = "pending"        # Queued, waiting for the worker
    PROCESSING = "processing"  # Claimed by the worker
    COMPLETED = "completed"    # PDF stored, URL available
    FAILED = "failed"          # Gave up after max attempts


class Invoice(Base, TimestampMixin):
    """
    Invoice for an order.

    Rows are added here by the API (seller/admin request) and rendered by
    the invoice worker. `template_data` is a denormalized snapshot of the
    order, listing and parties so the worker never re-reads them.
    """

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    issuer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    invoice_number: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        index=True,
        nullable=False,
        comment="INV-<year>-<seq>, sequence restarts every year",
    )
    template_data: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLAlchemyEnum(
            InvoiceStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=InvoiceStatus.PENDING,
        nullable=False,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    generated_pdf_url: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    file_size: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    generation_time_ms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status={self.status})>"
