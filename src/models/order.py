"""
Order model: a buyer's intent to purchase a listing, settled offsite.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin, utc_now

if TYPE_CHECKING:
    from src.models.listing import Listing
    from src.models.user import User


class OrderStatus(str, Enum):
    """Lifecycle of an order intent."""
    REQUESTED = "requested"
    SELLER_CONFIRMED = "seller_confirmed"
    AWAITING_PAYMENT_CONFIRMATION = "awaiting_payment_confirmation"
    PAID_OFFSITE = "paid_offsite"
    SHIPPED = "shipped"
    COLLECTED = "collected"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentStatus(str, Enum):
    """Offsite payment state as reported by the parties."""
    NONE = "none"
    PENDING = "pending"
    PAID_OFFSITE = "paid_offsite"
    DISPUTED = "disputed"


class Order(Base, TimestampMixin):
    """
    Order intent between one buyer and one seller.

    Price, currency and payment method are snapshotted from the listing at
    creation and never follow later listing edits. Orders are never deleted;
    terminal statuses end their lifecycle.

    `version` is the optimistic lock: every UPDATE is issued as
    ... WHERE id = :id AND version = :seen, so two racing transitions
    cannot both commit.
    """

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_buyer_status", "buyer_id", "status"),
        Index("ix_orders_seller_status", "seller_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Parties (fixed at creation)
    listing_id: Mapped[int] = mapped_column(
        ForeignKey("listings.id"),
        nullable=False,
        index=True,
    )
    buyer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    seller_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )

    # Commercial snapshot (immutable)
    price_agreed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )
    selected_payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # State
    status: Mapped[OrderStatus] = mapped_column(
        SQLAlchemyEnum(
            OrderStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=OrderStatus.REQUESTED,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLAlchemyEnum(
            PaymentStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentStatus.NONE,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Metadata
    meeting_info: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
        comment="{date, place, notes}; shallow-merged on update",
    )
    buyer_note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    seller_note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    listing: Mapped["Listing"] = relationship("Listing", lazy="selectin")
    buyer: Mapped["User"] = relationship(
        "User",
        foreign_keys=[buyer_id],
        lazy="selectin",
    )
    seller: Mapped["User"] = relationship(
        "User",
        foreign_keys=[seller_id],
        lazy="selectin",
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
        lazy="selectin",
    )
    payment_evidence: Mapped[List["PaymentEvidence"]] = relationship(
        "PaymentEvidence",
        back_populates="order",
        order_by="PaymentEvidence.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status={self.status}, version={self.version})>"


class OrderStatusHistory(Base):
    """
    Append-only audit trail of status changes.

    Rows are written in the same flush as the status change they record and
    are never updated or deleted.
    """

    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    status: Mapped[OrderStatus] = mapped_column(
        SQLAlchemyEnum(
            OrderStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    changed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        comment="Actor; NULL for system-triggered changes",
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(order_id={self.order_id}, status={self.status})>"


class PaymentEvidence(Base):
    """Receipt or screenshot URL uploaded by a party. Immutable once added."""

    __tablename__ = "payment_evidence"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    url: Mapped[str] = mapped_column(
        String(1000),
        nullable=False,
    )
    uploaded_by: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="payment_evidence")

    def __repr__(self) -> str:
        return f"<PaymentEvidence(order_id={self.order_id}, uploaded_by={self.uploaded_by})>"
