"""
Dispute model: a complaint filed by a party that freezes the order.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin, utc_now
from src.models.order import OrderStatus


class DisputeStatus(str, Enum):
    """Review state of a dispute."""
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


ACTIVE_DISPUTE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)


class DisputeCategory(str, Enum):
    """What the reporter says went wrong."""
    PAYMENT_NOT_RECEIVED = "payment_not_received"
    ITEM_NOT_RECEIVED = "item_not_received"
    ITEM_NOT_AS_DESCRIBED = "item_not_as_described"
    COUNTERFEIT = "counterfeit"
    SAFETY_CONCERN = "safety_concern"
    OTHER = "other"


class Dispute(Base, TimestampMixin):
    """
    A dispute on one order.

    At most one dispute per order may be open or under review at a time.
    `order_status_before` remembers where the order was when it froze, so
    a rejected (or resumed) dispute can hand it back to the main flow.
    """

    __tablename__ = "disputes"
    __table_args__ = (
        # at most one open or under-review dispute per order
        Index(
            "uq_disputes_active_order",
            "order_id",
            unique=True,
            postgresql_where=text("status IN ('open', 'under_review')"),
            sqlite_where=text("status IN ('open', 'under_review')"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    reporter_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    category: Mapped[DisputeCategory] = mapped_column(
        SQLAlchemyEnum(
            DisputeCategory,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DisputeCategory.OTHER,
        nullable=False,
    )
    attachments: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    status: Mapped[DisputeStatus] = mapped_column(
        SQLAlchemyEnum(
            DisputeStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DisputeStatus.OPEN,
        nullable=False,
        index=True,
    )
    order_status_before: Mapped[OrderStatus] = mapped_column(
        SQLAlchemyEnum(
            OrderStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )

    # Admin review
    admin_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    resolution: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    order_outcome: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="cancel or resume, set when the dispute is closed",
    )
    reviewed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    comments: Mapped[List["DisputeComment"]] = relationship(
        "DisputeComment",
        back_populates="dispute",
        order_by="DisputeComment.id",
        lazy="selectin",
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_DISPUTE_STATUSES

    def __repr__(self) -> str:
        return f"<Dispute(id={self.id}, order_id={self.order_id}, status={self.status})>"


class DisputeComment(Base):
    """Append-only discussion entry on a dispute."""

    __tablename__ = "dispute_comments"

    id: Mapped[int] = mapped_column(primary_key=True)
    dispute_id: Mapped[int] = mapped_column(
        ForeignKey("disputes.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    is_admin_comment: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    dispute: Mapped["Dispute"] = relationship("Dispute", back_populates="comments")

    def __repr__(self) -> str:
        return f"<DisputeComment(id={self.id}, dispute_id={self.dispute_id})>"
