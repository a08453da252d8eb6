"""
Listing read model.

The catalog service owns listings; orders only read price, currency,
payment methods, seller and status once, at creation time.
"""

from decimal import Decimal
from enum import Enum
from typing import List

from sqlalchemy import JSON, ForeignKey, Numeric, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin


class ListingStatus(str, Enum):
    """Catalog lifecycle of a listing."""
    DRAFT = "draft"
    ACTIVE = "active"
    SOLD = "sold"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class Listing(Base, TimestampMixin):
    """A seller's item offered on the marketplace."""

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(primary_key=True)
    seller_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        default="ETB",
        server_default="ETB",
        nullable=False,
    )
    payment_methods: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
        comment="Accepted offsite payment methods, e.g. [\"cash\", \"m-birr\"]",
    )
    status: Mapped[ListingStatus] = mapped_column(
        SQLAlchemyEnum(
            ListingStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=ListingStatus.DRAFT,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, title='{self.title}', status={self.status})>"
