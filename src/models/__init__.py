"""
Database models for the order subsystem.

All models are exported here for convenient imports:
    from src.models import User, Order, Message, Dispute, etc.
"""

from src.models.audit import AuditAction, AuditLog
from src.models.base import Base, TimestampMixin, utc_now
from src.models.dispute import (
    ACTIVE_DISPUTE_STATUSES,
    Dispute,
    DisputeCategory,
    DisputeComment,
    DisputeStatus,
)
from src.models.invoice import Invoice, InvoiceStatus
from src.models.listing import Listing, ListingStatus
from src.models.message import Message
from src.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    PaymentEvidence,
    PaymentStatus,
)
from src.models.user import KycStatus, User, UserRole

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "utc_now",
    # User
    "User",
    "UserRole",
    "KycStatus",
    # Listing
    "Listing",
    "ListingStatus",
    # Order
    "Order",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentEvidence",
    "PaymentStatus",
    # Message
    "Message",
    # Dispute
    "Dispute",
    "DisputeCategory",
    "DisputeComment",
    "DisputeStatus",
    "ACTIVE_DISPUTE_STATUSES",
    # Invoice
    "Invoice",
    "InvoiceStatus",
    # Audit
    "AuditLog",
    "AuditAction",
]
