"""
User model for authentication and role management.

Identity is owned by the accounts service; this table is the read model the
order subsystem authorizes against.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Set

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.models.audit import AuditLog


class UserRole(str, Enum):
    """Closed set of platform roles."""
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    COURIER = "courier"


class KycStatus(str, Enum):
    """Identity verification state gating seller activity."""
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base, TimestampMixin):
    """
    User account model.

    A user may hold several roles at once (a seller usually also buys).
    Admins may act on any order; buyers and sellers only on their own.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    roles: Mapped[List[str]] = mapped_column(
        JSON,
        default=lambda: [UserRole.BUYER.value],
        nullable=False,
        comment="JSON array of role names",
    )
    kyc_status: Mapped[KycStatus] = mapped_column(
        SQLAlchemyEnum(
            KycStatus,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=KycStatus.NONE,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    audit_logs: Mapped[List["AuditLog"]] = relationship(
        "AuditLog",
        back_populates="user",
    )

    @property
    def role_set(self) -> Set[UserRole]:
        """Roles as enum members; unknown strings are ignored."""
        known = {r.value for r in UserRole}
        return {UserRole(r) for r in (self.roles or []) if r in known}

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN in self.role_set

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', roles={self.roles})>"
