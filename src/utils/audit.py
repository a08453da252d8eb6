"""
Audit logging utilities.

Every mutation on an order, message, dispute or invoice leaves a row here.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.audit import AuditAction, AuditLog


async def log_action(
    db: AsyncSession,
    user_id: int,
    action: AuditAction,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action_metadata: Optional[dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Record an auditable action in the caller's transaction.

    Args:
        db: Database session
        user_id: Actor
        action: What was done
        target_type: "order", "message", "dispute" or "invoice"
        target_id: ID of the affected entity
        action_metadata: Extra context (old/new status, outcome, ...)
        ip_address: Client IP, when the action came over HTTP

    Returns:
        The pending AuditLog row; committed together with the change it describes
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        action_metadata=action_metadata,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry


def get_client_ip(request) -> Optional[str]:
    """Client IP, honouring X-Forwarded-For from the reverse proxy."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    client = getattr(request, "client", None)
    if client:
        return client.host

    return None
