"""
Server-to-client event publishing.

Publishing is best-effort: callers have already committed the change the
event describes, so a failed fan-out is logged and never raised.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from src.config import settings
from src.realtime.registry import InMemoryRoomRegistry, RoomRegistry

logger = logging.getLogger(__name__)

# Server -> client
ORDER_UPDATE = "order_update"
ORDER_CREATED = "order_created"
NOTIFICATION = "notification"
NEW_MESSAGE = "new_message"
MESSAGE_READ = "message_read"
MESSAGES_READ = "messages_read"
INVOICE_READY = "invoice_ready"
AUTH_SUCCESS = "auth_success"
JOINED_ORDER = "joined_order"
LEFT_ORDER = "left_order"
MESSAGE_SENT = "message_sent"
INVOICE_QUEUED = "invoice_queued"
PONG = "pong"
ERROR = "error"

# Client -> server
JOIN_ORDER = "join_order"
LEAVE_ORDER = "leave_order"
CLIENT_NEW_MESSAGE = "new_message"
MARK_ORDER_STATUS = "mark_order_status"
MARK_MESSAGE_READ = "mark_message_read"
GENERATE_INVOICE = "generate_invoice"
PING = "ping"

# notification{type}
NOTIFY_NEW_ORDER = "new_order"
NOTIFY_ORDER_STATUS_CHANGED = "order_status_changed"
NOTIFY_DISPUTE_FILED = "dispute_filed"
NOTIFY_DISPUTE_UPDATED = "dispute_updated"

_registry: RoomRegistry = InMemoryRoomRegistry(max_connections=settings.ws_max_connections)


def get_registry() -> RoomRegistry:
    return _registry


def set_registry(registry: RoomRegistry) -> RoomRegistry:
    """Swap the registry (tests, or a shared pub/sub backend). Returns the old one."""
    global _registry
    previous = _registry
    _registry = registry
    return previous


async def publish(rooms: Iterable[str], event: str, data: Dict[str, Any]) -> int:
    """Fan an event out to rooms; returns connections reached, 0 on failure."""
    rooms = list(rooms)
    try:
        return await _registry.broadcast_many(rooms, event, data)
    except Exception:
        logger.exception(f"Realtime publish of {event} to {rooms} failed")
        return 0


async def notify(room: str, kind: str, payload: Dict[str, Any]) -> int:
    return await publish([room], NOTIFICATION, {"type": kind, "payload": payload})


async def send_to(connection_id: Optional[str], event: str, data: Dict[str, Any]) -> bool:
    """Private reply to one connection."""
    if connection_id is None:
        return False
    try:
        return await _registry.send(connection_id, event, data)
    except Exception:
        logger.exception(f"Realtime send of {event} to {connection_id} failed")
        return False
