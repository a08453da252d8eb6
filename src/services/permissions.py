"""
Who may do what to an order.

One table, used by the REST routes and the real-time router alike:
- buyer: view, create, cancel (early), evidence, meeting info, message, dispute
- seller: view, advance/cancel status, payment status, evidence, meeting
  info, notes, message, dispute, invoice
- admin: everything except speaking as a party (messages, filing disputes)
Anyone else gets ForbiddenError, whatever the order's state.
"""

from enum import Enum
from typing import Optional

from src.errors import ForbiddenError
from src.models.user import UserRole


class Party(str, Enum):
    """Relationship of a user to a specific order."""
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class Capability(str, Enum):
    """Operations gated per order."""
    VIEW_ORDER = "view_order"
    ADVANCE_STATUS = "advance_status"
    CANCEL_ORDER = "cancel_order"
    ADD_EVIDENCE = "add_evidence"
    UPDATE_MEETING = "update_meeting"
    UPDATE_SELLER_NOTE = "update_seller_note"
    SET_PAYMENT_STATUS = "set_payment_status"
    SEND_MESSAGE = "send_message"
    FILE_DISPUTE = "file_dispute"
    COMMENT_DISPUTE = "comment_dispute"
    REQUEST_INVOICE = "request_invoice"
    VIEW_INVOICE = "view_invoice"


_ALL = frozenset(Party)
_PARTIES = frozenset({Party.BUYER, Party.SELLER})
_SELLER_SIDE = frozenset({Party.SELLER, Party.ADMIN})

CAPABILITIES = {
    Capability.VIEW_ORDER: _ALL,
    Capability.ADVANCE_STATUS: _SELLER_SIDE,
    Capability.CANCEL_ORDER: _ALL,
    Capability.ADD_EVIDENCE: _ALL,
    Capability.UPDATE_MEETING: _ALL,
    Capability.UPDATE_SELLER_NOTE: _SELLER_SIDE,
    Capability.SET_PAYMENT_STATUS: _SELLER_SIDE,
    Capability.SEND_MESSAGE: _PARTIES,
    Capability.FILE_DISPUTE: _PARTIES,
    Capability.COMMENT_DISPUTE: _ALL,
    Capability.REQUEST_INVOICE: _SELLER_SIDE,
    Capability.VIEW_INVOICE: _ALL,
}

_DENIED_MESSAGES = {
    Capability.VIEW_ORDER: "You do not have permission to view this order",
    Capability.ADVANCE_STATUS: "Only the seller or an admin can change the order status",
    Capability.UPDATE_SELLER_NOTE: "Only the seller or an admin can edit the seller note",
    Capability.SET_PAYMENT_STATUS: "Only the seller or an admin can change the payment status",
    Capability.SEND_MESSAGE: "Only the buyer or seller can message in this order",
    Capability.FILE_DISPUTE: "Only the buyer or seller can file a dispute for this order",
    Capability.REQUEST_INVOICE: "Only the seller or admin can generate invoices",
}


def party_of(order, user) -> Optional[Party]:
    """Return how `user` relates to `order`, or None for outsiders."""
    if user.id == order.buyer_id:
        return Party.BUYER
    if user.id == order.seller_id:
        return Party.SELLER
    if UserRole.ADMIN in user.role_set:
        return Party.ADMIN
    return None


def can(order, user, capability: Capability) -> bool:
    party = party_of(order, user)
    return party is not None and party in CAPABILITIES[capability]


def require_capability(order, user, capability: Capability) -> Party:
    """
    Check `user` may perform `capability` on `order`.

    Returns the user's party on success; raises ForbiddenError otherwise.
    """
    party = party_of(order, user)
    if party is None or party not in CAPABILITIES[capability]:
        raise ForbiddenError(
            _DENIED_MESSAGES.get(capability, "You do not have permission to access this order")
        )
    return party


def require_admin(user) -> None:
    if UserRole.ADMIN not in user.role_set:
        raise ForbiddenError("Admin access required")


def other_party(order, actor_id: int) -> int:
    """
    The counterpart of `actor_id` in `order`.

    Every message send path derives the recipient here; a client-supplied
    recipient is never trusted.
    """
    if actor_id == order.buyer_id:
        return order.seller_id
    if actor_id == order.seller_id:
        return order.buyer_id
    raise ForbiddenError("Only the buyer or seller can message in this order")
