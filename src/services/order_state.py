"""
Order status transition rules.

Main flow:
    requested -> seller_confirmed -> awaiting_payment_confirmation
    -> paid_offsite -> shipped -> collected -> delivered
with in-person handover shortcuts (paid_offsite -> collected,
shipped -> delivered). `cancelled` is reachable from any open status;
`disputed` only through filing a dispute, and freezes the order until an
admin closes the dispute.
"""

from typing import Dict, FrozenSet, Iterable

from src.errors import ForbiddenError, InvalidTransitionError
from src.models.order import OrderStatus, PaymentStatus
from src.services.permissions import Party

FORWARD_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.REQUESTED: frozenset({OrderStatus.SELLER_CONFIRMED}),
    OrderStatus.SELLER_CONFIRMED: frozenset({OrderStatus.AWAITING_PAYMENT_CONFIRMATION}),
    OrderStatus.AWAITING_PAYMENT_CONFIRMATION: frozenset({OrderStatus.PAID_OFFSITE}),
    OrderStatus.PAID_OFFSITE: frozenset({OrderStatus.SHIPPED, OrderStatus.COLLECTED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COLLECTED, OrderStatus.DELIVERED}),
    OrderStatus.COLLECTED: frozenset({OrderStatus.DELIVERED}),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# payment_status implied by reaching a given order status
_PAYMENT_STATUS_FOR = {
    OrderStatus.REQUESTED: PaymentStatus.NONE,
    OrderStatus.SELLER_CONFIRMED: PaymentStatus.NONE,
    OrderStatus.AWAITING_PAYMENT_CONFIRMATION: PaymentStatus.PENDING,
    OrderStatus.PAID_OFFSITE: PaymentStatus.PAID_OFFSITE,
    OrderStatus.SHIPPED: PaymentStatus.PAID_OFFSITE,
    OrderStatus.COLLECTED: PaymentStatus.PAID_OFFSITE,
    OrderStatus.DELIVERED: PaymentStatus.PAID_OFFSITE,
}


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_next(status: OrderStatus) -> FrozenSet[OrderStatus]:
    """Statuses reachable from `status` through a manual transition."""
    if status in TERMINAL_STATUSES or status == OrderStatus.DISPUTED:
        return frozenset()
    return FORWARD_TRANSITIONS.get(status, frozenset()) | {OrderStatus.CANCELLED}


def check_transition(
    current: OrderStatus,
    new: OrderStatus,
    party: Party,
    buyer_cancellable: Iterable[str],
) -> None:
    """
    Validate a manual status change by `party`.

    Raises ForbiddenError when the party may not make this kind of change,
    InvalidTransitionError when the change is illegal from `current`.
    """
    if new == OrderStatus.CANCELLED:
        if party == Party.BUYER and current.value not in set(buyer_cancellable):
            raise ForbiddenError(
                f"Buyers can only cancel orders in status: {', '.join(sorted(buyer_cancellable))}"
            )
    elif party not in (Party.SELLER, Party.ADMIN):
        raise ForbiddenError("Only the seller or an admin can change the order status")

    if new == OrderStatus.DISPUTED:
        raise InvalidTransitionError("Orders become disputed only by filing a dispute")
    if current == OrderStatus.DISPUTED:
        raise InvalidTransitionError("Order is frozen while a dispute is open")
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Order is already {current.value}")
    if new not in allowed_next(current):
        raise InvalidTransitionError(
            f"Cannot move order from {current.value} to {new.value}"
        )


def payment_status_after(new: OrderStatus, current: PaymentStatus) -> PaymentStatus:
    """payment_status once the order enters `new` through the main flow."""
    if new == OrderStatus.AWAITING_PAYMENT_CONFIRMATION and current == PaymentStatus.NONE:
        return PaymentStatus.PENDING
    if new == OrderStatus.PAID_OFFSITE:
        return PaymentStatus.PAID_OFFSITE
    return current


def payment_status_for(status: OrderStatus) -> PaymentStatus:
    """payment_status to restore when an order resumes at `status`."""
    return _PAYMENT_STATUS_FOR.get(status, PaymentStatus.NONE)
