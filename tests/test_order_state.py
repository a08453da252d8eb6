"""
Order status transition rule tests.
"""

import pytest

from src.errors import ForbiddenError, InvalidTransitionError
from src.models import OrderStatus, PaymentStatus
from src.services.order_state import (
    allowed_next,
    check_transition,
    is_terminal,
    payment_status_after,
    payment_status_for,
)
from src.services.permissions import Party

BUYER_CANCELLABLE = ["requested"]


class TestAllowedNext:
    def test_main_flow(self):
        assert allowed_next(OrderStatus.REQUESTED) == {
            OrderStatus.SELLER_CONFIRMED,
            OrderStatus.CANCELLED,
        }
        assert allowed_next(OrderStatus.PAID_OFFSITE) == {
            OrderStatus.SHIPPED,
            OrderStatus.COLLECTED,
            OrderStatus.CANCELLED,
        }

    def test_terminal_and_disputed_are_closed(self):
        assert allowed_next(OrderStatus.DELIVERED) == frozenset()
        assert allowed_next(OrderStatus.CANCELLED) == frozenset()
        assert allowed_next(OrderStatus.DISPUTED) == frozenset()
        assert is_terminal(OrderStatus.DELIVERED)
        assert not is_terminal(OrderStatus.DISPUTED)

    def test_disputed_never_a_manual_target(self):
        for status in OrderStatus:
            assert OrderStatus.DISPUTED not in allowed_next(status)


class TestCheckTransition:
    def test_seller_advances(self):
        check_transition(
            OrderStatus.REQUESTED, OrderStatus.SELLER_CONFIRMED, Party.SELLER, BUYER_CANCELLABLE
        )
        check_transition(
            OrderStatus.SHIPPED, OrderStatus.DELIVERED, Party.ADMIN, BUYER_CANCELLABLE
        )

    def test_skipping_a_step_is_illegal(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(
                OrderStatus.REQUESTED, OrderStatus.PAID_OFFSITE, Party.SELLER, BUYER_CANCELLABLE
            )

    def test_buyer_cannot_advance(self):
        with pytest.raises(ForbiddenError):
            check_transition(
                OrderStatus.REQUESTED, OrderStatus.SELLER_CONFIRMED, Party.BUYER, BUYER_CANCELLABLE
            )

    def test_buyer_cancels_only_early(self):
        check_transition(
            OrderStatus.REQUESTED, OrderStatus.CANCELLED, Party.BUYER, BUYER_CANCELLABLE
        )
        with pytest.raises(ForbiddenError):
            check_transition(
                OrderStatus.SHIPPED, OrderStatus.CANCELLED, Party.BUYER, BUYER_CANCELLABLE
            )

    def test_seller_cancels_any_open_status(self):
        check_transition(
            OrderStatus.SHIPPED, OrderStatus.CANCELLED, Party.SELLER, BUYER_CANCELLABLE
        )

    def test_terminal_is_final(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(
                OrderStatus.DELIVERED, OrderStatus.CANCELLED, Party.ADMIN, BUYER_CANCELLABLE
            )
        with pytest.raises(InvalidTransitionError):
            check_transition(
                OrderStatus.CANCELLED, OrderStatus.REQUESTED, Party.SELLER, BUYER_CANCELLABLE
            )

    def test_disputed_is_frozen(self):
        with pytest.raises(InvalidTransitionError, match="dispute"):
            check_transition(
                OrderStatus.DISPUTED, OrderStatus.SHIPPED, Party.SELLER, BUYER_CANCELLABLE
            )
        with pytest.raises(InvalidTransitionError):
            check_transition(
                OrderStatus.DISPUTED, OrderStatus.CANCELLED, Party.ADMIN, BUYER_CANCELLABLE
            )

    def test_disputed_not_reachable_manually(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(
                OrderStatus.SHIPPED, OrderStatus.DISPUTED, Party.ADMIN, BUYER_CANCELLABLE
            )


class TestPaymentStatus:
    def test_after_transition(self):
        assert payment_status_after(
            OrderStatus.AWAITING_PAYMENT_CONFIRMATION, PaymentStatus.NONE
        ) == PaymentStatus.PENDING
        assert payment_status_after(
            OrderStatus.PAID_OFFSITE, PaymentStatus.PENDING
        ) == PaymentStatus.PAID_OFFSITE
        assert payment_status_after(
            OrderStatus.CANCELLED, PaymentStatus.PENDING
        ) == PaymentStatus.PENDING

    def test_restored_on_resume(self):
        assert payment_status_for(OrderStatus.REQUESTED) == PaymentStatus.NONE
        assert payment_status_for(OrderStatus.SHIPPED) == PaymentStatus.PAID_OFFSITE
