"""
Order service tests: creation, lifecycle, party edits and concurrency.
"""

import asyncio
from decimal import Decimal

import pytest

from src.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    InvalidPaymentMethodError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from src.models import AuditLog, ListingStatus, OrderStatus, PaymentStatus
from src.realtime import events
from src.realtime.registry import order_room, user_room
from src.schemas.order import MeetingInfo, OrderCreate, OrderUpdate
from src.services import orders as order_service
from sqlalchemy import select

from tests.conftest import seed_marketplace


def order_request(listing, method="cash", **kwargs):
    return OrderCreate(listing_id=listing.id, selected_payment_method=method, **kwargs)


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_snapshot_and_initial_state(self, db_session, market, recorder):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        assert order.status == OrderStatus.REQUESTED
        assert order.payment_status == PaymentStatus.NONE
        assert order.seller_id == market.seller.id
        assert order.price_agreed == Decimal("5000")
        assert order.currency == "ETB"
        assert [h.status for h in order.status_history] == [OrderStatus.REQUESTED]

        new_order = recorder.notifications(events.NOTIFY_NEW_ORDER)
        assert len(new_order) == 1
        rooms, payload = new_order[0]
        assert rooms == [user_room(market.seller.id)]
        assert payload["order_id"] == order.id
        assert recorder.named(events.ORDER_CREATED)[0][0] == [user_room(market.buyer.id)]

    @pytest.mark.asyncio
    async def test_price_does_not_follow_listing(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        market.listing.price = Decimal("9999.00")
        await db_session.commit()

        reloaded = await order_service.load_order(db_session, order.id)
        assert reloaded.price_agreed == Decimal("5000")

    @pytest.mark.asyncio
    async def test_self_purchase_rejected(self, db_session, market):
        with pytest.raises(InvalidOperationError, match="own listing"):
            await order_service.create_order(db_session, market.seller, order_request(market.listing))

    @pytest.mark.asyncio
    async def test_payment_method_must_be_offered(self, db_session, market):
        with pytest.raises(InvalidPaymentMethodError):
            await order_service.create_order(
                db_session, market.buyer, order_request(market.listing, method="telebirr")
            )

    @pytest.mark.asyncio
    async def test_inactive_listing_not_found(self, db_session, market):
        market.listing.status = ListingStatus.SOLD
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await order_service.create_order(db_session, market.buyer, order_request(market.listing))

    @pytest.mark.asyncio
    async def test_meeting_info_and_buyer_note(self, db_session, market):
        order = await order_service.create_order(
            db_session,
            market.buyer,
            order_request(market.listing, meeting_info=MeetingInfo(place="Bole"), buyer_note="Evenings"),
        )
        assert order.meeting_info == {"place": "Bole"}
        assert order.buyer_note == "Evenings"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_happy_path_to_delivered(self, db_session, market, recorder):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        steps = [
            (OrderStatus.SELLER_CONFIRMED, PaymentStatus.NONE),
            (OrderStatus.AWAITING_PAYMENT_CONFIRMATION, PaymentStatus.PENDING),
            (OrderStatus.PAID_OFFSITE, PaymentStatus.PAID_OFFSITE),
            (OrderStatus.SHIPPED, PaymentStatus.PAID_OFFSITE),
            (OrderStatus.DELIVERED, PaymentStatus.PAID_OFFSITE),
        ]
        for status, payment_status in steps:
            order = await order_service.transition_status(db_session, order.id, market.seller, status)
            assert order.status == status
            assert order.payment_status == payment_status

        order = await order_service.load_order(db_session, order.id)
        history = [h.status for h in order.status_history]
        assert history == [OrderStatus.REQUESTED] + [s for s, _ in steps]
        assert [h.id for h in order.status_history] == sorted(h.id for h in order.status_history)
        timestamps = [h.timestamp for h in order.status_history]
        assert timestamps == sorted(timestamps)
        assert order.status_history[-1].status == order.status
        assert all(h.changed_by == market.seller.id for h in order.status_history[1:])
        assert order.version == 6

        updates = recorder.named(events.ORDER_UPDATE)
        assert len(updates) == 5
        assert order_room(order.id) in updates[0][0]
        assert len(recorder.notifications(events.NOTIFY_ORDER_STATUS_CHANGED)) == 5

    @pytest.mark.asyncio
    async def test_buyer_cannot_advance(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        with pytest.raises(ForbiddenError):
            await order_service.transition_status(
                db_session, order.id, market.buyer, OrderStatus.SELLER_CONFIRMED
            )

        order = await order_service.load_order(db_session, order.id)
        assert order.status == OrderStatus.REQUESTED
        assert len(order.status_history) == 1

    @pytest.mark.asyncio
    async def test_buyer_cancel_policy(self, db_session, market):
        first = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        cancelled = await order_service.transition_status(
            db_session, first.id, market.buyer, OrderStatus.CANCELLED, note="Changed my mind"
        )
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.status_history[-1].note == "Changed my mind"

        second = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        await order_service.transition_status(
            db_session, second.id, market.seller, OrderStatus.SELLER_CONFIRMED
        )
        with pytest.raises(ForbiddenError):
            await order_service.transition_status(
                db_session, second.id, market.buyer, OrderStatus.CANCELLED
            )

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        await order_service.transition_status(db_session, order.id, market.seller, OrderStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            await order_service.transition_status(
                db_session, order.id, market.admin, OrderStatus.SELLER_CONFIRMED
            )

    @pytest.mark.asyncio
    async def test_outsider_cannot_view(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        with pytest.raises(ForbiddenError):
            await order_service.get_order(db_session, order.id, market.outsider)
        assert (await order_service.get_order(db_session, order.id, market.admin)).id == order.id

    @pytest.mark.asyncio
    async def test_transition_is_audited(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        await order_service.transition_status(
            db_session, order.id, market.seller, OrderStatus.SELLER_CONFIRMED, ip_address="10.0.0.1"
        )

        logs = (await db_session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()
        assert [log.action for log in logs] == ["create_order", "change_order_status"]
        assert logs[-1].action_metadata == {"old_status": "requested", "new_status": "seller_confirmed"}
        assert logs[-1].ip_address == "10.0.0.1"


class TestPartyEdits:
    @pytest.mark.asyncio
    async def test_meeting_info_shallow_merge(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        await order_service.update_meeting_info(db_session, order.id, market.buyer, MeetingInfo(place="Bole"))
        order = await order_service.update_meeting_info(
            db_session, order.id, market.seller, MeetingInfo(notes="Blue door")
        )
        assert order.meeting_info == {"place": "Bole", "notes": "Blue door"}

    @pytest.mark.asyncio
    async def test_payment_evidence_appends(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        await order_service.add_payment_evidence(db_session, order.id, market.buyer, "https://cdn/r1.jpg")
        order = await order_service.add_payment_evidence(
            db_session, order.id, market.seller, " https://cdn/r2.jpg "
        )
        assert [e.url for e in order.payment_evidence] == ["https://cdn/r1.jpg", "https://cdn/r2.jpg"]
        assert [e.uploaded_by for e in order.payment_evidence] == [market.buyer.id, market.seller.id]

        with pytest.raises(ValidationFailedError):
            await order_service.add_payment_evidence(db_session, order.id, market.buyer, "   ")

    @pytest.mark.asyncio
    async def test_seller_note_is_seller_side(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        with pytest.raises(ForbiddenError):
            await order_service.update_seller_note(db_session, order.id, market.buyer, "mine")
        order = await order_service.update_seller_note(db_session, order.id, market.seller, "Ready Friday")
        assert order.seller_note == "Ready Friday"

    @pytest.mark.asyncio
    async def test_update_order_all_or_nothing(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        with pytest.raises(ForbiddenError):
            await order_service.update_order(
                db_session,
                order.id,
                market.buyer,
                OrderUpdate(payment_evidence="https://cdn/r.jpg", seller_note="sneaky"),
            )
        order = await order_service.load_order(db_session, order.id)
        assert order.payment_evidence == []
        assert order.seller_note is None

    @pytest.mark.asyncio
    async def test_update_order_combined(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        order = await order_service.update_order(
            db_session,
            order.id,
            market.seller,
            OrderUpdate(
                status=OrderStatus.SELLER_CONFIRMED,
                meeting_info=MeetingInfo(place="Piazza"),
                seller_note="See you there",
            ),
        )
        assert order.status == OrderStatus.SELLER_CONFIRMED
        assert order.meeting_info == {"place": "Piazza"}
        assert order.seller_note == "See you there"
        assert order.version == 2

    @pytest.mark.asyncio
    async def test_update_order_requires_a_field(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        with pytest.raises(ValidationFailedError):
            await order_service.update_order(db_session, order.id, market.seller, OrderUpdate(note="just a note"))

    @pytest.mark.asyncio
    async def test_seller_sets_payment_status(self, db_session, market, recorder):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        order = await order_service.transition_status(
            db_session, order.id, market.seller, OrderStatus.SELLER_CONFIRMED
        )

        order = await order_service.update_order(
            db_session, order.id, market.seller, OrderUpdate(payment_status=PaymentStatus.PAID_OFFSITE)
        )
        assert order.payment_status == PaymentStatus.PAID_OFFSITE
        assert order.status == OrderStatus.SELLER_CONFIRMED
        assert order.version == 3

        logs = (
            await db_session.execute(select(AuditLog).where(AuditLog.action == "update_payment_status"))
        ).scalars().all()
        assert [log.action_metadata for log in logs] == [{"old": "none", "new": "paid_offsite"}]

        update = recorder.named(events.ORDER_UPDATE)[-1]
        assert user_room(market.buyer.id) in update[0]
        assert update[1]["payment_status"] == "paid_offsite"

    @pytest.mark.asyncio
    async def test_payment_status_overrides_transition(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        order = await order_service.update_order(
            db_session,
            order.id,
            market.admin,
            OrderUpdate(status=OrderStatus.SELLER_CONFIRMED, payment_status=PaymentStatus.PENDING),
        )
        assert order.status == OrderStatus.SELLER_CONFIRMED
        assert order.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_payment_status_rules(self, db_session, market):
        order = await order_service.create_order(db_session, market.buyer, order_request(market.listing))

        with pytest.raises(ForbiddenError, match="payment status"):
            await order_service.update_order(
                db_session, order.id, market.buyer, OrderUpdate(payment_status=PaymentStatus.PAID_OFFSITE)
            )
        with pytest.raises(ValidationFailedError):
            await order_service.update_order(
                db_session, order.id, market.seller, OrderUpdate(payment_status=PaymentStatus.DISPUTED)
            )

        order_service.mark_disputed(order, market.buyer.id, 1)
        await order_service.commit_order_change(db_session)
        with pytest.raises(InvalidOperationError):
            await order_service.update_order(
                db_session, order.id, market.seller, OrderUpdate(payment_status=PaymentStatus.PAID_OFFSITE)
            )

        order = await order_service.load_order(db_session, order.id)
        assert order.payment_status == PaymentStatus.DISPUTED


class TestListing:
    @pytest.mark.asyncio
    async def test_my_orders_by_role(self, db_session, market):
        first = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        second = await order_service.create_order(db_session, market.buyer, order_request(market.listing))
        await order_service.transition_status(db_session, first.id, market.seller, OrderStatus.CANCELLED)

        orders, pagination = await order_service.list_my_orders(db_session, market.buyer)
        assert {o.id for o in orders} == {first.id, second.id}
        assert pagination.total == 2

        orders, pagination = await order_service.list_my_orders(
            db_session, market.seller, role="seller", status=OrderStatus.REQUESTED
        )
        assert [o.id for o in orders] == [second.id]
        assert pagination.total == 1

        orders, _ = await order_service.list_my_orders(db_session, market.outsider)
        assert orders == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_stale_version_is_a_conflict(self, file_session_factory):
        async with file_session_factory() as session:
            market = await seed_marketplace(session)
            order = await order_service.create_order(session, market.buyer, order_request(market.listing))
            await order_service.transition_status(
                session, order.id, market.seller, OrderStatus.SELLER_CONFIRMED
            )

        async with file_session_factory() as first, file_session_factory() as second:
            seen_first = await order_service.load_order(first, order.id)
            seen_second = await order_service.load_order(second, order.id)
            assert seen_first.version == seen_second.version == 2

            order_service.record_status(seen_first, OrderStatus.AWAITING_PAYMENT_CONFIRMATION, market.seller.id)
            await order_service.commit_order_change(first)

            order_service.record_status(seen_second, OrderStatus.CANCELLED, market.seller.id)
            with pytest.raises(ConflictError):
                await order_service.commit_order_change(second)

        async with file_session_factory() as session:
            final = await order_service.load_order(session, order.id)
            assert final.status == OrderStatus.AWAITING_PAYMENT_CONFIRMATION
            assert final.version == 3
            assert [h.status for h in final.status_history][-1] == OrderStatus.AWAITING_PAYMENT_CONFIRMATION
            assert OrderStatus.CANCELLED not in [h.status for h in final.status_history]

    @pytest.mark.asyncio
    async def test_racing_transitions_exactly_one_wins(self, file_session_factory, recorder):
        async with file_session_factory() as session:
            market = await seed_marketplace(session)
            order = await order_service.create_order(session, market.buyer, order_request(market.listing))
            await order_service.transition_status(
                session, order.id, market.seller, OrderStatus.SELLER_CONFIRMED
            )

        async def advance():
            async with file_session_factory() as session:
                return await order_service.transition_status(
                    session, order.id, market.seller, OrderStatus.AWAITING_PAYMENT_CONFIRMATION
                )

        results = await asyncio.gather(advance(), advance(), return_exceptions=True)
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], (ConflictError, InvalidTransitionError))

        async with file_session_factory() as session:
            final = await order_service.load_order(session, order.id)
            statuses = [h.status for h in final.status_history]
            assert statuses.count(OrderStatus.AWAITING_PAYMENT_CONFIRMATION) == 1
            assert final.version == 3
