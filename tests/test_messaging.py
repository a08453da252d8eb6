"""
Order conversation tests.
"""

import pytest

from src.errors import ForbiddenError, NotFoundError, ValidationFailedError
from src.realtime import events
from src.realtime.registry import order_room, user_room
from src.schemas.message import Attachment
from src.schemas.order import OrderCreate
from src.services import messaging
from src.services import orders as order_service


async def place_order(db_session, market):
    return await order_service.create_order(
        db_session,
        market.buyer,
        OrderCreate(listing_id=market.listing.id, selected_payment_method="cash"),
    )


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_recipient_is_the_other_party(self, db_session, market, recorder):
        order = await place_order(db_session, market)

        message = await messaging.send_message(db_session, market.buyer, order.id, "  Is it still available?  ")

        assert message.recipient_id == market.seller.id
        assert message.text == "Is it still available?"
        assert message.is_read is False

        published = recorder.named(events.NEW_MESSAGE)
        assert len(published) == 1
        rooms, payload = published[0]
        assert rooms == [user_room(market.seller.id), order_room(order.id)]
        assert payload["id"] == message.id
        assert payload["recipient_id"] == market.seller.id

        reply = await messaging.send_message(db_session, market.seller, order.id, "Yes")
        assert reply.recipient_id == market.buyer.id

    @pytest.mark.asyncio
    async def test_only_parties_may_send(self, db_session, market):
        order = await place_order(db_session, market)

        with pytest.raises(ForbiddenError):
            await messaging.send_message(db_session, market.outsider, order.id, "hello")
        with pytest.raises(ForbiddenError):
            await messaging.send_message(db_session, market.admin, order.id, "hello")

    @pytest.mark.asyncio
    async def test_text_validation(self, db_session, market):
        order = await place_order(db_session, market)

        with pytest.raises(ValidationFailedError):
            await messaging.send_message(db_session, market.buyer, order.id, "   ")
        with pytest.raises(ValidationFailedError):
            await messaging.send_message(db_session, market.buyer, order.id, "x" * 5001)

    @pytest.mark.asyncio
    async def test_attachments(self, db_session, market):
        order = await place_order(db_session, market)

        message = await messaging.send_message(
            db_session,
            market.buyer,
            order.id,
            "Receipt attached",
            [Attachment(url="https://cdn/receipt.jpg", type="image")],
        )
        assert message.attachments == [{"url": "https://cdn/receipt.jpg", "type": "image"}]

        too_many = [Attachment(url=f"https://cdn/{i}.pdf", type="pdf") for i in range(11)]
        with pytest.raises(ValidationFailedError):
            await messaging.send_message(db_session, market.buyer, order.id, "Lots", too_many)


class TestReading:
    @pytest.mark.asyncio
    async def test_viewing_marks_read(self, db_session, market, recorder):
        order = await place_order(db_session, market)
        first = await messaging.send_message(db_session, market.buyer, order.id, "Hi")
        second = await messaging.send_message(db_session, market.buyer, order.id, "Still there?")

        assert await messaging.unread_count(db_session, market.seller) == 2
        assert await messaging.unread_count(db_session, market.buyer) == 0

        messages, pagination = await messaging.list_messages(db_session, order.id, market.seller)

        assert [m.id for m in messages] == [first.id, second.id]
        assert all(m.is_read and m.read_at is not None for m in messages)
        assert pagination.total == 2
        assert await messaging.unread_count(db_session, market.seller) == 0

        receipts = recorder.named(events.MESSAGES_READ)
        assert len(receipts) == 1
        rooms, payload = receipts[0]
        assert rooms == [user_room(market.buyer.id)]
        assert sorted(payload["message_ids"]) == [first.id, second.id]
        assert payload["count"] == 2

    @pytest.mark.asyncio
    async def test_sender_view_changes_nothing(self, db_session, market, recorder):
        order = await place_order(db_session, market)
        await messaging.send_message(db_session, market.buyer, order.id, "Hi")

        await messaging.list_messages(db_session, order.id, market.buyer)

        assert await messaging.unread_count(db_session, market.seller) == 1
        assert recorder.named(events.MESSAGES_READ) == []

    @pytest.mark.asyncio
    async def test_admin_view_changes_nothing(self, db_session, market):
        order = await place_order(db_session, market)
        await messaging.send_message(db_session, market.buyer, order.id, "Hi")

        messages, _ = await messaging.list_messages(db_session, order.id, market.admin)

        assert len(messages) == 1
        assert await messaging.unread_count(db_session, market.seller) == 1

    @pytest.mark.asyncio
    async def test_outsider_cannot_list(self, db_session, market):
        order = await place_order(db_session, market)

        with pytest.raises(ForbiddenError):
            await messaging.list_messages(db_session, order.id, market.outsider)

    @pytest.mark.asyncio
    async def test_mark_read_is_idempotent(self, db_session, market, recorder):
        order = await place_order(db_session, market)
        message = await messaging.send_message(db_session, market.buyer, order.id, "Hi")

        read = await messaging.mark_read(db_session, message.id, market.seller)
        read_at = read.read_at
        assert read.is_read and read_at is not None

        again = await messaging.mark_read(db_session, message.id, market.seller)
        assert again.read_at == read_at

        receipts = recorder.named(events.MESSAGE_READ)
        assert len(receipts) == 1
        assert receipts[0][0] == [user_room(market.buyer.id)]
        assert receipts[0][1]["message_id"] == message.id

    @pytest.mark.asyncio
    async def test_mark_read_recipient_only(self, db_session, market):
        order = await place_order(db_session, market)
        message = await messaging.send_message(db_session, market.buyer, order.id, "Hi")

        with pytest.raises(ForbiddenError):
            await messaging.mark_read(db_session, message.id, market.buyer)
        with pytest.raises(NotFoundError):
            await messaging.mark_read(db_session, message.id + 100, market.seller)
