"""
Room registry tests with fake sockets.
"""

import json

import pytest

from src.realtime import events
from src.realtime.registry import ADMIN_ROOM, InMemoryRoomRegistry, order_room, user_room


class FakeSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.closed_with = None
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000, reason=None):
        self.closed_with = code

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(text))


class TestRegistry:
    @pytest.mark.asyncio
    async def test_connect_joins_user_room(self):
        registry = InMemoryRoomRegistry()
        ws = FakeSocket()

        conn = await registry.connect(ws, user_id=7)

        assert ws.accepted
        assert registry.rooms_of(conn.id) == {user_room(7)}
        assert registry.connection_count == 1

    @pytest.mark.asyncio
    async def test_delivered_once_across_rooms(self):
        registry = InMemoryRoomRegistry()
        ws = FakeSocket()
        conn = await registry.connect(ws, user_id=7)
        registry.join(conn.id, order_room(3))

        delivered = await registry.broadcast_many(
            [user_room(7), order_room(3)], "order_update", {"order_id": 3}
        )

        assert delivered == 1
        assert ws.sent == [{"event": "order_update", "data": {"order_id": 3}}]

    @pytest.mark.asyncio
    async def test_room_scoping(self):
        registry = InMemoryRoomRegistry()
        inside, outside = FakeSocket(), FakeSocket()
        conn = await registry.connect(inside, user_id=1)
        await registry.connect(outside, user_id=2)
        registry.join(conn.id, order_room(5))

        await registry.broadcast(order_room(5), "new_message", {"id": 1})

        assert len(inside.sent) == 1
        assert outside.sent == []

        registry.leave(conn.id, order_room(5))
        await registry.broadcast(order_room(5), "new_message", {"id": 2})
        assert len(inside.sent) == 1

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        registry = InMemoryRoomRegistry()
        healthy, broken = FakeSocket(), FakeSocket(fail=True)
        await registry.connect(healthy, user_id=1)
        dead = await registry.connect(broken, user_id=1)

        delivered = await registry.broadcast(user_room(1), "ping", {})

        assert delivered == 1
        assert registry.connection_count == 1
        assert registry.rooms_of(dead.id) == set()
        assert dead.id not in registry.members(user_room(1))

    @pytest.mark.asyncio
    async def test_capacity(self):
        registry = InMemoryRoomRegistry(max_connections=1)
        await registry.connect(FakeSocket(), user_id=1)
        refused = FakeSocket()

        assert await registry.connect(refused, user_id=2) is None
        assert refused.closed_with == 4029
        assert not refused.accepted

    @pytest.mark.asyncio
    async def test_disconnect_cleans_rooms(self):
        registry = InMemoryRoomRegistry()
        conn = await registry.connect(FakeSocket(), user_id=1)
        registry.join(conn.id, ADMIN_ROOM)

        registry.disconnect(conn.id)
        registry.disconnect(conn.id)

        assert registry.members(ADMIN_ROOM) == set()
        assert await registry.broadcast(ADMIN_ROOM, "notification", {}) == 0

    @pytest.mark.asyncio
    async def test_private_send(self):
        registry = InMemoryRoomRegistry()
        ws = FakeSocket()
        conn = await registry.connect(ws, user_id=1)

        assert await registry.send(conn.id, "pong", {})
        assert not await registry.send("missing", "pong", {})
        assert ws.sent == [{"event": "pong", "data": {}}]


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_never_raises(self):
        class ExplodingRegistry(InMemoryRoomRegistry):
            async def broadcast_many(self, rooms, event, data):
                raise RuntimeError("backend down")

        previous = events.set_registry(ExplodingRegistry())
        try:
            assert await events.publish([user_room(1)], events.ORDER_UPDATE, {}) == 0
        finally:
            events.set_registry(previous)

    @pytest.mark.asyncio
    async def test_notify_wraps_payload(self, recorder):
        await events.notify(user_room(1), events.NOTIFY_NEW_ORDER, {"order_id": 9})

        assert recorder.published == [
            ([user_room(1)], events.NOTIFICATION, {"type": "new_order", "payload": {"order_id": 9}})
        ]
