"""
Room registry for WebSocket connections.

Every connection joins `user:<id>` on connect and may join `order:<id>`
rooms later. Membership lives only as long as the connection; nothing is
replayed on reconnect (REST is the catch-up path).

`RoomRegistry` is the interface callers depend on. The in-memory version
below is per-process; running several API processes needs sticky routing or
a shared pub/sub implementation of the same interface.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


# every connected admin joins this room
ADMIN_ROOM = "role:admin"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def order_room(order_id: int) -> str:
    return f"order:{order_id}"


def encode_event(event: str, data: Dict[str, Any]) -> str:
    """Wire format for both directions: {"event": ..., "data": {...}}."""
    return json.dumps({"event": event, "data": data}, default=str)


@dataclass
class Connection:
    """One authenticated WebSocket."""
    id: str
    user_id: int
    websocket: WebSocket
    rooms: Set[str] = field(default_factory=set)


class RoomRegistry:
    """Interface for room-scoped fan-out."""

    async def connect(self, ws: WebSocket, user_id: int) -> Optional[Connection]:
        raise NotImplementedError

    def disconnect(self, connection_id: str) -> None:
        raise NotImplementedError

    def join(self, connection_id: str, room: str) -> None:
        raise NotImplementedError

    def leave(self, connection_id: str, room: str) -> None:
        raise NotImplementedError

    def rooms_of(self, connection_id: str) -> Set[str]:
        raise NotImplementedError

    async def send(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        raise NotImplementedError

    async def broadcast(self, room: str, event: str, data: Dict[str, Any]) -> int:
        return await self.broadcast_many([room], event, data)

    async def broadcast_many(
        self,
        rooms: Iterable[str],
        event: str,
        data: Dict[str, Any],
    ) -> int:
        raise NotImplementedError


class InMemoryRoomRegistry(RoomRegistry):
    """Process-local registry; one instance per API process."""

    def __init__(self, max_connections: int = 2000):
        self.max_connections = max_connections
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, ws: WebSocket, user_id: int) -> Optional[Connection]:
        """Accept an already-authenticated socket and join its user room."""
        if len(self._connections) >= self.max_connections:
            await ws.close(code=4029, reason="Too many connections")
            return None
        await ws.accept()
        conn = Connection(id=uuid.uuid4().hex, user_id=user_id, websocket=ws)
        self._connections[conn.id] = conn
        self.join(conn.id, user_room(user_id))
        return conn

    def disconnect(self, connection_id: str) -> None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return
        for room in conn.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._rooms[room]

    def join(self, connection_id: str, room: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        conn.rooms.add(room)
        self._rooms.setdefault(room, set()).add(connection_id)

    def leave(self, connection_id: str, room: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.rooms.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._rooms[room]

    def rooms_of(self, connection_id: str) -> Set[str]:
        conn = self._connections.get(connection_id)
        return set(conn.rooms) if conn else set()

    def members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, ()))

    async def send(self, connection_id: str, event: str, data: Dict[str, Any]) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        try:
            await conn.websocket.send_text(encode_event(event, data))
            return True
        except Exception:
            logger.warning(f"Failed to send {event} to connection {connection_id}")
            self.disconnect(connection_id)
            return False

    async def broadcast_many(
        self,
        rooms: Iterable[str],
        event: str,
        data: Dict[str, Any],
    ) -> int:
        """Deliver once per connection even if it sits in several target rooms."""
        targets: Set[str] = set()
        for room in rooms:
            targets |= self._rooms.get(room, set())
        if not targets:
            return 0

        payload = encode_event(event, data)
        dead = []
        delivered = 0
        for connection_id in targets:
            conn = self._connections.get(connection_id)
            if conn is None:
                continue
            try:
                await conn.websocket.send_text(payload)
                delivered += 1
            except Exception:
                dead.append(connection_id)
        for connection_id in dead:
            self.disconnect(connection_id)
        return delivered
