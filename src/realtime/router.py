"""
WebSocket endpoint.

Handshake: `/ws?token=<jwt>`. The token is checked before the socket is
accepted; a refused client never joins any room.

    4001  no token
    4003  invalid/expired token, unknown or disabled user
    4029  server at connection capacity

Frames are JSON text `{"event": ..., "data": {...}}` in both directions.
Every client event goes through the same services and capability checks as
the REST routes; failures are answered with a private `error` event.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.auth.dependencies import authenticate_token
from src.db import get_session_factory
from src.errors import DomainError, UnauthorizedError, ValidationFailedError
from src.models import User, UserRole
from src.realtime import events
from src.realtime.registry import ADMIN_ROOM, Connection, order_room
from src.scheduler.jobs import wake_invoice_job
from src.schemas.message import MessageCreate, MessageResponse
from src.schemas.order import StatusChange
from src.services import invoices as invoice_service
from src.services import messaging
from src.services import orders as order_service

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_MISSING_TOKEN = 4001
CLOSE_INVALID_TOKEN = 4003


class OrderRef(BaseModel):
    order_id: int


class MessageRef(BaseModel):
    message_id: int


class StatusChangeEvent(StatusChange):
    order_id: int


def _parse(model, data: Dict[str, Any]):
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationFailedError(f"Invalid {field or 'payload'}: {first.get('msg')}")


class SessionHandler:
    """Dispatches client events for one authenticated connection."""

    def __init__(self, conn: Connection, user: User, session_factory: async_sessionmaker):
        self.conn = conn
        self.user = user
        self.session_factory = session_factory
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            events.JOIN_ORDER: self.join_order,
            events.LEAVE_ORDER: self.leave_order,
            events.CLIENT_NEW_MESSAGE: self.new_message,
            events.MARK_ORDER_STATUS: self.mark_order_status,
            events.MARK_MESSAGE_READ: self.mark_message_read,
            events.GENERATE_INVOICE: self.generate_invoice,
            events.PING: self.ping,
        }

    async def reply(self, event: str, data: Dict[str, Any]) -> None:
        await events.send_to(self.conn.id, event, data)

    async def error(self, message: str, event: Optional[str] = None, **details) -> None:
        payload = {"message": message, **details}
        if event:
            payload["event"] = event
        await self.reply(events.ERROR, payload)

    async def handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            await self.error("Malformed frame: expected JSON")
            return
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self.error("Malformed frame: expected {\"event\": ..., \"data\": {...}}")
            return

        event = frame["event"]
        data = frame.get("data") or {}
        handler = self.handlers.get(event)
        if handler is None:
            await self.error(f"Unknown event: {event}", event=event)
            return
        if not isinstance(data, dict):
            await self.error("Event data must be an object", event=event)
            return

        try:
            await handler(data)
        except DomainError as e:
            await self.error(e.message, event=event, **e.details)
        except Exception:
            logger.exception(f"Realtime handler {event} failed for user {self.user.id}")
            await self.error("Internal server error", event=event)

    async def join_order(self, data: Dict[str, Any]) -> None:
        ref = _parse(OrderRef, data)
        async with self.session_factory() as db:
            await order_service.get_order(db, ref.order_id, self.user)
        events.get_registry().join(self.conn.id, order_room(ref.order_id))
        await self.reply(events.JOINED_ORDER, {"order_id": ref.order_id})

    async def leave_order(self, data: Dict[str, Any]) -> None:
        ref = _parse(OrderRef, data)
        events.get_registry().leave(self.conn.id, order_room(ref.order_id))
        await self.reply(events.LEFT_ORDER, {"order_id": ref.order_id})

    async def new_message(self, data: Dict[str, Any]) -> None:
        # recipient_id in the payload, if any, is ignored by the schema
        payload = _parse(MessageCreate, data)
        async with self.session_factory() as db:
            message = await messaging.send_message(
                db, self.user, payload.order_id, payload.text, payload.attachments
            )
        await self.reply(
            events.MESSAGE_SENT,
            {
                "message_id": message.id,
                "message": MessageResponse.model_validate(message).model_dump(mode="json"),
            },
        )

    async def mark_order_status(self, data: Dict[str, Any]) -> None:
        change = _parse(StatusChangeEvent, data)
        async with self.session_factory() as db:
            order = await order_service.transition_status(
                db, change.order_id, self.user, change.status, change.note
            )
        if order_room(order.id) not in events.get_registry().rooms_of(self.conn.id):
            await self.reply(
                events.ORDER_UPDATE,
                order_service.order_update_payload(order, f"Order status changed to {order.status.value}"),
            )

    async def mark_message_read(self, data: Dict[str, Any]) -> None:
        ref = _parse(MessageRef, data)
        async with self.session_factory() as db:
            await messaging.mark_read(db, ref.message_id, self.user)

    async def generate_invoice(self, data: Dict[str, Any]) -> None:
        ref = _parse(OrderRef, data)
        async with self.session_factory() as db:
            invoice, created = await invoice_service.request_invoice(db, ref.order_id, self.user)
        if created:
            wake_invoice_job()
        await self.reply(
            events.INVOICE_QUEUED,
            {
                "order_id": ref.order_id,
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "status": invoice.status.value,
                "url": invoice.generated_pdf_url,
            },
        )

    async def ping(self, data: Dict[str, Any]) -> None:
        await self.reply(events.PONG, {})


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    if not token:
        await websocket.close(code=CLOSE_MISSING_TOKEN, reason="Authentication required")
        return

    try:
        async with session_factory() as db:
            user = await authenticate_token(db, token)
    except UnauthorizedError as e:
        await websocket.close(code=CLOSE_INVALID_TOKEN, reason=e.message)
        return

    registry = events.get_registry()
    conn = await registry.connect(websocket, user.id)
    if conn is None:
        logger.warning(f"Refused realtime connection for user {user.id}: at capacity")
        return

    if UserRole.ADMIN in user.role_set:
        registry.join(conn.id, ADMIN_ROOM)

    logger.info(f"Realtime connection {conn.id} opened for user {user.id}")
    handler = SessionHandler(conn, user, session_factory)
    try:
        await handler.reply(events.AUTH_SUCCESS, {"user_id": user.id})
        while True:
            raw = await websocket.receive_text()
            await handler.handle_frame(raw)
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(conn.id)
        logger.info(f"Realtime connection {conn.id} closed for user {user.id}")
