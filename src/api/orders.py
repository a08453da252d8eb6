"""Order API endpoints."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.dependencies import get_current_user
from src.db import get_db
from src.models import OrderStatus, User
from src.scheduler.jobs import wake_invoice_job
from src.schemas.invoice import InvoiceEnvelope, InvoiceResponse
from src.schemas.order import (
    OrderCreate,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    OrderUpdate,
)
from src.services import invoices as invoice_service
from src.services import orders as order_service
from src.utils.audit import get_client_ip

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderEnvelope, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: Request,
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create an order intent on an active listing."""
    order = await order_service.create_order(db, current_user, data, get_client_ip(request))
    return OrderEnvelope(
        message="Order created successfully",
        order=OrderResponse.model_validate(order),
    )


@router.get("/my-orders", response_model=OrderListResponse)
async def list_my_orders(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    role: Literal["buyer", "seller"] = Query("buyer"),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Orders placed (role=buyer) or received (role=seller) by the current user."""
    orders, pagination = await order_service.list_my_orders(
        db, current_user, role=role, status=order_status, page=page, limit=limit
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        pagination=pagination,
    )


@router.get("/{order_id}", response_model=OrderEnvelope)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = await order_service.get_order(db, order_id, current_user)
    return OrderEnvelope(order=OrderResponse.model_validate(order))


@router.patch("/{order_id}", response_model=OrderEnvelope)
async def update_order(
    request: Request,
    order_id: int,
    data: OrderUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Change status (seller/admin; buyer may cancel early), add payment
    evidence or merge meeting info (any party), edit the seller note.
    """
    order = await order_service.update_order(db, order_id, current_user, data, get_client_ip(request))
    return OrderEnvelope(
        message="Order updated successfully",
        order=OrderResponse.model_validate(order),
    )


@router.post("/{order_id}/invoice", response_model=InvoiceEnvelope)
async def request_invoice(
    request: Request,
    response: Response,
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Queue invoice generation (seller/admin). Returns the existing invoice if there is one."""
    invoice, created = await invoice_service.request_invoice(
        db, order_id, current_user, get_client_ip(request)
    )
    if created:
        response.status_code = status.HTTP_202_ACCEPTED
        wake_invoice_job()
        message = "Invoice generation queued"
    else:
        message = f"Invoice already {invoice.status.value}"
    return InvoiceEnvelope(message=message, invoice=InvoiceResponse.model_validate(invoice))


@router.get("/{order_id}/invoice", response_model=InvoiceEnvelope)
async def get_invoice(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = await invoice_service.get_invoice(db, order_id, current_user)
    return InvoiceEnvelope(invoice=InvoiceResponse.model_validate(invoice))
