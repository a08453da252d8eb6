"""Invoice schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.models.invoice import InvoiceStatus


class InvoiceResponse(BaseModel):
    id: int
    order_id: int
    issuer_id: int
    invoice_number: str
    status: InvoiceStatus
    generated_pdf_url: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class InvoiceEnvelope(BaseModel):
    error: bool = False
    message: Optional[str] = None
    invoice: InvoiceResponse
