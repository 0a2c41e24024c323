# schemas/invoice.py
"""
Pydantic schemas for the admin transaction listing.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class PaymentStatusEnum(str, Enum):
     """Invoice payment status options."""
     UNPAID = "unpaid"
     PAID = "paid"
     FAILED = "failed"
     REFUNDED = "refunded"


class InvoiceResponse(BaseModel):
     """One stored transaction."""
     id: int
     form_id: int
     transaction_id: str
     invoice_number: Optional[str] = None
     customer_name: str
     customer_email: str
     customer_company: Optional[str] = None
     description: Optional[str] = None
     amount: int
     currency: str
     payment_provider: str
     payment_invoice_id: str
     payment_status: PaymentStatusEnum
     payment_url: Optional[str] = None
     created_at: datetime
     updated_at: datetime

     model_config = ConfigDict(
          from_attributes=True,
          json_schema_extra={
               "example": {
                    "id": 1,
                    "form_id": 1,
                    "transaction_id": "bif_1760000000_a1B2c3D4",
                    "invoice_number": "INV-2026-001",
                    "customer_name": "Satoshi Nakamoto",
                    "customer_email": "satoshi@example.com",
                    "amount": 9000,
                    "currency": "USD",
                    "payment_provider": "coinsnap",
                    "payment_invoice_id": "7bY2mQ...",
                    "payment_status": "unpaid",
                    "created_at": "2026-01-31T10:30:00",
                    "updated_at": "2026-01-31T10:30:00",
               }
          }
     )


class InvoiceListResponse(BaseModel):
     """Schema for paginated transaction list response."""
     invoices: List[InvoiceResponse]
     total: int
     page: int = 1
     page_size: int = 50
