# schemas/payment.py
"""
Pydantic schemas for the public payment API.

Field names of the create request follow the invoice form's input names
(``bif_*``).
"""
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PaymentCreateRequest(BaseModel):
     """Request body for POST /payment/create."""

     form_id: int = Field(..., description="Invoice form the submission belongs to")
     bif_name: str = Field(default="", max_length=190)
     bif_email: str = Field(default="", max_length=190)
     bif_company: str = Field(default="", max_length=190)
     bif_invoice_number: str = Field(default="", max_length=190)
     bif_amount: Optional[Union[float, str]] = Field(default=None, description="Amount in major units")
     bif_currency: Optional[str] = Field(default=None, max_length=10)
     bif_description: str = Field(default="")

     model_config = ConfigDict(
          extra="ignore",
          json_schema_extra={
               "example": {
                    "form_id": 1,
                    "bif_name": "Satoshi Nakamoto",
                    "bif_email": "satoshi@example.com",
                    "bif_invoice_number": "INV-2026-001",
                    "bif_amount": "100.00",
                    "bif_currency": "USD",
                    "bif_description": "Consulting, October",
               }
          }
     )

     def to_form_input(self) -> Dict[str, Any]:
          """Submitted values keyed the way the reconciliation engine reads them."""
          return {
               "name": self.bif_name,
               "email": self.bif_email,
               "company": self.bif_company,
               "invoice_number": self.bif_invoice_number,
               "amount": self.bif_amount,
               "currency": self.bif_currency,
               "description": self.bif_description,
          }


class PaymentCreateData(BaseModel):
     transaction_id: str
     invoice_id: str
     payment_url: str
     amount: float = Field(..., description="Charged amount in major units")
     currency: str
     description: str = ""
     success_page: str = ""
     thank_you_message: str = ""


class PaymentCreateResponse(BaseModel):
     """Response for POST /payment/create."""

     success: bool = True
     data: PaymentCreateData


class PaymentStatusData(BaseModel):
     invoice_id: str
     paid: bool
     status: str


class PaymentStatusResponse(BaseModel):
     """Response for GET /status/{invoice_id} and POST /verify-payment/{invoice_id}."""

     success: bool = True
     data: PaymentStatusData

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "success": True,
                    "data": {"invoice_id": "7bY2mQ...", "paid": False, "status": "New"},
               }
          }
     )


class FormTokenResponse(BaseModel):
     form_id: int
     token: str
     expires_in: int

