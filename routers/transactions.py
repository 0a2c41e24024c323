# routers/transactions.py
"""
Admin transaction API.

Read-only listing of stored invoices for operators.
Role-based access: admin / manager only.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import get_session
from models import Currency, Invoice, PaymentStatus
from routers.dependencies import verify_token
from schemas.invoice import InvoiceListResponse, InvoiceResponse, PaymentStatusEnum
from services.invoice_store import InvoiceStore

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get(
     "",
     response_model=InvoiceListResponse,
     summary="List transactions"
)
def list_transactions(
     status_filter: Optional[PaymentStatusEnum] = Query(None, alias="status", description="Filter by payment status"),
     provider: Optional[str] = Query(None, description="Filter by payment provider"),
     form_id: Optional[int] = Query(None, description="Filter by form ID"),
     currency: Optional[str] = Query(None, description="Filter by currency"),
     search: Optional[str] = Query(None, description="Match email, name, invoice number or transaction ID"),
     page: int = Query(1, ge=1, description="Page number"),
     page_size: int = Query(50, ge=1, le=100, description="Items per page"),
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     """
     List transactions with optional filters, newest first.
     """
     currency_filter = None
     if currency:
          try:
               currency_filter = Currency(currency.strip().upper())
          except ValueError:
               raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Unsupported currency {currency}"
               )

     invoices, total = InvoiceStore(db).list(
          status=PaymentStatus(status_filter.value) if status_filter else None,
          provider=provider,
          form_id=form_id,
          currency=currency_filter,
          search=search,
          page=page,
          page_size=page_size,
     )

     return InvoiceListResponse(
          invoices=[_build_invoice_response(inv) for inv in invoices],
          total=total,
          page=page,
          page_size=page_size
     )


@router.get(
     "/{transaction_id}",
     response_model=InvoiceResponse,
     summary="Get transaction by ID"
)
def get_transaction(
     transaction_id: str,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token)
):
     """
     Get one transaction by its ``bif_...`` transaction ID or processor invoice ID.
     """
     invoice = InvoiceStore(db).find(transaction_id)
     if not invoice:
          raise HTTPException(
               status_code=status.HTTP_404_NOT_FOUND,
               detail=f"Transaction {transaction_id} not found"
          )
     return _build_invoice_response(invoice)


def _build_invoice_response(invoice: Invoice) -> InvoiceResponse:
     return InvoiceResponse(
          id=invoice.id,
          form_id=invoice.form_id,
          transaction_id=invoice.transaction_id,
          invoice_number=invoice.invoice_number,
          customer_name=invoice.customer_name,
          customer_email=invoice.customer_email,
          customer_company=invoice.customer_company,
          description=invoice.description,
          amount=invoice.amount,
          currency=invoice.currency.value,
          payment_provider=invoice.payment_provider,
          payment_invoice_id=invoice.payment_invoice_id,
          payment_status=invoice.payment_status.value,
          payment_url=invoice.payment_url,
          created_at=invoice.created_at,
          updated_at=invoice.updated_at,
     )
