# routers/payments.py
"""
Public payment API.

POST /payment/create:                create a processor invoice for a form submission
GET  /payment/form-token/{form_id}:  issue the form token required by /payment/create
GET  /status/{invoice_id}:           polled by the checkout page (anonymous)
POST /verify-payment/{invoice_id}:   manual re-check when push and poll stall
POST /webhook/coinsnap|btcpay:       processor webhooks, always answered with 200
"""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import Optional

from config import Settings, get_settings
from database import get_session
from routers.dependencies import client_ip, get_reconciliation_engine
from schemas.payment import (
     FormTokenResponse,
     PaymentCreateData,
     PaymentCreateRequest,
     PaymentCreateResponse,
     PaymentStatusData,
     PaymentStatusResponse,
)
from services.discount import from_minor_units
from services.errors import NotFound, PaymentError, PersistenceError, PROVIDER_ERRORS, VALIDATION_ERRORS
from services.form_service import FormRepository
from services.reconciliation import ReconciliationEngine, StatusResult
from utils.tokens import TokenError, issue_form_token, verify_form_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])

# Generic messages only; causes are logged, never echoed
MESSAGES = {
     "InvalidForm": "Invalid form ID.",
     "InvalidAmount": "Invalid amount.",
     "UnsupportedCurrency": "Unsupported currency.",
     "NotFound": "Transaction not found.",
}
CREATE_FAILED = "Failed to create payment invoice."
STATUS_FAILED = "An error occurred while checking payment status."
WEBHOOK_REJECTED = {"success": False, "message": "Webhook not processed."}


def _failure(status_code: int, message: str) -> JSONResponse:
     return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _status_response(result: StatusResult) -> PaymentStatusResponse:
     return PaymentStatusResponse(
          data=PaymentStatusData(invoice_id=result.invoice_id, paid=result.paid, status=result.status)
     )


@router.get(
     "/payment/form-token/{form_id}",
     response_model=FormTokenResponse,
     summary="Issue a form token",
)
def get_form_token(
     form_id: int,
     db: Session = Depends(get_session),
     settings: Settings = Depends(get_settings),
):
     """Issue the short lived token the checkout form sends as X-Form-Token."""
     if FormRepository(db).get_form(form_id) is None:
          raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found")
     try:
          token = issue_form_token(settings, form_id)
     except TokenError as e:
          logger.error(f"Cannot issue form token: {e}")
          raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Form tokens unavailable")
     return FormTokenResponse(form_id=form_id, token=token, expires_in=settings.form_token_ttl)


@router.post(
     "/payment/create",
     response_model=PaymentCreateResponse,
     summary="Create payment invoice",
)
def create_payment(
     body: PaymentCreateRequest,
     request: Request,
     x_form_token: Optional[str] = Header(default=None),
     settings: Settings = Depends(get_settings),
     engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
     """
     Create an invoice with the form's payment provider.

     1. Checks the form token.
     2. Validates the form, computes amount (with discount) and currency.
     3. Creates the processor invoice, then stores the local record.
     4. Returns the checkout URL for the payment modal.
     """
     try:
          verify_form_token(settings, x_form_token, body.form_id)
     except TokenError as e:
          logger.warning(f"Rejected invoice creation for form_id={body.form_id}: {e}")
          return _failure(status.HTTP_403_FORBIDDEN, "Invalid form token.")

     try:
          result = engine.create_invoice(
               body.form_id,
               body.to_form_input(),
               ip=client_ip(request),
               user_agent=request.headers.get("User-Agent", ""),
          )
     except VALIDATION_ERRORS as e:
          logger.info(f"Invoice creation rejected ({e.kind}): form_id={body.form_id}, {e.message}")
          return _failure(status.HTTP_400_BAD_REQUEST, MESSAGES[e.kind])
     except PROVIDER_ERRORS as e:
          logger.error(f"Invoice creation failed ({e.kind}): form_id={body.form_id}, {e.message}")
          return _failure(status.HTTP_502_BAD_GATEWAY, CREATE_FAILED)
     except PersistenceError:
          return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save transaction.")

     return PaymentCreateResponse(
          data=PaymentCreateData(
               transaction_id=result.transaction_id,
               invoice_id=result.invoice_id,
               payment_url=result.payment_url,
               amount=float(from_minor_units(result.amount)),
               currency=result.currency,
               description=result.description,
               success_page=result.success_page,
               thank_you_message=result.thank_you_message,
          )
     )


def _check(engine: ReconciliationEngine, invoice_id: str, manual: bool):
     try:
          if manual:
               result = engine.verify_payment(invoice_id)
          else:
               result = engine.check_status(invoice_id)
     except NotFound:
          return _failure(status.HTTP_404_NOT_FOUND, MESSAGES["NotFound"])
     except PROVIDER_ERRORS as e:
          logger.error(f"Payment status check failed ({e.kind}): invoice_id={invoice_id}, {e.message}")
          return _failure(status.HTTP_502_BAD_GATEWAY, STATUS_FAILED)
     except PersistenceError:
          return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, STATUS_FAILED)
     return _status_response(result)


@router.get(
     "/status/{invoice_id}",
     response_model=PaymentStatusResponse,
     summary="Check payment status",
)
def check_payment_status(
     invoice_id: str,
     engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
     """Public by design: the polling checkout page is anonymous."""
     return _check(engine, invoice_id, manual=False)


@router.post(
     "/verify-payment/{invoice_id}",
     response_model=PaymentStatusResponse,
     summary="Manually verify payment",
)
def verify_payment(
     invoice_id: str,
     engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
     return _check(engine, invoice_id, manual=True)


async def _handle_webhook(provider: str, request: Request, engine: ReconciliationEngine) -> JSONResponse:
     # Signature is computed over the byte-exact body
     raw_body = await request.body()
     try:
          # Database and notification I/O is blocking
          await run_in_threadpool(engine.handle_webhook, provider, raw_body, request.headers)
     except PaymentError as e:
          logger.error(f"Webhook rejected ({e.kind}): provider={provider}, {e.message}")
          return JSONResponse(status_code=200, content=WEBHOOK_REJECTED)
     except Exception:
          logger.exception(f"Webhook processing failed: provider={provider}")
          return JSONResponse(status_code=200, content=WEBHOOK_REJECTED)
     return JSONResponse(status_code=200, content={"success": True, "message": "Webhook processed successfully."})


@router.post("/webhook/coinsnap", summary="Coinsnap webhook")
async def coinsnap_webhook(
     request: Request,
     engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
     """Always returns 200 so the processor does not retry-storm."""
     return await _handle_webhook("coinsnap", request, engine)


@router.post("/webhook/btcpay", summary="BTCPay webhook")
async def btcpay_webhook(
     request: Request,
     engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
     """Always returns 200 so the processor does not retry-storm."""
     return await _handle_webhook("btcpay", request, engine)
