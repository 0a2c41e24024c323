# providers/btcpay.py
"""
BTCPay Server payment provider.

Amount mapping: the engine hands over minor units (x100). BTCPay receives
whole sats for SATS invoices, so only SATS amounts are divided by 100;
other currencies are forwarded as-is, matching the deployed store setup.
"""
import logging
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote

import requests

from config import SUPPORTED_CURRENCIES, Settings
from services.errors import InvalidResponse, MissingCredentials, UnsupportedCurrency

from .base import (
     PAID_STATUSES,
     CreatedInvoice,
     InvoiceStatusResult,
     WebhookEvent,
     first_successful,
     parse_webhook_payload,
     request_json,
     verify_hmac_signature,
)

logger = logging.getLogger(__name__)


INVOICES_ENDPOINT = "/api/v1/stores/{store}/invoices"
INVOICES_ENDPOINT_LEGACY = "/api/stores/{store}/invoices"

SIGNATURE_HEADERS = ("BTCPay-Sig", "BTCPay-Signature")


def _format_amount(value: float) -> str:
     """Render an amount without a trailing ``.0`` for whole numbers."""
     if float(value).is_integer():
          return str(int(value))
     return str(value)


class BTCPayClient:
     """BTCPay Server implementation of ``ProviderClient``."""

     name = "btcpay"
     supported_currencies = SUPPORTED_CURRENCIES

     def __init__(self, settings: Settings, http: Optional[requests.Session] = None):
          self.host = (settings.btcpay_host or "").rstrip("/")
          self.api_key = settings.btcpay_api_key
          self.store_id = settings.btcpay_store_id
          self.webhook_secret = settings.btcpay_webhook_secret
          self.timeout = settings.provider_timeout
          self._owns_http = http is None
          self.http = http or requests.Session()

     def _headers(self) -> Dict[str, str]:
          return {
               "Authorization": f"token {self.api_key}",
               "Content-Type": "application/json",
          }

     def _require_credentials(self, operation: str) -> None:
          if not self.host or not self.api_key or not self.store_id:
               logger.error(f"BTCPay {operation} failed: Missing host, API key or store ID")
               raise MissingCredentials("BTCPay host, API key or store ID is not configured")

     def create_invoice(
          self,
          form_id: int,
          amount: int,
          currency: str,
          customer: Mapping[str, str],
     ) -> CreatedInvoice:
          """
          Create a BTCPay invoice.

          Args:
               form_id: Form the invoice was submitted from (sent as metadata)
               amount: Amount in minor units (hundredths)
               currency: Currency code
               customer: Customer metadata (email, name, ...)
          """
          self._require_credentials("invoice creation")
          if currency not in self.supported_currencies:
               logger.error(f"Unsupported currency for BTCPay: {currency} (form_id={form_id})")
               raise UnsupportedCurrency(f"BTCPay does not support {currency}")

          api_amount = amount / 100 if currency == "SATS" else amount
          payload = {
               "amount": _format_amount(api_amount),
               "currency": currency,
               "metadata": {
                    "form_id": form_id,
                    "email": str(customer.get("email") or ""),
               },
          }
          url = self.host + INVOICES_ENDPOINT.format(store=quote(self.store_id, safe=""))
          logger.debug(f"BTCPay invoice creation request: form_id={form_id}, amount={amount}, currency={currency}")

          body = request_json(self.http, "POST", url, self._headers(), self.timeout, payload)
          invoice_id = str(body.get("id") or "")
          payment_url = str(body.get("checkoutLink") or "")
          if not invoice_id or not payment_url:
               logger.error(f"BTCPay invoice creation failed: response missing id or checkoutLink (form_id={form_id})")
               raise InvalidResponse("BTCPay response missing id or checkoutLink", url=url)

          logger.info(
               f"BTCPay invoice created successfully: invoice_id={invoice_id}, "
               f"form_id={form_id}, amount={amount}, currency={currency}"
          )
          return CreatedInvoice(invoice_id=invoice_id, payment_url=payment_url)

     def check_status(self, invoice_id: str) -> InvoiceStatusResult:
          """Fetch an invoice's status from the Greenfield API."""
          self._require_credentials("invoice status check")
          store = quote(self.store_id, safe="")
          quoted = quote(invoice_id, safe="")
          endpoints = [
               self.host + INVOICES_ENDPOINT.format(store=store) + f"/{quoted}",
               self.host + INVOICES_ENDPOINT_LEGACY.format(store=store) + f"/{quoted}",
          ]

          def _fetch(url: str) -> InvoiceStatusResult:
               body = request_json(self.http, "GET", url, self._headers(), self.timeout)
               status = str(body.get("status") or "unknown")
               return InvoiceStatusResult(
                    invoice_id=invoice_id,
                    paid=status in PAID_STATUSES,
                    status=status,
                    metadata=body,
               )

          result = first_successful("BTCPay", "invoice status check", endpoints, _fetch)
          logger.info(
               f"BTCPay invoice status retrieved: invoice_id={invoice_id}, "
               f"status={result.status}, paid={result.paid}"
          )
          return result

     def close(self) -> None:
          if self._owns_http:
               self.http.close()

     def parse_webhook(self, payload: Union[bytes, str, Mapping[str, Any]]) -> WebhookEvent:
          return parse_webhook_payload("BTCPay", payload)

     def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
          return verify_hmac_signature(raw_body, headers, self.webhook_secret, SIGNATURE_HEADERS)
