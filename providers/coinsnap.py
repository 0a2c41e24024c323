# providers/coinsnap.py
"""
Coinsnap payment provider.

Coinsnap expects the invoice amount in major currency units, so the
minor-unit amount handed in by the reconciliation engine is divided by 100
for every currency (including SATS). The API has been served from two path
prefixes over time; both invoice creation and status checks try the v1
path first and fall back to the legacy one.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

import requests

from config import Settings
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


INVOICES_ENDPOINT_V1 = "/api/v1/stores/{store}/invoices"
INVOICES_ENDPOINT_ALT = "/api/stores/{store}/invoices"

SIGNATURE_HEADERS = ("X-Coinsnap-Signature", "X-Signature", "BTCPay-Sig", "BTCPay-Signature")


class CoinsnapClient:
     """Coinsnap implementation of ``ProviderClient``."""

     name = "coinsnap"
     supported_currencies = ("USD", "EUR", "CAD", "JPY", "GBP", "CHF", "BTC", "SATS")

     def __init__(self, settings: Settings, http: Optional[requests.Session] = None):
          self.api_key = settings.coinsnap_api_key
          self.store_id = settings.coinsnap_store_id
          self.api_base = (settings.coinsnap_api_base or "https://app.coinsnap.io").rstrip("/")
          self.webhook_secret = settings.coinsnap_webhook_secret
          self.timeout = settings.provider_timeout
          self._owns_http = http is None
          self.http = http or requests.Session()

     def _headers(self) -> Dict[str, str]:
          # X-Api-Key is the current header; Authorization kept for older deployments
          return {
               "X-Api-Key": self.api_key,
               "Authorization": f"token {self.api_key}",
               "Content-Type": "application/json",
               "accept": "application/json",
          }

     def _require_credentials(self, operation: str) -> None:
          if not self.api_key or not self.store_id:
               logger.error(
                    f"Coinsnap {operation} failed: Missing API key or store ID "
                    f"(has_api_key={bool(self.api_key)}, has_store_id={bool(self.store_id)})"
               )
               raise MissingCredentials("Coinsnap API key or store ID is not configured")

     def _invoice_endpoints(self) -> List[str]:
          store = quote(self.store_id, safe="")
          return [
               self.api_base + INVOICES_ENDPOINT_V1.format(store=store),
               self.api_base + INVOICES_ENDPOINT_ALT.format(store=store),
          ]

     def create_invoice(
          self,
          form_id: int,
          amount: int,
          currency: str,
          customer: Mapping[str, str],
     ) -> CreatedInvoice:
          """
          Create a Coinsnap invoice.

          Args:
               form_id: Form the invoice was submitted from (sent as metadata)
               amount: Amount in minor units (hundredths)
               currency: Currency code
               customer: Customer metadata (email, name, ...)

          Returns:
               CreatedInvoice with the Coinsnap invoice id and checkout link
          """
          self._require_credentials("invoice creation")
          if currency not in self.supported_currencies:
               logger.error(f"Unsupported currency for Coinsnap: {currency} (form_id={form_id})")
               raise UnsupportedCurrency(f"Coinsnap does not support {currency}")

          email = str(customer.get("email") or "")
          payload = {
               "amount": amount / 100,
               "currency": currency,
               "buyerEmail": email,
               "metadata": {
                    "form_id": form_id,
                    "email": email,
               },
               "checkout": {
                    "defaultPaymentMethod": "LightningNetwork",
               },
          }
          endpoints = self._invoice_endpoints()
          logger.debug(
               f"Coinsnap invoice creation request: form_id={form_id}, amount={amount}, "
               f"currency={currency}, endpoints={endpoints}"
          )

          def _create(url: str) -> CreatedInvoice:
               body = request_json(self.http, "POST", url, self._headers(), self.timeout, payload)
               invoice_id = str(body.get("id") or "")
               payment_url = str(body.get("checkoutLink") or "")
               if not invoice_id or not payment_url:
                    raise InvalidResponse(f"POST {url} response missing id or checkoutLink", url=url)
               return CreatedInvoice(invoice_id=invoice_id, payment_url=payment_url)

          created = first_successful("Coinsnap", "invoice creation", endpoints, _create)
          logger.info(
               f"Coinsnap invoice created successfully: invoice_id={created.invoice_id}, "
               f"form_id={form_id}, amount={amount}, currency={currency}"
          )
          return created

     def check_status(self, invoice_id: str) -> InvoiceStatusResult:
          """Fetch an invoice's status, trying each known endpoint path."""
          self._require_credentials("invoice status check")
          quoted = quote(invoice_id, safe="")
          endpoints = [f"{url}/{quoted}" for url in self._invoice_endpoints()]
          logger.debug(f"Coinsnap invoice status check request: invoice_id={invoice_id}")

          def _fetch(url: str) -> InvoiceStatusResult:
               body = request_json(self.http, "GET", url, self._headers(), self.timeout)
               status = str(body.get("status") or "unknown")
               return InvoiceStatusResult(
                    invoice_id=invoice_id,
                    paid=status in PAID_STATUSES,
                    status=status,
                    metadata=body,
               )

          result = first_successful("Coinsnap", "invoice status check", endpoints, _fetch)
          logger.info(
               f"Coinsnap invoice status retrieved: invoice_id={invoice_id}, "
               f"status={result.status}, paid={result.paid}"
          )
          return result

     def close(self) -> None:
          if self._owns_http:
               self.http.close()

     def parse_webhook(self, payload: Union[bytes, str, Mapping[str, Any]]) -> WebhookEvent:
          return parse_webhook_payload("Coinsnap", payload)

     def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
          return verify_hmac_signature(raw_body, headers, self.webhook_secret, SIGNATURE_HEADERS)
