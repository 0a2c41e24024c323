# providers/base.py
"""
Payment provider contract.

Both supported processors (Coinsnap and BTCPay Server) expose the same
capability set: create an invoice, check an invoice's status, parse a
webhook delivery and verify a webhook signature. ``ProviderClient`` is a
structural protocol; the implementations share the helpers in this module
rather than a base class.
"""
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

import requests

from services.errors import AllEndpointsFailed, InvalidResponse, NetworkError, PaymentError

logger = logging.getLogger(__name__)


# Invoice statuses reported by the status endpoint that mean "paid"
PAID_STATUSES = ("Settled", "Paid", "Complete")

# Webhook event types accepted as proof of payment
PAID_EVENT_TYPES = ("InvoiceSettled", "PaymentReceived", "InvoicePaid", "Settled")


@dataclass
class CreatedInvoice:
     """Processor invoice returned by ``create_invoice``."""
     invoice_id: str
     payment_url: str


@dataclass
class InvoiceStatusResult:
     """Result of ``check_status``."""
     invoice_id: str
     paid: bool
     status: str
     metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
     """Result of ``parse_webhook``."""
     invoice_id: str
     paid: bool
     event_type: str
     metadata: Dict[str, Any] = field(default_factory=dict)


class ProviderClient(Protocol):
     """Uniform contract implemented once per external processor."""

     name: str
     supported_currencies: Tuple[str, ...]

     def create_invoice(
          self,
          form_id: int,
          amount: int,
          currency: str,
          customer: Mapping[str, str],
     ) -> CreatedInvoice:
          """
          Create an invoice for ``amount`` minor units of ``currency``.

          Raises:
               MissingCredentials, UnsupportedCurrency, NetworkError,
               InvalidResponse, AllEndpointsFailed
          """
          ...

     def check_status(self, invoice_id: str) -> InvoiceStatusResult:
          """
          Fetch the processor's view of ``invoice_id``.

          Raises:
               MissingCredentials, AllEndpointsFailed
          """
          ...

     def parse_webhook(self, payload: Union[bytes, str, Mapping[str, Any]]) -> WebhookEvent:
          ...

     def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
          ...

     def close(self) -> None:
          ...


def sign_payload(raw_body: bytes, secret: str) -> str:
     """Hex HMAC-SHA256 of the raw request body."""
     return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_hmac_signature(
     raw_body: bytes,
     headers: Mapping[str, str],
     secret: str,
     header_names: Iterable[str],
) -> bool:
     """
     Check a webhook signature against one or more candidate headers.

     The digest is computed over the byte-exact body. A header value may be
     the bare hex digest or carry a ``sha256=`` prefix; the first matching
     header wins. No secret or an empty body never verifies.
     """
     if not secret or not raw_body:
          return False

     expected = sign_payload(raw_body, secret)
     prefixed = "sha256=" + expected
     lowered = {str(k).lower(): str(v) for k, v in headers.items()}

     for name in header_names:
          candidate = lowered.get(name.lower(), "").strip()
          if not candidate:
               continue
          if hmac.compare_digest(expected, candidate) or hmac.compare_digest(prefixed, candidate):
               return True
     return False


def parse_webhook_payload(
     provider: str,
     payload: Union[bytes, str, Mapping[str, Any]],
) -> WebhookEvent:
     """
     Extract ``(invoiceId, paid)`` from a processor webhook body.

     Unknown fields are ignored. Only event types in ``PAID_EVENT_TYPES``
     count as proof of payment.

     Raises:
          InvalidResponse: If the body is not a JSON object or has no invoiceId.
     """
     if isinstance(payload, (bytes, str)):
          try:
               data = json.loads(payload or b"{}")
          except (ValueError, RecursionError) as e:
               raise InvalidResponse(f"{provider} webhook body is not valid JSON: {e}")
     else:
          data = dict(payload)

     if not isinstance(data, dict):
          raise InvalidResponse(f"{provider} webhook body is not a JSON object")

     invoice_id = str(data.get("invoiceId") or "")
     if not invoice_id:
          raise InvalidResponse(f"{provider} webhook without invoiceId")

     event_type = str(data.get("type") or "")
     return WebhookEvent(
          invoice_id=invoice_id,
          paid=event_type in PAID_EVENT_TYPES,
          event_type=event_type,
          metadata=data,
     )


def request_json(
     http: requests.Session,
     method: str,
     url: str,
     headers: Mapping[str, str],
     timeout: float,
     payload: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
     """
     Perform one HTTP call and return the decoded JSON object.

     Raises:
          NetworkError: Transport failure (timeout, DNS, connection reset...).
          InvalidResponse: Non-2xx status or a body that is not a JSON object.
     """
     try:
          response = http.request(method, url, headers=dict(headers), json=payload, timeout=timeout)
     except requests.exceptions.RequestException as e:
          raise NetworkError(f"{method} {url} failed: {e}", url=url)

     if not 200 <= response.status_code < 300:
          raise InvalidResponse(
               f"{method} {url} returned HTTP {response.status_code}",
               url=url,
               status_code=response.status_code,
          )
     try:
          body = response.json()
     except ValueError:
          raise InvalidResponse(f"{method} {url} returned a non-JSON body", url=url)
     if not isinstance(body, dict):
          raise InvalidResponse(f"{method} {url} returned a non-object body", url=url)
     return body


def first_successful(
     provider: str,
     operation: str,
     endpoints: List[str],
     call: Callable[[str], Any],
) -> Any:
     """
     Try ``call(url)`` against each endpoint variant in order.

     The first call that returns without a ``PaymentError`` wins. When every
     variant fails, ``AllEndpointsFailed`` is raised carrying the last error.
     """
     last_error: Optional[PaymentError] = None
     for url in endpoints:
          try:
               return call(url)
          except NetworkError as e:
               logger.warning(f"{provider} {operation} failed: HTTP request error ({e.message})")
               last_error = e
          except InvalidResponse as e:
               logger.error(f"{provider} {operation} failed: Invalid response ({e.message})")
               last_error = e

     logger.error(f"{provider} {operation} failed: All endpoints failed")
     raise AllEndpointsFailed(
          f"{provider} {operation}: all {len(endpoints)} endpoint(s) failed",
          last_error=last_error.kind if last_error else None,
     )
