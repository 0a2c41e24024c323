# services/reconciliation.py
"""
Reconciliation Engine - payment lifecycle state machine.

Creates provider-agnostic invoices and converges the locally stored
``payment_status`` on what the processor reports, whichever channel the
news arrives on:

- push: processor webhooks (``handle_webhook``)
- pull: client-driven status polling (``check_status``) and manual
  re-verification (``verify_payment``)

All channels end in ``apply_payment_result``. The unpaid -> paid
transition is a compare-and-set in the InvoiceStore, so re-deliveries and
races between webhook and poll requests are no-ops and the paid
notification fires at most once per invoice.

State machine::

     UNPAID --paid--> PAID (terminal)
     UNPAID --not paid--> FAILED --paid--> PAID
"""
import enum
import logging
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from config import SUPPORTED_CURRENCIES, Settings
from models import Currency, Invoice, InvoiceForm, PaymentStatus
from models.invoice_form import DEFAULT_THANK_YOU_MESSAGE
from providers.registry import ProviderRegistry
from services.discount import apply_discount, normalize_discount_type, to_decimal, to_minor_units
from services.errors import (
     InvalidAmount,
     InvalidForm,
     NotFound,
     PaymentError,
     PersistenceError,
     SignatureInvalid,
     UnsupportedCurrency,
)
from services.form_service import FormRepository
from services.invoice_store import InvoiceStore
from services.notification import NotificationDispatcher

logger = logging.getLogger(__name__)


class PaymentSource(str, enum.Enum):
     """Channel a payment result arrived on."""
     WEBHOOK = "webhook"
     POLL = "poll"
     MANUAL_VERIFY = "manual-verify"


@dataclass
class CreateInvoiceResult:
     transaction_id: str
     invoice_id: str
     payment_url: str
     amount: int
     currency: str
     description: str
     success_page: str
     thank_you_message: str


@dataclass
class StatusResult:
     invoice_id: str
     paid: bool
     status: str


_TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_transaction_id() -> str:
     """Human traceable local id: ``bif_<unix time>_<8 random chars>``."""
     suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(8))
     return f"bif_{int(time.time())}_{suffix}"


def _non_empty_amount(value: Any) -> Optional[Decimal]:
     """Parsed amount, or None for missing/blank/zero values."""
     parsed = to_decimal(value)
     if parsed is None or parsed == 0:
          return None
     return parsed


class ReconciliationEngine:
     """Service class for invoice creation and payment reconciliation."""

     def __init__(
          self,
          store: InvoiceStore,
          forms: FormRepository,
          registry: ProviderRegistry,
          notifier: NotificationDispatcher,
          settings: Settings,
     ):
          self.store = store
          self.forms = forms
          self.registry = registry
          self.notifier = notifier
          self.settings = settings

     # ------------------------------------------------------------------
     # Invoice creation
     # ------------------------------------------------------------------

     def resolve_amount(self, form: InvoiceForm, form_input: Mapping[str, Any]) -> Decimal:
          """
          Base amount: submitted amount, else form default, else global default.

          Raises:
               InvalidAmount: If the submitted amount is not a number or the
                    resulting amount is not positive.
          """
          submitted = form_input.get("amount")
          if submitted not in (None, "") and to_decimal(submitted) is None:
               raise InvalidAmount(f"Submitted amount {submitted!r} is not a number")

          for candidate in (submitted, form.amount, self.settings.default_amount):
               amount = _non_empty_amount(candidate)
               if amount is not None:
                    break
          else:
               amount = Decimal(0)

          if amount <= 0:
               raise InvalidAmount(f"Amount must be positive, got {amount}")
          return amount

     def resolve_currency(self, form: InvoiceForm, form_input: Mapping[str, Any]) -> str:
          """
          Currency: user selection, else form default, else global default.

          Raises:
               UnsupportedCurrency: If the result is outside the supported set.
          """
          for candidate in (form_input.get("currency"), form.currency, self.settings.default_currency):
               if candidate and str(candidate).strip():
                    currency = str(candidate).strip().upper()
                    break
          else:
               currency = "USD"

          if currency not in SUPPORTED_CURRENCIES:
               raise UnsupportedCurrency(f"Currency {currency} is not supported")
          return currency

     @staticmethod
     def discounted(form: InvoiceForm, amount: Decimal) -> Decimal:
          """Apply the form's discount (never a client supplied one)."""
          if not form.discount_enabled:
               return amount
          value = to_decimal(form.discount_value) or Decimal(0)
          if value <= 0:
               return amount
          return apply_discount(amount, normalize_discount_type(form.discount_type), value)

     def create_invoice(
          self,
          form_id: int,
          form_input: Mapping[str, Any],
          ip: Optional[str] = None,
          user_agent: Optional[str] = None,
     ) -> CreateInvoiceResult:
          """
          Create a processor invoice and its local record.

          Args:
               form_id: ID of the invoice form submitted
               form_input: Submitted fields (name, email, company,
                    invoice_number, amount, currency, description)
               ip: Submitter IP address
               user_agent: Submitter user agent

          Returns:
               CreateInvoiceResult with identifiers and checkout URL

          Raises:
               InvalidForm, InvalidAmount, UnsupportedCurrency: Bad request.
               MissingCredentials, NetworkError, InvalidResponse,
               AllEndpointsFailed: Processor call failed, nothing persisted.
               PersistenceError: Processor invoice exists but the local row
                    could not be saved.
          """
          form = self.forms.get_form(form_id)
          if form is None:
               raise InvalidForm(f"Form {form_id} does not exist or is not an invoice form")

          base_amount = self.resolve_amount(form, form_input)
          amount = self.discounted(form, base_amount)
          currency = self.resolve_currency(form, form_input)
          amount_minor = to_minor_units(amount, currency)

          transaction_id = generate_transaction_id()
          customer = {
               "name": str(form_input.get("name") or "").strip(),
               "email": str(form_input.get("email") or "").strip(),
               "company": str(form_input.get("company") or "").strip(),
               "invoice_number": str(form_input.get("invoice_number") or "").strip(),
               "description": str(form_input.get("description") or form.description or "").strip(),
          }

          provider_key = self.registry.resolve_key(form.provider_override)
          client = self.registry.get(provider_key)
          try:
               created = client.create_invoice(form.id, amount_minor, currency, customer)
          except PaymentError as e:
               logger.error(
                    f"Failed to create payment invoice ({e.kind}): form_id={form.id}, "
                    f"provider={provider_key}, amount={amount}, currency={currency}"
               )
               raise

          invoice = Invoice(
               form_id=form.id,
               transaction_id=transaction_id,
               invoice_number=customer["invoice_number"],
               customer_name=customer["name"],
               customer_email=customer["email"],
               customer_company=customer["company"],
               description=customer["description"],
               amount=amount_minor,
               currency=Currency(currency),
               payment_provider=provider_key,
               payment_invoice_id=created.invoice_id,
               payment_url=created.payment_url,
               payment_status=PaymentStatus.UNPAID,
               ip=ip,
               user_agent=user_agent,
          )
          try:
               self.store.add(invoice)
          except PersistenceError as e:
               # The external invoice exists without a local row; needs manual reconciliation
               logger.error(
                    f"Failed to save transaction to database after processor invoice was created: "
                    f"provider={provider_key}, external_invoice_id={created.invoice_id}, "
                    f"form_id={form.id}, transaction_id={transaction_id}, "
                    f"amount={amount_minor}, currency={currency}, error={e.message}"
               )
               raise

          logger.info(
               f"Invoice created successfully: form_id={form.id}, transaction_id={transaction_id}, "
               f"invoice_id={created.invoice_id}, amount={amount_minor}, currency={currency}"
          )
          return CreateInvoiceResult(
               transaction_id=transaction_id,
               invoice_id=created.invoice_id,
               payment_url=created.payment_url,
               amount=amount_minor,
               currency=currency,
               description=customer["description"],
               success_page=form.success_page or "",
               thank_you_message=form.thank_you_message or DEFAULT_THANK_YOU_MESSAGE,
          )

     # ------------------------------------------------------------------
     # Status convergence
     # ------------------------------------------------------------------

     def apply_payment_result(self, external_invoice_id: str, paid: bool, source: PaymentSource) -> bool:
          """
          Apply a processor verdict to the stored invoice.

          paid=True moves any non-paid status to PAID and notifies once.
          paid=False moves UNPAID to FAILED and never touches PAID.

          Returns:
               True if this call performed the transition to PAID.

          Raises:
               NotFound: No invoice with that processor id (webhooks never
                    create records).
          """
          invoice = self.store.get_by_external_id(external_invoice_id)
          if invoice is None:
               logger.warning(f"Payment result for unknown invoice_id={external_invoice_id} (source={source.value})")
               raise NotFound(f"No invoice with payment_invoice_id={external_invoice_id}")

          if not paid:
               if self.store.mark_failed(external_invoice_id):
                    logger.info(f"Invoice marked failed: invoice_id={external_invoice_id}, source={source.value}")
               return False

          if not self.store.mark_paid(external_invoice_id):
               logger.info(f"Invoice already paid: invoice_id={external_invoice_id}, source={source.value}")
               return False

          logger.info(f"Invoice marked paid: invoice_id={external_invoice_id}, source={source.value}")
          self._dispatch_paid(self.store.get_by_external_id(external_invoice_id))
          return True

     def _dispatch_paid(self, invoice: Invoice) -> None:
          try:
               self.notifier.notify_paid(invoice)
          except Exception:
               # Paid status is already committed; delivery problems are an ops concern
               logger.exception(f"Payment notification failed: invoice_id={invoice.payment_invoice_id}")

     def check_status(self, identifier: str, source: PaymentSource = PaymentSource.POLL) -> StatusResult:
          """
          Return an invoice's payment status, asking the processor if needed.

          Already paid invoices are answered locally. Otherwise the processor
          that issued the invoice is queried and a paid answer is applied
          before returning.

          Raises:
               NotFound: Unknown invoice.
               MissingCredentials, AllEndpointsFailed: Processor unreachable;
                    the caller retries later, the invoice is left untouched.
          """
          invoice = self.store.find(identifier)
          if invoice is None:
               raise NotFound(f"Transaction {identifier} not found")

          if invoice.is_paid:
               return StatusResult(invoice_id=invoice.payment_invoice_id, paid=True, status=PaymentStatus.PAID.value)

          client = self.registry.get(invoice.payment_provider)
          result = client.check_status(invoice.payment_invoice_id)
          if result.paid:
               self.apply_payment_result(invoice.payment_invoice_id, True, source)

          return StatusResult(invoice_id=invoice.payment_invoice_id, paid=result.paid, status=result.status)

     def verify_payment(self, identifier: str) -> StatusResult:
          """Manual re-check used when push and poll both stall."""
          return self.check_status(identifier, source=PaymentSource.MANUAL_VERIFY)

     def handle_webhook(self, provider_key: str, raw_body: bytes, headers: Mapping[str, str]) -> bool:
          """
          Verify, parse and apply a processor webhook delivery.

          Returns:
               True if the delivery moved the invoice to PAID.

          Raises:
               SignatureInvalid: Missing/invalid signature; nothing mutated.
               InvalidResponse: Payload unusable.
               NotFound: Unknown invoice.
          """
          client = self.registry.get(provider_key)

          if self.settings.disable_webhook_verification:
               logger.warning(f"Webhook signature verification disabled by operator override (provider={provider_key})")
          elif not client.verify_signature(raw_body, headers):
               raise SignatureInvalid(f"{provider_key} webhook signature missing or invalid")

          event = client.parse_webhook(raw_body)
          transitioned = self.apply_payment_result(event.invoice_id, event.paid, PaymentSource.WEBHOOK)
          logger.info(
               f"Webhook processed successfully: provider={provider_key}, invoice_id={event.invoice_id}, "
               f"type={event.event_type}, paid={event.paid}"
          )
          return transitioned
