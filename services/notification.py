# services/notification.py
"""
Paid-invoice notification.

The reconciliation engine calls ``notify_paid`` exactly once per invoice,
on the transition to PAID. The default dispatcher emails the form's admin
address using the form's subject/template with placeholder substitution.
"""
import logging
from typing import Dict, Optional, Protocol

from config import Settings
from models import Invoice
from models.invoice_form import DEFAULT_EMAIL_SUBJECT, DEFAULT_EMAIL_TEMPLATE
from services.discount import from_minor_units
from services.form_service import FormRepository
from utils.email import send_email

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
     def notify_paid(self, invoice: Invoice) -> None:
          ...


def build_placeholders(invoice: Invoice) -> Dict[str, str]:
     """Values substituted into the notification subject and template."""
     return {
          "{invoice_number}": invoice.invoice_number or "",
          "{customer_name}": invoice.customer_name or "",
          "{customer_email}": invoice.customer_email or "",
          "{amount}": str(from_minor_units(invoice.amount)),
          "{currency}": invoice.currency.value,
          "{payment_status}": invoice.payment_status.value.capitalize(),
          "{transaction_id}": invoice.transaction_id,
          "{payment_provider}": invoice.payment_provider.capitalize(),
          "{description}": invoice.description or "",
     }


def render(template: str, placeholders: Dict[str, str]) -> str:
     for key, value in placeholders.items():
          template = template.replace(key, value)
     return template


class EmailNotificationDispatcher:
     """Emails the operator when an invoice is paid."""

     def __init__(self, settings: Settings, forms: FormRepository):
          self.settings = settings
          self.forms = forms

     def _recipient(self, form) -> Optional[str]:
          if form is not None and form.admin_email:
               return form.admin_email
          return self.settings.admin_email

     def notify_paid(self, invoice: Invoice) -> None:
          form = self.forms.get_form(invoice.form_id)
          recipient = self._recipient(form)
          if not recipient:
               logger.warning(
                    f"No admin email configured; skipping payment notification for "
                    f"invoice_id={invoice.payment_invoice_id}"
               )
               return

          placeholders = build_placeholders(invoice)
          subject = render((form.email_subject if form else None) or DEFAULT_EMAIL_SUBJECT, placeholders)
          message = render((form.email_template if form else None) or DEFAULT_EMAIL_TEMPLATE, placeholders)

          send_email(self.settings, recipient, subject, message)
          logger.info(
               f"Payment notification email sent: invoice_id={invoice.payment_invoice_id}, "
               f"admin_email={recipient}"
          )
