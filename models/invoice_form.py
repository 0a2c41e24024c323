# models/invoice_form.py
"""
InvoiceForm model - stored definition of a configurable payment form.

Forms are authored by the site operator; the payment core only reads them
(default amount/currency, provider override, discount, redirect and
notification email settings).
"""
from sqlalchemy import Boolean, Column, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin


INVOICE_FORM_TYPES = ("bif_invoice_form", "coinsnap_invoice_form")

DEFAULT_THANK_YOU_MESSAGE = "Thank you! Your payment has been processed successfully."
DEFAULT_EMAIL_SUBJECT = "New Invoice Payment Received"
DEFAULT_EMAIL_TEMPLATE = """A new invoice payment has been received:

Invoice Number: {invoice_number}
Customer: {customer_name}
Email: {customer_email}
Amount: {amount} {currency}
Payment Status: {payment_status}

Payment Details:
Transaction ID: {transaction_id}
Payment Provider: {payment_provider}

Description: {description}"""


class InvoiceForm(Base, TimestampMixin):
     """Payment form definition."""
     __tablename__ = "invoice_forms"

     id = Column(Integer, primary_key=True, autoincrement=True)
     title = Column(String(255), nullable=False, default="")
     form_type = Column(String(50), nullable=False, default="bif_invoice_form")

     # Payment defaults
     amount = Column(Numeric(18, 8), nullable=True)
     currency = Column(String(10), nullable=True, default="USD")
     description = Column(Text, nullable=True)
     provider_override = Column(String(50), nullable=True)

     # Discount
     discount_enabled = Column(Boolean, default=False, nullable=False)
     discount_type = Column(String(20), nullable=False, default="fixed")  # fixed, percent
     discount_value = Column(Numeric(18, 8), nullable=True)

     # Redirect
     success_page = Column(String(500), nullable=True)
     thank_you_message = Column(Text, nullable=True)

     # Notification email
     admin_email = Column(String(255), nullable=True)
     email_subject = Column(String(255), nullable=True)
     email_template = Column(Text, nullable=True)

     # Relationships
     invoices = relationship("Invoice", back_populates="form")

     def __repr__(self):
          return f"<InvoiceForm(id={self.id}, title='{self.title}', type='{self.form_type}')>"
