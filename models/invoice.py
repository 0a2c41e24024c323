# models/invoice.py
"""
Invoice model - one row per payment attempt made through an invoice form.

The row pairs a locally generated ``transaction_id`` with the external
processor's ``payment_invoice_id``. Every column except ``payment_status``
and ``updated_at`` is written once at creation time.
"""
import enum

from sqlalchemy import BigInteger, Column, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin


class PaymentStatus(str, enum.Enum):
     """Lifecycle of an invoice payment. PAID is terminal."""
     UNPAID = "unpaid"
     PAID = "paid"
     FAILED = "failed"
     REFUNDED = "refunded"


class Currency(str, enum.Enum):
     """Currencies an invoice can be issued in."""
     EUR = "EUR"
     USD = "USD"
     SATS = "SATS"
     BTC = "BTC"
     CAD = "CAD"
     JPY = "JPY"
     GBP = "GBP"
     CHF = "CHF"
     RUB = "RUB"


class Invoice(Base, TimestampMixin):
     """
     Invoice / transaction record.

     ``amount`` is stored in integer minor units (hundredths of the
     currency unit) after any discount has been applied.
     """
     __tablename__ = "invoices"

     id = Column(Integer, primary_key=True, autoincrement=True)

     form_id = Column(
          Integer,
          ForeignKey("invoice_forms.id", ondelete="NO ACTION"),
          nullable=False,
          index=True
     )
     transaction_id = Column(String(190), nullable=False, unique=True, index=True)

     # Customer supplied metadata
     invoice_number = Column(String(190), nullable=True, index=True)
     customer_name = Column(String(190), nullable=False, default="")
     customer_email = Column(String(190), nullable=False, default="", index=True)
     customer_company = Column(String(190), nullable=True)
     description = Column(Text, nullable=True)

     # Charge
     amount = Column(BigInteger, nullable=False)
     currency = Column(Enum(Currency, name="invoice_currency", native_enum=False, length=10), nullable=False)

     # Processor
     payment_provider = Column(String(50), nullable=False, index=True)
     payment_invoice_id = Column(String(190), nullable=False, unique=True, index=True)
     payment_status = Column(
          Enum(PaymentStatus, name="payment_status", native_enum=False, length=20,
               values_callable=lambda e: [m.value for m in e]),
          default=PaymentStatus.UNPAID,
          nullable=False,
          index=True
     )
     payment_url = Column(Text, nullable=True)

     # Request context
     ip = Column(String(64), nullable=True)
     user_agent = Column(Text, nullable=True)

     # Relationships
     form = relationship("InvoiceForm", back_populates="invoices")

     def __repr__(self):
          return (
               f"<Invoice(id={self.id}, transaction_id='{self.transaction_id}', "
               f"status='{self.payment_status.value}', amount={self.amount} {self.currency.value})>"
          )

     @property
     def is_paid(self) -> bool:
          """Check whether the processor has confirmed this invoice."""
          return self.payment_status == PaymentStatus.PAID
