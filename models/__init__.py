# models/__init__.py
from .base import Base
from .invoice_form import InvoiceForm
from .invoice import Invoice, PaymentStatus, Currency

__all__ = [
     "Base",
     "InvoiceForm",
     "Invoice",
     "PaymentStatus",
     "Currency",
]
