# schemas/__init__.py
from .invoice import (
     InvoiceResponse,
     InvoiceListResponse,
     PaymentStatusEnum,
)
from .payment import (
     PaymentCreateRequest,
     PaymentCreateResponse,
     PaymentStatusResponse,
     FormTokenResponse,
)

__all__ = [
     "InvoiceResponse",
     "InvoiceListResponse",
     "PaymentStatusEnum",
     "PaymentCreateRequest",
     "PaymentCreateResponse",
     "PaymentStatusResponse",
     "FormTokenResponse",
]
