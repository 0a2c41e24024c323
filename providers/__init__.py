# providers/__init__.py
from .base import (
     PAID_EVENT_TYPES,
     PAID_STATUSES,
     CreatedInvoice,
     InvoiceStatusResult,
     ProviderClient,
     WebhookEvent,
     sign_payload,
     verify_hmac_signature,
)
from .btcpay import BTCPayClient
from .coinsnap import CoinsnapClient
from .registry import ProviderRegistry

__all__ = [
     "PAID_EVENT_TYPES",
     "PAID_STATUSES",
     "CreatedInvoice",
     "InvoiceStatusResult",
     "ProviderClient",
     "WebhookEvent",
     "sign_payload",
     "verify_hmac_signature",
     "BTCPayClient",
     "CoinsnapClient",
     "ProviderRegistry",
]
