# services/errors.py
"""
Payment error taxonomy.

Every failure the payment core can report is a ``PaymentError`` subclass
carrying a stable ``kind`` string. Routers map kinds to HTTP responses and
logs use the kind to tell failure classes apart; the message is for logs
only and is never echoed to end users.
"""


class PaymentError(Exception):
     """Base class for all payment core failures."""

     kind = "PaymentError"

     def __init__(self, message: str = "", **context):
          super().__init__(message or self.kind)
          self.message = message or self.kind
          self.context = context

     def __str__(self) -> str:
          return f"{self.kind}: {self.message}"


class InvalidForm(PaymentError):
     kind = "InvalidForm"


class InvalidAmount(PaymentError):
     kind = "InvalidAmount"


class UnsupportedCurrency(PaymentError):
     kind = "UnsupportedCurrency"


class MissingCredentials(PaymentError):
     kind = "MissingCredentials"


class NetworkError(PaymentError):
     """Outbound call to a processor failed at the transport level."""
     kind = "NetworkError"


class InvalidResponse(PaymentError):
     """Processor answered 2xx but the body was unusable."""
     kind = "InvalidResponse"


class AllEndpointsFailed(PaymentError):
     """Every known endpoint variant for a processor call failed."""
     kind = "AllEndpointsFailed"


class SignatureInvalid(PaymentError):
     kind = "SignatureInvalid"


class NotFound(PaymentError):
     kind = "NotFound"


class PersistenceError(PaymentError):
     """Database write failed after the external invoice was created."""
     kind = "PersistenceError"


# Kinds that are caused by the request itself rather than a processor or the DB
VALIDATION_ERRORS = (InvalidForm, InvalidAmount, UnsupportedCurrency)

# Kinds caused by talking to (or being unable to talk to) a processor
PROVIDER_ERRORS = (MissingCredentials, NetworkError, InvalidResponse, AllEndpointsFailed)
