# services/__init__.py
from .errors import PaymentError
from .discount import apply_discount, to_minor_units

__all__ = [
     "PaymentError",
     "apply_discount",
     "to_minor_units",
]
