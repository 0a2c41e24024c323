# services/discount.py
"""
Amount math for invoice creation.

``apply_discount`` is the authoritative discount computation; any client
side preview must mirror it and is never trusted as the charge amount.
All arithmetic is done in ``Decimal``.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

Number = Union[Decimal, int, float, str]

DISCOUNT_FIXED = "fixed"
DISCOUNT_PERCENT = "percent"
PERCENT_ALIASES = ("percent", "percentage")


def to_decimal(value: Any) -> Optional[Decimal]:
     """Parse a user or config supplied amount; empty or invalid -> None."""
     if value is None:
          return None
     if isinstance(value, Decimal):
          return value
     text = str(value).strip()
     if not text:
          return None
     try:
          parsed = Decimal(text)
     except InvalidOperation:
          return None
     if not parsed.is_finite():
          return None
     return parsed


def normalize_discount_type(kind: Optional[str]) -> str:
     """Map stored discount type strings onto ``fixed`` / ``percent``."""
     if (kind or "").strip().lower() in PERCENT_ALIASES:
          return DISCOUNT_PERCENT
     return DISCOUNT_FIXED


def apply_discount(base: Number, kind: str, value: Number) -> Decimal:
     """
     Apply a discount to ``base``, never going below zero.

     Percent: ``base - base * value / 100``. Fixed: ``base - value``.

     >>> apply_discount(100, "percent", 10)
     Decimal('90')
     >>> apply_discount(100, "fixed", 150)
     Decimal('0')
     """
     base = Decimal(str(base))
     value = Decimal(str(value))
     if normalize_discount_type(kind) == DISCOUNT_PERCENT:
          amount = base - (base * value / Decimal(100))
     else:
          amount = base - value
     if amount < 0:
          return Decimal(0)
     return amount


def to_minor_units(amount: Number, currency: str) -> int:
     """
     Convert a major-unit amount into integer minor units (x100).

     The amount is first rounded half-up to the currency's precision:
     two decimals, or whole units for SATS.
     """
     amount = Decimal(str(amount))
     exponent = Decimal("1") if currency == "SATS" else Decimal("0.01")
     rounded = amount.quantize(exponent, rounding=ROUND_HALF_UP)
     return int((rounded * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
     """Inverse of ``to_minor_units`` for display."""
     return (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))
