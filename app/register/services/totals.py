from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Protocol

from app.register.core.error_catalog import ErrorCatalog, RegisterValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MAX_TAX_RATE = Decimal("1")


class PricedLine(Protocol):
    line_total: Decimal


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: object) -> Decimal:
    """Convert a stored float/str/int amount to a two-decimal Decimal."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise RegisterValidationError(ErrorCatalog.INVALID_PRICE, details={"value": str(value)}) from exc
    if not amount.is_finite():
        raise RegisterValidationError(ErrorCatalog.INVALID_PRICE, details={"value": str(value)})
    return round2(amount)


def validate_tax_rate(tax_rate: object) -> Decimal:
    try:
        rate = tax_rate if isinstance(tax_rate, Decimal) else Decimal(str(tax_rate))
    except InvalidOperation as exc:
        raise RegisterValidationError(ErrorCatalog.INVALID_TAX_RATE, details={"tax_rate": str(tax_rate)}) from exc
    if not rate.is_finite() or rate < 0 or rate > MAX_TAX_RATE:
        raise RegisterValidationError(ErrorCatalog.INVALID_TAX_RATE, details={"tax_rate": str(tax_rate)})
    return rate


def compute_totals(cart: Iterable[PricedLine], tax_enabled: bool, tax_rate: object) -> Totals:
    rate = validate_tax_rate(tax_rate)
    # line totals are already rounded when they are set
    subtotal = sum((line.line_total for line in cart), ZERO)
    tax = round2(subtotal * rate) if tax_enabled else ZERO
    return Totals(subtotal=subtotal, tax=tax, total=subtotal + tax)
