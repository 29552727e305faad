"""Cart lines and the pure transformations applied to them.

A cart is an ordered tuple of ``CartLine``. Every operation returns a new
tuple and leaves its input untouched, so the caller decides when the
session counts as modified.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable

from app.register.core.error_catalog import ErrorCatalog, RegisterValidationError
from app.register.services.totals import round2, to_money


@dataclass(frozen=True)
class CartLine:
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    @classmethod
    def priced(cls, product_name: str, quantity: int, unit_price: Decimal) -> CartLine:
        return cls(
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            line_total=round2(unit_price * quantity),
        )


Cart = tuple[CartLine, ...]


def _check_index(cart: Cart, index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index >= len(cart):
        raise RegisterValidationError(
            ErrorCatalog.INVALID_INDEX,
            details={"index": index, "lines": len(cart)},
        )


def add_item(cart: Cart, product_name: str, unit_price: Decimal) -> Cart:
    for index, line in enumerate(cart):
        if line.product_name == product_name:
            # keep the price captured on first add
            merged = CartLine.priced(line.product_name, line.quantity + 1, line.unit_price)
            return cart[:index] + (merged,) + cart[index + 1 :]
    return cart + (CartLine.priced(product_name, 1, unit_price),)


def set_quantity(cart: Cart, index: int, new_qty: int) -> Cart:
    if isinstance(new_qty, bool) or not isinstance(new_qty, int):
        raise RegisterValidationError(ErrorCatalog.INVALID_QUANTITY, details={"qty": new_qty})
    _check_index(cart, index)
    if new_qty <= 0:
        return cart[:index] + cart[index + 1 :]
    line = cart[index]
    updated = replace(line, quantity=new_qty, line_total=round2(line.unit_price * new_qty))
    return cart[:index] + (updated,) + cart[index + 1 :]


def remove_item(cart: Cart, index: int) -> Cart:
    _check_index(cart, index)
    return cart[:index] + cart[index + 1 :]


def cart_from_sale_lines(lines: Iterable) -> Cart:
    """Rebuild cart lines from stored sale lines, taking amounts as stored."""
    return tuple(
        CartLine(
            product_name=line.item,
            quantity=line.qty,
            unit_price=to_money(line.price),
            line_total=to_money(line.line_total),
        )
        for line in lines
    )
