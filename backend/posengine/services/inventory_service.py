# Overview: Sellable stock and reservation bookkeeping for products.

"""
Stock movement primitives shared by the cart, hold, checkout and return
services.

Every write goes through `_apply`, which refuses to leave `stock` or
`reserved_quantity` below zero. Callers validate availability first and
raise ValidationError for user-facing shortages; a StockInvariantError out
of here means a caller skipped that validation.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, HoldLine, HoldTransaction, CartLine, Cart
from ..models.holds import HOLD_STATUS_ACTIVE
from ..models.carts import CART_STATUS_OPEN
from ..validation import NotFoundError, StockInvariantError


ZERO = Decimal("0")


class StockDeltas(dict):
    """product_id -> signed change to sellable stock applied by one step."""

    def add(self, product_id: int, delta: Decimal) -> None:
        self[product_id] = self.get(product_id, ZERO) + Decimal(delta)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def available(product: Product) -> Decimal:
    return Decimal(product.stock or 0)


def _apply(product: Product, stock_delta: Decimal = ZERO, reserved_delta: Decimal = ZERO) -> None:
    new_stock = Decimal(product.stock or 0) + Decimal(stock_delta)
    new_reserved = Decimal(product.reserved_quantity or 0) + Decimal(reserved_delta)
    if new_stock < 0 or new_reserved < 0:
        raise StockInvariantError(
            f"Stock write for product {product.id} would go negative",
            details={
                "product_id": product.id,
                "stock": str(product.stock),
                "reserved_quantity": str(product.reserved_quantity),
                "stock_delta": str(stock_delta),
                "reserved_delta": str(reserved_delta),
            },
        )
    product.stock = new_stock
    product.reserved_quantity = new_reserved


def reserve(product: Product, quantity: Decimal, deltas: StockDeltas | None = None) -> None:
    """Move units from sellable stock into the reservation."""
    _apply(product, stock_delta=-Decimal(quantity), reserved_delta=Decimal(quantity))
    if deltas is not None:
        deltas.add(product.id, -Decimal(quantity))


def release(product: Product, quantity: Decimal, deltas: StockDeltas | None = None) -> None:
    """Give reserved units back to sellable stock."""
    _apply(product, stock_delta=Decimal(quantity), reserved_delta=-Decimal(quantity))
    if deltas is not None:
        deltas.add(product.id, Decimal(quantity))


def consume_reservation(product: Product, quantity: Decimal) -> None:
    """Reserved units leave the store as part of a sale."""
    _apply(product, reserved_delta=-Decimal(quantity))


def sell(product: Product, quantity: Decimal, deltas: StockDeltas | None = None) -> None:
    _apply(product, stock_delta=-Decimal(quantity))
    if deltas is not None:
        deltas.add(product.id, -Decimal(quantity))


def restock(product: Product, quantity: Decimal, deltas: StockDeltas | None = None) -> None:
    _apply(product, stock_delta=Decimal(quantity))
    if deltas is not None:
        deltas.add(product.id, Decimal(quantity))


def reserved_by_holds(product_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(HoldLine.quantity), 0))
        .join(HoldTransaction, HoldLine.hold_id == HoldTransaction.id)
        .filter(HoldLine.product_id == product_id, HoldTransaction.status == HOLD_STATUS_ACTIVE)
        .scalar()
    )
    return Decimal(total or 0)


def reserved_by_carts(product_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(CartLine.reserved_quantity), 0))
        .join(Cart, CartLine.cart_id == Cart.id)
        .filter(CartLine.product_id == product_id, Cart.status == CART_STATUS_OPEN)
        .scalar()
    )
    return Decimal(total or 0)


def check_reservations(product_id: int) -> Decimal:
    """
    Verify the reservation column against the records that own it.

    reserved_quantity == sum(ACTIVE hold lines) + sum(open cart line reservations)
    """
    product = get_product(product_id)
    expected = reserved_by_holds(product_id) + reserved_by_carts(product_id)
    if Decimal(product.reserved_quantity or 0) != expected:
        raise StockInvariantError(
            f"Reservation drift on product {product_id}",
            details={
                "product_id": product_id,
                "reserved_quantity": str(product.reserved_quantity),
                "expected": str(expected),
            },
        )
    return expected
