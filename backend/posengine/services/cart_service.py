"""
Cart Service - the in-progress transaction of one POS session.

DESIGN:
- Lines keep a product snapshot (name, price, cost, unit) taken on add;
  quantity bounds always use live stock.
- Max quantity for a line is live stock plus whatever that line already
  holds in reservation (units carried over from a resumed hold).
- Lowering a line below its reservation, removing it, or clearing the
  cart hands the surplus reservation back to stock.
- Totals are never stored; `get_totals` prices the cart fresh each call.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Cart, CartLine
from ..models.carts import CART_STATUS_CLOSED, CART_STATUS_OPEN
from ..models.sales import PAYMENT_METHODS, PAYMENT_CASH
from ..validation import (
    ConsistencyViolation,
    NotFoundError,
    ValidationError,
    min_quantity,
    parse_quantity_input,
    round_quantity,
)
from . import inventory_service
from .concurrency import run_serialized
from .customer_service import CustomerRef, get_customer, ref_for_customer, walk_in_ref
from .pricing_service import CartTotals, price_lines
from .settings_service import get_pricing_config


ZERO = Decimal("0")


# =============================================================================
# LOOKUPS
# =============================================================================

def get_cart(cart_id: int) -> Cart:
    cart = db.session.get(Cart, cart_id)
    if not cart:
        raise NotFoundError(f"Cart {cart_id} not found", details={"cart_id": cart_id})
    return cart


def get_open_cart(cart_id: int) -> Cart:
    cart = get_cart(cart_id)
    if cart.status != CART_STATUS_OPEN:
        raise ConsistencyViolation(f"Cart {cart_id} is closed", reason="CART_CLOSED")
    return cart


def _get_line(cart: Cart, line_id: int) -> CartLine:
    for line in cart.lines:
        if line.id == line_id:
            return line
    raise NotFoundError(f"Line {line_id} not in cart {cart.id}", details={"line_id": line_id})


def is_empty(cart_id: int) -> bool:
    return len(get_cart(cart_id).lines) == 0


def max_quantity(line: CartLine) -> Decimal:
    return inventory_service.available(line.product) + Decimal(line.reserved_quantity or 0)


def customer_ref(cart: Cart) -> CustomerRef:
    if cart.customer_id is not None:
        return ref_for_customer(cart.customer)
    return walk_in_ref(cart.walk_in_ref, cart.walk_in_name, cart.walk_in_phone, cart.walk_in_email)


def get_totals(cart_id: int, credit_term_id: int | None = None, payment_method: str | None = None) -> CartTotals:
    cart = get_cart(cart_id)
    return price_lines(cart.lines, get_pricing_config(), payment_method or cart.payment_method, credit_term_id)


# =============================================================================
# INTERNAL HELPERS (no commit)
# =============================================================================

def set_customer(cart: Cart, ref: CustomerRef) -> None:
    cart.customer_id = ref.customer_id
    if ref.is_persisted:
        cart.walk_in_ref = None
        cart.walk_in_name = None
        cart.walk_in_phone = None
        cart.walk_in_email = None
    else:
        cart.walk_in_ref = ref.walk_in_ref
        cart.walk_in_name = ref.name
        cart.walk_in_phone = ref.phone
        cart.walk_in_email = ref.email


def reset_customer(cart: Cart) -> None:
    """Fresh walk-in identity for the next transaction."""
    set_customer(cart, walk_in_ref())


def _release_surplus(line: CartLine, new_quantity: Decimal) -> None:
    reserved = Decimal(line.reserved_quantity or 0)
    if new_quantity < reserved:
        inventory_service.release(line.product, reserved - new_quantity)
        line.reserved_quantity = new_quantity


def drop_lines(cart: Cart, release_reservations: bool = True) -> None:
    """
    Remove every line. Reservations are released unless the caller is
    moving them somewhere else (a new hold, or a committed sale).
    """
    for line in list(cart.lines):
        reserved = Decimal(line.reserved_quantity or 0)
        if release_reservations and reserved > 0:
            inventory_service.release(line.product, reserved)
        db.session.delete(line)
    db.session.flush()
    db.session.expire(cart, ["lines"])


def _clamp(line: CartLine, quantity: Decimal) -> Decimal:
    if line.allow_decimal:
        quantity = round_quantity(quantity)
    else:
        quantity = quantity.to_integral_value(rounding="ROUND_FLOOR")
    floor = min_quantity(line.allow_decimal)
    ceiling = max_quantity(line)
    return max(floor, min(quantity, ceiling))


def validate_lines(cart: Cart) -> None:
    """Lines must be at or above the minimum and within live stock."""
    for line in cart.lines:
        quantity = Decimal(line.quantity)
        if quantity < min_quantity(line.allow_decimal):
            raise ValidationError(
                f"Quantity for {line.product_name} is below the minimum",
                reason="INVALID_QUANTITY",
                details={"line_id": line.id, "quantity": str(quantity)},
            )
        if quantity > max_quantity(line):
            raise ValidationError(
                f"Quantity for {line.product_name} exceeds available stock",
                reason="EXCEEDS_STOCK",
                details={
                    "line_id": line.id,
                    "quantity": str(quantity),
                    "available": str(max_quantity(line)),
                },
            )


# =============================================================================
# OPERATIONS
# =============================================================================

def open_cart(cashier_id: int | None = None, payment_method: str = PAYMENT_CASH) -> Cart:
    """Start a session cart with a fresh walk-in customer."""
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method {payment_method}", reason="INVALID_PAYMENT_METHOD")

    def _op():
        cart = Cart(status=CART_STATUS_OPEN, cashier_id=cashier_id, payment_method=payment_method)
        reset_customer(cart)
        db.session.add(cart)
        db.session.commit()
        return cart

    return run_serialized(_op)


def add_line(cart_id: int, product_id: int) -> CartLine:
    """
    Add one unit of a product, or bump an existing line by one.

    Rejected when the product is out of stock or the increment would go
    past available stock.
    """
    def _op():
        cart = get_open_cart(cart_id)
        product = inventory_service.get_product(product_id)
        stock = inventory_service.available(product)

        existing = next((line for line in cart.lines if line.product_id == product_id), None)
        if existing:
            new_qty = Decimal(existing.quantity) + 1
            if new_qty > max_quantity(existing):
                raise ValidationError(
                    "Cannot add more than available stock",
                    reason="EXCEEDS_STOCK",
                    details={"product_id": product_id, "stock": str(stock)},
                )
            existing.quantity = new_qty
            db.session.commit()
            return existing

        if stock <= 0:
            raise ValidationError(
                f"{product.name} is out of stock",
                reason="OUT_OF_STOCK",
                details={"product_id": product_id},
            )

        initial = Decimal("1")
        if stock < initial:
            if not product.allow_decimal:
                raise ValidationError(
                    f"{product.name} is out of stock",
                    reason="OUT_OF_STOCK",
                    details={"product_id": product_id},
                )
            initial = round_quantity(stock)

        position = max((line.position for line in cart.lines), default=-1) + 1
        line = CartLine(
            cart_id=cart.id,
            product_id=product.id,
            position=position,
            product_name=product.name,
            sku=product.sku,
            unit=product.unit,
            price_cents=product.price_cents,
            cost_cents=product.cost_cents,
            allow_decimal=product.allow_decimal,
            quantity=initial,
            reserved_quantity=ZERO,
        )
        db.session.add(line)
        db.session.commit()
        return line

    return run_serialized(_op)


def remove_line(cart_id: int, line_id: int) -> None:
    def _op():
        cart = get_open_cart(cart_id)
        line = _get_line(cart, line_id)
        reserved = Decimal(line.reserved_quantity or 0)
        if reserved > 0:
            inventory_service.release(line.product, reserved)
        db.session.delete(line)
        db.session.commit()

    run_serialized(_op)


def set_quantity(cart_id: int, line_id: int, value) -> CartLine:
    """
    Typed quantity entry.

    Numbers are clamped to [min, max] (whole units unless the product
    allows decimals). Blank or non-numeric input parks the line at 0 until
    `commit_quantity` snaps it back up to the minimum.
    """
    def _op():
        cart = get_open_cart(cart_id)
        line = _get_line(cart, line_id)
        parsed = parse_quantity_input(value)
        new_qty = ZERO if parsed is None else _clamp(line, parsed)
        _release_surplus(line, new_qty)
        line.quantity = new_qty
        db.session.commit()
        return line

    return run_serialized(_op)


def commit_quantity(cart_id: int, line_id: int) -> CartLine:
    """Field lost focus: a pending quantity below the minimum becomes the minimum."""
    def _op():
        cart = get_open_cart(cart_id)
        line = _get_line(cart, line_id)
        floor = min_quantity(line.allow_decimal)
        if Decimal(line.quantity) < floor:
            line.quantity = floor
        db.session.commit()
        return line

    return run_serialized(_op)


def adjust_quantity(cart_id: int, line_id: int, delta) -> CartLine:
    """+/- buttons. Result is clamped to [min, max]."""
    step = parse_quantity_input(delta)
    if step is None:
        raise ValidationError("delta must be a number", reason="INVALID_QUANTITY")

    def _op():
        cart = get_open_cart(cart_id)
        line = _get_line(cart, line_id)
        new_qty = _clamp(line, Decimal(line.quantity) + step)
        _release_surplus(line, new_qty)
        line.quantity = new_qty
        db.session.commit()
        return line

    return run_serialized(_op)


def select_customer(
    cart_id: int,
    customer_id: int | None = None,
    name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
) -> Cart:
    """
    Replace the cart's customer.

    With `customer_id` the cart points at that persisted customer;
    otherwise it gets a new transient walk-in (optionally named).
    """
    def _op():
        cart = get_open_cart(cart_id)
        if customer_id is not None:
            ref = ref_for_customer(get_customer(customer_id))
        else:
            ref = walk_in_ref(name=name, phone=phone, email=email)
        set_customer(cart, ref)
        db.session.commit()
        return cart

    return run_serialized(_op)


def set_payment_method(cart_id: int, payment_method: str) -> Cart:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method {payment_method}", reason="INVALID_PAYMENT_METHOD")

    def _op():
        cart = get_open_cart(cart_id)
        cart.payment_method = payment_method
        db.session.commit()
        return cart

    return run_serialized(_op)


def clear(cart_id: int, reset_customer_identity: bool = False) -> Cart:
    def _op():
        cart = get_open_cart(cart_id)
        drop_lines(cart, release_reservations=True)
        if reset_customer_identity:
            reset_customer(cart)
        db.session.commit()
        return cart

    return run_serialized(_op)


def close_cart(cart_id: int) -> Cart:
    """End the session. Any remaining lines are cleared first."""
    def _op():
        cart = get_open_cart(cart_id)
        drop_lines(cart, release_reservations=True)
        cart.status = CART_STATUS_CLOSED
        db.session.commit()
        return cart

    return run_serialized(_op)

