from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .sales import PAYMENT_CASH


CART_STATUS_OPEN = "OPEN"
CART_STATUS_CLOSED = "CLOSED"


class Cart(db.Model):
    """
    In-progress transaction owned by one POS session.

    CUSTOMER REFERENCE:
    Either `customer_id` points at a persisted customer, or the walk_in_*
    columns describe a transient walk-in identity that is only written to
    the customers table when a checkout uses it.
    """
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=CART_STATUS_OPEN, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    walk_in_ref = db.Column(db.String(64), nullable=True)
    walk_in_name = db.Column(db.String(255), nullable=True)
    walk_in_phone = db.Column(db.String(32), nullable=True)
    walk_in_email = db.Column(db.String(255), nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "walk_in_ref": self.walk_in_ref,
            "walk_in_name": self.walk_in_name,
            "payment_method": self.payment_method,
            "lines": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartLine(db.Model):
    """
    Cart line with a product snapshot and a mutable quantity.

    `reserved_quantity` is the part of `quantity` already taken out of
    stock by a hold this line was resumed from. Checkout consumes it
    instead of decrementing stock a second time.
    """
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_lines_cart_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Snapshot taken when the line was added
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)
    allow_decimal = db.Column(db.Boolean, nullable=False, default=False)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    reserved_quantity = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    cart = db.relationship("Cart", backref=db.backref("lines", lazy=True, order_by="CartLine.position"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "position": self.position,
            "product_name": self.product_name,
            "sku": self.sku,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "allow_decimal": self.allow_decimal,
            "quantity": str(self.quantity),
            "reserved_quantity": str(self.reserved_quantity),
        }
