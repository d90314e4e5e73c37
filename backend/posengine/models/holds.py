from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


HOLD_STATUS_ACTIVE = "ACTIVE"
HOLD_STATUS_RESUMED = "RESUMED"
HOLD_STATUS_VOIDED = "VOIDED"

# Display-only classification of an ACTIVE hold past its expiry time
HOLD_STATUS_EXPIRED = "EXPIRED"


class HoldTransaction(db.Model):
    """
    Parked cart that keeps its units out of sellable stock.

    LIFECYCLE:
    ACTIVE -> RESUMED (lines go back into a cart, units stay reserved)
    ACTIVE -> VOIDED  (reservation released back to stock)

    EXPIRED is never stored: an ACTIVE hold whose expiry_at has passed is
    shown as expired but can still be resumed or voided.
    """
    __tablename__ = "hold_transactions"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_holds_docnum"),
        db.Index("ix_holds_status_expiry", "status", "expiry_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=HOLD_STATUS_ACTIVE, index=True)

    # Frozen customer reference (persisted id or walk-in snapshot)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    walk_in_ref = db.Column(db.String(64), nullable=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    expiry_at = db.Column(db.DateTime(timezone=True), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resumed_into_cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "status": self.status,
            "customer_id": self.customer_id,
            "walk_in_ref": self.walk_in_ref,
            "customer_name": self.customer_name,
            "created_at": to_utc_z(self.created_at),
            "duration_minutes": self.duration_minutes,
            "expiry_at": to_utc_z(self.expiry_at),
            "note": self.note,
            "cashier_id": self.cashier_id,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolved_by_user_id": self.resolved_by_user_id,
            "resumed_into_cart_id": self.resumed_into_cart_id,
            "total_cents": sum(line.line_total_cents for line in self.lines),
            "lines": [line.to_dict() for line in self.lines],
        }


class HoldLine(db.Model):
    """Frozen copy of a cart line; `quantity` is the reserved amount."""
    __tablename__ = "hold_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    hold_id = db.Column(db.Integer, db.ForeignKey("hold_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)
    allow_decimal = db.Column(db.Boolean, nullable=False, default=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    hold = db.relationship("HoldTransaction", backref=db.backref("lines", lazy=True, order_by="HoldLine.position"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hold_id": self.hold_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "allow_decimal": self.allow_decimal,
            "quantity": str(self.quantity),
            "line_total_cents": self.line_total_cents,
        }
