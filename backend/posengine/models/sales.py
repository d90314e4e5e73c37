from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_DIGITAL = "DIGITAL"
PAYMENT_STORE_CREDIT = "STORE_CREDIT"

PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_DIGITAL, PAYMENT_STORE_CREDIT)

TAX_INCLUSIVE = "INCLUSIVE"
TAX_EXCLUSIVE = "EXCLUSIVE"


class Sale(db.Model):
    """
    Committed sale.

    IMMUTABLE: written once by the checkout service and only read after
    that (returns, history, reporting). Tax and credit figures are
    snapshots of the store settings at checkout time, and the customer
    name is copied so later renames do not rewrite history.

    FINANCIALS (all cents):
    - subtotal_cents: sum of price x quantity
    - tax_cents: added on top (EXCLUSIVE) or carved out of subtotal (INCLUSIVE)
    - credit_markup_cents: STORE_CREDIT interest, 0 otherwise
    - total_cents: what the customer pays
    - profit_cents: (subtotal - cost of goods) + markup
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_sales_docnum"),
        db.Index("ix_sales_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    # Tax snapshot
    tax_name = db.Column(db.String(32), nullable=True)
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, default=0)
    tax_type = db.Column(db.String(16), nullable=False, default=TAX_EXCLUSIVE)

    # Credit markup snapshot
    credit_markup_rate = db.Column(db.Numeric(7, 3), nullable=False, default=0)
    credit_markup_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_term_name = db.Column(db.String(64), nullable=True)
    credit_due_at = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "created_at": to_utc_z(self.created_at),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "profit_cents": self.profit_cents,
            "tax_name": self.tax_name,
            "tax_rate": str(self.tax_rate),
            "tax_type": self.tax_type,
            "credit_markup_rate": str(self.credit_markup_rate),
            "credit_markup_cents": self.credit_markup_cents,
            "credit_term_name": self.credit_term_name,
            "credit_due_at": to_utc_z(self.credit_due_at) if self.credit_due_at else None,
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_cents": self.change_cents,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "items": [item.to_dict() for item in self.items],
        }


class SaleItem(db.Model):
    """Line on a committed sale; price and cost are frozen at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=True)
    allow_decimal = db.Column(db.Boolean, nullable=False, default=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "allow_decimal": self.allow_decimal,
            "quantity": str(self.quantity),
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "line_total_cents": self.line_total_cents,
        }
