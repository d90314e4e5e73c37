from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ReturnTransaction(db.Model):
    """
    Processed return against a committed sale.

    IMMUTABLE: created in one step by the return service (no approval
    workflow). A sale may have several returns; the service enforces that
    the returned quantity per sale line never exceeds the quantity sold.

    Profit lost is derived from the sale item's frozen price and cost when
    reporting and is not stored here.
    """
    __tablename__ = "return_transactions"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_returns_docnum"),
        db.Index("ix_returns_sale_created", "original_sale_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)
    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    total_refund_cents = db.Column(db.Integer, nullable=False)
    refund_method = db.Column(db.String(16), nullable=False)  # CASH, CARD, DIGITAL, STORE_CREDIT

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    original_sale = db.relationship("Sale", backref=db.backref("returns", lazy=True, order_by="ReturnTransaction.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "original_sale_id": self.original_sale_id,
            "created_at": to_utc_z(self.created_at),
            "total_refund_cents": self.total_refund_cents,
            "refund_method": self.refund_method,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "items": [item.to_dict() for item in self.items],
        }


class ReturnItem(db.Model):
    """Returned quantity of one sale item, refunded at the price it sold for."""
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("return_transactions.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    restock = db.Column(db.Boolean, nullable=False, default=True)

    return_transaction = db.relationship("ReturnTransaction", backref=db.backref("items", lazy=True, order_by="ReturnItem.id"))
    sale_item = db.relationship("SaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": str(self.quantity),
            "refund_cents": self.refund_cents,
            "reason": self.reason,
            "restock": self.restock,
        }


class MasterLedgerEvent(db.Model):
    """Append-only audit row written in the same transaction as each commit."""
    __tablename__ = "master_ledger_events"
    __table_args__ = (
        db.Index("ix_master_ledger_category_occurred", "event_category", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., sale.completed, hold.voided
    event_category = db.Column(db.String(32), nullable=False, index=True)  # sales, returns, holds, credit

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
