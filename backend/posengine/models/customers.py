from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CUSTOMER_TYPE_MEMBER = "MEMBER"
CUSTOMER_TYPE_WALK_IN = "WALK_IN"

ADJUSTMENT_ADD = "ADD"
ADJUSTMENT_DEDUCT = "DEDUCT"


class Customer(db.Model):
    """
    Customer master data.

    STORE CREDIT:
    `store_credit_cents` is signed: positive is credit owed to the customer,
    negative is debt owed to the store. It is a cached copy of the newest
    CreditAdjustment.new_balance_cents and is only written by the credit
    ledger service. Only MEMBER customers carry a non-zero balance.

    WALK-IN:
    Walk-in customers are registered lazily, the first time a checkout
    references them; `external_ref` keeps the transient "walkin-..." id the
    cart used so the sale can be traced back to the session.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_type_name", "customer_type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_ref = db.Column(db.String(64), nullable=True, unique=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    customer_type = db.Column(db.String(16), nullable=False, default=CUSTOMER_TYPE_MEMBER, index=True)

    # Denormalized aggregates (updated on checkout and return)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    visit_count = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store_credit_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_member(self) -> bool:
        return self.customer_type == CUSTOMER_TYPE_MEMBER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_ref": self.external_ref,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "customer_type": self.customer_type,
            "total_spent_cents": self.total_spent_cents,
            "visit_count": self.visit_count,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "store_credit_cents": self.store_credit_cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class CreditAdjustment(db.Model):
    """
    Append-only store-credit ledger.

    TYPES:
    - ADD: balance goes up (deposit, account payment, return refund)
    - DEDUCT: balance goes down (store-credit checkout, correction)

    `amount_cents` is unsigned; `new_balance_cents` is the balance right
    after this row and is never recomputed.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "credit_adjustments"
    __table_args__ = (
        db.Index("ix_credit_adjustments_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    adjustment_type = db.Column(db.String(8), nullable=False)  # ADD, DEDUCT
    amount_cents = db.Column(db.Integer, nullable=False)
    new_balance_cents = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)  # CASH, CARD, DIGITAL (account payments)

    # Source documents, when the adjustment came from a commit
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("return_transactions.id"), nullable=True, index=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    actor_name = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("credit_adjustments", lazy=True, order_by="CreditAdjustment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "adjustment_type": self.adjustment_type,
            "amount_cents": self.amount_cents,
            "new_balance_cents": self.new_balance_cents,
            "reason": self.reason,
            "payment_method": self.payment_method,
            "sale_id": self.sale_id,
            "return_id": self.return_id,
            "actor_user_id": self.actor_user_id,
            "actor_name": self.actor_name,
            "occurred_at": to_utc_z(self.occurred_at),
        }
