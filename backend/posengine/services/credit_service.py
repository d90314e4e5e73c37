"""
Store-credit ledger.

The CreditAdjustment table is the source of truth for a member's balance;
Customer.store_credit_cents is kept equal to the newest row's
new_balance_cents and both are written in the same flush, so no reader
can see one without the other.

Negative balances (debt) are allowed. Amounts must be positive.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import Customer, CreditAdjustment, Sale
from ..models.customers import ADJUSTMENT_ADD, ADJUSTMENT_DEDUCT
from ..models.sales import PAYMENT_CASH, PAYMENT_CARD, PAYMENT_DIGITAL, PAYMENT_STORE_CREDIT
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_cents
from . import events
from .concurrency import run_serialized
from .customer_service import get_customer, actor_name
from .ledger_service import append_ledger_event


ADJUSTMENT_TYPES = (ADJUSTMENT_ADD, ADJUSTMENT_DEDUCT)
ACCOUNT_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_DIGITAL)
ACCOUNT_PAYMENT_REASON = "Account Payment (POS)"

CREDIT_SALE_DUE = "DUE"
CREDIT_SALE_OVERDUE = "OVERDUE"


def append_adjustment(
    customer: Customer,
    amount_cents: int,
    adjustment_type: str,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
    payment_method: str | None = None,
    sale_id: int | None = None,
    return_id: int | None = None,
    now: datetime | None = None,
) -> CreditAdjustment:
    """
    Append one adjustment and move the cached balance with it.

    Caller owns the commit; used directly by checkout and returns so the
    ledger row lands in their transaction.
    """
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(
            f"adjustment type must be one of {', '.join(ADJUSTMENT_TYPES)}",
            reason="INVALID_ADJUSTMENT_TYPE",
        )
    amount_cents = coerce_cents(amount_cents)
    if amount_cents <= 0:
        raise ValidationError("Adjustment amount must be positive", reason="INVALID_AMOUNT")
    if not customer.is_member:
        raise ValidationError(
            "Store credit is reserved for registered members",
            reason="NOT_A_MEMBER",
            details={"customer_id": customer.id},
        )

    current = customer.store_credit_cents or 0
    if adjustment_type == ADJUSTMENT_ADD:
        new_balance = current + amount_cents
    else:
        new_balance = current - amount_cents

    adj = CreditAdjustment(
        customer_id=customer.id,
        customer_name=customer.name,
        adjustment_type=adjustment_type,
        amount_cents=amount_cents,
        new_balance_cents=new_balance,
        reason=reason,
        payment_method=payment_method,
        sale_id=sale_id,
        return_id=return_id,
        actor_user_id=actor_user_id,
        actor_name=actor_name(actor_user_id),
        occurred_at=now or utcnow(),
    )
    db.session.add(adj)
    customer.store_credit_cents = new_balance
    db.session.flush()
    return adj


def adjust_credit(
    customer_id: int,
    amount_cents: int,
    adjustment_type: str,
    reason: str | None = None,
    actor_user_id: int | None = None,
    payment_method: str | None = None,
    now: datetime | None = None,
) -> CreditAdjustment:
    """Manual ADD/DEDUCT on a member's balance."""
    def _op():
        customer = get_customer(customer_id)
        adj = append_adjustment(
            customer,
            amount_cents,
            adjustment_type,
            reason=reason,
            actor_user_id=actor_user_id,
            payment_method=payment_method,
            now=now,
        )
        append_ledger_event(
            event_type="credit.adjusted",
            event_category="credit",
            entity_type="credit_adjustment",
            entity_id=adj.id,
            actor_user_id=actor_user_id,
            occurred_at=adj.occurred_at,
            note=reason,
            payload={
                "customer_id": customer.id,
                "type": adj.adjustment_type,
                "amount_cents": adj.amount_cents,
                "new_balance_cents": adj.new_balance_cents,
            },
        )
        db.session.commit()
        return adj

    adj = run_serialized(_op)
    events.credit_adjusted.send(adj, stock_deltas={})
    return adj


def record_account_payment(
    customer_id: int,
    amount_cents: int,
    payment_method: str = PAYMENT_CASH,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> CreditAdjustment:
    """Money taken at the counter against a member account (top-up or debt payment)."""
    if payment_method not in ACCOUNT_PAYMENT_METHODS:
        raise ValidationError(
            f"Account payments accept {', '.join(ACCOUNT_PAYMENT_METHODS)}",
            reason="INVALID_PAYMENT_METHOD",
        )
    return adjust_credit(
        customer_id,
        amount_cents,
        ADJUSTMENT_ADD,
        reason=ACCOUNT_PAYMENT_REASON,
        actor_user_id=actor_user_id,
        payment_method=payment_method,
        now=now,
    )


def get_ledger(customer_id: int) -> list[CreditAdjustment]:
    get_customer(customer_id)
    return (
        db.session.query(CreditAdjustment)
        .filter_by(customer_id=customer_id)
        .order_by(CreditAdjustment.id)
        .all()
    )


def ledger_balance(customer_id: int) -> int:
    """Balance according to the ledger: newest new_balance_cents, or 0."""
    last = (
        db.session.query(CreditAdjustment)
        .filter_by(customer_id=customer_id)
        .order_by(CreditAdjustment.id.desc())
        .first()
    )
    return last.new_balance_cents if last else 0


def balance_in_sync(customer_id: int) -> bool:
    customer = get_customer(customer_id)
    return (customer.store_credit_cents or 0) == ledger_balance(customer_id)


def outstanding_credit_sales(customer_id: int, now: datetime | None = None) -> list[dict]:
    """
    Store-credit sales still considered unpaid, with DUE / OVERDUE status.

    There is no per-sale payment tracking: while the balance is negative
    every store-credit sale with a due date is listed, and once the balance
    is back at zero or above all of them count as settled.
    """
    customer = get_customer(customer_id)
    if (customer.store_credit_cents or 0) >= 0:
        return []

    now = now or utcnow()
    sales = (
        db.session.query(Sale)
        .filter(
            Sale.customer_id == customer_id,
            Sale.payment_method == PAYMENT_STORE_CREDIT,
            Sale.credit_due_at.isnot(None),
        )
        .order_by(Sale.credit_due_at)
        .all()
    )
    return [
        {
            "sale_id": sale.id,
            "document_number": sale.document_number,
            "total_cents": sale.total_cents,
            "credit_term_name": sale.credit_term_name,
            "credit_due_at": sale.credit_due_at,
            "status": CREDIT_SALE_OVERDUE if now > sale.credit_due_at else CREDIT_SALE_DUE,
        }
        for sale in sales
    ]


def credit_due_date(now: datetime, days: int) -> datetime:
    return now + timedelta(days=days)
