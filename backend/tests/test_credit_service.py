from datetime import timedelta

import pytest

from posengine.extensions import db
from posengine.models import Customer
from posengine.models.sales import PAYMENT_STORE_CREDIT
from posengine.services import cart_service, credit_service, events, sales_service
from posengine.validation import NotFoundError, ValidationError


def _credit_sale(product, member, now, quantity=1):
    cart = cart_service.open_cart()
    line = cart_service.add_line(cart.id, product.id)
    cart_service.set_quantity(cart.id, line.id, quantity)
    cart_service.select_customer(cart.id, customer_id=member.id)
    return sales_service.complete_sale(cart.id, payment_method=PAYMENT_STORE_CREDIT, now=now)


def test_add_and_deduct_track_balance(db_session, make_member, now):
    member = make_member()

    credit_service.adjust_credit(member.id, 2000, "ADD", reason="Gift", now=now)
    adj = credit_service.adjust_credit(member.id, 3500, "DEDUCT", reason="Correction", now=now)

    db_session.refresh(member)
    assert member.store_credit_cents == -1500
    assert adj.new_balance_cents == -1500
    assert credit_service.ledger_balance(member.id) == -1500
    assert credit_service.balance_in_sync(member.id)
    assert [a.adjustment_type for a in credit_service.get_ledger(member.id)] == ["ADD", "DEDUCT"]


def test_adjustment_rejections(db_session, make_member, now):
    member = make_member()

    with pytest.raises(ValidationError) as exc:
        credit_service.adjust_credit(member.id, 0, "ADD")
    assert exc.value.reason == "INVALID_AMOUNT"

    with pytest.raises(ValidationError) as exc:
        credit_service.adjust_credit(member.id, -100, "ADD")
    assert exc.value.reason == "INVALID_AMOUNT"

    with pytest.raises(ValidationError) as exc:
        credit_service.adjust_credit(member.id, "12.50", "ADD")
    assert exc.value.reason == "INVALID_AMOUNT"

    with pytest.raises(ValidationError) as exc:
        credit_service.adjust_credit(member.id, 100, "BONUS")
    assert exc.value.reason == "INVALID_ADJUSTMENT_TYPE"

    with pytest.raises(NotFoundError):
        credit_service.adjust_credit(99999, 100, "ADD")

    assert credit_service.get_ledger(member.id) == []


def test_walk_in_customer_has_no_credit(db_session, now):
    walk_in = Customer(name="Walk-in Customer", customer_type="WALK_IN", store_credit_cents=0)
    db.session.add(walk_in)
    db.session.commit()

    with pytest.raises(ValidationError) as exc:
        credit_service.adjust_credit(walk_in.id, 100, "ADD")
    assert exc.value.reason == "NOT_A_MEMBER"


def test_account_payment(db_session, make_member, cashier, now):
    member = make_member()
    credit_service.adjust_credit(member.id, 5000, "DEDUCT", now=now)

    adj = credit_service.record_account_payment(
        member.id, 3000, payment_method="CARD", actor_user_id=cashier.id, now=now,
    )

    assert adj.adjustment_type == "ADD"
    assert adj.reason == "Account Payment (POS)"
    assert adj.payment_method == "CARD"
    assert adj.actor_name == "Front Counter"
    assert adj.new_balance_cents == -2000

    with pytest.raises(ValidationError) as exc:
        credit_service.record_account_payment(member.id, 100, payment_method="STORE_CREDIT")
    assert exc.value.reason == "INVALID_PAYMENT_METHOD"


def test_adjustment_signal(db_session, make_member, now):
    member = make_member()
    received = []

    def _listener(sender, **extra):
        received.append((sender.amount_cents, extra["stock_deltas"]))

    with events.credit_adjusted.connected_to(_listener):
        credit_service.adjust_credit(member.id, 700, "ADD", now=now)

    assert received == [(700, {})]


def test_outstanding_credit_sales_due_and_overdue(db_session, no_tax, make_product, make_member, now):
    product = make_product(stock="10", price_cents=1000)
    member = make_member()
    older = _credit_sale(product, member, now - timedelta(days=10))
    newer = _credit_sale(product, member, now)

    outstanding = credit_service.outstanding_credit_sales(member.id, now=now)

    assert [entry["sale_id"] for entry in outstanding] == [older.id, newer.id]
    assert outstanding[0]["status"] == "OVERDUE"
    assert outstanding[1]["status"] == "DUE"
    assert outstanding[1]["credit_due_at"] == now + timedelta(days=7)
    assert outstanding[1]["credit_term_name"] == "Net 7"


def test_outstanding_cleared_once_balance_recovers(db_session, no_tax, make_product, make_member, now):
    product = make_product(stock="10", price_cents=1000)
    member = make_member()
    _credit_sale(product, member, now)
    assert len(credit_service.outstanding_credit_sales(member.id, now=now)) == 1

    credit_service.record_account_payment(member.id, 1000, now=now)

    assert credit_service.outstanding_credit_sales(member.id, now=now) == []
