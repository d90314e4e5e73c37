from datetime import timedelta
from decimal import Decimal

import pytest

from posengine.extensions import db
from posengine.models import Customer, MasterLedgerEvent
from posengine.models.customers import CUSTOMER_TYPE_WALK_IN
from posengine.models.sales import PAYMENT_CARD, PAYMENT_CASH, PAYMENT_STORE_CREDIT, TAX_EXCLUSIVE
from posengine.services import cart_service, credit_service, events, sales_service, settings_service
from posengine.validation import ValidationError


def _cart(*products_and_quantities):
    cart = cart_service.open_cart()
    for product, quantity in products_and_quantities:
        line = cart_service.add_line(cart.id, product.id)
        cart_service.set_quantity(cart.id, line.id, quantity)
    return cart


def test_empty_cart_is_rejected_first(db_session):
    cart = cart_service.open_cart()
    with pytest.raises(ValidationError) as exc:
        sales_service.complete_sale(cart.id, amount_tendered_cents=0)
    assert exc.value.reason == "EMPTY_CART"


def test_cash_must_cover_payable(db_session, exclusive_tax, make_product, now):
    product = make_product(stock="5", price_cents=1000)
    cart = _cart((product, 2))

    with pytest.raises(ValidationError) as exc:
        sales_service.complete_sale(cart.id, amount_tendered_cents=2199, now=now)

    assert exc.value.reason == "INSUFFICIENT_FUNDS"
    assert exc.value.details["payable_cents"] == 2200
    db_session.refresh(product)
    assert product.stock == Decimal("5")
    assert len(cart_service.get_cart(cart.id).lines) == 1


def test_cash_sale_records_change(db_session, exclusive_tax, make_product, now):
    product = make_product(stock="5", price_cents=1000, cost_cents=400)
    cart = _cart((product, 2))

    sale = sales_service.complete_sale(cart.id, amount_tendered_cents=5000, now=now)

    assert sale.payment_method == PAYMENT_CASH
    assert sale.subtotal_cents == 2000
    assert sale.tax_cents == 200
    assert sale.total_cents == 2200
    assert sale.amount_tendered_cents == 5000
    assert sale.change_cents == 2800
    assert sale.profit_cents == 1200
    assert sale.tax_type == TAX_EXCLUSIVE
    assert sale.document_number.startswith("S-")
    assert [item.quantity for item in sale.items] == [Decimal("2")]

    db_session.refresh(product)
    assert product.stock == Decimal("3")


def test_exclusive_sale_total_identity(db_session, exclusive_tax, make_product, make_member, now):
    a = make_product(price_cents=1999, stock="10")
    b = make_product(price_cents=250, stock="10", allow_decimal=True)
    member = make_member()
    cart = _cart((a, 3), (b, "0.4"))
    cart_service.select_customer(cart.id, customer_id=member.id)

    terms = settings_service.list_credit_terms()
    sale = sales_service.complete_sale(
        cart.id,
        payment_method=PAYMENT_STORE_CREDIT,
        credit_term_id=terms[1].id,
        now=now,
    )

    assert sale.credit_markup_cents > 0
    assert sale.total_cents == sale.subtotal_cents + sale.tax_cents + sale.credit_markup_cents
    assert sale.credit_term_name == "Net 30"
    assert sale.credit_due_at == now + timedelta(days=30)
    assert sale.profit_cents == (sale.subtotal_cents - (3 * 400 + 160)) + sale.credit_markup_cents


def test_inclusive_sale_total_equals_subtotal(db_session, make_product, now):
    settings_service.update_store_settings(tax_rate="10", tax_type="INCLUSIVE")
    product = make_product(price_cents=11000, stock="1")
    cart = _cart((product, 1))

    sale = sales_service.complete_sale(cart.id, payment_method=PAYMENT_CARD, now=now)

    assert sale.total_cents == sale.subtotal_cents == 11000
    assert sale.tax_cents == 1000


def test_store_credit_requires_member(db_session, no_tax, make_product, now):
    product = make_product()
    cart = _cart((product, 1))
    cart_service.select_customer(cart.id, name="Sam")

    with pytest.raises(ValidationError) as exc:
        sales_service.complete_sale(cart.id, payment_method=PAYMENT_STORE_CREDIT, now=now)

    assert exc.value.reason == "NOT_A_MEMBER"
    assert db.session.query(Customer).count() == 0


def test_store_credit_may_go_into_debt(db_session, no_tax, make_product, make_member, now):
    product = make_product(price_cents=5000, stock="3")
    member = make_member()
    credit_service.adjust_credit(member.id, 2000, "ADD", reason="Deposit", now=now)

    cart = _cart((product, 1))
    cart_service.select_customer(cart.id, customer_id=member.id)
    cart_service.set_payment_method(cart.id, PAYMENT_STORE_CREDIT)
    sale = sales_service.complete_sale(cart.id, now=now)

    db_session.refresh(member)
    assert member.store_credit_cents == -3000
    ledger = credit_service.get_ledger(member.id)
    assert [(row.adjustment_type, row.amount_cents, row.new_balance_cents) for row in ledger] == [
        ("ADD", 2000, 2000),
        ("DEDUCT", 5000, -3000),
    ]
    assert ledger[-1].sale_id == sale.id
    assert credit_service.balance_in_sync(member.id)


def test_customer_aggregates_updated(db_session, no_tax, make_product, make_member, now):
    product = make_product(price_cents=1500, stock="5")
    member = make_member()

    for _ in range(2):
        cart = _cart((product, 1))
        cart_service.select_customer(cart.id, customer_id=member.id)
        sales_service.complete_sale(cart.id, payment_method=PAYMENT_CARD, now=now)

    db_session.refresh(member)
    assert member.visit_count == 2
    assert member.total_spent_cents == 3000
    assert member.last_visit_at == now
    assert member.store_credit_cents == 0


def test_walk_in_is_persisted_on_first_sale(db_session, no_tax, make_product, now):
    product = make_product()
    cart = _cart((product, 1))
    cart_service.select_customer(cart.id, name="Sam", phone="555-0199")
    ref = cart_service.customer_ref(cart_service.get_cart(cart.id))

    sale = sales_service.complete_sale(cart.id, payment_method=PAYMENT_CARD, now=now)

    customer = db.session.get(Customer, sale.customer_id)
    assert customer.customer_type == CUSTOMER_TYPE_WALK_IN
    assert customer.external_ref == ref.walk_in_ref
    assert customer.name == "Sam"
    assert sale.customer_name == "Sam"
    assert customer.visit_count == 1


def test_cart_is_reset_after_checkout(db_session, no_tax, make_product, make_member, now):
    product = make_product()
    member = make_member()
    cart = _cart((product, 1))
    cart_service.select_customer(cart.id, customer_id=member.id)

    sales_service.complete_sale(cart.id, payment_method=PAYMENT_STORE_CREDIT, now=now)

    cart = cart_service.get_cart(cart.id)
    ref = cart_service.customer_ref(cart)
    assert cart_service.is_empty(cart.id)
    assert ref.customer_type == CUSTOMER_TYPE_WALK_IN
    assert cart.payment_method == PAYMENT_CARD


def test_failed_checkout_leaves_everything_untouched(db_session, no_tax, make_product, now):
    a = make_product(stock="5")
    b = make_product(stock="1")
    cart = _cart((a, 2), (b, 1))
    # another register sells the last unit of b
    other = _cart((b, 1))
    sales_service.complete_sale(other.id, payment_method=PAYMENT_CARD, now=now)

    with pytest.raises(ValidationError) as exc:
        sales_service.complete_sale(cart.id, payment_method=PAYMENT_CARD, now=now)

    assert exc.value.reason == "EXCEEDS_STOCK"
    db_session.refresh(a)
    assert a.stock == Decimal("5")
    assert len(cart_service.get_cart(cart.id).lines) == 2


def test_sale_signal_and_ledger_event(db_session, no_tax, make_product, make_member, now):
    product = make_product(stock="5")
    member = make_member()
    cart = _cart((product, 2))
    cart_service.select_customer(cart.id, customer_id=member.id)
    sales, adjustments = [], []

    def _on_sale(sender, **extra):
        sales.append((sender.id, extra["stock_deltas"]))

    def _on_credit(sender, **extra):
        adjustments.append(sender.amount_cents)

    with events.sale_completed.connected_to(_on_sale), events.credit_adjusted.connected_to(_on_credit):
        sale = sales_service.complete_sale(cart.id, payment_method=PAYMENT_STORE_CREDIT, now=now)

    assert sales == [(sale.id, {product.id: Decimal("-2")})]
    assert adjustments == [2000]
    event = db.session.query(MasterLedgerEvent).filter_by(event_type="sale.completed").one()
    assert event.entity_id == sale.id


def test_list_sales_search(db_session, no_tax, make_product, now):
    product = make_product(stock="5")
    cart = _cart((product, 1))
    cart_service.select_customer(cart.id, name="Morgan Lee")
    morgan = sales_service.complete_sale(cart.id, payment_method=PAYMENT_CARD, now=now)
    other = sales_service.complete_sale(_cart((product, 1)).id, payment_method=PAYMENT_CARD, now=now + timedelta(minutes=1))

    assert sales_service.list_sales() == [other, morgan]
    assert sales_service.list_sales(search="morgan") == [morgan]
    assert sales_service.list_sales(status="COMPLETED") == [other, morgan]
    assert sales_service.list_sales(status="RETURNED") == []


def test_sale_can_leave_product_low_on_stock(db_session, no_tax, make_product, now):
    product = make_product(stock="5", min_stock_level="2")
    assert not product.is_low_stock

    sales_service.complete_sale(_cart((product, 3)).id, payment_method=PAYMENT_CARD, now=now)

    db_session.refresh(product)
    assert product.is_low_stock
    assert product.to_dict()["stock"] == "2.000"
