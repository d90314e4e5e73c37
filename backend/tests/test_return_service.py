from decimal import Decimal

import pytest

from posengine.models.sales import PAYMENT_CARD, PAYMENT_STORE_CREDIT
from posengine.services import cart_service, credit_service, events, return_service, sales_service
from posengine.services.history_service import (
    profit_lost,
    returnable_quantities,
    returned_quantities,
    sale_status,
)
from posengine.validation import ConsistencyViolation, ValidationError


def _sell(product, quantity, now, customer_id=None, method=PAYMENT_CARD):
    cart = cart_service.open_cart()
    line = cart_service.add_line(cart.id, product.id)
    cart_service.set_quantity(cart.id, line.id, quantity)
    if customer_id is not None:
        cart_service.select_customer(cart.id, customer_id=customer_id)
    return sales_service.complete_sale(cart.id, payment_method=method, now=now)


def test_partial_return_with_restock(db_session, no_tax, make_product, now):
    product = make_product(stock="10", price_cents=1000, cost_cents=400)
    sale = _sell(product, 3, now)
    db_session.refresh(product)
    assert product.stock == Decimal("7")

    ret = return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 1}], now=now)

    db_session.refresh(product)
    assert product.stock == Decimal("8")
    assert ret.total_refund_cents == 1000
    assert ret.refund_method == PAYMENT_CARD
    assert ret.items[0].reason == "Changed Mind"
    assert ret.items[0].restock is True

    sale = sales_service.get_sale(sale.id)
    assert sale_status(sale) == "PARTIAL"
    assert profit_lost(sale) == 600


def test_return_without_restock_writes_units_off(db_session, no_tax, make_product, now):
    product = make_product(stock="10")
    sale = _sell(product, 2, now)

    return_service.process_return(
        sale.id,
        [{"product_id": product.id, "quantity": 2, "restock": False, "reason": "Damaged"}],
        now=now,
    )

    db_session.refresh(product)
    assert product.stock == Decimal("8")
    assert sale_status(sales_service.get_sale(sale.id)) == "RETURNED"


def test_cumulative_returns_never_exceed_sold(db_session, no_tax, make_product, now):
    product = make_product(stock="10")
    sale = _sell(product, 3, now)

    return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 2}], now=now)

    with pytest.raises(ConsistencyViolation) as exc:
        return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 2}], now=now)
    assert exc.value.reason == "EXCEEDS_RETURNABLE"

    sale = sales_service.get_sale(sale.id)
    item_id = sale.items[0].id
    assert returned_quantities(sale) == {item_id: Decimal("2")}
    assert returnable_quantities(sale) == {item_id: Decimal("1")}

    return_service.process_return(sale.id, [{"sale_item_id": item_id, "quantity": 1}], now=now)
    sale = sales_service.get_sale(sale.id)
    assert sale_status(sale) == "RETURNED"
    assert len(sale.returns) == 2


def test_same_line_twice_in_one_request_shares_allowance(db_session, no_tax, make_product, now):
    product = make_product(stock="10")
    sale = _sell(product, 2, now)

    with pytest.raises(ConsistencyViolation):
        return_service.process_return(
            sale.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 1}],
            now=now,
        )


def test_return_rejections(db_session, no_tax, make_product, now):
    product = make_product(stock="10")
    stranger = make_product(name="Not sold")
    sale = _sell(product, 2, now)

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(sale.id, [], now=now)
    assert exc.value.reason == "EMPTY_RETURN"

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(sale.id, [{"product_id": stranger.id, "quantity": 1}], now=now)
    assert exc.value.reason == "NOT_ON_SALE"

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 0}], now=now)
    assert exc.value.reason == "INVALID_QUANTITY"

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(sale.id, [{"product_id": product.id, "quantity": "0.5"}], now=now)
    assert exc.value.reason == "INVALID_QUANTITY"

    db_session.refresh(product)
    assert product.stock == Decimal("8")
    assert sales_service.get_sale(sale.id).returns == []


def test_malformed_return_entries_are_rejected(db_session, no_tax, make_product, now):
    product = make_product(stock="10")
    sale = _sell(product, 2, now)

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(
            sale.id, [{"product_id": product.id, "quantity": 1, "restock": "false"}], now=now
        )
    assert exc.value.reason == "INVALID_RESTOCK"

    for items in ([product.id], ["oops"], {"product_id": product.id, "quantity": 1}):
        with pytest.raises(ValidationError) as exc:
            return_service.process_return(sale.id, items, now=now)
        assert exc.value.reason == "INVALID_RETURN_ITEM"

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 1, "reason": 7}], now=now)
    assert exc.value.reason == "INVALID_RETURN_ITEM"

    db_session.refresh(product)
    assert product.stock == Decimal("8")
    assert return_service.list_returns() == []


def test_decimal_return(db_session, no_tax, make_product, now):
    product = make_product(stock="5", price_cents=1000, cost_cents=600, allow_decimal=True, unit="kg")
    sale = _sell(product, "1.5", now)

    ret = return_service.process_return(sale.id, [{"product_id": product.id, "quantity": "0.25"}], now=now)

    assert ret.total_refund_cents == 250
    assert profit_lost(sales_service.get_sale(sale.id)) == 100


def test_store_credit_refund_reduces_debt(db_session, no_tax, make_product, make_member, now):
    product = make_product(stock="5", price_cents=5000)
    member = make_member()
    sale = _sell(product, 1, now, customer_id=member.id, method=PAYMENT_STORE_CREDIT)
    db_session.refresh(member)
    assert member.store_credit_cents == -5000

    ret = return_service.process_return(
        sale.id,
        [{"product_id": product.id, "quantity": 1}],
        refund_method=PAYMENT_STORE_CREDIT,
        now=now,
    )

    db_session.refresh(member)
    assert member.store_credit_cents == 0
    last = credit_service.get_ledger(member.id)[-1]
    assert last.adjustment_type == "ADD"
    assert last.return_id == ret.id
    assert credit_service.balance_in_sync(member.id)


def test_store_credit_refund_needs_member(db_session, no_tax, make_product, now):
    product = make_product(stock="5")
    sale = _sell(product, 1, now)

    with pytest.raises(ValidationError) as exc:
        return_service.process_return(
            sale.id,
            [{"product_id": product.id, "quantity": 1}],
            refund_method=PAYMENT_STORE_CREDIT,
            now=now,
        )
    assert exc.value.reason == "NOT_A_MEMBER"


def test_total_spent_never_below_zero(db_session, no_tax, make_product, make_member, now):
    product = make_product(stock="5", price_cents=1000)
    member = make_member()
    sale = _sell(product, 2, now, customer_id=member.id)
    member.total_spent_cents = 500
    db_session.commit()

    return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 2}], now=now)

    db_session.refresh(member)
    assert member.total_spent_cents == 0
    assert member.visit_count == 1


def test_return_signal(db_session, no_tax, make_product, now):
    product = make_product(stock="5")
    sale = _sell(product, 2, now)
    received = []

    def _listener(sender, **extra):
        received.append((sender.original_sale_id, extra["stock_deltas"]))

    with events.return_processed.connected_to(_listener):
        return_service.process_return(sale.id, [{"product_id": product.id, "quantity": 1}], now=now)

    assert received == [(sale.id, {product.id: Decimal("1")})]


def test_list_returns_search(db_session, no_tax, make_product, now):
    product = make_product(stock="10")
    first = _sell(product, 2, now)
    second = _sell(product, 2, now)
    ret = return_service.process_return(first.id, [{"product_id": product.id, "quantity": 1}], now=now)
    return_service.process_return(second.id, [{"product_id": product.id, "quantity": 1}], now=now)

    assert len(return_service.list_returns()) == 2
    assert return_service.list_returns(search=first.document_number) == [ret]
    assert sales_service.list_sales(status="PARTIAL") != []
