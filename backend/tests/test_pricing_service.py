from decimal import Decimal
from types import SimpleNamespace

from posengine.models.sales import PAYMENT_CARD, PAYMENT_CASH, PAYMENT_STORE_CREDIT, TAX_EXCLUSIVE, TAX_INCLUSIVE
from posengine.services.pricing_service import (
    CreditTermSnapshot,
    PricingConfig,
    calculate_totals,
    compute_tax,
    cost_of_goods_cents,
    price_lines,
    select_credit_term,
    subtotal_cents,
)


TERMS = (
    CreditTermSnapshot(id=1, code="term-1", name="Immediate / 7 Days", days=7, rate=Decimal("0")),
    CreditTermSnapshot(id=2, code="term-2", name="Net 30", days=30, rate=Decimal("2")),
    CreditTermSnapshot(id=3, code="term-3", name="Net 60", days=60, rate=Decimal("5")),
)


def _line(price_cents, quantity, cost_cents=0):
    return SimpleNamespace(price_cents=price_cents, cost_cents=cost_cents, quantity=Decimal(quantity))


def test_exclusive_tax_is_added_on_top():
    tax, total = compute_tax(10000, Decimal("10"), TAX_EXCLUSIVE)
    assert tax == 1000
    assert total == 11000


def test_inclusive_tax_is_carved_out_of_subtotal():
    tax, total = compute_tax(11000, Decimal("10"), TAX_INCLUSIVE)
    assert tax == 1000
    assert total == 11000


def test_zero_rate_means_no_tax():
    assert compute_tax(12345, Decimal("0"), TAX_EXCLUSIVE) == (0, 12345)


def test_subtotal_rounds_fractional_quantities_once():
    lines = [_line(199, "1.255"), _line(450, "2")]
    # 249.745 + 900 = 1149.745 -> 1150
    assert subtotal_cents(lines) == 1150


def test_cost_of_goods():
    lines = [_line(1000, "3", cost_cents=400), _line(500, "1", cost_cents=250)]
    assert cost_of_goods_cents(lines) == 1450


def test_markup_only_applies_to_store_credit():
    config = PricingConfig(tax_rate=Decimal("10"), tax_type=TAX_EXCLUSIVE, credit_terms=TERMS)

    for method in (PAYMENT_CASH, PAYMENT_CARD):
        totals = calculate_totals(10000, config, method, credit_term_id=3)
        assert totals.markup_cents == 0
        assert totals.payable_cents == 11000
        assert totals.credit_term is None

    credit = calculate_totals(10000, config, PAYMENT_STORE_CREDIT, credit_term_id=3)
    assert credit.markup_rate == Decimal("5")
    assert credit.markup_cents == 550
    assert credit.payable_cents == 11550
    assert credit.credit_term.name == "Net 60"


def test_unknown_term_falls_back_to_first_configured():
    config = PricingConfig(credit_terms=TERMS)
    assert select_credit_term(config, 99).id == 1
    assert select_credit_term(config, None).id == 1


def test_flat_markup_rate_used_when_no_terms_configured():
    config = PricingConfig(tax_rate=Decimal("0"), credit_markup_rate=Decimal("3"))
    totals = calculate_totals(20000, config, PAYMENT_STORE_CREDIT)
    assert totals.credit_term is None
    assert totals.markup_rate == Decimal("3")
    assert totals.markup_cents == 600
    assert totals.payable_cents == 20600


def test_exclusive_totals_identity():
    config = PricingConfig(tax_rate=Decimal("8.25"), tax_type=TAX_EXCLUSIVE, credit_terms=TERMS)
    totals = price_lines([_line(1999, "3"), _line(250, "0.4")], config, PAYMENT_STORE_CREDIT, credit_term_id=2)
    assert totals.payable_cents == totals.subtotal_cents + totals.tax_cents + totals.markup_cents


def test_inclusive_total_equals_subtotal():
    config = PricingConfig(tax_rate=Decimal("10"), tax_type=TAX_INCLUSIVE)
    totals = price_lines([_line(1999, "3"), _line(250, "2")], config, PAYMENT_CARD)
    assert totals.total_cents == totals.subtotal_cents
    assert totals.tax_cents > 0


def test_pricing_is_repeatable():
    config = PricingConfig(tax_rate=Decimal("7"), tax_type=TAX_EXCLUSIVE, credit_terms=TERMS)
    lines = [_line(333, "1.333"), _line(1250, "4")]
    first = price_lines(lines, config, PAYMENT_STORE_CREDIT, credit_term_id=2)
    second = price_lines(lines, config, PAYMENT_STORE_CREDIT, credit_term_id=2)
    assert first == second
    assert first.to_dict() == second.to_dict()
