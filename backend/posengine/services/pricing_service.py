"""
Cart pricing: subtotal, tax, store-credit markup and payable total.

Everything here is a pure function of its arguments. Callers recompute
totals after every cart mutation instead of caching them.

TAX:
- EXCLUSIVE: tax = subtotal x rate/100, total = subtotal + tax
- INCLUSIVE: tax = subtotal - subtotal / (1 + rate/100), total = subtotal

MARKUP (STORE_CREDIT only):
- markup = total x term.rate/100, payable = total + markup
- term is the requested one, else the first configured, else the flat
  fallback rate from store settings

Amounts are integer cents, rounded half-up once per figure.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from ..models.sales import PAYMENT_STORE_CREDIT, TAX_EXCLUSIVE, TAX_INCLUSIVE


HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CreditTermSnapshot:
    id: int | None
    code: str
    name: str
    days: int
    rate: Decimal


@dataclass(frozen=True)
class PricingConfig:
    """Read-only view of store settings used for one pricing pass."""
    tax_name: str = "VAT"
    tax_rate: Decimal = Decimal("0")
    tax_type: str = TAX_EXCLUSIVE
    currency: str = "USD"
    credit_markup_rate: Decimal = Decimal("0")
    credit_terms: tuple[CreditTermSnapshot, ...] = ()


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    markup_rate: Decimal
    markup_cents: int
    payable_cents: int
    tax_name: str
    tax_rate: Decimal
    tax_type: str
    credit_term: Optional[CreditTermSnapshot] = None

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "markup_rate": str(self.markup_rate),
            "markup_cents": self.markup_cents,
            "payable_cents": self.payable_cents,
            "tax_name": self.tax_name,
            "tax_rate": str(self.tax_rate),
            "tax_type": self.tax_type,
            "credit_term": (
                {
                    "id": self.credit_term.id,
                    "code": self.credit_term.code,
                    "name": self.credit_term.name,
                    "days": self.credit_term.days,
                    "rate": str(self.credit_term.rate),
                }
                if self.credit_term else None
            ),
        }


def to_cents(amount: Decimal) -> int:
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total_cents(price_cents: int, quantity: Decimal) -> int:
    return to_cents(Decimal(price_cents) * Decimal(quantity))


def subtotal_cents(lines: Iterable) -> int:
    """Sum of price x quantity over objects with price_cents and quantity."""
    raw = sum((Decimal(line.price_cents) * Decimal(line.quantity) for line in lines), Decimal("0"))
    return to_cents(raw)


def cost_of_goods_cents(lines: Iterable) -> int:
    raw = sum((Decimal(line.cost_cents) * Decimal(line.quantity) for line in lines), Decimal("0"))
    return to_cents(raw)


def compute_tax(subtotal: int, tax_rate: Decimal, tax_type: str) -> tuple[int, int]:
    """Return (tax_cents, total_cents) before any credit markup."""
    rate = Decimal(tax_rate)
    if rate <= 0:
        return 0, subtotal

    if tax_type == TAX_INCLUSIVE:
        net = Decimal(subtotal) / (1 + rate / HUNDRED)
        return to_cents(Decimal(subtotal) - net), subtotal

    tax = to_cents(Decimal(subtotal) * rate / HUNDRED)
    return tax, subtotal + tax


def select_credit_term(config: PricingConfig, term_id: int | None = None) -> Optional[CreditTermSnapshot]:
    if not config.credit_terms:
        return None
    if term_id is not None:
        for term in config.credit_terms:
            if term.id == term_id:
                return term
    return config.credit_terms[0]


def calculate_totals(
    subtotal: int,
    config: PricingConfig,
    payment_method: str,
    credit_term_id: int | None = None,
) -> CartTotals:
    tax, total = compute_tax(subtotal, config.tax_rate, config.tax_type)

    term = None
    markup_rate = Decimal("0")
    markup = 0
    if payment_method == PAYMENT_STORE_CREDIT:
        term = select_credit_term(config, credit_term_id)
        markup_rate = Decimal(term.rate) if term else Decimal(config.credit_markup_rate)
        if markup_rate > 0:
            markup = to_cents(Decimal(total) * markup_rate / HUNDRED)

    return CartTotals(
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=total,
        markup_rate=markup_rate,
        markup_cents=markup,
        payable_cents=total + markup,
        tax_name=config.tax_name,
        tax_rate=Decimal(config.tax_rate),
        tax_type=config.tax_type,
        credit_term=term,
    )


def price_lines(
    lines: Iterable,
    config: PricingConfig,
    payment_method: str,
    credit_term_id: int | None = None,
) -> CartTotals:
    return calculate_totals(subtotal_cents(lines), config, payment_method, credit_term_id)
