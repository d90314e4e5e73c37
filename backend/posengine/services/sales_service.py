"""
Sales Service - turns an open cart into an immutable Sale.

COMMIT PROTOCOL (one serialized step):
1. Validate everything: non-empty cart, line quantities, payment method,
   cash tendered, member for STORE_CREDIT. Nothing is written before this
   finishes.
2. Persist a walk-in customer the first time a sale references it.
3. Write Sale + SaleItems with tax and credit snapshots.
4. Stock: units reserved by a resumed hold are consumed from the
   reservation; only the remainder comes out of sellable stock.
5. STORE_CREDIT debits the member by the payable amount (debt allowed).
6. Customer aggregates, ledger event, reset the cart, commit.

Signals go out only after the commit succeeds.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import Sale, SaleItem
from ..models.customers import ADJUSTMENT_DEDUCT
from ..models.sales import PAYMENT_CARD, PAYMENT_CASH, PAYMENT_METHODS, PAYMENT_STORE_CREDIT
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_cents
from . import events, inventory_service
from .cart_service import customer_ref, drop_lines, get_open_cart, reset_customer, validate_lines
from .concurrency import run_serialized
from .credit_service import append_adjustment, credit_due_date
from .customer_service import get_customer, persist_walk_in
from .document_service import next_document_number
from .history_service import sale_status
from .ledger_service import append_ledger_event
from .pricing_service import cost_of_goods_cents, line_total_cents, price_lines
from .settings_service import get_pricing_config


CHECKOUT_CREDIT_REASON = "Store credit purchase"


def complete_sale(
    cart_id: int,
    cashier_id: int | None = None,
    amount_tendered_cents: int | None = None,
    credit_term_id: int | None = None,
    payment_method: str | None = None,
    now: datetime | None = None,
) -> Sale:
    """
    Check out the cart.

    `payment_method` overrides the method stored on the cart. The first
    failed check wins and leaves the cart exactly as it was.
    """
    deltas = inventory_service.StockDeltas()
    credit_adjustments = []

    def _op():
        deltas.clear()
        credit_adjustments.clear()

        cart = get_open_cart(cart_id)

        # --- validation ---
        if not cart.lines:
            raise ValidationError("Cart is empty", reason="EMPTY_CART")
        validate_lines(cart)

        method = payment_method or cart.payment_method
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method {method}", reason="INVALID_PAYMENT_METHOD")

        totals = price_lines(cart.lines, get_pricing_config(), method, credit_term_id)

        tendered = None
        if method == PAYMENT_CASH:
            tendered = coerce_cents(amount_tendered_cents, "amount_tendered_cents") if amount_tendered_cents is not None else 0
            if tendered < totals.payable_cents:
                raise ValidationError(
                    "Insufficient cash tendered",
                    reason="INSUFFICIENT_FUNDS",
                    details={"amount_tendered_cents": tendered, "payable_cents": totals.payable_cents},
                )

        ref = customer_ref(cart)
        if method == PAYMENT_STORE_CREDIT and not (ref.is_persisted and ref.is_member):
            raise ValidationError(
                "Store credit is reserved for registered members",
                reason="NOT_A_MEMBER",
                details={"customer_id": ref.customer_id},
            )

        # --- mutation ---
        sold_at = now or utcnow()
        customer = get_customer(ref.customer_id) if ref.is_persisted else persist_walk_in(ref)

        term = totals.credit_term
        sale = Sale(
            document_number=next_document_number(Sale, "S"),
            created_at=sold_at,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.payable_cents,
            profit_cents=(totals.subtotal_cents - cost_of_goods_cents(cart.lines)) + totals.markup_cents,
            tax_name=totals.tax_name,
            tax_rate=totals.tax_rate,
            tax_type=totals.tax_type,
            credit_markup_rate=totals.markup_rate,
            credit_markup_cents=totals.markup_cents,
            credit_term_name=term.name if term else None,
            credit_due_at=credit_due_date(sold_at, term.days) if (method == PAYMENT_STORE_CREDIT and term) else None,
            payment_method=method,
            amount_tendered_cents=tendered,
            change_cents=(tendered - totals.payable_cents) if tendered is not None else None,
            cashier_id=cashier_id or cart.cashier_id,
            customer_id=customer.id,
            customer_name=customer.name,
        )
        db.session.add(sale)
        db.session.flush()

        for line in cart.lines:
            quantity = Decimal(line.quantity)
            reserved = min(Decimal(line.reserved_quantity or 0), quantity)
            if reserved > 0:
                inventory_service.consume_reservation(line.product, reserved)
            fresh = quantity - reserved
            if fresh > 0:
                inventory_service.sell(line.product, fresh, deltas)

            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                product_name=line.product_name,
                unit=line.unit,
                allow_decimal=line.allow_decimal,
                quantity=quantity,
                price_cents=line.price_cents,
                cost_cents=line.cost_cents,
                line_total_cents=line_total_cents(line.price_cents, quantity),
            ))

        if method == PAYMENT_STORE_CREDIT and totals.payable_cents > 0:
            credit_adjustments.append(append_adjustment(
                customer,
                totals.payable_cents,
                ADJUSTMENT_DEDUCT,
                reason=CHECKOUT_CREDIT_REASON,
                actor_user_id=sale.cashier_id,
                sale_id=sale.id,
                now=sold_at,
            ))

        customer.visit_count = (customer.visit_count or 0) + 1
        customer.total_spent_cents = (customer.total_spent_cents or 0) + totals.payable_cents
        customer.last_visit_at = sold_at

        # reservations on the lines were consumed above
        drop_lines(cart, release_reservations=False)
        reset_customer(cart)
        if method == PAYMENT_STORE_CREDIT:
            cart.payment_method = PAYMENT_CARD

        append_ledger_event(
            event_type="sale.completed",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=sale.cashier_id,
            occurred_at=sold_at,
            payload={
                "document_number": sale.document_number,
                "payment_method": method,
                "total_cents": sale.total_cents,
                "customer_id": customer.id,
                "stock_deltas": {str(k): v for k, v in deltas.items()},
            },
        )
        db.session.commit()
        return sale

    sale = run_serialized(_op)
    events.sale_completed.send(sale, stock_deltas=dict(deltas))
    for adj in credit_adjustments:
        events.credit_adjusted.send(adj, stock_deltas={})
    return sale


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(status: str | None = None, search: str | None = None, limit: int = 200) -> list[Sale]:
    """
    Newest first. `search` matches document number or customer name;
    `status` is the derived COMPLETED / PARTIAL / RETURNED classification.
    """
    query = db.session.query(Sale)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            db.or_(
                db.func.lower(Sale.document_number).like(term),
                db.func.lower(Sale.customer_name).like(term),
            )
        )
    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    if status:
        sales = [sale for sale in sales if sale_status(sale) == status]
    return sales
