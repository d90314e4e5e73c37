"""
Return Service - refunds against a committed sale.

DESIGN PRINCIPLES:
- A return always references its original Sale; items are matched to the
  sale's lines and refunded at the frozen price_at_sale.
- Cumulative returned quantity per sale line never exceeds what was sold.
- restock=True puts units back into sellable stock; restock=False writes
  them off.
- STORE_CREDIT refunds are an ADD on the member's credit ledger.
- One serialized step, no approval workflow: validated, written and
  committed together.

Profit lost is not stored on the return; see history_service.profit_lost.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import ReturnItem, ReturnTransaction, Sale
from ..models.customers import ADJUSTMENT_ADD
from ..models.sales import PAYMENT_METHODS, PAYMENT_STORE_CREDIT
from ..time_utils import utcnow
from ..validation import ConsistencyViolation, NotFoundError, ValidationError, coerce_quantity, min_quantity
from . import events, inventory_service
from .concurrency import run_serialized
from .credit_service import append_adjustment
from .document_service import next_document_number
from .history_service import returnable_quantities
from .ledger_service import append_ledger_event
from .pricing_service import line_total_cents
from .sales_service import get_sale


DEFAULT_RETURN_REASON = "Changed Mind"


def _match_sale_item(sale: Sale, entry: dict):
    sale_item_id = entry.get("sale_item_id")
    product_id = entry.get("product_id")
    for item in sale.items:
        if sale_item_id is not None and item.id == sale_item_id:
            return item
        if sale_item_id is None and product_id is not None and item.product_id == product_id:
            return item
    raise ValidationError(
        "Item was not part of the original sale",
        reason="NOT_ON_SALE",
        details={"sale_id": sale.id, "product_id": product_id, "sale_item_id": sale_item_id},
    )


def _restock_flag(entry: dict) -> bool:
    """Absent means restock; anything but a JSON boolean is rejected."""
    value = entry.get("restock")
    if value is None:
        return True
    if not isinstance(value, bool):
        raise ValidationError(
            "restock must be true or false",
            reason="INVALID_RESTOCK",
            details={"restock": value},
        )
    return value


def _return_reason(entry: dict) -> str:
    reason = entry.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be text", reason="INVALID_RETURN_ITEM", details={"reason": reason})
    return (reason or "").strip() or DEFAULT_RETURN_REASON


def process_return(
    sale_id: int,
    items: list[dict],
    refund_method: str | None = None,
    cashier_id: int | None = None,
    now: datetime | None = None,
) -> ReturnTransaction:
    """
    Return part or all of a sale.

    Each entry in `items`: product_id (or sale_item_id), quantity, and
    optional restock (default True) and reason. `refund_method` defaults to
    how the sale was paid.

    Raises:
        ValidationError: empty selection, item not on the sale, quantity
            below the minimum, bad refund method, STORE_CREDIT refund for a
            non-member
        ConsistencyViolation: quantity beyond what remains returnable
    """
    deltas = inventory_service.StockDeltas()
    credit_adjustments = []

    def _op():
        deltas.clear()
        credit_adjustments.clear()

        sale = get_sale(sale_id)
        if not items:
            raise ValidationError("Select at least one item to return", reason="EMPTY_RETURN")
        if not isinstance(items, (list, tuple)) or not all(isinstance(entry, dict) for entry in items):
            raise ValidationError(
                "Each return item must be an object with product_id and quantity",
                reason="INVALID_RETURN_ITEM",
            )

        method = refund_method or sale.payment_method
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown refund method {method}", reason="INVALID_PAYMENT_METHOD")

        # --- validation ---
        remaining = returnable_quantities(sale)
        selected = []
        for entry in items:
            sale_item = _match_sale_item(sale, entry)
            quantity = coerce_quantity(entry.get("quantity"))
            if quantity < min_quantity(sale_item.allow_decimal):
                raise ValidationError(
                    f"Return quantity for {sale_item.product_name} is below the minimum",
                    reason="INVALID_QUANTITY",
                    details={"sale_item_id": sale_item.id, "quantity": str(quantity)},
                )
            if not sale_item.allow_decimal and quantity != quantity.to_integral_value():
                raise ValidationError(
                    f"{sale_item.product_name} is sold in whole units",
                    reason="INVALID_QUANTITY",
                    details={"sale_item_id": sale_item.id, "quantity": str(quantity)},
                )
            if quantity > remaining[sale_item.id]:
                raise ConsistencyViolation(
                    f"Cannot return more {sale_item.product_name} than remains returnable",
                    reason="EXCEEDS_RETURNABLE",
                    details={
                        "sale_item_id": sale_item.id,
                        "quantity": str(quantity),
                        "returnable": str(remaining[sale_item.id]),
                    },
                )
            # a line listed twice shares one allowance
            remaining[sale_item.id] -= quantity
            selected.append((sale_item, quantity, _restock_flag(entry), _return_reason(entry)))

        customer = sale.customer
        total_refund = sum(line_total_cents(item.price_cents, qty) for item, qty, _, _ in selected)
        if method == PAYMENT_STORE_CREDIT and (customer is None or not customer.is_member):
            raise ValidationError(
                "Store credit refunds need a registered member",
                reason="NOT_A_MEMBER",
                details={"customer_id": sale.customer_id},
            )

        # --- mutation ---
        returned_at = now or utcnow()
        ret = ReturnTransaction(
            document_number=next_document_number(ReturnTransaction, "R"),
            original_sale_id=sale.id,
            created_at=returned_at,
            total_refund_cents=total_refund,
            refund_method=method,
            cashier_id=cashier_id,
            customer_id=sale.customer_id,
        )
        db.session.add(ret)
        db.session.flush()

        for sale_item, quantity, restock, reason in selected:
            db.session.add(ReturnItem(
                return_id=ret.id,
                sale_item_id=sale_item.id,
                product_id=sale_item.product_id,
                product_name=sale_item.product_name,
                quantity=quantity,
                refund_cents=line_total_cents(sale_item.price_cents, quantity),
                reason=reason,
                restock=restock,
            ))
            if restock:
                product = inventory_service.get_product(sale_item.product_id)
                inventory_service.restock(product, quantity, deltas)

        if customer is not None:
            if method == PAYMENT_STORE_CREDIT and total_refund > 0:
                credit_adjustments.append(append_adjustment(
                    customer,
                    total_refund,
                    ADJUSTMENT_ADD,
                    reason=f"Refund for {sale.document_number}",
                    actor_user_id=cashier_id,
                    sale_id=sale.id,
                    return_id=ret.id,
                    now=returned_at,
                ))
            customer.total_spent_cents = max(0, (customer.total_spent_cents or 0) - total_refund)

        append_ledger_event(
            event_type="return.processed",
            event_category="returns",
            entity_type="return_transaction",
            entity_id=ret.id,
            actor_user_id=cashier_id,
            occurred_at=returned_at,
            payload={
                "document_number": ret.document_number,
                "original_sale_id": sale.id,
                "refund_method": method,
                "total_refund_cents": total_refund,
                "stock_deltas": {str(k): v for k, v in deltas.items()},
            },
        )
        db.session.commit()
        return ret

    ret = run_serialized(_op)
    events.return_processed.send(ret, stock_deltas=dict(deltas))
    for adj in credit_adjustments:
        events.credit_adjusted.send(adj, stock_deltas={})
    return ret


def get_return(return_id: int) -> ReturnTransaction:
    ret = db.session.get(ReturnTransaction, return_id)
    if not ret:
        raise NotFoundError(f"Return {return_id} not found", details={"return_id": return_id})
    return ret


def list_returns(search: str | None = None, limit: int = 200) -> list[ReturnTransaction]:
    """Newest first; `search` matches the return or original sale document number."""
    query = db.session.query(ReturnTransaction).join(Sale, ReturnTransaction.original_sale_id == Sale.id)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            db.or_(
                db.func.lower(ReturnTransaction.document_number).like(term),
                db.func.lower(Sale.document_number).like(term),
                db.func.lower(Sale.customer_name).like(term),
            )
        )
    return query.order_by(ReturnTransaction.created_at.desc(), ReturnTransaction.id.desc()).limit(limit).all()
