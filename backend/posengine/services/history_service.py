# Overview: Derived views over committed sales and their returns.

from __future__ import annotations

from decimal import Decimal

from ..models import Sale
from .pricing_service import to_cents


SALE_STATUS_COMPLETED = "COMPLETED"
SALE_STATUS_PARTIAL = "PARTIAL"
SALE_STATUS_RETURNED = "RETURNED"

SALE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_PARTIAL, SALE_STATUS_RETURNED)


def returned_quantities(sale: Sale) -> dict[int, Decimal]:
    """sale_item_id -> quantity returned across every return on the sale."""
    totals: dict[int, Decimal] = {item.id: Decimal("0") for item in sale.items}
    for ret in sale.returns:
        for item in ret.items:
            totals[item.sale_item_id] = totals.get(item.sale_item_id, Decimal("0")) + Decimal(item.quantity)
    return totals


def returnable_quantities(sale: Sale) -> dict[int, Decimal]:
    """sale_item_id -> quantity that may still be returned."""
    returned = returned_quantities(sale)
    return {
        item.id: max(Decimal("0"), Decimal(item.quantity) - returned[item.id])
        for item in sale.items
    }


def sale_status(sale: Sale) -> str:
    """
    COMPLETED with no returns, RETURNED once every sold unit came back,
    PARTIAL in between. Compared on total unit counts.
    """
    returned = sum(returned_quantities(sale).values(), Decimal("0"))
    if returned <= 0:
        return SALE_STATUS_COMPLETED
    sold = sum((Decimal(item.quantity) for item in sale.items), Decimal("0"))
    if returned >= sold:
        return SALE_STATUS_RETURNED
    return SALE_STATUS_PARTIAL


def profit_lost(sale: Sale) -> int:
    """Margin given back by returns: sum of (price - cost) x returned quantity."""
    lost = Decimal("0")
    for ret in sale.returns:
        for item in ret.items:
            sale_item = item.sale_item
            lost += (Decimal(sale_item.price_cents) - Decimal(sale_item.cost_cents)) * Decimal(item.quantity)
    return to_cents(lost)


def sale_view(sale: Sale) -> dict:
    data = sale.to_dict()
    returned = returned_quantities(sale)
    for item in data["items"]:
        item["returned_quantity"] = str(returned.get(item["id"], Decimal("0")))
    data["status"] = sale_status(sale)
    data["profit_lost_cents"] = profit_lost(sale)
    data["return_ids"] = [ret.id for ret in sale.returns]
    return data
