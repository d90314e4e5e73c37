"""
Hold Service - parked carts that keep their units reserved.

LIFECYCLE:
- create: cart lines are copied into a hold, their units move from stock
  into the product reservation, and the cart is emptied.
- resume: the lines go back into an empty cart; the reservation moves with
  them (CartLine.reserved_quantity) so checkout will not take stock twice.
- void: the reservation is released back to stock.

Expiry is advisory. An ACTIVE hold past its expiry_at is displayed as
EXPIRED but stays resumable and voidable until someone acts on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import CartLine, HoldLine, HoldTransaction
from ..models.holds import HOLD_STATUS_ACTIVE, HOLD_STATUS_EXPIRED, HOLD_STATUS_RESUMED, HOLD_STATUS_VOIDED
from ..time_utils import minutes_after, utcnow, whole_seconds
from ..validation import ConsistencyViolation, NotFoundError, ValidationError
from . import events, inventory_service
from .cart_service import customer_ref, drop_lines, get_open_cart, reset_customer, set_customer, validate_lines
from .concurrency import run_serialized
from .customer_service import get_customer, ref_for_customer, walk_in_ref
from .document_service import next_document_number
from .ledger_service import append_ledger_event
from .pricing_service import line_total_cents


@dataclass(frozen=True)
class UrgentHoldSummary:
    """Holds close to expiry: the few shown directly plus a count of the rest."""
    display: list = field(default_factory=list)
    overflow_count: int = 0

    @property
    def total(self) -> int:
        return len(self.display) + self.overflow_count

    def to_dict(self) -> dict:
        return {
            "display": self.display,
            "overflow_count": self.overflow_count,
            "total": self.total,
        }


def get_hold(hold_id: int) -> HoldTransaction:
    hold = db.session.get(HoldTransaction, hold_id)
    if not hold:
        raise NotFoundError(f"Hold {hold_id} not found", details={"hold_id": hold_id})
    return hold


def _active_hold(hold_id: int) -> HoldTransaction:
    hold = get_hold(hold_id)
    if hold.status != HOLD_STATUS_ACTIVE:
        raise ConsistencyViolation(
            f"Hold {hold.document_number} is {hold.status}",
            reason="HOLD_NOT_ACTIVE",
            details={"hold_id": hold.id, "status": hold.status},
        )
    return hold


# =============================================================================
# TIME
# =============================================================================

def time_remaining(hold: HoldTransaction, now: datetime | None = None) -> timedelta:
    return hold.expiry_at - (now or utcnow())


def is_expired(hold: HoldTransaction, now: datetime | None = None) -> bool:
    return time_remaining(hold, now) <= timedelta(0)


def display_status(hold: HoldTransaction, now: datetime | None = None) -> str:
    if hold.status == HOLD_STATUS_ACTIVE and is_expired(hold, now):
        return HOLD_STATUS_EXPIRED
    return hold.status


def hold_view(hold: HoldTransaction, now: datetime | None = None) -> dict:
    now = now or utcnow()
    data = hold.to_dict()
    data["display_status"] = display_status(hold, now)
    data["seconds_remaining"] = whole_seconds(time_remaining(hold, now))
    data["is_expired"] = is_expired(hold, now)
    return data


# =============================================================================
# OPERATIONS
# =============================================================================

def create_hold(
    cart_id: int,
    duration_minutes: int | None = None,
    note: str | None = None,
    cashier_id: int | None = None,
    now: datetime | None = None,
) -> HoldTransaction:
    """
    Park the cart.

    Rejected for an empty cart, a MEMBER customer, a non-positive duration
    or any line that is below the minimum or beyond available stock.
    """
    if duration_minutes is None:
        duration_minutes = current_app.config["HOLD_DEFAULT_DURATION_MINUTES"]
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationError(
            "Hold duration must be a positive number of minutes",
            reason="INVALID_DURATION",
            details={"duration_minutes": duration_minutes},
        )

    deltas = inventory_service.StockDeltas()

    def _op():
        deltas.clear()
        cart = get_open_cart(cart_id)
        if not cart.lines:
            raise ValidationError("Cannot hold an empty cart", reason="EMPTY_CART")

        customer = customer_ref(cart)
        if customer.is_member:
            raise ValidationError(
                "Holds are not available for member customers",
                reason="MEMBER_HOLD_NOT_ALLOWED",
                details={"customer_id": customer.customer_id},
            )
        validate_lines(cart)

        created_at = now or utcnow()
        hold = HoldTransaction(
            document_number=next_document_number(HoldTransaction, "H"),
            status=HOLD_STATUS_ACTIVE,
            customer_id=customer.customer_id,
            walk_in_ref=customer.walk_in_ref,
            customer_name=customer.name,
            customer_phone=customer.phone,
            customer_email=customer.email,
            created_at=created_at,
            duration_minutes=duration_minutes,
            expiry_at=minutes_after(created_at, duration_minutes),
            note=(note or "").strip() or None,
            cashier_id=cashier_id or cart.cashier_id,
        )
        db.session.add(hold)
        db.session.flush()

        for line in cart.lines:
            quantity = Decimal(line.quantity)
            # Units already reserved by this line carry over to the hold
            fresh = quantity - Decimal(line.reserved_quantity or 0)
            if fresh > 0:
                inventory_service.reserve(line.product, fresh, deltas)
            db.session.add(HoldLine(
                hold_id=hold.id,
                product_id=line.product_id,
                position=line.position,
                product_name=line.product_name,
                sku=line.sku,
                unit=line.unit,
                price_cents=line.price_cents,
                cost_cents=line.cost_cents,
                allow_decimal=line.allow_decimal,
                quantity=quantity,
                line_total_cents=line_total_cents(line.price_cents, quantity),
            ))

        drop_lines(cart, release_reservations=False)
        reset_customer(cart)

        append_ledger_event(
            event_type="hold.created",
            event_category="holds",
            entity_type="hold_transaction",
            entity_id=hold.id,
            actor_user_id=hold.cashier_id,
            occurred_at=created_at,
            note=hold.note,
            payload={
                "document_number": hold.document_number,
                "expiry_at": hold.expiry_at.isoformat(),
                "stock_deltas": {str(k): v for k, v in deltas.items()},
            },
        )
        db.session.commit()
        return hold

    hold = run_serialized(_op)
    events.hold_created.send(hold, stock_deltas=dict(deltas))
    return hold


def resume_hold(
    hold_id: int,
    cart_id: int,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> HoldTransaction:
    """
    Restore a hold into an empty cart.

    Stock is not touched: the reserved units move onto the restored cart
    lines and checkout consumes them from the reservation.
    """
    def _op():
        hold = _active_hold(hold_id)
        cart = get_open_cart(cart_id)
        if cart.lines:
            raise ConsistencyViolation(
                "Cart must be empty before resuming a hold",
                reason="CART_NOT_EMPTY",
                details={"cart_id": cart.id, "line_count": len(cart.lines)},
            )

        for hold_line in hold.lines:
            db.session.add(CartLine(
                cart_id=cart.id,
                product_id=hold_line.product_id,
                position=hold_line.position,
                product_name=hold_line.product_name,
                sku=hold_line.sku,
                unit=hold_line.unit,
                price_cents=hold_line.price_cents,
                cost_cents=hold_line.cost_cents,
                allow_decimal=hold_line.allow_decimal,
                quantity=hold_line.quantity,
                reserved_quantity=hold_line.quantity,
            ))

        if hold.customer_id is not None:
            ref = ref_for_customer(get_customer(hold.customer_id))
        else:
            ref = walk_in_ref(hold.walk_in_ref, hold.customer_name, hold.customer_phone, hold.customer_email)
        set_customer(cart, ref)

        resolved_at = now or utcnow()
        hold.status = HOLD_STATUS_RESUMED
        hold.resolved_at = resolved_at
        hold.resolved_by_user_id = actor_user_id
        hold.resumed_into_cart_id = cart.id

        append_ledger_event(
            event_type="hold.resumed",
            event_category="holds",
            entity_type="hold_transaction",
            entity_id=hold.id,
            actor_user_id=actor_user_id,
            occurred_at=resolved_at,
            payload={"document_number": hold.document_number, "cart_id": cart.id},
        )
        db.session.commit()
        return hold

    hold = run_serialized(_op)
    events.hold_resumed.send(hold, stock_deltas={})
    return hold


def void_hold(
    hold_id: int,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> HoldTransaction:
    """Cancel a hold and give its units back to sellable stock."""
    deltas = inventory_service.StockDeltas()

    def _op():
        deltas.clear()
        hold = _active_hold(hold_id)
        for hold_line in hold.lines:
            product = inventory_service.get_product(hold_line.product_id)
            inventory_service.release(product, Decimal(hold_line.quantity), deltas)

        resolved_at = now or utcnow()
        hold.status = HOLD_STATUS_VOIDED
        hold.resolved_at = resolved_at
        hold.resolved_by_user_id = actor_user_id

        append_ledger_event(
            event_type="hold.voided",
            event_category="holds",
            entity_type="hold_transaction",
            entity_id=hold.id,
            actor_user_id=actor_user_id,
            occurred_at=resolved_at,
            payload={
                "document_number": hold.document_number,
                "stock_deltas": {str(k): v for k, v in deltas.items()},
            },
        )
        db.session.commit()
        return hold

    hold = run_serialized(_op)
    events.hold_voided.send(hold, stock_deltas=dict(deltas))
    return hold


# =============================================================================
# QUERIES
# =============================================================================

def list_active_holds(search: str | None = None) -> list[HoldTransaction]:
    """ACTIVE holds (expired ones included), oldest first."""
    query = db.session.query(HoldTransaction).filter(HoldTransaction.status == HOLD_STATUS_ACTIVE)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            db.or_(
                db.func.lower(HoldTransaction.customer_name).like(term),
                db.func.lower(HoldTransaction.note).like(term),
                db.func.lower(HoldTransaction.document_number).like(term),
            )
        )
    return query.order_by(HoldTransaction.created_at, HoldTransaction.id).all()


def urgent_holds(
    now: datetime | None = None,
    window_minutes: int | None = None,
    display_limit: int | None = None,
) -> UrgentHoldSummary:
    """
    ACTIVE holds with 0 < time remaining < window, soonest first.

    Read-only; expired holds are not urgent and nothing is voided here.
    """
    now = now or utcnow()
    if window_minutes is None:
        window_minutes = current_app.config["HOLD_URGENT_WINDOW_MINUTES"]
    if display_limit is None:
        display_limit = current_app.config["HOLD_URGENT_DISPLAY_LIMIT"]

    candidates = (
        db.session.query(HoldTransaction)
        .filter(
            HoldTransaction.status == HOLD_STATUS_ACTIVE,
            HoldTransaction.expiry_at > now,
            HoldTransaction.expiry_at < minutes_after(now, window_minutes),
        )
        .order_by(HoldTransaction.expiry_at, HoldTransaction.id)
        .all()
    )
    display = [
        {
            "hold_id": hold.id,
            "document_number": hold.document_number,
            "customer_name": hold.customer_name,
            "seconds_remaining": whole_seconds(time_remaining(hold, now)),
        }
        for hold in candidates[:display_limit]
    ]
    return UrgentHoldSummary(display=display, overflow_count=max(0, len(candidates) - display_limit))
