# Overview: Customer directory helpers and the walk-in identity used by carts.

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

from ..extensions import db
from ..models import Customer, User
from ..models.customers import CUSTOMER_TYPE_MEMBER, CUSTOMER_TYPE_WALK_IN
from ..validation import NotFoundError, ValidationError
from .concurrency import run_serialized


WALK_IN_NAME = "Walk-in Customer"


@dataclass(frozen=True)
class CustomerRef:
    """
    Customer as seen by a cart or hold: either a persisted row or a
    transient walk-in that has not been written anywhere yet.
    """
    customer_id: int | None
    walk_in_ref: str | None
    name: str
    customer_type: str
    phone: str | None = None
    email: str | None = None
    store_credit_cents: int = 0

    @property
    def is_persisted(self) -> bool:
        return self.customer_id is not None

    @property
    def is_member(self) -> bool:
        return self.customer_type == CUSTOMER_TYPE_MEMBER

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "walk_in_ref": self.walk_in_ref,
            "name": self.name,
            "customer_type": self.customer_type,
            "phone": self.phone,
            "email": self.email,
            "store_credit_cents": self.store_credit_cents,
        }


def new_walk_in_ref() -> str:
    return f"walkin-{uuid4().hex[:12]}"


def ref_for_customer(customer: Customer) -> CustomerRef:
    return CustomerRef(
        customer_id=customer.id,
        walk_in_ref=customer.external_ref,
        name=customer.name,
        customer_type=customer.customer_type,
        phone=customer.phone,
        email=customer.email,
        store_credit_cents=customer.store_credit_cents,
    )


def walk_in_ref(ref: str | None = None, name: str | None = None, phone: str | None = None, email: str | None = None) -> CustomerRef:
    return CustomerRef(
        customer_id=None,
        walk_in_ref=ref or new_walk_in_ref(),
        name=(name or "").strip() or WALK_IN_NAME,
        customer_type=CUSTOMER_TYPE_WALK_IN,
        phone=phone,
        email=email,
    )


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def actor_name(user_id: int | None) -> str | None:
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    return user.name if user else None


def persist_walk_in(ref: CustomerRef) -> Customer:
    """
    Write a transient walk-in to the customers table. Caller owns the
    commit. Re-uses the row if this walk-in reference was already saved.
    """
    if ref.walk_in_ref:
        existing = db.session.query(Customer).filter_by(external_ref=ref.walk_in_ref).first()
        if existing:
            return existing

    customer = Customer(
        external_ref=ref.walk_in_ref,
        name=ref.name,
        phone=ref.phone,
        email=ref.email,
        customer_type=CUSTOMER_TYPE_WALK_IN,
        total_spent_cents=0,
        visit_count=0,
        store_credit_cents=0,
    )
    db.session.add(customer)
    db.session.flush()
    return customer


def register_member(name: str, phone: str | None = None, email: str | None = None) -> Customer:
    """Create a MEMBER with a zero store-credit balance."""
    if not name or not name.strip():
        raise ValidationError("name required", reason="INVALID_CUSTOMER")

    def _op():
        customer = Customer(
            name=name.strip(),
            phone=phone,
            email=email,
            customer_type=CUSTOMER_TYPE_MEMBER,
            total_spent_cents=0,
            visit_count=0,
            store_credit_cents=0,
        )
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_serialized(_op)


def search_members(term: str = "") -> list[Customer]:
    query = db.session.query(Customer).filter_by(customer_type=CUSTOMER_TYPE_MEMBER)
    if term:
        like = f"%{term.lower()}%"
        query = query.filter(
            db.or_(
                db.func.lower(Customer.name).like(like),
                Customer.phone.like(f"%{term}%"),
                db.func.lower(Customer.email).like(like),
            )
        )
    return query.order_by(Customer.name).all()
