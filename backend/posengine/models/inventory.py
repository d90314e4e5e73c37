from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog item as seen by the transaction engine.

    STOCK vs RESERVED:
    - `stock` is what a cashier can still put in a cart.
    - `reserved_quantity` is held back for ACTIVE holds and for cart lines
      restored from a hold.
    - stock + reserved_quantity is the physical on-hand count, so holding,
      resuming and voiding move units between the two columns without
      changing their sum.

    Stock is written only by the checkout, hold and return services (plus
    external receiving flows). Neither column may go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    unit = db.Column(db.String(32), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    reserved_quantity = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    min_stock_level = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    # Fractional quantities (weighed goods); otherwise whole units only
    allow_decimal = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def on_hand(self) -> Decimal:
        return Decimal(self.stock or 0) + Decimal(self.reserved_quantity or 0)

    @property
    def is_low_stock(self) -> bool:
        return Decimal(self.stock or 0) <= Decimal(self.min_stock_level or 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock} reserved={self.reserved_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": str(self.stock),
            "reserved_quantity": str(self.reserved_quantity),
            "min_stock_level": str(self.min_stock_level),
            "allow_decimal": self.allow_decimal,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }
