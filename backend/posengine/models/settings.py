from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoreSettings(db.Model):
    """
    Single-row store configuration read at transaction time.

    Tax and credit figures are snapshotted into every Sale, so editing this
    row never changes historical records.
    """
    __tablename__ = "store_settings"

    id = db.Column(db.Integer, primary_key=True)
    store_name = db.Column(db.String(255), nullable=False, default="Store")

    tax_name = db.Column(db.String(32), nullable=False, default="VAT")
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, default=0)  # percent
    tax_type = db.Column(db.String(16), nullable=False, default="EXCLUSIVE")  # INCLUSIVE, EXCLUSIVE
    currency = db.Column(db.String(8), nullable=False, default="USD")

    # Flat STORE_CREDIT markup used only when no credit terms exist
    credit_markup_rate = db.Column(db.Numeric(7, 3), nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_name": self.store_name,
            "tax_name": self.tax_name,
            "tax_rate": str(self.tax_rate),
            "tax_type": self.tax_type,
            "currency": self.currency,
            "credit_markup_rate": str(self.credit_markup_rate),
            "updated_at": to_utc_z(self.updated_at),
        }


class CreditTerm(db.Model):
    """Named days-to-due + markup rate offered for STORE_CREDIT sales."""
    __tablename__ = "credit_terms"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(64), nullable=False)
    days = db.Column(db.Integer, nullable=False, default=0)
    rate = db.Column(db.Numeric(7, 3), nullable=False, default=0)  # percent
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "days": self.days,
            "rate": str(self.rate),
            "sort_order": self.sort_order,
        }
