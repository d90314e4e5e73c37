# Overview: Store configuration read by the engine at transaction time.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import StoreSettings, CreditTerm
from ..models.sales import TAX_EXCLUSIVE, TAX_INCLUSIVE
from ..validation import ValidationError, coerce_rate
from .concurrency import run_serialized
from .pricing_service import PricingConfig, CreditTermSnapshot


TAX_TYPES = (TAX_INCLUSIVE, TAX_EXCLUSIVE)


def ensure_store_settings() -> StoreSettings:
    """
    Return the settings row, seeding it (and default credit terms) from
    app config the first time. Caller owns the commit.
    """
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id).first()
    if settings:
        return settings

    cfg = current_app.config
    settings = StoreSettings(
        store_name=cfg.get("STORE_NAME", "Store"),
        tax_name=cfg["STORE_TAX_NAME"],
        tax_rate=Decimal(str(cfg["STORE_TAX_RATE"])),
        tax_type=cfg["STORE_TAX_TYPE"],
        currency=cfg["STORE_CURRENCY"],
        credit_markup_rate=Decimal(str(cfg["STORE_CREDIT_MARKUP_RATE"])),
    )
    db.session.add(settings)

    if db.session.query(CreditTerm).count() == 0:
        for i, term in enumerate(cfg.get("STORE_CREDIT_TERMS") or []):
            db.session.add(CreditTerm(
                code=term["code"],
                name=term["name"],
                days=int(term["days"]),
                rate=Decimal(str(term["rate"])),
                sort_order=i,
            ))

    db.session.flush()
    return settings


def list_credit_terms() -> list[CreditTerm]:
    return db.session.query(CreditTerm).order_by(CreditTerm.sort_order, CreditTerm.id).all()


def _config_pricing() -> PricingConfig:
    """Pricing straight from app config, for a store whose settings were never seeded."""
    cfg = current_app.config
    return PricingConfig(
        tax_name=cfg["STORE_TAX_NAME"],
        tax_rate=Decimal(str(cfg["STORE_TAX_RATE"])),
        tax_type=cfg["STORE_TAX_TYPE"],
        currency=cfg["STORE_CURRENCY"],
        credit_markup_rate=Decimal(str(cfg["STORE_CREDIT_MARKUP_RATE"])),
        credit_terms=tuple(
            CreditTermSnapshot(
                id=None,
                code=term["code"],
                name=term["name"],
                days=int(term["days"]),
                rate=Decimal(str(term["rate"])),
            )
            for term in cfg.get("STORE_CREDIT_TERMS") or []
        ),
    )


def get_pricing_config() -> PricingConfig:
    """
    Snapshot for one pricing pass. Read-only: an unseeded store is priced
    from config without writing the seed rows.
    """
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id).first()
    if settings is None:
        return _config_pricing()
    terms = tuple(
        CreditTermSnapshot(id=t.id, code=t.code, name=t.name, days=t.days, rate=Decimal(t.rate))
        for t in list_credit_terms()
    )
    return PricingConfig(
        tax_name=settings.tax_name,
        tax_rate=Decimal(settings.tax_rate),
        tax_type=settings.tax_type,
        currency=settings.currency,
        credit_markup_rate=Decimal(settings.credit_markup_rate),
        credit_terms=terms,
    )


def seed_store_settings() -> StoreSettings:
    """Write the config defaults once, at start-up or from `flask system init-db`."""
    def _op():
        settings = ensure_store_settings()
        db.session.commit()
        return settings

    return run_serialized(_op)


def update_store_settings(**fields) -> StoreSettings:
    """Write store configuration. Existing sales keep their snapshots."""
    if "tax_type" in fields and fields["tax_type"] not in TAX_TYPES:
        raise ValidationError(f"tax_type must be one of {', '.join(TAX_TYPES)}", reason="INVALID_TAX_TYPE")
    rates = {
        key: coerce_rate(fields[key], key)
        for key in ("tax_rate", "credit_markup_rate")
        if key in fields
    }

    def _op():
        settings = ensure_store_settings()
        if "tax_type" in fields:
            settings.tax_type = fields["tax_type"]
        for key, rate in rates.items():
            setattr(settings, key, rate)
        for key in ("tax_name", "currency", "store_name"):
            if key in fields and fields[key]:
                setattr(settings, key, str(fields[key]).strip())
        db.session.commit()
        return settings

    return run_serialized(_op)


def replace_credit_terms(terms: list[dict]) -> list[CreditTerm]:
    """Replace the configured credit terms (empty list falls back to the flat rate)."""
    rows = []
    for i, term in enumerate(terms):
        days = term.get("days")
        if not isinstance(days, int) or isinstance(days, bool) or days < 0:
            raise ValidationError("credit term days must be a non-negative integer")
        if not term.get("name"):
            raise ValidationError("credit term name required")
        rows.append(CreditTerm(
            code=str(term.get("code") or f"term-{i + 1}"),
            name=str(term["name"]),
            days=days,
            rate=coerce_rate(term.get("rate", 0), "rate"),
            sort_order=i,
        ))

    def _op():
        ensure_store_settings()
        db.session.query(CreditTerm).delete()
        db.session.flush()
        db.session.add_all(rows)
        db.session.commit()
        return list_credit_terms()

    return run_serialized(_op)
