# backend/posengine/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Engine state is held in an embedded SQLite database (in-memory by default)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///:memory:",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Hold registry
    HOLD_DEFAULT_DURATION_MINUTES = int(os.environ.get("HOLD_DEFAULT_DURATION_MINUTES", "30"))
    HOLD_URGENT_WINDOW_MINUTES = int(os.environ.get("HOLD_URGENT_WINDOW_MINUTES", "5"))
    HOLD_URGENT_DISPLAY_LIMIT = int(os.environ.get("HOLD_URGENT_DISPLAY_LIMIT", "3"))
    HOLD_MONITOR_INTERVAL_SECONDS = float(os.environ.get("HOLD_MONITOR_INTERVAL_SECONDS", "1"))
    HOLD_MONITOR_ENABLED = _env_bool("HOLD_MONITOR_ENABLED", False)

    # Store defaults, written to store_settings the first time they are read
    STORE_TAX_NAME = os.environ.get("STORE_TAX_NAME", "VAT")
    STORE_TAX_RATE = os.environ.get("STORE_TAX_RATE", "10")
    STORE_TAX_TYPE = os.environ.get("STORE_TAX_TYPE", "INCLUSIVE")
    STORE_CURRENCY = os.environ.get("STORE_CURRENCY", "USD")
    STORE_CREDIT_MARKUP_RATE = os.environ.get("STORE_CREDIT_MARKUP_RATE", "0")
    STORE_CREDIT_TERMS = [
        {"code": "term-1", "name": "Immediate / 7 Days", "days": 7, "rate": "0"},
        {"code": "term-2", "name": "Net 30", "days": 30, "rate": "2"},
        {"code": "term-3", "name": "Net 60", "days": 60, "rate": "5"},
    ]


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    HOLD_MONITOR_ENABLED = False
