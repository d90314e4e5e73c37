from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Quantities carry three decimal places (0.001 is the smallest sellable unit)
QUANTITY_PLACES = Decimal("0.001")

# Maximum money amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class EngineError(Exception):
    """
    Base for every rejection raised by the engine.

    `reason` is a stable upper-snake code the shell can switch on;
    `details` carries the offending values.
    """
    reason = "ENGINE_ERROR"
    status_code = 500

    def __init__(self, message: str, reason: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "reason": self.reason, "details": self.details}


class ValidationError(EngineError):
    """400-level input problem. Nothing was mutated."""
    reason = "VALIDATION_ERROR"
    status_code = 400


class ConsistencyViolation(EngineError):
    """409-level rejection: the request conflicts with current engine state."""
    reason = "CONSISTENCY_VIOLATION"
    status_code = 409


class NotFoundError(EngineError):
    """404-level: referenced entity does not exist."""
    reason = "NOT_FOUND"
    status_code = 404


class StockInvariantError(EngineError):
    """
    A stock or reservation write would go negative.

    Every decrement path is validated first, so reaching this is a defect
    in the caller and is never silently clamped.
    """
    reason = "STOCK_INVARIANT_BREACH"


def round_quantity(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def min_quantity(allow_decimal: bool) -> Decimal:
    return QUANTITY_PLACES if allow_decimal else Decimal("1")


def parse_quantity_input(value: Any) -> Decimal | None:
    """
    Parse free-form quantity input from a cart field.

    Returns None for blank or non-numeric input; the caller decides what
    a pending value means.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            parsed = Decimal(stripped)
        except InvalidOperation:
            return None
    else:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def coerce_quantity(value: Any, field: str = "quantity") -> Decimal:
    parsed = parse_quantity_input(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a number", reason="INVALID_QUANTITY", details={field: value})
    return round_quantity(parsed)


def coerce_cents(value: Any, field: str = "amount_cents") -> int:
    """
    Strict integer-cents coercion.

    Rejects floats, booleans, decimals in strings and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer number of cents", reason="INVALID_AMOUNT")
        try:
            cents = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer number of cents", reason="INVALID_AMOUNT")
    else:
        raise ValidationError(f"{field} must be an integer number of cents", reason="INVALID_AMOUNT")

    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}", reason="INVALID_AMOUNT")
    return cents


def coerce_rate(value: Any, field: str = "rate") -> Decimal:
    parsed = parse_quantity_input(value)
    if parsed is None or parsed < 0:
        raise ValidationError(f"{field} must be a non-negative percentage", details={field: value})
    return parsed
