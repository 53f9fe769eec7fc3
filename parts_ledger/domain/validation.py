"""
Input validation helpers.

Pure checks with no I/O, run before any storage is touched.  Prices are
accepted as Decimal, int or numeric string; floats are refused so no binary
rounding leaks into costs.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from parts_ledger.db.types import STORED_DECIMAL_PLACES, to_decimal
from parts_ledger.exceptions import (
    InvalidPriceError,
    InvalidQuantityError,
    LedgerValidationError,
    RequiredFieldError,
)

_STORED_QUANTUM = Decimal(1).scaleb(-STORED_DECIMAL_PLACES)


def validate_quantity(quantity: Any, field: str = "quantity") -> int:
    """Return ``quantity`` if it is a positive int, else raise InvalidQuantityError."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity, field)
    return quantity


def validate_price(value: Any, field: str, *, allow_zero: bool) -> Decimal:
    """
    Convert ``value`` to Decimal and check its sign.

    Sale prices must be > 0 (margin divides by revenue); unit costs may be 0
    (free samples) but never negative.  Values finer than the stored scale
    are refused.
    """
    try:
        price = to_decimal(value)
    except ValueError as exc:
        raise InvalidPriceError(value, field, str(exc)) from None
    if not price.is_finite():
        raise InvalidPriceError(value, field, "must be a finite number")
    if price < 0 or (price == 0 and not allow_zero):
        reason = "must not be negative" if allow_zero else "must be positive"
        raise InvalidPriceError(value, field, reason)
    try:
        stored = price.quantize(_STORED_QUANTUM)
    except InvalidOperation:
        raise InvalidPriceError(value, field, "is too large") from None
    if stored != price:
        raise InvalidPriceError(
            value, field, f"has more than {STORED_DECIMAL_PLACES} decimal places"
        )
    return price


def validate_required(value: Any, field: str) -> str:
    """Return the stripped string, or raise RequiredFieldError when blank."""
    if value is None or not str(value).strip():
        raise RequiredFieldError(field)
    return str(value).strip()


def validate_posting_date(value: Any, field: str = "date") -> date:
    """Accept a date (datetimes are truncated to their date)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise LedgerValidationError(f"{field} must be a date, got {value!r}")
