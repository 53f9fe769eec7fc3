"""
Module: parts_ledger.db.types
Responsibility: Decimal conversion and the rounding helpers used for
    prices, costs and margins.  Every model and service uses these so that
    monetary values are stored and rounded identically.

Invariants enforced:
    - No floats anywhere: prices and costs are Decimal.
    - round_money() / round_ratio() are the only sanctioned rounding
      functions for monetary values and margins.
    - Stored decimals carry STORED_DECIMAL_PLACES; inputs finer than that
      are refused at validation, never rounded by the database.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

DEFAULT_ROUNDING = ROUND_HALF_UP
MONEY_DECIMAL_PLACES = 2
STORED_DECIMAL_PLACES = 9
RATIO_DECIMAL_PLACES = 6

ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """
    Convert an int, str or Decimal to Decimal without passing through float.

    Raises:
        ValueError: If the value is a float or not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Refusing lossy conversion of {value!r} to Decimal")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a decimal number: {value!r}") from None


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places``."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def round_ratio(
    value: Decimal,
    decimal_places: int = RATIO_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a margin or other ratio to ``decimal_places``."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)


def safe_ratio(
    numerator: Decimal,
    denominator: Decimal,
    decimal_places: int = RATIO_DECIMAL_PLACES,
) -> Decimal:
    """numerator / denominator, or zero when the denominator is zero."""
    if denominator == 0:
        return round_ratio(ZERO, decimal_places)
    return round_ratio(numerator / denominator, decimal_places)
