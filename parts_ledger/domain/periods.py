"""
LedgerPeriod -- calendar-month arithmetic for the ledger.

Pure value object.  The ledger closes one calendar month at a time, so a
period is just (year, month) plus its inclusive date bounds.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date

from parts_ledger.exceptions import InvalidPeriodError

MIN_YEAR = 1900
MAX_YEAR = 9999


@dataclass(frozen=True, order=True)
class LedgerPeriod:
    """
    One calendar month.

    Ordering is chronological (year, then month).

    Raises:
        InvalidPeriodError: month outside 1..12 or year out of range.
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        if (
            isinstance(self.year, bool)
            or isinstance(self.month, bool)
            or not isinstance(self.year, int)
            or not isinstance(self.month, int)
            or not MIN_YEAR <= self.year <= MAX_YEAR
            or not 1 <= self.month <= 12
        ):
            raise InvalidPeriodError(self.year, self.month)

    @classmethod
    def from_date(cls, value: date) -> LedgerPeriod:
        return cls(value.year, value.month)

    @property
    def code(self) -> str:
        """Period code, e.g. ``2025-01``."""
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date

    def next(self) -> LedgerPeriod:
        """The following month, rolling December into January."""
        if self.month == 12:
            return LedgerPeriod(self.year + 1, 1)
        return LedgerPeriod(self.year, self.month + 1)

    def previous(self) -> LedgerPeriod:
        if self.month == 1:
            return LedgerPeriod(self.year - 1, 12)
        return LedgerPeriod(self.year, self.month - 1)

    def __str__(self) -> str:
        return self.code
