"""Pure domain values: clock, ledger periods, DTOs.  Zero I/O."""

from parts_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from parts_ledger.domain.periods import LedgerPeriod

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "LedgerPeriod",
]
