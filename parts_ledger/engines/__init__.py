"""
Pure computation engines (zero I/O).

    fifo           -- plan a sale across batches, oldest first
    period_report  -- aggregate one month of batches and sales into report figures
"""

from parts_ledger.engines.fifo import (
    Allocation,
    AllocationPlan,
    BatchLayer,
    plan_fifo_allocation,
)
from parts_ledger.engines.period_report import (
    BatchSnapshot,
    PeriodFigures,
    ProductPeriodFigures,
    ProductSnapshot,
    SaleSnapshot,
    aggregate_period,
)

__all__ = [
    "Allocation",
    "AllocationPlan",
    "BatchLayer",
    "plan_fifo_allocation",
    "BatchSnapshot",
    "PeriodFigures",
    "ProductPeriodFigures",
    "ProductSnapshot",
    "SaleSnapshot",
    "aggregate_period",
]
