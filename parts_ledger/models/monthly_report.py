"""
Module: parts_ledger.models.monthly_report
Responsibility: ORM persistence for per-month report snapshots, draft or
    finalized.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - (year, month) is unique.
    - is_finalized moves false -> true once.  After that the row, its
      report_data and report_hash never change (db/immutability.py).
    - report_hash is the SHA-256 of the canonical JSON of report_data.

Failure modes:
    - ImmutabilityViolationError on any update or delete of a finalized row.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from parts_ledger.db.base import Base


class MonthlyReport(Base):
    """Aggregated figures of one calendar month."""

    __tablename__ = "monthly_reports"

    __table_args__ = (UniqueConstraint("year", "month", name="uq_report_period"),)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    # Total revenue of the month
    total_sales: Mapped[Decimal] = mapped_column(nullable=False)

    total_profit: Mapped[Decimal] = mapped_column(nullable=False)

    # totalProfit / totalRevenue as a fraction
    average_profit_margin: Mapped[Decimal] = mapped_column(nullable=False)

    is_finalized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    report_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    report_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "finalized" if self.is_finalized else "draft"
        return f"<MonthlyReport {self.period_code}: {state}>"

    @property
    def period_code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"
