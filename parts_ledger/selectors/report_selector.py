"""
Stored monthly report queries and CSV-ready export rows.

Reads only what was persisted; nothing here recomputes figures.
"""

from typing import Any

from sqlalchemy import select

from parts_ledger.domain.dtos import MonthlyReportInfo
from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.exceptions import ReportNotFoundError
from parts_ledger.models.monthly_report import MonthlyReport
from parts_ledger.selectors.base import BaseSelector
from parts_ledger.utils.hashing import hash_payload

EXPORT_COLUMNS = (
    "period",
    "sku",
    "productName",
    "category",
    "startingQuantity",
    "purchasedQuantity",
    "soldQuantity",
    "endingQuantity",
    "revenue",
    "cost",
    "profit",
    "profitMargin",
    "endingInventoryValue",
)


class ReportSelector(BaseSelector):
    def _get(self, year: int, month: int) -> MonthlyReport:
        period = LedgerPeriod(year, month)
        report = self.session.execute(
            select(MonthlyReport).where(
                MonthlyReport.year == period.year,
                MonthlyReport.month == period.month,
            )
        ).scalar_one_or_none()
        if report is None:
            raise ReportNotFoundError(period.code)
        return report

    def get_report(self, year: int, month: int) -> MonthlyReportInfo:
        return MonthlyReportInfo.from_model(self._get(year, month))

    def list_reports(
        self,
        year: int | None = None,
        finalized: bool | None = None,
    ) -> list[MonthlyReportInfo]:
        """Reports newest month first."""
        stmt = select(MonthlyReport)
        if year is not None:
            stmt = stmt.where(MonthlyReport.year == year)
        if finalized is not None:
            stmt = stmt.where(MonthlyReport.is_finalized == finalized)
        stmt = stmt.order_by(MonthlyReport.year.desc(), MonthlyReport.month.desc())
        return [MonthlyReportInfo.from_model(r) for r in self.session.execute(stmt).scalars()]

    def verify_report_hash(self, year: int, month: int) -> bool:
        """True when the stored payload still hashes to the stored report_hash."""
        report = self._get(year, month)
        return hash_payload(report.report_data) == report.report_hash

    def export_rows(self, year: int, month: int) -> list[dict[str, Any]]:
        """
        One flat row per product, keyed by EXPORT_COLUMNS, for CSV export.
        """
        report = self._get(year, month)
        code = report.period_code
        return [
            {"period": code, **{column: line[column] for column in EXPORT_COLUMNS[1:]}}
            for line in report.report_data.get("products", [])
        ]
