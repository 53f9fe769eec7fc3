"""
PeriodReportBuilder -- draft and final monthly report snapshots.

Responsibility:
    Loads batches and sales up to the end of a month, hands them to the pure
    aggregator (engines/period_report.py), reconciles the result and writes
    the MonthlyReport row.

    - build():          compute and reconcile; no writes.
    - refresh_draft():  build and overwrite the month's draft row.
    - save_report():    used by RolloverService to persist the final snapshot.

Invariants enforced:
    - Reconciliation: every product's endingQuantity must equal what its
      batches held at month end; for the open month it must also equal the
      live sum of current_quantity.  Any disagreement raises
      StockReconciliationError and nothing is written.
    - Carry-forward: startingQuantity comes from the previous month's
      finalized report when one exists.
    - Idempotent drafts: rebuilding an unchanged month yields an identical
      payload and report_hash; only generated_at moves.
    - A finalized report is never overwritten (AlreadyFinalizedError).
    - refresh_draft() holds the ledger state row exclusively, the same lock
      finalization takes, so every read it makes sees one committed state.
"""

from collections import defaultdict
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from parts_ledger.config import LedgerSettings
from parts_ledger.db.types import round_money
from parts_ledger.domain.clock import Clock, SystemClock
from parts_ledger.domain.dtos import UNCATEGORIZED, MonthlyReportInfo
from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.engines.period_report import (
    BatchSnapshot,
    PeriodFigures,
    ProductSnapshot,
    SaleSnapshot,
    aggregate_period,
)
from parts_ledger.exceptions import AlreadyFinalizedError, StockReconciliationError
from parts_ledger.logging_config import get_logger
from parts_ledger.models.batch import Batch
from parts_ledger.models.catalog import Product
from parts_ledger.models.monthly_report import MonthlyReport
from parts_ledger.models.sale import Sale
from parts_ledger.services.base import BaseService
from parts_ledger.services.ledger_state_service import LedgerStateService
from parts_ledger.utils.hashing import hash_payload

logger = get_logger("services.report_builder")


class PeriodReportBuilder(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()

    def get_report(self, period: LedgerPeriod) -> MonthlyReport | None:
        return self.session.execute(
            select(MonthlyReport).where(
                MonthlyReport.year == period.year,
                MonthlyReport.month == period.month,
            )
        ).scalar_one_or_none()

    def compute(self, year: int, month: int) -> PeriodFigures:
        """Aggregate the month without reconciling or writing."""
        period = LedgerPeriod(year, month)
        end = period.end_date

        products = [
            ProductSnapshot(
                product_id=p.id,
                sku=p.sku,
                name=p.name,
                category=p.category.name if p.category is not None else UNCATEGORIZED,
            )
            for p in self.session.execute(select(Product)).unique().scalars()
        ]
        batches = [
            BatchSnapshot(
                batch_id=b.id,
                product_id=b.product_id,
                purchase_date=b.purchase_date,
                receipt_seq=b.receipt_seq,
                purchase_price=b.purchase_price,
                initial_quantity=b.initial_quantity,
                current_quantity=b.current_quantity,
                supplier=b.supplier,
            )
            for b in self.session.execute(
                select(Batch).where(Batch.purchase_date <= end)
            ).scalars()
        ]
        sales = [
            SaleSnapshot(
                product_id=s.product_id,
                batch_id=s.batch_id,
                quantity=s.quantity,
                sale_price=s.sale_price,
                purchase_price=s.purchase_price,
                sale_date=s.sale_date,
            )
            for s in self.session.execute(select(Sale).where(Sale.sale_date <= end)).scalars()
        ]

        return aggregate_period(
            period,
            products,
            batches,
            sales,
            carried_forward=self._carried_forward(period),
            money_places=self._settings.money_places,
            margin_places=self._settings.margin_places,
        )

    def _carried_forward(self, period: LedgerPeriod) -> dict[UUID, int] | None:
        previous = self.get_report(period.previous())
        if previous is None or not previous.is_finalized:
            return None
        return {
            UUID(line["productId"]): line["endingQuantity"]
            for line in previous.report_data.get("products", [])
        }

    def _live_quantities(self) -> dict[UUID, int]:
        rows = self.session.execute(
            select(Batch.product_id, func.sum(Batch.current_quantity)).group_by(
                Batch.product_id
            )
        ).all()
        live: dict[UUID, int] = defaultdict(int)
        for product_id, total in rows:
            live[product_id] = int(total or 0)
        return live

    def reconcile(self, figures: PeriodFigures) -> None:
        """
        Raise StockReconciliationError when the figures disagree with the
        batches.  The open month is also checked against live quantities.
        """
        mismatches = list(figures.mismatches)

        open_period = LedgerStateService(self.session).open_period()
        if open_period is None or figures.period == open_period:
            live = self._live_quantities()
            for line in figures.products:
                live_quantity = live.get(line.product.product_id, 0)
                if line.ending_quantity != live_quantity:
                    mismatches.append(
                        {
                            "productId": str(line.product.product_id),
                            "sku": line.product.sku,
                            "endingQuantity": line.ending_quantity,
                            "liveQuantity": live_quantity,
                        }
                    )

        if mismatches:
            logger.error(
                "report_reconciliation_failed",
                extra={"period": figures.period.code, "mismatches": mismatches},
            )
            raise StockReconciliationError(figures.period.code, mismatches)

    def build(self, year: int, month: int) -> tuple[PeriodFigures, dict[str, Any]]:
        """Compute and reconcile the month.  Returns (figures, reportData)."""
        figures = self.compute(year, month)
        self.reconcile(figures)
        return figures, figures.to_payload()

    def save_report(
        self,
        figures: PeriodFigures,
        payload: dict[str, Any],
        *,
        finalize: bool,
    ) -> MonthlyReport:
        """Insert or overwrite the month's row.  Flush-only."""
        period = figures.period
        report = self.get_report(period)
        if report is not None and report.is_finalized:
            raise AlreadyFinalizedError(period.code)

        now = self._clock.now()
        if report is None:
            report = MonthlyReport(year=period.year, month=period.month)
            self.session.add(report)

        report.total_sales = round_money(figures.total_revenue, self._settings.money_places)
        report.total_profit = round_money(figures.total_profit, self._settings.money_places)
        report.average_profit_margin = figures.average_profit_margin
        report.report_data = payload
        report.report_hash = hash_payload(payload)
        report.generated_at = now
        if finalize:
            report.is_finalized = True
            report.finalized_at = now
        else:
            report.is_finalized = False
        self.session.flush()
        return report

    def refresh_draft(self, year: int, month: int) -> MonthlyReportInfo:
        """
        Recompute the month's draft and overwrite the stored draft row.

        Raises:
            AlreadyFinalizedError: the month is finalized.
            StockReconciliationError: figures disagree with the batches.
        """
        period = LedgerPeriod(year, month)
        # Exclusive state lock: no sale commits between the reads below
        LedgerStateService(self.session).get_state(lock=True, exclusive=True)
        existing = self.get_report(period)
        if existing is not None and existing.is_finalized:
            raise AlreadyFinalizedError(period.code)

        figures, payload = self.build(year, month)
        report = self.save_report(figures, payload, finalize=False)
        logger.info(
            "draft_report_refreshed",
            extra={
                "period": period.code,
                "products": len(figures.products),
                "report_hash": report.report_hash,
            },
        )
        return MonthlyReportInfo.from_model(report)
