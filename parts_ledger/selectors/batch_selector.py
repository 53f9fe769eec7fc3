"""
Batch history queries.

Listings are newest purchase first, the order history views show them in.
The FIFO consumption order lives in BatchStore, not here.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import case, func, select

from parts_ledger.domain.dtos import BatchInfo, BatchQuantitySummary
from parts_ledger.exceptions import BatchNotFoundError, LedgerValidationError
from parts_ledger.models.batch import Batch, BatchStatus
from parts_ledger.selectors.base import BaseSelector


def _parse_status(status: BatchStatus | str) -> BatchStatus:
    try:
        return BatchStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in BatchStatus)
        raise LedgerValidationError(
            f"Unknown batch status {status!r}; expected one of {allowed} or 'all'"
        ) from None


class BatchSelector(BaseSelector):
    def get_batch(self, batch_id: UUID) -> BatchInfo:
        batch = self.session.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return BatchInfo.from_model(batch)

    def list_batches(
        self,
        product_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: BatchStatus | str | None = None,
    ) -> list[BatchInfo]:
        """
        Batches filtered by product, purchase-date range (inclusive) and
        status.  ``status="all"`` is the same as no filter.
        """
        stmt = select(Batch)
        if product_id is not None:
            stmt = stmt.where(Batch.product_id == product_id)
        if start_date is not None:
            stmt = stmt.where(Batch.purchase_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Batch.purchase_date <= end_date)
        if status is not None and status != "all":
            stmt = stmt.where(Batch.status == _parse_status(status).value)
        stmt = stmt.order_by(Batch.purchase_date.desc(), Batch.receipt_seq.desc())
        return [BatchInfo.from_model(b) for b in self.session.execute(stmt).scalars()]

    def quantity_summary(
        self,
        product_ids: list[UUID] | None = None,
    ) -> dict[UUID, BatchQuantitySummary]:
        """Per-product batch counts and quantity totals."""
        stmt = select(
            Batch.product_id,
            func.count(Batch.id),
            func.sum(case((Batch.current_quantity > 0, 1), else_=0)),
            func.sum(Batch.current_quantity),
            func.sum(Batch.initial_quantity),
        ).group_by(Batch.product_id)
        if product_ids:
            stmt = stmt.where(Batch.product_id.in_(product_ids))

        summaries: dict[UUID, BatchQuantitySummary] = {}
        for product_id, count, active, current, initial in self.session.execute(stmt):
            summaries[product_id] = BatchQuantitySummary(
                product_id=product_id,
                batch_count=count,
                active_batch_count=int(active or 0),
                total_current_quantity=int(current or 0),
                total_initial_quantity=int(initial or 0),
            )
        return summaries
