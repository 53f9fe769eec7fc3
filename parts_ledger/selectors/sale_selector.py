"""Sale history queries."""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from parts_ledger.domain.dtos import SaleInfo
from parts_ledger.models.sale import Sale
from parts_ledger.selectors.base import BaseSelector


class SaleSelector(BaseSelector):
    def list_sales(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        product_id: UUID | None = None,
        batch_id: UUID | None = None,
        transaction_id: UUID | None = None,
    ) -> list[SaleInfo]:
        """
        Sale lines, newest sale date first; lines of one sale stay together
        in FIFO order.
        """
        stmt = select(Sale)
        if start_date is not None:
            stmt = stmt.where(Sale.sale_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Sale.sale_date <= end_date)
        if product_id is not None:
            stmt = stmt.where(Sale.product_id == product_id)
        if batch_id is not None:
            stmt = stmt.where(Sale.batch_id == batch_id)
        if transaction_id is not None:
            stmt = stmt.where(Sale.transaction_id == transaction_id)
        stmt = stmt.order_by(Sale.sale_date.desc(), Sale.transaction_id, Sale.line_no)
        return [SaleInfo.from_model(s) for s in self.session.execute(stmt).scalars()]

