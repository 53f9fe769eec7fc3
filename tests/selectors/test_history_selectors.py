"""Tests for the read-only selectors behind listings, history views and export."""

from datetime import date
from decimal import Decimal

import pytest

from parts_ledger.exceptions import (
    BatchNotFoundError,
    LedgerValidationError,
    ProductNotFoundError,
    ReportNotFoundError,
)
from parts_ledger.selectors import EXPORT_COLUMNS, CatalogSelector


@pytest.fixture
def stocked(ledger, make_product, make_batch):
    """Two products; the first one partly sold across two batches."""
    pads = make_product("BRK-001", "Brake pad", "25.00", min_stock_level=5)
    oil = make_product("OIL-001", "Engine oil", "12.00")
    b1 = make_batch(pads.id, 4, "3.00", date(2025, 1, 2), supplier="Acme")
    b2 = make_batch(pads.id, 6, "3.50", date(2025, 1, 15), supplier="Bolt Co")
    b3 = make_batch(oil.id, 20, "5.00", date(2025, 1, 8))
    ledger.record_sale(pads.id, 6, Decimal("9.00"), date(2025, 1, 20), invoice_number="INV-1")
    return pads, oil, b1, b2, b3


class TestBatchListings:
    def test_newest_first(self, ledger, stocked):
        pads, _, b1, b2, _ = stocked
        listed = ledger.list_batches(product_id=pads.id)
        assert [b.id for b in listed] == [b2.id, b1.id]

    def test_status_filter(self, ledger, stocked):
        _, _, b1, b2, b3 = stocked
        assert [b.id for b in ledger.list_batches(status="depleted")] == [b1.id]
        assert {b.id for b in ledger.list_batches(status="active")} == {b2.id, b3.id}
        assert len(ledger.list_batches(status="all")) == 3

    def test_unknown_status_rejected(self, ledger, stocked):
        with pytest.raises(LedgerValidationError) as exc_info:
            ledger.list_batches(status="archived")
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert "archived" in str(exc_info.value)

    def test_date_range_inclusive(self, ledger, stocked):
        _, _, _, b2, b3 = stocked
        listed = ledger.list_batches(start_date=date(2025, 1, 8), end_date=date(2025, 1, 15))
        assert [b.id for b in listed] == [b2.id, b3.id]

    def test_quantity_summary(self, ledger, stocked):
        pads, oil, *_ = stocked
        summary = ledger.batch_quantity_summary()

        assert summary[pads.id].batch_count == 2
        assert summary[pads.id].active_batch_count == 1
        assert summary[pads.id].total_current_quantity == 4
        assert summary[pads.id].total_initial_quantity == 10
        assert summary[oil.id].total_current_quantity == 20

    def test_get_batch_not_found(self, ledger):
        from uuid import uuid4

        with pytest.raises(BatchNotFoundError):
            ledger.get_batch(uuid4())


class TestSaleListings:
    def test_lines_of_one_sale_stay_in_fifo_order(self, ledger, stocked):
        pads, _, b1, b2, _ = stocked
        lines = ledger.list_sales(product_id=pads.id)

        assert [(l.batch_id, l.line_no, l.quantity) for l in lines] == [
            (b1.id, 1, 4),
            (b2.id, 2, 2),
        ]
        assert all(l.invoice_number == "INV-1" for l in lines)

    def test_filter_by_batch_and_dates(self, ledger, stocked):
        pads, _, _, b2, _ = stocked
        ledger.record_sale(pads.id, 1, Decimal("9.00"), date(2025, 1, 28))

        assert len(ledger.list_sales(batch_id=b2.id)) == 2
        late = ledger.list_sales(start_date=date(2025, 1, 21))
        assert [l.quantity for l in late] == [1]
        assert ledger.list_sales(end_date=date(2025, 1, 19)) == []

    def test_newest_sale_first(self, ledger, stocked):
        pads, *_ = stocked
        ledger.record_sale(pads.id, 1, Decimal("9.00"), date(2025, 1, 28))
        dates = [l.sale_date for l in ledger.list_sales()]
        assert dates == sorted(dates, reverse=True)


class TestCatalogListings:
    def test_low_stock_only(self, ledger, stocked):
        pads, *_ = stocked
        assert [p.id for p in ledger.list_products(low_stock_only=True)] == [pads.id]

    def test_products_by_sku_and_category(self, ledger, stocked):
        assert [p.sku for p in ledger.list_products()] == ["BRK-001", "OIL-001"]
        fluids = ledger.create_category("Fluids")
        assert ledger.list_products(category_id=fluids.id) == []
        assert [c.name for c in ledger.list_categories()] == ["Fluids"]

    def test_get_product_by_sku(self, session_factory, stocked):
        with session_factory() as s:
            selector = CatalogSelector(s)
            assert selector.get_product_by_sku("OIL-001").name == "Engine oil"
            assert selector.get_product_by_sku("NOPE") is None

    def test_get_product_not_found(self, ledger):
        from uuid import uuid4

        with pytest.raises(ProductNotFoundError):
            ledger.get_product(uuid4())


class TestReportSelector:
    def test_export_rows(self, ledger, stocked):
        ledger.finalize_month(2025, 1)

        rows = ledger.export_report_rows(2025, 1)

        assert [row["sku"] for row in rows] == ["BRK-001", "OIL-001"]
        assert all(tuple(row) == EXPORT_COLUMNS for row in rows)
        pads_row = rows[0]
        assert pads_row["period"] == "2025-01"
        assert pads_row["soldQuantity"] == 6
        assert pads_row["revenue"] == "54.00"
        # 4 @ 3.00 + 2 @ 3.50
        assert pads_row["cost"] == "19.00"
        assert pads_row["profit"] == "35.00"

    def test_list_reports_filters(self, ledger, stocked):
        ledger.finalize_month(2025, 1)
        ledger.refresh_draft_report(2025, 2)

        assert [r.period_code for r in ledger.list_reports(finalized=True)] == ["2025-01"]
        assert [r.period_code for r in ledger.list_reports(finalized=False)] == ["2025-02"]
        assert ledger.list_reports(year=2024) == []

    def test_missing_report(self, ledger):
        with pytest.raises(ReportNotFoundError) as exc_info:
            ledger.get_report(2025, 6)
        assert exc_info.value.period_code == "2025-06"
