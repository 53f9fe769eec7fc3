"""
Tests for PeriodReportBuilder: draft refreshes, carry-forward, FIFO
valuation and the reconciliation check.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from parts_ledger.db.engine import session_scope
from parts_ledger.exceptions import (
    AlreadyFinalizedError,
    ReportNotFoundError,
    StockReconciliationError,
)
from parts_ledger.services.ledger_state_service import LedgerStateService


@pytest.fixture
def january(ledger, make_product, make_batch):
    """The two-batch January from the end-to-end scenario."""
    product = make_product("BRK-001", "Brake pad", "25.00")
    b1 = make_batch(product.id, 10, "3.00", date(2025, 1, 2), supplier="Acme")
    ledger.record_sale(product.id, 4, Decimal("5.00"), date(2025, 1, 10))
    b2 = make_batch(product.id, 5, "4.00", date(2025, 1, 12), supplier="Bolt Co")
    ledger.record_sale(product.id, 8, Decimal("5.00"), date(2025, 1, 20))
    return product, b1, b2


class TestRefreshDraft:
    def test_draft_figures(self, ledger, january):
        product, b1, b2 = january

        report = ledger.refresh_draft_report(2025, 1)

        assert not report.is_finalized
        assert report.finalized_at is None
        assert report.total_sales == Decimal("60.00")
        assert report.total_profit == Decimal("22.00")
        assert report.average_profit_margin == Decimal("0.366667")

        data = report.report_data
        assert data["totalStartingInventory"] == 0
        assert data["totalPurchased"] == 15
        assert data["totalSold"] == 12
        assert data["totalEndingInventory"] == 3
        assert data["totalCost"] == "38.00"
        assert data["endingInventoryValue"] == "12.00"

        line = data["products"][0]
        assert line["productId"] == str(product.id)
        assert line["productName"] == "Brake pad"
        assert line["category"] == "Uncategorized"
        assert line["endingQuantity"] == 3
        remaining = {b["batchId"]: b["remainingQuantity"] for b in line["batches"]}
        assert remaining == {str(b1.id): 0, str(b2.id): 3}

    def test_refresh_twice_is_identical(self, ledger, january, deterministic_clock):
        first = ledger.refresh_draft_report(2025, 1)
        deterministic_clock.advance(3600)
        second = ledger.refresh_draft_report(2025, 1)

        assert second.report_data == first.report_data
        assert second.report_hash == first.report_hash
        assert second.generated_at != first.generated_at
        assert len(ledger.list_reports()) == 1

    def test_refresh_holds_state_lock_exclusively(self, ledger, january, monkeypatch):
        calls = []
        original = LedgerStateService.get_state

        def _recording(self, *, lock=False, exclusive=False):
            calls.append((lock, exclusive))
            return original(self, lock=lock, exclusive=exclusive)

        monkeypatch.setattr(LedgerStateService, "get_state", _recording)
        ledger.refresh_draft_report(2025, 1)

        assert calls[0] == (True, True)

    def test_refresh_picks_up_new_sales(self, ledger, january):
        product, _, _ = january
        before = ledger.refresh_draft_report(2025, 1)
        ledger.record_sale(product.id, 1, Decimal("6.00"), date(2025, 1, 25))
        after = ledger.refresh_draft_report(2025, 1)

        assert after.report_hash != before.report_hash
        assert after.report_data["totalSold"] == 13
        assert after.total_sales == Decimal("66.00")

    def test_category_name_reported(self, ledger, make_product, make_batch):
        brakes = ledger.create_category("Brakes")
        product = make_product(category_id=brakes.id)
        make_batch(product.id, 2, "1.00")

        line = ledger.refresh_draft_report(2025, 1).report_data["products"][0]
        assert line["category"] == "Brakes"

    def test_finalized_month_cannot_be_refreshed(self, ledger, january):
        ledger.finalize_month(2025, 1)
        with pytest.raises(AlreadyFinalizedError):
            ledger.refresh_draft_report(2025, 1)


class TestCarryForward:
    def test_february_starts_from_january_ending(self, ledger, january):
        product, _, b2 = january
        ledger.finalize_month(2025, 1)

        ledger.record_sale(product.id, 1, Decimal("5.00"), date(2025, 2, 3))
        feb = ledger.refresh_draft_report(2025, 2)

        line = feb.report_data["products"][0]
        assert line["startingQuantity"] == 3
        assert line["purchasedQuantity"] == 0
        assert line["soldQuantity"] == 1
        assert line["endingQuantity"] == 2
        assert line["cost"] == "4.00"
        assert feb.report_data["endingInventoryValue"] == "8.00"
        assert ledger.get_batch(b2.id).current_quantity == 2


class TestReconciliation:
    def test_tampered_batch_blocks_the_report(self, ledger, session_factory, january):
        _, _, b2 = january
        with session_scope(session_factory) as s:
            s.execute(
                text("UPDATE batches SET current_quantity = 2 WHERE id = :id"),
                {"id": str(b2.id)},
            )

        with pytest.raises(StockReconciliationError) as exc_info:
            ledger.refresh_draft_report(2025, 1)

        mismatch = exc_info.value.mismatches[0]
        assert mismatch["endingQuantity"] == 3
        assert mismatch["liveQuantity"] == 2
        with pytest.raises(ReportNotFoundError):
            ledger.get_report(2025, 1)

    def test_failed_finalize_leaves_month_open(self, ledger, session_factory, january):
        _, _, b2 = january
        with session_scope(session_factory) as s:
            s.execute(
                text("UPDATE batches SET current_quantity = 1 WHERE id = :id"),
                {"id": str(b2.id)},
            )

        with pytest.raises(StockReconciliationError):
            ledger.finalize_month(2025, 1)

        assert ledger.current_period().code == "2025-01"
        assert ledger.list_reports() == []
