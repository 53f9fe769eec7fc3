"""
Tests for the ledger's structured logging (parts_ledger/logging_config.py).

The first group formats records by hand; the second checks the events the
ledger itself emits when sales are recorded, rejected and months closed.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.exceptions import InsufficientStockError
from parts_ledger.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from parts_ledger.models.batch import BatchStatus


@pytest.fixture
def ledger_stream():
    """Configure logging into a fresh stream; restore the suite's setup afterwards."""
    reset_logging()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)
    yield stream
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def _only(records: list[dict], event: str) -> dict:
    matching = [r for r in records if r["event"] == event]
    assert len(matching) == 1, [r["event"] for r in records]
    return matching[0]


class TestStructuredFormatter:
    def test_envelope(self, ledger_stream):
        get_logger("services.sale_recorder").info("sale_recorded")

        record = _records(ledger_stream)[0]
        assert record["level"] == "INFO"
        assert record["event"] == "sale_recorded"
        assert record["logger"] == "parts_ledger.services.sale_recorder"
        assert record["ts"].endswith("+00:00")

    def test_ledger_values_rendered(self, ledger_stream):
        batch_id = uuid4()
        get_logger("test").info(
            "batch_created",
            extra={
                "batch_id": batch_id,
                "purchase_price": Decimal("3.000000001"),
                "total_sales": Decimal("60.00"),
                "purchase_date": date(2025, 1, 2),
                "period_closed": LedgerPeriod(2025, 1),
                "status": BatchStatus.DEPLETED,
            },
        )

        record = _records(ledger_stream)[0]
        assert record["batch_id"] == str(batch_id)
        # Money keeps its exact scale
        assert record["purchase_price"] == "3.000000001"
        assert record["total_sales"] == "60.00"
        assert record["purchase_date"] == "2025-01-02"
        assert record["period_closed"] == "2025-01"
        assert record["status"] == "depleted"

    def test_ledger_error_becomes_error_object(self, ledger_stream):
        try:
            raise InsufficientStockError("prod-1", 4, 3)
        except InsufficientStockError:
            get_logger("test").warning("sale_rejected", exc_info=True)

        error = _records(ledger_stream)[0]["error"]
        assert error["type"] == "InsufficientStockError"
        assert error["code"] == "INSUFFICIENT_STOCK"
        assert (error["product_id"], error["requested"], error["available"]) == (
            "prod-1",
            4,
            3,
        )

    def test_plain_exception_has_no_code(self, ledger_stream):
        try:
            raise RuntimeError("disk full")
        except RuntimeError:
            get_logger("test").error("transaction_failed", exc_info=True)

        record = _records(ledger_stream)[0]
        assert record["error"] == {"type": "RuntimeError", "message": "disk full"}
        assert "RuntimeError: disk full" in record["traceback"]

    def test_context_wins_over_extra(self, ledger_stream):
        with LogContext.bind(period="2025-02"):
            get_logger("test").info("draft_report_refreshed", extra={"period": "stale"})

        assert _records(ledger_stream)[0]["period"] == "2025-02"

    def test_debug_dropped_at_info(self):
        reset_logging()
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream), level="info")
        try:
            get_logger("services.batch_store").debug("batch_decremented")
            get_logger("services.batch_store").info("batch_created")
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

        assert [r["event"] for r in _records(stream)] == ["batch_created"]


class TestLogContext:
    def test_bind_renders_ledger_values(self):
        product_id = uuid4()
        with LogContext.bind(product_id=product_id, period=LedgerPeriod(2025, 3)):
            assert LogContext.get_all() == {
                "product_id": str(product_id),
                "period": "2025-03",
            }
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_sale(self):
        LogContext.set(correlation_id="txn-outer")
        with LogContext.bind(correlation_id="txn-inner", period="2025-01"):
            assert LogContext.get_all()["correlation_id"] == "txn-inner"
        assert LogContext.get_all() == {"correlation_id": "txn-outer"}

    def test_restored_after_exception(self):
        with pytest.raises(InsufficientStockError):
            with LogContext.bind(product_id="prod-1"):
                raise InsufficientStockError("prod-1", 2, 1)
        assert LogContext.get_all() == {}

    def test_none_leaves_field_unchanged(self):
        LogContext.set(period="2025-01")
        LogContext.set(period=None, product_id="prod-9")
        assert LogContext.get_all() == {"period": "2025-01", "product_id": "prod-9"}

    def test_unknown_field_refused(self):
        with pytest.raises(TypeError, match="warehouse"):
            LogContext.set(warehouse="north")
        assert set(CONTEXT_FIELDS) == {"correlation_id", "product_id", "period"}


class TestLedgerEvents:
    def test_sale_recorded_carries_transaction(
        self, ledger, make_product, make_batch, captured_logs
    ):
        product = make_product()
        make_batch(product.id, 3, "2.00", date(2025, 1, 2))
        make_batch(product.id, 3, "2.50", date(2025, 1, 3))

        lines = ledger.record_sale(product.id, 4, Decimal("5.00"), date(2025, 1, 10))

        record = _only(captured_logs(), "sale_recorded")
        assert record["correlation_id"] == str(lines[0].transaction_id)
        assert record["product_id"] == str(product.id)
        assert record["sale_price"] == "5.00"
        assert (record["quantity"], record["lines"]) == (4, 2)
        assert LogContext.get_all() == {}

    def test_rejected_sale_logged_with_code(
        self, ledger, make_product, make_batch, captured_logs
    ):
        product = make_product()
        make_batch(product.id, 3, "2.00")

        with pytest.raises(InsufficientStockError):
            ledger.record_sale(product.id, 4, Decimal("5.00"), date(2025, 1, 10))

        record = _only(captured_logs(), "sale_rejected")
        assert record["level"] == "WARNING"
        assert record["error_code"] == "INSUFFICIENT_STOCK"
        assert record["product_id"] == str(product.id)
        assert LogContext.get_all() == {}

    def test_month_finalized_carries_period(
        self, ledger, make_product, make_batch, captured_logs
    ):
        product = make_product()
        make_batch(product.id, 5, "2.00", date(2025, 1, 2))
        ledger.record_sale(product.id, 2, Decimal("4.50"), date(2025, 1, 10))

        report = ledger.finalize_month(2025, 1)

        record = _only(captured_logs(), "month_finalized")
        assert record["period"] == "2025-01"
        assert record["next_period"] == "2025-02"
        assert record["total_sales"] == "9.00"
        assert record["report_hash"] == report.report_hash
