"""
Pytest fixtures for the parts ledger test suite.

Provides:
- A fresh SQLite file database per test (tmp_path), with the immutability
  listeners registered
- The PartsLedger entry point wired to a deterministic clock
- Builders for products and batches
- Structured log capture

Each test gets its own database file, so threads in the concurrency tests
share real connections and real locks.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from parts_ledger.config import LedgerSettings
from parts_ledger.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from parts_ledger.db.immutability import register_immutability_listeners
from parts_ledger.domain.clock import DeterministicClock
from parts_ledger.ledger import PartsLedger
from parts_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

JAN_2025 = (2025, 1)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture parts_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_sale(...)
            logs = captured_logs()
            assert any(r["event"] == "sale_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("parts_ledger")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def engine(database_url):
    """Initialize the module-level engine on a fresh database file."""
    eng = init_engine_from_url(database_url, sqlite_busy_timeout=15.0)
    create_tables(eng)
    register_immutability_listeners()
    yield eng
    drop_tables(eng)
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """
    A session for flush-only service tests.

    SQLite holds the write lock from the first statement until commit, so
    a test using this fixture must not also call PartsLedger or the
    orchestrators while the session has an open transaction.
    """
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def settings(database_url):
    return LedgerSettings(database_url=database_url, sqlite_busy_timeout=15.0)


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2025, 2, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(session_factory, settings, deterministic_clock):
    return PartsLedger(session_factory, settings, deterministic_clock)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_product(ledger):
    """Create a product through the ledger; SKUs default to PART-001, PART-002..."""
    counter = {"n": 0}

    def _make(
        sku: str | None = None,
        name: str | None = None,
        selling_price: Decimal | str = "9.99",
        category_id=None,
        min_stock_level: int = 0,
    ):
        counter["n"] += 1
        sku = sku or f"PART-{counter['n']:03d}"
        return ledger.create_product(
            sku,
            name or f"Part {sku}",
            Decimal(str(selling_price)),
            category_id=category_id,
            min_stock_level=min_stock_level,
        )

    return _make


@pytest.fixture
def make_batch(ledger):
    """Receive a batch through the ledger."""

    def _make(
        product_id,
        quantity: int,
        unit_cost: Decimal | str,
        purchase_date: date = date(2025, 1, 2),
        supplier: str | None = None,
    ):
        return ledger.create_batch(
            product_id,
            quantity,
            Decimal(str(unit_cost)),
            purchase_date,
            supplier=supplier,
        )

    return _make
