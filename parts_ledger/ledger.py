"""
PartsLedger -- entry point for request handlers.

Wires settings, logging, the engine, the immutability listeners and the
services together, and gives every inbound call its own transaction:

    ledger = PartsLedger.from_settings(load_settings())
    product = ledger.create_product("BRK-001", "Brake pad", Decimal("25.00"))
    ledger.create_batch(product.id, 10, Decimal("3.00"), date(2025, 1, 2))
    ledger.record_sale(product.id, 4, Decimal("5.00"), date(2025, 1, 15))
    ledger.finalize_month(2025, 1)

Flush-only services run inside ``session_scope``; SaleRecorder and
RolloverService manage their own transactions.  Storage failures surface as
TransactionFailedError; every other error is the service's typed error.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from parts_ledger.config import LedgerSettings
from parts_ledger.db.engine import (
    create_tables,
    get_session_factory,
    init_engine,
    session_scope,
)
from parts_ledger.db.immutability import register_immutability_listeners
from parts_ledger.domain.clock import Clock, SystemClock
from parts_ledger.domain.dtos import (
    BatchInfo,
    BatchQuantitySummary,
    CategoryRef,
    InventoryVerification,
    MonthlyReportInfo,
    ProductInfo,
    SaleInfo,
)
from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.exceptions import TransactionFailedError
from parts_ledger.logging_config import configure_logging, get_logger
from parts_ledger.selectors import BatchSelector, CatalogSelector, ReportSelector, SaleSelector
from parts_ledger.services import (
    BatchStore,
    CatalogService,
    InventoryReconciliationService,
    LedgerStateService,
    PeriodReportBuilder,
    RolloverService,
    SaleRecorder,
)

logger = get_logger("ledger")


class PartsLedger:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()
        self._sale_recorder = SaleRecorder(session_factory, self._settings)
        self._rollover = RolloverService(session_factory, self._settings, self._clock)

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        clock: Clock | None = None,
    ) -> PartsLedger:
        """Configure logging, initialize the engine, create tables, register listeners."""
        configure_logging(level=settings.log_level)
        init_engine(settings)
        create_tables()
        register_immutability_listeners()
        logger.info("ledger_started", extra={"sqlite": settings.is_sqlite})
        return cls(get_session_factory(), settings, clock)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except DBAPIError as exc:
            logger.error(
                "transaction_failed",
                extra={"operation": operation, "error": str(exc.orig)},
            )
            raise TransactionFailedError(operation, str(exc.orig)) from exc

    # Period

    def open_ledger(self, year: int, month: int) -> LedgerPeriod:
        with self._unit_of_work("open_ledger") as session:
            return LedgerStateService(session).open_ledger(year, month)

    def current_period(self) -> LedgerPeriod | None:
        with self._unit_of_work("current_period") as session:
            return LedgerStateService(session).open_period()

    # Catalog

    def create_category(self, name: str, description: str | None = None) -> CategoryRef:
        with self._unit_of_work("create_category") as session:
            return CatalogService(session).create_category(name, description)

    def create_product(
        self,
        sku: str,
        name: str,
        selling_price: Decimal | int | str,
        category_id: UUID | None = None,
        min_stock_level: int = 0,
        description: str | None = None,
    ) -> ProductInfo:
        with self._unit_of_work("create_product") as session:
            return CatalogService(session).create_product(
                sku,
                name,
                selling_price,
                category_id=category_id,
                min_stock_level=min_stock_level,
                description=description,
            )

    def update_product(
        self,
        product_id: UUID,
        *,
        sku: str | None = None,
        name: str | None = None,
        selling_price: Decimal | int | str | None = None,
        min_stock_level: int | None = None,
        description: str | None = None,
        category_id: UUID | None = None,
        clear_category: bool = False,
    ) -> ProductInfo:
        with self._unit_of_work("update_product") as session:
            return CatalogService(session).update_product(
                product_id,
                sku=sku,
                name=name,
                selling_price=selling_price,
                min_stock_level=min_stock_level,
                description=description,
                category_id=category_id,
                clear_category=clear_category,
            )

    def delete_product(self, product_id: UUID) -> ProductInfo:
        with self._unit_of_work("delete_product") as session:
            return CatalogService(session).delete_product(product_id)

    def get_product(self, product_id: UUID) -> ProductInfo:
        with self._unit_of_work("get_product") as session:
            return CatalogSelector(session).get_product(product_id)

    def list_products(
        self,
        category_id: UUID | None = None,
        low_stock_only: bool = False,
    ) -> list[ProductInfo]:
        with self._unit_of_work("list_products") as session:
            return CatalogSelector(session).list_products(category_id, low_stock_only)

    def list_categories(self) -> list[CategoryRef]:
        with self._unit_of_work("list_categories") as session:
            return CatalogSelector(session).list_categories()

    # Batches

    def create_batch(
        self,
        product_id: UUID,
        initial_quantity: int,
        purchase_price: Decimal | int | str,
        purchase_date: date,
        supplier: str | None = None,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> BatchInfo:
        with self._unit_of_work("create_batch") as session:
            batch = BatchStore(session).create_batch(
                product_id,
                initial_quantity,
                purchase_price,
                purchase_date,
                supplier=supplier,
                invoice_number=invoice_number,
                notes=notes,
            )
            return BatchInfo.from_model(batch)

    def update_batch_details(
        self,
        batch_id: UUID,
        *,
        supplier: str | None = None,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> BatchInfo:
        with self._unit_of_work("update_batch_details") as session:
            batch = BatchStore(session).update_batch_details(
                batch_id,
                supplier=supplier,
                invoice_number=invoice_number,
                notes=notes,
            )
            return BatchInfo.from_model(batch)

    def delete_batch(self, batch_id: UUID) -> BatchInfo:
        with self._unit_of_work("delete_batch") as session:
            return BatchInfo.from_model(BatchStore(session).delete_batch(batch_id))

    def get_batch(self, batch_id: UUID) -> BatchInfo:
        with self._unit_of_work("get_batch") as session:
            return BatchSelector(session).get_batch(batch_id)

    def list_batches(
        self,
        product_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
    ) -> list[BatchInfo]:
        with self._unit_of_work("list_batches") as session:
            return BatchSelector(session).list_batches(product_id, start_date, end_date, status)

    def batch_quantity_summary(
        self,
        product_ids: list[UUID] | None = None,
    ) -> dict[UUID, BatchQuantitySummary]:
        with self._unit_of_work("batch_quantity_summary") as session:
            return BatchSelector(session).quantity_summary(product_ids)

    # Sales

    def record_sale(
        self,
        product_id: UUID,
        quantity: int,
        sale_price: Decimal | int | str,
        sale_date: date,
        customer_id: str | None = None,
        invoice_number: str | None = None,
    ) -> list[SaleInfo]:
        return self._sale_recorder.record_sale(
            product_id,
            quantity,
            sale_price,
            sale_date,
            customer_id=customer_id,
            invoice_number=invoice_number,
        )

    def list_sales(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        product_id: UUID | None = None,
        batch_id: UUID | None = None,
        transaction_id: UUID | None = None,
    ) -> list[SaleInfo]:
        with self._unit_of_work("list_sales") as session:
            return SaleSelector(session).list_sales(
                start_date, end_date, product_id, batch_id, transaction_id
            )

    # Reports

    def refresh_draft_report(self, year: int, month: int) -> MonthlyReportInfo:
        with self._unit_of_work("refresh_draft_report") as session:
            return PeriodReportBuilder(session, self._clock, self._settings).refresh_draft(
                year, month
            )

    def finalize_month(self, year: int, month: int) -> MonthlyReportInfo:
        return self._rollover.finalize_month(year, month)

    def get_report(self, year: int, month: int) -> MonthlyReportInfo:
        with self._unit_of_work("get_report") as session:
            return ReportSelector(session).get_report(year, month)

    def list_reports(
        self,
        year: int | None = None,
        finalized: bool | None = None,
    ) -> list[MonthlyReportInfo]:
        with self._unit_of_work("list_reports") as session:
            return ReportSelector(session).list_reports(year, finalized)

    def export_report_rows(self, year: int, month: int) -> list[dict[str, Any]]:
        with self._unit_of_work("export_report_rows") as session:
            return ReportSelector(session).export_rows(year, month)

    def verify_report_hash(self, year: int, month: int) -> bool:
        with self._unit_of_work("verify_report_hash") as session:
            return ReportSelector(session).verify_report_hash(year, month)

    # Reconciliation

    def verify_inventory(self, *, repair: bool = False) -> InventoryVerification:
        with self._unit_of_work("verify_inventory") as session:
            return InventoryReconciliationService(session).verify_inventory(repair=repair)
