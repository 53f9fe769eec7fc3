"""
SaleRecorder -- records a sale as one atomic unit of work.

Responsibility:
    Validates the request, then in a single transaction: checks the sale
    date against the open period, locks the product and its active batches,
    plans the FIFO allocation, decrements each batch touched, writes one Sale
    row per batch and recomputes the product's total_stock.

Architecture position:
    Services -- orchestrator.  Owns its transaction boundary through the
    session factory it is given; every attempt uses a fresh session.

Invariants enforced:
    - All-or-nothing: a failed attempt leaves no Sale rows and no batch
      decrements behind (rollback).
    - No oversell: two concurrent sales of the last units yield exactly one
      success.  Row locks (PostgreSQL) or BEGIN IMMEDIATE (SQLite) serialize
      the read-then-decrement; the batch version column catches anything
      that slips past them.
    - Conservation: total_stock after the sale equals both the sum of the
      batches' current_quantity and the previous total_stock minus the
      quantity sold.
    - Sale.purchase_price is the batch unit cost at allocation time.

Failure modes:
    - InvalidQuantityError / InvalidPriceError before any storage access.
    - ProductNotFoundError, InsufficientStockError, ClosedPeriodError,
      FuturePeriodError: propagated immediately, never retried.
    - ConcurrentStockConflictError after max_allocation_attempts lost races.
    - TransactionFailedError for connection, lock-timeout and other DBAPI
      failures.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from parts_ledger.config import LedgerSettings
from parts_ledger.db.engine import session_scope
from parts_ledger.db.types import safe_ratio
from parts_ledger.domain.dtos import SaleInfo
from parts_ledger.domain.validation import (
    validate_posting_date,
    validate_price,
    validate_quantity,
)
from parts_ledger.engines.fifo import AllocationPlan, BatchLayer, plan_fifo_allocation
from parts_ledger.exceptions import (
    ConcurrentStockConflictError,
    InsufficientBatchQuantityError,
    PartsLedgerError,
    TransactionFailedError,
)
from parts_ledger.logging_config import LogContext, get_logger
from parts_ledger.models.sale import Sale
from parts_ledger.services.batch_store import BatchStore
from parts_ledger.services.catalog_service import CatalogService
from parts_ledger.services.ledger_state_service import LedgerStateService

logger = get_logger("services.sale_recorder")


def compute_sale_figures(
    quantity: int,
    sale_price: Decimal,
    unit_cost: Decimal,
    margin_places: int,
) -> tuple[Decimal, Decimal]:
    """
    profit = quantity * (sale_price - unit_cost)
    profit_margin = profit / (quantity * sale_price)
    """
    profit = quantity * (sale_price - unit_cost)
    margin = safe_ratio(profit, quantity * sale_price, margin_places)
    return profit, margin


class SaleRecorder:
    """
    Records FIFO-allocated sales.

    Usage:
        recorder = SaleRecorder(get_session_factory(), settings)
        lines = recorder.record_sale(product_id, 7, Decimal("5.00"), date(2025, 1, 15))
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: LedgerSettings | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()

    def record_sale(
        self,
        product_id: UUID,
        quantity: int,
        sale_price: Decimal | int | str,
        sale_date: date,
        customer_id: str | None = None,
        invoice_number: str | None = None,
    ) -> list[SaleInfo]:
        """
        Sell ``quantity`` units of ``product_id`` at ``sale_price`` each.

        Returns one SaleInfo per batch touched, in FIFO order, all sharing
        one transaction_id.
        """
        quantity = validate_quantity(quantity)
        price = validate_price(sale_price, "sale_price", allow_zero=False)
        sale_date = validate_posting_date(sale_date, "sale_date")

        transaction_id = uuid4()
        max_attempts = self._settings.max_allocation_attempts

        with LogContext.bind(correlation_id=transaction_id, product_id=product_id):
            t0 = time.monotonic()
            for attempt in range(1, max_attempts + 1):
                try:
                    lines = self._attempt(
                        transaction_id,
                        product_id,
                        quantity,
                        price,
                        sale_date,
                        customer_id,
                        invoice_number,
                    )
                except (StaleDataError, InsufficientBatchQuantityError) as exc:
                    logger.warning(
                        "allocation_conflict_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "reason": type(exc).__name__,
                        },
                    )
                    continue
                except PartsLedgerError as exc:
                    logger.warning(
                        "sale_rejected",
                        extra={"error_code": exc.code, "requested": quantity},
                    )
                    raise
                except DBAPIError as exc:
                    logger.error(
                        "sale_transaction_failed",
                        extra={"attempt": attempt, "error": str(exc.orig)},
                    )
                    raise TransactionFailedError("record_sale", str(exc.orig)) from exc

                logger.info(
                    "sale_recorded",
                    extra={
                        "quantity": quantity,
                        "sale_price": price,
                        "lines": len(lines),
                        "attempt": attempt,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return lines

            logger.error(
                "allocation_conflict_exhausted",
                extra={"attempts": max_attempts, "requested": quantity},
            )
            raise ConcurrentStockConflictError(str(product_id), max_attempts)

    def _attempt(
        self,
        transaction_id: UUID,
        product_id: UUID,
        quantity: int,
        sale_price: Decimal,
        sale_date: date,
        customer_id: str | None,
        invoice_number: str | None,
    ) -> list[SaleInfo]:
        with session_scope(self._session_factory) as session:
            ledger_state = LedgerStateService(session)
            catalog = CatalogService(session)
            store = BatchStore(session, catalog=catalog, ledger_state=ledger_state)

            # Lock order: ledger state, product, batches
            ledger_state.ensure_posting_allowed(sale_date)
            product = catalog.get_product(product_id, lock=True)
            stock_before = product.total_stock

            batches = store.list_active_batches_for_product(product.id, lock=True)
            plan = plan_fifo_allocation(
                product.id,
                [
                    BatchLayer(
                        batch_id=b.id,
                        purchase_date=b.purchase_date,
                        receipt_seq=b.receipt_seq,
                        unit_cost=b.purchase_price,
                        available=b.current_quantity,
                    )
                    for b in batches
                ],
                quantity,
            )

            sales = self._apply_plan(
                session,
                store,
                plan,
                transaction_id,
                sale_price,
                sale_date,
                customer_id,
                invoice_number,
            )

            stock_after = store.recompute_total_stock(product)
            if stock_after != stock_before - quantity:
                logger.warning(
                    "total_stock_drift_corrected",
                    extra={
                        "cached_before": stock_before,
                        "sold": quantity,
                        "batch_total": stock_after,
                    },
                )
            session.flush()
            return [SaleInfo.from_model(sale) for sale in sales]

    def _apply_plan(
        self,
        session: Session,
        store: BatchStore,
        plan: AllocationPlan,
        transaction_id: UUID,
        sale_price: Decimal,
        sale_date: date,
        customer_id: str | None,
        invoice_number: str | None,
    ) -> list[Sale]:
        sales: list[Sale] = []
        for line_no, allocation in enumerate(plan.allocations, start=1):
            store.decrement_batch(allocation.batch_id, allocation.quantity)
            profit, margin = compute_sale_figures(
                allocation.quantity,
                sale_price,
                allocation.unit_cost,
                self._settings.margin_places,
            )
            sale = Sale(
                product_id=plan.product_id,
                batch_id=allocation.batch_id,
                transaction_id=transaction_id,
                line_no=line_no,
                quantity=allocation.quantity,
                sale_price=sale_price,
                purchase_price=allocation.unit_cost,
                profit=profit,
                profit_margin=margin,
                sale_date=sale_date,
                customer_id=customer_id,
                invoice_number=invoice_number,
            )
            session.add(sale)
            sales.append(sale)
        session.flush()
        return sales
