"""
RolloverService -- monthly finalization state machine.

    Open --finalize_month()--> Finalized      (one-way, no reopen)

Responsibility:
    Closes the open month: takes the exclusive lock on the ledger state,
    checks the preconditions, builds the authoritative report snapshot,
    stores it finalized and opens the next month.  All of it runs in one
    transaction; any failure leaves the month open and nothing written.

    Batches are not copied or touched.  Unsold quantities simply carry on
    and fall into later months by their dates.

Invariants enforced:
    - Months close in strict chronological order (NotCurrentPeriodError).
    - A month is finalized at most once (AlreadyFinalizedError).
    - A sale cannot commit into the month being finalized: sales hold a
      shared lock on the ledger state row, finalization an exclusive one.
    - Retrying after a failed finalization is safe: the failed attempt
      rolled back completely.

Failure modes:
    - InvalidPeriodError, LedgerNotInitializedError, AlreadyFinalizedError,
      NotCurrentPeriodError, StockReconciliationError.
    - TransactionFailedError for storage failures.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from parts_ledger.config import LedgerSettings
from parts_ledger.db.engine import session_scope
from parts_ledger.domain.clock import Clock, SystemClock
from parts_ledger.domain.dtos import MonthlyReportInfo
from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.exceptions import (
    AlreadyFinalizedError,
    NotCurrentPeriodError,
    PartsLedgerError,
    TransactionFailedError,
)
from parts_ledger.logging_config import LogContext, get_logger
from parts_ledger.services.ledger_state_service import LedgerStateService
from parts_ledger.services.report_builder import PeriodReportBuilder

logger = get_logger("services.rollover")


class RolloverService:
    """Finalizes months.  Owns its transaction boundary."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()

    def finalize_month(self, year: int, month: int) -> MonthlyReportInfo:
        """
        Finalize (year, month) and open the following month.

        Returns the finalized report.
        """
        period = LedgerPeriod(year, month)

        with LogContext.bind(period=period):
            t0 = time.monotonic()
            try:
                info, next_period = self._finalize(period)
            except PartsLedgerError as exc:
                logger.warning("finalize_rejected", extra={"error_code": exc.code})
                raise
            except DBAPIError as exc:
                logger.error("finalize_transaction_failed", extra={"error": str(exc.orig)})
                raise TransactionFailedError("finalize_month", str(exc.orig)) from exc

            logger.info(
                "month_finalized",
                extra={
                    "next_period": next_period.code,
                    "total_sales": info.total_sales,
                    "total_profit": info.total_profit,
                    "report_hash": info.report_hash,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return info

    def _finalize(self, period: LedgerPeriod) -> tuple[MonthlyReportInfo, LedgerPeriod]:
        with session_scope(self._session_factory) as session:
            ledger_state = LedgerStateService(session)
            open_period = ledger_state.require_open_period(lock=True, exclusive=True)

            builder = PeriodReportBuilder(session, self._clock, self._settings)
            existing = builder.get_report(period)
            if existing is not None and existing.is_finalized:
                raise AlreadyFinalizedError(period.code)
            if period != open_period:
                raise NotCurrentPeriodError(period.code, open_period.code)

            figures, payload = builder.build(period.year, period.month)
            report = builder.save_report(figures, payload, finalize=True)
            next_period = ledger_state.advance(period)
            return MonthlyReportInfo.from_model(report), next_period
