"""
LedgerStateService -- the open period and the posting-date rule.

Responsibility:
    Owns the single ``ledger_state`` row naming the month that accepts
    postings.  Every sale and every purchase is checked against it:

        posting month <  open month  ->  ClosedPeriodError
        posting month == open month  ->  accepted
        posting month >  open month  ->  FuturePeriodError

    Finalization advances the open month by exactly one.

Locking:
    Postings read the row with a shared lock (FOR SHARE); finalization reads
    it with an exclusive lock (FOR UPDATE).  On PostgreSQL a sale therefore
    cannot commit into a month while that month is being finalized.  On
    SQLite every transaction already holds the database write lock
    (BEGIN IMMEDIATE, see db/engine.py).

Failure modes:
    - LedgerNotInitializedError from require_open_period() when no row exists.
    - NotCurrentPeriodError when open_ledger() names a different month than
      the one already open.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.exceptions import (
    ClosedPeriodError,
    FuturePeriodError,
    LedgerNotInitializedError,
    NotCurrentPeriodError,
)
from parts_ledger.logging_config import get_logger
from parts_ledger.models.ledger_state import LEDGER_STATE_KEY, LedgerState
from parts_ledger.services.base import BaseService

logger = get_logger("services.ledger_state")


class LedgerStateService(BaseService):
    """Reads and advances the open period.  Flush-only."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_state(self, *, lock: bool = False, exclusive: bool = False) -> LedgerState | None:
        stmt = select(LedgerState).where(LedgerState.key == LEDGER_STATE_KEY)
        if lock:
            stmt = stmt.with_for_update(read=not exclusive)
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def open_period(self) -> LedgerPeriod | None:
        state = self.get_state()
        if state is None:
            return None
        return LedgerPeriod(state.open_year, state.open_month)

    def require_open_period(self, *, lock: bool = False, exclusive: bool = False) -> LedgerPeriod:
        state = self.get_state(lock=lock, exclusive=exclusive)
        if state is None:
            raise LedgerNotInitializedError()
        return LedgerPeriod(state.open_year, state.open_month)

    def open_ledger(self, year: int, month: int) -> LedgerPeriod:
        """
        Establish (year, month) as the first open period.

        Idempotent for the month already open.
        """
        period = LedgerPeriod(year, month)
        state = self.get_state(lock=True, exclusive=True)
        if state is not None:
            current = LedgerPeriod(state.open_year, state.open_month)
            if current != period:
                raise NotCurrentPeriodError(period.code, current.code)
            return current
        return self._create(period)

    def _create(self, period: LedgerPeriod) -> LedgerPeriod:
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                LedgerState(
                    key=LEDGER_STATE_KEY,
                    open_year=period.year,
                    open_month=period.month,
                    version=0,
                )
            )
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            # Opened concurrently by another transaction
            savepoint.rollback()
            return self.require_open_period(lock=True)

        logger.info("ledger_opened", extra={"period": period.code})
        return period

    def ensure_posting_allowed(self, posting_date: date) -> LedgerPeriod:
        """
        Check ``posting_date`` against the open month under a shared lock.

        The first posting ever opens the ledger at its own month.

        Raises:
            ClosedPeriodError: the date falls in a finalized month.
            FuturePeriodError: the date is after the open month.
        """
        posting_period = LedgerPeriod.from_date(posting_date)
        state = self.get_state(lock=True)
        if state is None:
            return self._create(posting_period)

        open_period = LedgerPeriod(state.open_year, state.open_month)
        if posting_period < open_period:
            logger.warning(
                "posting_rejected_closed_period",
                extra={"posting_date": posting_date, "open_period": open_period.code},
            )
            raise ClosedPeriodError(posting_period.code, str(posting_date), open_period.code)
        if posting_period > open_period:
            logger.warning(
                "posting_rejected_future_period",
                extra={"posting_date": posting_date, "open_period": open_period.code},
            )
            raise FuturePeriodError(str(posting_date), open_period.code)
        return open_period

    def advance(self, closing: LedgerPeriod) -> LedgerPeriod:
        """
        Move the open month from ``closing`` to the next one.

        The caller holds the exclusive lock taken by require_open_period().
        """
        state = self.get_state(lock=True, exclusive=True)
        if state is None:
            raise LedgerNotInitializedError()
        current = LedgerPeriod(state.open_year, state.open_month)
        if current != closing:
            raise NotCurrentPeriodError(closing.code, current.code)

        following = closing.next()
        state.open_year = following.year
        state.open_month = following.month
        state.version += 1
        self.session.flush()
        logger.info(
            "open_period_advanced",
            extra={"closed_period": closing.code, "open_period": following.code},
        )
        return following
