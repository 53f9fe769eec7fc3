"""
Module: parts_ledger.models.ledger_state
Responsibility: The single-row record of which month is open for postings.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one row exists (fixed singleton key).
    - The open month only moves forward, one month per finalization.
    - Sales read this row under a lock and finalization updates it under a
      lock, so no sale commits into a month while that month is closing.
"""

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from parts_ledger.db.base import TimestampedBase

LEDGER_STATE_KEY = "ledger"


class LedgerState(TimestampedBase):
    """Currently open (year, month) of the ledger."""

    __tablename__ = "ledger_state"

    __table_args__ = (
        CheckConstraint("open_month BETWEEN 1 AND 12", name="ck_ledger_state_month"),
    )

    # Singleton key
    key: Mapped[str] = mapped_column(
        String(20),
        default=LEDGER_STATE_KEY,
        nullable=False,
        unique=True,
    )

    open_year: Mapped[int] = mapped_column(Integer, nullable=False)

    open_month: Mapped[int] = mapped_column(Integer, nullable=False)

    # Bumped on every finalization
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<LedgerState open={self.open_year:04d}-{self.open_month:02d}>"
