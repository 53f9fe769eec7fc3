"""
Module: parts_ledger.models.sequence_counter
Responsibility: Named monotonic counters, allocated by SequenceService under
    a row lock.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from parts_ledger.db.base import Base


class SequenceCounter(Base):
    """One row per named sequence holding its last allocated value."""

    __tablename__ = "sequence_counters"

    # Sequence name (e.g. "batch_receipt")
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
