"""
Module: parts_ledger.models.batch
Responsibility: ORM persistence for purchase batches, the only shared
    mutable resource of the ledger.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - 0 <= current_quantity <= initial_quantity (CHECK constraints plus the
      ORM listener in db/immutability.py).
    - initial_quantity, purchase_price, purchase_date and product_id are
      frozen after insert.
    - status is derived: "depleted" iff current_quantity == 0.  A depleted
      batch is never replenished.
    - version is the mapper version_id_col.  Every UPDATE carries
      ``WHERE version = :old``, so a concurrent decrement of the same row
      raises StaleDataError instead of silently overwriting.

Failure modes:
    - StaleDataError when the row changed since it was read.
    - ImmutabilityViolationError on frozen-field updates or replenishment.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parts_ledger.db.base import TimestampedBase, UUIDString
from parts_ledger.models.catalog import Product


class BatchStatus(str, Enum):
    """Derived lifecycle state of a batch.  ACTIVE -> DEPLETED only."""

    ACTIVE = "active"
    DEPLETED = "depleted"


class Batch(TimestampedBase):
    """
    A discrete purchase lot of one product.

    Contract:
        Batches are consumed oldest-first by (purchase_date, receipt_seq).
        receipt_seq comes from the ``batch_receipt`` sequence and breaks
        ties between batches bought on the same day.

    Guarantees:
        - current_quantity starts equal to initial_quantity.
        - current_quantity only ever decreases (apply_decrement()).
    """

    __tablename__ = "batches"

    __table_args__ = (
        # Query: active batches of a product in FIFO order
        Index("idx_batch_product_fifo", "product_id", "purchase_date", "receipt_seq"),
        Index("idx_batch_status", "status"),
        CheckConstraint("initial_quantity > 0", name="ck_batch_initial_positive"),
        CheckConstraint("current_quantity >= 0", name="ck_batch_current_non_negative"),
        CheckConstraint(
            "current_quantity <= initial_quantity",
            name="ck_batch_current_le_initial",
        ),
        CheckConstraint("purchase_price >= 0", name="ck_batch_price_non_negative"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Unit cost
    purchase_price: Mapped[Decimal] = mapped_column(nullable=False)

    initial_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    current_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=BatchStatus.ACTIVE.value,
        nullable=False,
    )

    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Creation order, from the batch_receipt sequence
    receipt_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    product: Mapped[Product] = relationship()

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Batch {self.id}: {self.current_quantity}/{self.initial_quantity} "
            f"@ {self.purchase_price}>"
        )

    @property
    def is_depleted(self) -> bool:
        return self.current_quantity == 0

    def apply_decrement(self, amount: int) -> None:
        """Remove ``amount`` units and re-derive status.  Caller validates."""
        self.current_quantity = self.current_quantity - amount
        self.status = (
            BatchStatus.DEPLETED.value
            if self.current_quantity == 0
            else BatchStatus.ACTIVE.value
        )
