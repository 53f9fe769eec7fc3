"""
Module: parts_ledger.models.sale
Responsibility: ORM persistence for sale lines.  One row per batch touched
    by a sale; rows of the same sale share transaction_id.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - Sales are append-only: no UPDATE or DELETE through the ORM
      (db/immutability.py).  Corrections are new compensating sales.
    - purchase_price is the batch unit cost copied at allocation time, a
      historical snapshot rather than a live reference.
    - profit = quantity * (sale_price - purchase_price).
    - profit_margin = profit / (quantity * sale_price), a fraction.
    - (transaction_id, line_no) is unique; line_no follows FIFO order.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from parts_ledger.db.base import Base, UUIDString


class Sale(Base):
    """
    Immutable record of units sold from one batch.

    Non-goals:
        - Does NOT reference the batch for cost at read time; the snapshot
          in purchase_price is authoritative.
    """

    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint("transaction_id", "line_no", name="uq_sale_transaction_line"),
        Index("idx_sale_date", "sale_date"),
        Index("idx_sale_product_date", "product_id", "sale_date"),
        Index("idx_sale_batch", "batch_id"),
        CheckConstraint("quantity > 0", name="ck_sale_quantity_positive"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Shared by every line of one record_sale call
    transaction_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    sale_price: Mapped[Decimal] = mapped_column(nullable=False)

    purchase_price: Mapped[Decimal] = mapped_column(nullable=False)

    profit: Mapped[Decimal] = mapped_column(nullable=False)

    profit_margin: Mapped[Decimal] = mapped_column(nullable=False)

    sale_date: Mapped[date] = mapped_column(Date, nullable=False)

    customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Sale {self.transaction_id}#{self.line_no}: {self.quantity} x {self.sale_price}>"

    @property
    def revenue(self) -> Decimal:
        return self.quantity * self.sale_price

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.purchase_price
