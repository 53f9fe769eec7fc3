"""
Module: parts_ledger.models.catalog
Responsibility: ORM persistence for categories and products.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - sku is unique across products (uq_product_sku).
    - total_stock is a cached counter equal to the sum of current_quantity
      over the product's batches.  It is written only by the Batch Store and
      the Sale Recorder, inside the same transaction that moves the batches.

Failure modes:
    - IntegrityError on duplicate SKU or category name.  CatalogService
      flushes inside a savepoint and re-raises it as DuplicateSkuError or
      DuplicateCategoryError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parts_ledger.db.base import TimestampedBase, UUIDString


class Category(TimestampedBase):
    """Product category (brakes, filters, ...)."""

    __tablename__ = "categories"

    __table_args__ = (UniqueConstraint("name", name="uq_category_name"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class Product(TimestampedBase):
    """
    Sellable part identified by SKU.

    Contract:
        total_stock mirrors the batches.  It is never decremented directly
        by callers; SaleRecorder recomputes it from the batches after every
        allocation and BatchStore adjusts it on batch creation and deletion.

    Non-goals:
        - Does NOT hold cost; cost lives on each Batch.
    """

    __tablename__ = "products"

    __table_args__ = (UniqueConstraint("sku", name="uq_product_sku"),)

    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=True,
    )

    # List price; each sale records its own unit price
    selling_price: Mapped[Decimal] = mapped_column(nullable=False)

    min_stock_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    total_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    category: Mapped[Category | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Product {self.sku}: stock={self.total_stock}>"
