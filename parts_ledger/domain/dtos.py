"""
DTOs -- immutable records handed across the service boundary.

Services and selectors never return ORM entities to callers: every listing
and every recorded sale comes back as one of these frozen dataclasses, so
callers cannot mutate ledger rows by accident and can use the results after
the session is closed.

from_model() class methods are boundary converters, only invoked from the
service and selector layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from parts_ledger.models.batch import Batch as BatchModel
    from parts_ledger.models.catalog import Category as CategoryModel
    from parts_ledger.models.catalog import Product as ProductModel
    from parts_ledger.models.monthly_report import MonthlyReport as MonthlyReportModel
    from parts_ledger.models.sale import Sale as SaleModel

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class CategoryRef:
    """
    Typed category reference: id plus resolved name.

    Products without a category carry ``CategoryRef(None, "Uncategorized")``
    so readers never branch on the shape of the category field.
    """

    id: UUID | None
    name: str

    @classmethod
    def from_model(cls, model: CategoryModel | None) -> CategoryRef:
        if model is None:
            return cls(id=None, name=UNCATEGORIZED)
        return cls(id=model.id, name=model.name)


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    sku: str
    name: str
    category: CategoryRef
    selling_price: Decimal
    min_stock_level: int
    total_stock: int
    description: str | None

    @classmethod
    def from_model(cls, model: ProductModel) -> ProductInfo:
        return cls(
            id=model.id,
            sku=model.sku,
            name=model.name,
            category=CategoryRef.from_model(model.category),
            selling_price=model.selling_price,
            min_stock_level=model.min_stock_level,
            total_stock=model.total_stock,
            description=model.description,
        )


@dataclass(frozen=True)
class BatchInfo:
    id: UUID
    product_id: UUID
    purchase_date: date
    purchase_price: Decimal
    initial_quantity: int
    current_quantity: int
    status: str
    supplier: str | None
    invoice_number: str | None
    notes: str | None
    receipt_seq: int

    @classmethod
    def from_model(cls, model: BatchModel) -> BatchInfo:
        return cls(
            id=model.id,
            product_id=model.product_id,
            purchase_date=model.purchase_date,
            purchase_price=model.purchase_price,
            initial_quantity=model.initial_quantity,
            current_quantity=model.current_quantity,
            status=model.status,
            supplier=model.supplier,
            invoice_number=model.invoice_number,
            notes=model.notes,
            receipt_seq=model.receipt_seq,
        )


@dataclass(frozen=True)
class BatchQuantitySummary:
    """Per-product roll-up of batch quantities."""

    product_id: UUID
    batch_count: int
    active_batch_count: int
    total_current_quantity: int
    total_initial_quantity: int


@dataclass(frozen=True)
class SaleInfo:
    """
    One sale line.  Lines of the same sale share ``transaction_id`` and are
    numbered by ``line_no`` in FIFO order.
    """

    id: UUID
    transaction_id: UUID
    line_no: int
    product_id: UUID
    batch_id: UUID
    quantity: int
    sale_price: Decimal
    purchase_price: Decimal
    profit: Decimal
    profit_margin: Decimal
    sale_date: date
    customer_id: str | None
    invoice_number: str | None

    @property
    def revenue(self) -> Decimal:
        return self.quantity * self.sale_price

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.purchase_price

    @classmethod
    def from_model(cls, model: SaleModel) -> SaleInfo:
        return cls(
            id=model.id,
            transaction_id=model.transaction_id,
            line_no=model.line_no,
            product_id=model.product_id,
            batch_id=model.batch_id,
            quantity=model.quantity,
            sale_price=model.sale_price,
            purchase_price=model.purchase_price,
            profit=model.profit,
            profit_margin=model.profit_margin,
            sale_date=model.sale_date,
            customer_id=model.customer_id,
            invoice_number=model.invoice_number,
        )


@dataclass(frozen=True)
class MonthlyReportInfo:
    year: int
    month: int
    total_sales: Decimal
    total_profit: Decimal
    average_profit_margin: Decimal
    is_finalized: bool
    report_data: dict[str, Any]
    report_hash: str
    generated_at: datetime
    finalized_at: datetime | None

    @property
    def period_code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def from_model(cls, model: MonthlyReportModel) -> MonthlyReportInfo:
        return cls(
            year=model.year,
            month=model.month,
            total_sales=model.total_sales,
            total_profit=model.total_profit,
            average_profit_margin=model.average_profit_margin,
            is_finalized=model.is_finalized,
            report_data=model.report_data,
            report_hash=model.report_hash,
            generated_at=model.generated_at,
            finalized_at=model.finalized_at,
        )


@dataclass(frozen=True)
class StockMismatch:
    """A product whose cached total_stock disagrees with its batches."""

    product_id: UUID
    sku: str
    cached_total_stock: int
    batch_total: int


@dataclass(frozen=True)
class BatchBoundsViolation:
    """A batch outside 0 <= current_quantity <= initial_quantity."""

    batch_id: UUID
    product_id: UUID
    current_quantity: int
    initial_quantity: int


@dataclass(frozen=True)
class InventoryVerification:
    """Result of a stock reconciliation run."""

    products_checked: int
    mismatches: tuple[StockMismatch, ...]
    bounds_violations: tuple[BatchBoundsViolation, ...]
    repaired: bool

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches and not self.bounds_violations
