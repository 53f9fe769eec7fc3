"""
parts_ledger.engines.period_report -- monthly report aggregation.

Responsibility:
    Compute one calendar month's per-product figures (starting, purchased,
    sold and ending quantity; revenue, cost, profit, margin; FIFO value of
    the stock left at month end) from snapshots of batches and sales, and
    render them as the ``reportData`` payload.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  PeriodReportBuilder loads
    the snapshots and persists the result.

Invariants enforced:
    - endingQuantity = startingQuantity + purchasedQuantity - soldQuantity.
    - endingQuantity is cross-checked against the batches themselves: the
      units each batch still held at month end (initial quantity minus the
      sales drawn from it up to month end).  Disagreements are returned as
      mismatches, never silently corrected.
    - cost comes from the sale's purchase_price snapshot, not the live batch.
    - profitMargin = profit / revenue, 0 when revenue is 0.
    - Ending inventory is valued at each remaining batch's own unit cost.
    - Output ordering is deterministic (products by sku, batches by FIFO key),
      so identical inputs render identical payloads.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from parts_ledger.db.types import (
    MONEY_DECIMAL_PLACES,
    RATIO_DECIMAL_PLACES,
    ZERO,
    round_money,
    round_ratio,
    safe_ratio,
)
from parts_ledger.domain.periods import LedgerPeriod


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: UUID
    sku: str
    name: str
    category: str


@dataclass(frozen=True)
class BatchSnapshot:
    batch_id: UUID
    product_id: UUID
    purchase_date: date
    receipt_seq: int
    purchase_price: Decimal
    initial_quantity: int
    current_quantity: int
    supplier: str | None = None


@dataclass(frozen=True)
class SaleSnapshot:
    product_id: UUID
    batch_id: UUID
    quantity: int
    sale_price: Decimal
    purchase_price: Decimal
    sale_date: date

    @property
    def revenue(self) -> Decimal:
        return self.quantity * self.sale_price

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.purchase_price


@dataclass(frozen=True)
class BatchPeriodSummary:
    batch_id: UUID
    purchase_date: date
    purchase_price: Decimal
    initial_quantity: int
    remaining_quantity: int
    supplier: str | None


@dataclass(frozen=True)
class ProductPeriodFigures:
    product: ProductSnapshot
    starting_quantity: int
    purchased_quantity: int
    sold_quantity: int
    revenue: Decimal
    cost: Decimal
    # Sum of what each batch still held at period end
    batch_ending_quantity: int
    ending_inventory_value: Decimal
    batches: tuple[BatchPeriodSummary, ...] = ()

    @property
    def ending_quantity(self) -> int:
        return self.starting_quantity + self.purchased_quantity - self.sold_quantity

    @property
    def profit(self) -> Decimal:
        return self.revenue - self.cost

    @property
    def reconciles(self) -> bool:
        return self.ending_quantity == self.batch_ending_quantity


@dataclass(frozen=True)
class PeriodFigures:
    period: LedgerPeriod
    products: tuple[ProductPeriodFigures, ...]
    money_places: int = MONEY_DECIMAL_PLACES
    margin_places: int = RATIO_DECIMAL_PLACES
    mismatches: tuple[dict[str, Any], ...] = field(default=())

    @property
    def total_starting(self) -> int:
        return sum(p.starting_quantity for p in self.products)

    @property
    def total_ending(self) -> int:
        return sum(p.ending_quantity for p in self.products)

    @property
    def total_purchased(self) -> int:
        return sum(p.purchased_quantity for p in self.products)

    @property
    def total_sold(self) -> int:
        return sum(p.sold_quantity for p in self.products)

    @property
    def total_revenue(self) -> Decimal:
        return sum((p.revenue for p in self.products), ZERO)

    @property
    def total_cost(self) -> Decimal:
        return sum((p.cost for p in self.products), ZERO)

    @property
    def total_profit(self) -> Decimal:
        return self.total_revenue - self.total_cost

    @property
    def average_profit_margin(self) -> Decimal:
        return safe_ratio(self.total_profit, self.total_revenue, self.margin_places)

    @property
    def ending_inventory_value(self) -> Decimal:
        return sum((p.ending_inventory_value for p in self.products), ZERO)

    def _money(self, value: Decimal) -> str:
        return str(round_money(value, self.money_places))

    def _ratio(self, value: Decimal) -> str:
        return str(round_ratio(value, self.margin_places))

    def to_payload(self) -> dict[str, Any]:
        """
        Render the ``reportData`` structure.

        Money and margins are decimal strings; quantities are ints.  The
        payload contains no timestamps, so rebuilding an unchanged month
        yields an identical payload.
        """
        products = []
        for p in self.products:
            products.append(
                {
                    "productId": str(p.product.product_id),
                    "productName": p.product.name,
                    "sku": p.product.sku,
                    "category": p.product.category,
                    "startingQuantity": p.starting_quantity,
                    "purchasedQuantity": p.purchased_quantity,
                    "soldQuantity": p.sold_quantity,
                    "endingQuantity": p.ending_quantity,
                    "revenue": self._money(p.revenue),
                    "cost": self._money(p.cost),
                    "profit": self._money(p.profit),
                    "profitMargin": self._ratio(
                        safe_ratio(p.profit, p.revenue, self.margin_places)
                    ),
                    "endingInventoryValue": self._money(p.ending_inventory_value),
                    "batches": [
                        {
                            "batchId": str(b.batch_id),
                            "purchaseDate": b.purchase_date.isoformat(),
                            "purchasePrice": self._money(b.purchase_price),
                            "initialQuantity": b.initial_quantity,
                            "remainingQuantity": b.remaining_quantity,
                            "supplier": b.supplier,
                        }
                        for b in p.batches
                    ],
                }
            )

        return {
            "year": self.period.year,
            "month": self.period.month,
            "startDate": self.period.start_date.isoformat(),
            "endDate": self.period.end_date.isoformat(),
            "products": products,
            "totalStartingInventory": self.total_starting,
            "totalPurchased": self.total_purchased,
            "totalSold": self.total_sold,
            "totalEndingInventory": self.total_ending,
            "totalRevenue": self._money(self.total_revenue),
            "totalCost": self._money(self.total_cost),
            "totalProfit": self._money(self.total_profit),
            "averageProfitMargin": self._ratio(self.average_profit_margin),
            "endingInventoryValue": self._money(self.ending_inventory_value),
        }


def aggregate_period(
    period: LedgerPeriod,
    products: Iterable[ProductSnapshot],
    batches: Iterable[BatchSnapshot],
    sales: Iterable[SaleSnapshot],
    carried_forward: Mapping[UUID, int] | None = None,
    money_places: int = MONEY_DECIMAL_PLACES,
    margin_places: int = RATIO_DECIMAL_PLACES,
) -> PeriodFigures:
    """
    Aggregate one month.

    Args:
        period: The month being reported.
        products: Every product to report on.
        batches: Batches purchased on or before the period end.
        sales: Sales dated on or before the period end.
        carried_forward: Ending quantity per product from the previous
            finalized report.  Products missing from it start from history:
            units purchased before the period minus units sold before it.
        money_places / margin_places: rounding of the rendered payload.

    Later batches or sales are ignored, so a closed month can be rebuilt.
    """
    start, end = period.start_date, period.end_date
    carried = carried_forward or {}

    batches_by_product: dict[UUID, list[BatchSnapshot]] = defaultdict(list)
    for b in batches:
        if b.purchase_date <= end:
            batches_by_product[b.product_id].append(b)

    sales_by_product: dict[UUID, list[SaleSnapshot]] = defaultdict(list)
    sold_through_end_by_batch: dict[UUID, int] = defaultdict(int)
    for s in sales:
        if s.sale_date <= end:
            sales_by_product[s.product_id].append(s)
            sold_through_end_by_batch[s.batch_id] += s.quantity

    figures: list[ProductPeriodFigures] = []
    mismatches: list[dict[str, Any]] = []

    for product in sorted(products, key=lambda p: p.sku):
        product_batches = sorted(
            batches_by_product.get(product.product_id, []),
            key=lambda b: (b.purchase_date, b.receipt_seq),
        )
        product_sales = sales_by_product.get(product.product_id, [])

        purchased = sum(b.initial_quantity for b in product_batches if b.purchase_date >= start)
        in_period_sales = [s for s in product_sales if s.sale_date >= start]
        sold = sum(s.quantity for s in in_period_sales)

        if product.product_id in carried:
            starting = carried[product.product_id]
        else:
            purchased_before = sum(
                b.initial_quantity for b in product_batches if b.purchase_date < start
            )
            sold_before = sum(s.quantity for s in product_sales if s.sale_date < start)
            starting = purchased_before - sold_before

        revenue = sum((s.revenue for s in in_period_sales), ZERO)
        cost = sum((s.cost for s in in_period_sales), ZERO)

        summaries: list[BatchPeriodSummary] = []
        batch_ending = 0
        inventory_value = ZERO
        for b in product_batches:
            remaining = b.initial_quantity - sold_through_end_by_batch.get(b.batch_id, 0)
            batch_ending += remaining
            inventory_value += remaining * b.purchase_price
            if remaining > 0 or b.purchase_date >= start:
                summaries.append(
                    BatchPeriodSummary(
                        batch_id=b.batch_id,
                        purchase_date=b.purchase_date,
                        purchase_price=b.purchase_price,
                        initial_quantity=b.initial_quantity,
                        remaining_quantity=remaining,
                        supplier=b.supplier,
                    )
                )

        line = ProductPeriodFigures(
            product=product,
            starting_quantity=starting,
            purchased_quantity=purchased,
            sold_quantity=sold,
            revenue=revenue,
            cost=cost,
            batch_ending_quantity=batch_ending,
            ending_inventory_value=inventory_value,
            batches=tuple(summaries),
        )
        if not line.reconciles:
            mismatches.append(
                {
                    "productId": str(product.product_id),
                    "sku": product.sku,
                    "endingQuantity": line.ending_quantity,
                    "batchQuantity": batch_ending,
                }
            )
        figures.append(line)

    return PeriodFigures(
        period=period,
        products=tuple(figures),
        money_places=money_places,
        margin_places=margin_places,
        mismatches=tuple(mismatches),
    )
