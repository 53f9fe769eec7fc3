"""
parts_ledger.engines.fifo -- FIFO sale allocation planner.

Responsibility:
    Turn "sell N units of product P" into an ordered list of per-batch
    allocations, oldest batch first, without ever planning an oversell.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies a
    point-in-time read of the product's batches; the SaleRecorder applies
    the plan inside its transaction.

Invariants enforced:
    - Order: batches are consumed by (purchase_date, receipt_seq).
    - Conservation: the allocated quantities sum to the request exactly.
    - All-or-nothing: if the batches cannot cover the request the plan is
      rejected as a whole with InsufficientStockError; no partial plan exists.
    - Each allocation carries the batch unit cost at planning time.

Failure modes:
    - InvalidQuantityError if quantity is not a positive integer.
    - InsufficientStockError(requested, available) when stock is short.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from parts_ledger.domain.validation import validate_quantity
from parts_ledger.exceptions import InsufficientStockError
from parts_ledger.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class BatchLayer:
    """What the planner needs to know about one batch."""

    batch_id: UUID
    purchase_date: date
    receipt_seq: int
    unit_cost: Decimal
    available: int

    @property
    def fifo_key(self) -> tuple[date, int]:
        return (self.purchase_date, self.receipt_seq)


@dataclass(frozen=True)
class Allocation:
    """Units taken from one batch at that batch's unit cost."""

    batch_id: UUID
    quantity: int
    unit_cost: Decimal
    # Quantity the batch held when the plan was made
    available_before: int

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_cost

    @property
    def depletes_batch(self) -> bool:
        return self.quantity == self.available_before


@dataclass(frozen=True)
class AllocationPlan:
    product_id: UUID
    requested: int
    allocations: tuple[Allocation, ...]

    @property
    def total_quantity(self) -> int:
        return sum(a.quantity for a in self.allocations)

    @property
    def total_cost(self) -> Decimal:
        return sum((a.cost for a in self.allocations), Decimal("0"))


def plan_fifo_allocation(
    product_id: UUID,
    batches: Iterable[BatchLayer],
    quantity: int,
) -> AllocationPlan:
    """
    Plan a sale of ``quantity`` units across ``batches``, oldest first.

    Batches with nothing available are skipped.  The input order does not
    matter; the planner sorts by (purchase_date, receipt_seq).

    Raises:
        InvalidQuantityError: quantity <= 0 or not an int.
        InsufficientStockError: the batches hold fewer than ``quantity`` units.
    """
    validate_quantity(quantity)

    layers = sorted(
        (layer for layer in batches if layer.available > 0),
        key=lambda layer: layer.fifo_key,
    )

    total_available = sum(layer.available for layer in layers)
    if total_available < quantity:
        logger.warning(
            "allocation_insufficient_stock",
            extra={
                "product_id": str(product_id),
                "requested": quantity,
                "available": total_available,
            },
        )
        raise InsufficientStockError(str(product_id), quantity, total_available)

    allocations: list[Allocation] = []
    remaining = quantity
    for layer in layers:
        if remaining == 0:
            break
        take = min(remaining, layer.available)
        remaining -= take
        allocations.append(
            Allocation(
                batch_id=layer.batch_id,
                quantity=take,
                unit_cost=layer.unit_cost,
                available_before=layer.available,
            )
        )

    logger.debug(
        "allocation_planned",
        extra={
            "product_id": str(product_id),
            "requested": quantity,
            "batches_touched": len(allocations),
        },
    )
    return AllocationPlan(
        product_id=product_id,
        requested=quantity,
        allocations=tuple(allocations),
    )
