"""
InventoryReconciliationService -- verifies the stock counters.

Responsibility:
    total_stock on Product is a cache of the sum of its batches'
    current_quantity.  verify_inventory() checks that cache for every
    product, checks every batch against 0 <= current <= initial, and can
    repair drifted counters from the batches.

Failure modes:
    None raised; findings are returned in an InventoryVerification.
    Bounds violations are never repaired automatically.
"""

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from parts_ledger.domain.dtos import (
    BatchBoundsViolation,
    InventoryVerification,
    StockMismatch,
)
from parts_ledger.logging_config import get_logger
from parts_ledger.models.batch import Batch
from parts_ledger.models.catalog import Product
from parts_ledger.services.base import BaseService

logger = get_logger("services.reconciliation")


class InventoryReconciliationService(BaseService):
    def __init__(self, session: Session):
        super().__init__(session)

    def verify_inventory(self, *, repair: bool = False) -> InventoryVerification:
        """
        Compare every product's total_stock with its batches.

        With ``repair=True`` drifted counters are overwritten with the batch
        sum (flush-only; the caller commits).
        """
        batch_totals = dict(
            self.session.execute(
                select(Batch.product_id, func.sum(Batch.current_quantity)).group_by(
                    Batch.product_id
                )
            ).all()
        )

        products = list(
            self.session.execute(select(Product).order_by(Product.sku)).unique().scalars()
        )
        mismatches: list[StockMismatch] = []
        for product in products:
            batch_total = int(batch_totals.get(product.id) or 0)
            if product.total_stock != batch_total:
                mismatches.append(
                    StockMismatch(
                        product_id=product.id,
                        sku=product.sku,
                        cached_total_stock=product.total_stock,
                        batch_total=batch_total,
                    )
                )
                if repair:
                    product.total_stock = batch_total

        violations = [
            BatchBoundsViolation(
                batch_id=b.id,
                product_id=b.product_id,
                current_quantity=b.current_quantity,
                initial_quantity=b.initial_quantity,
            )
            for b in self.session.execute(
                select(Batch).where(
                    or_(
                        Batch.current_quantity < 0,
                        Batch.current_quantity > Batch.initial_quantity,
                    )
                )
            ).scalars()
        ]

        if repair and mismatches:
            self.session.flush()

        result = InventoryVerification(
            products_checked=len(products),
            mismatches=tuple(mismatches),
            bounds_violations=tuple(violations),
            repaired=repair and bool(mismatches),
        )
        if result.is_consistent:
            logger.info("inventory_verified", extra={"products_checked": len(products)})
        else:
            logger.warning(
                "inventory_inconsistent",
                extra={
                    "products_checked": len(products),
                    "mismatches": len(mismatches),
                    "bounds_violations": len(violations),
                    "repaired": result.repaired,
                },
            )
        return result
