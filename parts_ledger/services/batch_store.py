"""
BatchStore -- durable collection of purchase batches.

Responsibility:
    Lists a product's active batches in FIFO order, decrements a batch for a
    sale, and creates or deletes batches while keeping the product's cached
    total_stock in step.  Supplier, invoice number and notes stay editable;
    the purchase facts do not.

Invariants enforced:
    - FIFO order: (purchase_date, receipt_seq).  receipt_seq comes from the
      ``batch_receipt`` sequence, so batches bought the same day are consumed
      in creation order.
    - decrement_batch() re-checks the quantity it is about to remove against
      the row it holds in this transaction; the version column turns a
      concurrent change into StaleDataError at flush.
    - 0 <= current_quantity <= initial_quantity; status is re-derived on
      every decrement.
    - Purchases obey the posting-date rule of the open period.
    - A batch referenced by any sale is never deleted, and batches of a
      finalized month are never deleted.

Failure modes:
    - InsufficientBatchQuantityError, BatchNotFoundError, BatchReferencedError,
      ProductNotFoundError, InvalidQuantityError, InvalidPriceError,
      ClosedPeriodError, FuturePeriodError.
    - sqlalchemy.orm.exc.StaleDataError from flush when the batch row changed
      since it was read (SaleRecorder retries).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from parts_ledger.domain.validation import (
    validate_posting_date,
    validate_price,
    validate_quantity,
)
from parts_ledger.exceptions import (
    BatchNotFoundError,
    BatchReferencedError,
    InsufficientBatchQuantityError,
)
from parts_ledger.logging_config import get_logger
from parts_ledger.models.batch import Batch, BatchStatus
from parts_ledger.models.catalog import Product
from parts_ledger.models.sale import Sale
from parts_ledger.services.base import BaseService
from parts_ledger.services.catalog_service import CatalogService
from parts_ledger.services.ledger_state_service import LedgerStateService
from parts_ledger.services.sequence_service import SequenceService

logger = get_logger("services.batch_store")


class BatchStore(BaseService):
    """Flush-only access to batches."""

    def __init__(
        self,
        session: Session,
        catalog: CatalogService | None = None,
        ledger_state: LedgerStateService | None = None,
        sequence: SequenceService | None = None,
    ):
        super().__init__(session)
        self._catalog = catalog or CatalogService(session)
        self._ledger_state = ledger_state or LedgerStateService(session)
        self._sequence = sequence or SequenceService(session)

    def list_active_batches_for_product(
        self,
        product_id: UUID,
        *,
        lock: bool = False,
    ) -> list[Batch]:
        """
        Batches of ``product_id`` with current_quantity > 0, oldest first.

        With ``lock=True`` the rows are read SELECT ... FOR UPDATE.
        """
        stmt = (
            select(Batch)
            .where(Batch.product_id == product_id, Batch.current_quantity > 0)
            .order_by(Batch.purchase_date, Batch.receipt_seq)
        )
        if lock:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars())

    def get_batch(self, batch_id: UUID, *, lock: bool = False) -> Batch:
        stmt = select(Batch).where(Batch.id == batch_id)
        if lock:
            stmt = stmt.with_for_update()
        batch = self.session.execute(stmt).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def decrement_batch(self, batch_id: UUID, amount: int) -> Batch:
        """
        Remove ``amount`` units from a batch and flush.

        The batch is taken from this session's identity map when it was
        already read, so the version checked at flush is the one the caller
        planned against.

        Raises:
            InsufficientBatchQuantityError: amount > current_quantity.
            StaleDataError: the row changed since it was read.
        """
        validate_quantity(amount, "amount")
        batch = self.get_batch(batch_id)
        if amount > batch.current_quantity:
            logger.warning(
                "batch_decrement_rejected",
                extra={
                    "batch_id": batch_id,
                    "requested": amount,
                    "available": batch.current_quantity,
                },
            )
            raise InsufficientBatchQuantityError(str(batch_id), amount, batch.current_quantity)

        batch.apply_decrement(amount)
        self.session.flush()
        logger.debug(
            "batch_decremented",
            extra={
                "batch_id": batch_id,
                "amount": amount,
                "current_quantity": batch.current_quantity,
                "status": batch.status,
            },
        )
        return batch

    def create_batch(
        self,
        product_id: UUID,
        initial_quantity: int,
        purchase_price: Decimal | int | str,
        purchase_date: date,
        supplier: str | None = None,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> Batch:
        """
        Record a purchase.  current_quantity starts at initial_quantity and
        the product's total_stock grows by the same amount.
        """
        validate_quantity(initial_quantity, "initial_quantity")
        price = validate_price(purchase_price, "purchase_price", allow_zero=True)
        purchase_date = validate_posting_date(purchase_date, "purchase_date")

        self._ledger_state.ensure_posting_allowed(purchase_date)
        product = self._catalog.get_product(product_id, lock=True)
        receipt_seq = self._sequence.next_value(SequenceService.BATCH_RECEIPT)

        batch = Batch(
            product_id=product.id,
            purchase_date=purchase_date,
            purchase_price=price,
            initial_quantity=initial_quantity,
            current_quantity=initial_quantity,
            status=BatchStatus.ACTIVE.value,
            supplier=supplier,
            invoice_number=invoice_number,
            notes=notes,
            receipt_seq=receipt_seq,
        )
        self.session.add(batch)
        product.total_stock += initial_quantity
        self.session.flush()

        logger.info(
            "batch_created",
            extra={
                "batch_id": batch.id,
                "product_id": product.id,
                "initial_quantity": initial_quantity,
                "purchase_price": price,
                "receipt_seq": receipt_seq,
            },
        )
        return batch

    def update_batch_details(
        self,
        batch_id: UUID,
        *,
        supplier: str | None = None,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> Batch:
        """
        Edit the paperwork of a batch.  Arguments left as None keep their
        value.  Quantities, price and dates are not editable here; the ORM
        guards reject any attempt.
        """
        changes = {
            field: value
            for field, value in (
                ("supplier", supplier),
                ("invoice_number", invoice_number),
                ("notes", notes),
            )
            if value is not None
        }
        batch = self.get_batch(batch_id, lock=True)
        for field, value in changes.items():
            setattr(batch, field, value)
        self.session.flush()
        logger.info(
            "batch_details_updated",
            extra={"batch_id": batch.id, "fields": sorted(changes)},
        )
        return batch

    def count_sales(self, batch_id: UUID) -> int:
        return self.session.execute(
            select(func.count(Sale.id)).where(Sale.batch_id == batch_id)
        ).scalar_one()

    def delete_batch(self, batch_id: UUID) -> Batch:
        """
        Delete a batch no sale references; its remaining units leave the
        product's total_stock.

        Raises:
            BatchReferencedError: at least one sale draws on the batch.
            ClosedPeriodError: the batch was purchased in a finalized month.
        """
        batch = self.get_batch(batch_id)
        sale_count = self.count_sales(batch.id)
        if sale_count:
            raise BatchReferencedError(str(batch.id), sale_count)

        # Same lock order as a sale: ledger state, product, batch
        self._ledger_state.ensure_posting_allowed(batch.purchase_date)
        product = self._catalog.get_product(batch.product_id, lock=True)
        batch = self.get_batch(batch_id, lock=True)

        product.total_stock -= batch.current_quantity
        self.session.delete(batch)
        self.session.flush()
        logger.info(
            "batch_deleted",
            extra={
                "batch_id": batch.id,
                "product_id": product.id,
                "removed_quantity": batch.current_quantity,
            },
        )
        return batch

    def sum_current_quantity(self, product_id: UUID) -> int:
        """Live sum of current_quantity over the product's batches."""
        return self.session.execute(
            select(func.coalesce(func.sum(Batch.current_quantity), 0)).where(
                Batch.product_id == product_id
            )
        ).scalar_one()

    def recompute_total_stock(self, product: Product) -> int:
        """Set product.total_stock from its batches and return it."""
        product.total_stock = self.sum_current_quantity(product.id)
        return product.total_stock
