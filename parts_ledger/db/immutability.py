"""
ORM-level immutability enforcement for ledger history.

Sales and finalized reports are the audit trail of the ledger: once written
they are never edited, only compensated by new rows.  Batches are partly
frozen: what was bought (product, date, unit cost, quantity) never changes,
and the remaining quantity only goes down.

SQLAlchemy fires these listeners before the SQL reaches the database:

    session.flush()
         |
         v
    [before_flush]  --> _check_batch_deletion_before_flush --> BatchReferencedError
         |
    [before_update] --> _check_*_immutability ---------------> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete ---------------------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Entity          | When immutable                | Frozen
----------------|-------------------------------|------------------------------------
Sale            | Always                        | Every column, no delete
MonthlyReport   | After is_finalized = True     | Every column, no delete
Batch           | Always (partial)              | product_id, purchase_date,
                |                               | purchase_price, initial_quantity;
                |                               | current_quantity never increases
Batch           | While sales reference it      | No delete

The draft -> finalized transition of a report is allowed: the check looks at
whether the row WAS finalized before this flush, using attribute history.

Usage (once at startup, after models are imported):

    from parts_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

from sqlalchemy import event, func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from parts_ledger.exceptions import BatchReferencedError, ImmutabilityViolationError
from parts_ledger.logging_config import get_logger

logger = get_logger("db.immutability")

_BATCH_FROZEN_FIELDS = (
    "product_id",
    "purchase_date",
    "purchase_price",
    "initial_quantity",
    "receipt_seq",
)


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(entity_type, str(entity_id), reason)


def _check_batch_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete a batch that any sale references.

    Runs in SessionEvents.before_flush, before the flush plan is fixed.
    """
    from parts_ledger.models.batch import Batch
    from parts_ledger.models.sale import Sale

    for obj in list(session.deleted):
        if not isinstance(obj, Batch):
            continue

        with session.no_autoflush:
            sale_count = session.execute(
                select(func.count(Sale.id)).where(Sale.batch_id == obj.id)
            ).scalar_one()

        if sale_count:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Batch",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "batch_has_sales",
                },
            )
            raise BatchReferencedError(str(obj.id), sale_count)


def _check_sale_immutability(mapper, connection, target):
    """Sales are append-only."""
    _block("Sale", target.id, "UPDATE", "Sales are immutable; record a compensating sale")


def _check_sale_delete(mapper, connection, target):
    _block("Sale", target.id, "DELETE", "Sales cannot be deleted")


def _was_finalized(target) -> bool:
    history = get_history(target, "is_finalized")
    if history.deleted:
        return bool(history.deleted[0])
    if history.unchanged:
        return bool(history.unchanged[0])
    return False


def _check_monthly_report_immutability(mapper, connection, target):
    """
    Block any change to a report that was already finalized.

    The draft -> finalized flush itself passes because the previous value of
    is_finalized is False.
    """
    from parts_ledger.models.monthly_report import MonthlyReport

    if not isinstance(target, MonthlyReport):
        return

    if _was_finalized(target):
        _block(
            "MonthlyReport",
            target.period_code,
            "UPDATE",
            "Finalized reports cannot be modified",
        )


def _check_monthly_report_delete(mapper, connection, target):
    from parts_ledger.models.monthly_report import MonthlyReport

    if not isinstance(target, MonthlyReport):
        return

    if _was_finalized(target) or target.is_finalized:
        _block(
            "MonthlyReport",
            target.period_code,
            "DELETE",
            "Finalized reports cannot be deleted",
        )


def _check_batch_immutability(mapper, connection, target):
    """
    Freeze the purchase facts of a batch and forbid replenishment.
    """
    from parts_ledger.models.batch import Batch

    if not isinstance(target, Batch):
        return

    for field in _BATCH_FROZEN_FIELDS:
        if get_history(target, field).has_changes():
            _block("Batch", target.id, "UPDATE", f"{field} is frozen after creation")

    history = get_history(target, "current_quantity")
    if not history.has_changes():
        return

    new_value = history.added[0] if history.added else target.current_quantity
    if new_value is None or new_value < 0:
        _block("Batch", target.id, "UPDATE", "current_quantity cannot go below zero")
    if new_value > target.initial_quantity:
        _block(
            "Batch",
            target.id,
            "UPDATE",
            "current_quantity cannot exceed initial_quantity",
        )
    if history.deleted and history.deleted[0] is not None and new_value > history.deleted[0]:
        _block("Batch", target.id, "UPDATE", "Batches are never replenished")


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent.  Call after models are imported, before any writes.
    """
    from parts_ledger.models.batch import Batch
    from parts_ledger.models.monthly_report import MonthlyReport
    from parts_ledger.models.sale import Sale

    _listen(Session, "before_flush", _check_batch_deletion_before_flush)

    _listen(Sale, "before_update", _check_sale_immutability)
    _listen(Sale, "before_delete", _check_sale_delete)

    _listen(MonthlyReport, "before_update", _check_monthly_report_immutability)
    _listen(MonthlyReport, "before_delete", _check_monthly_report_delete)

    _listen(Batch, "before_update", _check_batch_immutability)


def _listen(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    from parts_ledger.models.batch import Batch
    from parts_ledger.models.monthly_report import MonthlyReport
    from parts_ledger.models.sale import Sale

    _safe_remove_listener(Session, "before_flush", _check_batch_deletion_before_flush)

    _safe_remove_listener(Sale, "before_update", _check_sale_immutability)
    _safe_remove_listener(Sale, "before_delete", _check_sale_delete)

    _safe_remove_listener(MonthlyReport, "before_update", _check_monthly_report_immutability)
    _safe_remove_listener(MonthlyReport, "before_delete", _check_monthly_report_delete)

    _safe_remove_listener(Batch, "before_update", _check_batch_immutability)
