"""
Typed exception hierarchy for the parts ledger.

Every error carries a class-level ``code`` (machine-readable, API-safe) and
stores its context as attributes, so callers catch by type and read
structured data instead of parsing messages.

    PartsLedgerError (base)
    |
    +-- LedgerValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidPriceError
    |   +-- InvalidPeriodError
    |   +-- RequiredFieldError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- BatchNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- ReportNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- InsufficientBatchQuantityError
    |   +-- BatchReferencedError
    |   +-- StockReconciliationError
    |
    +-- CatalogError
    |   +-- DuplicateSkuError
    |   +-- DuplicateCategoryError
    |   +-- ProductInUseError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentStockConflictError
    |
    +-- PeriodError
    |   +-- NotCurrentPeriodError
    |   +-- AlreadyFinalizedError
    |   +-- ClosedPeriodError
    |   +-- FuturePeriodError
    |   +-- LedgerNotInitializedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- TransactionFailedError
    |
    +-- ConfigurationError

Category        | Code                         | When Raised
----------------|------------------------------|------------------------------------------
Validation      | INVALID_QUANTITY             | Quantity <= 0 or not an integer
                | INVALID_PRICE                | Negative cost / non-positive sale price
                | INVALID_PERIOD               | Month outside 1..12, bad year
                | REQUIRED_FIELD               | Blank SKU, product or category name
----------------|------------------------------|------------------------------------------
Not found       | PRODUCT_NOT_FOUND            | Product ID doesn't exist
                | BATCH_NOT_FOUND              | Batch ID doesn't exist
                | CATEGORY_NOT_FOUND           | Category ID doesn't exist
                | REPORT_NOT_FOUND             | No report stored for (year, month)
----------------|------------------------------|------------------------------------------
Stock           | INSUFFICIENT_STOCK           | Sale exceeds active stock (no writes made)
                | INSUFFICIENT_BATCH_QUANTITY  | Decrement exceeds the batch's quantity
                | BATCH_REFERENCED             | Deleting a batch that sales reference
                | STOCK_RECONCILIATION_FAILED  | Report figures disagree with live batches
----------------|------------------------------|------------------------------------------
Catalog         | DUPLICATE_SKU                | SKU already used by another product
                | DUPLICATE_CATEGORY           | Category name taken (case-insensitive)
                | PRODUCT_IN_USE               | Deleting a product that has batches or sales
----------------|------------------------------|------------------------------------------
Concurrency     | CONCURRENT_STOCK_CONFLICT    | Allocation lost the race on every attempt
----------------|------------------------------|------------------------------------------
Period          | NOT_CURRENT_PERIOD           | Finalizing a month other than the open one
                | ALREADY_FINALIZED            | Month already finalized
                | CLOSED_PERIOD                | Posting dated inside a finalized month
                | FUTURE_PERIOD                | Posting dated after the open month
                | LEDGER_NOT_INITIALIZED       | No open period has been established
----------------|------------------------------|------------------------------------------
Immutability    | IMMUTABILITY_VIOLATION       | Changing a sale / finalized report
----------------|------------------------------|------------------------------------------
Infrastructure  | TRANSACTION_FAILED           | Connection / lock timeout / DB failure
Configuration   | CONFIGURATION_ERROR          | Invalid settings file or environment
"""


class PartsLedgerError(Exception):
    """
    Base exception for all parts ledger errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "PARTS_LEDGER_ERROR"


# Validation errors (rejected before touching storage)


class LedgerValidationError(PartsLedgerError):
    """Base exception for invalid caller input."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(LedgerValidationError):
    """Quantity must be a positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object, field: str = "quantity"):
        self.quantity = quantity
        self.field = field
        super().__init__(f"{field} must be a positive integer, got {quantity!r}")


class InvalidPriceError(LedgerValidationError):
    """Price is negative, zero where forbidden, or not a number."""

    code: str = "INVALID_PRICE"

    def __init__(self, price: object, field: str, reason: str):
        self.price = price
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field} {price!r}: {reason}")


class InvalidPeriodError(LedgerValidationError):
    """Year/month pair does not name a calendar month."""

    code: str = "INVALID_PERIOD"

    def __init__(self, year: object, month: object):
        self.year = year
        self.month = month
        super().__init__(f"Invalid period year={year!r} month={month!r}")


class RequiredFieldError(LedgerValidationError):
    """A required text field is missing or blank."""

    code: str = "REQUIRED_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is required")


# Not-found errors


class NotFoundError(PartsLedgerError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class BatchNotFoundError(NotFoundError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class CategoryNotFoundError(NotFoundError):
    """Category with given ID was not found."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class ReportNotFoundError(NotFoundError):
    """No monthly report stored for the period."""

    code: str = "REPORT_NOT_FOUND"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"No monthly report stored for {period_code}")


# Stock errors


class StockError(PartsLedgerError):
    """Base exception for stock quantity rule violations."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    Requested sale quantity exceeds the active stock of the product.

    Raised before any write is attempted; nothing is applied.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class InsufficientBatchQuantityError(StockError):
    """Decrement amount exceeds the batch's current quantity at write time."""

    code: str = "INSUFFICIENT_BATCH_QUANTITY"

    def __init__(self, batch_id: str, requested: int, available: int):
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Batch {batch_id} holds {available} units, cannot remove {requested}"
        )


class BatchReferencedError(StockError):
    """Batch cannot be deleted while sales reference it."""

    code: str = "BATCH_REFERENCED"

    def __init__(self, batch_id: str, sale_count: int):
        self.batch_id = batch_id
        self.sale_count = sale_count
        super().__init__(
            f"Cannot delete batch {batch_id}: referenced by {sale_count} sale(s)"
        )


class StockReconciliationError(StockError):
    """Period figures disagree with the live batch quantities."""

    code: str = "STOCK_RECONCILIATION_FAILED"

    def __init__(self, period_code: str, mismatches: list[dict]):
        self.period_code = period_code
        self.mismatches = mismatches
        super().__init__(
            f"Stock reconciliation failed for {period_code}: "
            f"{len(mismatches)} product(s) disagree with live batches"
        )


# Catalog errors


class CatalogError(PartsLedgerError):
    """Base exception for product and category conflicts."""

    code: str = "CATALOG_ERROR"


class DuplicateSkuError(CatalogError):
    """SKU is already used by another product."""

    code: str = "DUPLICATE_SKU"

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU already exists: {sku}")


class DuplicateCategoryError(CatalogError):
    """Category name is already taken (case-insensitive)."""

    code: str = "DUPLICATE_CATEGORY"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Category already exists: {name}")


class ProductInUseError(CatalogError):
    """Product cannot be deleted while batches or sales refer to it."""

    code: str = "PRODUCT_IN_USE"

    def __init__(self, product_id: str, batch_count: int, sale_count: int):
        self.product_id = product_id
        self.batch_count = batch_count
        self.sale_count = sale_count
        super().__init__(
            f"Cannot delete product {product_id}: "
            f"{batch_count} batch(es), {sale_count} sale(s)"
        )


# Concurrency errors


class ConcurrencyError(PartsLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentStockConflictError(ConcurrencyError):
    """Allocation lost the batch race on every permitted attempt."""

    code: str = "CONCURRENT_STOCK_CONFLICT"

    def __init__(self, product_id: str, attempts: int):
        self.product_id = product_id
        self.attempts = attempts
        super().__init__(
            f"Stock for product {product_id} changed concurrently; "
            f"gave up after {attempts} attempt(s)"
        )


# Period errors


class PeriodError(PartsLedgerError):
    """Base exception for period-related errors."""

    code: str = "PERIOD_ERROR"


class NotCurrentPeriodError(PeriodError):
    """Finalization attempted on a month other than the open one."""

    code: str = "NOT_CURRENT_PERIOD"

    def __init__(self, requested_period: str, open_period: str):
        self.requested_period = requested_period
        self.open_period = open_period
        super().__init__(
            f"Cannot finalize {requested_period}: the open period is {open_period}"
        )


class AlreadyFinalizedError(PeriodError):
    """Month has already been finalized."""

    code: str = "ALREADY_FINALIZED"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Period {period_code} is already finalized")


class ClosedPeriodError(PeriodError):
    """Posting dated inside a finalized month."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_code: str, posting_date: str, open_period: str):
        self.period_code = period_code
        self.posting_date = posting_date
        self.open_period = open_period
        super().__init__(
            f"Cannot post to closed period {period_code} "
            f"(date: {posting_date}, open period: {open_period})"
        )


class FuturePeriodError(PeriodError):
    """Posting dated after the open month."""

    code: str = "FUTURE_PERIOD"

    def __init__(self, posting_date: str, open_period: str):
        self.posting_date = posting_date
        self.open_period = open_period
        super().__init__(
            f"Cannot post on {posting_date}: period {open_period} "
            "must be finalized first"
        )


class LedgerNotInitializedError(PeriodError):
    """No open period has been established yet."""

    code: str = "LEDGER_NOT_INITIALIZED"

    def __init__(self) -> None:
        super().__init__("Ledger has no open period")


# Immutability errors


class ImmutabilityError(PartsLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Infrastructure errors


class TransactionFailedError(PartsLedgerError):
    """The storage layer failed the unit of work (connection, timeout, lock)."""

    code: str = "TRANSACTION_FAILED"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Transaction failed during {operation}: {reason}")


class ConfigurationError(PartsLedgerError):
    """Invalid settings file or environment override."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key}: {reason}")
