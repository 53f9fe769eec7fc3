"""Read-only selectors for ledger listings and stored reports."""

from parts_ledger.selectors.batch_selector import BatchSelector
from parts_ledger.selectors.catalog_selector import CatalogSelector
from parts_ledger.selectors.report_selector import EXPORT_COLUMNS, ReportSelector
from parts_ledger.selectors.sale_selector import SaleSelector

__all__ = [
    "BatchSelector",
    "CatalogSelector",
    "EXPORT_COLUMNS",
    "ReportSelector",
    "SaleSelector",
]
