"""
Ledger services.

Flush-only (caller owns the transaction):
    BatchStore, CatalogService, LedgerStateService, SequenceService,
    PeriodReportBuilder, InventoryReconciliationService

Orchestrators (own their transaction through a session factory):
    SaleRecorder, RolloverService
"""

from parts_ledger.services.batch_store import BatchStore
from parts_ledger.services.catalog_service import CatalogService
from parts_ledger.services.ledger_state_service import LedgerStateService
from parts_ledger.services.reconciliation import InventoryReconciliationService
from parts_ledger.services.report_builder import PeriodReportBuilder
from parts_ledger.services.rollover_service import RolloverService
from parts_ledger.services.sale_recorder import SaleRecorder
from parts_ledger.services.sequence_service import SequenceService

__all__ = [
    "BatchStore",
    "CatalogService",
    "LedgerStateService",
    "InventoryReconciliationService",
    "PeriodReportBuilder",
    "RolloverService",
    "SaleRecorder",
    "SequenceService",
]
