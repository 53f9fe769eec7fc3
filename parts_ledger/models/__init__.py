"""ORM models for the parts ledger."""

from parts_ledger.models.batch import Batch, BatchStatus
from parts_ledger.models.catalog import Category, Product
from parts_ledger.models.ledger_state import LEDGER_STATE_KEY, LedgerState
from parts_ledger.models.monthly_report import MonthlyReport
from parts_ledger.models.sale import Sale
from parts_ledger.models.sequence_counter import SequenceCounter

__all__ = [
    "Batch",
    "BatchStatus",
    "Category",
    "Product",
    "LEDGER_STATE_KEY",
    "LedgerState",
    "MonthlyReport",
    "Sale",
    "SequenceCounter",
]
