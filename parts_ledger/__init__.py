"""
Parts Ledger - batch inventory ledger for auto-parts stock.

A transactional inventory core with:
- Purchase batches consumed first-in-first-out
- All-or-nothing sale allocation safe under concurrent workers
- Monthly period close into immutable reports
- Stock conservation checks between products and their batches
"""

__version__ = "0.1.0"
