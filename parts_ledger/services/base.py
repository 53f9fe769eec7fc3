"""
BaseService -- abstract base for the flush-only ledger services.

Services receive a SQLAlchemy ``Session`` from the caller and persist with
``session.flush()`` -- never ``session.commit()``.  The orchestrators
(SaleRecorder, RolloverService) or the caller's ``session_scope()`` own the
transaction, so a multi-step operation commits or rolls back as one unit.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide listing queries; those live in selectors/.
    """

    def __init__(self, session: Session):
        self.session = session
