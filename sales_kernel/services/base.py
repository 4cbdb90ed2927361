"""
BaseService -- abstract base for the flush-only kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for the
    building-block services (DocumentStore, StockLedger, rate providers).
    They receive a SQLAlchemy ``Session`` and use ``session.flush()`` --
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: building-block services flush within the
    caller's transaction and never commit or rollback themselves.  The
    caller (SaleService, ConsolidationService, or a test) owns
    commit/rollback, which is what lets a sale and its decrements share
    one transaction.

Failure modes:
    - A subclass that calls ``session.commit()`` breaks the atomic commit
      mode of SaleService.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide archive/search reads -- those belong in
          ``sales_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
