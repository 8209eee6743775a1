"""
procurement_services.unit_of_work -- Scoped transactional units of work.

Responsibility:
    Give every service call one transaction that spans all repositories,
    the sequence allocator and the audit chain.  Commit on normal exit,
    roll back on any exception.

Architecture position:
    Services -- the only place where a backend (in-memory store or
    SQLAlchemy session) is bound to the repository contracts.  Module
    services receive a zero-argument factory and never see the backend.

Invariants enforced:
    - Audit entries commit or roll back together with the state change
      they describe: the auditor writes through the unit's own session or
      store.
    - In-memory units are serialized over the store lock and roll back by
      restoring a snapshot taken on entry.
    - SQL units use one Session; lost races surface as ConcurrencyConflict
      from the compare-and-swap in the repositories.

Failure modes:
    - Any exception raised inside the ``with`` block propagates after
      rollback.
"""

from __future__ import annotations

from abc import ABC
from types import TracebackType

from sqlalchemy.orm import Session, sessionmaker

from procurement_kernel.domain.clock import Clock
from procurement_kernel.logging_config import get_logger
from procurement_kernel.repositories.base import AuditRepository, SequenceAllocator
from procurement_kernel.repositories.memory import (
    InMemoryAuditRepository,
    InMemorySequenceAllocator,
    InMemoryStore,
)
from procurement_kernel.repositories.sql import SqlAuditRepository
from procurement_kernel.services.auditor_service import AuditTrailLogger
from procurement_kernel.services.sequence_service import SequenceService
from procurement_modules.delegation.repository import (
    DelegationRepository,
    InMemoryDelegationRepository,
    SqlDelegationRepository,
)
from procurement_modules.invoice.repository import (
    InMemoryInvoiceRepository,
    InvoiceRepository,
    SqlInvoiceRepository,
)
from procurement_modules.purchase_order.repository import (
    InMemoryPurchaseOrderRepository,
    PurchaseOrderRepository,
    SqlPurchaseOrderRepository,
)
from procurement_modules.requisition.repository import (
    InMemoryRequisitionRepository,
    RequisitionRepository,
    SqlRequisitionRepository,
)
from procurement_modules.rfq.repository import (
    InMemoryQuoteRepository,
    InMemoryRfqRepository,
    QuoteRepository,
    RfqRepository,
    SqlQuoteRepository,
    SqlRfqRepository,
)

logger = get_logger("services.unit_of_work")


class UnitOfWork(ABC):
    """
    Repositories bound to one transaction.

    Usage:
        with uow_factory() as uow:
            requisition = uow.requisitions.require(requisition_id)
            uow.requisitions.update(replace(requisition, ...), requisition.version)
            uow.auditor.record(...)
    """

    requisitions: RequisitionRepository
    delegations: DelegationRepository
    rfqs: RfqRepository
    quotes: QuoteRepository
    purchase_orders: PurchaseOrderRepository
    invoices: InvoiceRepository
    sequences: SequenceAllocator
    audit: AuditRepository
    auditor: AuditTrailLogger

    def __init__(self, clock: Clock):
        self._clock = clock

    def _bind_auditor(self) -> None:
        self.auditor = AuditTrailLogger(self.audit, self.sequences, self._clock)

    def __enter__(self) -> UnitOfWork:
        raise NotImplementedError

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        raise NotImplementedError


class InMemoryUnitOfWork(UnitOfWork):
    """Serialized over the store lock; rollback restores the entry snapshot."""

    def __init__(self, store: InMemoryStore, clock: Clock):
        super().__init__(clock)
        self._store = store
        self._snapshot: tuple | None = None

    def __enter__(self) -> InMemoryUnitOfWork:
        self._store.lock.acquire()
        self._snapshot = self._store.snapshot()
        self.requisitions = InMemoryRequisitionRepository(self._store)
        self.delegations = InMemoryDelegationRepository(self._store)
        self.rfqs = InMemoryRfqRepository(self._store)
        self.quotes = InMemoryQuoteRepository(self._store)
        self.purchase_orders = InMemoryPurchaseOrderRepository(self._store)
        self.invoices = InMemoryInvoiceRepository(self._store)
        self.sequences = InMemorySequenceAllocator(self._store)
        self.audit = InMemoryAuditRepository(self._store)
        self._bind_auditor()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self._store.restore(self._snapshot)
                logger.debug(
                    "unit_of_work_rolled_back",
                    extra={"backend": "memory", "error_type": exc_type.__name__},
                )
        finally:
            self._snapshot = None
            self._store.lock.release()


class SqlAlchemyUnitOfWork(UnitOfWork):
    """One Session per unit; commit on clean exit, rollback otherwise."""

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock):
        super().__init__(clock)
        self._session_factory = session_factory
        self._session: Session | None = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        session = self._session_factory()
        self._session = session
        self.requisitions = SqlRequisitionRepository(session)
        self.delegations = SqlDelegationRepository(session)
        self.rfqs = SqlRfqRepository(session)
        self.quotes = SqlQuoteRepository(session)
        self.purchase_orders = SqlPurchaseOrderRepository(session)
        self.invoices = SqlInvoiceRepository(session)
        self.sequences = SequenceService(session)
        self.audit = SqlAuditRepository(session)
        self._bind_auditor()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        session = self._session
        try:
            if exc_type is None:
                session.commit()
            else:
                session.rollback()
                logger.debug(
                    "unit_of_work_rolled_back",
                    extra={"backend": "sql", "error_type": exc_type.__name__},
                )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
            self._session = None
