"""
procurement_services.container -- Central DI container for workflow services.

Responsibility:
    Creates every module service exactly once and wires them together over
    one unit-of-work factory, one clock and one collaborator set.  No
    service constructs another service internally.

Architecture position:
    Services -- top of the service layer.  The API app factory and the
    tests build a container; nothing below this module knows which
    backend is in use.

Invariants enforced:
    - Single-instance lifecycle: one service of each kind per container.
    - DI transparency: all wiring is visible in ``__init__``; construction
      order follows the dependency graph (the RFQ manager before the
      requisition service that delegates to it).

Audit relevance:
    ``verify_audit_chain`` runs the hash-chain check over the container's
    own backend.

Usage:
    container = ServiceContainer.in_memory(collaborators, settings, clock=clock)
    result = container.requisitions.submit(requisition.id, actor)
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session, sessionmaker

from procurement_config.settings import ProcurementSettings
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.collaborators import Collaborators
from procurement_kernel.logging_config import get_logger
from procurement_kernel.repositories.memory import InMemoryStore
from procurement_modules.delegation.service import DelegationService
from procurement_modules.invoice.service import InvoiceService
from procurement_modules.offline_sync.service import OfflineSyncReconciler
from procurement_modules.purchase_order.service import PurchaseOrderService
from procurement_modules.requisition.service import RequisitionService
from procurement_modules.rfq.service import RfqService
from procurement_services.unit_of_work import (
    InMemoryUnitOfWork,
    SqlAlchemyUnitOfWork,
    UnitOfWork,
)

logger = get_logger("services.container")


class ServiceContainer:
    """
    Central factory for workflow services.

    Contract:
        Receives a unit-of-work factory, the collaborator set, settings and
        an optional clock.  Exposes each service as a public attribute.

    Non-goals:
        - Does NOT own engines or session factories; the caller does.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        collaborators: Collaborators,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.collaborators = collaborators
        self.settings = settings or ProcurementSettings.with_defaults()
        self.clock = clock or SystemClock()
        self.store: InMemoryStore | None = None

        self.rfqs = RfqService(uow_factory, collaborators, self.settings.rfq, self.clock)
        self.requisitions = RequisitionService(
            uow_factory,
            collaborators,
            self.settings.requisition,
            self.clock,
            rfq_manager=self.rfqs,
        )
        self.delegations = DelegationService(uow_factory, collaborators, self.clock)
        self.purchase_orders = PurchaseOrderService(
            uow_factory, collaborators, self.settings.purchase_order, self.clock,
        )
        self.invoices = InvoiceService(uow_factory, self.settings.invoice, self.clock)
        self.offline_sync = OfflineSyncReconciler(uow_factory, self.requisitions)

        logger.info(
            "service_container_initialized",
            extra={"config_id": self.settings.config_id, "clock": type(self.clock).__name__},
        )

    @classmethod
    def in_memory(
        cls,
        collaborators: Collaborators,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
        store: InMemoryStore | None = None,
    ) -> ServiceContainer:
        clock = clock or SystemClock()
        store = store or InMemoryStore()
        container = cls(lambda: InMemoryUnitOfWork(store, clock), collaborators, settings, clock)
        container.store = store
        return container

    @classmethod
    def sql(
        cls,
        session_factory: sessionmaker[Session],
        collaborators: Collaborators,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
    ) -> ServiceContainer:
        clock = clock or SystemClock()
        return cls(
            lambda: SqlAlchemyUnitOfWork(session_factory, clock),
            collaborators,
            settings,
            clock,
        )

    def verify_audit_chain(self) -> bool:
        with self.uow_factory() as uow:
            return uow.auditor.verify_chain()
