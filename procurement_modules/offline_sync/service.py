"""
Offline Sync Reconciler (``procurement_modules.offline_sync.service``).

Responsibility
--------------
Accept requisitions buffered on board while the vessel had no shore link
and fold them into the workflow exactly once.

Architecture position
---------------------
**Modules layer** -- reuses ``RequisitionService.create_in`` and
``submit_in`` so validation, numbering and approval routing are identical
to the online path.

Invariants enforced
-------------------
* Keyed by ``offline_id``.  A second sync of the same id returns the stored
  requisition and writes nothing, audit included.
* The delivery date is validated against ``offline_timestamp``, the moment
  the crew raised the request, and that timestamp is stored as given.
* Create and submit share one unit of work: a sync either lands fully
  submitted or not at all.

Failure modes
-------------
* ValidationError when ``offline_id`` or ``offline_timestamp`` is missing,
  or the draft itself is invalid.
* A concurrent sync of the same id loses the unique insert; the loser
  re-reads and returns the winner's record with ``created`` False.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from procurement_kernel.domain.roles import Actor
from procurement_kernel.exceptions import DuplicateEntityError, ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_modules._helpers import logged_operation, require_text
from procurement_modules.offline_sync.models import OfflineSyncResult
from procurement_modules.requisition.models import RequisitionDraft
from procurement_modules.requisition.service import RequisitionService

if TYPE_CHECKING:
    from procurement_services.unit_of_work import UnitOfWork

logger = get_logger("modules.offline_sync.service")


class OfflineSyncReconciler:
    """Idempotent upsert of buffered requisitions."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        requisition_service: RequisitionService,
    ):
        self._uow_factory = uow_factory
        self._requisitions = requisition_service

    def sync(self, draft: RequisitionDraft, actor: Actor) -> OfflineSyncResult:
        offline_id = require_text(draft.offline_id, "offline_id")
        if draft.offline_timestamp is None:
            raise ValidationError("offline_timestamp is required", field="offline_timestamp")

        with logged_operation(
            logger, "offline_sync", actor, offline_id=offline_id, vessel_id=draft.vessel_id,
        ):
            try:
                with self._uow_factory() as uow:
                    existing = uow.requisitions.get_by_offline_id(offline_id)
                    if existing is not None:
                        logger.info(
                            "offline_sync_already_applied",
                            extra={"offline_id": offline_id, "requisition_id": existing.id},
                        )
                        return OfflineSyncResult(requisition=existing, created=False)

                    requisition = self._requisitions.create_in(
                        uow,
                        draft,
                        actor,
                        reference_time=draft.offline_timestamp,
                        created_offline=True,
                    )
                    submission = self._requisitions.submit_in(uow, requisition, actor)
            except DuplicateEntityError as exc:
                if exc.key_name != "offline_id":
                    raise
                return self._winner(offline_id)

            logger.info(
                "offline_sync_applied",
                extra={
                    "offline_id": offline_id,
                    "requisition_id": requisition.id,
                    "status": submission.requisition.status.value,
                },
            )
            return OfflineSyncResult(
                requisition=submission.requisition,
                created=True,
                submission=submission,
            )

    def _winner(self, offline_id: str) -> OfflineSyncResult:
        with self._uow_factory() as uow:
            existing = uow.requisitions.get_by_offline_id(offline_id)
        if existing is None:
            raise DuplicateEntityError("Requisition", "offline_id", offline_id)
        logger.warning(
            "offline_sync_race_resolved",
            extra={"offline_id": offline_id, "requisition_id": existing.id},
        )
        return OfflineSyncResult(requisition=existing, created=False)
