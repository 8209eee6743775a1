"""
Delegation Module Service (``procurement_modules.delegation.service``).

Responsibility
--------------
Creates and revokes delegations of approval authority.  The approval
authority resolver reads them through ``DelegationRepository``; this
service only guards what may be written.

Invariants enforced
-------------------
* ``start_date < end_date``; the window is half-open.
* Nobody delegates to themselves.
* The delegator's role holds every delegated capability.
* At most one active delegation per delegator and vessel covers any
  instant.

Audit relevance
---------------
DELEGATION_CREATED and DELEGATION_REVOKED entries carry the full window
and permission set, so a later approval's ``delegated_from`` can be traced
back to the grant that allowed it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.collaborators import Collaborators
from procurement_kernel.domain.roles import Actor, Capability, Role
from procurement_kernel.domain.values import new_id
from procurement_kernel.exceptions import (
    AuthorizationError,
    InvalidStateTransition,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_modules._helpers import logged_operation, require_capability
from procurement_modules.delegation.models import Delegation, DelegationRequest

if TYPE_CHECKING:
    from procurement_services.unit_of_work import UnitOfWork

logger = get_logger("modules.delegation.service")

ENTITY_TYPE = "Delegation"


def _aware(value: datetime, field: str) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError(f"{field} must be a datetime", field=field, value=value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DelegationService:
    """Create, revoke and list delegations."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        collaborators: Collaborators,
        clock: Clock,
    ):
        self._uow_factory = uow_factory
        self._directory = collaborators.directory
        self._clock = clock

    def get(self, delegation_id: str) -> Delegation:
        with self._uow_factory() as uow:
            return uow.delegations.require(delegation_id)

    def list_for_vessel(self, vessel_id: str, *, in_effect_only: bool = False) -> list[Delegation]:
        now = self._clock.now()
        with self._uow_factory() as uow:
            delegations = uow.delegations.list_for_vessel(vessel_id)
        if in_effect_only:
            return [d for d in delegations if d.in_effect(now)]
        return delegations

    def create(self, request: DelegationRequest, actor: Actor) -> Delegation:
        """
        Grant ``request.permissions`` on one vessel for a bounded window.

        The delegator is the actor unless an ADMIN creates the grant on
        someone else's behalf.

        Raises:
            AuthorizationError: actor lacks MANAGE_DELEGATIONS, or names a
                different delegator without being ADMIN.
            ValidationError: window, self-delegation, permission or overlap
                rule broken.
        """
        with logged_operation(logger, "delegation_create", actor, vessel_id=request.vessel_id):
            require_capability(actor, Capability.MANAGE_DELEGATIONS, "create delegation")
            from_user_id = request.from_user_id or actor.user_id
            if from_user_id != actor.user_id and actor.role is not Role.ADMIN:
                raise AuthorizationError(
                    actor.user_id, "create delegation", "may only delegate own authority",
                )

            start = _aware(request.start_date, "start_date")
            end = _aware(request.end_date, "end_date")
            if start >= end:
                raise ValidationError(
                    "start_date must be before end_date",
                    field="end_date",
                    value=end.isoformat(),
                )
            if request.to_user_id == from_user_id:
                raise ValidationError(
                    "a user cannot delegate to themselves",
                    field="to_user_id",
                    value=request.to_user_id,
                )
            if not request.permissions:
                raise ValidationError("at least one permission is required", field="permissions")

            delegator = self._directory.principal(from_user_id)
            if delegator is None:
                raise ValidationError("unknown delegator", field="from_user_id", value=from_user_id)
            if self._directory.principal(request.to_user_id) is None:
                raise ValidationError("unknown delegate", field="to_user_id", value=request.to_user_id)
            if not delegator.serves(request.vessel_id):
                raise ValidationError(
                    "delegator is not assigned to the vessel",
                    field="vessel_id",
                    value=request.vessel_id,
                )
            missing = sorted(
                p.value for p in request.permissions
                if not Actor(delegator.user_id, delegator.role).can(p)
            )
            if missing:
                raise ValidationError(
                    f"delegator role {delegator.role.value} does not hold {', '.join(missing)}",
                    field="permissions",
                    value=missing,
                )

            with self._uow_factory() as uow:
                for existing in uow.delegations.list_for_delegator(from_user_id, request.vessel_id):
                    if existing.is_active and existing.overlaps(start, end):
                        raise ValidationError(
                            f"overlaps active delegation {existing.id}",
                            field="start_date",
                            value=start.isoformat(),
                        )
                delegation = Delegation(
                    id=new_id(),
                    from_user_id=from_user_id,
                    to_user_id=request.to_user_id,
                    vessel_id=request.vessel_id,
                    start_date=start,
                    end_date=end,
                    permissions=frozenset(request.permissions),
                    created_at=self._clock.now(),
                    reason=request.reason or "",
                )
                uow.delegations.add(delegation)
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=delegation.id,
                    action=AuditAction.DELEGATION_CREATED,
                    actor=actor,
                    payload={
                        "fromUserId": from_user_id,
                        "toUserId": delegation.to_user_id,
                        "vesselId": delegation.vessel_id,
                        "startDate": start,
                        "endDate": end,
                        "permissions": sorted(p.value for p in delegation.permissions),
                        "reason": delegation.reason,
                    },
                )
            logger.info(
                "delegation_created",
                extra={
                    "delegation_id": delegation.id,
                    "from_user_id": from_user_id,
                    "to_user_id": delegation.to_user_id,
                },
            )
            return delegation

    def revoke(self, delegation_id: str, actor: Actor, reason: str = "") -> Delegation:
        with logged_operation(logger, "delegation_revoke", actor, delegation_id=delegation_id):
            require_capability(actor, Capability.MANAGE_DELEGATIONS, "revoke delegation")
            with self._uow_factory() as uow:
                delegation = uow.delegations.require(delegation_id)
                if actor.user_id != delegation.from_user_id and actor.role is not Role.ADMIN:
                    raise AuthorizationError(
                        actor.user_id, "revoke delegation", "not the delegator",
                    )
                if not delegation.is_active:
                    raise InvalidStateTransition(
                        ENTITY_TYPE, delegation.id, "REVOKED", "revoke",
                    )
                now = self._clock.now()
                updated = uow.delegations.update(
                    replace(delegation, is_active=False, revoked_at=now, revoked_by=actor.user_id),
                    delegation.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=delegation.id,
                    action=AuditAction.DELEGATION_REVOKED,
                    actor=actor,
                    payload={"reason": reason or "", "wasInEffect": delegation.in_effect(now)},
                )
            return updated
