"""
Requisition Module Service (``procurement_modules.requisition.service``).

Responsibility
--------------
Owns the requisition lifecycle: creation and validation, draft edits,
submission through the approval authority resolver, approval, rejection,
the captain's emergency override and its ratification, cancellation, and
the audit-trail query.  Downstream packages move a requisition forward
through ``advance_requisition``.

Architecture position
---------------------
**Modules layer** -- every public method opens one unit of work, performs
its reads, legality checks and compare-and-swap writes inside it, and
records audit entries in the same unit so they commit together.

Invariants enforced
-------------------
* ``total_amount`` always equals the sum of line totals; every line has
  ``quantity > 0``, ``unit_price >= 0`` and ``total_price = quantity *
  unit_price``.
* Every status change is validated against ``REQUISITION_WORKFLOW``.
* Approve and reject are compare-and-swap on the version that was read.
  A caller-supplied ``expected_version`` is checked before the status, so
  callers racing on a stale read all see ``ConcurrencyConflict``.
* Approval authority is decided by ``resolve_approval`` and nothing else.

Failure modes
-------------
* ``ValidationError`` -- nothing persisted.
* ``InvalidStateTransition`` -- never retried automatically.
* ``ConcurrencyConflict`` -- safe to retry after re-reading.
* ``AuthorizationError`` -- missing capability, authority or vessel
  assignment.

Audit relevance
---------------
CREATED, UPDATED, SUBMITTED, APPROVED (with ``delegated_from``), REJECTED,
EMERGENCY_OVERRIDE, OVERRIDE_RATIFIED, CANCELLED and every downstream
transition are written to the hash chain under the requisition's lineage.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from procurement_engines.approval_authority import (
    ApprovalRequirement,
    ApprovalSubject,
    budget_period,
    resolve_approval,
)
from procurement_kernel.domain.audit import AuditAction, AuditEntry
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.collaborators import Collaborators
from procurement_kernel.domain.roles import (
    APPROVAL_HIERARCHY,
    SYSTEM_ACTOR,
    Actor,
    Capability,
)
from procurement_kernel.domain.values import (
    UrgencyLevel,
    ZERO,
    new_id,
    parse_decimal,
    sum_totals,
    validate_currency,
)
from procurement_kernel.exceptions import (
    AuthorizationError,
    ConcurrencyConflict,
    ExternalServiceError,
    InvalidStateTransition,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_modules._helpers import logged_operation, require_capability, require_text
from procurement_modules.requisition.config import RequisitionConfig
from procurement_modules.requisition.models import (
    ApprovalDecision,
    ApprovalRecord,
    LineItem,
    LineItemInput,
    Requisition,
    RequisitionChanges,
    RequisitionDraft,
    RequisitionStatus,
    SubmissionResult,
)
from procurement_modules.requisition.workflows import REQUISITION_WORKFLOW

if TYPE_CHECKING:
    from procurement_modules.rfq.service import RfqIssueResult, RfqService
    from procurement_services.unit_of_work import UnitOfWork

logger = get_logger("modules.requisition.service")

ENTITY_TYPE = "Requisition"


# =============================================================================
# Validation and derivation
# =============================================================================


def build_line_items(inputs: Iterable[LineItemInput]) -> tuple[LineItem, ...]:
    """Validate requested lines and derive their totals."""
    lines: list[LineItem] = []
    for index, item in enumerate(inputs):
        field = f"line_items[{index}]"
        name = require_text(item.name, f"{field}.name")
        quantity = parse_decimal(item.quantity, f"{field}.quantity")
        unit_price = parse_decimal(item.unit_price, f"{field}.unit_price")
        if quantity <= ZERO:
            raise ValidationError(
                "quantity must be greater than zero",
                field=f"{field}.quantity",
                value=str(quantity),
            )
        if unit_price < ZERO:
            raise ValidationError(
                "unit price must not be negative",
                field=f"{field}.unit_price",
                value=str(unit_price),
            )
        total = quantity * unit_price
        if item.total_price is not None:
            given = parse_decimal(item.total_price, f"{field}.total_price")
            if given < ZERO:
                raise ValidationError(
                    "total price must not be negative",
                    field=f"{field}.total_price",
                    value=str(given),
                )
            if given != total:
                raise ValidationError(
                    "total price must equal quantity times unit price",
                    field=f"{field}.total_price",
                    value=str(given),
                )
        lines.append(LineItem(
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total,
            criticality=item.criticality,
            category=item.category,
            description=item.description,
        ))
    if not lines:
        raise ValidationError("at least one line item is required", field="line_items")
    return tuple(lines)


def _validate_header(
    urgency: UrgencyLevel,
    currency: str,
    justification: str | None,
    delivery_date: datetime | None,
    reference_time: datetime,
) -> None:
    validate_currency(currency)
    if urgency is UrgencyLevel.EMERGENCY and not (justification and justification.strip()):
        raise ValidationError(
            "justification is required for EMERGENCY requisitions",
            field="justification",
        )
    if delivery_date is not None:
        if delivery_date.tzinfo is None:
            delivery_date = delivery_date.replace(tzinfo=timezone.utc)
        if delivery_date.date() < reference_time.date():
            raise ValidationError(
                "delivery date must not be in the past",
                field="delivery_date",
                value=delivery_date.isoformat(),
            )


def vessel_prefix(vessel_name: str) -> str:
    """First three alphanumerics of the vessel name, upper-cased."""
    chars = [c for c in vessel_name.upper() if c.isalnum()][:3]
    return "".join(chars).ljust(3, "X")


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# =============================================================================
# Downstream transitions
# =============================================================================


def advance_requisition(
    uow: UnitOfWork,
    requisition_id: str,
    action: str,
    audit_action: AuditAction,
    actor: Actor,
    now: datetime,
    payload: dict[str, Any] | None = None,
) -> Requisition:
    """
    Move a requisition along the downstream edges (issue_rfq, issue_po,
    deliver, close) inside the caller's unit of work.
    """
    requisition = uow.requisitions.require(requisition_id)
    target = REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, action)
    updated = uow.requisitions.update(
        replace(requisition, status=target, updated_at=now),
        requisition.version,
    )
    uow.auditor.record(
        entity_type=ENTITY_TYPE,
        entity_id=requisition.id,
        requisition_id=requisition.id,
        action=audit_action,
        actor=actor,
        payload={
            "fromStatus": requisition.status,
            "toStatus": target,
            **(payload or {}),
        },
    )
    logger.info(
        "requisition_advanced",
        extra={
            "requisition_id": requisition.id,
            "action": action,
            "from_status": requisition.status.value,
            "to_status": target.value,
        },
    )
    return updated


class RequisitionService:
    """
    Requisition state machine.

    Contract
    --------
    * Every public method owns one unit of work: commit on normal return,
      rollback on any exception.
    * Returned DTOs reflect the committed state, including the new version.

    Non-goals
    ---------
    * Does NOT contact vendors; RFQ issuance is delegated to the RFQ
      manager.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        collaborators: Collaborators,
        config: RequisitionConfig,
        clock: Clock,
        rfq_manager: RfqService,
    ):
        self._uow_factory = uow_factory
        self._collaborators = collaborators
        self._config = config
        self._policy = config.approval_policy
        self._clock = clock
        self._rfq_manager = rfq_manager

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, requisition_id: str) -> Requisition:
        with self._uow_factory() as uow:
            return uow.requisitions.require(requisition_id)

    def audit_trail(self, requisition_id: str, actor: Actor) -> list[AuditEntry]:
        """Entries for the requisition and everything descended from it."""
        require_capability(actor, Capability.VIEW_AUDIT_TRAIL, "view audit trail")
        with self._uow_factory() as uow:
            uow.requisitions.require(requisition_id)
            return uow.auditor.trail_for_requisition(requisition_id)

    # =========================================================================
    # Creation
    # =========================================================================

    def create(self, draft: RequisitionDraft, actor: Actor) -> Requisition:
        """
        Validate and persist a DRAFT requisition at version 1.

        Raises:
            ValidationError: nothing is persisted.
            AuthorizationError: actor lacks CREATE_REQUISITION.
        """
        with logged_operation(logger, "requisition_create", actor, vessel_id=draft.vessel_id):
            with self._uow_factory() as uow:
                requisition = self.create_in(uow, draft, actor, reference_time=self._clock.now())
            logger.info(
                "requisition_created",
                extra={
                    "requisition_id": requisition.id,
                    "requisition_number": requisition.requisition_number,
                    "total_amount": str(requisition.total_amount),
                    "line_count": len(requisition.line_items),
                },
            )
            return requisition

    def create_in(
        self,
        uow: UnitOfWork,
        draft: RequisitionDraft,
        actor: Actor,
        *,
        reference_time: datetime,
        created_offline: bool = False,
    ) -> Requisition:
        """Creation inside a caller-owned unit of work (offline sync reuses it)."""
        require_capability(actor, Capability.CREATE_REQUISITION, "create requisition")

        line_items = build_line_items(draft.line_items)
        _validate_header(
            draft.urgency,
            draft.currency,
            draft.justification,
            draft.delivery_date,
            reference_time,
        )
        vessel = self._collaborators.vessels.vessel(draft.vessel_id)
        if vessel is None:
            raise ValidationError("unknown vessel", field="vessel_id", value=draft.vessel_id)

        now = self._clock.now()
        prefix = vessel_prefix(vessel.name)
        year = now.year
        number = uow.sequences.next_value(f"requisition:{prefix}:{year}")

        requisition = Requisition(
            id=new_id(),
            requisition_number=f"{prefix}-{year}-{number:04d}",
            vessel_id=draft.vessel_id,
            requester_id=actor.user_id,
            status=REQUISITION_WORKFLOW.initial_state,
            urgency=draft.urgency,
            currency=draft.currency,
            total_amount=sum_totals(li.total_price for li in line_items),
            line_items=line_items,
            created_at=now,
            updated_at=now,
            version=1,
            compliance_flags=frozenset(draft.compliance_flags),
            created_offline=created_offline,
            offline_id=draft.offline_id,
            offline_timestamp=_as_utc(draft.offline_timestamp),
            justification=draft.justification,
            delivery_date=_as_utc(draft.delivery_date),
        )
        uow.requisitions.add(requisition)
        uow.auditor.record(
            entity_type=ENTITY_TYPE,
            entity_id=requisition.id,
            requisition_id=requisition.id,
            action=AuditAction.CREATED,
            actor=actor,
            payload={
                "requisitionNumber": requisition.requisition_number,
                "vesselId": requisition.vessel_id,
                "urgency": requisition.urgency,
                "currency": requisition.currency,
                "totalAmount": requisition.total_amount,
                "lineCount": len(line_items),
                "createdOffline": created_offline,
                "offlineId": requisition.offline_id,
            },
        )
        return requisition

    def update_draft(
        self,
        requisition_id: str,
        changes: RequisitionChanges,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Requisition:
        """Edit a DRAFT requisition.  Requester only; compare-and-swap."""
        with logged_operation(logger, "requisition_update", actor, requisition_id):
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                self._check_expected_version(requisition, expected_version)
                if requisition.status is not RequisitionStatus.DRAFT:
                    raise InvalidStateTransition(
                        ENTITY_TYPE, requisition.id, requisition.status.value, "update",
                        reason="only DRAFT requisitions can be edited",
                    )
                if actor.user_id != requisition.requester_id:
                    raise AuthorizationError(
                        actor.user_id, "update requisition", "only the requester may edit a draft",
                    )

                line_items = (
                    build_line_items(changes.line_items)
                    if changes.line_items is not None else requisition.line_items
                )
                candidate = replace(
                    requisition,
                    urgency=changes.urgency or requisition.urgency,
                    currency=changes.currency or requisition.currency,
                    justification=(
                        changes.justification
                        if changes.justification is not None else requisition.justification
                    ),
                    delivery_date=(
                        _as_utc(changes.delivery_date)
                        if changes.delivery_date is not None else requisition.delivery_date
                    ),
                    compliance_flags=(
                        frozenset(changes.compliance_flags)
                        if changes.compliance_flags is not None else requisition.compliance_flags
                    ),
                    line_items=line_items,
                    total_amount=sum_totals(li.total_price for li in line_items),
                    updated_at=self._clock.now(),
                )
                _validate_header(
                    candidate.urgency,
                    candidate.currency,
                    candidate.justification,
                    candidate.delivery_date,
                    self._clock.now(),
                )
                updated = uow.requisitions.update(candidate, requisition.version)
                changed = sorted(
                    name for name in (
                        "urgency", "currency", "line_items", "justification",
                        "delivery_date", "compliance_flags",
                    )
                    if getattr(changes, name) is not None
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=requisition.id,
                    requisition_id=requisition.id,
                    action=AuditAction.UPDATED,
                    actor=actor,
                    payload={"changedFields": changed, "totalAmount": updated.total_amount},
                )
            return updated

    # =========================================================================
    # Submission and approval
    # =========================================================================

    def submit(self, requisition_id: str, actor: Actor) -> SubmissionResult:
        """
        DRAFT -> PENDING_APPROVAL, or straight to APPROVED when the resolver
        says the requisition auto-approves.
        """
        with logged_operation(logger, "requisition_submit", actor, requisition_id):
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                result = self.submit_in(uow, requisition, actor)
            logger.info(
                "requisition_submitted",
                extra={
                    "requisition_id": requisition_id,
                    "status": result.requisition.status.value,
                    "approval_level": result.requirement.approval_level,
                    "auto_approved": result.auto_approved,
                },
            )
            return result

    def submit_in(self, uow: UnitOfWork, requisition: Requisition, actor: Actor) -> SubmissionResult:
        if actor.user_id != requisition.requester_id:
            raise AuthorizationError(
                actor.user_id, "submit requisition", "only the requester may submit",
            )
        now = self._clock.now()
        requirement = self._resolve(uow, requisition, now)

        if requirement.auto_approve:
            target = REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "auto_approve")
            approvals = requisition.approvals + (ApprovalRecord(
                requisition_id=requisition.id,
                approver_id=SYSTEM_ACTOR.user_id,
                approver_role=SYSTEM_ACTOR.role.value,
                decision=ApprovalDecision.APPROVED,
                timestamp=now,
                comments="Auto-approved below minor-spend limit",
            ),)
        else:
            target = REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "submit")
            approvals = requisition.approvals

        updated = uow.requisitions.update(
            replace(
                requisition,
                status=target,
                approval_level=requirement.approval_level,
                approvals=approvals,
                updated_at=now,
            ),
            requisition.version,
        )
        uow.auditor.record(
            entity_type=ENTITY_TYPE,
            entity_id=requisition.id,
            requisition_id=requisition.id,
            action=AuditAction.SUBMITTED,
            actor=actor,
            payload={
                "approvalLevel": requirement.approval_level,
                "requiredRole": requirement.required_role,
                "expedited": requirement.expedited,
                "escalationDeadline": requirement.escalation_deadline,
                "budgetScope": requirement.budget_scope,
                "budgetEscalated": requirement.budget_escalated,
                "authorizedApprovers": [a.user_id for a in requirement.authorized_approvers],
                "totalAmount": requisition.total_amount,
            },
        )
        if requirement.auto_approve:
            uow.auditor.record(
                entity_type=ENTITY_TYPE,
                entity_id=requisition.id,
                requisition_id=requisition.id,
                action=AuditAction.APPROVED,
                actor=SYSTEM_ACTOR,
                payload={
                    "autoApproved": True,
                    "minorSpendLimit": self._policy.minor_spend_limit,
                    "totalAmount": requisition.total_amount,
                },
            )
        return SubmissionResult(
            requisition=updated,
            requirement=requirement,
            auto_approved=requirement.auto_approve,
            warnings=requirement.warnings,
        )

    def approve(
        self,
        requisition_id: str,
        actor: Actor,
        comments: str = "",
        budget_code: str | None = None,
        expected_version: int | None = None,
    ) -> Requisition:
        """
        PENDING_APPROVAL -> APPROVED by a member of the resolved authorized set.

        Raises:
            ConcurrencyConflict: stale ``expected_version`` or a lost race.
            InvalidStateTransition: not PENDING_APPROVAL.
            AuthorizationError: actor holds no direct or delegated authority.
        """
        with logged_operation(logger, "requisition_approve", actor, requisition_id):
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                self._check_expected_version(requisition, expected_version)
                self._check_undecided(requisition)
                target = REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "approve")

                now = self._clock.now()
                requirement = self._resolve(uow, requisition, now)
                approver = self._authorize(requirement, requisition, actor, "approve requisition")

                record = ApprovalRecord(
                    requisition_id=requisition.id,
                    approver_id=actor.user_id,
                    approver_role=actor.role.value,
                    decision=ApprovalDecision.APPROVED,
                    timestamp=now,
                    comments=comments or "",
                    budget_code=budget_code,
                    delegated_from=approver.delegated_from,
                )
                updated = uow.requisitions.update(
                    replace(
                        requisition,
                        status=target,
                        approvals=requisition.approvals + (record,),
                        updated_at=now,
                    ),
                    requisition.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=requisition.id,
                    requisition_id=requisition.id,
                    action=AuditAction.APPROVED,
                    actor=actor,
                    delegated_from=approver.delegated_from,
                    payload={
                        "comments": record.comments,
                        "budgetCode": budget_code,
                        "requiredRole": requirement.required_role,
                        "approvalLevel": requirement.approval_level,
                        "version": updated.version,
                    },
                )
            logger.info(
                "requisition_approved",
                extra={
                    "requisition_id": requisition_id,
                    "approver_id": actor.user_id,
                    "delegated_from": approver.delegated_from,
                    "version": updated.version,
                },
            )
            return updated

    def reject(
        self,
        requisition_id: str,
        actor: Actor,
        comments: str,
        expected_version: int | None = None,
    ) -> Requisition:
        """PENDING_APPROVAL -> REJECTED -> DRAFT as one compare-and-swap write."""
        with logged_operation(logger, "requisition_reject", actor, requisition_id):
            comments = require_text(comments, "comments")
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                self._check_expected_version(requisition, expected_version)
                self._check_undecided(requisition)
                rejected = REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "reject")
                target = REQUISITION_WORKFLOW.next_state(requisition.id, rejected, "revise")

                now = self._clock.now()
                requirement = self._resolve(uow, requisition, now)
                approver = self._authorize(requirement, requisition, actor, "reject requisition")

                record = ApprovalRecord(
                    requisition_id=requisition.id,
                    approver_id=actor.user_id,
                    approver_role=actor.role.value,
                    decision=ApprovalDecision.REJECTED,
                    timestamp=now,
                    comments=comments,
                    delegated_from=approver.delegated_from,
                )
                updated = uow.requisitions.update(
                    replace(
                        requisition,
                        status=target,
                        approvals=requisition.approvals + (record,),
                        updated_at=now,
                    ),
                    requisition.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=requisition.id,
                    requisition_id=requisition.id,
                    action=AuditAction.REJECTED,
                    actor=actor,
                    delegated_from=approver.delegated_from,
                    payload={"comments": comments, "resultingStatus": target},
                )
            return updated

    # =========================================================================
    # Emergency override
    # =========================================================================

    def emergency_override(
        self,
        requisition_id: str,
        actor: Actor,
        reason: str,
        safety_justification: str,
        requires_post_approval: bool = True,
    ) -> Requisition:
        """
        Captain's bypass of approval sequencing from any pre-approval state.

        Raises:
            AuthorizationError: actor lacks EMERGENCY_OVERRIDE or is not
                assigned to the requisition's vessel.
            ValidationError: empty reason or safety justification.
        """
        with logged_operation(logger, "requisition_emergency_override", actor, requisition_id):
            require_capability(actor, Capability.EMERGENCY_OVERRIDE, "emergency override")
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                principal = self._collaborators.directory.principal(actor.user_id)
                if principal is None or not principal.serves(requisition.vessel_id):
                    raise AuthorizationError(
                        actor.user_id,
                        "emergency override",
                        f"not assigned to vessel {requisition.vessel_id}",
                    )
                reason = require_text(reason, "reason")
                safety_justification = require_text(safety_justification, "safety_justification")
                target = REQUISITION_WORKFLOW.next_state(
                    requisition.id, requisition.status, "emergency_override",
                )

                now = self._clock.now()
                documents: tuple[str, ...] = ()
                due_at = None
                if requires_post_approval:
                    documents = tuple(self._config.required_override_documents)
                    due_at = now + timedelta(hours=self._config.documentation_window_hours)

                record = ApprovalRecord(
                    requisition_id=requisition.id,
                    approver_id=actor.user_id,
                    approver_role=actor.role.value,
                    decision=ApprovalDecision.EMERGENCY_OVERRIDE,
                    timestamp=now,
                    comments=reason,
                )
                updated = uow.requisitions.update(
                    replace(
                        requisition,
                        status=target,
                        emergency_override=True,
                        pending_documentation=requires_post_approval,
                        required_documents=documents,
                        documentation_due_at=due_at,
                        approvals=requisition.approvals + (record,),
                        updated_at=now,
                    ),
                    requisition.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=requisition.id,
                    requisition_id=requisition.id,
                    action=AuditAction.EMERGENCY_OVERRIDE,
                    actor=actor,
                    payload={
                        "reason": reason,
                        "safetyJustification": safety_justification,
                        "previousStatus": requisition.status,
                        "requiresPostApproval": requires_post_approval,
                        "requiredDocuments": list(documents),
                        "documentationDueAt": due_at,
                    },
                )
            logger.warning(
                "emergency_override_applied",
                extra={
                    "requisition_id": requisition_id,
                    "captain_id": actor.user_id,
                    "pending_documentation": requires_post_approval,
                },
            )
            return updated

    def ratify_override(self, requisition_id: str, actor: Actor, comments: str = "") -> Requisition:
        """Post-hoc approval of an emergency override by the approval hierarchy."""
        with logged_operation(logger, "requisition_ratify_override", actor, requisition_id):
            require_capability(actor, Capability.RATIFY_OVERRIDE, "ratify emergency override")
            if actor.role not in APPROVAL_HIERARCHY:
                raise AuthorizationError(
                    actor.user_id, "ratify emergency override", "not in the approval hierarchy",
                )
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                if not requisition.pending_documentation:
                    raise InvalidStateTransition(
                        ENTITY_TYPE, requisition.id, requisition.status.value, "ratify_override",
                        reason="no emergency override awaiting ratification",
                    )
                now = self._clock.now()
                record = ApprovalRecord(
                    requisition_id=requisition.id,
                    approver_id=actor.user_id,
                    approver_role=actor.role.value,
                    decision=ApprovalDecision.OVERRIDE_RATIFIED,
                    timestamp=now,
                    comments=comments or "",
                )
                updated = uow.requisitions.update(
                    replace(
                        requisition,
                        pending_documentation=False,
                        approvals=requisition.approvals + (record,),
                        updated_at=now,
                    ),
                    requisition.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=requisition.id,
                    requisition_id=requisition.id,
                    action=AuditAction.OVERRIDE_RATIFIED,
                    actor=actor,
                    payload={
                        "comments": record.comments,
                        "documentationDueAt": requisition.documentation_due_at,
                        "late": bool(
                            requisition.documentation_due_at
                            and now > requisition.documentation_due_at
                        ),
                    },
                )
            return updated

    # =========================================================================
    # Cancellation and RFQ hand-off
    # =========================================================================

    def cancel(self, requisition_id: str, actor: Actor, reason: str) -> Requisition:
        with logged_operation(logger, "requisition_cancel", actor, requisition_id):
            reason = require_text(reason, "reason")
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                if (
                    actor.user_id != requisition.requester_id
                    and not actor.can(Capability.CANCEL_ANY_REQUISITION)
                ):
                    raise AuthorizationError(
                        actor.user_id, "cancel requisition", "not the requester",
                    )
                target = REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "cancel")
                updated = uow.requisitions.update(
                    replace(requisition, status=target, updated_at=self._clock.now()),
                    requisition.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=requisition.id,
                    requisition_id=requisition.id,
                    action=AuditAction.CANCELLED,
                    actor=actor,
                    payload={"reason": reason, "previousStatus": requisition.status},
                )
            return updated

    def generate_rfq(self, requisition_id: str, actor: Actor) -> RfqIssueResult:
        """APPROVED -> RFQ_ISSUED through the RFQ manager."""
        return self._rfq_manager.generate(requisition_id, actor)

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve(self, uow: UnitOfWork, requisition: Requisition, now: datetime) -> ApprovalRequirement:
        remaining, warnings = self._budget_remaining(requisition, now)
        requirement = resolve_approval(
            subject=ApprovalSubject(
                requisition_id=requisition.id,
                vessel_id=requisition.vessel_id,
                total_amount=requisition.total_amount,
                urgency=requisition.urgency,
                criticalities=requisition.criticalities,
                budget_remaining=remaining,
            ),
            directory=self._collaborators.directory,
            delegations=uow.delegations.list_for_vessel(requisition.vessel_id),
            now=now,
            policy=self._policy,
        )
        if warnings:
            requirement = replace(requirement, warnings=requirement.warnings + warnings)
        return requirement

    def _budget_remaining(
        self, requisition: Requisition, now: datetime,
    ) -> tuple[Decimal | None, tuple[str, ...]]:
        budgets = self._collaborators.budgets
        if budgets is None:
            return None, ()
        period = budget_period(now)
        try:
            return budgets.remaining(requisition.vessel_id, requisition.currency, period), ()
        except ExternalServiceError as exc:
            logger.warning(
                "vessel_budget_unavailable",
                extra={"requisition_id": requisition.id, "period": period, "error": str(exc)},
            )
            return None, (f"Vessel budget unavailable for {period}; no budget escalation applied",)

    @staticmethod
    def _authorize(
        requirement: ApprovalRequirement,
        requisition: Requisition,
        actor: Actor,
        action: str,
    ):
        approver = requirement.authorize(actor.user_id)
        if approver is None:
            role = requirement.required_role.value if requirement.required_role else "none"
            raise AuthorizationError(
                actor.user_id,
                action,
                f"requires {role} authority on vessel {requisition.vessel_id}",
            )
        return approver

    @staticmethod
    def _check_expected_version(requisition: Requisition, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != requisition.version:
            raise ConcurrencyConflict(
                ENTITY_TYPE, requisition.id, expected_version, requisition.version,
            )

    @staticmethod
    def _check_undecided(requisition: Requisition) -> None:
        """A decision already landed: the caller lost the approve/reject race."""
        if requisition.status is RequisitionStatus.PENDING_APPROVAL or not requisition.approvals:
            return
        last = requisition.approvals[-1].decision
        if (
            (requisition.status is RequisitionStatus.APPROVED and last is ApprovalDecision.APPROVED)
            or (requisition.status is RequisitionStatus.DRAFT and last is ApprovalDecision.REJECTED)
        ):
            raise ConcurrencyConflict(
                ENTITY_TYPE, requisition.id, requisition.version - 1, requisition.version,
            )
