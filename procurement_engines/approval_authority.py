"""
procurement_engines.approval_authority -- who must approve a requisition.

Responsibility:
    Given a requisition's spend profile, the organization directory, the
    delegation set and the current time, decide whether the requisition
    auto-approves, which hierarchy role must approve it, and exactly which
    users hold that authority (directly or through a delegation).

Architecture position:
    Engines -- pure calculation layer.  Reads the directory through its
    Protocol only; never writes, never reads the clock (``now`` is passed
    in).

Invariants enforced:
    - Auto-approval requires ``total < minor_spend_limit`` (strict) and,
      unless disabled, every line at ROUTINE criticality.
    - Thresholds are half-open ``[min, max)``; the lowest level whose range
      covers the total wins.  Totals below the first range use the first
      level.
    - SAFETY_CRITICAL lines raise the role floor to ``safety_floor_role``.
    - A delegation counts only while ``is_active and start <= now < end``,
      on the same vessel, with APPROVE_REQUISITIONS among its permissions,
      and only if the delegator holds the required role on that vessel.
    - Direct authority wins over delegated authority for the same user.
    - A total above the vessel's remaining budget for the quarter lifts
      the requirement one budget scope (VESSEL to FLEET, FLEET to COMPANY),
      never lowering the role already required.

Failure modes:
    - None raised.  An empty authorized set is reported as a warning.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Protocol

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.collaborators import OrganizationDirectory
from procurement_kernel.domain.roles import (
    APPROVAL_HIERARCHY,
    Capability,
    Role,
    ROLE_CAPABILITIES,
    hierarchy_rank,
)
from procurement_kernel.domain.values import Criticality, UrgencyLevel
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.approval_authority")


class BudgetScope(str, Enum):
    """Budget owner that funds a spend level."""
    VESSEL = "VESSEL"
    FLEET = "FLEET"
    COMPANY = "COMPANY"


NEXT_BUDGET_SCOPE: dict[BudgetScope, BudgetScope] = {
    BudgetScope.VESSEL: BudgetScope.FLEET,
    BudgetScope.FLEET: BudgetScope.COMPANY,
}


def budget_period(now: datetime) -> str:
    """Calendar quarter label, e.g. ``2024-Q1``."""
    return f"{now.year}-Q{(now.month - 1) // 3 + 1}"


@dataclass(frozen=True)
class ApprovalThreshold:
    """One approval level: ``min_amount <= total < max_amount`` needs ``role``."""

    level: int
    min_amount: Decimal
    max_amount: Decimal | None
    role: Role
    budget_scope: BudgetScope = BudgetScope.VESSEL

    def covers(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount < self.max_amount


DEFAULT_THRESHOLDS: tuple[ApprovalThreshold, ...] = (
    ApprovalThreshold(1, Decimal("500"), Decimal("5000"), Role.SUPERINTENDENT, BudgetScope.VESSEL),
    ApprovalThreshold(2, Decimal("5000"), Decimal("25000"), Role.PROCUREMENT_MANAGER, BudgetScope.FLEET),
    ApprovalThreshold(3, Decimal("25000"), None, Role.FINANCE_TEAM, BudgetScope.COMPANY),
)

DEFAULT_ESCALATION_HOURS: dict[UrgencyLevel, int] = {
    UrgencyLevel.ROUTINE: 24,
    UrgencyLevel.URGENT: 2,
    UrgencyLevel.EMERGENCY: 1,
}


@dataclass(frozen=True)
class ApprovalPolicy:
    minor_spend_limit: Decimal = Decimal("500")
    thresholds: tuple[ApprovalThreshold, ...] = DEFAULT_THRESHOLDS
    escalation_hours: Mapping[UrgencyLevel, int] = field(
        default_factory=lambda: dict(DEFAULT_ESCALATION_HOURS),
    )
    auto_approve_routine_only: bool = True
    safety_floor_role: Role = Role.SUPERINTENDENT

    def __post_init__(self) -> None:
        if not self.thresholds:
            raise ValueError("ApprovalPolicy requires at least one threshold")
        for t in self.thresholds:
            if t.role not in APPROVAL_HIERARCHY:
                raise ValueError(f"Threshold role {t.role.value} is not an approval role")


@dataclass(frozen=True)
class ApprovalSubject:
    """The spend profile of one requisition, as the resolver sees it."""

    requisition_id: str
    vessel_id: str
    total_amount: Decimal
    urgency: UrgencyLevel
    criticalities: tuple[Criticality | None, ...] = ()
    budget_remaining: Decimal | None = None


class DelegationGrant(Protocol):
    from_user_id: str
    to_user_id: str
    vessel_id: str
    start_date: datetime
    end_date: datetime
    permissions: frozenset[Capability]
    is_active: bool


def delegation_in_effect(delegation: DelegationGrant, now: datetime) -> bool:
    return delegation.is_active and delegation.start_date <= now < delegation.end_date


@dataclass(frozen=True)
class AuthorizedApprover:
    user_id: str
    role: Role
    delegated_from: str | None = None


@dataclass(frozen=True)
class ApprovalRequirement:
    """
    Outcome of resolution.

    ``approval_level`` is 0 for auto-approval.  ``required_role`` is None
    exactly when ``auto_approve`` is True.
    """

    auto_approve: bool
    approval_level: int
    required_role: Role | None
    expedited: bool
    authorized_approvers: tuple[AuthorizedApprover, ...] = ()
    emergency_override_available: bool = False
    override_users: tuple[str, ...] = ()
    escalation_deadline: datetime | None = None
    budget_scope: BudgetScope | None = None
    budget_escalated: bool = False
    warnings: tuple[str, ...] = ()

    def authorize(self, user_id: str) -> AuthorizedApprover | None:
        for approver in self.authorized_approvers:
            if approver.user_id == user_id:
                return approver
        return None


def _roles_with(capability: Capability) -> tuple[Role, ...]:
    return tuple(role for role, caps in ROLE_CAPABILITIES.items() if capability in caps)


def _all_routine(criticalities: Iterable[Criticality | None]) -> bool:
    return all(c in (None, Criticality.ROUTINE) for c in criticalities)


def _select_threshold(policy: ApprovalPolicy, subject: ApprovalSubject) -> ApprovalThreshold:
    ordered = sorted(policy.thresholds, key=lambda t: t.level)
    chosen = next((t for t in ordered if t.covers(subject.total_amount)), ordered[0])
    if Criticality.SAFETY_CRITICAL in subject.criticalities:
        floor = hierarchy_rank(policy.safety_floor_role)
        if hierarchy_rank(chosen.role) < floor:
            chosen = next(
                (t for t in ordered if hierarchy_rank(t.role) >= floor), chosen,
            )
    return chosen


def _escalate_for_budget(
    policy: ApprovalPolicy,
    chosen: ApprovalThreshold,
) -> tuple[ApprovalThreshold, bool]:
    """Next budget scope's lowest level at or above the current role."""
    scope = NEXT_BUDGET_SCOPE.get(chosen.budget_scope)
    if scope is None:
        return chosen, False
    rank = hierarchy_rank(chosen.role)
    target = next(
        (
            t for t in sorted(policy.thresholds, key=lambda t: t.level)
            if t.budget_scope is scope and hierarchy_rank(t.role) >= rank
        ),
        None,
    )
    if target is None:
        return chosen, False
    return target, True


def _authorized_set(
    role: Role,
    vessel_id: str,
    directory: OrganizationDirectory,
    delegations: Iterable[DelegationGrant],
    now: datetime,
) -> tuple[AuthorizedApprover, ...]:
    approvers: dict[str, AuthorizedApprover] = {}
    for principal in directory.users_with_role(role, vessel_id):
        approvers[principal.user_id] = AuthorizedApprover(principal.user_id, role)

    in_effect = sorted(
        (
            d for d in delegations
            if delegation_in_effect(d, now)
            and d.vessel_id == vessel_id
            and Capability.APPROVE_REQUISITIONS in d.permissions
        ),
        key=lambda d: (d.start_date, d.from_user_id),
    )
    for delegation in in_effect:
        delegator = directory.principal(delegation.from_user_id)
        if delegator is None or delegator.role != role or not delegator.serves(vessel_id):
            continue
        approvers.setdefault(
            delegation.to_user_id,
            AuthorizedApprover(delegation.to_user_id, role, delegated_from=delegation.from_user_id),
        )
    return tuple(sorted(approvers.values(), key=lambda a: (a.delegated_from is not None, a.user_id)))


@traced_engine("approval_authority", "1.0", fingerprint_fields=("subject", "now"))
def resolve_approval(
    *,
    subject: ApprovalSubject,
    directory: OrganizationDirectory,
    delegations: Iterable[DelegationGrant],
    now: datetime,
    policy: ApprovalPolicy,
) -> ApprovalRequirement:
    """
    Compute the approval requirement for ``subject``.

    Rules, in order: auto-approval below the minor-spend limit; emergency
    override availability for EMERGENCY urgency; threshold role with the
    safety floor; budget-scope escalation when the vessel budget is
    exceeded; escalation deadline by urgency.
    """
    if subject.total_amount < policy.minor_spend_limit and (
        not policy.auto_approve_routine_only or _all_routine(subject.criticalities)
    ):
        return ApprovalRequirement(
            auto_approve=True,
            approval_level=0,
            required_role=None,
            expedited=False,
        )

    warnings: list[str] = []

    override_users: tuple[str, ...] = ()
    if subject.urgency is UrgencyLevel.EMERGENCY:
        override_users = tuple(sorted({
            p.user_id
            for role in _roles_with(Capability.EMERGENCY_OVERRIDE)
            for p in directory.users_with_role(role, subject.vessel_id)
        }))

    threshold = _select_threshold(policy, subject)
    budget_escalated = False
    if subject.budget_remaining is not None and subject.total_amount > subject.budget_remaining:
        from_scope = threshold.budget_scope
        threshold, budget_escalated = _escalate_for_budget(policy, threshold)
        warnings.append(
            f"Total {subject.total_amount} exceeds remaining vessel budget {subject.budget_remaining}"
        )
        logger.warning(
            "vessel_budget_exceeded",
            extra={
                "requisition_id": subject.requisition_id,
                "vessel_id": subject.vessel_id,
                "budget_remaining": str(subject.budget_remaining),
                "from_scope": from_scope.value,
                "to_scope": threshold.budget_scope.value,
            },
        )
    safety_critical = Criticality.SAFETY_CRITICAL in subject.criticalities
    expedited = safety_critical or subject.urgency is UrgencyLevel.EMERGENCY

    approvers = _authorized_set(
        threshold.role, subject.vessel_id, directory, delegations, now,
    )
    if not approvers:
        warnings.append(
            f"No eligible approver holds {threshold.role.value} for vessel {subject.vessel_id}"
        )
        logger.warning(
            "no_eligible_approver",
            extra={
                "requisition_id": subject.requisition_id,
                "required_role": threshold.role.value,
                "vessel_id": subject.vessel_id,
            },
        )

    hours = policy.escalation_hours.get(subject.urgency, DEFAULT_ESCALATION_HOURS[subject.urgency])

    return ApprovalRequirement(
        auto_approve=False,
        approval_level=threshold.level,
        required_role=threshold.role,
        expedited=expedited,
        authorized_approvers=approvers,
        emergency_override_available=bool(override_users),
        override_users=override_users,
        escalation_deadline=now + timedelta(hours=hours),
        budget_scope=threshold.budget_scope,
        budget_escalated=budget_escalated,
        warnings=tuple(warnings),
    )
