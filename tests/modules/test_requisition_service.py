"""
Tests for RequisitionService: creation, submission, approval, rejection,
emergency override and cancellation.

The default requisition is 2 x 1500 USD of ENGINE spares on the Atlantic
Star, which routes to the vessel's superintendent at level 1.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.roles import SYSTEM_ACTOR, Actor, Capability, Role
from procurement_kernel.domain.values import Criticality, UrgencyLevel
from procurement_kernel.exceptions import (
    AuthorizationError,
    ConcurrencyConflict,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from procurement_modules.delegation.models import DelegationRequest
from procurement_modules.requisition.models import (
    ApprovalDecision,
    RequisitionChanges,
    RequisitionDraft,
    RequisitionStatus,
)
from procurement_modules.requisition.service import vessel_prefix
from tests.factories import (
    ADMIN,
    CAPTAIN,
    CAPTAIN_PACIFIC,
    CHIEF,
    CREW,
    CREW_PACIFIC,
    FINANCE,
    NOW,
    PM,
    SUPERINTENDENT,
    SUPERINTENDENT_PACIFIC,
    VESSEL_ATLANTIC,
    make_draft,
    make_line,
)


def _emergency_draft(**fields):
    return make_draft(
        make_line("1", "1000", name="Fire pump impeller", criticality=Criticality.SAFETY_CRITICAL),
        urgency=UrgencyLevel.EMERGENCY,
        justification="Fire pump seized during drill",
        **fields,
    )


# =============================================================================
# Creation
# =============================================================================


class TestCreate:

    def test_draft_at_version_one(self, container):
        requisition = container.requisitions.create(make_draft(), CREW)

        assert requisition.status is RequisitionStatus.DRAFT
        assert requisition.version == 1
        assert requisition.requisition_number == "ATL-2024-0001"
        assert requisition.requester_id == "crew-1"
        assert requisition.total_amount == Decimal("3000")
        assert requisition.line_items[0].total_price == Decimal("3000")

    def test_numbers_are_sequential(self, container):
        container.requisitions.create(make_draft(), CREW)
        second = container.requisitions.create(make_draft(), CREW)
        assert second.requisition_number == "ATL-2024-0002"

    def test_total_is_sum_of_lines(self, container):
        requisition = container.requisitions.create(
            make_draft(make_line("2", "1500"), make_line("4", "12.50", name="Gasket")),
            CREW,
        )
        assert requisition.total_amount == Decimal("3050.00")
        assert requisition.computed_total == requisition.total_amount

    def test_matching_supplied_total_accepted(self, container):
        requisition = container.requisitions.create(
            make_draft(make_line("2", "1500", total_price="3000")), CREW,
        )
        assert requisition.total_amount == Decimal("3000")

    @pytest.mark.parametrize("line,field", [
        (make_line("0", "10"), "line_items[0].quantity"),
        (make_line("-1", "10"), "line_items[0].quantity"),
        (make_line("1", "-5"), "line_items[0].unit_price"),
        (make_line("2", "10", total_price="25"), "line_items[0].total_price"),
        (make_line("1", "10", name="  "), "line_items[0].name"),
    ])
    def test_invalid_lines_rejected(self, container, line, field):
        with pytest.raises(ValidationError) as exc_info:
            container.requisitions.create(make_draft(line), CREW)
        assert exc_info.value.field == field

    def test_no_lines_rejected(self, container):
        draft = RequisitionDraft(
            vessel_id=VESSEL_ATLANTIC, urgency=UrgencyLevel.ROUTINE, currency="USD", line_items=(),
        )
        with pytest.raises(ValidationError):
            container.requisitions.create(draft, CREW)

    @pytest.mark.parametrize("currency", ["usd", "US", "DOLLARS", ""])
    def test_bad_currency_rejected(self, container, currency):
        with pytest.raises(ValidationError):
            container.requisitions.create(make_draft(currency=currency), CREW)

    def test_emergency_needs_justification(self, container):
        with pytest.raises(ValidationError) as exc_info:
            container.requisitions.create(make_draft(urgency=UrgencyLevel.EMERGENCY), CREW)
        assert exc_info.value.field == "justification"

    def test_past_delivery_date_rejected(self, container):
        with pytest.raises(ValidationError):
            container.requisitions.create(make_draft(delivery_date=NOW - timedelta(days=1)), CREW)

    def test_unknown_vessel_rejected(self, container):
        with pytest.raises(ValidationError):
            container.requisitions.create(make_draft(vessel_id="vessel-ghost"), CREW)

    def test_role_without_create_capability(self, container):
        with pytest.raises(AuthorizationError):
            container.requisitions.create(make_draft(), PM)

    def test_failed_create_persists_nothing(self, container):
        with pytest.raises(ValidationError):
            container.requisitions.create(make_draft(currency="usd"), CREW)
        requisition = container.requisitions.create(make_draft(), CREW)
        assert requisition.requisition_number == "ATL-2024-0001"
        assert len(container.store.audit) == 1

    def test_unknown_id_not_found(self, container):
        with pytest.raises(NotFoundError):
            container.requisitions.get("missing")


class TestVesselPrefix:

    @pytest.mark.parametrize("name,prefix", [
        ("Atlantic Star", "ATL"),
        ("M/V Ocean", "MVO"),
        ("Q8", "Q8X"),
    ])
    def test_prefix(self, name, prefix):
        assert vessel_prefix(name) == prefix


# =============================================================================
# Draft edits
# =============================================================================


class TestUpdateDraft:

    def test_lines_replaced_and_total_recomputed(self, container, workflow):
        requisition = workflow.create()
        updated = container.requisitions.update_draft(
            requisition.id,
            RequisitionChanges(line_items=(make_line("1", "250"),)),
            CREW,
            expected_version=1,
        )
        assert updated.version == 2
        assert updated.total_amount == Decimal("250")

    def test_only_requester_edits(self, container, workflow):
        requisition = workflow.create()
        with pytest.raises(AuthorizationError):
            container.requisitions.update_draft(requisition.id, RequisitionChanges(currency="EUR"), CHIEF)

    def test_stale_version(self, container, workflow):
        requisition = workflow.create()
        with pytest.raises(ConcurrencyConflict):
            container.requisitions.update_draft(
                requisition.id, RequisitionChanges(currency="EUR"), CREW, expected_version=5,
            )

    def test_submitted_requisition_frozen(self, container, workflow):
        result = workflow.submit()
        with pytest.raises(InvalidStateTransition):
            container.requisitions.update_draft(
                result.requisition.id, RequisitionChanges(currency="EUR"), CREW,
            )


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:

    def test_pending_with_resolved_requirement(self, workflow):
        result = workflow.submit()

        assert result.auto_approved is False
        assert result.requisition.status is RequisitionStatus.PENDING_APPROVAL
        assert result.requisition.version == 2
        assert result.requisition.approval_level == 1
        assert result.requirement.required_role is Role.SUPERINTENDENT
        assert [a.user_id for a in result.requirement.authorized_approvers] == ["super-1"]
        assert result.requirement.escalation_deadline == NOW + timedelta(hours=24)
        assert result.warnings == ()

    def test_minor_spend_auto_approves(self, workflow):
        result = workflow.submit(make_line("1", "499.99"))

        assert result.auto_approved is True
        assert result.requisition.status is RequisitionStatus.APPROVED
        assert result.requisition.approval_level == 0
        record = result.requisition.approvals[-1]
        assert record.approver_id == SYSTEM_ACTOR.user_id
        assert record.decision is ApprovalDecision.APPROVED

    def test_auto_approval_audited_as_system(self, container, workflow):
        result = workflow.submit(make_line("1", "100"))
        trail = container.requisitions.audit_trail(result.requisition.id, CREW)
        assert [e.action for e in trail] == [
            AuditAction.CREATED, AuditAction.SUBMITTED, AuditAction.APPROVED,
        ]
        assert trail[-1].user_id == "system"

    def test_only_requester_submits(self, container, workflow):
        requisition = workflow.create()
        with pytest.raises(AuthorizationError):
            container.requisitions.submit(requisition.id, CHIEF)

    def test_cannot_submit_twice(self, container, workflow):
        result = workflow.submit()
        with pytest.raises(InvalidStateTransition):
            container.requisitions.submit(result.requisition.id, CREW)

    def test_submission_logged(self, workflow, captured_logs):
        workflow.submit()
        messages = [r["message"] for r in captured_logs()]
        assert "requisition_submit_started" in messages
        assert "requisition_submitted" in messages


# =============================================================================
# Approval and rejection
# =============================================================================


class TestApprove:

    def test_superintendent_approves(self, container, workflow):
        result = workflow.submit()
        approved = container.requisitions.approve(
            result.requisition.id, SUPERINTENDENT, comments="Planned maintenance",
            budget_code="ENG-2024", expected_version=2,
        )

        assert approved.status is RequisitionStatus.APPROVED
        assert approved.version == 3
        record = approved.approvals[-1]
        assert record.approver_id == "super-1"
        assert record.budget_code == "ENG-2024"
        assert record.delegated_from is None

    @pytest.mark.parametrize("actor", [SUPERINTENDENT_PACIFIC, PM, FINANCE, ADMIN, CAPTAIN])
    def test_outside_authorized_set(self, container, workflow, actor):
        result = workflow.submit()
        with pytest.raises(AuthorizationError):
            container.requisitions.approve(result.requisition.id, actor)

    def test_higher_role_is_not_a_substitute(self, container, workflow):
        result = workflow.submit(make_line("1", "30000"))
        assert result.requirement.required_role is Role.FINANCE_TEAM
        with pytest.raises(AuthorizationError):
            container.requisitions.approve(result.requisition.id, PM)
        approved = container.requisitions.approve(result.requisition.id, FINANCE)
        assert approved.status is RequisitionStatus.APPROVED

    def test_stale_version_conflicts(self, container, workflow):
        result = workflow.submit()
        with pytest.raises(ConcurrencyConflict) as exc_info:
            container.requisitions.approve(result.requisition.id, SUPERINTENDENT, expected_version=1)
        assert exc_info.value.actual_version == 2

    def test_draft_cannot_be_approved(self, container, workflow):
        requisition = workflow.create()
        with pytest.raises(InvalidStateTransition):
            container.requisitions.approve(requisition.id, SUPERINTENDENT)

    def test_second_decision_conflicts(self, container, workflow):
        approved = workflow.approved()

        with pytest.raises(ConcurrencyConflict) as exc_info:
            container.requisitions.approve(approved.id, SUPERINTENDENT)
        assert exc_info.value.actual_version == approved.version

        with pytest.raises(ConcurrencyConflict):
            container.requisitions.reject(approved.id, SUPERINTENDENT, "Changed my mind")

    def test_decision_after_rejection_conflicts(self, container, workflow):
        pending = workflow.submit().requisition
        container.requisitions.reject(pending.id, SUPERINTENDENT, "Quote two alternatives")

        with pytest.raises(ConcurrencyConflict):
            container.requisitions.approve(pending.id, SUPERINTENDENT)

    def test_delegated_approval_attributed(self, container, workflow):
        container.delegations.create(
            DelegationRequest(
                to_user_id="chief-1",
                vessel_id=VESSEL_ATLANTIC,
                start_date=NOW - timedelta(hours=1),
                end_date=NOW + timedelta(days=7),
                permissions=frozenset({Capability.APPROVE_REQUISITIONS}),
                reason="Shore leave",
            ),
            SUPERINTENDENT,
        )
        result = workflow.submit()
        assert [a.user_id for a in result.requirement.authorized_approvers] == ["super-1", "chief-1"]

        approved = container.requisitions.approve(result.requisition.id, CHIEF)
        assert approved.approvals[-1].delegated_from == "super-1"
        trail = container.requisitions.audit_trail(approved.id, CHIEF)
        assert trail[-1].action is AuditAction.APPROVED
        assert trail[-1].delegated_from == "super-1"

    def test_expired_delegation_grants_nothing(self, container, workflow, clock):
        container.delegations.create(
            DelegationRequest(
                to_user_id="chief-1",
                vessel_id=VESSEL_ATLANTIC,
                start_date=NOW,
                end_date=NOW + timedelta(days=1),
                permissions=frozenset({Capability.APPROVE_REQUISITIONS}),
            ),
            SUPERINTENDENT,
        )
        result = workflow.submit()
        clock.advance(days=1)
        with pytest.raises(AuthorizationError):
            container.requisitions.approve(result.requisition.id, CHIEF)


class TestReject:

    def test_rejection_returns_to_draft(self, container, workflow):
        result = workflow.submit()
        rejected = container.requisitions.reject(
            result.requisition.id, SUPERINTENDENT, "Use ship stock first",
        )
        assert rejected.status is RequisitionStatus.DRAFT
        assert rejected.version == 3
        assert rejected.approvals[-1].decision is ApprovalDecision.REJECTED

        resubmitted = container.requisitions.submit(rejected.id, CREW)
        assert resubmitted.requisition.status is RequisitionStatus.PENDING_APPROVAL

    def test_comments_required(self, container, workflow):
        result = workflow.submit()
        with pytest.raises(ValidationError):
            container.requisitions.reject(result.requisition.id, SUPERINTENDENT, "   ")

    def test_rejector_must_be_authorized(self, container, workflow):
        result = workflow.submit()
        with pytest.raises(AuthorizationError):
            container.requisitions.reject(result.requisition.id, SUPERINTENDENT_PACIFIC, "No")


# =============================================================================
# Emergency override
# =============================================================================


class TestEmergencyOverride:

    def test_captain_overrides_pending(self, container, workflow):
        result = workflow.submit(
            make_line("1", "1000", criticality=Criticality.SAFETY_CRITICAL),
            urgency=UrgencyLevel.EMERGENCY,
            justification="Fire pump seized during drill",
        )
        assert result.requirement.override_users == ("captain-1",)

        overridden = container.requisitions.emergency_override(
            result.requisition.id, CAPTAIN,
            reason="Vessel unsafe without fire pump",
            safety_justification="SOLAS fire-fighting capability",
        )
        assert overridden.status is RequisitionStatus.APPROVED
        assert overridden.emergency_override is True
        assert overridden.pending_documentation is True
        assert overridden.required_documents == ("EMERGENCY_JUSTIFICATION", "INCIDENT_REPORT")
        assert overridden.documentation_due_at == NOW + timedelta(hours=48)
        assert overridden.approvals[-1].decision is ApprovalDecision.EMERGENCY_OVERRIDE

    def test_override_from_draft(self, container):
        requisition = container.requisitions.create(_emergency_draft(), CREW)
        overridden = container.requisitions.emergency_override(
            requisition.id, CAPTAIN, reason="Flooding", safety_justification="Bilge pump down",
        )
        assert overridden.status is RequisitionStatus.APPROVED

    def test_without_post_approval(self, container):
        requisition = container.requisitions.create(_emergency_draft(), CREW)
        overridden = container.requisitions.emergency_override(
            requisition.id, CAPTAIN, reason="Flooding", safety_justification="Bilge pump down",
            requires_post_approval=False,
        )
        assert overridden.pending_documentation is False
        assert overridden.required_documents == ()
        assert overridden.documentation_due_at is None

    @pytest.mark.parametrize("actor", [SUPERINTENDENT, ADMIN, CHIEF, CAPTAIN_PACIFIC])
    def test_only_the_vessels_captain(self, container, actor):
        requisition = container.requisitions.create(_emergency_draft(), CREW)
        with pytest.raises(AuthorizationError):
            container.requisitions.emergency_override(
                requisition.id, actor, reason="Flooding", safety_justification="Bilge pump down",
            )

    def test_reason_required(self, container):
        requisition = container.requisitions.create(_emergency_draft(), CREW)
        with pytest.raises(ValidationError):
            container.requisitions.emergency_override(
                requisition.id, CAPTAIN, reason="", safety_justification="Bilge pump down",
            )

    def test_not_after_approval(self, container, workflow):
        approved = workflow.approved()
        with pytest.raises(InvalidStateTransition):
            container.requisitions.emergency_override(
                approved.id, CAPTAIN, reason="Flooding", safety_justification="Bilge pump down",
            )

    def test_ratification_clears_documentation_flag(self, container):
        requisition = container.requisitions.create(_emergency_draft(), CREW)
        container.requisitions.emergency_override(
            requisition.id, CAPTAIN, reason="Flooding", safety_justification="Bilge pump down",
        )
        ratified = container.requisitions.ratify_override(requisition.id, SUPERINTENDENT, "Documents filed")
        assert ratified.pending_documentation is False
        assert ratified.approvals[-1].decision is ApprovalDecision.OVERRIDE_RATIFIED

        with pytest.raises(InvalidStateTransition):
            container.requisitions.ratify_override(requisition.id, SUPERINTENDENT)

    def test_captain_cannot_ratify(self, container):
        requisition = container.requisitions.create(_emergency_draft(), CREW)
        container.requisitions.emergency_override(
            requisition.id, CAPTAIN, reason="Flooding", safety_justification="Bilge pump down",
        )
        with pytest.raises(AuthorizationError):
            container.requisitions.ratify_override(requisition.id, CAPTAIN)


# =============================================================================
# Cancellation and audit access
# =============================================================================


class TestCancel:

    def test_requester_cancels_draft(self, container, workflow):
        requisition = workflow.create()
        cancelled = container.requisitions.cancel(requisition.id, CREW, "Part found in store")
        assert cancelled.status is RequisitionStatus.CANCELLED

    def test_captain_cancels_pending(self, container, workflow):
        result = workflow.submit()
        cancelled = container.requisitions.cancel(result.requisition.id, CAPTAIN, "Duplicate")
        assert cancelled.status is RequisitionStatus.CANCELLED

    def test_other_crew_cannot_cancel(self, container, workflow):
        requisition = workflow.create()
        with pytest.raises(AuthorizationError):
            container.requisitions.cancel(requisition.id, CREW_PACIFIC, "Mine now")

    def test_no_cancel_after_approval(self, container, workflow):
        approved = workflow.approved()
        with pytest.raises(InvalidStateTransition):
            container.requisitions.cancel(approved.id, CREW, "Too late")

    def test_cancelled_is_terminal(self, container, workflow):
        requisition = workflow.create()
        container.requisitions.cancel(requisition.id, CREW, "Not needed")
        with pytest.raises(InvalidStateTransition):
            container.requisitions.submit(requisition.id, CREW)


class TestAuditTrail:

    def test_trail_in_order(self, container, workflow):
        approved = workflow.approved()
        trail = container.requisitions.audit_trail(approved.id, PM)
        assert [e.action for e in trail] == [
            AuditAction.CREATED, AuditAction.SUBMITTED, AuditAction.APPROVED,
        ]
        assert [e.user_id for e in trail] == ["crew-1", "crew-1", "super-1"]
        assert trail[0].is_genesis

    def test_system_role_cannot_read(self, container, workflow):
        requisition = workflow.create()
        with pytest.raises(AuthorizationError):
            container.requisitions.audit_trail(requisition.id, Actor("svc", Role.SYSTEM))


# =============================================================================
# Budget hierarchy
# =============================================================================


class TestBudgetHierarchy:

    def test_exceeded_vessel_budget_routes_to_fleet(self, container, collaborators, workflow):
        collaborators.budgets.set(VESSEL_ATLANTIC, "USD", "2024-Q1", Decimal("1000"))

        result = workflow.submit()

        assert result.requirement.required_role is Role.PROCUREMENT_MANAGER
        assert result.requirement.budget_escalated is True
        assert result.requisition.approval_level == 2
        with pytest.raises(AuthorizationError):
            container.requisitions.approve(result.requisition.id, SUPERINTENDENT)
        approved = container.requisitions.approve(result.requisition.id, PM, budget_code="FLEET-OPEX")
        assert approved.approvals[-1].approver_role == "PROCUREMENT_MANAGER"

        submitted = [
            e for e in container.requisitions.audit_trail(result.requisition.id, CREW)
            if e.action is AuditAction.SUBMITTED
        ]
        assert submitted[0].payload["budgetScope"] == "FLEET"
        assert submitted[0].payload["budgetEscalated"] is True

    def test_budget_for_other_quarter_ignored(self, collaborators, workflow):
        collaborators.budgets.set(VESSEL_ATLANTIC, "USD", "2024-Q2", Decimal("1000"))
        result = workflow.submit()
        assert result.requirement.required_role is Role.SUPERINTENDENT

    def test_unavailable_budget_source_warns(self, collaborators, workflow):
        collaborators.budgets.unavailable = True

        result = workflow.submit()

        assert result.requirement.required_role is Role.SUPERINTENDENT
        assert any("budget unavailable" in w for w in result.warnings)
