"""Requisition lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from procurement_api.dependencies import get_actor, get_container
from procurement_api.schemas import (
    ApproveIn,
    AuditEntryOut,
    AuditTrailOut,
    CancelIn,
    EmergencyOverrideIn,
    OfflineRequisitionIn,
    OfflineSyncOut,
    RatifyIn,
    RejectIn,
    RequisitionIn,
    RequisitionOut,
    RequisitionUpdateIn,
    RfqIssueOut,
    SubmissionOut,
)
from procurement_kernel.domain.roles import Actor
from procurement_services.container import ServiceContainer

router = APIRouter(prefix="/requisitions", tags=["Requisitions"])


@router.post("", response_model=RequisitionOut, status_code=status.HTTP_201_CREATED)
def create_requisition(
    body: RequisitionIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.create(body.to_draft(), actor)
    return RequisitionOut.from_dto(requisition)


# Declared before "/{requisition_id}" routes so the literal path wins.
@router.post("/sync-offline", response_model=OfflineSyncOut, status_code=status.HTTP_201_CREATED)
def sync_offline(
    body: OfflineRequisitionIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    result = container.offline_sync.sync(body.to_draft(), actor)
    out = OfflineSyncOut.from_dto(result.requisition, result.warnings)
    return out.model_copy(update={"already_synced": not result.created})


@router.get("/{requisition_id}", response_model=RequisitionOut)
def get_requisition(
    requisition_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    return RequisitionOut.from_dto(container.requisitions.get(requisition_id))


@router.patch("/{requisition_id}", response_model=RequisitionOut)
def update_requisition(
    requisition_id: str,
    body: RequisitionUpdateIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.update_draft(
        requisition_id, body.to_changes(), actor, expected_version=body.expected_version,
    )
    return RequisitionOut.from_dto(requisition)


@router.post("/{requisition_id}/submit", response_model=SubmissionOut)
def submit_requisition(
    requisition_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    result = container.requisitions.submit(requisition_id, actor)
    requirement = result.requirement
    out = SubmissionOut.from_dto(result.requisition, result.warnings)
    return out.model_copy(update={
        "auto_approved": result.auto_approved,
        "required_role": requirement.required_role,
        "expedited": requirement.expedited,
        "escalation_deadline": requirement.escalation_deadline,
        "budget_scope": requirement.budget_scope,
        "budget_escalated": requirement.budget_escalated,
        "authorized_approvers": [a.user_id for a in requirement.authorized_approvers],
    })


@router.post("/{requisition_id}/approve", response_model=RequisitionOut)
def approve_requisition(
    requisition_id: str,
    body: ApproveIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.approve(
        requisition_id,
        actor,
        comments=body.comments,
        budget_code=body.budget_code,
        expected_version=body.expected_version,
    )
    return RequisitionOut.from_dto(requisition)


@router.post("/{requisition_id}/reject", response_model=RequisitionOut)
def reject_requisition(
    requisition_id: str,
    body: RejectIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.reject(
        requisition_id, actor, body.comments, expected_version=body.expected_version,
    )
    return RequisitionOut.from_dto(requisition)


@router.post("/{requisition_id}/emergency-override", response_model=RequisitionOut)
def emergency_override(
    requisition_id: str,
    body: EmergencyOverrideIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.emergency_override(
        requisition_id,
        actor,
        reason=body.reason,
        safety_justification=body.safety_justification,
        requires_post_approval=body.requires_post_approval,
    )
    return RequisitionOut.from_dto(requisition)


@router.post("/{requisition_id}/ratify-override", response_model=RequisitionOut)
def ratify_override(
    requisition_id: str,
    body: RatifyIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.ratify_override(requisition_id, actor, body.comments)
    return RequisitionOut.from_dto(requisition)


@router.post("/{requisition_id}/cancel", response_model=RequisitionOut)
def cancel_requisition(
    requisition_id: str,
    body: CancelIn,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    requisition = container.requisitions.cancel(requisition_id, actor, body.reason)
    return RequisitionOut.from_dto(requisition)


@router.post("/{requisition_id}/generate-rfq", response_model=RfqIssueOut)
def generate_rfq(
    requisition_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    result = container.requisitions.generate_rfq(requisition_id, actor)
    return RfqIssueOut.from_dto(result, result.warnings)


@router.get("/{requisition_id}/audit-trail", response_model=AuditTrailOut)
def audit_trail(
    requisition_id: str,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    entries = container.requisitions.audit_trail(requisition_id, actor)
    return AuditTrailOut(
        requisition_id=requisition_id,
        entries=[AuditEntryOut.model_validate(e) for e in entries],
    )
