"""Requisition lifecycle: creation, approval routing and emergency override."""

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
from procurement_modules.requisition.service import RequisitionService, advance_requisition
from procurement_modules.requisition.workflows import REQUISITION_TRANSITIONS, REQUISITION_WORKFLOW

__all__ = [
    "ApprovalDecision",
    "ApprovalRecord",
    "LineItem",
    "LineItemInput",
    "REQUISITION_TRANSITIONS",
    "REQUISITION_WORKFLOW",
    "Requisition",
    "RequisitionChanges",
    "RequisitionConfig",
    "RequisitionDraft",
    "RequisitionService",
    "RequisitionStatus",
    "SubmissionResult",
    "advance_requisition",
]
