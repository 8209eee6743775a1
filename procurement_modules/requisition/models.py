"""
Requisition Domain Models.

The nouns of the approval stage: requisitions, their line items and the
approval records written against them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from procurement_engines.approval_authority import ApprovalRequirement
from procurement_kernel.domain.values import Criticality, UrgencyLevel, ZERO
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.requisition.models")


class RequisitionStatus(str, Enum):
    """Requisition lifecycle states."""
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RFQ_ISSUED = "RFQ_ISSUED"
    PO_ISSUED = "PO_ISSUED"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class ApprovalDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EMERGENCY_OVERRIDE = "EMERGENCY_OVERRIDE"
    OVERRIDE_RATIFIED = "OVERRIDE_RATIFIED"


@dataclass(frozen=True)
class LineItemInput:
    """A requested line as submitted by the caller, before validation."""
    name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    criticality: Criticality | None = None
    category: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class LineItem:
    """A validated requisition line.  ``total_price == quantity * unit_price``."""
    name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    criticality: Criticality | None = None
    category: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ApprovalRecord:
    """One decision against a requisition.  Never modified once written."""
    requisition_id: str
    approver_id: str
    decision: ApprovalDecision
    timestamp: datetime
    comments: str = ""
    budget_code: str | None = None
    delegated_from: str | None = None
    approver_role: str | None = None


@dataclass(frozen=True)
class RequisitionDraft:
    """Everything a caller supplies to create a requisition."""
    vessel_id: str
    urgency: UrgencyLevel
    currency: str
    line_items: tuple[LineItemInput, ...]
    justification: str | None = None
    delivery_date: datetime | None = None
    compliance_flags: frozenset[str] = frozenset()
    offline_id: str | None = None
    offline_timestamp: datetime | None = None


@dataclass(frozen=True)
class RequisitionChanges:
    """Editable fields of a DRAFT requisition.  None means unchanged."""
    urgency: UrgencyLevel | None = None
    currency: str | None = None
    line_items: tuple[LineItemInput, ...] | None = None
    justification: str | None = None
    delivery_date: datetime | None = None
    compliance_flags: frozenset[str] | None = None


@dataclass(frozen=True)
class Requisition:
    """A crew request for goods or services aboard one vessel."""
    id: str
    requisition_number: str
    vessel_id: str
    requester_id: str
    status: RequisitionStatus
    urgency: UrgencyLevel
    currency: str
    total_amount: Decimal
    line_items: tuple[LineItem, ...]
    created_at: datetime
    updated_at: datetime
    version: int = 1
    compliance_flags: frozenset[str] = frozenset()
    created_offline: bool = False
    offline_id: str | None = None
    offline_timestamp: datetime | None = None
    justification: str | None = None
    delivery_date: datetime | None = None
    approval_level: int | None = None
    emergency_override: bool = False
    pending_documentation: bool = False
    required_documents: tuple[str, ...] = ()
    documentation_due_at: datetime | None = None
    approvals: tuple[ApprovalRecord, ...] = field(default_factory=tuple)

    @property
    def categories(self) -> frozenset[str]:
        return frozenset(li.category for li in self.line_items if li.category)

    @property
    def criticalities(self) -> tuple[Criticality | None, ...]:
        return tuple(li.criticality for li in self.line_items)

    @property
    def computed_total(self) -> Decimal:
        return sum((li.total_price for li in self.line_items), ZERO)


@dataclass(frozen=True)
class SubmissionResult:
    """What ``submit`` reports back to the caller."""
    requisition: Requisition
    requirement: ApprovalRequirement
    auto_approved: bool
    warnings: tuple[str, ...] = ()
