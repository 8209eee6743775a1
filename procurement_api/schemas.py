"""
Request and response bodies for the HTTP API.

Every field is camelCase on the wire.  Responses are read straight off the
frozen domain DTOs (``from_attributes``); decimals serialize as strings.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from procurement_engines.approval_authority import BudgetScope
from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.roles import Capability, Role
from procurement_kernel.domain.values import Criticality, UrgencyLevel
from procurement_modules.delegation.models import DelegationRequest
from procurement_modules.invoice.models import (
    InvoiceLineInput,
    InvoiceStatus,
    InvoiceSubmission,
    MatchOutcome,
)
from procurement_modules.purchase_order.models import (
    PurchaseOrderRequest,
    PurchaseOrderStatus,
    ReceiptCondition,
    ReceivedLine,
)
from procurement_modules.requisition.models import (
    ApprovalDecision,
    LineItemInput,
    RequisitionChanges,
    RequisitionDraft,
    RequisitionStatus,
)
from procurement_modules.rfq.models import (
    QuoteLineInput,
    QuoteStatus,
    QuoteSubmission,
    RfqStatus,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ResourceOut(ApiModel):
    """Success bodies carry non-fatal warnings alongside the resource."""

    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_dto(cls, dto: Any, warnings: Any = ()) -> ResourceOut:
        return cls.model_validate(dto).model_copy(update={"warnings": list(warnings)})


def _sorted_values(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(getattr(v, "value", v) for v in value)
    return value


# =============================================================================
# Requisitions
# =============================================================================


class LineItemIn(ApiModel):
    name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    criticality: Criticality | None = None
    category: str | None = None
    description: str | None = None

    def to_input(self) -> LineItemInput:
        return LineItemInput(
            name=self.name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            criticality=self.criticality,
            category=self.category,
            description=self.description,
        )


class RequisitionIn(ApiModel):
    vessel_id: str
    urgency: UrgencyLevel
    currency: str
    line_items: list[LineItemIn]
    justification: str | None = None
    delivery_date: datetime | None = None
    compliance_flags: list[str] = Field(default_factory=list)

    def to_draft(self, **extra: Any) -> RequisitionDraft:
        return RequisitionDraft(
            vessel_id=self.vessel_id,
            urgency=self.urgency,
            currency=self.currency,
            line_items=tuple(li.to_input() for li in self.line_items),
            justification=self.justification,
            delivery_date=self.delivery_date,
            compliance_flags=frozenset(self.compliance_flags),
            **extra,
        )


class OfflineRequisitionIn(RequisitionIn):
    offline_id: str
    offline_timestamp: datetime

    def to_draft(self, **extra: Any) -> RequisitionDraft:
        return super().to_draft(offline_id=self.offline_id, offline_timestamp=self.offline_timestamp)


class RequisitionUpdateIn(ApiModel):
    urgency: UrgencyLevel | None = None
    currency: str | None = None
    line_items: list[LineItemIn] | None = None
    justification: str | None = None
    delivery_date: datetime | None = None
    compliance_flags: list[str] | None = None
    expected_version: int | None = None

    def to_changes(self) -> RequisitionChanges:
        return RequisitionChanges(
            urgency=self.urgency,
            currency=self.currency,
            line_items=(
                tuple(li.to_input() for li in self.line_items)
                if self.line_items is not None else None
            ),
            justification=self.justification,
            delivery_date=self.delivery_date,
            compliance_flags=(
                frozenset(self.compliance_flags) if self.compliance_flags is not None else None
            ),
        )


class ApproveIn(ApiModel):
    comments: str = ""
    budget_code: str | None = None
    expected_version: int | None = None


class RejectIn(ApiModel):
    comments: str
    expected_version: int | None = None


class EmergencyOverrideIn(ApiModel):
    reason: str
    safety_justification: str
    requires_post_approval: bool = True


class RatifyIn(ApiModel):
    comments: str = ""


class CancelIn(ApiModel):
    reason: str


class LineItemOut(ApiModel):
    name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    criticality: Criticality | None = None
    category: str | None = None
    description: str | None = None


class ApprovalRecordOut(ApiModel):
    approver_id: str
    approver_role: str | None = None
    decision: ApprovalDecision
    timestamp: datetime
    comments: str = ""
    budget_code: str | None = None
    delegated_from: str | None = None


class RequisitionOut(ResourceOut):
    id: str
    requisition_number: str
    vessel_id: str
    requester_id: str
    status: RequisitionStatus
    urgency: UrgencyLevel
    currency: str
    total_amount: Decimal
    line_items: list[LineItemOut]
    created_at: datetime
    updated_at: datetime
    version: int
    compliance_flags: list[str]
    created_offline: bool
    offline_id: str | None = None
    offline_timestamp: datetime | None = None
    justification: str | None = None
    delivery_date: datetime | None = None
    approval_level: int | None = None
    emergency_override: bool
    pending_documentation: bool
    required_documents: list[str]
    documentation_due_at: datetime | None = None
    approvals: list[ApprovalRecordOut]

    @field_validator("compliance_flags", mode="before")
    @classmethod
    def _sort_flags(cls, value: Any) -> Any:
        return _sorted_values(value)


class SubmissionOut(RequisitionOut):
    auto_approved: bool = False
    required_role: Role | None = None
    expedited: bool = False
    escalation_deadline: datetime | None = None
    budget_scope: BudgetScope | None = None
    budget_escalated: bool = False
    authorized_approvers: list[str] = Field(default_factory=list)


class OfflineSyncOut(RequisitionOut):
    synced: bool = True
    already_synced: bool = False


class AuditEntryOut(ApiModel):
    id: str
    seq: int
    entity_type: str
    entity_id: str
    requisition_id: str | None = None
    action: AuditAction
    user_id: str
    user_role: str
    delegated_from: str | None = None
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    payload: dict[str, Any]
    payload_hash: str
    prev_hash: str | None = None
    hash: str


class AuditTrailOut(ApiModel):
    requisition_id: str
    entries: list[AuditEntryOut]


# =============================================================================
# RFQs and quotes
# =============================================================================


class RfqOut(ApiModel):
    id: str
    rfq_number: str
    requisition_id: str
    vessel_id: str
    vendor_ids: list[str]
    urgency: UrgencyLevel
    deadline: datetime
    status: RfqStatus
    issued_by: str
    created_at: datetime
    selected_quote_id: str | None = None
    version: int


class RfqIssueOut(ResourceOut):
    rfq: RfqOut
    vendors_invited: list[str]
    vendors_notified: int


class QuoteLineIn(ApiModel):
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    line_number: int | None = None


class QuoteIn(ApiModel):
    rfq_id: str
    vendor_id: str
    line_items: list[QuoteLineIn]
    total_amount: Decimal
    currency: str
    payment_terms: str | None = None
    delivery_days: int | None = None
    valid_until: datetime | None = None

    def to_submission(self) -> QuoteSubmission:
        return QuoteSubmission(
            rfq_id=self.rfq_id,
            vendor_id=self.vendor_id,
            line_items=tuple(
                QuoteLineInput(
                    description=li.description,
                    quantity=li.quantity,
                    unit_price=li.unit_price,
                    total_price=li.total_price,
                    line_number=li.line_number,
                )
                for li in self.line_items
            ),
            total_amount=self.total_amount,
            currency=self.currency,
            payment_terms=self.payment_terms,
            delivery_days=self.delivery_days,
            valid_until=self.valid_until,
        )


class QuoteLineOut(ApiModel):
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


class QuoteOut(ResourceOut):
    id: str
    rfq_id: str
    requisition_id: str
    vendor_id: str
    line_items: list[QuoteLineOut]
    total_amount: Decimal
    currency: str
    status: QuoteStatus
    submitted_by: str
    created_at: datetime
    payment_terms: str | None = None
    delivery_days: int | None = None
    valid_until: datetime | None = None
    selection_reason: str | None = None
    version: int


class SelectQuoteIn(ApiModel):
    reason: str
    expected_version: int | None = None


class QuoteSelectionOut(ResourceOut):
    quote: QuoteOut
    rfq: RfqOut
    rejected_quote_ids: list[str]


# =============================================================================
# Purchase orders
# =============================================================================


class PurchaseOrderGenerateIn(ApiModel):
    quote_id: str
    delivery_instructions: str | None = None
    special_terms: str | None = None
    notes: str | None = None

    def to_request(self) -> PurchaseOrderRequest:
        return PurchaseOrderRequest(
            quote_id=self.quote_id,
            delivery_instructions=self.delivery_instructions,
            special_terms=self.special_terms,
            notes=self.notes,
        )


class PurchaseOrderApproveIn(ApiModel):
    comments: str = ""


class DeliveryConfirmationIn(ApiModel):
    delivered_at: datetime | None = None
    notes: str | None = None


class ReceivedLineIn(ApiModel):
    line_number: int
    received_quantity: Decimal


class ReceiptConfirmationIn(ApiModel):
    condition: ReceiptCondition = ReceiptCondition.GOOD
    lines: list[ReceivedLineIn]
    notes: str | None = None

    def to_lines(self) -> tuple[ReceivedLine, ...]:
        return tuple(ReceivedLine(li.line_number, li.received_quantity) for li in self.lines)


class PurchaseOrderLineOut(QuoteLineOut):
    pass


class DeliveryConfirmationOut(ApiModel):
    confirmed_by: str
    confirmed_at: datetime
    delivered_at: datetime
    notes: str | None = None


class ReceivedLineOut(ApiModel):
    line_number: int
    received_quantity: Decimal


class ReceiptConfirmationOut(ApiModel):
    received_by: str
    received_at: datetime
    condition: ReceiptCondition
    lines: list[ReceivedLineOut]
    notes: str | None = None


class PurchaseOrderOut(ResourceOut):
    id: str
    po_number: str
    quote_id: str
    rfq_id: str
    requisition_id: str
    vendor_id: str
    vessel_id: str
    status: PurchaseOrderStatus
    line_items: list[PurchaseOrderLineOut]
    total_amount: Decimal
    currency: str
    exchange_rate: Decimal | None = None
    payment_terms: str
    delivery_terms: str
    delivery_address: str
    notes: str
    requires_approval: bool
    created_by: str
    created_at: datetime
    approved_by: str | None = None
    delivery_confirmation: DeliveryConfirmationOut | None = None
    receipt_confirmation: ReceiptConfirmationOut | None = None
    payment_reference: str | None = None
    cancellation_reason: str | None = None
    version: int


class PurchaseOrderGenerateOut(PurchaseOrderOut):
    created: bool = True


# =============================================================================
# Invoices
# =============================================================================


class InvoiceLineIn(ApiModel):
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None


class InvoiceIn(ApiModel):
    purchase_order_id: str
    invoice_number: str
    line_items: list[InvoiceLineIn]
    total_amount: Decimal
    currency: str

    def to_submission(self) -> InvoiceSubmission:
        return InvoiceSubmission(
            purchase_order_id=self.purchase_order_id,
            invoice_number=self.invoice_number,
            line_items=tuple(
                InvoiceLineInput(
                    line_number=li.line_number,
                    description=li.description,
                    quantity=li.quantity,
                    unit_price=li.unit_price,
                    total_price=li.total_price,
                )
                for li in self.line_items
            ),
            total_amount=self.total_amount,
            currency=self.currency,
        )


class ApprovePaymentIn(ApiModel):
    expected_version: int | None = None


class MatchResultOut(ApiModel):
    po_match: bool
    receipt_match: bool
    price_variance: Decimal
    tolerance: Decimal
    passed: bool
    issues: list[str]


class InvoiceLineOut(QuoteLineOut):
    pass


class InvoiceOut(ResourceOut):
    id: str
    invoice_number: str
    purchase_order_id: str
    requisition_id: str
    vendor_id: str
    line_items: list[InvoiceLineOut]
    total_amount: Decimal
    currency: str
    status: InvoiceStatus
    submitted_by: str
    created_at: datetime
    match_result: MatchResultOut | None = None
    match_outcome: MatchOutcome | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    version: int


# =============================================================================
# Delegations
# =============================================================================


class DelegationIn(ApiModel):
    to_user_id: str
    vessel_id: str
    start_date: datetime
    end_date: datetime
    permissions: list[Capability]
    reason: str = ""
    from_user_id: str | None = None

    def to_request(self) -> DelegationRequest:
        return DelegationRequest(
            to_user_id=self.to_user_id,
            vessel_id=self.vessel_id,
            start_date=self.start_date,
            end_date=self.end_date,
            permissions=frozenset(self.permissions),
            reason=self.reason,
            from_user_id=self.from_user_id,
        )


class RevokeIn(ApiModel):
    reason: str = ""


class DelegationOut(ResourceOut):
    id: str
    from_user_id: str
    to_user_id: str
    vessel_id: str
    start_date: datetime
    end_date: datetime
    permissions: list[str]
    created_at: datetime
    reason: str
    is_active: bool
    revoked_at: datetime | None = None
    revoked_by: str | None = None
    version: int

    @field_validator("permissions", mode="before")
    @classmethod
    def _sort_permissions(cls, value: Any) -> Any:
        return _sorted_values(value)


class ErrorBody(ApiModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ErrorOut(ApiModel):
    error: ErrorBody
