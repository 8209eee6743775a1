"""
SQLAlchemy ORM persistence models for the Requisition module.

Responsibility
--------------
Database-backed persistence for requisitions, their ordered line items
and their approval records.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``SqlRequisitionRepository``.
Inherits from ``VersionedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary and quantity fields are Decimal -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* ``offline_id`` and ``requisition_number`` are unique.
* Line items keep their submitted order through ``position``.
* Approval records are insert-only: updates append, never rewrite.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base, VersionedBase
from procurement_kernel.domain.values import Criticality, UrgencyLevel
from procurement_modules.requisition.models import (
    ApprovalDecision,
    ApprovalRecord,
    LineItem,
    Requisition,
    RequisitionStatus,
)


class RequisitionModel(VersionedBase):
    """Maps to the ``Requisition`` DTO."""

    __tablename__ = "requisitions"

    __table_args__ = (
        UniqueConstraint("requisition_number", name="uq_requisition_number"),
        UniqueConstraint("offline_id", name="uq_requisition_offline_id"),
        Index("idx_requisition_vessel", "vessel_id"),
        Index("idx_requisition_status", "status"),
    )

    requisition_number: Mapped[str] = mapped_column(String(50), nullable=False)
    vessel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    urgency: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    compliance_flags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_offline: Mapped[bool] = mapped_column(nullable=False, default=False)
    offline_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    offline_timestamp: Mapped[datetime | None] = mapped_column(nullable=True)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_date: Mapped[datetime | None] = mapped_column(nullable=True)
    approval_level: Mapped[int | None] = mapped_column(nullable=True)
    emergency_override: Mapped[bool] = mapped_column(nullable=False, default=False)
    pending_documentation: Mapped[bool] = mapped_column(nullable=False, default=False)
    required_documents: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    documentation_due_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @staticmethod
    def column_values(dto: Requisition) -> dict[str, Any]:
        return {
            "requisition_number": dto.requisition_number,
            "vessel_id": dto.vessel_id,
            "requester_id": dto.requester_id,
            "status": dto.status.value,
            "urgency": dto.urgency.value,
            "currency": dto.currency,
            "total_amount": dto.total_amount,
            "compliance_flags": sorted(dto.compliance_flags),
            "created_offline": dto.created_offline,
            "offline_id": dto.offline_id,
            "offline_timestamp": dto.offline_timestamp,
            "justification": dto.justification,
            "delivery_date": dto.delivery_date,
            "approval_level": dto.approval_level,
            "emergency_override": dto.emergency_override,
            "pending_documentation": dto.pending_documentation,
            "required_documents": list(dto.required_documents),
            "documentation_due_at": dto.documentation_due_at,
            "updated_at": dto.updated_at,
        }

    @classmethod
    def from_dto(cls, dto: Requisition) -> "RequisitionModel":
        return cls(
            id=dto.id,
            version=dto.version,
            created_at=dto.created_at,
            **cls.column_values(dto),
        )

    def to_dto(
        self,
        lines: list["RequisitionLineModel"],
        approvals: list["ApprovalRecordModel"],
    ) -> Requisition:
        return Requisition(
            id=self.id,
            requisition_number=self.requisition_number,
            vessel_id=self.vessel_id,
            requester_id=self.requester_id,
            status=RequisitionStatus(self.status),
            urgency=UrgencyLevel(self.urgency),
            currency=self.currency,
            total_amount=self.total_amount,
            line_items=tuple(line.to_dto() for line in lines),
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
            compliance_flags=frozenset(self.compliance_flags or ()),
            created_offline=self.created_offline,
            offline_id=self.offline_id,
            offline_timestamp=self.offline_timestamp,
            justification=self.justification,
            delivery_date=self.delivery_date,
            approval_level=self.approval_level,
            emergency_override=self.emergency_override,
            pending_documentation=self.pending_documentation,
            required_documents=tuple(self.required_documents or ()),
            documentation_due_at=self.documentation_due_at,
            approvals=tuple(a.to_dto() for a in approvals),
        )


class RequisitionLineModel(Base):
    """Maps to the ``LineItem`` DTO."""

    __tablename__ = "requisition_lines"

    __table_args__ = (
        Index("idx_requisition_line_parent", "requisition_id", "position"),
    )

    requisition_id: Mapped[str] = mapped_column(
        ForeignKey("requisitions.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    criticality: Mapped[str | None] = mapped_column(String(50), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> LineItem:
        return LineItem(
            name=self.name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            criticality=Criticality(self.criticality) if self.criticality else None,
            category=self.category,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto: LineItem, requisition_id: str, position: int) -> "RequisitionLineModel":
        return cls(
            requisition_id=requisition_id,
            position=position,
            name=dto.name,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
            criticality=dto.criticality.value if dto.criticality else None,
            category=dto.category,
            description=dto.description,
        )


class ApprovalRecordModel(Base):
    """Maps to the ``ApprovalRecord`` DTO.  Insert-only."""

    __tablename__ = "requisition_approvals"

    __table_args__ = (
        UniqueConstraint("requisition_id", "position", name="uq_approval_position"),
    )

    requisition_id: Mapped[str] = mapped_column(
        ForeignKey("requisitions.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    delegated_from: Mapped[str | None] = mapped_column(String(100), nullable=True)
    decision: Mapped[str] = mapped_column(String(50), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    budget_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> ApprovalRecord:
        return ApprovalRecord(
            requisition_id=self.requisition_id,
            approver_id=self.approver_id,
            decision=ApprovalDecision(self.decision),
            timestamp=self.decided_at,
            comments=self.comments,
            budget_code=self.budget_code,
            delegated_from=self.delegated_from,
            approver_role=self.approver_role,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRecord, position: int) -> "ApprovalRecordModel":
        return cls(
            requisition_id=dto.requisition_id,
            position=position,
            approver_id=dto.approver_id,
            approver_role=dto.approver_role,
            delegated_from=dto.delegated_from,
            decision=dto.decision.value,
            comments=dto.comments,
            budget_code=dto.budget_code,
            decided_at=dto.timestamp,
        )
