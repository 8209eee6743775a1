"""
SQLAlchemy ORM persistence models for the RFQ module.

Invariants enforced
-------------------
* ``requisition_id`` is unique on ``rfqs``: one RFQ per requisition.
* ``rfq_number`` is unique.
* Quote lines are written once with the quote and never replaced.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base, VersionedBase
from procurement_kernel.domain.values import UrgencyLevel
from procurement_modules.rfq.models import (
    Quote,
    QuoteLine,
    QuoteStatus,
    Rfq,
    RfqStatus,
)


class RfqModel(VersionedBase):
    """Maps to the ``Rfq`` DTO."""

    __tablename__ = "rfqs"

    __table_args__ = (
        UniqueConstraint("rfq_number", name="uq_rfq_number"),
        UniqueConstraint("requisition_id", name="uq_rfq_requisition"),
    )

    rfq_number: Mapped[str] = mapped_column(String(50), nullable=False)
    requisition_id: Mapped[str] = mapped_column(
        ForeignKey("requisitions.id"), nullable=False,
    )
    vessel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    urgency: Mapped[str] = mapped_column(String(50), nullable=False)
    deadline: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    issued_by: Mapped[str] = mapped_column(String(100), nullable=False)
    selected_quote_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    @staticmethod
    def column_values(dto: Rfq) -> dict[str, Any]:
        return {
            "rfq_number": dto.rfq_number,
            "requisition_id": dto.requisition_id,
            "vessel_id": dto.vessel_id,
            "vendor_ids": list(dto.vendor_ids),
            "urgency": dto.urgency.value,
            "deadline": dto.deadline,
            "status": dto.status.value,
            "issued_by": dto.issued_by,
            "selected_quote_id": dto.selected_quote_id,
            "updated_at": dto.updated_at,
        }

    @classmethod
    def from_dto(cls, dto: Rfq) -> "RfqModel":
        return cls(id=dto.id, version=dto.version, created_at=dto.created_at, **cls.column_values(dto))

    def to_dto(self) -> Rfq:
        return Rfq(
            id=self.id,
            rfq_number=self.rfq_number,
            requisition_id=self.requisition_id,
            vessel_id=self.vessel_id,
            vendor_ids=tuple(self.vendor_ids or ()),
            urgency=UrgencyLevel(self.urgency),
            deadline=self.deadline,
            status=RfqStatus(self.status),
            issued_by=self.issued_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            selected_quote_id=self.selected_quote_id,
            version=self.version,
        )


class QuoteModel(VersionedBase):
    """Maps to the ``Quote`` DTO."""

    __tablename__ = "quotes"

    __table_args__ = (
        Index("idx_quote_rfq", "rfq_id"),
    )

    rfq_id: Mapped[str] = mapped_column(ForeignKey("rfqs.id"), nullable=False)
    requisition_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    submitted_by: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_days: Mapped[int | None] = mapped_column(nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(nullable=True)
    selection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @staticmethod
    def column_values(dto: Quote) -> dict[str, Any]:
        return {
            "rfq_id": dto.rfq_id,
            "requisition_id": dto.requisition_id,
            "vendor_id": dto.vendor_id,
            "total_amount": dto.total_amount,
            "currency": dto.currency,
            "status": dto.status.value,
            "submitted_by": dto.submitted_by,
            "payment_terms": dto.payment_terms,
            "delivery_days": dto.delivery_days,
            "valid_until": dto.valid_until,
            "selection_reason": dto.selection_reason,
            "updated_at": dto.updated_at,
        }

    @classmethod
    def from_dto(cls, dto: Quote) -> "QuoteModel":
        return cls(id=dto.id, version=dto.version, created_at=dto.created_at, **cls.column_values(dto))

    def to_dto(self, lines: list["QuoteLineModel"]) -> Quote:
        return Quote(
            id=self.id,
            rfq_id=self.rfq_id,
            requisition_id=self.requisition_id,
            vendor_id=self.vendor_id,
            line_items=tuple(line.to_dto() for line in lines),
            total_amount=self.total_amount,
            currency=self.currency,
            status=QuoteStatus(self.status),
            submitted_by=self.submitted_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            payment_terms=self.payment_terms,
            delivery_days=self.delivery_days,
            valid_until=self.valid_until,
            selection_reason=self.selection_reason,
            version=self.version,
        )


class QuoteLineModel(Base):
    """Maps to the ``QuoteLine`` DTO."""

    __tablename__ = "quote_lines"

    __table_args__ = (
        UniqueConstraint("quote_id", "line_number", name="uq_quote_line_number"),
    )

    quote_id: Mapped[str] = mapped_column(ForeignKey("quotes.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(300), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> QuoteLine:
        return QuoteLine(
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
        )

    @classmethod
    def from_dto(cls, dto: QuoteLine, quote_id: str) -> "QuoteLineModel":
        return cls(
            quote_id=quote_id,
            line_number=dto.line_number,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
        )
