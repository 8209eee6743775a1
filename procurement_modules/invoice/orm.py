"""
SQLAlchemy ORM persistence models for the Invoice module.

Invariants enforced
-------------------
* ``(vendor_id, invoice_number)`` is unique: a vendor cannot bill the same
  invoice number twice.
* The last match breakdown is stored as JSON with Decimals as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procurement_engines.matching import ThreeWayMatchResult
from procurement_kernel.db.base import Base, VersionedBase
from procurement_modules.invoice.models import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    MatchOutcome,
)


def _match_from_json(data: dict | None) -> ThreeWayMatchResult | None:
    if not data:
        return None
    return ThreeWayMatchResult(
        po_match=bool(data["poMatch"]),
        receipt_match=bool(data["receiptMatch"]),
        price_variance=Decimal(data["priceVariance"]),
        tolerance=Decimal(data["tolerance"]),
        passed=bool(data["passed"]),
        issues=tuple(data.get("issues", ())),
    )


class InvoiceModel(VersionedBase):
    """Maps to the ``Invoice`` DTO."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("vendor_id", "invoice_number", name="uq_invoice_vendor_number"),
        Index("idx_invoice_purchase_order", "purchase_order_id"),
    )

    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    purchase_order_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    requisition_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    submitted_by: Mapped[str] = mapped_column(String(100), nullable=False)
    match_result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    match_outcome: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @staticmethod
    def column_values(dto: Invoice) -> dict[str, Any]:
        return {
            "invoice_number": dto.invoice_number,
            "purchase_order_id": dto.purchase_order_id,
            "requisition_id": dto.requisition_id,
            "vendor_id": dto.vendor_id,
            "total_amount": dto.total_amount,
            "currency": dto.currency,
            "status": dto.status.value,
            "submitted_by": dto.submitted_by,
            "match_result": dto.match_result.to_dict() if dto.match_result else None,
            "match_outcome": dto.match_outcome.value if dto.match_outcome else None,
            "approved_by": dto.approved_by,
            "approved_at": dto.approved_at,
            "rejection_reason": dto.rejection_reason,
            "updated_at": dto.updated_at,
        }

    @classmethod
    def from_dto(cls, dto: Invoice) -> "InvoiceModel":
        return cls(id=dto.id, version=dto.version, created_at=dto.created_at, **cls.column_values(dto))

    def to_dto(self, lines: list["InvoiceLineModel"]) -> Invoice:
        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            purchase_order_id=self.purchase_order_id,
            requisition_id=self.requisition_id,
            vendor_id=self.vendor_id,
            line_items=tuple(line.to_dto() for line in lines),
            total_amount=self.total_amount,
            currency=self.currency,
            status=InvoiceStatus(self.status),
            submitted_by=self.submitted_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            match_result=_match_from_json(self.match_result),
            match_outcome=MatchOutcome(self.match_outcome) if self.match_outcome else None,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            version=self.version,
        )


class InvoiceLineModel(Base):
    """Maps to the ``InvoiceLine`` DTO."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_line_number"),
    )

    invoice_id: Mapped[str] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(300), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> InvoiceLine:
        return InvoiceLine(
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
        )

    @classmethod
    def from_dto(cls, dto: InvoiceLine, invoice_id: str) -> "InvoiceLineModel":
        return cls(
            invoice_id=invoice_id,
            line_number=dto.line_number,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
        )
