"""
SQLAlchemy ORM persistence models for the Purchase Order module.

Invariants enforced
-------------------
* ``quote_id`` is unique: at most one purchase order per quote.  A racing
  duplicate insert fails here and is resolved to the existing order.
* ``po_number`` is unique.
* Confirmations are flattened into nullable columns; received quantities
  live in ``purchase_order_receipt_lines``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base, VersionedBase
from procurement_modules.purchase_order.models import (
    DeliveryConfirmation,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    ReceiptCondition,
    ReceiptConfirmation,
    ReceivedLine,
)


class PurchaseOrderModel(VersionedBase):
    """Maps to the ``PurchaseOrder`` DTO."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("quote_id", name="uq_purchase_order_quote"),
        UniqueConstraint("po_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_requisition", "requisition_id"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    quote_id: Mapped[str] = mapped_column(ForeignKey("quotes.id"), nullable=False)
    rfq_id: Mapped[str] = mapped_column(String(36), nullable=False)
    requisition_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vessel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_terms: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_terms: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    requires_approval: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    delivery_confirmed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    received_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    receipt_condition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    receipt_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @staticmethod
    def column_values(dto: PurchaseOrder) -> dict[str, Any]:
        delivery = dto.delivery_confirmation
        receipt = dto.receipt_confirmation
        return {
            "po_number": dto.po_number,
            "quote_id": dto.quote_id,
            "rfq_id": dto.rfq_id,
            "requisition_id": dto.requisition_id,
            "vendor_id": dto.vendor_id,
            "vessel_id": dto.vessel_id,
            "status": dto.status.value,
            "total_amount": dto.total_amount,
            "currency": dto.currency,
            "exchange_rate": dto.exchange_rate,
            "payment_terms": dto.payment_terms,
            "delivery_terms": dto.delivery_terms,
            "delivery_address": dto.delivery_address,
            "notes": dto.notes,
            "requires_approval": dto.requires_approval,
            "created_by": dto.created_by,
            "approved_by": dto.approved_by,
            "delivery_confirmed_by": delivery.confirmed_by if delivery else None,
            "delivery_confirmed_at": delivery.confirmed_at if delivery else None,
            "delivered_at": delivery.delivered_at if delivery else None,
            "delivery_notes": delivery.notes if delivery else None,
            "received_by": receipt.received_by if receipt else None,
            "received_at": receipt.received_at if receipt else None,
            "receipt_condition": receipt.condition.value if receipt else None,
            "receipt_notes": receipt.notes if receipt else None,
            "payment_reference": dto.payment_reference,
            "paid_at": dto.paid_at,
            "cancellation_reason": dto.cancellation_reason,
            "updated_at": dto.updated_at,
        }

    @classmethod
    def from_dto(cls, dto: PurchaseOrder) -> "PurchaseOrderModel":
        return cls(id=dto.id, version=dto.version, created_at=dto.created_at, **cls.column_values(dto))

    def to_dto(
        self,
        lines: list["PurchaseOrderLineModel"],
        received: list["ReceiptLineModel"],
    ) -> PurchaseOrder:
        delivery = None
        if self.delivery_confirmed_by is not None:
            delivery = DeliveryConfirmation(
                confirmed_by=self.delivery_confirmed_by,
                confirmed_at=self.delivery_confirmed_at,
                delivered_at=self.delivered_at,
                notes=self.delivery_notes,
            )
        receipt = None
        if self.received_by is not None:
            receipt = ReceiptConfirmation(
                received_by=self.received_by,
                received_at=self.received_at,
                condition=ReceiptCondition(self.receipt_condition),
                lines=tuple(r.to_dto() for r in received),
                notes=self.receipt_notes,
            )
        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            quote_id=self.quote_id,
            rfq_id=self.rfq_id,
            requisition_id=self.requisition_id,
            vendor_id=self.vendor_id,
            vessel_id=self.vessel_id,
            status=PurchaseOrderStatus(self.status),
            line_items=tuple(line.to_dto() for line in lines),
            total_amount=self.total_amount,
            currency=self.currency,
            exchange_rate=self.exchange_rate,
            payment_terms=self.payment_terms,
            delivery_terms=self.delivery_terms,
            delivery_address=self.delivery_address,
            notes=self.notes,
            requires_approval=self.requires_approval,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            approved_by=self.approved_by,
            delivery_confirmation=delivery,
            receipt_confirmation=receipt,
            payment_reference=self.payment_reference,
            paid_at=self.paid_at,
            cancellation_reason=self.cancellation_reason,
            version=self.version,
        )


class PurchaseOrderLineModel(Base):
    """Maps to the ``PurchaseOrderLine`` DTO."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_line_number"),
    )

    purchase_order_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(300), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> PurchaseOrderLine:
        return PurchaseOrderLine(
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
        )

    @classmethod
    def from_dto(cls, dto: PurchaseOrderLine, purchase_order_id: str) -> "PurchaseOrderLineModel":
        return cls(
            purchase_order_id=purchase_order_id,
            line_number=dto.line_number,
            description=dto.description,
            quantity=dto.quantity,
            unit_price=dto.unit_price,
            total_price=dto.total_price,
        )


class ReceiptLineModel(Base):
    """Maps to the ``ReceivedLine`` DTO."""

    __tablename__ = "purchase_order_receipt_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_receipt_line"),
    )

    purchase_order_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    received_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> ReceivedLine:
        return ReceivedLine(line_number=self.line_number, received_quantity=self.received_quantity)

    @classmethod
    def from_dto(cls, dto: ReceivedLine, purchase_order_id: str) -> "ReceiptLineModel":
        return cls(
            purchase_order_id=purchase_order_id,
            line_number=dto.line_number,
            received_quantity=dto.received_quantity,
        )
