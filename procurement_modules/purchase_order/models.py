"""
Purchase Order Domain Models.

The nouns of ordering and delivery: purchase orders, their lines, and the
vendor delivery and crew receipt confirmations recorded against them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.purchase_order.models")


class PurchaseOrderStatus(str, Enum):
    """Purchase order lifecycle states."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    IN_PROGRESS = "IN_PROGRESS"
    DELIVERED = "DELIVERED"
    INVOICED = "INVOICED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class ReceiptCondition(str, Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    PARTIAL = "PARTIAL"


@dataclass(frozen=True)
class PurchaseOrderLine:
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class DeliveryConfirmation:
    """Vendor-reported delivery."""
    confirmed_by: str
    confirmed_at: datetime
    delivered_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class ReceivedLine:
    line_number: int
    received_quantity: Decimal


@dataclass(frozen=True)
class ReceiptConfirmation:
    """Crew-confirmed receipt aboard.  Short shipments are recorded as-is."""
    received_by: str
    received_at: datetime
    condition: ReceiptCondition
    lines: tuple[ReceivedLine, ...]
    notes: str | None = None

    @property
    def received_quantities(self) -> dict[int, Decimal]:
        return {line.line_number: line.received_quantity for line in self.lines}


@dataclass(frozen=True)
class PurchaseOrderRequest:
    quote_id: str
    delivery_instructions: str | None = None
    special_terms: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PurchaseOrder:
    """At most one per quote.  Vessel context is frozen at creation."""
    id: str
    po_number: str
    quote_id: str
    rfq_id: str
    requisition_id: str
    vendor_id: str
    vessel_id: str
    status: PurchaseOrderStatus
    line_items: tuple[PurchaseOrderLine, ...]
    total_amount: Decimal
    currency: str
    exchange_rate: Decimal | None
    payment_terms: str
    delivery_terms: str
    delivery_address: str
    notes: str
    requires_approval: bool
    created_by: str
    created_at: datetime
    updated_at: datetime
    approved_by: str | None = None
    delivery_confirmation: DeliveryConfirmation | None = None
    receipt_confirmation: ReceiptConfirmation | None = None
    payment_reference: str | None = None
    paid_at: datetime | None = None
    cancellation_reason: str | None = None
    version: int = 1

    @property
    def fully_confirmed(self) -> bool:
        return self.delivery_confirmation is not None and self.receipt_confirmation is not None


@dataclass(frozen=True)
class PurchaseOrderResult:
    """``created`` is False when an existing order was returned."""
    purchase_order: PurchaseOrder
    created: bool = False
    warnings: tuple[str, ...] = ()
