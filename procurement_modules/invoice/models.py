"""
Invoice Domain Models.

Vendor invoices and the outcome of reconciling them against the purchase
order and the crew's receipt.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from procurement_engines.matching import ThreeWayMatchResult
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.invoice.models")


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""
    SUBMITTED = "SUBMITTED"
    MATCHED = "MATCHED"
    APPROVED_FOR_PAYMENT = "APPROVED_FOR_PAYMENT"
    DISPUTED = "DISPUTED"
    REJECTED = "REJECTED"


class MatchOutcome(str, Enum):
    MATCHED = "MATCHED"
    MATCH_VARIANCE_EXCEEDED = "MATCH_VARIANCE_EXCEEDED"


@dataclass(frozen=True)
class InvoiceLineInput:
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None


@dataclass(frozen=True)
class InvoiceLine:
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class InvoiceSubmission:
    purchase_order_id: str
    invoice_number: str
    line_items: tuple[InvoiceLineInput, ...]
    total_amount: Decimal
    currency: str


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: str
    purchase_order_id: str
    requisition_id: str
    vendor_id: str
    line_items: tuple[InvoiceLine, ...]
    total_amount: Decimal
    currency: str
    status: InvoiceStatus
    submitted_by: str
    created_at: datetime
    updated_at: datetime
    match_result: ThreeWayMatchResult | None = None
    match_outcome: MatchOutcome | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    version: int = 1
