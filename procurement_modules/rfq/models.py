"""
RFQ Domain Models.

The nouns of sourcing: requests for quote sent to vendors and the quotes
they return.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from procurement_kernel.domain.values import UrgencyLevel
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.rfq.models")


class RfqStatus(str, Enum):
    """RFQ lifecycle states."""
    ISSUED = "ISSUED"
    AWARDED = "AWARDED"
    CANCELLED = "CANCELLED"


class QuoteStatus(str, Enum):
    """Quote lifecycle states."""
    SUBMITTED = "SUBMITTED"
    SELECTED = "SELECTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class QuoteLineInput:
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    line_number: int | None = None


@dataclass(frozen=True)
class QuoteLine:
    """``total_price == quantity * unit_price``; numbered from 1."""
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class Rfq:
    """One request for quote per requisition."""
    id: str
    rfq_number: str
    requisition_id: str
    vessel_id: str
    vendor_ids: tuple[str, ...]
    urgency: UrgencyLevel
    deadline: datetime
    status: RfqStatus
    issued_by: str
    created_at: datetime
    updated_at: datetime
    selected_quote_id: str | None = None
    version: int = 1


@dataclass(frozen=True)
class QuoteSubmission:
    """A vendor's offer as keyed in by procurement."""
    rfq_id: str
    vendor_id: str
    line_items: tuple[QuoteLineInput, ...]
    total_amount: Decimal
    currency: str
    payment_terms: str | None = None
    delivery_days: int | None = None
    valid_until: datetime | None = None


@dataclass(frozen=True)
class Quote:
    id: str
    rfq_id: str
    requisition_id: str
    vendor_id: str
    line_items: tuple[QuoteLine, ...]
    total_amount: Decimal
    currency: str
    status: QuoteStatus
    submitted_by: str
    created_at: datetime
    updated_at: datetime
    payment_terms: str | None = None
    delivery_days: int | None = None
    valid_until: datetime | None = None
    selection_reason: str | None = None
    version: int = 1

    def lapsed(self, now: datetime) -> bool:
        return self.valid_until is not None and now >= self.valid_until


@dataclass(frozen=True)
class RfqIssueResult:
    rfq: Rfq
    vendors_invited: tuple[str, ...]
    vendors_notified: int
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class QuoteSelection:
    quote: Quote
    rfq: Rfq
    rejected_quote_ids: tuple[str, ...] = ()
