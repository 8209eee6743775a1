"""
Audit trail value objects (``procurement_kernel.domain.audit``).

Responsibility
--------------
The closed set of auditable actions and the immutable ``AuditEntry`` DTO
that repositories hand back.  Persistence lives in
``procurement_kernel.models.audit_event``; chain construction lives in
``procurement_kernel.services.auditor_service``.

Invariants enforced
-------------------
* ``hash = SHA256(entity_type | entity_id | action | payload_hash | prev_hash)``.
* ``prev_hash`` is None only for the first entry ever written.
* ``seq`` is strictly increasing in insertion order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AuditAction(str, Enum):
    """Types of auditable actions.

    Every status change in the workflow maps to exactly one member.
    """

    # Requisition lifecycle
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EMERGENCY_OVERRIDE = "EMERGENCY_OVERRIDE"
    OVERRIDE_RATIFIED = "OVERRIDE_RATIFIED"
    DELIVERED = "DELIVERED"
    CLOSED = "CLOSED"

    # Sourcing
    RFQ_ISSUED = "RFQ_ISSUED"
    QUOTE_SUBMITTED = "QUOTE_SUBMITTED"
    QUOTE_SELECTED = "QUOTE_SELECTED"
    QUOTE_REJECTED = "QUOTE_REJECTED"
    QUOTE_EXPIRED = "QUOTE_EXPIRED"

    # Purchase orders
    PO_CREATED = "PO_CREATED"
    PO_APPROVED = "PO_APPROVED"
    PO_ACKNOWLEDGED = "PO_ACKNOWLEDGED"
    PO_CANCELLED = "PO_CANCELLED"
    PO_PAID = "PO_PAID"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    RECEIPT_CONFIRMED = "RECEIPT_CONFIRMED"

    # Invoices
    INVOICE_SUBMITTED = "INVOICE_SUBMITTED"
    INVOICE_MATCHED = "INVOICE_MATCHED"
    INVOICE_DISPUTED = "INVOICE_DISPUTED"
    PAYMENT_APPROVED = "PAYMENT_APPROVED"
    INVOICE_REJECTED = "INVOICE_REJECTED"

    # Delegations
    DELEGATION_CREATED = "DELEGATION_CREATED"
    DELEGATION_REVOKED = "DELEGATION_REVOKED"


@dataclass(frozen=True)
class AuditEntry:
    """One link of the audit hash chain."""

    id: str
    seq: int
    entity_type: str
    entity_id: str
    requisition_id: str | None
    action: AuditAction
    user_id: str
    user_role: str
    timestamp: datetime
    payload_hash: str
    hash: str
    prev_hash: str | None = None
    delegated_from: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
