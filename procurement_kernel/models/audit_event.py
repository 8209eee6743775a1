"""
Module: procurement_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Audit rows are append-only.  Repositories expose no update or delete.
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditTrailLogger.verify_chain.
    - seq is unique and monotonically increasing, allocated from the
      ``audit_entry`` counter.

Failure modes:
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEntryModel IS the audit trail.  ``requisition_id`` carries the
    lineage root so that RFQ, quote, purchase order and invoice events are
    returned with the requisition they descend from.
"""

from datetime import datetime

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base
from procurement_kernel.domain.audit import AuditAction, AuditEntry


class AuditEntryModel(Base):
    """
    Audit entry with hash chain for tamper evidence.

    Non-goals:
        - This model does NOT compute hashes at INSERT time; that is the
          responsibility of AuditTrailLogger.
    """

    __tablename__ = "audit_entries"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_requisition", "requisition_id", "occurred_at", "seq"),
        Index("idx_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    requisition_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_role: Mapped[str] = mapped_column(String(50), nullable=False)
    delegated_from: Mapped[str | None] = mapped_column(String(100), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEntry {self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    def to_dto(self) -> AuditEntry:
        return AuditEntry(
            id=self.id,
            seq=self.seq,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            requisition_id=self.requisition_id,
            action=AuditAction(self.action),
            user_id=self.user_id,
            user_role=self.user_role,
            delegated_from=self.delegated_from,
            timestamp=self.occurred_at,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            payload=dict(self.payload or {}),
            payload_hash=self.payload_hash,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )

    @classmethod
    def from_dto(cls, dto: AuditEntry) -> "AuditEntryModel":
        return cls(
            id=dto.id,
            seq=dto.seq,
            entity_type=dto.entity_type,
            entity_id=dto.entity_id,
            requisition_id=dto.requisition_id,
            action=dto.action.value,
            user_id=dto.user_id,
            user_role=dto.user_role,
            delegated_from=dto.delegated_from,
            occurred_at=dto.timestamp,
            ip_address=dto.ip_address,
            user_agent=dto.user_agent,
            payload=dto.payload,
            payload_hash=dto.payload_hash,
            prev_hash=dto.prev_hash,
            hash=dto.hash,
        )
