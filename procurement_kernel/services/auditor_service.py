"""
AuditTrailLogger -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit entries for every workflow state
    change.  Provides chain validation for tamper detection and the
    lineage query behind ``GET /requisitions/{id}/audit-trail``.

Architecture position:
    Kernel > Services -- imperative shell.  Constructed per unit of work
    over that unit's ``AuditRepository`` and ``SequenceAllocator`` so that
    an entry commits or rolls back together with the change it describes.

Invariants enforced:
    - Sequence monotonicity via the ``audit_entry`` counter.
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.  The counter is allocated BEFORE the
      chain head is read; on SQL backends the counter row lock is held to
      commit, so two writers never link to the same predecessor.
    - Append-only: no update or delete path exists.
    - Payloads are stored in canonical JSON form so the payload hash
      recomputes identically on every backend.

Failure modes:
    - AuditChainBrokenError: recomputed payload hash or entry hash differs
      from the stored one, or prev_hash does not match the predecessor.

Audit relevance:
    This IS the audit service.
"""

from __future__ import annotations

from typing import Any

from procurement_kernel.domain.audit import AuditAction, AuditEntry
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.roles import Actor
from procurement_kernel.domain.values import new_id
from procurement_kernel.exceptions import AuditChainBrokenError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.repositories.base import AuditRepository, SequenceAllocator
from procurement_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.auditor")

AUDIT_SEQUENCE = "audit_entry"


class AuditTrailLogger:
    """
    Writes and verifies the audit hash chain.

    Non-goals:
        - Does NOT commit; the owning unit of work does.
    """

    def __init__(
        self,
        repository: AuditRepository,
        sequences: SequenceAllocator,
        clock: Clock,
    ):
        self._repository = repository
        self._sequences = sequences
        self._clock = clock

    def record(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        actor: Actor,
        requisition_id: str | None = None,
        payload: dict[str, Any] | None = None,
        delegated_from: str | None = None,
    ) -> AuditEntry:
        """
        Append one entry to the chain.

        Postconditions:
            - The returned entry links to the previous chain head.
            - ``timestamp`` is read from the injected clock.
        """
        seq = self._sequences.next_value(AUDIT_SEQUENCE)
        head = self._repository.last()
        prev_hash = head.hash if head else None

        stored_payload = to_json_safe(payload or {})
        payload_hash = hash_payload(stored_payload)
        entry_hash = hash_audit_entry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = AuditEntry(
            id=new_id(),
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            requisition_id=requisition_id,
            action=action,
            user_id=actor.user_id,
            user_role=actor.role.value,
            delegated_from=delegated_from,
            timestamp=self._clock.now(),
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            payload=stored_payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self._repository.append(entry)

        logger.info(
            "audit_entry_recorded",
            extra={
                "seq": seq,
                "entity_type": entity_type,
                "audited_entity_id": entity_id,
                "action": action.value,
                "user_id": actor.user_id,
                "delegated_from": delegated_from,
            },
        )
        return entry

    def trail_for_requisition(self, requisition_id: str) -> list[AuditEntry]:
        """All entries in the requisition's lineage, ordered by (timestamp, seq)."""
        return self._repository.for_requisition(requisition_id)

    def verify_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every entry's payload hash and entry
              hash recompute to the stored values and every ``prev_hash``
              matches its predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        entries = self._repository.all()
        prev_hash: str | None = None

        for entry in entries:
            if entry.prev_hash != prev_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"seq": entry.seq, "reason": "prev_hash_mismatch"},
                )
                raise AuditChainBrokenError(entry.id, str(prev_hash), str(entry.prev_hash))

            payload_hash = hash_payload(entry.payload)
            if payload_hash != entry.payload_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"seq": entry.seq, "reason": "payload_hash_mismatch"},
                )
                raise AuditChainBrokenError(entry.id, payload_hash, entry.payload_hash)

            expected_hash = hash_audit_entry(
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action.value,
                payload_hash=entry.payload_hash,
                prev_hash=entry.prev_hash,
            )
            if entry.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"seq": entry.seq, "reason": "entry_hash_mismatch"},
                )
                raise AuditChainBrokenError(entry.id, expected_hash, entry.hash)

            prev_hash = entry.hash

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True
