"""
Kernel repository contracts.

Both contracts are written against by ``AuditTrailLogger`` and implemented
twice: over ``InMemoryStore`` and over a SQLAlchemy session.
"""

from abc import ABC, abstractmethod

from procurement_kernel.domain.audit import AuditEntry


class SequenceAllocator(ABC):
    """Strictly monotonic named counters."""

    @abstractmethod
    def next_value(self, sequence_name: str) -> int:
        """Return the next value (> 0) for ``sequence_name``."""


class AuditRepository(ABC):
    """Append-only store of audit entries."""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        ...

    @abstractmethod
    def last(self) -> AuditEntry | None:
        """Entry with the highest seq, or None for an empty chain."""

    @abstractmethod
    def for_requisition(self, requisition_id: str) -> list[AuditEntry]:
        """Entries in the requisition's lineage ordered by (timestamp, seq)."""

    @abstractmethod
    def all(self) -> list[AuditEntry]:
        """Every entry ordered by seq."""
