"""
In-memory persistence (``procurement_kernel.repositories.memory``).

Responsibility
--------------
A process-local store used by tests and single-node local runs.  Rows are
immutable DTOs keyed by id, so a snapshot is a shallow copy of each table
and rollback is a restore of that snapshot.

Invariants enforced
-------------------
* Compare-and-swap: ``_replace`` writes only when the stored version equals
  the expected version, and stores ``expected + 1``.
* Unique keys are checked on insert and raise ``DuplicateEntityError``.
* The store lock is held for the whole unit of work by
  ``InMemoryUnitOfWork``; helpers here assume the caller holds it.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import replace
from typing import Any, ClassVar

from procurement_kernel.domain.audit import AuditEntry
from procurement_kernel.exceptions import (
    ConcurrencyConflict,
    DuplicateEntityError,
    NotFoundError,
)
from procurement_kernel.repositories.base import AuditRepository, SequenceAllocator


class InMemoryStore:
    """Tables of immutable rows plus counters and the audit list."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.tables: dict[str, dict[str, Any]] = defaultdict(dict)
        self.sequences: dict[str, int] = {}
        self.audit: list[AuditEntry] = []

    def snapshot(self) -> tuple:
        return (
            {name: dict(rows) for name, rows in self.tables.items()},
            dict(self.sequences),
            list(self.audit),
        )

    def restore(self, snapshot: tuple) -> None:
        tables, sequences, audit = snapshot
        self.tables = defaultdict(dict, tables)
        self.sequences = sequences
        self.audit = audit


class InMemoryRepository:
    """Shared helpers for aggregate repositories over ``InMemoryStore``."""

    table: ClassVar[str]
    entity_type: ClassVar[str]

    def __init__(self, store: InMemoryStore):
        self._store = store

    @property
    def _rows(self) -> dict[str, Any]:
        return self._store.tables[self.table]

    def _get(self, entity_id: str) -> Any | None:
        return self._rows.get(entity_id)

    def _select(self, predicate: Callable[[Any], bool]) -> list[Any]:
        return [row for row in self._rows.values() if predicate(row)]

    def _insert(self, entity: Any, unique: dict[str, Any] | None = None) -> Any:
        if entity.id in self._rows:
            raise DuplicateEntityError(self.entity_type, "id", entity.id)
        for key_name, key in (unique or {}).items():
            if key is None:
                continue
            if any(getattr(row, key_name) == key for row in self._rows.values()):
                raise DuplicateEntityError(self.entity_type, key_name, str(key))
        self._rows[entity.id] = entity
        return entity

    def _replace(self, entity: Any, expected_version: int) -> Any:
        stored = self._rows.get(entity.id)
        if stored is None:
            raise NotFoundError(self.entity_type, entity.id)
        if stored.version != expected_version:
            raise ConcurrencyConflict(
                self.entity_type, entity.id, expected_version, stored.version,
            )
        updated = replace(entity, version=expected_version + 1)
        self._rows[entity.id] = updated
        return updated


class InMemorySequenceAllocator(SequenceAllocator):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def next_value(self, sequence_name: str) -> int:
        value = self._store.sequences.get(sequence_name, 0) + 1
        self._store.sequences[sequence_name] = value
        return value


class InMemoryAuditRepository(AuditRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def append(self, entry: AuditEntry) -> None:
        self._store.audit.append(entry)

    def last(self) -> AuditEntry | None:
        return self._store.audit[-1] if self._store.audit else None

    def for_requisition(self, requisition_id: str) -> list[AuditEntry]:
        entries = [e for e in self._store.audit if e.requisition_id == requisition_id]
        return sorted(entries, key=lambda e: (e.timestamp, e.seq))

    def all(self) -> list[AuditEntry]:
        return sorted(self._store.audit, key=lambda e: e.seq)
