"""
Module: procurement_kernel.repositories.sql
Responsibility: SQLAlchemy foundations shared by every aggregate repository,
    plus the audit entry repository.
Architecture position: Kernel > Repositories.  Imports db/ and models/.

Invariants enforced:
    - Compare-and-swap is ``UPDATE ... WHERE id = :id AND version = :expected``
      followed by a rowcount check.  No database exception is caught to
      detect a lost race.
    - Inserts guarded by a unique key run inside a SAVEPOINT so that an
      IntegrityError leaves the surrounding transaction usable; the error
      is translated to DuplicateEntityError.
    - Every read uses ``populate_existing`` so rows changed by a Core UPDATE
      earlier in the same session are never served stale from the identity
      map.

Failure modes:
    - ConcurrencyConflict when the stored version moved.
    - NotFoundError when the row vanished.
    - DuplicateEntityError on unique key collision.
"""

from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement_kernel.domain.audit import AuditEntry
from procurement_kernel.exceptions import (
    ConcurrencyConflict,
    DuplicateEntityError,
    NotFoundError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.audit_event import AuditEntryModel
from procurement_kernel.repositories.base import AuditRepository

logger = get_logger("repositories.sql")


class SqlRepository:
    """Shared helpers for aggregate repositories over one Session."""

    entity_type: ClassVar[str]

    def __init__(self, session: Session):
        self._session = session

    def _load(self, model_cls: type, entity_id: str) -> Any | None:
        return self._session.execute(
            select(model_cls)
            .where(model_cls.id == entity_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _load_where(self, model_cls: type, *criteria: Any, order_by: Any = None) -> list[Any]:
        stmt = select(model_cls).where(*criteria).execution_options(populate_existing=True)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self._session.execute(stmt).scalars())

    def _insert_unique(self, models: list[Any], key_name: str, key: Any) -> None:
        """Insert ``models[0]`` (the aggregate root) then its children."""
        root, *children = models
        try:
            with self._session.begin_nested():
                self._session.add(root)
                self._session.flush()
                if children:
                    self._session.add_all(children)
                    self._session.flush()
        except IntegrityError:
            logger.info(
                "unique_key_collision",
                extra={"entity_type": self.entity_type, "key_name": key_name, "key": key},
            )
            raise DuplicateEntityError(self.entity_type, key_name, str(key)) from None

    def _compare_and_swap(
        self,
        model_cls: type,
        entity_id: str,
        expected_version: int,
        values: dict[str, Any],
    ) -> int:
        result = self._session.execute(
            update(model_cls)
            .where(model_cls.id == entity_id, model_cls.version == expected_version)
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            actual = self._session.execute(
                select(model_cls.version).where(model_cls.id == entity_id)
            ).scalar_one_or_none()
            if actual is None:
                raise NotFoundError(self.entity_type, entity_id)
            raise ConcurrencyConflict(self.entity_type, entity_id, expected_version, actual)
        return expected_version + 1

    def _replace_children(
        self,
        child_cls: type,
        parent_column: Any,
        parent_id: str,
        children: list[Any],
    ) -> None:
        self._session.execute(
            delete(child_cls)
            .where(parent_column == parent_id)
            .execution_options(synchronize_session=False)
        )
        self._session.add_all(children)
        self._session.flush()


class SqlAuditRepository(AuditRepository):
    def __init__(self, session: Session):
        self._session = session

    def append(self, entry: AuditEntry) -> None:
        self._session.add(AuditEntryModel.from_dto(entry))
        self._session.flush()

    def last(self) -> AuditEntry | None:
        model = self._session.execute(
            select(AuditEntryModel).order_by(AuditEntryModel.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def for_requisition(self, requisition_id: str) -> list[AuditEntry]:
        models = self._session.execute(
            select(AuditEntryModel)
            .where(AuditEntryModel.requisition_id == requisition_id)
            .order_by(AuditEntryModel.occurred_at, AuditEntryModel.seq)
        ).scalars()
        return [m.to_dto() for m in models]

    def all(self) -> list[AuditEntry]:
        models = self._session.execute(
            select(AuditEntryModel).order_by(AuditEntryModel.seq)
        ).scalars()
        return [m.to_dto() for m in models]
