"""
Requisition repositories.

``RequisitionRepository`` is the contract the services use; the in-memory
and SQLAlchemy implementations are selected by the unit of work.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from sqlalchemy import func, select

from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.repositories.memory import InMemoryRepository
from procurement_kernel.repositories.sql import SqlRepository
from procurement_modules.requisition.models import Requisition
from procurement_modules.requisition.orm import (
    ApprovalRecordModel,
    RequisitionLineModel,
    RequisitionModel,
)


class RequisitionRepository(ABC):
    entity_type = "Requisition"

    @abstractmethod
    def get(self, requisition_id: str) -> Requisition | None:
        ...

    @abstractmethod
    def get_by_offline_id(self, offline_id: str) -> Requisition | None:
        ...

    @abstractmethod
    def add(self, requisition: Requisition) -> Requisition:
        """Insert; DuplicateEntityError on an existing offline_id."""

    @abstractmethod
    def update(self, requisition: Requisition, expected_version: int) -> Requisition:
        """Compare-and-swap; returns the stored row at ``expected_version + 1``."""

    def require(self, requisition_id: str) -> Requisition:
        requisition = self.get(requisition_id)
        if requisition is None:
            raise NotFoundError(self.entity_type, requisition_id)
        return requisition


class InMemoryRequisitionRepository(InMemoryRepository, RequisitionRepository):
    table = "requisitions"

    def get(self, requisition_id: str) -> Requisition | None:
        return self._get(requisition_id)

    def get_by_offline_id(self, offline_id: str) -> Requisition | None:
        found = self._select(lambda r: r.offline_id == offline_id)
        return found[0] if found else None

    def add(self, requisition: Requisition) -> Requisition:
        return self._insert(
            requisition,
            unique={
                "offline_id": requisition.offline_id,
                "requisition_number": requisition.requisition_number,
            },
        )

    def update(self, requisition: Requisition, expected_version: int) -> Requisition:
        return self._replace(requisition, expected_version)


class SqlRequisitionRepository(SqlRepository, RequisitionRepository):

    def _assemble(self, model: RequisitionModel) -> Requisition:
        lines = self._load_where(
            RequisitionLineModel,
            RequisitionLineModel.requisition_id == model.id,
            order_by=RequisitionLineModel.position,
        )
        approvals = self._load_where(
            ApprovalRecordModel,
            ApprovalRecordModel.requisition_id == model.id,
            order_by=ApprovalRecordModel.position,
        )
        return model.to_dto(lines, approvals)

    def get(self, requisition_id: str) -> Requisition | None:
        model = self._load(RequisitionModel, requisition_id)
        return self._assemble(model) if model else None

    def get_by_offline_id(self, offline_id: str) -> Requisition | None:
        found = self._load_where(RequisitionModel, RequisitionModel.offline_id == offline_id)
        return self._assemble(found[0]) if found else None

    def add(self, requisition: Requisition) -> Requisition:
        models: list = [RequisitionModel.from_dto(requisition)]
        models += [
            RequisitionLineModel.from_dto(line, requisition.id, i)
            for i, line in enumerate(requisition.line_items)
        ]
        models += [
            ApprovalRecordModel.from_dto(record, i)
            for i, record in enumerate(requisition.approvals)
        ]
        if requisition.offline_id is not None:
            self._insert_unique(models, "offline_id", requisition.offline_id)
        else:
            self._insert_unique(models, "requisition_number", requisition.requisition_number)
        return requisition

    def update(self, requisition: Requisition, expected_version: int) -> Requisition:
        new_version = self._compare_and_swap(
            RequisitionModel,
            requisition.id,
            expected_version,
            RequisitionModel.column_values(requisition),
        )
        self._replace_children(
            RequisitionLineModel,
            RequisitionLineModel.requisition_id,
            requisition.id,
            [
                RequisitionLineModel.from_dto(line, requisition.id, i)
                for i, line in enumerate(requisition.line_items)
            ],
        )
        stored = self._session.execute(
            select(func.count())
            .select_from(ApprovalRecordModel)
            .where(ApprovalRecordModel.requisition_id == requisition.id)
        ).scalar_one()
        self._session.add_all([
            ApprovalRecordModel.from_dto(record, i)
            for i, record in enumerate(requisition.approvals)
            if i >= stored
        ])
        self._session.flush()
        return replace(requisition, version=new_version)
