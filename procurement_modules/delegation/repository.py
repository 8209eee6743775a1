"""Delegation repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.repositories.memory import InMemoryRepository
from procurement_kernel.repositories.sql import SqlRepository
from procurement_modules.delegation.models import Delegation
from procurement_modules.delegation.orm import DelegationModel


class DelegationRepository(ABC):
    entity_type = "Delegation"

    @abstractmethod
    def get(self, delegation_id: str) -> Delegation | None:
        ...

    @abstractmethod
    def add(self, delegation: Delegation) -> Delegation:
        ...

    @abstractmethod
    def update(self, delegation: Delegation, expected_version: int) -> Delegation:
        ...

    @abstractmethod
    def list_for_vessel(self, vessel_id: str) -> list[Delegation]:
        """Every delegation on the vessel, revoked ones included."""

    @abstractmethod
    def list_for_delegator(self, from_user_id: str, vessel_id: str) -> list[Delegation]:
        ...

    def require(self, delegation_id: str) -> Delegation:
        delegation = self.get(delegation_id)
        if delegation is None:
            raise NotFoundError(self.entity_type, delegation_id)
        return delegation


class InMemoryDelegationRepository(InMemoryRepository, DelegationRepository):
    table = "delegations"

    def get(self, delegation_id: str) -> Delegation | None:
        return self._get(delegation_id)

    def add(self, delegation: Delegation) -> Delegation:
        return self._insert(delegation)

    def update(self, delegation: Delegation, expected_version: int) -> Delegation:
        return self._replace(delegation, expected_version)

    def list_for_vessel(self, vessel_id: str) -> list[Delegation]:
        return sorted(
            self._select(lambda d: d.vessel_id == vessel_id),
            key=lambda d: (d.start_date, d.from_user_id),
        )

    def list_for_delegator(self, from_user_id: str, vessel_id: str) -> list[Delegation]:
        return self._select(
            lambda d: d.from_user_id == from_user_id and d.vessel_id == vessel_id
        )


class SqlDelegationRepository(SqlRepository, DelegationRepository):

    def get(self, delegation_id: str) -> Delegation | None:
        model = self._load(DelegationModel, delegation_id)
        return model.to_dto() if model else None

    def add(self, delegation: Delegation) -> Delegation:
        self._session.add(DelegationModel.from_dto(delegation))
        self._session.flush()
        return delegation

    def update(self, delegation: Delegation, expected_version: int) -> Delegation:
        new_version = self._compare_and_swap(
            DelegationModel,
            delegation.id,
            expected_version,
            DelegationModel.column_values(delegation),
        )
        return replace(delegation, version=new_version)

    def list_for_vessel(self, vessel_id: str) -> list[Delegation]:
        models = self._load_where(
            DelegationModel,
            DelegationModel.vessel_id == vessel_id,
            order_by=DelegationModel.start_date,
        )
        return sorted((m.to_dto() for m in models), key=lambda d: (d.start_date, d.from_user_id))

    def list_for_delegator(self, from_user_id: str, vessel_id: str) -> list[Delegation]:
        models = self._load_where(
            DelegationModel,
            DelegationModel.from_user_id == from_user_id,
            DelegationModel.vessel_id == vessel_id,
        )
        return [m.to_dto() for m in models]
