"""Purchase order repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.repositories.memory import InMemoryRepository
from procurement_kernel.repositories.sql import SqlRepository
from procurement_modules.purchase_order.models import PurchaseOrder
from procurement_modules.purchase_order.orm import (
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    ReceiptLineModel,
)


class PurchaseOrderRepository(ABC):
    entity_type = "PurchaseOrder"

    @abstractmethod
    def get(self, purchase_order_id: str) -> PurchaseOrder | None:
        ...

    @abstractmethod
    def get_by_quote(self, quote_id: str) -> PurchaseOrder | None:
        ...

    @abstractmethod
    def add(self, purchase_order: PurchaseOrder) -> PurchaseOrder:
        """Insert; DuplicateEntityError when the quote already has an order."""

    @abstractmethod
    def update(self, purchase_order: PurchaseOrder, expected_version: int) -> PurchaseOrder:
        ...

    def require(self, purchase_order_id: str) -> PurchaseOrder:
        purchase_order = self.get(purchase_order_id)
        if purchase_order is None:
            raise NotFoundError(self.entity_type, purchase_order_id)
        return purchase_order


class InMemoryPurchaseOrderRepository(InMemoryRepository, PurchaseOrderRepository):
    table = "purchase_orders"

    def get(self, purchase_order_id: str) -> PurchaseOrder | None:
        return self._get(purchase_order_id)

    def get_by_quote(self, quote_id: str) -> PurchaseOrder | None:
        found = self._select(lambda po: po.quote_id == quote_id)
        return found[0] if found else None

    def add(self, purchase_order: PurchaseOrder) -> PurchaseOrder:
        return self._insert(
            purchase_order,
            unique={"quote_id": purchase_order.quote_id, "po_number": purchase_order.po_number},
        )

    def update(self, purchase_order: PurchaseOrder, expected_version: int) -> PurchaseOrder:
        return self._replace(purchase_order, expected_version)


class SqlPurchaseOrderRepository(SqlRepository, PurchaseOrderRepository):

    def _assemble(self, model: PurchaseOrderModel) -> PurchaseOrder:
        lines = self._load_where(
            PurchaseOrderLineModel,
            PurchaseOrderLineModel.purchase_order_id == model.id,
            order_by=PurchaseOrderLineModel.line_number,
        )
        received = self._load_where(
            ReceiptLineModel,
            ReceiptLineModel.purchase_order_id == model.id,
            order_by=ReceiptLineModel.line_number,
        )
        return model.to_dto(lines, received)

    def get(self, purchase_order_id: str) -> PurchaseOrder | None:
        model = self._load(PurchaseOrderModel, purchase_order_id)
        return self._assemble(model) if model else None

    def get_by_quote(self, quote_id: str) -> PurchaseOrder | None:
        found = self._load_where(PurchaseOrderModel, PurchaseOrderModel.quote_id == quote_id)
        return self._assemble(found[0]) if found else None

    def add(self, purchase_order: PurchaseOrder) -> PurchaseOrder:
        models: list = [PurchaseOrderModel.from_dto(purchase_order)]
        models += [
            PurchaseOrderLineModel.from_dto(line, purchase_order.id)
            for line in purchase_order.line_items
        ]
        self._insert_unique(models, "quote_id", purchase_order.quote_id)
        return purchase_order

    def update(self, purchase_order: PurchaseOrder, expected_version: int) -> PurchaseOrder:
        new_version = self._compare_and_swap(
            PurchaseOrderModel,
            purchase_order.id,
            expected_version,
            PurchaseOrderModel.column_values(purchase_order),
        )
        receipt = purchase_order.receipt_confirmation
        self._replace_children(
            ReceiptLineModel,
            ReceiptLineModel.purchase_order_id,
            purchase_order.id,
            [ReceiptLineModel.from_dto(line, purchase_order.id) for line in receipt.lines]
            if receipt else [],
        )
        return replace(purchase_order, version=new_version)
