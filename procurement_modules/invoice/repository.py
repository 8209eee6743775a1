"""Invoice repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from procurement_kernel.exceptions import DuplicateEntityError, NotFoundError
from procurement_kernel.repositories.memory import InMemoryRepository
from procurement_kernel.repositories.sql import SqlRepository
from procurement_modules.invoice.models import Invoice
from procurement_modules.invoice.orm import InvoiceLineModel, InvoiceModel


class InvoiceRepository(ABC):
    entity_type = "Invoice"

    @abstractmethod
    def get(self, invoice_id: str) -> Invoice | None:
        ...

    @abstractmethod
    def add(self, invoice: Invoice) -> Invoice:
        """Insert; DuplicateEntityError on a repeated vendor invoice number."""

    @abstractmethod
    def update(self, invoice: Invoice, expected_version: int) -> Invoice:
        ...

    @abstractmethod
    def list_for_purchase_order(self, purchase_order_id: str) -> list[Invoice]:
        ...

    def require(self, invoice_id: str) -> Invoice:
        invoice = self.get(invoice_id)
        if invoice is None:
            raise NotFoundError(self.entity_type, invoice_id)
        return invoice


class InMemoryInvoiceRepository(InMemoryRepository, InvoiceRepository):
    table = "invoices"

    def get(self, invoice_id: str) -> Invoice | None:
        return self._get(invoice_id)

    def add(self, invoice: Invoice) -> Invoice:
        clash = self._select(
            lambda i: i.vendor_id == invoice.vendor_id and i.invoice_number == invoice.invoice_number
        )
        if clash:
            raise DuplicateEntityError(self.entity_type, "invoice_number", invoice.invoice_number)
        return self._insert(invoice)

    def update(self, invoice: Invoice, expected_version: int) -> Invoice:
        return self._replace(invoice, expected_version)

    def list_for_purchase_order(self, purchase_order_id: str) -> list[Invoice]:
        return sorted(
            self._select(lambda i: i.purchase_order_id == purchase_order_id),
            key=lambda i: (i.created_at, i.id),
        )


class SqlInvoiceRepository(SqlRepository, InvoiceRepository):

    def _assemble(self, model: InvoiceModel) -> Invoice:
        lines = self._load_where(
            InvoiceLineModel,
            InvoiceLineModel.invoice_id == model.id,
            order_by=InvoiceLineModel.line_number,
        )
        return model.to_dto(lines)

    def get(self, invoice_id: str) -> Invoice | None:
        model = self._load(InvoiceModel, invoice_id)
        return self._assemble(model) if model else None

    def add(self, invoice: Invoice) -> Invoice:
        models: list = [InvoiceModel.from_dto(invoice)]
        models += [InvoiceLineModel.from_dto(line, invoice.id) for line in invoice.line_items]
        self._insert_unique(models, "invoice_number", invoice.invoice_number)
        return invoice

    def update(self, invoice: Invoice, expected_version: int) -> Invoice:
        new_version = self._compare_and_swap(
            InvoiceModel, invoice.id, expected_version, InvoiceModel.column_values(invoice),
        )
        return replace(invoice, version=new_version)

    def list_for_purchase_order(self, purchase_order_id: str) -> list[Invoice]:
        models = self._load_where(
            InvoiceModel,
            InvoiceModel.purchase_order_id == purchase_order_id,
            order_by=InvoiceModel.created_at,
        )
        return [self._assemble(m) for m in models]
