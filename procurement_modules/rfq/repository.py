"""RFQ and quote repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace

from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.repositories.memory import InMemoryRepository
from procurement_kernel.repositories.sql import SqlRepository
from procurement_modules.rfq.models import Quote, Rfq
from procurement_modules.rfq.orm import QuoteLineModel, QuoteModel, RfqModel


class RfqRepository(ABC):
    entity_type = "RFQ"

    @abstractmethod
    def get(self, rfq_id: str) -> Rfq | None:
        ...

    @abstractmethod
    def get_by_requisition(self, requisition_id: str) -> Rfq | None:
        ...

    @abstractmethod
    def add(self, rfq: Rfq) -> Rfq:
        """Insert; DuplicateEntityError when the requisition already has one."""

    @abstractmethod
    def update(self, rfq: Rfq, expected_version: int) -> Rfq:
        ...

    def require(self, rfq_id: str) -> Rfq:
        rfq = self.get(rfq_id)
        if rfq is None:
            raise NotFoundError(self.entity_type, rfq_id)
        return rfq


class QuoteRepository(ABC):
    entity_type = "Quote"

    @abstractmethod
    def get(self, quote_id: str) -> Quote | None:
        ...

    @abstractmethod
    def add(self, quote: Quote) -> Quote:
        ...

    @abstractmethod
    def update(self, quote: Quote, expected_version: int) -> Quote:
        """Header fields only; quote lines are immutable."""

    @abstractmethod
    def list_for_rfq(self, rfq_id: str) -> list[Quote]:
        ...

    def require(self, quote_id: str) -> Quote:
        quote = self.get(quote_id)
        if quote is None:
            raise NotFoundError(self.entity_type, quote_id)
        return quote


class InMemoryRfqRepository(InMemoryRepository, RfqRepository):
    table = "rfqs"

    def get(self, rfq_id: str) -> Rfq | None:
        return self._get(rfq_id)

    def get_by_requisition(self, requisition_id: str) -> Rfq | None:
        found = self._select(lambda r: r.requisition_id == requisition_id)
        return found[0] if found else None

    def add(self, rfq: Rfq) -> Rfq:
        return self._insert(
            rfq,
            unique={"requisition_id": rfq.requisition_id, "rfq_number": rfq.rfq_number},
        )

    def update(self, rfq: Rfq, expected_version: int) -> Rfq:
        return self._replace(rfq, expected_version)


class InMemoryQuoteRepository(InMemoryRepository, QuoteRepository):
    table = "quotes"

    def get(self, quote_id: str) -> Quote | None:
        return self._get(quote_id)

    def add(self, quote: Quote) -> Quote:
        return self._insert(quote)

    def update(self, quote: Quote, expected_version: int) -> Quote:
        return self._replace(quote, expected_version)

    def list_for_rfq(self, rfq_id: str) -> list[Quote]:
        return sorted(
            self._select(lambda q: q.rfq_id == rfq_id),
            key=lambda q: (q.created_at, q.id),
        )


class SqlRfqRepository(SqlRepository, RfqRepository):

    def get(self, rfq_id: str) -> Rfq | None:
        model = self._load(RfqModel, rfq_id)
        return model.to_dto() if model else None

    def get_by_requisition(self, requisition_id: str) -> Rfq | None:
        found = self._load_where(RfqModel, RfqModel.requisition_id == requisition_id)
        return found[0].to_dto() if found else None

    def add(self, rfq: Rfq) -> Rfq:
        self._insert_unique([RfqModel.from_dto(rfq)], "requisition_id", rfq.requisition_id)
        return rfq

    def update(self, rfq: Rfq, expected_version: int) -> Rfq:
        new_version = self._compare_and_swap(
            RfqModel, rfq.id, expected_version, RfqModel.column_values(rfq),
        )
        return replace(rfq, version=new_version)


class SqlQuoteRepository(SqlRepository, QuoteRepository):

    def _assemble(self, model: QuoteModel) -> Quote:
        lines = self._load_where(
            QuoteLineModel,
            QuoteLineModel.quote_id == model.id,
            order_by=QuoteLineModel.line_number,
        )
        return model.to_dto(lines)

    def get(self, quote_id: str) -> Quote | None:
        model = self._load(QuoteModel, quote_id)
        return self._assemble(model) if model else None

    def add(self, quote: Quote) -> Quote:
        self._session.add(QuoteModel.from_dto(quote))
        self._session.flush()
        self._session.add_all([QuoteLineModel.from_dto(line, quote.id) for line in quote.line_items])
        self._session.flush()
        return quote

    def update(self, quote: Quote, expected_version: int) -> Quote:
        new_version = self._compare_and_swap(
            QuoteModel, quote.id, expected_version, QuoteModel.column_values(quote),
        )
        return replace(quote, version=new_version)

    def list_for_rfq(self, rfq_id: str) -> list[Quote]:
        models = self._load_where(
            QuoteModel,
            QuoteModel.rfq_id == rfq_id,
            order_by=QuoteModel.created_at,
        )
        return sorted((self._assemble(m) for m in models), key=lambda q: (q.created_at, q.id))
