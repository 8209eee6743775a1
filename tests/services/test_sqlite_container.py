"""
End-to-end workflow on the SQLAlchemy repositories (SQLite file database).

The in-memory suite covers the rules; these tests check that aggregates
survive the ORM round trip intact: decimals, timezone-aware timestamps,
child rows and unique keys.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from procurement_kernel.db.engine import create_session_factory
from procurement_kernel.domain.roles import Capability
from procurement_kernel.exceptions import ConcurrencyConflict, NotFoundError
from procurement_modules.delegation.models import DelegationRequest
from procurement_modules.invoice.models import InvoiceStatus
from procurement_modules.purchase_order.models import PurchaseOrderStatus
from procurement_modules.requisition.models import RequisitionStatus
from procurement_modules.rfq.models import QuoteStatus
from procurement_services.container import ServiceContainer
from tests.factories import (
    CHIEF,
    CREW,
    FINANCE,
    NOW,
    PM,
    SUPERINTENDENT,
    VESSEL_ATLANTIC,
    make_draft,
    make_line,
)

pytestmark = pytest.mark.sqlite


@pytest.fixture
def reopened(sqlite_engine, collaborators, settings, clock):
    """A second container on the same database, sharing nothing in memory."""
    return ServiceContainer.sql(
        create_session_factory(sqlite_engine), collaborators, settings, clock,
    )


class TestRequisitionPersistence:

    def test_created_requisition_round_trips(self, sqlite_workflow, reopened):
        created = sqlite_workflow.create(
            make_line("2", "1500.50"),
            make_line("1", "99.99", name="Gasket set", category=None, criticality=None),
        )

        loaded = reopened.requisitions.get(created.id)

        assert loaded == created
        assert loaded.total_amount == Decimal("3100.99")
        assert loaded.created_at == NOW
        assert loaded.created_at.tzinfo is not None
        assert [li.name for li in loaded.line_items] == ["Fuel injector", "Gasket set"]

    def test_approval_history_round_trips(self, sqlite_workflow, reopened):
        approved = sqlite_workflow.approved()

        loaded = reopened.requisitions.get(approved.id)
        assert loaded.status is RequisitionStatus.APPROVED
        assert loaded.version == 3
        assert [a.approver_id for a in loaded.approvals] == ["super-1"]

    def test_stale_version_rejected(self, sqlite_container, sqlite_workflow):
        pending = sqlite_workflow.submit().requisition
        sqlite_container.requisitions.approve(pending.id, SUPERINTENDENT, expected_version=2)

        with pytest.raises(ConcurrencyConflict):
            sqlite_container.requisitions.reject(pending.id, SUPERINTENDENT, "Late", expected_version=2)

    def test_unknown_id(self, sqlite_container):
        with pytest.raises(NotFoundError):
            sqlite_container.requisitions.get("no-such-requisition")

    def test_offline_resync_uses_unique_key(self, sqlite_container, reopened):
        draft = make_draft(offline_id="atl-tablet-7", offline_timestamp=NOW - timedelta(hours=2))
        first = sqlite_container.offline_sync.sync(draft, CREW)
        second = reopened.offline_sync.sync(draft, CREW)

        assert first.created is True
        assert second.created is False
        assert second.requisition.id == first.requisition.id
        assert second.requisition.offline_timestamp == NOW - timedelta(hours=2)


class TestFullCycle:

    def test_requisition_to_payment(self, sqlite_container, sqlite_workflow, reopened):
        order = sqlite_workflow.delivered(unit_price="1450")
        invoice = sqlite_workflow.invoice(order)
        sqlite_container.invoices.match(invoice.id, FINANCE)
        sqlite_container.invoices.approve_for_payment(invoice.id, FINANCE)

        assert reopened.requisitions.get(order.requisition_id).status is RequisitionStatus.CLOSED
        assert reopened.invoices.get(invoice.id).status is InvoiceStatus.APPROVED_FOR_PAYMENT
        stored_order = reopened.purchase_orders.get(order.id)
        assert stored_order.status is PurchaseOrderStatus.INVOICED
        assert stored_order.total_amount == Decimal("2900")
        assert reopened.verify_audit_chain() is True

    def test_quote_selection_persists_rejections(self, sqlite_container, sqlite_workflow):
        issued = sqlite_workflow.rfq()
        winner = sqlite_workflow.quote(issued.rfq, "vendor-alpha", unit_price="1450")
        loser = sqlite_workflow.quote(issued.rfq, "vendor-bravo", unit_price="1480")

        sqlite_container.rfqs.select_quote(winner.id, "Lowest price", PM)

        assert sqlite_container.rfqs.get_quote(winner.id).status is QuoteStatus.SELECTED
        assert sqlite_container.rfqs.get_quote(loser.id).status is QuoteStatus.REJECTED
        assert sqlite_container.rfqs.get_rfq(issued.rfq.id).selected_quote_id == winner.id

    def test_purchase_order_numbers_sequential(self, sqlite_container, sqlite_workflow):
        first = sqlite_workflow.purchase_order(unit_price="1450")
        second = sqlite_workflow.purchase_order(unit_price="1450")

        assert first.po_number == "PO-202403-0001"
        assert second.po_number == "PO-202403-0002"

    def test_high_value_order_waits_for_finance(self, sqlite_container, sqlite_workflow):
        order = sqlite_workflow.purchase_order(make_line("20", "1500"), unit_price="1400")
        assert order.status is PurchaseOrderStatus.DRAFT

        approved = sqlite_container.purchase_orders.approve(order.id, FINANCE).purchase_order
        assert approved.status is PurchaseOrderStatus.SENT
        assert approved.approved_by == "fin-1"


class TestDelegationPersistence:

    def test_delegated_approval(self, sqlite_container, sqlite_workflow):
        sqlite_container.delegations.create(
            DelegationRequest(
                to_user_id="chief-1",
                vessel_id=VESSEL_ATLANTIC,
                start_date=NOW - timedelta(hours=1),
                end_date=NOW + timedelta(days=7),
                permissions=frozenset({Capability.APPROVE_REQUISITIONS}),
                reason="Shore leave",
            ),
            SUPERINTENDENT,
        )
        pending = sqlite_workflow.submit().requisition

        approved = sqlite_container.requisitions.approve(pending.id, CHIEF)

        assert approved.approvals[-1].delegated_from == "super-1"
        trail = sqlite_container.requisitions.audit_trail(pending.id, CREW)
        assert trail[-1].delegated_from == "super-1"
