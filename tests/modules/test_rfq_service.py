"""
Tests for RfqService: vendor ranking, RFQ issue, quote intake, award and
expiry.

ENGINE vendors serving the Atlantic Star rank alpha, bravo, charlie for
routine work and bravo, charlie, alpha by response time in an emergency.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.values import UrgencyLevel
from procurement_kernel.exceptions import (
    AuthorizationError,
    ConcurrencyConflict,
    InvalidStateTransition,
    NoEligibleVendors,
    QuoteAlreadySelected,
    ValidationError,
)
from procurement_modules.requisition.models import RequisitionStatus
from procurement_modules.rfq.models import QuoteLineInput, QuoteStatus, QuoteSubmission, RfqStatus
from procurement_modules.rfq.service import rank_vendors
from tests.factories import (
    CREW,
    CREW_PACIFIC,
    NOW,
    PM,
    SUPERINTENDENT,
    VESSEL_ATLANTIC,
    VESSEL_PACIFIC,
    make_line,
    make_vendors,
)

ENGINE = frozenset({"ENGINE"})


def _submission(rfq, vendor_id="vendor-alpha", *lines, total=None, **fields):
    lines = lines or (QuoteLineInput("Fuel injector", Decimal("2"), Decimal("1450")),)
    values = {
        "rfq_id": rfq.id,
        "vendor_id": vendor_id,
        "line_items": lines,
        "total_amount": Decimal(total) if total is not None else sum(
            (line.quantity * line.unit_price for line in lines), Decimal("0"),
        ),
        "currency": "USD",
        "valid_until": NOW + timedelta(days=30),
    }
    values.update(fields)
    return QuoteSubmission(**values)


# =============================================================================
# Ranking
# =============================================================================


class TestRankVendors:

    def test_routine_by_rating(self):
        ranked = rank_vendors(make_vendors(), VESSEL_ATLANTIC, ENGINE, UrgencyLevel.ROUTINE, 5)
        assert [v.vendor_id for v in ranked] == ["vendor-alpha", "vendor-bravo", "vendor-charlie"]

    def test_emergency_by_response_time(self):
        ranked = rank_vendors(make_vendors(), VESSEL_ATLANTIC, ENGINE, UrgencyLevel.EMERGENCY, 5)
        assert [v.vendor_id for v in ranked] == ["vendor-bravo", "vendor-charlie", "vendor-alpha"]

    def test_limit_applied_after_ordering(self):
        ranked = rank_vendors(make_vendors(), VESSEL_ATLANTIC, ENGINE, UrgencyLevel.ROUTINE, 2)
        assert [v.vendor_id for v in ranked] == ["vendor-alpha", "vendor-bravo"]

    def test_inactive_and_off_vessel_excluded(self):
        ranked = rank_vendors(
            make_vendors(), VESSEL_ATLANTIC, frozenset({"SAFETY"}), UrgencyLevel.ROUTINE, 5,
        )
        assert [v.vendor_id for v in ranked] == ["vendor-bravo"]

    def test_no_categories_means_any(self):
        ranked = rank_vendors(make_vendors(), VESSEL_PACIFIC, frozenset(), UrgencyLevel.ROUTINE, 10)
        assert "vendor-echo" not in {v.vendor_id for v in ranked}
        assert "vendor-delta" in {v.vendor_id for v in ranked}


# =============================================================================
# Issue
# =============================================================================


class TestGenerateRfq:

    def test_issue_to_ranked_vendors(self, container, workflow):
        issued = workflow.rfq()
        rfq = issued.rfq

        assert rfq.rfq_number == "RFQ-2024-0001"
        assert rfq.status is RfqStatus.ISSUED
        assert rfq.vendor_ids == ("vendor-alpha", "vendor-bravo", "vendor-charlie")
        assert rfq.deadline == NOW + timedelta(hours=168)
        assert issued.vendors_notified == 3
        assert issued.warnings == ()
        assert container.requisitions.get(rfq.requisition_id).status is RequisitionStatus.RFQ_ISSUED
        assert [vid for vid, _ in container.collaborators.notifier.rfqs_sent] == list(rfq.vendor_ids)

    def test_emergency_window_and_order(self, workflow):
        issued = workflow.rfq(urgency=UrgencyLevel.EMERGENCY, justification="Main engine down")
        assert issued.rfq.deadline == NOW + timedelta(hours=24)
        assert issued.rfq.vendor_ids == ("vendor-bravo", "vendor-charlie", "vendor-alpha")

    def test_pacific_safety_vendors(self, workflow):
        issued = workflow.rfq(
            make_line(category="SAFETY"), vessel_id=VESSEL_PACIFIC, actor=CREW_PACIFIC,
        )
        assert issued.rfq.vendor_ids == ("vendor-delta", "vendor-bravo")

    def test_via_requisition_service(self, container, workflow):
        approved = workflow.approved()
        issued = container.requisitions.generate_rfq(approved.id, PM)
        assert issued.rfq.requisition_id == approved.id

    def test_notification_failure_is_warning(self, container, workflow):
        container.collaborators.notifier.failing_vendors.add("vendor-bravo")
        issued = workflow.rfq()

        assert issued.vendors_notified == 2
        assert issued.warnings == (
            "RFQ notification to vendor-bravo failed: vendor vendor-bravo unreachable",
        )
        assert container.requisitions.get(issued.rfq.requisition_id).status is RequisitionStatus.RFQ_ISSUED

    def test_no_vendors_rolls_back(self, container, workflow):
        approved = workflow.approved(make_line(category="HULL"))
        with pytest.raises(NoEligibleVendors) as exc_info:
            container.rfqs.generate(approved.id, PM)
        assert exc_info.value.categories == ["HULL"]
        assert container.requisitions.get(approved.id).status is RequisitionStatus.APPROVED

    def test_only_once(self, container, workflow):
        issued = workflow.rfq()
        with pytest.raises(InvalidStateTransition):
            container.rfqs.generate(issued.rfq.requisition_id, PM)

    def test_requires_approval(self, container, workflow):
        result = workflow.submit()
        with pytest.raises(InvalidStateTransition):
            container.rfqs.generate(result.requisition.id, PM)

    def test_requires_manage_rfq(self, container, workflow):
        approved = workflow.approved()
        with pytest.raises(AuthorizationError):
            container.rfqs.generate(approved.id, SUPERINTENDENT)


# =============================================================================
# Quotes
# =============================================================================


class TestSubmitQuote:

    def test_quote_recorded(self, container, workflow):
        rfq = workflow.rfq().rfq
        quote = container.rfqs.submit_quote(_submission(rfq, payment_terms="Net 30", delivery_days=5), PM)

        assert quote.status is QuoteStatus.SUBMITTED
        assert quote.total_amount == Decimal("2900")
        assert quote.line_items[0].line_number == 1
        assert quote.requisition_id == rfq.requisition_id
        assert container.rfqs.quotes_for(rfq.id) == [quote]

    def test_uninvited_vendor(self, container, workflow):
        rfq = workflow.rfq().rfq
        with pytest.raises(ValidationError) as exc_info:
            container.rfqs.submit_quote(_submission(rfq, "vendor-echo"), PM)
        assert exc_info.value.field == "vendor_id"

    def test_total_must_match_lines(self, container, workflow):
        rfq = workflow.rfq().rfq
        with pytest.raises(ValidationError) as exc_info:
            container.rfqs.submit_quote(_submission(rfq, total="3000"), PM)
        assert exc_info.value.field == "total_amount"

    def test_duplicate_line_numbers(self, container, workflow):
        rfq = workflow.rfq().rfq
        lines = (
            QuoteLineInput("Injector", Decimal("1"), Decimal("10"), line_number=1),
            QuoteLineInput("Nozzle", Decimal("1"), Decimal("10"), line_number=1),
        )
        with pytest.raises(ValidationError):
            container.rfqs.submit_quote(_submission(rfq, "vendor-alpha", *lines), PM)

    def test_negative_delivery_days(self, container, workflow):
        rfq = workflow.rfq().rfq
        with pytest.raises(ValidationError):
            container.rfqs.submit_quote(_submission(rfq, delivery_days=-1), PM)

    def test_after_deadline(self, container, workflow, clock):
        rfq = workflow.rfq().rfq
        clock.advance(hours=168, seconds=1)
        with pytest.raises(ValidationError):
            container.rfqs.submit_quote(_submission(rfq), PM)

    def test_validity_must_be_future(self, container, workflow):
        rfq = workflow.rfq().rfq
        with pytest.raises(ValidationError) as exc_info:
            container.rfqs.submit_quote(_submission(rfq, valid_until=NOW), PM)
        assert exc_info.value.field == "valid_until"

    def test_crew_cannot_key_quotes(self, container, workflow):
        rfq = workflow.rfq().rfq
        with pytest.raises(AuthorizationError):
            container.rfqs.submit_quote(_submission(rfq), CREW)


class TestSelectQuote:

    def test_select_rejects_siblings(self, container, workflow):
        rfq = workflow.rfq().rfq
        alpha = workflow.quote(rfq, "vendor-alpha", unit_price="1450")
        bravo = workflow.quote(rfq, "vendor-bravo", unit_price="1480")

        selection = container.rfqs.select_quote(alpha.id, "Lowest price", SUPERINTENDENT, expected_version=1)

        assert selection.quote.status is QuoteStatus.SELECTED
        assert selection.quote.selection_reason == "Lowest price"
        assert selection.rfq.status is RfqStatus.AWARDED
        assert selection.rfq.selected_quote_id == alpha.id
        assert selection.rejected_quote_ids == (bravo.id,)
        assert container.rfqs.get_quote(bravo.id).status is QuoteStatus.REJECTED

    def test_selection_audited(self, container, workflow):
        quote = workflow.selected()
        actions = [e.action for e in container.requisitions.audit_trail(quote.requisition_id, PM)]
        assert actions[-1] is AuditAction.QUOTE_SELECTED

    def test_second_selection_refused(self, container, workflow):
        rfq = workflow.rfq().rfq
        alpha = workflow.quote(rfq, "vendor-alpha")
        bravo = workflow.quote(rfq, "vendor-bravo")
        container.rfqs.select_quote(alpha.id, "Lowest price", PM)

        with pytest.raises(QuoteAlreadySelected) as exc_info:
            container.rfqs.select_quote(bravo.id, "Faster", PM)
        assert exc_info.value.selected_quote_id == alpha.id

    def test_stale_rfq_version(self, container, workflow):
        rfq = workflow.rfq().rfq
        quote = workflow.quote(rfq)
        with pytest.raises(ConcurrencyConflict):
            container.rfqs.select_quote(quote.id, "Lowest price", PM, expected_version=7)

    def test_lapsed_quote_not_selectable(self, container, workflow, clock):
        rfq = workflow.rfq().rfq
        quote = workflow.quote(rfq, valid_for=timedelta(days=1))
        clock.advance(days=2)
        with pytest.raises(InvalidStateTransition):
            container.rfqs.select_quote(quote.id, "Lowest price", PM)

    def test_reason_required(self, container, workflow):
        rfq = workflow.rfq().rfq
        quote = workflow.quote(rfq)
        with pytest.raises(ValidationError):
            container.rfqs.select_quote(quote.id, " ", PM)

    def test_crew_cannot_select(self, container, workflow):
        rfq = workflow.rfq().rfq
        quote = workflow.quote(rfq)
        with pytest.raises(AuthorizationError):
            container.rfqs.select_quote(quote.id, "Cheapest", CREW)


class TestExpireQuotes:

    def test_only_lapsed_submitted_quotes_expire(self, container, workflow, clock):
        rfq = workflow.rfq().rfq
        short = workflow.quote(rfq, "vendor-alpha", valid_for=timedelta(days=1))
        long = workflow.quote(rfq, "vendor-bravo", valid_for=timedelta(days=30))
        clock.advance(days=1)

        expired = container.rfqs.expire_quotes(rfq.id)

        assert [q.id for q in expired] == [short.id]
        assert container.rfqs.get_quote(short.id).status is QuoteStatus.EXPIRED
        assert container.rfqs.get_quote(long.id).status is QuoteStatus.SUBMITTED
        assert container.store.audit[-1].action is AuditAction.QUOTE_EXPIRED
        assert container.store.audit[-1].user_id == "system"

    def test_nothing_to_expire(self, container, workflow):
        rfq = workflow.rfq().rfq
        workflow.quote(rfq)
        assert container.rfqs.expire_quotes(rfq.id) == []
