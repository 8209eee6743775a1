"""
RFQ Module Service (``procurement_modules.rfq.service``).

Responsibility
--------------
Issues one RFQ per approved requisition to a ranked, bounded set of
vendors, records vendor quotes, awards exactly one quote per RFQ and
expires quotes whose validity has lapsed.

Architecture position
---------------------
**Modules layer** -- orchestrates the vendor directory and notifier
collaborators around the RFQ and quote repositories.

Invariants enforced
-------------------
* Issuing requires the requisition to be APPROVED with no RFQ yet; the
  RFQ insert and the requisition's move to RFQ_ISSUED commit together.
* Vendor notification happens after commit.  A failed notification is a
  warning; nothing is rolled back.
* Selection is a compare-and-swap on the RFQ version: the chosen quote
  becomes SELECTED, every sibling SUBMITTED quote REJECTED and the RFQ
  AWARDED in one unit of work.

Failure modes
-------------
* ``NoEligibleVendors`` -- directory produced nobody after filtering.
* ``QuoteAlreadySelected`` -- the RFQ is already awarded.
* ``ValidationError`` -- uninvited vendor, deadline passed, totals that
  do not add up.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.collaborators import Collaborators, VendorCandidate
from procurement_kernel.domain.roles import SYSTEM_ACTOR, Actor, Capability
from procurement_kernel.domain.values import (
    ZERO,
    UrgencyLevel,
    new_id,
    parse_decimal,
    sum_totals,
    validate_currency,
)
from procurement_kernel.exceptions import (
    ConcurrencyConflict,
    ExternalServiceError,
    InvalidStateTransition,
    NoEligibleVendors,
    QuoteAlreadySelected,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_modules._helpers import logged_operation, require_capability, require_text
from procurement_modules.requisition.models import RequisitionStatus
from procurement_modules.requisition.service import advance_requisition
from procurement_modules.requisition.workflows import REQUISITION_WORKFLOW
from procurement_modules.rfq.config import RfqConfig
from procurement_modules.rfq.models import (
    Quote,
    QuoteLine,
    QuoteLineInput,
    QuoteSelection,
    QuoteStatus,
    QuoteSubmission,
    Rfq,
    RfqIssueResult,
    RfqStatus,
)
from procurement_modules.rfq.workflows import QUOTE_WORKFLOW, RFQ_WORKFLOW

if TYPE_CHECKING:
    from procurement_services.unit_of_work import UnitOfWork

logger = get_logger("modules.rfq.service")


def rank_vendors(
    candidates: Iterable[VendorCandidate],
    vessel_id: str,
    categories: frozenset[str],
    urgency: UrgencyLevel,
    limit: int,
) -> list[VendorCandidate]:
    """
    Filter to active vendors serving the vessel and covering a category,
    then order: fastest responders first for EMERGENCY, otherwise best
    rating then name.
    """
    eligible = [
        c for c in candidates
        if c.is_active and c.serves(vessel_id) and c.covers(categories)
    ]
    if urgency is UrgencyLevel.EMERGENCY:
        eligible.sort(key=lambda c: (c.avg_response_hours, c.name, c.vendor_id))
    else:
        eligible.sort(key=lambda c: (-c.rating, c.name, c.vendor_id))
    return eligible[:limit]


def build_quote_lines(inputs: Iterable[QuoteLineInput]) -> tuple[QuoteLine, ...]:
    lines: list[QuoteLine] = []
    seen: set[int] = set()
    for index, item in enumerate(inputs):
        field = f"line_items[{index}]"
        number = item.line_number if item.line_number is not None else index + 1
        if number < 1 or number in seen:
            raise ValidationError(
                "line numbers must be positive and unique",
                field=f"{field}.line_number",
                value=number,
            )
        seen.add(number)
        quantity = parse_decimal(item.quantity, f"{field}.quantity")
        unit_price = parse_decimal(item.unit_price, f"{field}.unit_price")
        if quantity <= ZERO:
            raise ValidationError(
                "quantity must be greater than zero", field=f"{field}.quantity", value=str(quantity),
            )
        if unit_price < ZERO:
            raise ValidationError(
                "unit price must not be negative", field=f"{field}.unit_price", value=str(unit_price),
            )
        total = quantity * unit_price
        if item.total_price is not None and parse_decimal(item.total_price, f"{field}.total_price") != total:
            raise ValidationError(
                "total price must equal quantity times unit price",
                field=f"{field}.total_price",
                value=str(item.total_price),
            )
        lines.append(QuoteLine(
            line_number=number,
            description=require_text(item.description, f"{field}.description"),
            quantity=quantity,
            unit_price=unit_price,
            total_price=total,
        ))
    if not lines:
        raise ValidationError("at least one line item is required", field="line_items")
    return tuple(lines)


class RfqService:
    """RFQ issuance, quote intake, award and expiry."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        collaborators: Collaborators,
        config: RfqConfig,
        clock: Clock,
    ):
        self._uow_factory = uow_factory
        self._vendors = collaborators.vendors
        self._notifier = collaborators.notifier
        self._config = config
        self._clock = clock

    # =========================================================================
    # Queries
    # =========================================================================

    def get_rfq(self, rfq_id: str) -> Rfq:
        with self._uow_factory() as uow:
            return uow.rfqs.require(rfq_id)

    def get_quote(self, quote_id: str) -> Quote:
        with self._uow_factory() as uow:
            return uow.quotes.require(quote_id)

    def quotes_for(self, rfq_id: str) -> list[Quote]:
        with self._uow_factory() as uow:
            uow.rfqs.require(rfq_id)
            return uow.quotes.list_for_rfq(rfq_id)

    # =========================================================================
    # Issue
    # =========================================================================

    def generate(self, requisition_id: str, actor: Actor) -> RfqIssueResult:
        """
        APPROVED -> RFQ_ISSUED and invite up to ``max_vendors`` vendors.

        Raises:
            InvalidStateTransition: requisition not APPROVED or RFQ exists.
            NoEligibleVendors: nothing left after filtering.
        """
        with logged_operation(logger, "rfq_generate", actor, requisition_id):
            require_capability(actor, Capability.MANAGE_RFQ, "generate RFQ")
            with self._uow_factory() as uow:
                requisition = uow.requisitions.require(requisition_id)
                REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "issue_rfq")
                existing = uow.rfqs.get_by_requisition(requisition.id)
                if existing is not None:
                    raise InvalidStateTransition(
                        "Requisition", requisition.id, requisition.status.value, "generate_rfq",
                        reason=f"RFQ {existing.rfq_number} already issued",
                    )

                categories = requisition.categories
                vendors = rank_vendors(
                    self._vendors.candidates(requisition.vessel_id, categories),
                    requisition.vessel_id,
                    categories,
                    requisition.urgency,
                    self._config.max_vendors,
                )
                if not vendors:
                    raise NoEligibleVendors(requisition.id, tuple(sorted(categories)))

                now = self._clock.now()
                number = uow.sequences.next_value(f"rfq:{now.year}")
                rfq = Rfq(
                    id=new_id(),
                    rfq_number=f"RFQ-{now.year}-{number:04d}",
                    requisition_id=requisition.id,
                    vessel_id=requisition.vessel_id,
                    vendor_ids=tuple(v.vendor_id for v in vendors),
                    urgency=requisition.urgency,
                    deadline=now + timedelta(hours=self._config.response_window(requisition.urgency)),
                    status=RFQ_WORKFLOW.initial_state,
                    issued_by=actor.user_id,
                    created_at=now,
                    updated_at=now,
                )
                uow.rfqs.add(rfq)
                uow.auditor.record(
                    entity_type="RFQ",
                    entity_id=rfq.id,
                    requisition_id=requisition.id,
                    action=AuditAction.RFQ_ISSUED,
                    actor=actor,
                    payload={
                        "rfqNumber": rfq.rfq_number,
                        "vendorIds": list(rfq.vendor_ids),
                        "deadline": rfq.deadline,
                        "categories": sorted(categories),
                    },
                )
                advance_requisition(
                    uow, requisition.id, "issue_rfq", AuditAction.RFQ_ISSUED, actor, now,
                    payload={"rfqId": rfq.id},
                )

            notified, warnings = 0, []
            for vendor in vendors:
                try:
                    self._notifier.send_rfq(vendor, rfq)
                    notified += 1
                except ExternalServiceError as exc:
                    warnings.append(f"RFQ notification to {vendor.vendor_id} failed: {exc.reason}")
                    logger.warning(
                        "rfq_notification_failed",
                        extra={"rfq_id": rfq.id, "vendor_id": vendor.vendor_id, "reason": exc.reason},
                    )
            logger.info(
                "rfq_issued",
                extra={
                    "rfq_id": rfq.id,
                    "rfq_number": rfq.rfq_number,
                    "vendors_invited": len(vendors),
                    "vendors_notified": notified,
                },
            )
            return RfqIssueResult(
                rfq=rfq,
                vendors_invited=rfq.vendor_ids,
                vendors_notified=notified,
                warnings=tuple(warnings),
            )

    # =========================================================================
    # Quotes
    # =========================================================================

    def submit_quote(self, submission: QuoteSubmission, actor: Actor) -> Quote:
        """Record an invited vendor's quote against an ISSUED RFQ before its deadline."""
        with logged_operation(logger, "quote_submit", actor, rfq_id=submission.rfq_id):
            require_capability(actor, Capability.SUBMIT_QUOTE, "submit quote")
            lines = build_quote_lines(submission.line_items)
            currency = validate_currency(submission.currency)
            total = parse_decimal(submission.total_amount, "total_amount")
            if total != sum_totals(line.total_price for line in lines):
                raise ValidationError(
                    "total amount must equal the sum of line totals",
                    field="total_amount",
                    value=str(total),
                )
            if submission.delivery_days is not None and submission.delivery_days < 0:
                raise ValidationError(
                    "delivery days must not be negative",
                    field="delivery_days",
                    value=submission.delivery_days,
                )

            with self._uow_factory() as uow:
                rfq = uow.rfqs.require(submission.rfq_id)
                if rfq.status is not RfqStatus.ISSUED:
                    raise InvalidStateTransition(
                        "RFQ", rfq.id, rfq.status.value, "submit_quote",
                    )
                if submission.vendor_id not in rfq.vendor_ids:
                    raise ValidationError(
                        "vendor was not invited to this RFQ",
                        field="vendor_id",
                        value=submission.vendor_id,
                    )
                now = self._clock.now()
                if now > rfq.deadline:
                    raise ValidationError(
                        "RFQ response deadline has passed",
                        field="rfq_id",
                        value=rfq.deadline.isoformat(),
                    )
                valid_until = submission.valid_until
                if valid_until is not None and valid_until.tzinfo is None:
                    valid_until = valid_until.replace(tzinfo=timezone.utc)
                if valid_until is not None and valid_until <= now:
                    raise ValidationError(
                        "quote validity must end in the future",
                        field="valid_until",
                        value=valid_until.isoformat(),
                    )

                quote = Quote(
                    id=new_id(),
                    rfq_id=rfq.id,
                    requisition_id=rfq.requisition_id,
                    vendor_id=submission.vendor_id,
                    line_items=lines,
                    total_amount=total,
                    currency=currency,
                    status=QUOTE_WORKFLOW.initial_state,
                    submitted_by=actor.user_id,
                    created_at=now,
                    updated_at=now,
                    payment_terms=submission.payment_terms,
                    delivery_days=submission.delivery_days,
                    valid_until=valid_until,
                )
                uow.quotes.add(quote)
                uow.auditor.record(
                    entity_type="Quote",
                    entity_id=quote.id,
                    requisition_id=rfq.requisition_id,
                    action=AuditAction.QUOTE_SUBMITTED,
                    actor=actor,
                    payload={
                        "rfqId": rfq.id,
                        "vendorId": quote.vendor_id,
                        "totalAmount": total,
                        "currency": currency,
                        "lineCount": len(lines),
                    },
                )
            return quote

    def select_quote(
        self,
        quote_id: str,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
    ) -> QuoteSelection:
        """
        Award the RFQ to one quote.  ``expected_version`` is the RFQ version
        the caller read.

        Raises:
            QuoteAlreadySelected: the RFQ already has a selection.
            ConcurrencyConflict: the RFQ moved since it was read.
        """
        with logged_operation(logger, "quote_select", actor, quote_id=quote_id):
            require_capability(actor, Capability.SELECT_QUOTE, "select quote")
            reason = require_text(reason, "reason")
            with self._uow_factory() as uow:
                quote = uow.quotes.require(quote_id)
                rfq = uow.rfqs.require(quote.rfq_id)
                if rfq.selected_quote_id is not None:
                    raise QuoteAlreadySelected(rfq.id, rfq.selected_quote_id)
                if expected_version is not None and expected_version != rfq.version:
                    raise ConcurrencyConflict("RFQ", rfq.id, expected_version, rfq.version)

                requisition = uow.requisitions.require(rfq.requisition_id)
                if requisition.status is not RequisitionStatus.RFQ_ISSUED:
                    raise InvalidStateTransition(
                        "Requisition", requisition.id, requisition.status.value, "select_quote",
                    )
                now = self._clock.now()
                if quote.status is QuoteStatus.SUBMITTED and quote.lapsed(now):
                    raise InvalidStateTransition(
                        "Quote", quote.id, quote.status.value, "select",
                        reason="quote validity has lapsed",
                    )
                quote_target = QUOTE_WORKFLOW.next_state(quote.id, quote.status, "select")
                rfq_target = RFQ_WORKFLOW.next_state(rfq.id, rfq.status, "award")

                awarded = uow.rfqs.update(
                    replace(rfq, status=rfq_target, selected_quote_id=quote.id, updated_at=now),
                    rfq.version,
                )
                selected = uow.quotes.update(
                    replace(quote, status=quote_target, selection_reason=reason, updated_at=now),
                    quote.version,
                )
                uow.auditor.record(
                    entity_type="Quote",
                    entity_id=quote.id,
                    requisition_id=rfq.requisition_id,
                    action=AuditAction.QUOTE_SELECTED,
                    actor=actor,
                    payload={
                        "rfqId": rfq.id,
                        "vendorId": quote.vendor_id,
                        "totalAmount": quote.total_amount,
                        "reason": reason,
                    },
                )

                rejected: list[str] = []
                for sibling in uow.quotes.list_for_rfq(rfq.id):
                    if sibling.id == quote.id or sibling.status is not QuoteStatus.SUBMITTED:
                        continue
                    uow.quotes.update(
                        replace(
                            sibling,
                            status=QUOTE_WORKFLOW.next_state(sibling.id, sibling.status, "reject"),
                            selection_reason=f"Quote {quote.id} selected",
                            updated_at=now,
                        ),
                        sibling.version,
                    )
                    uow.auditor.record(
                        entity_type="Quote",
                        entity_id=sibling.id,
                        requisition_id=rfq.requisition_id,
                        action=AuditAction.QUOTE_REJECTED,
                        actor=actor,
                        payload={"rfqId": rfq.id, "selectedQuoteId": quote.id},
                    )
                    rejected.append(sibling.id)

            logger.info(
                "quote_selected",
                extra={
                    "quote_id": quote.id,
                    "rfq_id": rfq.id,
                    "rejected_count": len(rejected),
                },
            )
            return QuoteSelection(quote=selected, rfq=awarded, rejected_quote_ids=tuple(rejected))

    def expire_quotes(self, rfq_id: str, actor: Actor = SYSTEM_ACTOR) -> list[Quote]:
        """SUBMITTED quotes past ``valid_until`` become EXPIRED."""
        with logged_operation(logger, "quote_expire", actor, rfq_id=rfq_id):
            with self._uow_factory() as uow:
                rfq = uow.rfqs.require(rfq_id)
                now = self._clock.now()
                expired: list[Quote] = []
                for quote in uow.quotes.list_for_rfq(rfq.id):
                    if quote.status is not QuoteStatus.SUBMITTED or not quote.lapsed(now):
                        continue
                    expired.append(uow.quotes.update(
                        replace(
                            quote,
                            status=QUOTE_WORKFLOW.next_state(quote.id, quote.status, "expire"),
                            updated_at=now,
                        ),
                        quote.version,
                    ))
                    uow.auditor.record(
                        entity_type="Quote",
                        entity_id=quote.id,
                        requisition_id=rfq.requisition_id,
                        action=AuditAction.QUOTE_EXPIRED,
                        actor=actor,
                        payload={"validUntil": quote.valid_until},
                    )
            if expired:
                logger.info("quotes_expired", extra={"rfq_id": rfq_id, "count": len(expired)})
            return expired
