"""
Invoice Module Service (``procurement_modules.invoice.service``).

Responsibility
--------------
Takes vendor invoices against a purchase order, reconciles them with the
three-way match engine, and gates payment approval on a clean match.

Architecture position
---------------------
**Modules layer** -- wraps ``procurement_engines.matching.three_way_match``
with persistence, state transitions and audit.

Invariants enforced
-------------------
* A failed match is recorded as DISPUTED with outcome
  MATCH_VARIANCE_EXCEEDED and the issue list.  It is never auto-approved,
  whether over- or under-billed.
* ``approve_for_payment`` requires MATCHED and is a compare-and-swap.  A
  DELIVERED requisition closes in the same unit of work.

Audit relevance
---------------
INVOICE_SUBMITTED, INVOICE_MATCHED / INVOICE_DISPUTED (with the full
breakdown), PAYMENT_APPROVED and INVOICE_REJECTED.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import TYPE_CHECKING

from procurement_engines.matching import MatchDocument, MatchLine, three_way_match
from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.roles import Actor, Capability
from procurement_kernel.domain.values import (
    ZERO,
    new_id,
    parse_decimal,
    sum_totals,
    validate_currency,
)
from procurement_kernel.exceptions import (
    ConcurrencyConflict,
    InvalidStateTransition,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_modules._helpers import logged_operation, require_capability, require_text
from procurement_modules.invoice.config import InvoiceConfig
from procurement_modules.invoice.models import (
    Invoice,
    InvoiceLine,
    InvoiceLineInput,
    InvoiceSubmission,
    MatchOutcome,
)
from procurement_modules.invoice.workflows import INVOICE_WORKFLOW, MATCHABLE_STATES
from procurement_modules.purchase_order.models import PurchaseOrderStatus
from procurement_modules.purchase_order.workflows import (
    INVOICEABLE_STATES,
    PURCHASE_ORDER_WORKFLOW,
)
from procurement_modules.requisition.models import RequisitionStatus
from procurement_modules.requisition.service import advance_requisition

if TYPE_CHECKING:
    from procurement_services.unit_of_work import UnitOfWork

logger = get_logger("modules.invoice.service")

ENTITY_TYPE = "Invoice"


def build_invoice_lines(inputs: Iterable[InvoiceLineInput]) -> tuple[InvoiceLine, ...]:
    lines: list[InvoiceLine] = []
    seen: set[int] = set()
    for index, item in enumerate(inputs):
        field = f"line_items[{index}]"
        if item.line_number < 1 or item.line_number in seen:
            raise ValidationError(
                "line numbers must be positive and unique",
                field=f"{field}.line_number",
                value=item.line_number,
            )
        seen.add(item.line_number)
        quantity = parse_decimal(item.quantity, f"{field}.quantity")
        unit_price = parse_decimal(item.unit_price, f"{field}.unit_price")
        if quantity <= ZERO or unit_price < ZERO:
            raise ValidationError(
                "quantity must be positive and unit price non-negative",
                field=field,
                value={"quantity": str(quantity), "unit_price": str(unit_price)},
            )
        total = quantity * unit_price
        if item.total_price is not None and parse_decimal(item.total_price, f"{field}.total_price") != total:
            raise ValidationError(
                "total price must equal quantity times unit price",
                field=f"{field}.total_price",
                value=str(item.total_price),
            )
        lines.append(InvoiceLine(
            line_number=item.line_number,
            description=require_text(item.description, f"{field}.description"),
            quantity=quantity,
            unit_price=unit_price,
            total_price=total,
        ))
    if not lines:
        raise ValidationError("at least one line item is required", field="line_items")
    return tuple(lines)


class InvoiceService:
    """Invoice intake, three-way match and payment approval."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        config: InvoiceConfig,
        clock: Clock,
    ):
        self._uow_factory = uow_factory
        self._config = config
        self._clock = clock

    def get(self, invoice_id: str) -> Invoice:
        with self._uow_factory() as uow:
            return uow.invoices.require(invoice_id)

    def submit(self, submission: InvoiceSubmission, actor: Actor) -> Invoice:
        """
        Record a vendor invoice.  A DELIVERED purchase order becomes
        INVOICED in the same unit of work.
        """
        with logged_operation(
            logger, "invoice_submit", actor, purchase_order_id=submission.purchase_order_id,
        ):
            require_capability(actor, Capability.SUBMIT_INVOICE, "submit invoice")
            invoice_number = require_text(submission.invoice_number, "invoice_number")
            lines = build_invoice_lines(submission.line_items)
            currency = validate_currency(submission.currency)
            total = parse_decimal(submission.total_amount, "total_amount")
            if total != sum_totals(line.total_price for line in lines):
                raise ValidationError(
                    "total amount must equal the sum of line totals",
                    field="total_amount",
                    value=str(total),
                )

            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(submission.purchase_order_id)
                if purchase_order.status not in INVOICEABLE_STATES:
                    raise InvalidStateTransition(
                        "PurchaseOrder", purchase_order.id, purchase_order.status.value, "invoice",
                    )
                now = self._clock.now()
                invoice = Invoice(
                    id=new_id(),
                    invoice_number=invoice_number,
                    purchase_order_id=purchase_order.id,
                    requisition_id=purchase_order.requisition_id,
                    vendor_id=purchase_order.vendor_id,
                    line_items=lines,
                    total_amount=total,
                    currency=currency,
                    status=INVOICE_WORKFLOW.initial_state,
                    submitted_by=actor.user_id,
                    created_at=now,
                    updated_at=now,
                )
                uow.invoices.add(invoice)
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=invoice.id,
                    requisition_id=invoice.requisition_id,
                    action=AuditAction.INVOICE_SUBMITTED,
                    actor=actor,
                    payload={
                        "invoiceNumber": invoice_number,
                        "purchaseOrderId": purchase_order.id,
                        "totalAmount": total,
                        "currency": currency,
                    },
                )
                if purchase_order.status is PurchaseOrderStatus.DELIVERED:
                    target = PURCHASE_ORDER_WORKFLOW.next_state(
                        purchase_order.id, purchase_order.status, "invoice",
                    )
                    uow.purchase_orders.update(
                        replace(purchase_order, status=target, updated_at=now),
                        purchase_order.version,
                    )
                    uow.auditor.record(
                        entity_type="PurchaseOrder",
                        entity_id=purchase_order.id,
                        requisition_id=purchase_order.requisition_id,
                        action=AuditAction.INVOICE_SUBMITTED,
                        actor=actor,
                        payload={
                            "invoiceId": invoice.id,
                            "fromStatus": purchase_order.status,
                            "toStatus": target,
                        },
                    )
            logger.info(
                "invoice_submitted",
                extra={
                    "invoice_id": invoice.id,
                    "purchase_order_id": invoice.purchase_order_id,
                    "total_amount": str(total),
                },
            )
            return invoice

    def match(self, invoice_id: str, actor: Actor) -> Invoice:
        """
        Three-way match against the purchase order and its receipt.
        Allowed from SUBMITTED or DISPUTED so a late receipt can be
        reconciled.
        """
        with logged_operation(logger, "invoice_match", actor, invoice_id=invoice_id):
            require_capability(actor, Capability.MATCH_INVOICE, "match invoice")
            with self._uow_factory() as uow:
                invoice = uow.invoices.require(invoice_id)
                if invoice.status not in MATCHABLE_STATES:
                    raise InvalidStateTransition(
                        ENTITY_TYPE, invoice.id, invoice.status.value, "match",
                    )
                purchase_order = uow.purchase_orders.require(invoice.purchase_order_id)
                receipt = purchase_order.receipt_confirmation

                result = three_way_match(
                    invoice=MatchDocument(
                        total_amount=invoice.total_amount,
                        currency=invoice.currency,
                        lines=tuple(
                            MatchLine(line.line_number, line.quantity, line.total_price)
                            for line in invoice.line_items
                        ),
                    ),
                    purchase_order=MatchDocument(
                        total_amount=purchase_order.total_amount,
                        currency=purchase_order.currency,
                        lines=tuple(
                            MatchLine(line.line_number, line.quantity, line.total_price)
                            for line in purchase_order.line_items
                        ),
                    ),
                    received=receipt.received_quantities if receipt else None,
                    tolerance=self._config.match_tolerance,
                )
                outcome = MatchOutcome.MATCHED if result.passed else MatchOutcome.MATCH_VARIANCE_EXCEEDED
                target = INVOICE_WORKFLOW.next_state(
                    invoice.id, invoice.status, "match_pass" if result.passed else "match_fail",
                )
                updated = uow.invoices.update(
                    replace(
                        invoice,
                        status=target,
                        match_result=result,
                        match_outcome=outcome,
                        updated_at=self._clock.now(),
                    ),
                    invoice.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=invoice.id,
                    requisition_id=invoice.requisition_id,
                    action=AuditAction.INVOICE_MATCHED if result.passed else AuditAction.INVOICE_DISPUTED,
                    actor=actor,
                    payload={"outcome": outcome, **result.to_dict()},
                )
            log = logger.info if result.passed else logger.warning
            log(
                "invoice_matched" if result.passed else "invoice_disputed",
                extra={
                    "invoice_id": invoice_id,
                    "price_variance": str(result.price_variance),
                    "po_match": result.po_match,
                    "receipt_match": result.receipt_match,
                    "issue_count": len(result.issues),
                },
            )
            return updated

    def approve_for_payment(
        self,
        invoice_id: str,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Invoice:
        """
        MATCHED -> APPROVED_FOR_PAYMENT; closes a DELIVERED requisition.
        An undelivered requisition closes when its order completes.
        """
        with logged_operation(logger, "invoice_approve_payment", actor, invoice_id=invoice_id):
            require_capability(actor, Capability.APPROVE_PAYMENT, "approve payment")
            with self._uow_factory() as uow:
                invoice = uow.invoices.require(invoice_id)
                if expected_version is not None and expected_version != invoice.version:
                    raise ConcurrencyConflict(ENTITY_TYPE, invoice.id, expected_version, invoice.version)
                target = INVOICE_WORKFLOW.next_state(invoice.id, invoice.status, "approve_payment")
                now = self._clock.now()
                updated = uow.invoices.update(
                    replace(
                        invoice,
                        status=target,
                        approved_by=actor.user_id,
                        approved_at=now,
                        updated_at=now,
                    ),
                    invoice.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=invoice.id,
                    requisition_id=invoice.requisition_id,
                    action=AuditAction.PAYMENT_APPROVED,
                    actor=actor,
                    payload={"totalAmount": invoice.total_amount, "currency": invoice.currency},
                )
                requisition = uow.requisitions.require(invoice.requisition_id)
                if requisition.status is RequisitionStatus.DELIVERED:
                    advance_requisition(
                        uow, requisition.id, "close", AuditAction.CLOSED, actor, now,
                        payload={"invoiceId": invoice.id},
                    )
            return updated

    def reject(self, invoice_id: str, actor: Actor, reason: str) -> Invoice:
        with logged_operation(logger, "invoice_reject", actor, invoice_id=invoice_id):
            require_capability(actor, Capability.MATCH_INVOICE, "reject invoice")
            reason = require_text(reason, "reason")
            with self._uow_factory() as uow:
                invoice = uow.invoices.require(invoice_id)
                target = INVOICE_WORKFLOW.next_state(invoice.id, invoice.status, "reject")
                updated = uow.invoices.update(
                    replace(
                        invoice,
                        status=target,
                        rejection_reason=reason,
                        updated_at=self._clock.now(),
                    ),
                    invoice.version,
                )
                uow.auditor.record(
                    entity_type=ENTITY_TYPE,
                    entity_id=invoice.id,
                    requisition_id=invoice.requisition_id,
                    action=AuditAction.INVOICE_REJECTED,
                    actor=actor,
                    payload={"reason": reason, "previousStatus": invoice.status},
                )
            return updated
