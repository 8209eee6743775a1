"""
Purchase Order Module Service (``procurement_modules.purchase_order.service``).

Responsibility
--------------
Turns a selected quote into exactly one purchase order carrying a frozen
vessel snapshot and the maritime contract clauses, then tracks it through
approval, acknowledgement, delivery, receipt, cancellation and payment.

Architecture position
---------------------
**Modules layer** -- reads quotes and requisitions, writes purchase
orders, and advances the requisition through ``advance_requisition``.

Invariants enforced
-------------------
* One order per quote.  ``generate`` returns an existing order unchanged
  with ``created=False``; a concurrent duplicate insert resolves the same
  way.
* Orders above ``high_value_threshold`` (strictly greater) start DRAFT;
  others start SENT and the vendor is notified after commit.
* Order creation and the requisition's move to PO_ISSUED commit together.
* Delivery and receipt are each recorded once.  When both exist the order
  and the requisition become DELIVERED in the same unit of work.
* An order invoiced before completion goes straight on to INVOICED, and
  its requisition closes at once when that invoice is already approved
  for payment.

Failure modes
-------------
* ``InvalidStateTransition`` -- quote not SELECTED, order in the wrong
  status, confirmation already recorded.
* ``ExternalServiceError`` from the notifier or rate source never fails
  the operation; it becomes a warning.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from procurement_kernel.domain.audit import AuditAction
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.collaborators import Collaborators
from procurement_kernel.domain.roles import Actor, Capability
from procurement_kernel.domain.values import ZERO, new_id, parse_decimal
from procurement_kernel.exceptions import (
    AuthorizationError,
    DuplicateEntityError,
    ExternalServiceError,
    InvalidStateTransition,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_modules._helpers import logged_operation, require_capability, require_text
from procurement_modules.invoice.models import InvoiceStatus
from procurement_modules.purchase_order.config import PurchaseOrderConfig
from procurement_modules.purchase_order.models import (
    DeliveryConfirmation,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderRequest,
    PurchaseOrderResult,
    PurchaseOrderStatus,
    ReceiptCondition,
    ReceiptConfirmation,
    ReceivedLine,
)
from procurement_modules.purchase_order.terms import (
    build_delivery_address,
    build_delivery_terms,
    build_notes,
    build_payment_terms,
)
from procurement_modules.purchase_order.workflows import (
    CONFIRMABLE_STATES,
    PURCHASE_ORDER_WORKFLOW,
)
from procurement_modules.requisition.service import advance_requisition
from procurement_modules.requisition.workflows import REQUISITION_WORKFLOW
from procurement_modules.rfq.models import QuoteStatus

if TYPE_CHECKING:
    from procurement_services.unit_of_work import UnitOfWork

logger = get_logger("modules.purchase_order.service")

ENTITY_TYPE = "PurchaseOrder"
ONE = Decimal("1")


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class PurchaseOrderService:
    """Purchase order generation and fulfilment tracking."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        collaborators: Collaborators,
        config: PurchaseOrderConfig,
        clock: Clock,
    ):
        self._uow_factory = uow_factory
        self._vessels = collaborators.vessels
        self._directory = collaborators.directory
        self._notifier = collaborators.notifier
        self._rates = collaborators.exchange_rates
        self._config = config
        self._clock = clock

    def get(self, purchase_order_id: str) -> PurchaseOrder:
        with self._uow_factory() as uow:
            return uow.purchase_orders.require(purchase_order_id)

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(self, request: PurchaseOrderRequest, actor: Actor) -> PurchaseOrderResult:
        """
        Create the purchase order for a SELECTED quote, or return the one
        that already exists.
        """
        with logged_operation(logger, "purchase_order_generate", actor, quote_id=request.quote_id):
            require_capability(actor, Capability.GENERATE_PURCHASE_ORDER, "generate purchase order")
            try:
                with self._uow_factory() as uow:
                    existing = uow.purchase_orders.get_by_quote(request.quote_id)
                    if existing is not None:
                        logger.info(
                            "purchase_order_already_exists",
                            extra={"purchase_order_id": existing.id, "quote_id": request.quote_id},
                        )
                        return PurchaseOrderResult(purchase_order=existing, created=False)
                    purchase_order, warnings = self._create_in(uow, request, actor)
            except DuplicateEntityError:
                with self._uow_factory() as uow:
                    existing = uow.purchase_orders.get_by_quote(request.quote_id)
                if existing is None:
                    raise
                logger.info(
                    "purchase_order_duplicate_resolved",
                    extra={"purchase_order_id": existing.id, "quote_id": request.quote_id},
                )
                return PurchaseOrderResult(purchase_order=existing, created=False)

            if purchase_order.status is PurchaseOrderStatus.SENT:
                warnings.extend(self._notify(purchase_order))
            logger.info(
                "purchase_order_created",
                extra={
                    "purchase_order_id": purchase_order.id,
                    "po_number": purchase_order.po_number,
                    "status": purchase_order.status.value,
                    "total_amount": str(purchase_order.total_amount),
                },
            )
            return PurchaseOrderResult(
                purchase_order=purchase_order,
                created=True,
                warnings=tuple(warnings),
            )

    def _create_in(
        self,
        uow: UnitOfWork,
        request: PurchaseOrderRequest,
        actor: Actor,
    ) -> tuple[PurchaseOrder, list[str]]:
        quote = uow.quotes.require(request.quote_id)
        if quote.status is not QuoteStatus.SELECTED:
            raise InvalidStateTransition(
                "Quote", quote.id, quote.status.value, "generate_purchase_order",
                reason="quote is not selected",
            )
        rfq = uow.rfqs.require(quote.rfq_id)
        requisition = uow.requisitions.require(rfq.requisition_id)
        REQUISITION_WORKFLOW.next_state(requisition.id, requisition.status, "issue_po")

        vessel = self._vessels.vessel(requisition.vessel_id)
        if vessel is None:
            raise ValidationError("unknown vessel", field="vessel_id", value=requisition.vessel_id)

        warnings: list[str] = []
        rate = self._exchange_rate(quote.currency, warnings)

        now = self._clock.now()
        number = uow.sequences.next_value(f"po:{now:%Y%m}")
        requires_approval = quote.total_amount > self._config.high_value_threshold
        status = (
            PURCHASE_ORDER_WORKFLOW.initial_state if requires_approval else PurchaseOrderStatus.SENT
        )
        purchase_order = PurchaseOrder(
            id=new_id(),
            po_number=f"PO-{now:%Y%m}-{number:04d}",
            quote_id=quote.id,
            rfq_id=rfq.id,
            requisition_id=requisition.id,
            vendor_id=quote.vendor_id,
            vessel_id=requisition.vessel_id,
            status=status,
            line_items=tuple(
                PurchaseOrderLine(
                    line_number=line.line_number,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                )
                for line in quote.line_items
            ),
            total_amount=quote.total_amount,
            currency=quote.currency,
            exchange_rate=rate,
            payment_terms=build_payment_terms(self._config, quote.currency, quote.payment_terms),
            delivery_terms=build_delivery_terms(self._config, vessel, request.delivery_instructions),
            delivery_address=build_delivery_address(vessel),
            notes=build_notes(self._config, request.special_terms, request.notes),
            requires_approval=requires_approval,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        uow.purchase_orders.add(purchase_order)
        uow.auditor.record(
            entity_type=ENTITY_TYPE,
            entity_id=purchase_order.id,
            requisition_id=requisition.id,
            action=AuditAction.PO_CREATED,
            actor=actor,
            payload={
                "poNumber": purchase_order.po_number,
                "quoteId": quote.id,
                "vendorId": quote.vendor_id,
                "totalAmount": purchase_order.total_amount,
                "currency": purchase_order.currency,
                "exchangeRate": rate,
                "status": status,
                "requiresApproval": requires_approval,
                "vesselSnapshot": {
                    "name": vessel.name,
                    "imoNumber": vessel.imo_number,
                    "currentVoyage": vessel.current_voyage,
                },
            },
        )
        advance_requisition(
            uow, requisition.id, "issue_po", AuditAction.PO_CREATED, actor, now,
            payload={"purchaseOrderId": purchase_order.id, "poNumber": purchase_order.po_number},
        )
        return purchase_order, warnings

    def _exchange_rate(self, currency: str, warnings: list[str]) -> Decimal | None:
        base = self._config.base_currency
        if currency == base:
            return ONE
        try:
            rate = self._rates.rate(currency, base)
        except ExternalServiceError as exc:
            rate = None
            logger.warning(
                "exchange_rate_lookup_failed",
                extra={"currency": currency, "base_currency": base, "reason": exc.reason},
            )
        if rate is None:
            warnings.append(f"Exchange rate {currency}/{base} unavailable; recorded as null")
        return rate

    def _notify(self, purchase_order: PurchaseOrder) -> list[str]:
        try:
            self._notifier.send_purchase_order(purchase_order.vendor_id, purchase_order)
        except ExternalServiceError as exc:
            logger.warning(
                "purchase_order_notification_failed",
                extra={
                    "purchase_order_id": purchase_order.id,
                    "vendor_id": purchase_order.vendor_id,
                    "reason": exc.reason,
                },
            )
            return [f"Purchase order notification to {purchase_order.vendor_id} failed: {exc.reason}"]
        return []

    # =========================================================================
    # Status changes
    # =========================================================================

    def approve(self, purchase_order_id: str, actor: Actor, comments: str = "") -> PurchaseOrderResult:
        """DRAFT -> SENT for a high-value order, then notify the vendor."""
        with logged_operation(logger, "purchase_order_approve", actor, purchase_order_id=purchase_order_id):
            require_capability(actor, Capability.APPROVE_PURCHASE_ORDER, "approve purchase order")
            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(purchase_order_id)
                updated = self._transition(
                    uow, purchase_order, "approve", AuditAction.PO_APPROVED, actor,
                    changes={"approved_by": actor.user_id},
                    payload={"comments": comments or ""},
                )
            warnings = self._notify(updated)
            return PurchaseOrderResult(purchase_order=updated, warnings=tuple(warnings))

    def acknowledge(self, purchase_order_id: str, actor: Actor) -> PurchaseOrder:
        with logged_operation(logger, "purchase_order_acknowledge", actor, purchase_order_id=purchase_order_id):
            require_capability(actor, Capability.MANAGE_PURCHASE_ORDER, "acknowledge purchase order")
            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(purchase_order_id)
                return self._transition(
                    uow, purchase_order, "acknowledge", AuditAction.PO_ACKNOWLEDGED, actor,
                )

    def cancel(self, purchase_order_id: str, actor: Actor, reason: str) -> PurchaseOrder:
        with logged_operation(logger, "purchase_order_cancel", actor, purchase_order_id=purchase_order_id):
            require_capability(actor, Capability.MANAGE_PURCHASE_ORDER, "cancel purchase order")
            reason = require_text(reason, "reason")
            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(purchase_order_id)
                cancelled = self._transition(
                    uow, purchase_order, "cancel", AuditAction.PO_CANCELLED, actor,
                    changes={"cancellation_reason": reason},
                    payload={"reason": reason},
                )
                advance_requisition(
                    uow, purchase_order.requisition_id, "withdraw", AuditAction.CANCELLED, actor,
                    self._clock.now(),
                    payload={"purchaseOrderId": purchase_order.id, "reason": reason},
                )
            return cancelled

    def record_payment(self, purchase_order_id: str, actor: Actor, payment_reference: str) -> PurchaseOrder:
        """INVOICED -> PAID.  Records the external payment outcome only."""
        with logged_operation(logger, "purchase_order_record_payment", actor, purchase_order_id=purchase_order_id):
            require_capability(actor, Capability.APPROVE_PAYMENT, "record payment")
            payment_reference = require_text(payment_reference, "payment_reference")
            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(purchase_order_id)
                return self._transition(
                    uow, purchase_order, "pay", AuditAction.PO_PAID, actor,
                    changes={"payment_reference": payment_reference, "paid_at": self._clock.now()},
                    payload={"paymentReference": payment_reference},
                )

    # =========================================================================
    # Confirmations
    # =========================================================================

    def confirm_delivery(
        self,
        purchase_order_id: str,
        actor: Actor,
        delivered_at: datetime | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Vendor-reported delivery."""
        with logged_operation(logger, "purchase_order_confirm_delivery", actor, purchase_order_id=purchase_order_id):
            require_capability(actor, Capability.CONFIRM_DELIVERY, "confirm delivery")
            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(purchase_order_id)
                self._check_confirmable(purchase_order, "confirm_delivery")
                if purchase_order.delivery_confirmation is not None:
                    raise InvalidStateTransition(
                        ENTITY_TYPE, purchase_order.id, purchase_order.status.value, "confirm_delivery",
                        reason="delivery already confirmed",
                    )
                now = self._clock.now()
                confirmation = DeliveryConfirmation(
                    confirmed_by=actor.user_id,
                    confirmed_at=now,
                    delivered_at=_aware(delivered_at) or now,
                    notes=notes,
                )
                return self._record_confirmation(
                    uow,
                    replace(purchase_order, delivery_confirmation=confirmation),
                    purchase_order,
                    AuditAction.DELIVERY_CONFIRMED,
                    actor,
                    payload={"deliveredAt": confirmation.delivered_at, "notes": notes},
                )

    def confirm_receipt(
        self,
        purchase_order_id: str,
        actor: Actor,
        condition: ReceiptCondition,
        lines: Iterable[ReceivedLine],
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Crew-confirmed receipt aboard the vessel."""
        with logged_operation(logger, "purchase_order_confirm_receipt", actor, purchase_order_id=purchase_order_id):
            require_capability(actor, Capability.CONFIRM_RECEIPT, "confirm receipt")
            with self._uow_factory() as uow:
                purchase_order = uow.purchase_orders.require(purchase_order_id)
                principal = self._directory.principal(actor.user_id)
                if principal is None or not principal.serves(purchase_order.vessel_id):
                    raise AuthorizationError(
                        actor.user_id,
                        "confirm receipt",
                        f"not assigned to vessel {purchase_order.vessel_id}",
                    )
                self._check_confirmable(purchase_order, "confirm_receipt")
                if purchase_order.receipt_confirmation is not None:
                    raise InvalidStateTransition(
                        ENTITY_TYPE, purchase_order.id, purchase_order.status.value, "confirm_receipt",
                        reason="receipt already confirmed",
                    )
                received = self._validate_received(purchase_order, lines)
                confirmation = ReceiptConfirmation(
                    received_by=actor.user_id,
                    received_at=self._clock.now(),
                    condition=ReceiptCondition(condition),
                    lines=received,
                    notes=notes,
                )
                short = [
                    line.line_number for line in purchase_order.line_items
                    if confirmation.received_quantities.get(line.line_number, ZERO) < line.quantity
                ]
                if short:
                    logger.warning(
                        "short_shipment_recorded",
                        extra={"purchase_order_id": purchase_order.id, "short_lines": short},
                    )
                return self._record_confirmation(
                    uow,
                    replace(purchase_order, receipt_confirmation=confirmation),
                    purchase_order,
                    AuditAction.RECEIPT_CONFIRMED,
                    actor,
                    payload={
                        "condition": confirmation.condition,
                        "lines": {str(k): v for k, v in confirmation.received_quantities.items()},
                        "shortLines": short,
                        "notes": notes,
                    },
                )

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_confirmable(purchase_order: PurchaseOrder, action: str) -> None:
        if purchase_order.status not in CONFIRMABLE_STATES:
            raise InvalidStateTransition(
                ENTITY_TYPE, purchase_order.id, purchase_order.status.value, action,
            )

    @staticmethod
    def _validate_received(
        purchase_order: PurchaseOrder,
        lines: Iterable[ReceivedLine],
    ) -> tuple[ReceivedLine, ...]:
        known = {line.line_number for line in purchase_order.line_items}
        result: dict[int, ReceivedLine] = {}
        for index, line in enumerate(lines):
            field = f"lines[{index}]"
            if line.line_number not in known:
                raise ValidationError(
                    "line number not on the purchase order",
                    field=f"{field}.line_number",
                    value=line.line_number,
                )
            if line.line_number in result:
                raise ValidationError(
                    "line number repeated", field=f"{field}.line_number", value=line.line_number,
                )
            quantity = parse_decimal(line.received_quantity, f"{field}.received_quantity")
            if quantity < ZERO:
                raise ValidationError(
                    "received quantity must not be negative",
                    field=f"{field}.received_quantity",
                    value=str(quantity),
                )
            result[line.line_number] = ReceivedLine(line.line_number, quantity)
        return tuple(result[n] for n in sorted(result))

    def _record_confirmation(
        self,
        uow: UnitOfWork,
        candidate: PurchaseOrder,
        original: PurchaseOrder,
        audit_action: AuditAction,
        actor: Actor,
        payload: dict,
    ) -> PurchaseOrder:
        now = self._clock.now()
        status = original.status
        if status is not PurchaseOrderStatus.IN_PROGRESS:
            status = PURCHASE_ORDER_WORKFLOW.next_state(original.id, status, "confirm")
        invoices: list = []
        if candidate.fully_confirmed:
            status = PURCHASE_ORDER_WORKFLOW.next_state(original.id, status, "complete")
            invoices = [
                invoice for invoice in uow.invoices.list_for_purchase_order(original.id)
                if invoice.status is not InvoiceStatus.REJECTED
            ]
        delivered = status is PurchaseOrderStatus.DELIVERED
        if invoices:
            # Invoiced ahead of delivery.
            status = PURCHASE_ORDER_WORKFLOW.next_state(original.id, status, "invoice")

        updated = uow.purchase_orders.update(
            replace(candidate, status=status, updated_at=now),
            original.version,
        )
        uow.auditor.record(
            entity_type=ENTITY_TYPE,
            entity_id=original.id,
            requisition_id=original.requisition_id,
            action=audit_action,
            actor=actor,
            payload={
                **payload,
                "fromStatus": original.status,
                "toStatus": status,
                "invoiceIds": [invoice.id for invoice in invoices],
            },
        )
        if delivered:
            advance_requisition(
                uow, original.requisition_id, "deliver", AuditAction.DELIVERED, actor, now,
                payload={"purchaseOrderId": original.id},
            )
            logger.info(
                "purchase_order_delivered",
                extra={"purchase_order_id": original.id, "requisition_id": original.requisition_id},
            )
            paid = [i for i in invoices if i.status is InvoiceStatus.APPROVED_FOR_PAYMENT]
            if paid:
                advance_requisition(
                    uow, original.requisition_id, "close", AuditAction.CLOSED, actor, now,
                    payload={"invoiceId": paid[0].id},
                )
        return updated

    def _transition(
        self,
        uow: UnitOfWork,
        purchase_order: PurchaseOrder,
        action: str,
        audit_action: AuditAction,
        actor: Actor,
        changes: dict | None = None,
        payload: dict | None = None,
    ) -> PurchaseOrder:
        target = PURCHASE_ORDER_WORKFLOW.next_state(purchase_order.id, purchase_order.status, action)
        updated = uow.purchase_orders.update(
            replace(purchase_order, status=target, updated_at=self._clock.now(), **(changes or {})),
            purchase_order.version,
        )
        uow.auditor.record(
            entity_type=ENTITY_TYPE,
            entity_id=purchase_order.id,
            requisition_id=purchase_order.requisition_id,
            action=audit_action,
            actor=actor,
            payload={"fromStatus": purchase_order.status, "toStatus": target, **(payload or {})},
        )
        return updated
