"""
procurement_engines.matching -- three-way invoice reconciliation.

Responsibility:
    Compare an invoice against its purchase order and the crew's receipt
    confirmation and report whether payment may proceed.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Decimal arithmetic only; no float intermediates.
    - ``price_variance = |invoice_total - po_total| / po_total``.
    - ``passed`` iff ``price_variance < tolerance`` (strict), ``po_match``
      and ``receipt_match``.  Under-billing fails the same way
      over-billing does.
    - Line totals are compared with the same relative tolerance.
      Quantities against the receipt must be exactly equal.
    - A missing receipt is never a match.

Failure modes:
    - None raised.  Every mismatch becomes an entry in ``issues``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.values import ZERO

ONE = Decimal("1")


@dataclass(frozen=True)
class MatchLine:
    line_number: int
    quantity: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class MatchDocument:
    total_amount: Decimal
    currency: str
    lines: tuple[MatchLine, ...]


@dataclass(frozen=True)
class ThreeWayMatchResult:
    po_match: bool
    receipt_match: bool
    price_variance: Decimal
    tolerance: Decimal
    passed: bool
    issues: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "poMatch": self.po_match,
            "receiptMatch": self.receipt_match,
            "priceVariance": str(self.price_variance),
            "tolerance": str(self.tolerance),
            "passed": self.passed,
            "issues": list(self.issues),
        }


def relative_variance(actual: Decimal, expected: Decimal) -> Decimal:
    """``|actual - expected| / expected``; a zero base is 0 when equal, else 1."""
    if expected == ZERO:
        return ZERO if actual == ZERO else ONE
    return abs(actual - expected) / abs(expected)


def _po_issues(
    invoice: MatchDocument,
    purchase_order: MatchDocument,
    tolerance: Decimal,
) -> list[str]:
    issues: list[str] = []
    if invoice.currency != purchase_order.currency:
        issues.append(
            f"Currency mismatch: invoice {invoice.currency}, PO {purchase_order.currency}"
        )

    po_lines = {line.line_number: line for line in purchase_order.lines}
    invoiced = {line.line_number for line in invoice.lines}

    for line in invoice.lines:
        po_line = po_lines.get(line.line_number)
        if po_line is None:
            issues.append(f"Invoice line {line.line_number} has no matching PO line")
            continue
        if relative_variance(line.total_price, po_line.total_price) >= tolerance:
            issues.append(
                f"Line {line.line_number}: invoiced {line.total_price} "
                f"vs PO {po_line.total_price} exceeds tolerance"
            )

    for number in sorted(set(po_lines) - invoiced):
        issues.append(f"PO line {number} missing from invoice")
    return issues


def _receipt_issues(
    invoice: MatchDocument,
    received: Mapping[int, Decimal] | None,
) -> list[str]:
    if received is None:
        return ["No receipt confirmation recorded"]
    issues: list[str] = []
    for line in invoice.lines:
        got = received.get(line.line_number)
        if got is None:
            issues.append(f"Line {line.line_number}: nothing received")
        elif got != line.quantity:
            issues.append(
                f"Line {line.line_number}: invoiced quantity {line.quantity} "
                f"differs from received {got}"
            )
    return issues


@traced_engine("three_way_match", "1.0", fingerprint_fields=("invoice", "purchase_order", "received", "tolerance"))
def three_way_match(
    *,
    invoice: MatchDocument,
    purchase_order: MatchDocument,
    received: Mapping[int, Decimal] | None,
    tolerance: Decimal,
) -> ThreeWayMatchResult:
    """Reconcile invoice, purchase order and receipt."""
    po_issues = _po_issues(invoice, purchase_order, tolerance)
    receipt_issues = _receipt_issues(invoice, received)

    variance = relative_variance(invoice.total_amount, purchase_order.total_amount)
    issues = po_issues + receipt_issues
    if purchase_order.total_amount == ZERO and invoice.total_amount != ZERO:
        issues.append("PO total is zero but invoice is not")
    if variance >= tolerance:
        issues.append(f"Price variance {variance} is not below tolerance {tolerance}")

    po_match = not po_issues
    receipt_match = not receipt_issues
    return ThreeWayMatchResult(
        po_match=po_match,
        receipt_match=receipt_match,
        price_variance=variance,
        tolerance=tolerance,
        passed=po_match and receipt_match and variance < tolerance,
        issues=tuple(issues),
    )
