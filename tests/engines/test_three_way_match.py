"""
Tests for three-way invoice reconciliation.

A purchase order of 2 x 1450 (2900 USD) is the baseline throughout.  The
default tolerance is 2%, compared strictly.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from procurement_engines.matching import (
    MatchDocument,
    MatchLine,
    relative_variance,
    three_way_match,
)

TOLERANCE = Decimal("0.02")


def _document(*lines, currency="USD", total=None):
    match_lines = tuple(
        MatchLine(number, Decimal(qty), Decimal(qty) * Decimal(price))
        for number, qty, price in lines
    )
    amount = Decimal(total) if total is not None else sum(
        (line.total_price for line in match_lines), Decimal("0"),
    )
    return MatchDocument(total_amount=amount, currency=currency, lines=match_lines)


PO = _document((1, "2", "1450"))
RECEIVED = {1: Decimal("2")}


def _match(invoice, purchase_order=PO, received=RECEIVED, tolerance=TOLERANCE):
    return three_way_match(
        invoice=invoice,
        purchase_order=purchase_order,
        received=received,
        tolerance=tolerance,
    )


class TestPassingMatch:

    def test_exact_invoice_passes(self):
        result = _match(_document((1, "2", "1450")))
        assert result.passed is True
        assert result.po_match is True
        assert result.receipt_match is True
        assert result.price_variance == Decimal("0")
        assert result.issues == ()

    def test_variance_inside_tolerance_passes(self):
        result = _match(_document((1, "2", "1470")))
        assert result.passed is True
        assert result.price_variance < TOLERANCE

    def test_to_dict_uses_wire_names(self):
        payload = _match(_document((1, "2", "1450"))).to_dict()
        assert payload == {
            "poMatch": True,
            "receiptMatch": True,
            "priceVariance": "0",
            "tolerance": "0.02",
            "passed": True,
            "issues": [],
        }


class TestFailingMatch:

    def test_over_billing_fails(self):
        result = _match(_document((1, "2", "1500")))
        assert result.passed is False
        assert result.po_match is False
        assert any(issue.startswith("Price variance") for issue in result.issues)

    def test_under_billing_fails(self):
        result = _match(_document((1, "2", "1400")))
        assert result.passed is False

    def test_variance_equal_to_tolerance_fails(self):
        purchase_order = _document((1, "1", "100"))
        result = _match(_document((1, "1", "102")), purchase_order=purchase_order, received={1: Decimal("1")})
        assert result.price_variance == TOLERANCE
        assert result.passed is False

    def test_missing_receipt_fails(self):
        result = _match(_document((1, "2", "1450")), received=None)
        assert result.receipt_match is False
        assert result.passed is False
        assert "No receipt confirmation recorded" in result.issues

    def test_short_delivery_fails(self):
        result = _match(_document((1, "2", "1450")), received={1: Decimal("1")})
        assert result.receipt_match is False
        assert "Line 1: invoiced quantity 2 differs from received 1" in result.issues

    def test_nothing_received_on_line(self):
        result = _match(_document((1, "2", "1450")), received={})
        assert "Line 1: nothing received" in result.issues

    def test_currency_mismatch(self):
        result = _match(_document((1, "2", "1450"), currency="EUR"))
        assert result.po_match is False
        assert "Currency mismatch: invoice EUR, PO USD" in result.issues

    def test_unknown_and_missing_lines(self):
        purchase_order = _document((1, "2", "1450"), (2, "1", "100"))
        invoice = _document((1, "2", "1450"), (3, "1", "100"))
        result = _match(
            invoice, purchase_order=purchase_order,
            received={1: Decimal("2"), 3: Decimal("1")},
        )
        assert "Invoice line 3 has no matching PO line" in result.issues
        assert "PO line 2 missing from invoice" in result.issues
        assert result.passed is False


class TestRelativeVariance:

    @pytest.mark.parametrize("actual,expected,variance", [
        ("2900", "2900", "0"),
        ("3000", "2900", str(Decimal("100") / Decimal("2900"))),
        ("0", "0", "0"),
        ("10", "0", "1"),
    ])
    def test_values(self, actual, expected, variance):
        assert relative_variance(Decimal(actual), Decimal(expected)) == Decimal(variance)


prices = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2,
    allow_nan=False, allow_infinity=False,
)


class TestMatchProperties:

    @given(po_price=prices, invoice_price=prices)
    @settings(max_examples=200)
    def test_passed_iff_conditions(self, po_price, invoice_price):
        purchase_order = _document((1, "1", po_price))
        result = _match(
            _document((1, "1", invoice_price)),
            purchase_order=purchase_order,
            received={1: Decimal("1")},
        )
        assert result.passed == (
            result.po_match and result.receipt_match and result.price_variance < TOLERANCE
        )

    @given(price=prices)
    def test_identical_documents_always_pass(self, price):
        document = _document((1, "3", price))
        result = _match(document, purchase_order=document, received={1: Decimal("3")})
        assert result.passed is True
