"""
Value helpers shared by every aggregate.

All money and quantity arithmetic is Decimal.  Floats are accepted at the
edge (JSON bodies) only through ``parse_decimal`` which goes via ``str``
so that 0.1 stays 0.1.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import uuid4

from procurement_kernel.exceptions import ValidationError

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

ZERO = Decimal("0")


def new_id() -> str:
    return str(uuid4())


def parse_decimal(value: Any, field: str) -> Decimal:
    """Coerce to Decimal or raise ValidationError naming the field."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric", field=field, value=value)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"{field} must be numeric", field=field, value=value) from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field, value=str(value))
    return result


def validate_currency(code: str | None) -> str:
    if not code or not _CURRENCY_RE.match(code):
        raise ValidationError(
            "currency must be a three-letter ISO 4217 code",
            field="currency",
            value=code,
        )
    return code


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return quantity * unit_price


def sum_totals(totals: Iterable[Decimal]) -> Decimal:
    return sum(totals, ZERO)


class UrgencyLevel(str, Enum):
    ROUTINE = "ROUTINE"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"


class Criticality(str, Enum):
    ROUTINE = "ROUTINE"
    OPERATIONAL_CRITICAL = "OPERATIONAL_CRITICAL"
    SAFETY_CRITICAL = "SAFETY_CRITICAL"
