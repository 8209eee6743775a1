"""Vendor invoices and three-way matching."""

from procurement_modules.invoice.config import InvoiceConfig
from procurement_modules.invoice.models import (
    Invoice,
    InvoiceLine,
    InvoiceLineInput,
    InvoiceStatus,
    InvoiceSubmission,
    MatchOutcome,
)
from procurement_modules.invoice.service import InvoiceService

__all__ = [
    "Invoice",
    "InvoiceConfig",
    "InvoiceLine",
    "InvoiceLineInput",
    "InvoiceService",
    "InvoiceStatus",
    "InvoiceSubmission",
    "MatchOutcome",
]
