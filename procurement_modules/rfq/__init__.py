"""Requests for quote and vendor quotes."""

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
from procurement_modules.rfq.service import RfqService, rank_vendors

__all__ = [
    "Quote",
    "QuoteLine",
    "QuoteLineInput",
    "QuoteSelection",
    "QuoteStatus",
    "QuoteSubmission",
    "Rfq",
    "RfqConfig",
    "RfqIssueResult",
    "RfqService",
    "RfqStatus",
    "rank_vendors",
]
