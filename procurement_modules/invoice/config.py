"""
Invoice Configuration Schema.

Three-way match tolerance.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.invoice.config")


@dataclass
class InvoiceConfig:
    """
    Configuration schema for the invoice module.

        config = InvoiceConfig(match_tolerance=Decimal("0.01"))
    """

    # Relative; a match passes only when variance is strictly below it.
    match_tolerance: Decimal = Decimal("0.02")

    def __post_init__(self):
        if not Decimal("0") < self.match_tolerance < Decimal("1"):
            raise ValueError("match_tolerance must be between 0 and 1")
        logger.info(
            "invoice_config_initialized",
            extra={"match_tolerance": str(self.match_tolerance)},
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("invoice_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "invoice_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "match_tolerance" in data:
            data["match_tolerance"] = Decimal(str(data["match_tolerance"]))
        return cls(**data)
