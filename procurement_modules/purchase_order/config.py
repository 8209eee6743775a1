"""
Purchase Order Configuration Schema.

High-value threshold, base currency and the maritime contract clauses
embedded in every order.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.purchase_order.config")


@dataclass
class PurchaseOrderConfig:
    """
    Configuration schema for the purchase order module.

        config = PurchaseOrderConfig(high_value_threshold=Decimal("10000"))
    """

    high_value_threshold: Decimal = Decimal("25000")
    base_currency: str = "USD"

    # Maritime clauses
    incoterms: str = "DAP (Delivered at Place) - Port of delivery as specified"
    default_payment_terms: str = "Net 30 days from delivery confirmation"
    delivery_terms: str = (
        "Delivery to vessel at berth or anchorage as directed by Master/Chief Engineer"
    )
    warranty_terms: str = (
        "All goods shall be warranted for 12 months from delivery date or as per "
        "manufacturer warranty, whichever is longer"
    )
    inspection_terms: str = (
        "Goods subject to inspection by vessel crew upon delivery. Any discrepancies "
        "must be reported within 48 hours"
    )
    force_majeure: str = (
        "Neither party shall be liable for delays due to weather, port congestion, or "
        "other maritime circumstances beyond reasonable control"
    )
    dispute_resolution: str = "Disputes to be resolved under maritime law of vessel flag state"
    late_payment_rate_pct: Decimal = Decimal("1.5")
    retention_pct: Decimal = Decimal("5")
    retention_days: int = 30

    def __post_init__(self):
        logger.info(
            "purchase_order_config_initialized",
            extra={
                "high_value_threshold": str(self.high_value_threshold),
                "base_currency": self.base_currency,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("purchase_order_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "purchase_order_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        for key in ("high_value_threshold", "late_payment_rate_pct", "retention_pct"):
            if key in data:
                data[key] = Decimal(str(data[key]))
        return cls(**data)
