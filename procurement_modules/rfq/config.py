"""
RFQ Configuration Schema.

Vendor fan-out and response windows.
"""

from dataclasses import dataclass, field
from typing import Self

from procurement_kernel.domain.values import UrgencyLevel
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.rfq.config")

DEFAULT_RESPONSE_WINDOW_HOURS: dict[UrgencyLevel, int] = {
    UrgencyLevel.ROUTINE: 168,
    UrgencyLevel.URGENT: 48,
    UrgencyLevel.EMERGENCY: 24,
}


@dataclass
class RfqConfig:
    """
    Configuration schema for the RFQ module.

        config = RfqConfig(max_vendors=3)
    """

    max_vendors: int = 5
    response_window_hours: dict[UrgencyLevel, int] = field(
        default_factory=lambda: dict(DEFAULT_RESPONSE_WINDOW_HOURS),
    )

    def __post_init__(self):
        if self.max_vendors < 1:
            raise ValueError("max_vendors must be at least 1")
        logger.info(
            "rfq_config_initialized",
            extra={
                "max_vendors": self.max_vendors,
                "response_window_hours": {k.value: v for k, v in self.response_window_hours.items()},
            },
        )

    def response_window(self, urgency: UrgencyLevel) -> int:
        return self.response_window_hours.get(urgency, DEFAULT_RESPONSE_WINDOW_HOURS[urgency])

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("rfq_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "rfq_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "response_window_hours" in data:
            data["response_window_hours"] = {
                UrgencyLevel(k): int(v) for k, v in data["response_window_hours"].items()
            }
        if "max_vendors" in data:
            data["max_vendors"] = int(data["max_vendors"])
        return cls(**data)
