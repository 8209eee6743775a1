"""
Requisition Configuration Schema.

Approval policy and emergency-override settings.  Values are loaded from
the YAML configuration set at startup (``procurement_config``).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from procurement_engines.approval_authority import (
    DEFAULT_ESCALATION_HOURS,
    DEFAULT_THRESHOLDS,
    ApprovalPolicy,
    ApprovalThreshold,
    BudgetScope,
)
from procurement_kernel.domain.roles import Role
from procurement_kernel.domain.values import UrgencyLevel
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.requisition.config")


@dataclass
class RequisitionConfig:
    """
    Configuration schema for the requisition module.

        config = RequisitionConfig(minor_spend_limit=Decimal("1000"))
    """

    # Approval routing
    minor_spend_limit: Decimal = Decimal("500")
    auto_approve_routine_only: bool = True
    approval_thresholds: tuple[ApprovalThreshold, ...] = DEFAULT_THRESHOLDS
    escalation_hours: dict[UrgencyLevel, int] = field(
        default_factory=lambda: dict(DEFAULT_ESCALATION_HOURS),
    )
    safety_floor_role: Role = Role.SUPERINTENDENT

    # Emergency override
    documentation_window_hours: int = 48
    required_override_documents: tuple[str, ...] = (
        "EMERGENCY_JUSTIFICATION",
        "INCIDENT_REPORT",
    )

    def __post_init__(self):
        logger.info(
            "requisition_config_initialized",
            extra={
                "minor_spend_limit": str(self.minor_spend_limit),
                "auto_approve_routine_only": self.auto_approve_routine_only,
                "threshold_count": len(self.approval_thresholds),
                "documentation_window_hours": self.documentation_window_hours,
            },
        )

    @property
    def approval_policy(self) -> ApprovalPolicy:
        return ApprovalPolicy(
            minor_spend_limit=self.minor_spend_limit,
            thresholds=self.approval_thresholds,
            escalation_hours=dict(self.escalation_hours),
            auto_approve_routine_only=self.auto_approve_routine_only,
            safety_floor_role=self.safety_floor_role,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the fleet defaults."""
        logger.info("requisition_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from a YAML set)."""
        logger.info(
            "requisition_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "minor_spend_limit" in data:
            data["minor_spend_limit"] = Decimal(str(data["minor_spend_limit"]))
        if "approval_thresholds" in data:
            data["approval_thresholds"] = tuple(
                ApprovalThreshold(
                    level=int(t["level"]),
                    min_amount=Decimal(str(t["min_amount"])),
                    max_amount=(
                        Decimal(str(t["max_amount"])) if t.get("max_amount") is not None else None
                    ),
                    role=Role(t["role"]),
                    budget_scope=BudgetScope(t.get("budget_scope", BudgetScope.VESSEL.value)),
                ) if isinstance(t, dict) else t
                for t in data["approval_thresholds"]
            )
        if "escalation_hours" in data:
            data["escalation_hours"] = {
                UrgencyLevel(k): int(v) for k, v in data["escalation_hours"].items()
            }
        if "safety_floor_role" in data:
            data["safety_floor_role"] = Role(data["safety_floor_role"])
        if "required_override_documents" in data:
            data["required_override_documents"] = tuple(data["required_override_documents"])
        return cls(**data)
