"""
Roles and capabilities (``procurement_kernel.domain.roles``).

Responsibility
--------------
Closed enumeration of organizational roles and the capabilities each role
carries.  Every authorization decision in the workflow is a lookup in
``ROLE_CAPABILITIES`` or a position comparison in ``APPROVAL_HIERARCHY``;
no code compares role strings.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects, zero I/O.

Invariants enforced
-------------------
* Each role maps to a frozen capability set.
* ``APPROVAL_HIERARCHY`` is ordered lowest authority first; only roles
  that hold APPROVE_REQUISITIONS appear in it.
* Only CAPTAIN holds EMERGENCY_OVERRIDE.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Organizational roles issued by the identity provider."""

    CREW = "CREW"
    CHIEF_ENGINEER = "CHIEF_ENGINEER"
    CAPTAIN = "CAPTAIN"
    SUPERINTENDENT = "SUPERINTENDENT"
    PROCUREMENT_MANAGER = "PROCUREMENT_MANAGER"
    FINANCE_TEAM = "FINANCE_TEAM"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class Capability(str, Enum):
    """Things a role may do."""

    CREATE_REQUISITION = "CREATE_REQUISITION"
    APPROVE_REQUISITIONS = "APPROVE_REQUISITIONS"
    MANAGE_BUDGETS = "MANAGE_BUDGETS"
    EMERGENCY_OVERRIDE = "EMERGENCY_OVERRIDE"
    RATIFY_OVERRIDE = "RATIFY_OVERRIDE"
    CANCEL_ANY_REQUISITION = "CANCEL_ANY_REQUISITION"
    MANAGE_RFQ = "MANAGE_RFQ"
    SUBMIT_QUOTE = "SUBMIT_QUOTE"
    SELECT_QUOTE = "SELECT_QUOTE"
    GENERATE_PURCHASE_ORDER = "GENERATE_PURCHASE_ORDER"
    APPROVE_PURCHASE_ORDER = "APPROVE_PURCHASE_ORDER"
    MANAGE_PURCHASE_ORDER = "MANAGE_PURCHASE_ORDER"
    CONFIRM_DELIVERY = "CONFIRM_DELIVERY"
    CONFIRM_RECEIPT = "CONFIRM_RECEIPT"
    SUBMIT_INVOICE = "SUBMIT_INVOICE"
    MATCH_INVOICE = "MATCH_INVOICE"
    APPROVE_PAYMENT = "APPROVE_PAYMENT"
    MANAGE_DELEGATIONS = "MANAGE_DELEGATIONS"
    VIEW_AUDIT_TRAIL = "VIEW_AUDIT_TRAIL"


C = Capability

_VESSEL_CREW = frozenset({C.CREATE_REQUISITION, C.CONFIRM_RECEIPT, C.VIEW_AUDIT_TRAIL})

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.CREW: _VESSEL_CREW,
    Role.CHIEF_ENGINEER: _VESSEL_CREW | {C.MANAGE_DELEGATIONS},
    Role.CAPTAIN: _VESSEL_CREW | {
        C.EMERGENCY_OVERRIDE,
        C.CANCEL_ANY_REQUISITION,
        C.MANAGE_DELEGATIONS,
    },
    Role.SUPERINTENDENT: frozenset({
        C.CREATE_REQUISITION,
        C.APPROVE_REQUISITIONS,
        C.MANAGE_BUDGETS,
        C.RATIFY_OVERRIDE,
        C.CANCEL_ANY_REQUISITION,
        C.SELECT_QUOTE,
        C.CONFIRM_RECEIPT,
        C.MANAGE_DELEGATIONS,
        C.VIEW_AUDIT_TRAIL,
    }),
    Role.PROCUREMENT_MANAGER: frozenset({
        C.APPROVE_REQUISITIONS,
        C.MANAGE_BUDGETS,
        C.RATIFY_OVERRIDE,
        C.CANCEL_ANY_REQUISITION,
        C.MANAGE_RFQ,
        C.SUBMIT_QUOTE,
        C.SELECT_QUOTE,
        C.GENERATE_PURCHASE_ORDER,
        C.MANAGE_PURCHASE_ORDER,
        C.CONFIRM_DELIVERY,
        C.SUBMIT_INVOICE,
        C.MANAGE_DELEGATIONS,
        C.VIEW_AUDIT_TRAIL,
    }),
    Role.FINANCE_TEAM: frozenset({
        C.APPROVE_REQUISITIONS,
        C.MANAGE_BUDGETS,
        C.RATIFY_OVERRIDE,
        C.APPROVE_PURCHASE_ORDER,
        C.MANAGE_PURCHASE_ORDER,
        C.SUBMIT_INVOICE,
        C.MATCH_INVOICE,
        C.APPROVE_PAYMENT,
        C.MANAGE_DELEGATIONS,
        C.VIEW_AUDIT_TRAIL,
    }),
    Role.ADMIN: frozenset(Capability) - {C.EMERGENCY_OVERRIDE, C.APPROVE_REQUISITIONS},
    Role.SYSTEM: frozenset({C.APPROVE_REQUISITIONS}),
}

del C

APPROVAL_HIERARCHY: tuple[Role, ...] = (
    Role.SUPERINTENDENT,
    Role.PROCUREMENT_MANAGER,
    Role.FINANCE_TEAM,
)

# Roles whose authority does not depend on vessel assignment.
FLEET_ROLES: frozenset[Role] = frozenset({
    Role.PROCUREMENT_MANAGER,
    Role.FINANCE_TEAM,
    Role.ADMIN,
    Role.SYSTEM,
})


def capabilities_of(role: Role) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in capabilities_of(role)


def hierarchy_rank(role: Role) -> int:
    """Position in APPROVAL_HIERARCHY, -1 for roles outside it."""
    try:
        return APPROVAL_HIERARCHY.index(role)
    except ValueError:
        return -1


def is_captain_capable(role: Role) -> bool:
    return has_capability(role, Capability.EMERGENCY_OVERRIDE)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller of a workflow operation.

    Identity and role come from the excluded auth subsystem; ip_address and
    user_agent come from the transport and are recorded on audit entries.
    """

    user_id: str
    role: Role
    ip_address: str | None = None
    user_agent: str | None = None

    def can(self, capability: Capability) -> bool:
        return has_capability(self.role, capability)


SYSTEM_ACTOR = Actor(user_id="system", role=Role.SYSTEM, user_agent="procurement-engine")
