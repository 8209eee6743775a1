"""
Purchase Order Workflows.

High-value orders start in DRAFT and need approval before they are sent.
Delivery and receipt confirmations may arrive in either order; the first
moves the order to IN_PROGRESS, the second to DELIVERED.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger
from procurement_modules.purchase_order.models import PurchaseOrderStatus as S

logger = get_logger("modules.purchase_order.workflows")


HIGH_VALUE_APPROVED = Guard(
    name="high_value_approved",
    description="A holder of APPROVE_PURCHASE_ORDER released the order",
)

BOTH_CONFIRMATIONS = Guard(
    name="both_confirmations",
    description="Vendor delivery and crew receipt are both recorded",
)

_CONFIRMABLE = (S.SENT, S.ACKNOWLEDGED, S.IN_PROGRESS)
_CANCELLABLE = (S.DRAFT, S.SENT, S.ACKNOWLEDGED)
_INVOICEABLE = (S.SENT, S.ACKNOWLEDGED, S.IN_PROGRESS, S.DELIVERED, S.INVOICED)

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="PurchaseOrder",
    description="Purchase order from issue to payment",
    initial_state=S.DRAFT,
    states=tuple(S),
    transitions=(
        Transition(S.DRAFT, S.SENT, action="approve", guard=HIGH_VALUE_APPROVED),
        Transition(S.SENT, S.ACKNOWLEDGED, action="acknowledge"),
        *(Transition(state, S.IN_PROGRESS, action="confirm") for state in (S.SENT, S.ACKNOWLEDGED)),
        Transition(S.IN_PROGRESS, S.DELIVERED, action="complete", guard=BOTH_CONFIRMATIONS),
        Transition(S.DELIVERED, S.INVOICED, action="invoice"),
        Transition(S.INVOICED, S.PAID, action="pay"),
        *(Transition(state, S.CANCELLED, action="cancel") for state in _CANCELLABLE),
    ),
    terminal_states=(S.PAID, S.CANCELLED),
)

CONFIRMABLE_STATES = frozenset(_CONFIRMABLE)
INVOICEABLE_STATES = frozenset(_INVOICEABLE)

logger.info(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
    },
)
