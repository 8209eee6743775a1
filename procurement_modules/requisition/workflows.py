"""
Requisition Workflows.

The single transition table for the requisition lifecycle.  Every status
change in this package and downstream packages is checked against it.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger
from procurement_modules.requisition.models import RequisitionStatus as S

logger = get_logger("modules.requisition.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BELOW_MINOR_SPEND = Guard(
    name="below_minor_spend",
    description="Total below the minor-spend limit and every line ROUTINE",
)

AUTHORIZED_APPROVER = Guard(
    name="authorized_approver",
    description="Actor is in the resolved authorized set, directly or by delegation",
)

CAPTAIN_ON_VESSEL = Guard(
    name="captain_on_vessel",
    description="Actor holds EMERGENCY_OVERRIDE and is assigned to the vessel",
)

BOTH_CONFIRMATIONS = Guard(
    name="both_confirmations",
    description="Vendor delivery and crew receipt are both recorded on the PO",
)

ORDER_CANCELLED = Guard(
    name="order_cancelled",
    description="The purchase order issued for this requisition was cancelled",
)


# -----------------------------------------------------------------------------
# Requisition Workflow
# -----------------------------------------------------------------------------

_PRE_APPROVAL = (S.DRAFT, S.PENDING_APPROVAL, S.REJECTED)

REQUISITION_WORKFLOW = Workflow(
    name="Requisition",
    description="Maritime requisition lifecycle from draft to close",
    initial_state=S.DRAFT,
    states=tuple(S),
    transitions=(
        Transition(S.DRAFT, S.PENDING_APPROVAL, action="submit"),
        Transition(S.DRAFT, S.APPROVED, action="auto_approve", guard=BELOW_MINOR_SPEND),
        Transition(S.PENDING_APPROVAL, S.APPROVED, action="approve", guard=AUTHORIZED_APPROVER),
        Transition(S.PENDING_APPROVAL, S.REJECTED, action="reject", guard=AUTHORIZED_APPROVER),
        Transition(S.REJECTED, S.DRAFT, action="revise"),
        *(
            Transition(state, S.APPROVED, action="emergency_override", guard=CAPTAIN_ON_VESSEL)
            for state in _PRE_APPROVAL
        ),
        *(Transition(state, S.CANCELLED, action="cancel") for state in _PRE_APPROVAL),
        Transition(S.APPROVED, S.RFQ_ISSUED, action="issue_rfq"),
        Transition(S.RFQ_ISSUED, S.PO_ISSUED, action="issue_po"),
        Transition(S.PO_ISSUED, S.DELIVERED, action="deliver", guard=BOTH_CONFIRMATIONS),
        Transition(S.PO_ISSUED, S.CANCELLED, action="withdraw", guard=ORDER_CANCELLED),
        Transition(S.DELIVERED, S.CLOSED, action="close"),
    ),
    terminal_states=(S.CLOSED, S.CANCELLED),
)

REQUISITION_TRANSITIONS = REQUISITION_WORKFLOW.transition_table
PRE_APPROVAL_STATES = frozenset(_PRE_APPROVAL)

logger.info(
    "requisition_workflow_registered",
    extra={
        "workflow_name": REQUISITION_WORKFLOW.name,
        "state_count": len(REQUISITION_WORKFLOW.states),
        "transition_count": len(REQUISITION_WORKFLOW.transitions),
        "initial_state": REQUISITION_WORKFLOW.initial_state,
    },
)
