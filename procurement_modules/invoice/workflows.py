"""
Invoice Workflows.

A failed match parks the invoice in DISPUTED; it may be re-matched once a
late receipt arrives.  Only a MATCHED invoice reaches payment approval.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger
from procurement_modules.invoice.models import InvoiceStatus as S

logger = get_logger("modules.invoice.workflows")


MATCH_PASSED = Guard(
    name="match_passed",
    description="priceVariance < tolerance, poMatch and receiptMatch",
)

_MATCHABLE = (S.SUBMITTED, S.DISPUTED)

INVOICE_WORKFLOW = Workflow(
    name="Invoice",
    description="Vendor invoice from submission to payment approval",
    initial_state=S.SUBMITTED,
    states=tuple(S),
    transitions=(
        *(Transition(state, S.MATCHED, action="match_pass", guard=MATCH_PASSED) for state in _MATCHABLE),
        *(Transition(state, S.DISPUTED, action="match_fail") for state in _MATCHABLE),
        Transition(S.MATCHED, S.APPROVED_FOR_PAYMENT, action="approve_payment"),
        *(Transition(state, S.REJECTED, action="reject") for state in _MATCHABLE),
    ),
    terminal_states=(S.APPROVED_FOR_PAYMENT, S.REJECTED),
)

MATCHABLE_STATES = frozenset(_MATCHABLE)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
    },
)
