"""
RFQ Workflows.

State machines for RFQs and quotes.  An RFQ is awarded exactly once; a
quote leaves SUBMITTED exactly once.
"""

from procurement_kernel.domain.workflow import Guard, Transition, Workflow
from procurement_kernel.logging_config import get_logger
from procurement_modules.rfq.models import QuoteStatus, RfqStatus

logger = get_logger("modules.rfq.workflows")


NO_SELECTION_YET = Guard(
    name="no_selection_yet",
    description="RFQ has no selected quote and its version is unchanged since read",
)

QUOTE_STILL_VALID = Guard(
    name="quote_still_valid",
    description="Quote validUntil has not passed",
)


RFQ_WORKFLOW = Workflow(
    name="RFQ",
    description="Request for quote from issue to award",
    initial_state=RfqStatus.ISSUED,
    states=tuple(RfqStatus),
    transitions=(
        Transition(RfqStatus.ISSUED, RfqStatus.AWARDED, action="award", guard=NO_SELECTION_YET),
        Transition(RfqStatus.ISSUED, RfqStatus.CANCELLED, action="cancel"),
    ),
    terminal_states=(RfqStatus.AWARDED, RfqStatus.CANCELLED),
)

QUOTE_WORKFLOW = Workflow(
    name="Quote",
    description="Vendor quote from submission to decision",
    initial_state=QuoteStatus.SUBMITTED,
    states=tuple(QuoteStatus),
    transitions=(
        Transition(QuoteStatus.SUBMITTED, QuoteStatus.SELECTED, action="select", guard=QUOTE_STILL_VALID),
        Transition(QuoteStatus.SUBMITTED, QuoteStatus.REJECTED, action="reject"),
        Transition(QuoteStatus.SUBMITTED, QuoteStatus.EXPIRED, action="expire"),
    ),
    terminal_states=(QuoteStatus.SELECTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED),
)

for _wf in (RFQ_WORKFLOW, QUOTE_WORKFLOW):
    logger.info(
        "rfq_workflow_registered",
        extra={
            "workflow_name": _wf.name,
            "state_count": len(_wf.states),
            "transition_count": len(_wf.transitions),
        },
    )
del _wf
