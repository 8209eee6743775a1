"""
Pure calculation engines.

Engines take plain values and return plain values: no database, no clock
reads, no collaborator side effects.  Every public entry point is wrapped
with ``@traced_engine``.

- approval_authority: required approval role and the authorized approver set
- matching: three-way invoice / purchase order / receipt reconciliation
"""

from procurement_engines.approval_authority import (
    ApprovalPolicy,
    ApprovalRequirement,
    ApprovalSubject,
    ApprovalThreshold,
    AuthorizedApprover,
    resolve_approval,
)
from procurement_engines.matching import (
    MatchDocument,
    MatchLine,
    ThreeWayMatchResult,
    three_way_match,
)

__all__ = [
    "ApprovalPolicy",
    "ApprovalRequirement",
    "ApprovalSubject",
    "ApprovalThreshold",
    "AuthorizedApprover",
    "MatchDocument",
    "MatchLine",
    "ThreeWayMatchResult",
    "resolve_approval",
    "three_way_match",
]
