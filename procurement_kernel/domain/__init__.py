"""
Pure domain layer.

Value objects and rules with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time
- I/O
"""

from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procurement_kernel.domain.roles import (
    APPROVAL_HIERARCHY,
    ROLE_CAPABILITIES,
    SYSTEM_ACTOR,
    Actor,
    Capability,
    Role,
    has_capability,
)
from procurement_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "APPROVAL_HIERARCHY",
    "ROLE_CAPABILITIES",
    "SYSTEM_ACTOR",
    "Actor",
    "Capability",
    "Clock",
    "DeterministicClock",
    "Guard",
    "Role",
    "SystemClock",
    "Transition",
    "Workflow",
    "has_capability",
]
