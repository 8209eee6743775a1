"""
Canonical workflow types (``procurement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Requisitions, purchase
orders, invoices, quotes and RFQs each declare one ``Workflow``; every
status change in the services goes through ``Workflow.next_state`` so that
legality is decided by the transition table and nowhere else.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``repositories/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from procurement_kernel.exceptions import InvalidStateTransition


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only: the owning service evaluates the condition.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Guarantees: ``initial_state`` is a member of ``states``; every
    transition references declared states; terminal states are sinks.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    _index: dict[tuple[str, str], Transition] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} not declared"
            )
        for t in self.transitions:
            if t.from_state not in known or t.to_state not in known:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} has an outgoing transition"
                )
            self._index[(t.from_state, t.action)] = t

    @property
    def transition_table(self) -> dict[str, frozenset[str]]:
        """from_state -> reachable states."""
        table: dict[str, set[str]] = {s: set() for s in self.states}
        for t in self.transitions:
            table[t.from_state].add(t.to_state)
        return {s: frozenset(targets) for s, targets in table.items()}

    def allowed_actions(self, state: str) -> frozenset[str]:
        return frozenset(a for (s, a) in self._index if s == state)

    def can(self, state: str, action: str) -> bool:
        return (state, action) in self._index

    def next_state(self, entity_id: str, state: str, action: str) -> str:
        """Return the target state for ``action`` or raise InvalidStateTransition."""
        transition = self._index.get((state, action))
        if transition is None:
            raise InvalidStateTransition(
                entity_type=self.name,
                entity_id=entity_id,
                current_status=str(getattr(state, "value", state)),
                action=action,
            )
        return transition.to_state
