"""
Canonical workflow types (``order_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for table-driven state machines: a ``Workflow`` is the
full ``state x action -> Transition`` table, each ``Transition`` names its
guard and the effects the caller applies when it fires.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* At most one transition per ``(from_state, action)`` pair.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A legal ``(from_state, action)`` edge.

    ``replay=True`` marks an action re-issued against the state it already
    produced; the owning service treats it as a no-op returning the current
    record.  Self-loops with ``replay=False`` (payment, detail edits) are real
    writes that leave the status unchanged.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    effects: tuple[str, ...] = ()
    replay: bool = False

    @property
    def changes_state(self) -> bool:
        return self.from_state != self.to_state


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states no state-changing transition leaves.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            for state in (t.from_state, t.to_state):
                if state not in self.states:
                    raise ValueError(
                        f"Workflow {self.name}: transition {t.action} "
                        f"references unknown state {state!r}"
                    )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition for {key}"
                )
            seen.add(key)

    def find(self, from_state: str, action: str) -> Transition | None:
        """The transition for ``action`` out of ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def sources_of(self, action: str) -> frozenset[str]:
        """Every state from which ``action`` is accepted (replays included)."""
        return frozenset(t.from_state for t in self.transitions if t.action == action)

    def edges(self) -> dict[str, frozenset[str]]:
        """Status graph: state -> states reachable by one state-changing transition."""
        graph: dict[str, set[str]] = {s: set() for s in self.states}
        for t in self.transitions:
            if t.changes_state:
                graph[t.from_state].add(t.to_state)
        return {s: frozenset(targets) for s, targets in graph.items()}

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
