"""
TransitionRegistry -- immutable per-entity-type transition table.

Responsibility:
    Holds the ``(from_state, to_state) -> TransitionRule`` table for one
    entity type and answers rule lookups.  Construction is the only time
    the table can be shaped; there is no mutation API.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - At most one rule per ``(from_state, to_state)`` pair
      (``DuplicateTransitionRuleError`` at construction).
    - Terminal states are exactly the states with no outgoing rule.
    - Internal mappings are read-only views, so a registry can be shared
      by any number of threads without synchronization.

Failure modes:
    - DuplicateTransitionRuleError on a repeated edge.
    - RegistryError on an empty table or a blank entity type.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator

from workflow_kernel.domain.workflow import (
    DEFAULT_INITIAL_STATE,
    Role,
    TransitionRule,
    WorkflowState,
)
from workflow_kernel.exceptions import DuplicateTransitionRuleError, RegistryError


class TransitionRegistry:
    """
    Immutable transition table for one entity type.

    Contract:
        ``rules_for`` returns outgoing rules in declaration order;
        ``rule_for`` returns the single rule for an edge or None.
    """

    __slots__ = ("_entity_type", "_initial_state", "_rules", "_by_edge", "_by_source")

    def __init__(
        self,
        entity_type: str,
        rules: Iterable[TransitionRule],
        initial_state: WorkflowState = DEFAULT_INITIAL_STATE,
    ) -> None:
        if not entity_type or not entity_type.strip():
            raise RegistryError("Registry entity_type must be non-empty")

        rule_tuple = tuple(rules)
        if not rule_tuple:
            raise RegistryError(f"Registry for '{entity_type}' has no rules")

        by_edge: dict[tuple[WorkflowState, WorkflowState], TransitionRule] = {}
        by_source: dict[WorkflowState, list[TransitionRule]] = {}
        for rule in rule_tuple:
            if rule.key in by_edge:
                raise DuplicateTransitionRuleError(
                    entity_type, rule.from_state, rule.to_state
                )
            by_edge[rule.key] = rule
            by_source.setdefault(rule.from_state, []).append(rule)

        self._entity_type = entity_type
        self._initial_state = initial_state
        self._by_edge = MappingProxyType(by_edge)
        self._by_source = MappingProxyType(
            {state: tuple(rs) for state, rs in by_source.items()}
        )
        # Assigned last: once set, the registry is sealed.
        self._rules = rule_tuple

    def __setattr__(self, name: str, value: object) -> None:
        if hasattr(self, "_rules"):
            raise AttributeError("TransitionRegistry is immutable")
        object.__setattr__(self, name, value)

    @property
    def entity_type(self) -> str:
        return self._entity_type

    @property
    def initial_state(self) -> WorkflowState:
        return self._initial_state

    @property
    def rules(self) -> tuple[TransitionRule, ...]:
        return self._rules

    def rules_for(self, from_state: WorkflowState) -> list[TransitionRule]:
        """All rules leaving ``from_state``, in declaration order."""
        return list(self._by_source.get(from_state, ()))

    def rule_for(
        self,
        from_state: WorkflowState,
        to_state: WorkflowState,
    ) -> TransitionRule | None:
        return self._by_edge.get((from_state, to_state))

    @property
    def states(self) -> frozenset[WorkflowState]:
        found = {self._initial_state}
        for rule in self._rules:
            found.add(rule.from_state)
            found.add(rule.to_state)
        return frozenset(found)

    @property
    def terminal_states(self) -> frozenset[WorkflowState]:
        return frozenset(s for s in self.states if s not in self._by_source)

    def is_terminal(self, state: WorkflowState) -> bool:
        return state not in self._by_source

    @property
    def roles(self) -> frozenset[Role]:
        found: set[Role] = set()
        for rule in self._rules:
            found |= rule.allowed_roles
        return frozenset(found)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[TransitionRule]:
        return iter(self._rules)

    def __contains__(self, edge: object) -> bool:
        return edge in self._by_edge

    def __repr__(self) -> str:
        return f"<TransitionRegistry {self._entity_type} rules={len(self._rules)}>"
