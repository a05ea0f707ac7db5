"""
Canonical workflow types (``workflow_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for entity lifecycle state machines.  Every governed
entity type (voucher, budget entry, risk, action plan) describes its
legal status changes with the same ``TransitionRule`` shape, and every
caller identifies itself with the same ``Actor``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* States are opaque strings; legality is defined only by a registry.
* A rule never loops onto its own state and always names at least one
  allowed role.
* ``allowed_roles`` is a frozenset, so membership is the only role check.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workflow_kernel.domain.audit import AuditEntry
    from workflow_kernel.exceptions import TransitionError

WorkflowState = str
Role = str

DEFAULT_INITIAL_STATE: WorkflowState = "draft"


@dataclass(frozen=True)
class TransitionRule:
    """A declared legal edge between two states.

    Contract: frozen.  ``action`` is a display/trace label for the edge
    (e.g. ``submit``, ``approve``); it defaults to the target state.
    Guarantees: non-empty distinct states, non-empty role set.
    """

    from_state: WorkflowState
    to_state: WorkflowState
    allowed_roles: frozenset[Role]
    requires_comment: bool = False
    action: str = ""

    def __post_init__(self) -> None:
        if not self.from_state or not self.to_state:
            raise ValueError("TransitionRule states must be non-empty")
        if self.from_state == self.to_state:
            raise ValueError(
                f"TransitionRule may not loop on '{self.from_state}'"
            )
        # Accept any iterable of roles at construction.
        if not isinstance(self.allowed_roles, frozenset):
            object.__setattr__(self, "allowed_roles", frozenset(self.allowed_roles))
        if not self.allowed_roles:
            raise ValueError(
                f"TransitionRule '{self.from_state}' -> '{self.to_state}' "
                "must allow at least one role"
            )
        if not self.action:
            object.__setattr__(self, "action", self.to_state)

    @property
    def key(self) -> tuple[WorkflowState, WorkflowState]:
        return (self.from_state, self.to_state)

    def allows(self, role: Role) -> bool:
        return role in self.allowed_roles


@dataclass(frozen=True)
class Actor:
    """The user performing a transition.

    Supplied by the caller's role provider; the engine does not resolve
    identities and never persists an Actor as such.
    """

    id: str
    role: Role
    organization_id: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of ``WorkflowService.transition``.

    Exactly one of ``new_state`` / ``error`` is set.  ``audit_entry`` is
    the entry appended for this call, success or rejection.
    """

    success: bool
    new_state: WorkflowState | None = None
    error: TransitionError | None = None
    audit_entry: AuditEntry | None = field(default=None, compare=False)

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def reason(self) -> str:
        return str(self.error) if self.error is not None else ""

    def unwrap(self) -> WorkflowState:
        """Return the new state, or raise the transition error."""
        if self.error is not None:
            raise self.error
        assert self.new_state is not None
        return self.new_state
