"""
Audit domain types (``workflow_kernel.domain.audit``).

Responsibility
--------------
The immutable record of one transition attempt, and the pure replay
function that rebuilds an entity's status from its history.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Entries are frozen; sinks append them and never update or delete.
* Successful entries chain: each starts from the state the previous
  successful entry produced.  ``replay_status`` verifies this.
* The stored ``status`` of an entity equals the replayed status (it is a
  cache of the last successful ``to_state``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable

from workflow_kernel.domain.workflow import Actor, WorkflowState
from workflow_kernel.exceptions import HistoryReplayError, TransitionError


class AuditOutcome(str, Enum):
    """Outcome of a transition attempt."""

    SUCCESS = "success"
    REJECTED = "rejected"


@dataclass(frozen=True)
class AuditEntry:
    """One transition attempt, successful or rejected.

    ``seq`` is assigned by the sink when the entry is appended and breaks
    ties between entries with identical timestamps.
    """

    entity_type: str
    entity_id: str
    from_state: WorkflowState
    to_state: WorkflowState
    actor_id: str
    actor_role: str
    timestamp: datetime
    outcome: AuditOutcome
    organization_id: str | None = None
    comment: str | None = None
    rejection_reason: str | None = None
    rejection_message: str | None = None
    seq: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AuditOutcome.SUCCESS

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.timestamp, self.seq if self.seq is not None else 0)

    def with_seq(self, seq: int) -> AuditEntry:
        return replace(self, seq=seq)

    @classmethod
    def success(
        cls,
        entity_type: str,
        entity_id: str,
        from_state: WorkflowState,
        to_state: WorkflowState,
        actor: Actor,
        timestamp: datetime,
        comment: str | None = None,
    ) -> AuditEntry:
        return cls(
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            to_state=to_state,
            actor_id=actor.id,
            actor_role=actor.role,
            organization_id=actor.organization_id,
            timestamp=timestamp,
            outcome=AuditOutcome.SUCCESS,
            comment=comment,
        )

    @classmethod
    def rejected(
        cls,
        entity_type: str,
        entity_id: str,
        from_state: WorkflowState,
        to_state: WorkflowState,
        actor: Actor,
        timestamp: datetime,
        error: TransitionError,
        comment: str | None = None,
    ) -> AuditEntry:
        return cls(
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            to_state=to_state,
            actor_id=actor.id,
            actor_role=actor.role,
            organization_id=actor.organization_id,
            timestamp=timestamp,
            outcome=AuditOutcome.REJECTED,
            comment=comment,
            rejection_reason=error.code,
            rejection_message=str(error),
        )


def ordered(entries: Iterable[AuditEntry]) -> list[AuditEntry]:
    """Return entries in replay order: timestamp, then append sequence."""
    return sorted(entries, key=lambda e: e.sort_key)


def replay_status(
    entries: Iterable[AuditEntry],
    initial_state: WorkflowState,
) -> WorkflowState:
    """Rebuild an entity's status from its audit history.

    Rejected entries are skipped.  Raises HistoryReplayError when a
    successful entry does not start from the replayed state.
    """
    state = initial_state
    for entry in ordered(entries):
        if not entry.succeeded:
            continue
        if entry.from_state != state:
            raise HistoryReplayError(
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                seq=entry.seq,
                expected_from=state,
                found_from=entry.from_state,
            )
        state = entry.to_state
    return state
