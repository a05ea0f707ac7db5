"""
Storage ports consumed by the workflow engine.

Responsibility:
    Structural protocols for the three collaborators the engine does not
    implement itself: the entity status store, the audit sink and the
    unit of work that commits a status write together with its audit
    entry.  SQLAlchemy and in-memory adapters live in
    ``workflow_kernel.services``.

Architecture position:
    Kernel > Domain -- protocols only, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from workflow_kernel.domain.audit import AuditEntry
from workflow_kernel.domain.workflow import WorkflowState


@dataclass(frozen=True)
class EntitySnapshot:
    """Point-in-time view of a governed entity's workflow fields."""

    entity_type: str
    entity_id: str
    status: WorkflowState
    initial_status: WorkflowState
    version: int
    organization_id: str | None = None


@runtime_checkable
class EntityStore(Protocol):
    """Reads and conditionally writes an entity's status."""

    def get_status(self, entity_type: str, entity_id: str) -> WorkflowState:
        """Return the stored status; raise EntityNotFoundError if absent."""
        ...

    def compare_and_set_status(
        self,
        entity_type: str,
        entity_id: str,
        expected: WorkflowState,
        new: WorkflowState,
    ) -> bool:
        """Set status to ``new`` only if it currently equals ``expected``.

        Returns True iff exactly one row was changed.
        """
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only store of audit entries."""

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Store the entry and return it with its sequence number."""
        ...

    def entries_for(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        """All entries for one entity, in replay order."""
        ...


@runtime_checkable
class UnitOfWork(Protocol):
    """Transactional boundary around a status write and its audit entry.

    ``begin`` opens the transaction a ``transition`` call runs in; adapters
    whose connection begins implicitly may treat it as a no-op.
    """

    def begin(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...
