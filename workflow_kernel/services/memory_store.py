"""
In-memory store adapters.

Responsibility:
    Process-local implementations of the entity store, the audit sink and
    the unit of work, for hosts without a database (scripts, embedded use)
    and for tests.

Architecture position:
    Kernel > Services.  Drop-in replacements for ``SqlEntityStore`` /
    ``SqlAuditSink`` / ``SessionUnitOfWork``.  The three adapters share one
    ``InMemoryDatabase``.

Invariants enforced:
    - A successful compare_and_set_status inside a unit of work takes the
      entity's row lock and keeps it until commit or rollback, the way a
      SQL UPDATE holds its row lock.  A second writer for the same entity
      waits, then re-checks the committed status.  So the conditional write,
      the audit timestamp and the audit append of one transition can never
      interleave with another transition of the same entity.
    - Staged status writes and audit entries become visible to other
      threads only on commit; rollback discards them.
    - Audit entries are only appended.  ``seq`` is taken at append time,
      under the row lock for successful transitions, so replay order
      follows commit order per entity.
    - Outside a unit of work every write commits immediately (autocommit).
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field, replace
from typing import Iterator

from workflow_kernel.domain.audit import AuditEntry, ordered
from workflow_kernel.domain.ports import EntitySnapshot
from workflow_kernel.domain.workflow import DEFAULT_INITIAL_STATE, WorkflowState
from workflow_kernel.exceptions import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    StorageUnavailableError,
)
from workflow_kernel.logging_config import get_logger

logger = get_logger("services.memory_store")

EntityKey = tuple[str, str]

DEFAULT_LOCK_TIMEOUT = 30.0


@dataclass
class _Transaction:
    status_writes: dict[EntityKey, EntitySnapshot] = field(default_factory=dict)
    entries: list[AuditEntry] = field(default_factory=list)
    held: set[EntityKey] = field(default_factory=set)


class InMemoryDatabase:
    """Committed state, row locks and per-thread transactions."""

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._mutex = threading.Lock()
        self._entities: dict[EntityKey, EntitySnapshot] = {}
        self._entries: list[AuditEntry] = []
        self._seq = itertools.count(1)
        self._row_locks: dict[EntityKey, threading.Lock] = {}
        self._local = threading.local()
        self._lock_timeout = lock_timeout

    # -- transactions ---------------------------------------------------

    @property
    def current(self) -> _Transaction | None:
        return getattr(self._local, "txn", None)

    def begin(self) -> None:
        if self.current is not None:
            logger.warning(
                "memory_transaction_discarded",
                extra={"staged_entries": len(self.current.entries)},
            )
            self.rollback()
        self._local.txn = _Transaction()

    def commit(self) -> None:
        txn = self.current
        if txn is None:
            return
        with self._mutex:
            self._entities.update(txn.status_writes)
            self._entries.extend(txn.entries)
        self._finish(txn)

    def rollback(self) -> None:
        txn = self.current
        if txn is None:
            return
        self._finish(txn)

    def _finish(self, txn: _Transaction) -> None:
        self._local.txn = None
        for key in txn.held:
            self._row_lock(key).release()

    # -- row locks --------------------------------------------------------

    def _row_lock(self, key: EntityKey) -> threading.Lock:
        with self._mutex:
            lock = self._row_locks.get(key)
            if lock is None:
                lock = self._row_locks[key] = threading.Lock()
            return lock

    def _acquire(self, key: EntityKey) -> None:
        if not self._row_lock(key).acquire(timeout=self._lock_timeout):
            raise StorageUnavailableError(
                "compare_and_set_status",
                f"timed out waiting for row lock on {key[0]}:{key[1]}",
            )

    # -- entities ---------------------------------------------------------

    def insert_entity(self, snapshot: EntitySnapshot) -> None:
        key = (snapshot.entity_type, snapshot.entity_id)
        with self._mutex:
            if key in self._entities:
                raise EntityAlreadyExistsError(*key)
            self._entities[key] = snapshot

    def read_entity(self, key: EntityKey) -> EntitySnapshot | None:
        txn = self.current
        if txn is not None and key in txn.status_writes:
            return txn.status_writes[key]
        with self._mutex:
            return self._entities.get(key)

    def compare_and_set(self, key: EntityKey, expected: WorkflowState, new: WorkflowState) -> bool:
        txn = self.current
        if txn is not None and key in txn.held:
            # Already locked by this transaction.
            return self._swap(txn, key, expected, new)

        self._acquire(key)
        try:
            swapped = self._swap(txn, key, expected, new)
        except BaseException:
            self._row_lock(key).release()
            raise
        if txn is not None and swapped:
            txn.held.add(key)
        else:
            self._row_lock(key).release()
        return swapped

    def _swap(
        self,
        txn: _Transaction | None,
        key: EntityKey,
        expected: WorkflowState,
        new: WorkflowState,
    ) -> bool:
        current = self.read_entity(key)
        if current is None or current.status != expected:
            return False
        updated = replace(current, status=new, version=current.version + 1)
        if txn is None:
            with self._mutex:
                self._entities[key] = updated
        else:
            txn.status_writes[key] = updated
        return True

    def entities(self) -> list[EntitySnapshot]:
        with self._mutex:
            committed = dict(self._entities)
        txn = self.current
        if txn is not None:
            committed.update(txn.status_writes)
        return [committed[key] for key in sorted(committed)]

    # -- audit --------------------------------------------------------------

    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        with self._mutex:
            stored = entry.with_seq(next(self._seq))
            txn = self.current
            if txn is None:
                self._entries.append(stored)
        if txn is not None:
            txn.entries.append(stored)
        return stored

    def committed_entries(self) -> list[AuditEntry]:
        with self._mutex:
            return list(self._entries)

    def visible_entries(self) -> list[AuditEntry]:
        txn = self.current
        staged = txn.entries if txn is not None else []
        return self.committed_entries() + staged


class InMemoryEntityStore:
    """Entity status store over an ``InMemoryDatabase``."""

    def __init__(self, database: InMemoryDatabase | None = None) -> None:
        self.database = database or InMemoryDatabase()

    def create_entity(
        self,
        entity_type: str,
        entity_id: str,
        organization_id: str | None = None,
        initial_state: WorkflowState = DEFAULT_INITIAL_STATE,
    ) -> EntitySnapshot:
        """Register an entity.  Not a transition: commits immediately."""
        snapshot = EntitySnapshot(
            entity_type=entity_type,
            entity_id=entity_id,
            status=initial_state,
            initial_status=initial_state,
            version=1,
            organization_id=organization_id,
        )
        self.database.insert_entity(snapshot)
        return snapshot

    def snapshot(self, entity_type: str, entity_id: str) -> EntitySnapshot:
        found = self.database.read_entity((entity_type, entity_id))
        if found is None:
            raise EntityNotFoundError(entity_type, entity_id)
        return found

    def get_status(self, entity_type: str, entity_id: str) -> WorkflowState:
        return self.snapshot(entity_type, entity_id).status

    def compare_and_set_status(
        self,
        entity_type: str,
        entity_id: str,
        expected: WorkflowState,
        new: WorkflowState,
    ) -> bool:
        return self.database.compare_and_set((entity_type, entity_id), expected, new)

    def iter_entities(self, entity_type: str | None = None) -> Iterator[EntitySnapshot]:
        for snapshot in self.database.entities():
            if entity_type is None or snapshot.entity_type == entity_type:
                yield snapshot


class InMemoryAuditSink:
    """Append-only audit sink over an ``InMemoryDatabase``."""

    def __init__(self, database: InMemoryDatabase | None = None) -> None:
        self.database = database or InMemoryDatabase()

    def append(self, entry: AuditEntry) -> AuditEntry:
        return self.database.append_entry(entry)

    def entries_for(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        return ordered(
            e for e in self.database.visible_entries()
            if e.entity_type == entity_type and e.entity_id == entity_id
        )

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        """All committed entries in commit order."""
        return tuple(self.database.committed_entries())

    def __len__(self) -> int:
        return len(self.database.committed_entries())


class InMemoryUnitOfWork:
    """Per-thread transaction over an ``InMemoryDatabase``."""

    def __init__(self, database: InMemoryDatabase) -> None:
        self.database = database

    def begin(self) -> None:
        self.database.begin()

    def commit(self) -> None:
        self.database.commit()

    def rollback(self) -> None:
        self.database.rollback()
