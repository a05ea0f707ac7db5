"""
workflow_services.history_reconciliation -- Stored status vs. audit replay.

Responsibility:
    Rebuilds each entity's status by replaying its successful audit
    entries from the entity's initial status, and compares the result
    with the stored status.  A mismatch means a status write happened
    outside WorkflowService or an audit entry was lost.

Architecture position:
    Services layer.  Read-only; never writes status or audit rows.

Failure modes:
    - A broken chain (HistoryReplayError) is reported in the result,
      not raised, so one bad entity does not stop a full sweep.
    - EntityNotFoundError / StorageUnavailableError propagate.

Audit relevance:
    Gives auditors a mechanical check that the status column is nothing
    more than a cache of the last successful transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Protocol

from workflow_kernel.domain.audit import replay_status
from workflow_kernel.domain.ports import AuditSink, EntitySnapshot
from workflow_kernel.exceptions import HistoryReplayError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.audit_recorder import AuditRecorder

logger = get_logger("services.history_reconciliation")


class SnapshotStore(Protocol):
    """Entity store that can enumerate and snapshot its entities."""

    def snapshot(self, entity_type: str, entity_id: str) -> EntitySnapshot:
        ...

    def iter_entities(self, entity_type: str | None = None) -> Iterator[EntitySnapshot]:
        ...


@dataclass(frozen=True)
class ReconciliationResult:
    entity_type: str
    entity_id: str
    stored_status: str
    replayed_status: str | None
    entry_count: int
    replay_error: HistoryReplayError | None = None

    @property
    def is_consistent(self) -> bool:
        return self.replay_error is None and self.stored_status == self.replayed_status


class HistoryReconciliationService:
    """Compares stored entity status with the status replayed from history."""

    def __init__(self, entity_store: SnapshotStore, audit_sink: AuditSink):
        self._store = entity_store
        self._recorder = AuditRecorder(audit_sink)

    def reconcile(self, entity_type: str, entity_id: str) -> ReconciliationResult:
        snapshot = self._store.snapshot(entity_type, entity_id)
        return self._reconcile_snapshot(snapshot)

    def reconcile_all(self, entity_type: str | None = None) -> list[ReconciliationResult]:
        results = [
            self._reconcile_snapshot(snapshot)
            for snapshot in self._store.iter_entities(entity_type)
        ]
        inconsistent = sum(1 for r in results if not r.is_consistent)
        logger.info(
            "reconciliation_completed",
            extra={
                "entity_type": entity_type,
                "checked": len(results),
                "inconsistent": inconsistent,
            },
        )
        return results

    def _reconcile_snapshot(self, snapshot: EntitySnapshot) -> ReconciliationResult:
        entries = self._recorder.history(snapshot.entity_type, snapshot.entity_id)
        try:
            replayed = replay_status(entries, snapshot.initial_status)
        except HistoryReplayError as exc:
            logger.warning(
                "history_replay_failed",
                extra={
                    "entity_type": snapshot.entity_type,
                    "entity_id": snapshot.entity_id,
                    "seq": exc.seq,
                    "expected_from": exc.expected_from,
                    "found_from": exc.found_from,
                },
            )
            return ReconciliationResult(
                entity_type=snapshot.entity_type,
                entity_id=snapshot.entity_id,
                stored_status=snapshot.status,
                replayed_status=None,
                entry_count=len(entries),
                replay_error=exc,
            )

        result = ReconciliationResult(
            entity_type=snapshot.entity_type,
            entity_id=snapshot.entity_id,
            stored_status=snapshot.status,
            replayed_status=replayed,
            entry_count=len(entries),
        )
        if not result.is_consistent:
            logger.warning(
                "status_history_mismatch",
                extra={
                    "entity_type": snapshot.entity_type,
                    "entity_id": snapshot.entity_id,
                    "stored_status": snapshot.status,
                    "replayed_status": replayed,
                },
            )
        return result
