"""
AuditRecorder -- the single write path into the transition audit trail.

Responsibility:
    Appends one ``AuditEntry`` per transition attempt to an ``AuditSink``
    and reads an entity's history back in replay order.

Architecture position:
    Kernel > Services -- called by WorkflowService for every transition,
    successful or rejected, and by HistoryReconciliationService for reads.

Invariants enforced:
    - Append-only: no update or delete method exists.
    - Storage failures propagate as StorageUnavailableError; they are
      logged here and never swallowed.

Audit relevance:
    Rejected attempts (undefined edges, role failures, missing comments,
    concurrent modifications) are recorded alongside successes so misuse
    of a permission is visible after the fact.
"""

from __future__ import annotations

from workflow_kernel.domain.audit import AuditEntry, ordered
from workflow_kernel.domain.ports import AuditSink
from workflow_kernel.exceptions import StorageUnavailableError
from workflow_kernel.logging_config import get_logger

logger = get_logger("services.audit_recorder")


class AuditRecorder:
    """Records transition attempts through an AuditSink."""

    def __init__(self, sink: AuditSink):
        self._sink = sink

    def record(self, entry: AuditEntry) -> AuditEntry:
        """Append ``entry`` and return it with its sequence number."""
        try:
            stored = self._sink.append(entry)
        except StorageUnavailableError:
            logger.error(
                "audit_append_failed",
                extra={
                    "entity_type": entry.entity_type,
                    "entity_id": entry.entity_id,
                    "from_state": entry.from_state,
                    "to_state": entry.to_state,
                    "outcome": entry.outcome.value,
                },
            )
            raise

        logger.debug(
            "audit_entry_recorded",
            extra={
                "seq": stored.seq,
                "entity_type": stored.entity_type,
                "entity_id": stored.entity_id,
                "outcome": stored.outcome.value,
                "timestamp": stored.timestamp,
                "rejection_reason": stored.rejection_reason,
            },
        )
        return stored

    def history(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        """All entries for one entity, ordered by (timestamp, seq)."""
        return ordered(self._sink.entries_for(entity_type, entity_id))
