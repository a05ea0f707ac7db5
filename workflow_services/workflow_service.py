"""
workflow_services.workflow_service -- Entity status transition execution.

Responsibility:
    The only public entry points for changing a governed entity's status.
    Looks up the rule, evaluates the guard, performs the conditional status
    write and records exactly one audit entry per call.  Thin coordinator:
    rule lookup is delegated to TransitionRegistry, authorization to
    GuardEngine, persistence to the EntityStore port, the audit trail to
    AuditRecorder.

Architecture position:
    Services layer.  May import from workflow_kernel/ (domain, services,
    exceptions, logging).

Invariants enforced:
    - One audit entry per ``transition`` call, success or rejection.
    - No state mutation on any rejection.
    - With a unit of work, each call runs in one transaction: the
      conditional write, the audit timestamp and the audit append commit
      together, and the write holds the entity's row until commit or
      rollback.  No other transition of that entity can observe or build
      on the new status before its audit entry is committed.
    - Without a unit of work, success is reported after the audit append
      succeeded.  If the append fails, the status write is compensated
      (target -> current) before the error propagates.  This is best
      effort: another writer may already have moved the entity on, which
      is logged as ``transition_compensation_conflict``.
    - The conditional write is the sole concurrency control; calls for
      different entities share no locks.

Failure modes:
    - Returned (TransitionResult.error): UndefinedTransitionError,
      RoleNotPermittedError, CommentRequiredError,
      ConcurrentModificationError.
    - Raised: StorageUnavailableError (nothing committed),
      UnknownEntityTypeError (no registry configured).
"""

from __future__ import annotations

import time
from typing import Any, Iterable, Mapping

from workflow_kernel.domain.audit import AuditEntry
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.guard import GuardEngine
from workflow_kernel.domain.ports import AuditSink, EntityStore, UnitOfWork
from workflow_kernel.domain.registry import TransitionRegistry
from workflow_kernel.domain.workflow import Actor, TransitionResult, WorkflowState
from workflow_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    RegistryError,
    StorageUnavailableError,
    TransitionError,
    UnknownEntityTypeError,
)
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.audit_recorder import AuditRecorder

logger = get_logger("services.workflow_service")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_REJECTED = "rejected"


def _emit_workflow_trace(
    entity_type: str,
    entity_id: str,
    from_state: str,
    to_state: str,
    actor: Actor,
    outcome: str,
    duration_ms: float,
    reason_code: str | None = None,
    reason: str = "",
    action: str | None = None,
    seq: int | None = None,
) -> None:
    """Emit a structured workflow transition record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "from_state": from_state,
        "to_state": to_state,
        "actor_role": actor.role,
        "outcome": outcome,
        "duration_ms": round(duration_ms, 3),
    }
    if action is not None:
        record["action"] = action
    if reason_code is not None:
        record["reason_code"] = reason_code
        record["reason"] = reason
    if seq is not None:
        record["audit_seq"] = seq
    if outcome == OUTCOME_SUCCESS:
        logger.info("workflow_transition", extra=record)
    else:
        logger.warning("workflow_transition", extra=record)


def _index_registries(
    registries: Mapping[str, TransitionRegistry] | Iterable[TransitionRegistry],
) -> dict[str, TransitionRegistry]:
    if isinstance(registries, Mapping):
        return dict(registries)
    indexed: dict[str, TransitionRegistry] = {}
    for registry in registries:
        if registry.entity_type in indexed:
            raise RegistryError(
                f"Two registries supplied for entity type '{registry.entity_type}'"
            )
        indexed[registry.entity_type] = registry
    return indexed


class WorkflowService:
    """Executes status transitions for governed entities.

    One registry per entity type, fixed at construction.  The service holds
    no per-call state; with in-memory adapters one instance can serve any
    number of threads.  SQL adapters are bound to a Session, so build one
    service per request/session.
    """

    def __init__(
        self,
        registries: Mapping[str, TransitionRegistry] | Iterable[TransitionRegistry],
        entity_store: EntityStore,
        audit_sink: AuditSink,
        clock: Clock | None = None,
        guard_engine: GuardEngine | None = None,
        unit_of_work: UnitOfWork | None = None,
    ) -> None:
        self._registries = _index_registries(registries)
        self._store = entity_store
        self._recorder = AuditRecorder(audit_sink)
        self._clock = clock or SystemClock()
        self._guard = guard_engine or GuardEngine()
        self._uow = unit_of_work

    @property
    def entity_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._registries))

    def registry_for(self, entity_type: str) -> TransitionRegistry:
        registry = self._registries.get(entity_type)
        if registry is None:
            raise UnknownEntityTypeError(entity_type)
        return registry

    def available_transitions(
        self,
        entity_type: str,
        current_state: WorkflowState,
        actor: Actor,
    ) -> list[WorkflowState]:
        """Target states ``actor`` may move to from ``current_state``.

        Pure query: no audit entry.  The comment requirement is ignored
        since the comment is only supplied at execution time.
        """
        registry = self.registry_for(entity_type)
        return self._guard.allowed_targets(registry, current_state, actor)

    def transition(
        self,
        entity_type: str,
        entity_id: str,
        current_state: WorkflowState,
        target_state: WorkflowState,
        actor: Actor,
        comment: str | None = None,
    ) -> TransitionResult:
        """Move an entity from ``current_state`` to ``target_state``.

        ``current_state`` is the status the caller last read; the write only
        applies if the stored status still equals it.
        """
        t0 = time.monotonic()
        entity_id = str(entity_id)
        registry = self.registry_for(entity_type)
        self._begin()

        with LogContext.bind(
            actor_id=actor.id,
            organization_id=actor.organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
        ):
            # 1. Rule lookup + guard
            rule = registry.rule_for(current_state, target_state)
            guard = self._guard.evaluate(
                rule,
                actor,
                comment,
                from_state=current_state,
                to_state=target_state,
            )
            if not guard.passed:
                assert guard.error is not None
                return self._reject(
                    entity_type, entity_id, current_state, target_state,
                    actor, comment, guard.error, t0,
                )

            # 2. Conditional write
            try:
                swapped = self._store.compare_and_set_status(
                    entity_type, entity_id, current_state, target_state
                )
            except StorageUnavailableError:
                self._rollback()
                raise

            if not swapped:
                error = ConcurrentModificationError(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    expected_state=current_state,
                    actual_state=self._read_status(entity_type, entity_id),
                )
                return self._reject(
                    entity_type, entity_id, current_state, target_state,
                    actor, comment, error, t0,
                )

            # 3. Audit + commit as one unit
            entry = AuditEntry.success(
                entity_type=entity_type,
                entity_id=entity_id,
                from_state=current_state,
                to_state=target_state,
                actor=actor,
                timestamp=self._clock.now(),
                comment=comment,
            )
            try:
                stored = self._recorder.record(entry)
                self._commit()
            except StorageUnavailableError:
                self._undo_write(entity_type, entity_id, current_state, target_state)
                raise

            _emit_workflow_trace(
                entity_type=entity_type,
                entity_id=entity_id,
                from_state=current_state,
                to_state=target_state,
                actor=actor,
                outcome=OUTCOME_SUCCESS,
                duration_ms=(time.monotonic() - t0) * 1000,
                action=guard.rule.action if guard.rule is not None else None,
                seq=stored.seq,
            )
            return TransitionResult(
                success=True,
                new_state=target_state,
                audit_entry=stored,
            )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reject(
        self,
        entity_type: str,
        entity_id: str,
        from_state: WorkflowState,
        to_state: WorkflowState,
        actor: Actor,
        comment: str | None,
        error: TransitionError,
        t0: float,
    ) -> TransitionResult:
        entry = AuditEntry.rejected(
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            to_state=to_state,
            actor=actor,
            timestamp=self._clock.now(),
            error=error,
            comment=comment,
        )
        try:
            stored = self._recorder.record(entry)
            self._commit()
        except StorageUnavailableError:
            self._rollback()
            raise

        _emit_workflow_trace(
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            to_state=to_state,
            actor=actor,
            outcome=OUTCOME_REJECTED,
            duration_ms=(time.monotonic() - t0) * 1000,
            reason_code=error.code,
            reason=str(error),
            seq=stored.seq,
        )
        return TransitionResult(success=False, error=error, audit_entry=stored)

    def _read_status(self, entity_type: str, entity_id: str) -> WorkflowState | None:
        try:
            return self._store.get_status(entity_type, entity_id)
        except EntityNotFoundError:
            return None

    def _begin(self) -> None:
        if self._uow is not None:
            self._uow.begin()

    def _commit(self) -> None:
        if self._uow is not None:
            self._uow.commit()

    def _rollback(self) -> None:
        if self._uow is not None:
            self._uow.rollback()

    def _undo_write(
        self,
        entity_type: str,
        entity_id: str,
        current_state: WorkflowState,
        target_state: WorkflowState,
    ) -> None:
        """Discard a status write whose audit entry could not be stored."""
        if self._uow is not None:
            self._uow.rollback()
            return

        # No transaction to roll back: compensate.
        try:
            restored = self._store.compare_and_set_status(
                entity_type, entity_id, target_state, current_state
            )
        except StorageUnavailableError:
            logger.error(
                "transition_compensation_failed",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "from_state": current_state,
                    "to_state": target_state,
                },
                exc_info=True,
            )
            return

        if restored:
            logger.warning(
                "transition_compensated",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "restored_state": current_state,
                },
            )
        else:
            logger.error(
                "transition_compensation_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "expected_state": target_state,
                },
            )
