"""
SQL store adapters -- SQLAlchemy implementations of the storage ports.

Responsibility:
    ``SqlEntityStore`` reads entity status and performs the conditional
    status write.  ``SqlAuditSink`` appends status history rows.
    ``SessionUnitOfWork`` commits or rolls back the shared session.

Architecture position:
    Kernel > Services -- imperative shell.  All three adapters share one
    Session per request, so a status write and its audit row commit as a
    single transaction.

Invariants enforced:
    - The status write is ``UPDATE ... WHERE entity_type=:t AND
      entity_id=:i AND status=:expected``; it succeeds iff exactly one row
      changed.  This is the only concurrency control: no SELECT FOR UPDATE,
      no cross-entity locks.
    - Status history rows are only ever INSERTed.

Failure modes:
    - StorageUnavailableError wraps every SQLAlchemy OperationalError /
      DBAPIError raised while talking to the database.
    - EntityNotFoundError from get_status / snapshot for unknown keys.
    - EntityAlreadyExistsError from create_entity on a duplicate key.

Non-goals:
    - Adapters never call ``session.commit()``; the unit of work (or the
      caller) controls boundaries.
"""

from __future__ import annotations

from typing import Iterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from workflow_kernel.domain.audit import AuditEntry
from workflow_kernel.domain.ports import EntitySnapshot
from workflow_kernel.domain.workflow import DEFAULT_INITIAL_STATE, WorkflowState
from workflow_kernel.exceptions import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    StorageUnavailableError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.governed_entity import GovernedEntityModel
from workflow_kernel.models.status_history import StatusHistoryModel

logger = get_logger("services.sql_store")


def _storage_error(operation: str, exc: Exception) -> StorageUnavailableError:
    logger.error(
        "storage_unavailable",
        extra={"operation": operation, "error": str(exc)},
    )
    return StorageUnavailableError(operation, str(exc))


def _to_snapshot(row: GovernedEntityModel) -> EntitySnapshot:
    return EntitySnapshot(
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        status=row.status,
        initial_status=row.initial_status,
        version=row.version,
        organization_id=row.organization_id,
    )


class SqlEntityStore:
    """Entity status store backed by the ``governed_entities`` table."""

    def __init__(self, session: Session):
        self._session = session

    def create_entity(
        self,
        entity_type: str,
        entity_id: str,
        organization_id: str | None = None,
        initial_state: WorkflowState = DEFAULT_INITIAL_STATE,
    ) -> EntitySnapshot:
        """Register a governed entity in its initial state.

        Not a transition: no audit entry is written.  A duplicate key that
        slips past the existence check (concurrent insert) surfaces as
        EntityAlreadyExistsError and leaves the session needing rollback.
        """
        try:
            exists = self._session.execute(
                select(GovernedEntityModel.id).where(
                    GovernedEntityModel.entity_type == entity_type,
                    GovernedEntityModel.entity_id == entity_id,
                )
            ).first()
        except DBAPIError as exc:
            raise _storage_error("create_entity", exc) from exc
        if exists is not None:
            raise EntityAlreadyExistsError(entity_type, entity_id)

        row = GovernedEntityModel(
            entity_type=entity_type,
            entity_id=entity_id,
            organization_id=organization_id,
            status=initial_state,
            initial_status=initial_state,
            version=1,
        )
        try:
            self._session.add(row)
            self._session.flush()
        except IntegrityError as exc:
            raise EntityAlreadyExistsError(entity_type, entity_id) from exc
        except DBAPIError as exc:
            raise _storage_error("create_entity", exc) from exc

        logger.debug(
            "entity_registered",
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "status": initial_state,
            },
        )
        return _to_snapshot(row)

    def get_status(self, entity_type: str, entity_id: str) -> WorkflowState:
        return self.snapshot(entity_type, entity_id).status

    def snapshot(self, entity_type: str, entity_id: str) -> EntitySnapshot:
        try:
            row = self._session.execute(
                select(GovernedEntityModel).where(
                    GovernedEntityModel.entity_type == entity_type,
                    GovernedEntityModel.entity_id == entity_id,
                ).execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except DBAPIError as exc:
            raise _storage_error("get_status", exc) from exc

        if row is None:
            raise EntityNotFoundError(entity_type, entity_id)
        return _to_snapshot(row)

    def compare_and_set_status(
        self,
        entity_type: str,
        entity_id: str,
        expected: WorkflowState,
        new: WorkflowState,
    ) -> bool:
        stmt = (
            update(GovernedEntityModel)
            .where(
                GovernedEntityModel.entity_type == entity_type,
                GovernedEntityModel.entity_id == entity_id,
                GovernedEntityModel.status == expected,
            )
            .values(
                status=new,
                version=GovernedEntityModel.version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self._session.execute(stmt)
        except DBAPIError as exc:
            raise _storage_error("compare_and_set_status", exc) from exc

        if result.rowcount != 1:
            logger.debug(
                "compare_and_set_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "expected": expected,
                    "new": new,
                },
            )
            return False
        return True

    def iter_entities(self, entity_type: str | None = None) -> Iterator[EntitySnapshot]:
        stmt = (
            select(GovernedEntityModel)
            .order_by(GovernedEntityModel.entity_type, GovernedEntityModel.entity_id)
            .execution_options(populate_existing=True)
        )
        if entity_type is not None:
            stmt = stmt.where(GovernedEntityModel.entity_type == entity_type)
        try:
            rows = self._session.execute(stmt).scalars().all()
        except DBAPIError as exc:
            raise _storage_error("iter_entities", exc) from exc
        for row in rows:
            yield _to_snapshot(row)


class SqlAuditSink:
    """Append-only audit sink backed by the ``status_history`` table."""

    def __init__(self, session: Session):
        self._session = session

    def append(self, entry: AuditEntry) -> AuditEntry:
        row = StatusHistoryModel.from_entry(entry)
        try:
            self._session.add(row)
            self._session.flush()
        except DBAPIError as exc:
            raise _storage_error("audit_append", exc) from exc
        return entry.with_seq(row.seq)

    def entries_for(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        try:
            rows = self._session.execute(
                select(StatusHistoryModel)
                .where(
                    StatusHistoryModel.entity_type == entity_type,
                    StatusHistoryModel.entity_id == entity_id,
                )
                .order_by(StatusHistoryModel.occurred_at, StatusHistoryModel.seq)
            ).scalars().all()
        except DBAPIError as exc:
            raise _storage_error("audit_read", exc) from exc
        return [row.to_entry() for row in rows]


class SessionUnitOfWork:
    """Commits the status write and its audit row as one transaction."""

    def __init__(self, session: Session):
        self._session = session

    def begin(self) -> None:
        """No-op: the session begins a transaction on first use."""

    def commit(self) -> None:
        try:
            self._session.commit()
        except DBAPIError as exc:
            self._session.rollback()
            raise _storage_error("commit", exc) from exc

    def rollback(self) -> None:
        self._session.rollback()
