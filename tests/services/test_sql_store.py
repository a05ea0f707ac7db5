"""
SQL adapters and WorkflowService over a real database session.

Runs against in-memory SQLite by default (DATABASE_URL overrides).
"""

from datetime import UTC, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import StatementError

from workflow_kernel.db.engine import get_session
from workflow_kernel.domain import voucher
from workflow_kernel.domain.audit import AuditEntry, AuditOutcome, replay_status
from workflow_kernel.domain.workflow import Actor
from workflow_kernel.exceptions import (
    ConcurrentModificationError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ImmutabilityViolationError,
    RoleNotPermittedError,
)
from workflow_kernel.models import GovernedEntityModel, StatusHistoryModel
from workflow_kernel.services import SessionUnitOfWork, SqlAuditSink, SqlEntityStore
from workflow_services import WorkflowService

VOUCHER = voucher.VOUCHER_ENTITY_TYPE


class TestSqlEntityStore:

    def test_create_and_read(self, session, sql_store):
        snapshot = sql_store.create_entity(VOUCHER, "10", organization_id="org-1")
        session.commit()

        assert snapshot.status == "draft"
        assert snapshot.initial_status == "draft"
        assert snapshot.version == 1
        assert sql_store.get_status(VOUCHER, "10") == "draft"

    def test_custom_initial_state(self, session, sql_store):
        sql_store.create_entity(VOUCHER, "11", initial_state="pending_approval")
        assert sql_store.snapshot(VOUCHER, "11").initial_status == "pending_approval"

    def test_duplicate_rejected(self, session, sql_store):
        sql_store.create_entity(VOUCHER, "10")
        with pytest.raises(EntityAlreadyExistsError):
            sql_store.create_entity(VOUCHER, "10")

    def test_same_id_different_type(self, session, sql_store):
        sql_store.create_entity(VOUCHER, "10")
        sql_store.create_entity("budget_entry", "10")
        assert len(list(sql_store.iter_entities())) == 2
        assert len(list(sql_store.iter_entities("budget_entry"))) == 1

    def test_missing_entity(self, sql_store):
        with pytest.raises(EntityNotFoundError):
            sql_store.get_status(VOUCHER, "nope")

    def test_compare_and_set(self, session, sql_store):
        sql_store.create_entity(VOUCHER, "10")

        assert sql_store.compare_and_set_status(VOUCHER, "10", "draft", "pending_approval")
        assert not sql_store.compare_and_set_status(VOUCHER, "10", "draft", "cancelled")

        snapshot = sql_store.snapshot(VOUCHER, "10")
        assert snapshot.status == "pending_approval"
        assert snapshot.version == 2

    def test_compare_and_set_missing_entity(self, sql_store):
        assert not sql_store.compare_and_set_status(VOUCHER, "nope", "draft", "pending_approval")

    def test_write_visible_to_other_session_after_commit(self, session, sql_store):
        sql_store.create_entity(VOUCHER, "10")
        sql_store.compare_and_set_status(VOUCHER, "10", "draft", "pending_approval")
        session.commit()

        other = get_session()
        try:
            assert SqlEntityStore(other).get_status(VOUCHER, "10") == "pending_approval"
        finally:
            other.close()


class TestSqlAuditSink:

    def _entry(self, ts, outcome="success"):
        actor = Actor("u1", "admin", "org-1")
        if outcome == "success":
            return AuditEntry.success(VOUCHER, "10", "draft", "pending_approval", actor, ts, "note")
        return AuditEntry.rejected(
            VOUCHER, "10", "draft", "posted", actor, ts,
            error=RoleNotPermittedError("admin", "draft", "posted", ("accountant",)),
        )

    def test_append_assigns_increasing_seq(self, session, sql_sink):
        ts = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
        first = sql_sink.append(self._entry(ts))
        second = sql_sink.append(self._entry(ts, "rejected"))
        assert first.seq is not None
        assert second.seq > first.seq

    def test_round_trip_preserves_fields(self, session, sql_sink):
        ts = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
        sql_sink.append(self._entry(ts))
        sql_sink.append(self._entry(ts, "rejected"))
        session.commit()

        success, rejected = sql_sink.entries_for(VOUCHER, "10")
        assert success.outcome is AuditOutcome.SUCCESS
        assert success.comment == "note"
        assert success.organization_id == "org-1"
        assert success.timestamp == ts
        assert success.timestamp.tzinfo is not None
        assert rejected.rejection_reason == "ROLE_NOT_PERMITTED"

    def test_naive_timestamp_rejected(self, session, sql_sink):
        entry = AuditEntry.success(
            VOUCHER, "10", "draft", "pending_approval", Actor("u1", "admin"),
            datetime(2024, 5, 1, 8, 0),
        )
        with pytest.raises((StatementError, ValueError)):
            sql_sink.append(entry)


class TestStatusHistoryImmutability:

    def _stored_row(self, session, sql_sink):
        sql_sink.append(
            AuditEntry.success(
                VOUCHER, "10", "draft", "pending_approval", Actor("u1", "admin"),
                datetime(2024, 5, 1, tzinfo=UTC),
            )
        )
        session.commit()
        return session.execute(select(StatusHistoryModel)).scalar_one()

    def test_update_blocked(self, session, sql_sink):
        row = self._stored_row(session, sql_sink)
        row.to_state = "posted"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, sql_sink):
        row = self._stored_row(session, sql_sink)
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestSqlWorkflowService:

    def test_transition_commits_status_and_audit(self, session, sql_store, sql_service, preparer):
        sql_store.create_entity(VOUCHER, "20")
        session.commit()

        result = sql_service.transition(VOUCHER, "20", "draft", "pending_approval", preparer)
        assert result.success
        assert result.audit_entry.seq is not None

        other = get_session()
        try:
            assert SqlEntityStore(other).get_status(VOUCHER, "20") == "pending_approval"
            history = SqlAuditSink(other).entries_for(VOUCHER, "20")
            assert [e.to_state for e in history] == ["pending_approval"]
        finally:
            other.close()

    def test_rejection_committed_without_status_change(self, session, sql_store, sql_service, preparer):
        sql_store.create_entity(VOUCHER, "21")
        session.commit()

        result = sql_service.transition(VOUCHER, "21", "draft", "approved", preparer)

        assert not result.success
        assert sql_store.get_status(VOUCHER, "21") == "draft"
        rows = session.execute(select(StatusHistoryModel)).scalars().all()
        assert [r.rejection_reason for r in rows] == ["UNDEFINED_TRANSITION"]

    def test_second_session_with_stale_state_loses(
        self, session, session_factory, sql_store, deterministic_clock, spending_authority
    ):
        sql_store.create_entity(VOUCHER, "22", initial_state="pending_approval")
        session.commit()

        def _service(sess):
            return WorkflowService(
                [voucher.VOUCHER_REGISTRY],
                SqlEntityStore(sess),
                SqlAuditSink(sess),
                clock=deterministic_clock,
                unit_of_work=SessionUnitOfWork(sess),
            )

        sess_a = session_factory()
        sess_b = session_factory()
        try:
            # Both callers read pending_approval before either writes.
            a = _service(sess_a).transition(
                VOUCHER, "22", "pending_approval", "approved", spending_authority
            )
            b = _service(sess_b).transition(
                VOUCHER, "22", "pending_approval", "cancelled", spending_authority,
                comment="duplicate",
            )
        finally:
            sess_a.close()
            sess_b.close()

        assert a.success
        assert isinstance(b.error, ConcurrentModificationError)
        assert b.error.actual_state == "approved"
        assert sql_store.get_status(VOUCHER, "22") == "approved"

        history = SqlAuditSink(session).entries_for(VOUCHER, "22")
        assert len(history) == 2
        assert replay_status(history, "pending_approval") == "approved"

    def test_version_bumps_per_successful_transition(self, session, sql_store, sql_service, admin):
        sql_store.create_entity(VOUCHER, "23")
        session.commit()

        sql_service.transition(VOUCHER, "23", "draft", "pending_approval", admin)
        sql_service.transition(VOUCHER, "23", "pending_approval", "posted", admin)
        sql_service.transition(VOUCHER, "23", "pending_approval", "approved", admin)

        row = session.execute(
            select(GovernedEntityModel).where(GovernedEntityModel.entity_id == "23")
        ).scalar_one()
        session.refresh(row)
        assert row.status == "approved"
        assert row.version == 3
