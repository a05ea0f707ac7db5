"""
Pytest fixtures for the workflow kernel test suite.

Provides:
- Structured logging setup and log capture
- A fresh database per test (SQLite in-memory by default)
- In-memory stores and a deterministic clock
- Voucher actors and a ready-made WorkflowService

Environment Variables:
- DATABASE_URL: connection URL for the SQL-backed tests.  Defaults to an
  in-memory SQLite database; point it at PostgreSQL to run the same tests
  against a real server.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from workflow_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from workflow_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from workflow_kernel.domain import voucher
from workflow_kernel.domain.clock import DeterministicClock
from workflow_kernel.domain.workflow import Actor
from workflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workflow_kernel.services import (
    InMemoryAuditSink,
    InMemoryDatabase,
    InMemoryEntityStore,
    InMemoryUnitOfWork,
    SessionUnitOfWork,
    SqlAuditSink,
    SqlEntityStore,
)
from workflow_services import WorkflowService

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture workflow_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.transition(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workflow_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Database fixtures (fresh schema per test)
# =============================================================================


@pytest.fixture
def db_engine():
    eng = init_engine_from_url(get_database_url(), echo=False)
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def sql_store(session) -> SqlEntityStore:
    return SqlEntityStore(session)


@pytest.fixture
def sql_sink(session) -> SqlAuditSink:
    return SqlAuditSink(session)


@pytest.fixture
def sql_service(session, sql_store, sql_sink, deterministic_clock) -> WorkflowService:
    """WorkflowService over the SQL adapters, committing per transition."""
    return WorkflowService(
        [voucher.VOUCHER_REGISTRY],
        sql_store,
        sql_sink,
        clock=deterministic_clock,
        unit_of_work=SessionUnitOfWork(session),
    )


# =============================================================================
# In-memory fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(auto_tick=True)


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def memory_store(memory_db) -> InMemoryEntityStore:
    return InMemoryEntityStore(memory_db)


@pytest.fixture
def memory_sink(memory_db) -> InMemoryAuditSink:
    return InMemoryAuditSink(memory_db)


@pytest.fixture
def memory_uow(memory_db) -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork(memory_db)


@pytest.fixture
def service(memory_store, memory_sink, memory_uow, deterministic_clock) -> WorkflowService:
    """WorkflowService over the in-memory adapters, one transaction per call."""
    return WorkflowService(
        [voucher.VOUCHER_REGISTRY],
        memory_store,
        memory_sink,
        clock=deterministic_clock,
        unit_of_work=memory_uow,
    )


@pytest.fixture
def voucher_id(memory_store) -> str:
    memory_store.create_entity(voucher.VOUCHER_ENTITY_TYPE, "1", organization_id="org-1")
    return "1"


# =============================================================================
# Actors
# =============================================================================


def make_actor(role: str, actor_id: str | None = None) -> Actor:
    return Actor(id=actor_id or f"user-{role}", role=role, organization_id="org-1")


@pytest.fixture
def preparer() -> Actor:
    return make_actor(voucher.PREPARER)


@pytest.fixture
def spending_authority() -> Actor:
    return make_actor(voucher.SPENDING_AUTHORITY)


@pytest.fixture
def realization_officer() -> Actor:
    return make_actor(voucher.REALIZATION_OFFICER)


@pytest.fixture
def accountant() -> Actor:
    return make_actor(voucher.ACCOUNTANT)


@pytest.fixture
def admin() -> Actor:
    return make_actor(voucher.ADMIN)
