"""Store adapters and the audit recorder."""

from workflow_kernel.services.audit_recorder import AuditRecorder
from workflow_kernel.services.memory_store import (
    InMemoryAuditSink,
    InMemoryDatabase,
    InMemoryEntityStore,
    InMemoryUnitOfWork,
)
from workflow_kernel.services.sql_store import (
    SessionUnitOfWork,
    SqlAuditSink,
    SqlEntityStore,
)

__all__ = [
    "AuditRecorder",
    "InMemoryAuditSink",
    "InMemoryDatabase",
    "InMemoryEntityStore",
    "InMemoryUnitOfWork",
    "SessionUnitOfWork",
    "SqlAuditSink",
    "SqlEntityStore",
]
