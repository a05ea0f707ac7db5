"""Pure domain types and engines for the workflow kernel."""

from workflow_kernel.domain.audit import AuditEntry, AuditOutcome, replay_status
from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.guard import GuardEngine, GuardResult
from workflow_kernel.domain.ports import AuditSink, EntityStore, UnitOfWork
from workflow_kernel.domain.registry import TransitionRegistry
from workflow_kernel.domain.workflow import (
    DEFAULT_INITIAL_STATE,
    Actor,
    TransitionResult,
    TransitionRule,
)

__all__ = [
    "Actor",
    "AuditEntry",
    "AuditOutcome",
    "AuditSink",
    "Clock",
    "DEFAULT_INITIAL_STATE",
    "DeterministicClock",
    "EntityStore",
    "GuardEngine",
    "GuardResult",
    "SystemClock",
    "TransitionRegistry",
    "TransitionResult",
    "TransitionRule",
    "UnitOfWork",
    "replay_status",
]
