"""Workflow services: transition execution and history reconciliation."""

from workflow_services.history_reconciliation import (
    HistoryReconciliationService,
    ReconciliationResult,
)
from workflow_services.workflow_service import WorkflowService

__all__ = [
    "HistoryReconciliationService",
    "ReconciliationResult",
    "WorkflowService",
]
