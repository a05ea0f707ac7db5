"""ORM models for the workflow kernel."""

from workflow_kernel.models.governed_entity import GovernedEntityModel
from workflow_kernel.models.status_history import StatusHistoryModel

__all__ = [
    "GovernedEntityModel",
    "StatusHistoryModel",
]
