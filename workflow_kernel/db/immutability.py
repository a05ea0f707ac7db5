"""
ORM-Level Immutability Enforcement for the status history.

===============================================================================
WHY THIS EXISTS
===============================================================================

The status history is the forensic record of every transition attempt,
including rejected ones.  Once written, an entry must never change:
replaying the history must reproduce each entity's current status, and a
rejected authorization attempt must stay visible.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below intercept them for ``StatusHistoryModel``:

    session.flush()
         |
         v
    [before_update] --> _check_status_history_update() --> ImmutabilityViolationError
    [before_delete] --> _check_status_history_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update()``/``delete()`` statements bypass mapper events; the kernel
issues none against ``status_history``.

===============================================================================
USAGE
===============================================================================

    from workflow_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from workflow_kernel.exceptions import ImmutabilityViolationError
from workflow_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_status_history_update(mapper, connection, target):
    """Prevent any updates to status history rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "table": "status_history",
            "seq": target.seq,
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StatusHistory",
        entity_id=str(target.seq),
        reason="Status history entries are immutable and cannot be modified",
    )


def _check_status_history_delete(mapper, connection, target):
    """Prevent deletion of status history rows."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "table": "status_history",
            "seq": target.seq,
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StatusHistory",
        entity_id=str(target.seq),
        reason="Status history entries cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register the append-only listeners on the status history model.

    Idempotent: already-registered listeners are left in place.
    """
    from workflow_kernel.models.status_history import StatusHistoryModel

    if not event.contains(StatusHistoryModel, "before_update", _check_status_history_update):
        event.listen(StatusHistoryModel, "before_update", _check_status_history_update)
    if not event.contains(StatusHistoryModel, "before_delete", _check_status_history_delete):
        event.listen(StatusHistoryModel, "before_delete", _check_status_history_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that must bypass the guard.
    """
    from workflow_kernel.models.status_history import StatusHistoryModel

    _safe_remove_listener(StatusHistoryModel, "before_update", _check_status_history_update)
    _safe_remove_listener(StatusHistoryModel, "before_delete", _check_status_history_delete)
