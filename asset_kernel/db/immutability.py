"""
ORM-level immutability enforcement (layer 1 of 2).

Layer 2 is the PostgreSQL trigger set installed by ``db/triggers.py``,
which also catches raw SQL and bulk statements.

Protected entities
------------------
Entity          | Immutable when                      | Operations blocked
----------------|-------------------------------------|-------------------
AuditLog        | always                              | UPDATE, DELETE
AssetMovement   | approval_status was already decided | UPDATE, DELETE
WorkOrder       | status was completed or cancelled   | UPDATE, DELETE

"Was" is read from the attribute history, so the deciding update itself
(pending -> approved, in_progress -> completed) passes.

Usage::

    register_immutability_listeners()    # once at startup
    unregister_immutability_listeners()  # tests only
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from asset_kernel.exceptions import ImmutabilityViolationError
from asset_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_DECIDED_APPROVALS = frozenset({"approved", "rejected"})
_CLOSED_WORK_ORDERS = frozenset({"completed", "cancelled"})


def _blocked(entity_type: str, target, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _previous_value(target, attribute: str):
    """Value the attribute had when loaded, before any pending change."""
    history = get_history(target, attribute)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, attribute)


def _check_audit_log_update(mapper, connection, target):
    raise _blocked("AuditLog", target, "UPDATE", "Audit log rows are append-only")


def _check_audit_log_delete(mapper, connection, target):
    raise _blocked("AuditLog", target, "DELETE", "Audit log rows are append-only")


def _check_movement_update(mapper, connection, target):
    if _previous_value(target, "approval_status") in _DECIDED_APPROVALS:
        raise _blocked(
            "AssetMovement", target, "UPDATE",
            "Movement has already been decided",
        )


def _check_movement_delete(mapper, connection, target):
    if _previous_value(target, "approval_status") in _DECIDED_APPROVALS:
        raise _blocked(
            "AssetMovement", target, "DELETE",
            "Decided movements are part of the asset's history",
        )


def _check_work_order_update(mapper, connection, target):
    if _previous_value(target, "status") in _CLOSED_WORK_ORDERS:
        raise _blocked(
            "WorkOrder", target, "UPDATE",
            "Completed or cancelled work orders are frozen",
        )


def _check_work_order_delete(mapper, connection, target):
    if _previous_value(target, "status") in _CLOSED_WORK_ORDERS:
        raise _blocked(
            "WorkOrder", target, "DELETE",
            "Completed or cancelled work orders are frozen",
        )


def _listeners():
    from asset_kernel.models import AssetMovement, AuditLog, WorkOrder

    return (
        (AuditLog, "before_update", _check_audit_log_update),
        (AuditLog, "before_delete", _check_audit_log_delete),
        (AssetMovement, "before_update", _check_movement_update),
        (AssetMovement, "before_delete", _check_movement_delete),
        (WorkOrder, "before_update", _check_work_order_update),
        (WorkOrder, "before_delete", _check_work_order_delete),
    )


def register_immutability_listeners() -> None:
    """Register all ORM immutability listeners (idempotent)."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. Only for tests that must simulate tampering."""
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
