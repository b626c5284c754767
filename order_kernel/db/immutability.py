"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock debits and payments must leave a trail that cannot be rewritten.
Outbound movements are the record of every unit that left a location, and
an order's payment notes are the record of every confirmation.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

Both layers enforce the SAME rules.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|----------------------------------------------------------
OutboundMovement  | ALWAYS immutable: no UPDATE, no DELETE
PointOrder        | DELETE only while PENDING or CANCELLED
PointOrder        | status changes must be edges of the order workflow
PointOrder        | payment_notes append-only (old value is a prefix of new)
PointOrder        | paid_amount never decreases

===============================================================================
USAGE
===============================================================================

    from order_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must violate a rule on purpose:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from order_kernel.exceptions import ImmutabilityViolationError
from order_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id, operation: str, reason: str, detail: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=detail,
    )


def _old_and_new(target, attr: str):
    """(old, new) if ``attr`` changed in this flush, else None."""
    history = get_history(target, attr)
    if not history.added or not history.deleted:
        return None
    return history.deleted[0], history.added[0]


# -----------------------------------------------------------------------------
# OutboundMovement
# -----------------------------------------------------------------------------


def _check_outbound_movement_immutability(mapper, connection, target):
    _block(
        "OutboundMovement",
        target.id,
        "UPDATE",
        "outbound_movement_immutable",
        "Outbound movements cannot be modified",
    )


def _check_outbound_movement_delete(mapper, connection, target):
    _block(
        "OutboundMovement",
        target.id,
        "DELETE",
        "outbound_movement_immutable",
        "Outbound movements cannot be deleted",
    )


# -----------------------------------------------------------------------------
# PointOrder
# -----------------------------------------------------------------------------


def _check_point_order_update(mapper, connection, target):
    """
    Status moves along the workflow graph only; payment history only grows.
    """
    from order_kernel.domain.order_workflow import is_valid_status_change

    status_change = _old_and_new(target, "status")
    if status_change is not None:
        old, new = status_change
        if old != new and not is_valid_status_change(old, new):
            _block(
                "PointOrder",
                target.id,
                "UPDATE",
                "illegal_status_change",
                f"Status cannot change from {old} to {new}",
            )

    notes_change = _old_and_new(target, "payment_notes")
    if notes_change is not None:
        old, new = notes_change
        if old and not (new or "").startswith(old):
            _block(
                "PointOrder",
                target.id,
                "UPDATE",
                "payment_notes_rewritten",
                "Payment notes are append-only",
            )

    paid_change = _old_and_new(target, "paid_amount")
    if paid_change is not None:
        old, new = paid_change
        if Decimal(new or 0) < Decimal(old or 0):
            _block(
                "PointOrder",
                target.id,
                "UPDATE",
                "paid_amount_decreased",
                f"Paid amount cannot decrease from {old} to {new}",
            )


def _check_point_order_delete(mapper, connection, target):
    from order_kernel.domain.order_workflow import DELETABLE_STATES, OrderStatus

    committed = get_history(target, "status")
    status = committed.deleted[0] if committed.deleted else target.status
    if OrderStatus(status) not in DELETABLE_STATES:
        _block(
            "PointOrder",
            target.id,
            "DELETE",
            "order_not_deletable",
            f"Orders in {OrderStatus(status).value} cannot be deleted",
        )


# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------


def _listeners():
    from order_kernel.models.order import PointOrder
    from order_kernel.models.outbound_movement import OutboundMovement

    return (
        (OutboundMovement, "before_update", _check_outbound_movement_immutability),
        (OutboundMovement, "before_delete", _check_outbound_movement_delete),
        (PointOrder, "before_update", _check_point_order_update),
        (PointOrder, "before_delete", _check_point_order_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once after models are imported and before any database work.
    Registering twice is harmless.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately break a rule.
    """
    for target, event_name, fn in _listeners():
        _safe_remove_listener(target, event_name, fn)
