"""
Point-order workflow (``order_kernel.domain.order_workflow``).

Responsibility
--------------
The single transition table for point orders.  Every lifecycle operation
resolves its ``(current status, event)`` pair here before touching
anything; a pair missing from the table is rejected uniformly with
``InvalidStateError``.

Status graph::

    PENDING --confirm--> CONFIRMED --ship--> SHIPPING --deliver--> DELIVERED
       |                                        |                     |
       +--cancel--> CANCELLED                   +------receive--------+--complete/receive--> COMPLETED

Architecture position
---------------------
**Kernel domain layer** -- declarative, ZERO I/O.  Consumed by
``OrderLifecycleService`` and by the PointOrder status listener in
``db/immutability.py``.
"""

from __future__ import annotations

from enum import Enum

from order_kernel.domain.workflow import Guard, Transition, Workflow
from order_kernel.exceptions import InvalidStateError
from order_kernel.logging_config import get_logger

logger = get_logger("domain.order_workflow")


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPING = "SHIPPING"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class CompletionChannel(str, Enum):
    """How an order reached COMPLETED."""

    RECEIVE = "RECEIVE"    # point owner acknowledged receipt
    COMPLETE = "COMPLETE"  # staff closed the delivery


class OrderEvent(str, Enum):
    UPDATE_ITEMS = "update_items"
    UPDATE_DETAILS = "update_details"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    SHIP = "ship"
    DELIVER = "deliver"
    RECEIVE = "receive"
    COMPLETE = "complete"
    CONFIRM_PAYMENT = "confirm_payment"
    DELETE = "delete"


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_SUFFICIENT = Guard(
    name="stock_sufficient",
    description="Every line is covered at the ship location, re-checked under row locks",
)

POSITIVE_AMOUNT = Guard(
    name="positive_amount",
    description="Payment amount is strictly greater than zero",
)

SAME_SHIP_LOCATION = Guard(
    name="same_ship_location",
    description="A replayed shipment names the location the order shipped from",
)

LINES_VALID = Guard(
    name="lines_valid",
    description="At least one line, known goods, non-negative quantities",
)


_P = OrderStatus.PENDING.value
_C = OrderStatus.CONFIRMED.value
_S = OrderStatus.SHIPPING.value
_D = OrderStatus.DELIVERED.value
_X = OrderStatus.COMPLETED.value
_N = OrderStatus.CANCELLED.value

_E = OrderEvent


def _payment(state: str) -> Transition:
    return Transition(
        state, state, _E.CONFIRM_PAYMENT.value,
        guard=POSITIVE_AMOUNT,
        effects=("accumulate_paid_amount", "derive_payment_status", "append_payment_note"),
    )


def _details(state: str) -> Transition:
    return Transition(state, state, _E.UPDATE_DETAILS.value, effects=("edit_details",))


ORDER_WORKFLOW = Workflow(
    name="point_order",
    description="Point order fulfilment lifecycle",
    initial_state=_P,
    states=tuple(s.value for s in OrderStatus),
    terminal_states=(_X, _N),
    transitions=(
        Transition(_P, _P, _E.UPDATE_ITEMS.value, guard=LINES_VALID,
                   effects=("replace_lines", "recompute_total")),
        _details(_P),
        _details(_C),
        _details(_S),
        _details(_D),
        Transition(_P, _C, _E.CONFIRM.value, effects=("stamp_confirmed",)),
        Transition(_P, _N, _E.CANCEL.value, effects=("stamp_cancelled",)),
        Transition(_C, _S, _E.SHIP.value, guard=STOCK_SUFFICIENT,
                   effects=("stamp_shipped", "debit_stock", "record_movements")),
        Transition(_S, _S, _E.SHIP.value, guard=SAME_SHIP_LOCATION, replay=True),
        Transition(_S, _D, _E.DELIVER.value, effects=("stamp_delivered",)),
        Transition(_S, _X, _E.RECEIVE.value,
                   effects=("stamp_delivered_if_unset", "stamp_completed")),
        Transition(_D, _X, _E.RECEIVE.value,
                   effects=("stamp_delivered_if_unset", "stamp_completed")),
        Transition(_X, _X, _E.RECEIVE.value, replay=True),
        Transition(_D, _X, _E.COMPLETE.value, effects=("stamp_completed",)),
        _payment(_C),
        _payment(_S),
        _payment(_D),
        _payment(_X),
        Transition(_P, _P, _E.DELETE.value, effects=("remove_row",)),
        Transition(_N, _N, _E.DELETE.value, effects=("remove_row",)),
    ),
)

# Status graph (from -> allowed targets), used by the persistence listener.
VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus(state): frozenset(OrderStatus(t) for t in targets)
    for state, targets in ORDER_WORKFLOW.edges().items()
}

DELETABLE_STATES: frozenset[OrderStatus] = frozenset(
    OrderStatus(s) for s in ORDER_WORKFLOW.sources_of(_E.DELETE.value)
)

logger.info(
    "order_workflow_registered",
    extra={
        "workflow_name": ORDER_WORKFLOW.name,
        "state_count": len(ORDER_WORKFLOW.states),
        "transition_count": len(ORDER_WORKFLOW.transitions),
        "initial_state": ORDER_WORKFLOW.initial_state,
    },
)


def resolve(
    current: OrderStatus | str,
    event: OrderEvent | str,
    *,
    order_id: str = "",
) -> Transition:
    """
    Look up the transition for ``event`` out of ``current``.

    Raises:
        InvalidStateError: naming the current state and every state from
            which ``event`` would have been accepted.
    """
    state = OrderStatus(current).value
    action = OrderEvent(event).value
    transition = ORDER_WORKFLOW.find(state, action)
    if transition is None:
        required = {
            t.from_state
            for t in ORDER_WORKFLOW.transitions
            if t.action == action and not t.replay
        }
        raise InvalidStateError(
            order_id=order_id,
            event=action,
            current_state=state,
            required_states=required,
        )
    return transition


def is_valid_status_change(old: OrderStatus | str, new: OrderStatus | str) -> bool:
    return OrderStatus(new) in VALID_TRANSITIONS.get(OrderStatus(old), frozenset())
