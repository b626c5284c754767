"""
Typed Exception Hierarchy for the Order Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Order transitions touch stock and money.  Callers must be able to tell a
shortage apart from a wrong-state request or a misconfigured goods record
without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way:
    try:
        service.ship(order_id, actor, location_id=loc)
    except InsufficientStockError as e:
        for s in e.shortfalls:
            notify(f"{s.goods_name}: needed {s.required_packs}, have {s.available_packs}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    OrderKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyOrderError
    |   +-- InactivePointError
    |   +-- InvalidQuantityError
    |   +-- InvalidPaymentAmountError
    |
    +-- InvalidStateError
    |
    +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- PointNotFoundError
    |   +-- GoodsNotFoundError  (also a ValidationError)
    |   +-- LocationNotFoundError
    |
    +-- ConfigurationError
    |
    +-- CapabilityDeniedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- OrderCodeExhaustedError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Bad caller input, rejected pre-persistence
                | EMPTY_ORDER                 | Order has no lines
                | INACTIVE_POINT              | Point is deactivated
                | INVALID_QUANTITY            | Negative box/pack quantity
                | INVALID_PAYMENT_AMOUNT      | Payment amount <= 0
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Wrong current state for the transition
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | One or more lines short at the location
----------------|-----------------------------|-----------------------------------------
Lookup          | ORDER_NOT_FOUND             | Order missing or outside tenant scope
                | POINT_NOT_FOUND             | Point missing or outside tenant scope
                | GOODS_NOT_FOUND             | Goods id unknown
                | LOCATION_NOT_FOUND          | Location missing, inactive or foreign
----------------|-----------------------------|-----------------------------------------
Data            | CONFIGURATION_ERROR         | e.g. pack_per_box <= 0 on a goods row
----------------|-----------------------------|-----------------------------------------
Authorization   | CAPABILITY_DENIED           | Actor roles lack the operation capability
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Order row changed under us
                | ORDER_CODE_EXHAUSTED        | No free order code after N attempts
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError / InvalidStateError -> caller mistake, show the message.
2. InsufficientStockError -> render ``shortfalls`` per goods.
3. NotFoundError -> 404-equivalent; tenant mismatches look identical.
4. ConfigurationError -> data problem, alert an operator, not the caller.
5. ConcurrencyError -> safe to retry the whole operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


class OrderKernelError(Exception):
    """
    Base exception for all order kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "ORDER_KERNEL_ERROR"


# Validation exceptions


class ValidationError(OrderKernelError):
    """Caller input rejected before anything is persisted."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class EmptyOrderError(ValidationError):
    """An order must carry at least one line."""

    code: str = "EMPTY_ORDER"

    def __init__(self):
        super().__init__("Order must contain at least one item", field="items")


class InactivePointError(ValidationError):
    """Point is deactivated and cannot place orders."""

    code: str = "INACTIVE_POINT"

    def __init__(self, point_id: str):
        self.point_id = point_id
        super().__init__(
            f"Point {point_id} is inactive and cannot place orders",
            field="point_id",
        )


class InvalidQuantityError(ValidationError):
    """Box or pack quantity is negative or the line is empty."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, box: int, pack: int, reason: str):
        self.box = box
        self.pack = pack
        self.reason = reason
        super().__init__(
            f"Invalid quantity (box={box}, pack={pack}): {reason}",
            field="quantity",
        )


class InvalidPaymentAmountError(ValidationError):
    """Payment amount must be strictly positive."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(
            f"Payment amount must be greater than 0, got {amount}",
            field="amount",
        )


# State machine exceptions


class InvalidStateError(OrderKernelError):
    """
    The order is not in a state from which the requested event is legal.

    No side effects have been applied when this is raised.
    """

    code: str = "INVALID_STATE"

    def __init__(
        self,
        order_id: str,
        event: str,
        current_state: str,
        required_states: Iterable[str],
    ):
        self.order_id = order_id
        self.event = event
        self.current_state = current_state
        self.required_states = tuple(sorted(required_states))
        required = " | ".join(self.required_states) or "(none)"
        super().__init__(
            f"Cannot {event} order {order_id}: status is {current_state}, "
            f"requires {required}"
        )


# Stock exceptions


@dataclass(frozen=True)
class StockShortfall:
    """One line that cannot be covered by the stock at a location."""

    goods_id: str | None
    goods_name: str | None
    required_packs: int
    available_packs: int

    @property
    def shortage_packs(self) -> int:
        return self.required_packs - self.available_packs

    def describe(self) -> str:
        label = self.goods_name or self.goods_id or "goods"
        return (
            f"{label}: needed {self.required_packs}, "
            f"have {self.available_packs}"
        )


class InsufficientStockError(OrderKernelError):
    """
    One or more lines are short at the requested location.

    The shipment is rejected as a whole; nothing was debited.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        shortfalls: list[StockShortfall],
        location_id: str | None = None,
    ):
        self.shortfalls = list(shortfalls)
        self.location_id = location_id
        detail = "; ".join(s.describe() for s in self.shortfalls)
        super().__init__(f"Insufficient stock: {detail}")


# Lookup exceptions


class NotFoundError(OrderKernelError):
    """Base for missing (or out-of-tenant) records."""

    code: str = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__(f"Order not found: {order_ref}")


class PointNotFoundError(NotFoundError):
    code: str = "POINT_NOT_FOUND"

    def __init__(self, point_id: str):
        self.point_id = point_id
        super().__init__(f"Point not found: {point_id}")


class GoodsNotFoundError(NotFoundError, ValidationError):
    """Unknown goods id; on order lines this is also a validation failure."""

    code: str = "GOODS_NOT_FOUND"

    def __init__(self, goods_id: str):
        self.goods_id = goods_id
        super().__init__(f"Goods not found: {goods_id}")


class LocationNotFoundError(NotFoundError):
    code: str = "LOCATION_NOT_FOUND"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Location not found: {location_id}")


# Data configuration exceptions


class ConfigurationError(OrderKernelError):
    """
    A stored record is misconfigured (not a caller mistake).

    Example: a goods row with pack_per_box <= 0 makes every quantity
    conversion for that goods meaningless.
    """

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, goods_id: str | None = None):
        self.goods_id = goods_id
        super().__init__(message)


# Authorization exceptions


class CapabilityDeniedError(OrderKernelError):
    """Actor roles do not grant the capability the operation needs."""

    code: str = "CAPABILITY_DENIED"

    def __init__(self, actor_id: str, capability: str, roles: Iterable[str]):
        self.actor_id = actor_id
        self.capability = capability
        self.roles = tuple(roles)
        super().__init__(
            f"Actor {actor_id} with roles {list(self.roles)} "
            f"lacks capability {capability}"
        )


# Concurrency exceptions


class ConcurrencyError(OrderKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class OrderCodeExhaustedError(ConcurrencyError):
    """Could not find an unused order code."""

    code: str = "ORDER_CODE_EXHAUSTED"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"No unique order code after {attempts} attempts")


# Immutability exceptions


class ImmutabilityError(OrderKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    OutboundMovement rows are always immutable; orders outside
    PENDING/CANCELLED cannot be deleted; payment notes only grow.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
