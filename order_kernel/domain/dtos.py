"""
DTOs -- immutable data crossing the service boundary.

Responsibility:
    Input shapes for lifecycle operations (``OrderLineInput``,
    ``OrderDetailsInput``) and the read models every operation and selector
    returns (``OrderInfo``, ``OrderLineInfo``, ``MovementInfo``,
    ``OrderPage``, ``OrderStats``, ``PointInfo``, ``AvailableGoodsInfo``).

Architecture position:
    Kernel > Domain -- zero I/O.  ``from_model()`` class methods are the
    ORM-to-DTO boundary converters; they are only invoked from the service
    and selector layers.  Callers never receive live ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from order_kernel.domain.order_workflow import (
    CompletionChannel,
    OrderStatus,
    PaymentStatus,
)
from order_kernel.domain.quantity import to_total_packs

if TYPE_CHECKING:
    from order_kernel.models.order import (
        PointOrder as PointOrderModel,
    )
    from order_kernel.models.order import (
        PointOrderItem as PointOrderItemModel,
    )
    from order_kernel.models.outbound_movement import (
        OutboundMovement as OutboundMovementModel,
    )
    from order_kernel.models.point import Point as PointModel


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderLineInput:
    """One requested line.  ``unit_price`` is per pack; ``None`` takes the catalog price."""

    goods_id: UUID
    box_quantity: int = 0
    pack_quantity: int = 0
    unit_price: Decimal | None = None


@dataclass(frozen=True)
class OrderDetailsInput:
    """
    Non-status order fields editable while the order is not terminal.

    Fields left as ``None`` are not touched.
    """

    shipping_address: str | None = None
    shipping_phone: str | None = None
    customer_notes: str | None = None
    staff_notes: str | None = None
    tracking_number: str | None = None
    delivery_person: str | None = None
    delivery_phone: str | None = None

    def changes(self) -> dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


# -----------------------------------------------------------------------------
# Read models
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderLineInfo:
    id: UUID
    goods_id: UUID
    goods_code: str
    goods_name: str
    box_quantity: int
    pack_quantity: int
    total_packs: int
    unit_price: Decimal
    total_price: Decimal
    actual_box_qty: int | None = None
    actual_pack_qty: int | None = None

    @classmethod
    def from_model(cls, model: PointOrderItemModel) -> OrderLineInfo:
        goods = model.goods
        return cls(
            id=model.id,
            goods_id=model.goods_id,
            goods_code=goods.code,
            goods_name=goods.name,
            box_quantity=model.box_quantity,
            pack_quantity=model.pack_quantity,
            total_packs=to_total_packs(
                model.box_quantity,
                model.pack_quantity,
                goods.pack_per_box,
                goods_id=str(goods.id),
            ),
            unit_price=model.unit_price,
            total_price=model.total_price,
            actual_box_qty=model.actual_box_qty,
            actual_pack_qty=model.actual_pack_qty,
        )


@dataclass(frozen=True)
class OrderInfo:
    id: UUID
    code: str
    base_id: UUID
    point_id: UUID
    point_code: str
    point_name: str
    order_date: date
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    paid_amount: Decimal
    payment_notes: str | None
    shipping_address: str | None
    shipping_phone: str | None
    customer_notes: str | None
    staff_notes: str | None
    tracking_number: str | None
    delivery_person: str | None
    delivery_phone: str | None
    ship_location_id: UUID | None
    confirmed_at: datetime | None
    shipped_at: datetime | None
    delivered_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_by_id: UUID
    confirmed_by_id: UUID | None
    shipped_by_id: UUID | None
    delivered_by_id: UUID | None
    completed_by_id: UUID | None
    cancelled_by_id: UUID | None
    completion_channel: CompletionChannel | None
    version: int
    lines: tuple[OrderLineInfo, ...] = field(default_factory=tuple)

    @property
    def unpaid_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @classmethod
    def from_model(cls, model: PointOrderModel) -> OrderInfo:
        point = model.point
        return cls(
            id=model.id,
            code=model.code,
            base_id=model.base_id,
            point_id=model.point_id,
            point_code=point.code,
            point_name=point.name,
            order_date=model.order_date,
            status=OrderStatus(model.status),
            payment_status=PaymentStatus(model.payment_status),
            total_amount=model.total_amount,
            paid_amount=model.paid_amount,
            payment_notes=model.payment_notes,
            shipping_address=model.shipping_address,
            shipping_phone=model.shipping_phone,
            customer_notes=model.customer_notes,
            staff_notes=model.staff_notes,
            tracking_number=model.tracking_number,
            delivery_person=model.delivery_person,
            delivery_phone=model.delivery_phone,
            ship_location_id=model.ship_location_id,
            confirmed_at=model.confirmed_at,
            shipped_at=model.shipped_at,
            delivered_at=model.delivered_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
            created_by_id=model.created_by_id,
            confirmed_by_id=model.confirmed_by_id,
            shipped_by_id=model.shipped_by_id,
            delivered_by_id=model.delivered_by_id,
            completed_by_id=model.completed_by_id,
            cancelled_by_id=model.cancelled_by_id,
            completion_channel=(
                CompletionChannel(model.completion_channel)
                if model.completion_channel is not None
                else None
            ),
            version=model.version,
            lines=tuple(OrderLineInfo.from_model(item) for item in model.items),
        )


@dataclass(frozen=True)
class OrderSummary:
    """List-row projection of an order (no lines)."""

    id: UUID
    code: str
    point_id: UUID
    point_code: str
    point_name: str
    order_date: date
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    paid_amount: Decimal
    item_count: int


@dataclass(frozen=True)
class OrderPage:
    items: tuple[OrderSummary, ...]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size else 0


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    pending_count: int
    confirmed_count: int
    shipping_count: int
    delivered_count: int
    completed_count: int
    cancelled_count: int
    total_amount: Decimal
    unpaid_amount: Decimal


@dataclass(frozen=True)
class MovementInfo:
    id: UUID
    base_id: UUID
    movement_date: datetime
    goods_id: UUID
    location_id: UUID
    cause: str
    box_quantity: int
    pack_quantity: int
    total_packs: int
    related_order_id: UUID | None
    related_order_code: str | None
    related_order_item_id: UUID | None
    target_name: str | None
    remark: str | None
    created_by_id: UUID

    @classmethod
    def from_model(cls, model: OutboundMovementModel) -> MovementInfo:
        cause = model.cause
        return cls(
            id=model.id,
            base_id=model.base_id,
            movement_date=model.movement_date,
            goods_id=model.goods_id,
            location_id=model.location_id,
            cause=getattr(cause, "value", cause),
            box_quantity=model.box_quantity,
            pack_quantity=model.pack_quantity,
            total_packs=model.total_packs,
            related_order_id=model.related_order_id,
            related_order_code=model.related_order_code,
            related_order_item_id=model.related_order_item_id,
            target_name=model.target_name,
            remark=model.remark,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class PointInfo:
    id: UUID
    code: str
    name: str
    address: str | None
    contact_person: str | None
    contact_phone: str | None

    @classmethod
    def from_model(cls, model: PointModel) -> PointInfo:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            address=model.address,
            contact_person=model.contact_person,
            contact_phone=model.contact_phone,
        )


@dataclass(frozen=True)
class AvailableGoodsInfo:
    goods_id: UUID
    code: str
    name: str
    pack_per_box: int
    piece_per_pack: int
    unit_price: Decimal
    max_box_quantity: int | None = None
    max_pack_quantity: int | None = None
