"""
Module: order_kernel.models.order
Responsibility: ORM persistence for point orders and their lines.
Architecture position: Kernel > Models.  May import from db/base.py and the
    status enums of domain/order_workflow.py.

Invariants enforced:
    - total_amount equals the sum of line total_price (maintained by
      OrderLifecycleService on create and line replacement).
    - code is globally unique (uq_point_order_code).
    - version is a SQLAlchemy version counter: a stale UPDATE raises
      StaleDataError, surfaced as OptimisticLockError.
    - Status changes follow the order workflow graph, payment_notes only
      grow, paid_amount never decreases, and rows outside PENDING/CANCELLED
      are never deleted (db/immutability.py, and triggers on PostgreSQL).

Failure modes:
    - IntegrityError on duplicate code.
    - ImmutabilityViolationError from the flush-time listeners.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from order_kernel.db.base import Base, TrackedBase, UUIDString
from order_kernel.domain.order_workflow import (
    CompletionChannel,
    OrderStatus,
    PaymentStatus,
)
from order_kernel.models.goods import Goods
from order_kernel.models.point import Point


class PointOrder(TrackedBase):
    """
    A sales order placed by a point against its base's inventory.

    Mutated only through OrderLifecycleService operations.
    """

    __tablename__ = "point_orders"

    __table_args__ = (
        UniqueConstraint("code", name="uq_point_order_code"),
        Index("idx_point_order_base_status", "base_id", "status"),
        Index("idx_point_order_point", "point_id"),
        Index("idx_point_order_date", "order_date"),
    )

    code: Mapped[str] = mapped_column(String(32), nullable=False)

    base_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    point_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("points.id"), nullable=False
    )

    order_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, native_enum=False, length=20),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, native_enum=False, length=20),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Newline-separated, append-only
    payment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    shipping_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    shipping_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    staff_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_person: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    ship_location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True
    )

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    confirmed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    shipped_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    delivered_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    completion_channel: Mapped[CompletionChannel | None] = mapped_column(
        SAEnum(CompletionChannel, native_enum=False, length=20),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    items: Mapped[list["PointOrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PointOrderItem.line_no",
    )

    point: Mapped[Point] = relationship(Point, lazy="joined")

    def __repr__(self) -> str:
        return f"<PointOrder {self.code} status={self.status.value}>"

    @property
    def unpaid_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount


class PointOrderItem(Base):
    """One goods line of a point order; unit_price is per pack."""

    __tablename__ = "point_order_items"

    __table_args__ = (
        Index("idx_point_order_item_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("point_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    goods_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goods.id"), nullable=False
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    # Received quantities, for discrepancy tracking
    actual_box_qty: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actual_pack_qty: Mapped[int | None] = mapped_column(Integer, nullable=True)

    order: Mapped[PointOrder] = relationship(back_populates="items")
    goods: Mapped[Goods] = relationship(Goods, lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<PointOrderItem goods={self.goods_id} "
            f"box={self.box_quantity} pack={self.pack_quantity}>"
        )
