"""
Module: order_kernel.models.outbound_movement
Responsibility: Append-only ledger of stock decreases and their causes.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (ORM listeners in db/immutability.py,
      triggers on PostgreSQL).
    - At most one row per order line (uq_outbound_movement_order_item), so a
      retried shipment can never emit a second movement for the same line.
    - total_packs == box_quantity * pack_per_box + pack_quantity at the time
      of the movement.

Failure modes:
    - IntegrityError on a second movement for the same order line.
    - ImmutabilityViolationError on any UPDATE or DELETE through the ORM.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import Base, UUIDString


class MovementCause(str, Enum):
    ORDER = "ORDER"        # point order shipment
    TRANSFER = "TRANSFER"  # move to another location
    MANUAL = "MANUAL"      # operator adjustment


class OutboundMovement(Base):
    __tablename__ = "outbound_movements"

    __table_args__ = (
        UniqueConstraint(
            "related_order_item_id", name="uq_outbound_movement_order_item"
        ),
        Index("idx_outbound_movement_order_code", "related_order_code"),
        Index("idx_outbound_movement_location", "base_id", "location_id", "goods_id"),
    )

    base_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    movement_date: Mapped[datetime] = mapped_column(nullable=False)

    goods_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goods.id"), nullable=False
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )

    cause: Mapped[MovementCause] = mapped_column(
        SAEnum(MovementCause, native_enum=False, length=20),
        nullable=False,
    )

    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_packs: Mapped[int] = mapped_column(Integer, nullable=False)

    related_order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    related_order_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    related_order_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    # Receiving point or location, for display
    target_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<OutboundMovement {self.cause.value} goods={self.goods_id} "
            f"packs={self.total_packs} order={self.related_order_code}>"
        )
