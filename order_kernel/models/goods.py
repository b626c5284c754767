"""
Module: order_kernel.models.goods
Responsibility: Catalog rows the order engine reads: goods with their unit
    conversion constants, and the per-point purchasable goods list.
Architecture position: Kernel > Models.  May import from db/base.py only.

Catalog CRUD lives elsewhere; the engine treats these rows as read-only
reference data.  A goods row with ``pack_per_box <= 0`` is a data error
surfaced as ``ConfigurationError`` by the quantity model.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from order_kernel.db.base import Base, UUIDString


class Goods(Base):
    """A sellable product counted in boxes, packs and pieces."""

    __tablename__ = "goods"

    __table_args__ = (
        UniqueConstraint("code", name="uq_goods_code"),
        Index("idx_goods_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    pack_per_box: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    piece_per_pack: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Price per pack
    retail_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Goods {self.code}: {self.name}>"


class PointGoods(Base):
    """
    Goods a given point may order, with an optional price override and
    per-order quantity caps.
    """

    __tablename__ = "point_goods"

    __table_args__ = (
        UniqueConstraint("point_id", "goods_id", name="uq_point_goods"),
    )

    point_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("points.id", ondelete="CASCADE"), nullable=False
    )
    goods_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goods.id"), nullable=False
    )

    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_box_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_pack_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    goods: Mapped[Goods] = relationship(Goods, lazy="joined")

    @property
    def effective_price(self) -> Decimal:
        if self.unit_price is not None:
            return self.unit_price
        return self.goods.retail_price
