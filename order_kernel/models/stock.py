"""
Module: order_kernel.models.stock
Responsibility: On-hand stock per (base, goods, location), owned by the
    stock ledger service.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (base_id, goods_id, location_id) (uq_stock_balance_key).
    - A missing row means zero stock.
    - Quantities never go negative (ck_stock_balance_non_negative); the
      ledger raises InsufficientStockError before writing such a value.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import Base, UUIDString


class StockBalance(Base):
    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint(
            "base_id", "goods_id", "location_id", name="uq_stock_balance_key"
        ),
        CheckConstraint(
            "current_box >= 0 AND current_pack >= 0",
            name="ck_stock_balance_non_negative",
        ),
    )

    base_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    goods_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goods.id"), nullable=False
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )

    current_box: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_pack: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockBalance goods={self.goods_id} location={self.location_id} "
            f"box={self.current_box} pack={self.current_pack}>"
        )
