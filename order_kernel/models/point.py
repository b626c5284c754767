"""
Module: order_kernel.models.point
Responsibility: Retail/distribution points that place orders against a base.
Architecture position: Kernel > Models.  May import from db/base.py only.

An inactive point cannot place new orders (``InactivePointError``); its
existing orders keep moving through the lifecycle.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import Base, UUIDString


class Point(Base):
    __tablename__ = "points"

    __table_args__ = (
        UniqueConstraint("code", name="uq_point_code"),
        Index("idx_point_base_active", "base_id", "is_active"),
    )

    base_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    contact_person: Mapped[str | None] = mapped_column(String(100), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Point owner user; may receive its orders
    owner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Point {self.code}: {self.name}>"
