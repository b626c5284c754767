"""
Module: order_kernel.models.location
Responsibility: Stock-holding locations of a base (warehouses, stores).
    Shipments name the location they draw stock from.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from order_kernel.db.base import Base, UUIDString


class LocationType(str, Enum):
    MAIN_WAREHOUSE = "MAIN_WAREHOUSE"
    WAREHOUSE = "WAREHOUSE"
    STORE = "STORE"


class Location(Base):
    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("base_id", "code", name="uq_location_base_code"),
        Index("idx_location_base", "base_id"),
    )

    base_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    location_type: Mapped[LocationType] = mapped_column(
        SAEnum(LocationType, native_enum=False, length=20),
        nullable=False,
        default=LocationType.WAREHOUSE,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Location {self.code} ({self.location_type.value})>"
