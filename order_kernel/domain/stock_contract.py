"""
StockLedger contract (``order_kernel.domain.stock_contract``).

Responsibility
--------------
The protocol the lifecycle service consumes for on-hand stock, plus the
immutable DTOs it exchanges.  ``order_kernel.services.stock_ledger``
provides the SQLAlchemy implementation; tests or other deployments may
provide their own.

Quantities are reported both in the nested ``(box, pack)`` form and as
pack-equivalent totals.  Comparisons are done on the totals only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence
from uuid import UUID

from order_kernel.exceptions import StockShortfall


@dataclass(frozen=True)
class StockLevel:
    current_box: int
    current_pack: int
    total_packs: int


@dataclass(frozen=True)
class StockCheckItem:
    goods_id: UUID
    box_quantity: int
    pack_quantity: int


@dataclass(frozen=True)
class StockCheckDetail:
    """Sufficiency verdict for one goods at one location."""

    goods_id: UUID
    goods_name: str
    required_box: int
    required_pack: int
    available_box: int
    available_pack: int
    required_packs: int
    available_packs: int
    sufficient: bool

    @property
    def shortfall_packs(self) -> int:
        return max(self.required_packs - self.available_packs, 0)

    def to_shortfall(self) -> StockShortfall:
        return StockShortfall(
            goods_id=str(self.goods_id),
            goods_name=self.goods_name,
            required_packs=self.required_packs,
            available_packs=self.available_packs,
        )


@dataclass(frozen=True)
class StockCheckResult:
    all_sufficient: bool
    details: tuple[StockCheckDetail, ...]

    @property
    def shortfalls(self) -> list[StockShortfall]:
        return [d.to_shortfall() for d in self.details if not d.sufficient]


class StockLedger(Protocol):
    """On-hand stock per (base, goods, location)."""

    def get_stock(self, base_id: UUID, goods_id: UUID, location_id: UUID) -> StockLevel:
        ...

    def batch_check_stock(
        self,
        base_id: UUID,
        location_id: UUID,
        items: Sequence[StockCheckItem],
    ) -> StockCheckResult:
        ...

    def lock_and_verify(
        self,
        base_id: UUID,
        location_id: UUID,
        items: Sequence[StockCheckItem],
    ) -> StockCheckResult:
        """Re-check under row locks inside the caller's transaction."""
        ...

    def debit(
        self,
        base_id: UUID,
        goods_id: UUID,
        location_id: UUID,
        packs: int,
    ) -> StockLevel:
        ...

    def credit(
        self,
        base_id: UUID,
        goods_id: UUID,
        location_id: UUID,
        packs: int,
    ) -> StockLevel:
        ...
