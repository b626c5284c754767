"""
SqlStockLedger -- on-hand stock backed by the ``stock_balances`` table.

Responsibility:
    Implements the ``StockLedger`` protocol: point reads, batched
    sufficiency checks, the locked re-check a shipment runs inside its
    transaction, and the debit/credit writes themselves.

Architecture position:
    Kernel > Services -- flush-only; the caller owns the transaction.

Invariants enforced:
    - Every comparison and subtraction is done in pack-equivalents.
    - A missing balance row is zero stock.
    - Balance rows are locked (``SELECT ... FOR UPDATE``) in ascending goods
      order, so concurrent shipments touching overlapping goods cannot
      deadlock.
    - A debit larger than the balance raises ``InsufficientStockError``;
      stored quantities never go negative and are written normalized
      (``pack < pack_per_box``).

Failure modes:
    - GoodsNotFoundError for an unknown goods id.
    - ConfigurationError for a goods row with ``pack_per_box <= 0``.
    - InsufficientStockError from ``debit``.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_kernel.domain.quantity import (
    from_total_packs,
    subtract_packs,
    to_total_packs,
)
from order_kernel.domain.stock_contract import (
    StockCheckDetail,
    StockCheckItem,
    StockCheckResult,
    StockLevel,
)
from order_kernel.exceptions import GoodsNotFoundError, InvalidQuantityError
from order_kernel.logging_config import get_logger
from order_kernel.models.goods import Goods
from order_kernel.models.stock import StockBalance
from order_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


def _sort_key(goods_id: UUID) -> str:
    return str(goods_id)


class SqlStockLedger(BaseService):
    """
    StockLedger over SQLAlchemy.

    Contract:
        Reads may run outside any lock.  ``lock_and_verify``, ``debit`` and
        ``credit`` must run inside an open transaction; the row locks they
        take are held until the caller commits or rolls back.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_stock(self, base_id: UUID, goods_id: UUID, location_id: UUID) -> StockLevel:
        goods = self._load_goods([goods_id])[goods_id]
        balance = self._load_balances(base_id, location_id, [goods_id], lock=False).get(
            goods_id
        )
        return self._level(goods, balance)

    def batch_check_stock(
        self,
        base_id: UUID,
        location_id: UUID,
        items: Sequence[StockCheckItem],
    ) -> StockCheckResult:
        """
        Read-only sufficiency check over every item.

        Items for the same goods are summed before comparing, so two lines
        of 15 packs against 20 on hand are reported short.
        """
        return self._check(base_id, location_id, items, lock=False)

    def lock_and_verify(
        self,
        base_id: UUID,
        location_id: UUID,
        items: Sequence[StockCheckItem],
    ) -> StockCheckResult:
        """Same as ``batch_check_stock`` but under row locks, inside the transaction."""
        return self._check(base_id, location_id, items, lock=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def debit(
        self,
        base_id: UUID,
        goods_id: UUID,
        location_id: UUID,
        packs: int,
    ) -> StockLevel:
        """
        Remove ``packs`` pack-equivalents from a balance.

        Raises:
            InsufficientStockError: if the balance (missing row = 0) is short.
        """
        if packs < 0:
            raise InvalidQuantityError(0, packs, "debit must not be negative")
        goods = self._load_goods([goods_id])[goods_id]
        balance = self._load_balances(base_id, location_id, [goods_id], lock=True).get(
            goods_id
        )
        available = self._level(goods, balance).total_packs
        remaining = subtract_packs(
            available,
            packs,
            goods_id=str(goods_id),
            goods_name=goods.name,
        )
        if balance is None:
            # Only reachable for a zero debit against a missing row.
            return StockLevel(0, 0, 0)

        balance.current_box, balance.current_pack = from_total_packs(
            remaining, goods.pack_per_box, goods_id=str(goods_id)
        )
        self.session.flush()
        logger.info(
            "stock_debited",
            extra={
                "goods_id": str(goods_id),
                "location_id": str(location_id),
                "packs": packs,
                "available_before": available,
                "available_after": remaining,
            },
        )
        return StockLevel(balance.current_box, balance.current_pack, remaining)

    def credit(
        self,
        base_id: UUID,
        goods_id: UUID,
        location_id: UUID,
        packs: int,
    ) -> StockLevel:
        """Add ``packs`` pack-equivalents, creating the balance row if needed."""
        if packs < 0:
            raise InvalidQuantityError(0, packs, "credit must not be negative")
        goods = self._load_goods([goods_id])[goods_id]
        balance = self._load_balances(base_id, location_id, [goods_id], lock=True).get(
            goods_id
        )
        if balance is None:
            balance = StockBalance(
                base_id=base_id,
                goods_id=goods_id,
                location_id=location_id,
                current_box=0,
                current_pack=0,
            )
            self.session.add(balance)

        total = self._level(goods, balance).total_packs + packs
        balance.current_box, balance.current_pack = from_total_packs(
            total, goods.pack_per_box, goods_id=str(goods_id)
        )
        self.session.flush()
        logger.info(
            "stock_credited",
            extra={
                "goods_id": str(goods_id),
                "location_id": str(location_id),
                "packs": packs,
                "available_after": total,
            },
        )
        return StockLevel(balance.current_box, balance.current_pack, total)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check(
        self,
        base_id: UUID,
        location_id: UUID,
        items: Sequence[StockCheckItem],
        lock: bool,
    ) -> StockCheckResult:
        required: dict[UUID, list[int]] = {}
        for item in items:
            box_pack = required.setdefault(item.goods_id, [0, 0])
            box_pack[0] += item.box_quantity
            box_pack[1] += item.pack_quantity

        goods_by_id = self._load_goods(list(required))
        balances = self._load_balances(base_id, location_id, list(required), lock=lock)

        details = []
        for goods_id, (box, pack) in required.items():
            goods = goods_by_id[goods_id]
            level = self._level(goods, balances.get(goods_id))
            required_packs = to_total_packs(
                box, pack, goods.pack_per_box, goods_id=str(goods_id)
            )
            details.append(
                StockCheckDetail(
                    goods_id=goods_id,
                    goods_name=goods.name,
                    required_box=box,
                    required_pack=pack,
                    available_box=level.current_box,
                    available_pack=level.current_pack,
                    required_packs=required_packs,
                    available_packs=level.total_packs,
                    sufficient=level.total_packs >= required_packs,
                )
            )

        result = StockCheckResult(
            all_sufficient=all(d.sufficient for d in details),
            details=tuple(details),
        )
        logger.debug(
            "stock_checked",
            extra={
                "location_id": str(location_id),
                "locked": lock,
                "goods_count": len(details),
                "all_sufficient": result.all_sufficient,
            },
        )
        return result

    def _load_goods(self, goods_ids: list[UUID]) -> dict[UUID, Goods]:
        rows = self.session.execute(
            select(Goods).where(Goods.id.in_(goods_ids))
        ).scalars().all()
        found = {g.id: g for g in rows}
        for goods_id in goods_ids:
            if goods_id not in found:
                raise GoodsNotFoundError(str(goods_id))
        return found

    def _load_balances(
        self,
        base_id: UUID,
        location_id: UUID,
        goods_ids: list[UUID],
        lock: bool,
    ) -> dict[UUID, StockBalance]:
        stmt = (
            select(StockBalance)
            .where(
                StockBalance.base_id == base_id,
                StockBalance.location_id == location_id,
                StockBalance.goods_id.in_(sorted(goods_ids, key=_sort_key)),
            )
            .order_by(StockBalance.goods_id)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        rows = self.session.execute(stmt).scalars().all()
        return {b.goods_id: b for b in rows}

    @staticmethod
    def _level(goods: Goods, balance: StockBalance | None) -> StockLevel:
        if balance is None:
            # Validate the factor even when nothing is on hand.
            to_total_packs(0, 0, goods.pack_per_box, goods_id=str(goods.id))
            return StockLevel(0, 0, 0)
        total = to_total_packs(
            balance.current_box,
            balance.current_pack,
            goods.pack_per_box,
            goods_id=str(goods.id),
        )
        return StockLevel(balance.current_box, balance.current_pack, total)
