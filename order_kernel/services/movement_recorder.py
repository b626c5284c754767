"""
OutboundMovementRecorder -- append-only audit rows for stock decreases.

Responsibility:
    Writes one ``OutboundMovement`` per stock debit, tagged with its cause
    and, for order shipments, the order and line it fulfils.

Architecture position:
    Kernel > Services -- flush-only; the caller owns the transaction.

Invariants enforced:
    - Order shipments produce exactly one movement per order line; a line
      that already has a movement is never written again (the unique
      ``related_order_item_id`` backs this up at the database level).
    - Rows are never updated or deleted once flushed (db/immutability.py).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_kernel.domain.clock import Clock, SystemClock
from order_kernel.domain.quantity import to_total_packs, validate_quantity
from order_kernel.domain.stock_contract import StockLedger
from order_kernel.exceptions import GoodsNotFoundError, ValidationError
from order_kernel.logging_config import get_logger
from order_kernel.models.goods import Goods
from order_kernel.models.order import PointOrder
from order_kernel.models.outbound_movement import MovementCause, OutboundMovement
from order_kernel.services.base import BaseService

logger = get_logger("services.movement_recorder")


class OutboundMovementRecorder(BaseService):
    """
    Records outbound movements in the caller's transaction.

    ``stock_ledger`` is only needed for ``record()``, which debits the
    ledger itself; shipment movements are written after the lifecycle
    service has debited.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        stock_ledger: StockLedger | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._stock_ledger = stock_ledger

    def record_order_shipment(
        self,
        order: PointOrder,
        location_id: UUID,
        actor_id: UUID,
    ) -> list[OutboundMovement]:
        """One ``ORDER`` movement per line of ``order``; returns the rows written."""
        item_ids = [item.id for item in order.items]
        already = set(
            self.session.execute(
                select(OutboundMovement.related_order_item_id).where(
                    OutboundMovement.related_order_item_id.in_(item_ids)
                )
            ).scalars()
        )

        now = self._clock.now()
        target_name = order.point.name if order.point is not None else None
        written: list[OutboundMovement] = []
        for item in order.items:
            if item.id in already:
                logger.warning(
                    "movement_already_recorded",
                    extra={"order_item_id": str(item.id)},
                )
                continue
            movement = OutboundMovement(
                base_id=order.base_id,
                movement_date=now,
                goods_id=item.goods_id,
                location_id=location_id,
                cause=MovementCause.ORDER,
                box_quantity=item.box_quantity,
                pack_quantity=item.pack_quantity,
                total_packs=to_total_packs(
                    item.box_quantity,
                    item.pack_quantity,
                    item.goods.pack_per_box,
                    goods_id=str(item.goods_id),
                ),
                related_order_id=order.id,
                related_order_code=order.code,
                related_order_item_id=item.id,
                target_name=target_name,
                remark=f"Point order {order.code}",
                created_by_id=actor_id,
                created_at=now,
            )
            self.session.add(movement)
            written.append(movement)

        self.session.flush()
        logger.info(
            "order_movements_recorded",
            extra={
                "order_code": order.code,
                "location_id": str(location_id),
                "movement_count": len(written),
            },
        )
        return written

    def record(
        self,
        cause: MovementCause,
        *,
        base_id: UUID,
        goods_id: UUID,
        location_id: UUID,
        box_quantity: int,
        pack_quantity: int,
        actor_id: UUID,
        target_name: str | None = None,
        remark: str | None = None,
    ) -> OutboundMovement:
        """
        Debit the ledger and record a non-order movement (``TRANSFER``/``MANUAL``).

        Raises:
            ValidationError: for ``ORDER`` (use ``record_order_shipment``) or
                when no ledger was injected.
            InsufficientStockError: when the location is short.
        """
        if cause == MovementCause.ORDER:
            raise ValidationError(
                "Order movements are recorded through record_order_shipment",
                field="cause",
            )
        if self._stock_ledger is None:
            raise ValidationError("No stock ledger configured for manual movements")
        validate_quantity(box_quantity, pack_quantity)

        goods = self.session.get(Goods, goods_id)
        if goods is None:
            raise GoodsNotFoundError(str(goods_id))
        packs = to_total_packs(
            box_quantity, pack_quantity, goods.pack_per_box, goods_id=str(goods_id)
        )
        self._stock_ledger.debit(base_id, goods_id, location_id, packs)

        now = self._clock.now()
        movement = OutboundMovement(
            base_id=base_id,
            movement_date=now,
            goods_id=goods_id,
            location_id=location_id,
            cause=MovementCause(cause),
            box_quantity=box_quantity,
            pack_quantity=pack_quantity,
            total_packs=packs,
            target_name=target_name,
            remark=remark,
            created_by_id=actor_id,
            created_at=now,
        )
        self.session.add(movement)
        self.session.flush()
        logger.info(
            "movement_recorded",
            extra={
                "cause": movement.cause.value,
                "goods_id": str(goods_id),
                "location_id": str(location_id),
                "total_packs": packs,
            },
        )
        return movement
