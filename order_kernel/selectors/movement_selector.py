"""
Module: order_kernel.selectors.movement_selector
Responsibility: Read access to outbound movements, by order and by location.
Architecture position: Kernel > Selectors.

Results are in movement order (movement_date, then id) so a shipment's
rows come back together.
"""

from uuid import UUID

from sqlalchemy import select

from order_kernel.domain.dtos import MovementInfo
from order_kernel.models.outbound_movement import OutboundMovement
from order_kernel.selectors.base import BaseSelector


class MovementSelector(BaseSelector):
    def for_order(self, order_code: str) -> list[MovementInfo]:
        rows = self.session.execute(
            select(OutboundMovement)
            .where(OutboundMovement.related_order_code == order_code)
            .order_by(OutboundMovement.movement_date, OutboundMovement.id)
        ).scalars().all()
        return [MovementInfo.from_model(m) for m in rows]

    def for_location(
        self,
        base_id: UUID,
        location_id: UUID,
        goods_id: UUID | None = None,
    ) -> list[MovementInfo]:
        stmt = select(OutboundMovement).where(
            OutboundMovement.base_id == base_id,
            OutboundMovement.location_id == location_id,
        )
        if goods_id is not None:
            stmt = stmt.where(OutboundMovement.goods_id == goods_id)
        rows = self.session.execute(
            stmt.order_by(OutboundMovement.movement_date, OutboundMovement.id)
        ).scalars().all()
        return [MovementInfo.from_model(m) for m in rows]
