"""
Module: order_kernel.selectors.catalog_selector
Responsibility: Lookup lists for order entry -- the points a base can order
    for, and the goods a point may order with their effective price.
Architecture position: Kernel > Selectors.

Both lists contain active rows only, are sorted by name and are capped at
the configured lookup limit.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_config.schema import PaginationConfig
from order_kernel.domain.dtos import AvailableGoodsInfo, PointInfo
from order_kernel.models.goods import Goods, PointGoods
from order_kernel.models.point import Point
from order_kernel.selectors.base import BaseSelector, keyword_filter


class CatalogSelector(BaseSelector):
    def __init__(self, session: Session, pagination: PaginationConfig | None = None):
        super().__init__(session)
        self._limit = (pagination or PaginationConfig()).lookup_limit

    def available_points(self, base_id: UUID, keyword: str | None = None) -> list[PointInfo]:
        stmt = select(Point).where(Point.base_id == base_id, Point.is_active.is_(True))
        if keyword:
            stmt = stmt.where(
                keyword_filter(keyword, Point.name, Point.code, Point.address)
            )
        points = self.session.execute(
            stmt.order_by(Point.name).limit(self._limit)
        ).scalars().all()
        return [PointInfo.from_model(p) for p in points]

    def available_goods(
        self,
        point_id: UUID | None = None,
        keyword: str | None = None,
    ) -> list[AvailableGoodsInfo]:
        """
        With ``point_id``: the point's active purchasable goods, priced by
        the per-point override when set.  Without: every active goods at
        its retail price.
        """
        conditions = [Goods.is_active.is_(True)]
        if keyword:
            conditions.append(keyword_filter(keyword, Goods.name, Goods.code))

        if point_id is None:
            goods = self.session.execute(
                select(Goods).where(*conditions).order_by(Goods.name).limit(self._limit)
            ).scalars().all()
            return [
                AvailableGoodsInfo(
                    goods_id=g.id,
                    code=g.code,
                    name=g.name,
                    pack_per_box=g.pack_per_box,
                    piece_per_pack=g.piece_per_pack,
                    unit_price=g.retail_price,
                )
                for g in goods
            ]

        rows = self.session.execute(
            select(PointGoods)
            .join(Goods, Goods.id == PointGoods.goods_id)
            .where(
                PointGoods.point_id == point_id,
                PointGoods.is_active.is_(True),
                *conditions,
            )
            .order_by(Goods.name)
            .limit(self._limit)
        ).unique().scalars().all()
        return [
            AvailableGoodsInfo(
                goods_id=pg.goods_id,
                code=pg.goods.code,
                name=pg.goods.name,
                pack_per_box=pg.goods.pack_per_box,
                piece_per_pack=pg.goods.piece_per_pack,
                unit_price=pg.effective_price,
                max_box_quantity=pg.max_box_quantity,
                max_pack_quantity=pg.max_pack_quantity,
            )
            for pg in rows
        ]
