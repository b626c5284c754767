"""
Module: order_kernel.selectors.order_selector
Responsibility: Order detail, paginated listing and dashboard statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; returns OrderInfo / OrderPage / OrderStats.
    - Orders of another base are invisible (``None`` / not listed).
    - Listing is newest first: order_date, then created_at, then code,
      all descending.

Failure modes:
    - Returns None or an empty page when nothing matches (never raises on
      absence of data).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from order_config.schema import PaginationConfig
from order_kernel.domain.dtos import OrderInfo, OrderPage, OrderStats, OrderSummary
from order_kernel.domain.order_workflow import OrderStatus, PaymentStatus
from order_kernel.models.order import PointOrder
from order_kernel.models.point import Point
from order_kernel.selectors.base import BaseSelector, keyword_filter


class OrderSelector(BaseSelector):
    """
    Selector for point-order queries.

    Non-goals:
        - No locking; the lifecycle service locks what it mutates.
    """

    def __init__(self, session: Session, pagination: PaginationConfig | None = None):
        super().__init__(session)
        self._pagination = pagination or PaginationConfig()

    def get(self, order_id: UUID, base_id: UUID) -> OrderInfo | None:
        order = self.session.get(PointOrder, order_id)
        if order is None or order.base_id != base_id:
            return None
        return OrderInfo.from_model(order)

    def get_by_code(self, code: str, base_id: UUID) -> OrderInfo | None:
        order = self.session.execute(
            select(PointOrder).where(
                PointOrder.code == code,
                PointOrder.base_id == base_id,
            )
        ).scalar_one_or_none()
        if order is None:
            return None
        return OrderInfo.from_model(order)

    def list_orders(
        self,
        base_id: UUID,
        page: int = 1,
        page_size: int | None = None,
        *,
        keyword: str | None = None,
        point_id: UUID | None = None,
        status: OrderStatus | None = None,
        payment_status: PaymentStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> OrderPage:
        """
        One page of order summaries.

        ``keyword`` is a literal substring of order code, point code or point name,
        case-insensitively.  ``page_size`` is clamped to the configured
        maximum; ``page`` below 1 is treated as 1.
        """
        page = max(page, 1)
        size = page_size or self._pagination.default_page_size
        size = max(1, min(size, self._pagination.max_page_size))

        conditions = [PointOrder.base_id == base_id]
        if keyword:
            conditions.append(
                keyword_filter(keyword, PointOrder.code, Point.code, Point.name)
            )
        if point_id is not None:
            conditions.append(PointOrder.point_id == point_id)
        if status is not None:
            conditions.append(PointOrder.status == OrderStatus(status))
        if payment_status is not None:
            conditions.append(PointOrder.payment_status == PaymentStatus(payment_status))
        if start_date is not None:
            conditions.append(PointOrder.order_date >= start_date)
        if end_date is not None:
            conditions.append(PointOrder.order_date <= end_date)

        total = self.session.execute(
            select(func.count(PointOrder.id))
            .join(Point, Point.id == PointOrder.point_id)
            .where(*conditions)
        ).scalar_one()

        orders = self.session.execute(
            select(PointOrder)
            .join(Point, Point.id == PointOrder.point_id)
            .where(*conditions)
            .order_by(
                PointOrder.order_date.desc(),
                PointOrder.created_at.desc(),
                PointOrder.code.desc(),
            )
            .offset((page - 1) * size)
            .limit(size)
        ).unique().scalars().all()

        return OrderPage(
            items=tuple(self._summary(o) for o in orders),
            total=total,
            page=page,
            page_size=size,
        )

    def stats(
        self,
        base_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> OrderStats:
        """
        Counts per status plus money totals.

        ``total_amount`` excludes cancelled orders; ``unpaid_amount`` sums
        ``total - paid`` over non-cancelled UNPAID and PARTIAL orders.
        """
        conditions = [PointOrder.base_id == base_id]
        if start_date is not None:
            conditions.append(PointOrder.order_date >= start_date)
        if end_date is not None:
            conditions.append(PointOrder.order_date <= end_date)

        rows = self.session.execute(
            select(
                PointOrder.status,
                PointOrder.payment_status,
                func.count(PointOrder.id),
                func.coalesce(func.sum(PointOrder.total_amount), 0),
                func.coalesce(func.sum(PointOrder.paid_amount), 0),
            )
            .where(*conditions)
            .group_by(PointOrder.status, PointOrder.payment_status)
        ).all()

        counts = {s: 0 for s in OrderStatus}
        total_amount = Decimal("0")
        unpaid_amount = Decimal("0")
        for status, payment_status, count, total, paid in rows:
            status = OrderStatus(status)
            counts[status] += count
            if status == OrderStatus.CANCELLED:
                continue
            total_amount += Decimal(total)
            if PaymentStatus(payment_status) != PaymentStatus.PAID:
                unpaid_amount += Decimal(total) - Decimal(paid)

        return OrderStats(
            total_orders=sum(counts.values()),
            pending_count=counts[OrderStatus.PENDING],
            confirmed_count=counts[OrderStatus.CONFIRMED],
            shipping_count=counts[OrderStatus.SHIPPING],
            delivered_count=counts[OrderStatus.DELIVERED],
            completed_count=counts[OrderStatus.COMPLETED],
            cancelled_count=counts[OrderStatus.CANCELLED],
            total_amount=total_amount,
            unpaid_amount=unpaid_amount,
        )

    @staticmethod
    def _summary(order: PointOrder) -> OrderSummary:
        return OrderSummary(
            id=order.id,
            code=order.code,
            point_id=order.point_id,
            point_code=order.point.code,
            point_name=order.point.name,
            order_date=order.order_date,
            status=OrderStatus(order.status),
            payment_status=PaymentStatus(order.payment_status),
            total_amount=order.total_amount,
            paid_amount=order.paid_amount,
            item_count=len(order.items),
        )
