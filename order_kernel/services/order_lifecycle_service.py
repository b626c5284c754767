"""
OrderLifecycleService -- the point-order state machine and its transaction boundary.

Responsibility:
    Runs every named order operation (create, update, confirm, cancel,
    ship, deliver, receive, complete, confirm_payment, delete) as one unit
    of work: capability check, order row lock, transition lookup in
    ``ORDER_WORKFLOW``, effects, commit.  Shipment additionally
    coordinates the stock ledger and the outbound movement recorder so the
    status change, every debit and every movement commit or roll back
    together.

Architecture position:
    Kernel > Services -- imperative shell.  The only service that commits.
    ``auto_commit=False`` hands the boundary to a caller composing this
    service into a larger unit of work.

Invariants enforced:
    - Transition legality comes from the workflow table only; any other
      ``(status, event)`` pair raises InvalidStateError before any write.
    - total_amount == sum(line total_price) after create and line replacement.
    - ship: batched sufficiency check, then under ``SELECT ... FOR UPDATE``
      on the order row and the stock rows a re-check, debits, and exactly
      one OutboundMovement per line.  A replay from the same location is a
      no-op; nothing is ever debited twice.
    - confirm_payment: read-modify-write of paid_amount under the order row
      lock; payment_notes only grow.
    - The order row's version counter turns a lost update into
      OptimisticLockError.

Failure modes:
    - CapabilityDeniedError before the order is read.
    - OrderNotFoundError / PointNotFoundError / LocationNotFoundError for
      missing rows and rows of another base.
    - ValidationError subclasses for bad input.
    - InsufficientStockError with per-goods shortfalls.
    - OptimisticLockError on a concurrent write to the same order.
    On any exception the session is rolled back (auto_commit=True) and the
    exception is re-raised.
"""

from __future__ import annotations

import time
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Mapping, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from order_kernel.domain.clock import Clock, SystemClock
from order_kernel.domain.dtos import OrderDetailsInput, OrderInfo, OrderLineInput
from order_kernel.domain.identity import ActorContext, Capability, CapabilityPolicy
from order_kernel.domain.order_workflow import (
    CompletionChannel,
    OrderEvent,
    OrderStatus,
    PaymentStatus,
    resolve,
)
from order_kernel.domain.payment import accumulate, append_note
from order_kernel.domain.quantity import line_total, validate_quantity
from order_kernel.domain.stock_contract import StockCheckItem, StockLedger
from order_kernel.exceptions import (
    EmptyOrderError,
    GoodsNotFoundError,
    InactivePointError,
    InsufficientStockError,
    InvalidPaymentAmountError,
    InvalidStateError,
    LocationNotFoundError,
    OptimisticLockError,
    OrderKernelError,
    OrderNotFoundError,
    PointNotFoundError,
    ValidationError,
)
from order_kernel.logging_config import LogContext, get_logger
from order_kernel.models.goods import Goods, PointGoods
from order_kernel.models.location import Location
from order_kernel.models.order import PointOrder, PointOrderItem
from order_kernel.models.point import Point
from order_kernel.services.movement_recorder import OutboundMovementRecorder
from order_kernel.services.order_code_service import OrderCodeService
from order_kernel.services.stock_ledger import SqlStockLedger

logger = get_logger("services.order_lifecycle")

T = TypeVar("T")


class OrderLifecycleService:
    """
    Orchestrates the point-order lifecycle.

    Contract:
        Every public operation takes an already-authenticated
        ``ActorContext`` and returns an ``OrderInfo`` snapshot taken after
        its writes were flushed.  Operations never return ORM entities.

    Usage:
        service = OrderLifecycleService.from_config(session, config)
        order = service.create_order(actor, point_id, [OrderLineInput(goods_id, 2, 0)])
        order = service.confirm(actor, order.id)
        order = service.ship(actor, order.id, location_id=warehouse_id)
    """

    def __init__(
        self,
        session: Session,
        policy: CapabilityPolicy,
        *,
        clock: Clock | None = None,
        stock_ledger: StockLedger | None = None,
        movement_recorder: OutboundMovementRecorder | None = None,
        code_service: OrderCodeService | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._policy = policy
        self._clock = clock or SystemClock()
        self._stock_ledger = stock_ledger or SqlStockLedger(session)
        self._recorder = movement_recorder or OutboundMovementRecorder(
            session, self._clock, self._stock_ledger
        )
        self._codes = code_service or OrderCodeService(session)
        self._auto_commit = auto_commit

    @classmethod
    def from_config(
        cls,
        session: Session,
        config,
        *,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ) -> OrderLifecycleService:
        """Build with the capability map and order code shape of an ``EngineConfig``."""
        return cls(
            session,
            CapabilityPolicy.from_config(config),
            clock=clock,
            code_service=OrderCodeService(session, config.order_code),
            auto_commit=auto_commit,
        )

    # ==================================================================
    # Operations
    # ==================================================================

    def create_order(
        self,
        actor: ActorContext,
        point_id: UUID,
        items: Sequence[OrderLineInput],
        *,
        order_date: date | None = None,
        shipping_address: str | None = None,
        shipping_phone: str | None = None,
        customer_notes: str | None = None,
    ) -> OrderInfo:
        """Create a PENDING order; shipping contact defaults to the point's own."""

        def work() -> OrderInfo:
            if not items:
                raise EmptyOrderError()
            point = self._session.get(Point, point_id)
            if point is None or point.base_id != actor.base_id:
                raise PointNotFoundError(str(point_id))
            if not point.is_active:
                raise InactivePointError(str(point_id))

            lines, total = self._build_lines(point, items)
            order = PointOrder(
                code=self._codes.generate(),
                base_id=actor.base_id,
                point=point,
                order_date=order_date or self._clock.now().date(),
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                total_amount=total,
                paid_amount=Decimal("0"),
                shipping_address=shipping_address or point.address,
                shipping_phone=shipping_phone or point.contact_phone,
                customer_notes=customer_notes,
                created_by_id=actor.user_id,
            )
            order.items = lines
            self._session.add(order)
            self._session.flush()
            LogContext.set(order_id=str(order.id), order_code=order.code)
            return OrderInfo.from_model(order)

        return self._run(
            "order_create",
            actor,
            Capability.CREATE,
            work,
            point_id=str(point_id),
            line_count=len(items),
        )

    def update_order(
        self,
        actor: ActorContext,
        order_id: UUID,
        *,
        items: Sequence[OrderLineInput] | None = None,
        details: OrderDetailsInput | None = None,
    ) -> OrderInfo:
        """
        Replace the lines (PENDING only) and/or edit non-status fields
        (any non-terminal state).  Both checks pass before anything is written.
        """

        def work() -> OrderInfo:
            if items is None and (details is None or not details.changes()):
                raise ValidationError("Nothing to update", field="items")
            order = self._lock_order(order_id, actor)
            if items is not None:
                resolve(order.status, OrderEvent.UPDATE_ITEMS, order_id=str(order.id))
            if details is not None:
                resolve(order.status, OrderEvent.UPDATE_DETAILS, order_id=str(order.id))

            if items is not None:
                if not items:
                    raise EmptyOrderError()
                lines, total = self._build_lines(order.point, items)
                order.items = lines
                order.total_amount = total
            if details is not None:
                for name, value in details.changes().items():
                    setattr(order, name, value)

            order.updated_by_id = actor.user_id
            self._session.flush()
            return OrderInfo.from_model(order)

        return self._run("order_update", actor, Capability.UPDATE, work, order_id=order_id)

    def confirm(self, actor: ActorContext, order_id: UUID) -> OrderInfo:
        def work() -> OrderInfo:
            order = self._lock_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.CONFIRM, order_id=str(order.id))
            order.status = OrderStatus(transition.to_state)
            order.confirmed_at = self._clock.now()
            order.confirmed_by_id = actor.user_id
            order.updated_by_id = actor.user_id
            self._session.flush()
            return OrderInfo.from_model(order)

        return self._run("order_confirm", actor, Capability.CONFIRM, work, order_id=order_id)

    def cancel(
        self,
        actor: ActorContext,
        order_id: UUID,
        reason: str | None = None,
    ) -> OrderInfo:
        def work() -> OrderInfo:
            order = self._lock_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.CANCEL, order_id=str(order.id))
            order.status = OrderStatus(transition.to_state)
            order.cancelled_at = self._clock.now()
            order.cancelled_by_id = actor.user_id
            order.updated_by_id = actor.user_id
            if reason:
                order.staff_notes = append_note(order.staff_notes, f"Cancelled: {reason}")
            self._session.flush()
            return OrderInfo.from_model(order)

        return self._run("order_cancel", actor, Capability.CANCEL, work, order_id=order_id)

    def ship(
        self,
        actor: ActorContext,
        order_id: UUID,
        location_id: UUID,
        *,
        tracking_number: str | None = None,
        delivery_person: str | None = None,
        delivery_phone: str | None = None,
    ) -> OrderInfo:
        """
        CONFIRMED -> SHIPPING, debiting ``location_id`` for every line.

        The first sufficiency check runs before any lock is taken so a
        short order is rejected cheaply; the decisive check runs again
        under row locks immediately before the debit.
        """

        def work() -> OrderInfo:
            order = self._load_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.SHIP, order_id=str(order.id))
            if transition.replay:
                return self._replay_ship(order, location_id)

            location = self._session.get(Location, location_id)
            if (
                location is None
                or location.base_id != actor.base_id
                or not location.is_active
            ):
                raise LocationNotFoundError(str(location_id))

            check_items = self._stock_items(order)
            precheck = self._stock_ledger.batch_check_stock(
                order.base_id, location_id, check_items
            )
            if not precheck.all_sufficient:
                raise InsufficientStockError(precheck.shortfalls, str(location_id))

            order = self._lock_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.SHIP, order_id=str(order.id))
            if transition.replay:
                return self._replay_ship(order, location_id)

            verified = self._stock_ledger.lock_and_verify(
                order.base_id, location_id, check_items
            )
            if not verified.all_sufficient:
                raise InsufficientStockError(verified.shortfalls, str(location_id))

            for detail in verified.details:
                self._stock_ledger.debit(
                    order.base_id, detail.goods_id, location_id, detail.required_packs
                )

            now = self._clock.now()
            order.status = OrderStatus(transition.to_state)
            order.shipped_at = now
            order.shipped_by_id = actor.user_id
            order.ship_location_id = location_id
            order.updated_by_id = actor.user_id
            if tracking_number is not None:
                order.tracking_number = tracking_number
            if delivery_person is not None:
                order.delivery_person = delivery_person
            if delivery_phone is not None:
                order.delivery_phone = delivery_phone
            self._session.flush()

            self._recorder.record_order_shipment(order, location_id, actor.user_id)
            return OrderInfo.from_model(order)

        return self._run(
            "order_ship",
            actor,
            Capability.SHIP,
            work,
            order_id=order_id,
            location_id=str(location_id),
        )

    def deliver(self, actor: ActorContext, order_id: UUID) -> OrderInfo:
        def work() -> OrderInfo:
            order = self._lock_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.DELIVER, order_id=str(order.id))
            order.status = OrderStatus(transition.to_state)
            order.delivered_at = self._clock.now()
            order.delivered_by_id = actor.user_id
            order.updated_by_id = actor.user_id
            self._session.flush()
            return OrderInfo.from_model(order)

        return self._run("order_deliver", actor, Capability.DELIVER, work, order_id=order_id)

    def receive(
        self,
        actor: ActorContext,
        order_id: UUID,
        *,
        actual_quantities: Mapping[UUID, tuple[int, int]] | None = None,
    ) -> OrderInfo:
        """
        Point owner acknowledges receipt: SHIPPING | DELIVERED -> COMPLETED.

        ``actual_quantities`` maps line id to the ``(box, pack)`` actually
        received, for discrepancy tracking.  A replay on a COMPLETED order
        returns it unchanged.
        """

        def work() -> OrderInfo:
            order = self._lock_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.RECEIVE, order_id=str(order.id))
            if transition.replay:
                logger.info("order_receive_replayed")
                return OrderInfo.from_model(order)

            if actual_quantities:
                self._record_actuals(order, actual_quantities)

            now = self._clock.now()
            order.status = OrderStatus(transition.to_state)
            if order.delivered_at is None:
                order.delivered_at = now
            order.completed_at = now
            order.completed_by_id = actor.user_id
            order.completion_channel = CompletionChannel.RECEIVE
            order.updated_by_id = actor.user_id
            self._session.flush()
            return OrderInfo.from_model(order)

        return self._run("order_receive", actor, Capability.RECEIVE, work, order_id=order_id)

    def complete(self, actor: ActorContext, order_id: UUID) -> OrderInfo:
        """Staff closes a delivered order: DELIVERED -> COMPLETED."""

        def work() -> OrderInfo:
            order = self._lock_order(order_id, actor)
            transition = resolve(order.status, OrderEvent.COMPLETE, order_id=str(order.id))
            order.status = OrderStatus(transition.to_state)
            order.completed_at = self._clock.now()
            order.completed_by_id = actor.user_id
            order.completion_channel = CompletionChannel.COMPLETE
            order.updated_by_id = actor.user_id
            self._session.flush()
            return OrderInfo.from_model(order)

        return self._run("order_complete", actor, Capability.COMPLETE, work, order_id=order_id)

    def confirm_payment(
        self,
        actor: ActorContext,
        order_id: UUID,
        amount: Decimal | int | str,
        *,
        method: str | None = None,
        notes: str | None = None,
    ) -> OrderInfo:
        """
        Fold one payment into paid_amount under the order row lock.

        Overpayment is accepted; there is no refund path.
        """

        def work() -> OrderInfo:
            value = self._parse_amount(amount)
            order = self._lock_order(order_id, actor)
            resolve(order.status, OrderEvent.CONFIRM_PAYMENT, order_id=str(order.id))
            fold = accumulate(
                paid_amount=order.paid_amount,
                total_amount=order.total_amount,
                payment_notes=order.payment_notes,
                amount=value,
                at=self._clock.now(),
                method=method,
                notes=notes,
            )
            order.paid_amount = fold.paid_amount
            order.payment_status = fold.payment_status
            order.payment_notes = fold.payment_notes
            order.updated_by_id = actor.user_id
            self._session.flush()
            logger.info(
                "payment_confirmed",
                extra={
                    "amount": value,
                    "paid_amount": fold.paid_amount,
                    "payment_status": fold.payment_status.value,
                },
            )
            return OrderInfo.from_model(order)

        return self._run(
            "order_confirm_payment",
            actor,
            Capability.PAYMENT,
            work,
            order_id=order_id,
            amount=str(amount),
        )

    def delete_order(self, actor: ActorContext, order_id: UUID) -> OrderInfo:
        """Remove a PENDING or CANCELLED order; returns its last snapshot."""

        def work() -> OrderInfo:
            order = self._lock_order(order_id, actor)
            resolve(order.status, OrderEvent.DELETE, order_id=str(order.id))
            snapshot = OrderInfo.from_model(order)
            self._session.delete(order)
            self._session.flush()
            return snapshot

        return self._run("order_delete", actor, Capability.DELETE, work, order_id=order_id)

    def get_order(self, actor: ActorContext, order_id: UUID) -> OrderInfo:
        """Read one order of the actor's base (no lock, no writes)."""
        self._policy.require(actor, Capability.READ)
        return OrderInfo.from_model(self._load_order(order_id, actor))

    # ==================================================================
    # Unit of work
    # ==================================================================

    def _run(
        self,
        operation: str,
        actor: ActorContext,
        capability: str,
        work: Callable[[], T],
        *,
        order_id: UUID | None = None,
        **fields,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.user_id),
            base_id=str(actor.base_id),
            order_id=str(order_id) if order_id is not None else None,
        ):
            logger.info(f"{operation}_started", extra=fields)
            t0 = time.monotonic()
            try:
                self._policy.require(actor, capability)
                result = work()
                if self._auto_commit:
                    self._session.commit()
            except StaleDataError as exc:
                self._fail(operation, t0, exc)
                raise OptimisticLockError("PointOrder", str(order_id)) from exc
            except Exception as exc:
                self._fail(operation, t0, exc)
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            extra = {"duration_ms": duration_ms}
            if isinstance(result, OrderInfo):
                extra.update(
                    order_code=result.code,
                    status=result.status.value,
                    payment_status=result.payment_status.value,
                )
            logger.info(f"{operation}_completed", extra=extra)
            return result

    def _fail(self, operation: str, t0: float, exc: Exception) -> None:
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        if self._auto_commit:
            self._session.rollback()
        if isinstance(exc, (OrderKernelError, StaleDataError)):
            logger.warning(
                f"{operation}_failed",
                extra={
                    "duration_ms": duration_ms,
                    "error_code": getattr(exc, "code", "OPTIMISTIC_LOCK_CONFLICT"),
                    "error": str(exc),
                },
            )
        else:
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": duration_ms},
                exc_info=True,
            )

    # ==================================================================
    # Helpers
    # ==================================================================

    def _load_order(self, order_id: UUID, actor: ActorContext) -> PointOrder:
        order = self._session.get(PointOrder, order_id)
        if order is None or order.base_id != actor.base_id:
            raise OrderNotFoundError(str(order_id))
        return order

    def _lock_order(self, order_id: UUID, actor: ActorContext) -> PointOrder:
        """``SELECT ... FOR UPDATE`` on the order row, refreshing any cached state."""
        order = self._session.execute(
            select(PointOrder)
            .where(PointOrder.id == order_id)
            .with_for_update(of=PointOrder)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None or order.base_id != actor.base_id:
            raise OrderNotFoundError(str(order_id))
        LogContext.set(order_code=order.code)
        return order

    def _build_lines(
        self,
        point: Point,
        items: Sequence[OrderLineInput],
    ) -> tuple[list[PointOrderItem], Decimal]:
        goods_ids = {item.goods_id for item in items}
        goods_by_id = {
            g.id: g
            for g in self._session.execute(
                select(Goods).where(Goods.id.in_(goods_ids))
            ).scalars()
        }
        overrides = {
            pg.goods_id: pg
            for pg in self._session.execute(
                select(PointGoods).where(
                    PointGoods.point_id == point.id,
                    PointGoods.goods_id.in_(goods_ids),
                    PointGoods.is_active.is_(True),
                )
            ).scalars()
        }

        lines: list[PointOrderItem] = []
        total = Decimal("0")
        for line_no, item in enumerate(items, start=1):
            goods = goods_by_id.get(item.goods_id)
            if goods is None:
                raise GoodsNotFoundError(str(item.goods_id))
            validate_quantity(item.box_quantity, item.pack_quantity)

            if item.unit_price is not None:
                unit_price = Decimal(item.unit_price)
            elif item.goods_id in overrides:
                unit_price = overrides[item.goods_id].effective_price
            else:
                unit_price = goods.retail_price
            if unit_price < 0:
                raise ValidationError(
                    f"Unit price must not be negative, got {unit_price}",
                    field="unit_price",
                )

            total_price = line_total(
                item.box_quantity,
                item.pack_quantity,
                goods.pack_per_box,
                unit_price,
                goods_id=str(goods.id),
            )
            total += total_price
            line = PointOrderItem(
                goods_id=goods.id,
                line_no=line_no,
                box_quantity=item.box_quantity,
                pack_quantity=item.pack_quantity,
                unit_price=unit_price,
                total_price=total_price,
            )
            line.goods = goods
            lines.append(line)
        return lines, total

    @staticmethod
    def _stock_items(order: PointOrder) -> list[StockCheckItem]:
        return [
            StockCheckItem(
                goods_id=item.goods_id,
                box_quantity=item.box_quantity,
                pack_quantity=item.pack_quantity,
            )
            for item in order.items
        ]

    def _replay_ship(self, order: PointOrder, location_id: UUID) -> OrderInfo:
        if order.ship_location_id != location_id:
            raise InvalidStateError(
                order_id=str(order.id),
                event=OrderEvent.SHIP.value,
                current_state=OrderStatus(order.status).value,
                required_states={OrderStatus.CONFIRMED.value},
            )
        logger.info("order_ship_replayed", extra={"location_id": str(location_id)})
        return OrderInfo.from_model(order)

    @staticmethod
    def _record_actuals(
        order: PointOrder,
        actual_quantities: Mapping[UUID, tuple[int, int]],
    ) -> None:
        by_id = {item.id: item for item in order.items}
        for line_id, (box, pack) in actual_quantities.items():
            item = by_id.get(line_id)
            if item is None:
                raise ValidationError(
                    f"Line {line_id} does not belong to order {order.code}",
                    field="actual_quantities",
                )
            validate_quantity(box, pack, allow_zero=True)
            item.actual_box_qty = box
            item.actual_pack_qty = pack

    @staticmethod
    def _parse_amount(amount: Decimal | int | str) -> Decimal:
        if isinstance(amount, float):
            amount = str(amount)
        try:
            return Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidPaymentAmountError(str(amount)) from None

