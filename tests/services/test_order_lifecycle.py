"""
Order lifecycle through OrderLifecycleService.

Verifies:
- create/update pricing and total_amount == sum(line total_price)
- every named transition and its audit stamps
- illegal transitions are rejected with no writes
- capability and tenant checks happen before the order is touched
- structured started/completed/failed logging
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from order_kernel.domain.dtos import OrderDetailsInput, OrderLineInput
from order_kernel.domain.order_workflow import (
    CompletionChannel,
    OrderStatus,
    PaymentStatus,
)
from order_kernel.exceptions import (
    CapabilityDeniedError,
    EmptyOrderError,
    GoodsNotFoundError,
    InactivePointError,
    InvalidQuantityError,
    InvalidStateError,
    OptimisticLockError,
    OrderNotFoundError,
    PointNotFoundError,
    ValidationError,
)
from order_kernel.models.order import PointOrder
from order_kernel.selectors.order_selector import OrderSelector


class TestCreateOrder:
    def test_scenario_a_total(self, service, admin, point, goods, deterministic_clock):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 2, 0)])

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.UNPAID
        assert order.total_amount == Decimal("100")
        assert order.paid_amount == Decimal("0")
        assert order.code.startswith("PTO-")
        assert len(order.code) == len("PTO-") + 11
        assert order.order_date == deterministic_clock.now().date()
        assert order.created_by_id == admin.user_id

        (line,) = order.lines
        assert line.total_packs == 20
        assert line.unit_price == Decimal("5")
        assert line.total_price == Decimal("100")

    def test_total_is_sum_of_lines(self, service, admin, point, make_goods):
        water = make_goods(pack_per_box=10, retail_price=Decimal("5"))
        juice = make_goods(pack_per_box=6, retail_price=Decimal("2.50"))

        order = service.create_order(
            admin,
            point.id,
            [
                OrderLineInput(water.id, 1, 3),
                OrderLineInput(juice.id, 0, 4, unit_price=Decimal("3")),
            ],
        )

        assert [l.total_price for l in order.lines] == [Decimal("65"), Decimal("12")]
        assert order.total_amount == sum(l.total_price for l in order.lines)

    def test_point_price_override(self, service, admin, point, goods, point_price):
        point_price(point, goods, Decimal("4"))

        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 2, 0)])

        assert order.total_amount == Decimal("80")

    def test_shipping_contact_defaults_to_point(self, service, admin, point, goods):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 0, 1)])
        assert order.shipping_address == point.address
        assert order.shipping_phone == point.contact_phone

        other = service.create_order(
            admin, point.id, [OrderLineInput(goods.id, 0, 1)],
            shipping_address="Dock 4", order_date=date(2024, 2, 1),
        )
        assert other.shipping_address == "Dock 4"
        assert other.order_date == date(2024, 2, 1)

    def test_empty_items(self, service, admin, point):
        with pytest.raises(EmptyOrderError):
            service.create_order(admin, point.id, [])

    def test_unknown_goods_is_a_validation_error(self, service, admin, point):
        with pytest.raises(GoodsNotFoundError) as exc_info:
            service.create_order(admin, point.id, [OrderLineInput(uuid4(), 1, 0)])
        assert isinstance(exc_info.value, ValidationError)

    def test_negative_quantity(self, service, admin, point, goods):
        with pytest.raises(InvalidQuantityError):
            service.create_order(admin, point.id, [OrderLineInput(goods.id, -1, 0)])

    def test_negative_unit_price(self, service, admin, point, goods):
        with pytest.raises(ValidationError):
            service.create_order(
                admin, point.id,
                [OrderLineInput(goods.id, 1, 0, unit_price=Decimal("-1"))],
            )

    def test_inactive_point(self, service, admin, point, goods, session):
        point.is_active = False
        session.commit()

        with pytest.raises(InactivePointError):
            service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

    def test_point_of_other_base_is_not_found(
        self, service, make_actor, other_base_id, point, goods
    ):
        outsider = make_actor("base_admin", base=other_base_id)
        with pytest.raises(PointNotFoundError):
            service.create_order(outsider, point.id, [OrderLineInput(goods.id, 1, 0)])

    def test_failed_create_writes_nothing(self, service, admin, point, goods, session):
        with pytest.raises(InvalidQuantityError):
            service.create_order(
                admin, point.id,
                [OrderLineInput(goods.id, 1, 0), OrderLineInput(goods.id, 0, -2)],
            )
        assert session.execute(select(PointOrder)).first() is None


class TestUpdateOrder:
    def test_replace_lines_recomputes_total(self, service, admin, point, goods):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 2, 0)])

        updated = service.update_order(
            admin, order.id, items=[OrderLineInput(goods.id, 0, 7)]
        )

        assert len(updated.lines) == 1
        assert updated.lines[0].pack_quantity == 7
        assert updated.total_amount == Decimal("35")

    def test_items_locked_after_confirm(self, service, admin, confirmed_order, goods):
        with pytest.raises(InvalidStateError) as exc_info:
            service.update_order(
                admin, confirmed_order.id, items=[OrderLineInput(goods.id, 1, 0)]
            )
        assert exc_info.value.required_states == ("PENDING",)

    def test_details_editable_until_terminal(self, service, admin, confirmed_order):
        updated = service.update_order(
            admin, confirmed_order.id,
            details=OrderDetailsInput(tracking_number="TRK-1", staff_notes="fragile"),
        )
        assert updated.tracking_number == "TRK-1"
        assert updated.staff_notes == "fragile"
        assert updated.total_amount == confirmed_order.total_amount

    def test_details_rejected_on_cancelled(self, service, admin, point, goods):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])
        service.cancel(admin, order.id)

        with pytest.raises(InvalidStateError):
            service.update_order(
                admin, order.id, details=OrderDetailsInput(customer_notes="late")
            )

    def test_nothing_to_update(self, service, admin, confirmed_order):
        with pytest.raises(ValidationError):
            service.update_order(admin, confirmed_order.id, details=OrderDetailsInput())


class TestTransitions:
    def test_confirm_stamps(self, service, admin, confirmed_order, deterministic_clock):
        assert confirmed_order.status == OrderStatus.CONFIRMED
        assert confirmed_order.confirmed_by_id == admin.user_id
        assert confirmed_order.confirmed_at == deterministic_clock.now()

    def test_cancel_from_pending_with_reason(self, service, admin, point, goods):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

        cancelled = service.cancel(admin, order.id, reason="duplicate")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_by_id == admin.user_id
        assert "Cancelled: duplicate" in cancelled.staff_notes

    def test_cancel_after_confirm_rejected(self, service, admin, confirmed_order):
        with pytest.raises(InvalidStateError):
            service.cancel(admin, confirmed_order.id)

    def test_full_path_via_complete(
        self, service, admin, warehouse_staff, confirmed_order, goods, warehouse, set_stock
    ):
        set_stock(goods, warehouse, 5, 0)

        shipped = service.ship(warehouse_staff, confirmed_order.id, warehouse.id)
        delivered = service.deliver(warehouse_staff, shipped.id)
        completed = service.complete(warehouse_staff, delivered.id)

        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.delivered_by_id == warehouse_staff.user_id
        assert completed.status == OrderStatus.COMPLETED
        assert completed.completion_channel == CompletionChannel.COMPLETE
        assert completed.completed_by_id == warehouse_staff.user_id

    def test_receive_from_shipping_sets_delivered_at(
        self, service, warehouse_staff, point_owner, confirmed_order,
        goods, warehouse, set_stock, deterministic_clock,
    ):
        set_stock(goods, warehouse, 5, 0)
        shipped = service.ship(warehouse_staff, confirmed_order.id, warehouse.id)
        deterministic_clock.advance(3600)

        received = service.receive(point_owner, shipped.id)

        assert received.status == OrderStatus.COMPLETED
        assert received.completion_channel == CompletionChannel.RECEIVE
        assert received.delivered_at == deterministic_clock.now()
        assert received.completed_by_id == point_owner.user_id

    def test_receive_records_actual_quantities(
        self, service, warehouse_staff, point_owner, confirmed_order,
        goods, warehouse, set_stock,
    ):
        set_stock(goods, warehouse, 5, 0)
        shipped = service.ship(warehouse_staff, confirmed_order.id, warehouse.id)
        line_id = shipped.lines[0].id

        received = service.receive(point_owner, shipped.id, actual_quantities={line_id: (1, 8)})

        assert received.lines[0].actual_box_qty == 1
        assert received.lines[0].actual_pack_qty == 8

    def test_receive_rejects_foreign_line(
        self, service, warehouse_staff, point_owner, confirmed_order,
        goods, warehouse, set_stock,
    ):
        set_stock(goods, warehouse, 5, 0)
        service.ship(warehouse_staff, confirmed_order.id, warehouse.id)

        with pytest.raises(ValidationError):
            service.receive(point_owner, confirmed_order.id, actual_quantities={uuid4(): (1, 0)})

    def test_receive_is_idempotent(
        self, service, warehouse_staff, point_owner, confirmed_order,
        goods, warehouse, set_stock, deterministic_clock,
    ):
        set_stock(goods, warehouse, 5, 0)
        service.ship(warehouse_staff, confirmed_order.id, warehouse.id)
        first = service.receive(point_owner, confirmed_order.id)
        deterministic_clock.advance(60)

        again = service.receive(point_owner, confirmed_order.id)

        assert again.status == OrderStatus.COMPLETED
        assert again.completed_at == first.completed_at
        assert again.version == first.version

    def test_complete_requires_delivered(
        self, service, warehouse_staff, confirmed_order, goods, warehouse, set_stock
    ):
        set_stock(goods, warehouse, 5, 0)
        service.ship(warehouse_staff, confirmed_order.id, warehouse.id)

        with pytest.raises(InvalidStateError) as exc_info:
            service.complete(warehouse_staff, confirmed_order.id)
        assert exc_info.value.current_state == "SHIPPING"
        assert exc_info.value.required_states == ("DELIVERED",)

    def test_illegal_transition_leaves_order_untouched(
        self, service, admin, point, goods, warehouse, session
    ):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

        with pytest.raises(InvalidStateError):
            service.ship(admin, order.id, warehouse.id)
        with pytest.raises(InvalidStateError):
            service.deliver(admin, order.id)

        reloaded = OrderSelector(session).get(order.id, admin.base_id)
        assert reloaded.status == OrderStatus.PENDING
        assert reloaded.version == order.version


class TestDelete:
    def test_delete_pending(self, service, admin, point, goods, session):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

        snapshot = service.delete_order(admin, order.id)

        assert snapshot.code == order.code
        assert OrderSelector(session).get(order.id, admin.base_id) is None

    def test_delete_cancelled(self, service, admin, point, goods, session):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])
        service.cancel(admin, order.id)

        service.delete_order(admin, order.id)

        assert OrderSelector(session).get(order.id, admin.base_id) is None

    def test_delete_confirmed_rejected(self, service, admin, confirmed_order, session):
        with pytest.raises(InvalidStateError):
            service.delete_order(admin, confirmed_order.id)
        assert OrderSelector(session).get(confirmed_order.id, admin.base_id) is not None


class TestAccessControl:
    def test_capability_checked_before_lookup(self, service, warehouse_staff):
        # A missing order would be OrderNotFoundError; the capability check wins.
        with pytest.raises(CapabilityDeniedError) as exc_info:
            service.confirm(warehouse_staff, uuid4())
        assert exc_info.value.capability == "order.confirm"

    def test_owner_cannot_ship(self, service, point_owner, confirmed_order, warehouse):
        with pytest.raises(CapabilityDeniedError):
            service.ship(point_owner, confirmed_order.id, warehouse.id)

    def test_other_base_sees_not_found(
        self, service, make_actor, other_base_id, confirmed_order
    ):
        outsider = make_actor("super_admin", base=other_base_id)

        with pytest.raises(OrderNotFoundError):
            service.get_order(outsider, confirmed_order.id)
        with pytest.raises(OrderNotFoundError):
            service.confirm_payment(outsider, confirmed_order.id, Decimal("10"))

    def test_get_order(self, service, finance_clerk, confirmed_order):
        assert service.get_order(finance_clerk, confirmed_order.id) == confirmed_order


class TestUnitOfWork:
    def test_commit_conflict_maps_to_optimistic_lock(
        self, service, admin, confirmed_order, session, monkeypatch
    ):
        def stale_commit():
            raise StaleDataError("UPDATE statement on table 'point_orders' expected 1 row")

        monkeypatch.setattr(session, "commit", stale_commit)

        with pytest.raises(OptimisticLockError) as exc_info:
            service.confirm_payment(admin, confirmed_order.id, Decimal("10"))

        assert exc_info.value.entity_type == "PointOrder"
        assert exc_info.value.entity_id == str(confirmed_order.id)

    def test_auto_commit_false_leaves_transaction_open(
        self, session, config, deterministic_clock, admin, point, goods
    ):
        from order_kernel.services.order_lifecycle_service import OrderLifecycleService

        svc = OrderLifecycleService.from_config(
            session, config, clock=deterministic_clock, auto_commit=False
        )
        order = svc.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

        session.rollback()

        assert OrderSelector(session).get(order.id, admin.base_id) is None


class TestLogging:
    def test_started_and_completed(self, service, admin, point, goods, captured_logs):
        order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

        records = captured_logs()
        started = next(r for r in records if r["message"] == "order_create_started")
        completed = next(r for r in records if r["message"] == "order_create_completed")
        assert started["actor_id"] == str(admin.user_id)
        assert started["correlation_id"] == completed["correlation_id"]
        assert completed["order_code"] == order.code
        assert completed["status"] == "PENDING"
        assert "duration_ms" in completed

    def test_failed_logged_with_code(self, service, admin, confirmed_order, captured_logs):
        with pytest.raises(InvalidStateError):
            service.cancel(admin, confirmed_order.id)

        failed = [r for r in captured_logs() if r["message"] == "order_cancel_failed"]
        assert len(failed) == 1
        assert failed[0]["level"] == "WARNING"
        assert failed[0]["error_code"] == "INVALID_STATE"
