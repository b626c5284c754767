"""
Payment confirmation through the lifecycle service.

Scenario C: 60 then 40 on a 100.00 order gives PARTIAL then PAID, a final
paid_amount of 100.00 and two time-ordered note entries.
"""

from decimal import Decimal

import pytest

from order_kernel.domain.dtos import OrderLineInput
from order_kernel.domain.order_workflow import PaymentStatus
from order_kernel.domain.payment import split_notes
from order_kernel.exceptions import InvalidPaymentAmountError, InvalidStateError


def test_scenario_c(service, finance_clerk, confirmed_order, deterministic_clock):
    first = service.confirm_payment(
        finance_clerk, confirmed_order.id, Decimal("60"), method="CASH", notes="deposit"
    )
    deterministic_clock.advance(90)
    second = service.confirm_payment(
        finance_clerk, confirmed_order.id, Decimal("40"), method="TRANSFER"
    )

    assert first.payment_status == PaymentStatus.PARTIAL
    assert first.paid_amount == Decimal("60")
    assert second.payment_status == PaymentStatus.PAID
    assert second.paid_amount == Decimal("100")
    assert second.unpaid_amount == Decimal("0")

    entries = split_notes(second.payment_notes)
    assert entries == [
        "[2024-01-01 12:00:00] paid 60.00 via CASH - deposit",
        "[2024-01-01 12:01:30] paid 40.00 via TRANSFER",
    ]
    assert second.payment_notes.startswith(first.payment_notes)


def test_string_amount_accepted(service, finance_clerk, confirmed_order):
    order = service.confirm_payment(finance_clerk, confirmed_order.id, "25.50")
    assert order.paid_amount == Decimal("25.50")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), "abc", "NaN"])
def test_invalid_amount_rejected(service, finance_clerk, confirmed_order, amount):
    with pytest.raises(InvalidPaymentAmountError):
        service.confirm_payment(finance_clerk, confirmed_order.id, amount)

    assert service.get_order(finance_clerk, confirmed_order.id).paid_amount == Decimal("0")


def test_sub_cent_amount_is_noted_exactly(service, finance_clerk, confirmed_order):
    order = service.confirm_payment(finance_clerk, confirmed_order.id, "0.004")

    assert order.paid_amount == Decimal("0.004")
    assert order.payment_status == PaymentStatus.PARTIAL
    assert split_notes(order.payment_notes) == ["[2024-01-01 12:00:00] paid 0.004"]


def test_overpayment_is_recorded(service, finance_clerk, confirmed_order):
    order = service.confirm_payment(finance_clerk, confirmed_order.id, Decimal("150"))

    assert order.paid_amount == Decimal("150")
    assert order.payment_status == PaymentStatus.PAID
    assert order.unpaid_amount == Decimal("-50")


def test_pending_order_cannot_be_paid(service, admin, point, goods):
    order = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])

    with pytest.raises(InvalidStateError) as exc_info:
        service.confirm_payment(admin, order.id, Decimal("10"))
    assert exc_info.value.required_states == (
        "COMPLETED", "CONFIRMED", "DELIVERED", "SHIPPING",
    )


def test_payment_after_completion(
    service, admin, warehouse_staff, finance_clerk, confirmed_order, goods, warehouse, set_stock
):
    set_stock(goods, warehouse, 2, 0)
    service.ship(warehouse_staff, confirmed_order.id, warehouse.id)
    service.deliver(warehouse_staff, confirmed_order.id)
    service.complete(warehouse_staff, confirmed_order.id)

    order = service.confirm_payment(finance_clerk, confirmed_order.id, Decimal("100"))

    assert order.payment_status == PaymentStatus.PAID
