"""Order code generation and collision handling."""

from itertools import cycle

import pytest

from order_config.schema import OrderCodeConfig
from order_kernel.domain.dtos import OrderLineInput
from order_kernel.exceptions import OrderCodeExhaustedError
from order_kernel.services.order_code_service import OrderCodeService


def test_candidate_shape(session):
    code = OrderCodeService(session).candidate()

    assert code.startswith("PTO-")
    assert len(code) == 15
    assert all(c.isupper() or c.isdigit() for c in code[4:])


def test_configured_shape(session):
    svc = OrderCodeService(session, OrderCodeConfig(prefix="X", length=3, alphabet="ab"))
    code = svc.candidate()
    assert code[0] == "X" and set(code[1:]) <= {"a", "b"}


def test_collision_is_redrawn(session, service, admin, point, goods, captured_logs):
    taken = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])
    suffix = taken.code[len("PTO-"):]
    draws = iter(list(suffix) + ["Z"] * 11)
    svc = OrderCodeService(session, choice=lambda alphabet: next(draws))

    code = svc.generate()

    assert code == "PTO-" + "Z" * 11
    assert any(r["message"] == "order_code_collision" for r in captured_logs())


def test_exhausted(session, service, admin, point, goods):
    taken = service.create_order(admin, point.id, [OrderLineInput(goods.id, 1, 0)])
    draws = cycle(taken.code[len("PTO-"):])
    svc = OrderCodeService(
        session, OrderCodeConfig(max_attempts=3), choice=lambda alphabet: next(draws)
    )

    with pytest.raises(OrderCodeExhaustedError) as exc_info:
        svc.generate()
    assert exc_info.value.attempts == 3
