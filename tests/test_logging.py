"""Tests for the structured logging system (order_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from order_kernel.domain.order_workflow import OrderStatus
from order_kernel.exceptions import InsufficientStockError, StockShortfall
from order_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state around each test, then restore the suite's setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        get_logger("test").info("hello")

        (record,) = _parse_all_logs(stream)
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["logger"] == "order_kernel.test"
        assert "ts" in record

    def test_extra_fields_are_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        order_id = uuid4()

        get_logger("test").info(
            "typed",
            extra={"order": order_id, "amount": Decimal("1.50"), "status": OrderStatus.SHIPPING},
        )

        (record,) = _parse_all_logs(stream)
        assert record["order"] == str(order_id)
        assert record["amount"] == "1.50"
        assert record["status"] == "SHIPPING"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        error = InsufficientStockError([StockShortfall("g-1", "Water", 20, 15)], "loc-1")

        try:
            raise error
        except InsufficientStockError:
            get_logger("test").error("ship_failed", exc_info=True)

        (record,) = _parse_all_logs(stream)
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_location_id"] == "loc-1"
        assert record["exc_shortfalls"][0]["required_packs"] == 20
        assert "traceback" in record


class TestLogContext:
    def test_context_fields_are_merged(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        LogContext.set(correlation_id="c-1", order_code="PTO-1")
        get_logger("test").info("with_context")

        (record,) = _parse_all_logs(stream)
        assert record["correlation_id"] == "c-1"
        assert record["order_code"] == "PTO-1"

    def test_bind_restores_everything_on_exit(self):
        LogContext.set(actor_id="outer")

        with LogContext.bind(correlation_id="inner", actor_id="a-2"):
            LogContext.set(order_code="PTO-2")
            assert LogContext.get_all() == {
                "correlation_id": "inner",
                "actor_id": "a-2",
                "order_code": "PTO-2",
            }

        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_clear(self):
        LogContext.set(base_id="b-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="warehouse"):
            LogContext.set(warehouse="WH-1")
        with pytest.raises(ValueError):
            with LogContext.bind(warehouse="WH-1"):
                pass
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)

        assert len(logging.getLogger("order_kernel").handlers) == 1

    def test_level_respected(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)

        log = get_logger("test")
        log.info("dropped")
        log.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(level="warning", handler=handler)

        log = get_logger("test")
        log.info("dropped")
        log.error("kept")

        assert [r["level"] for r in _parse_all_logs(stream)] == ["ERROR"]
