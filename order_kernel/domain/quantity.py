"""
Quantity model (``order_kernel.domain.quantity``).

Responsibility
--------------
Lossless conversion between the nested units a goods record is counted in
(box / pack / piece) and the single linear "pack-equivalent" unit every
comparison, subtraction and price calculation runs on.

Architecture position
---------------------
**Kernel domain layer** -- pure functions, ZERO I/O.

Invariants enforced
-------------------
* ``from_total_packs(to_total_packs(b, p, k), k) == normalize(b, p, k)``
  for every ``k > 0`` and ``b, p >= 0``.
* A conversion constant ``<= 0`` is a data problem on the goods record and
  raises ``ConfigurationError``, never ``ValidationError``.
* A debit that would take stock below zero raises
  ``InsufficientStockError``; it never clamps to zero.
* Line totals are ``Decimal(total_packs) * unit_price``; box and pack are
  never priced separately.
"""

from __future__ import annotations

from decimal import Decimal

from order_kernel.exceptions import (
    ConfigurationError,
    InsufficientStockError,
    InvalidQuantityError,
    StockShortfall,
)


def _require_factor(value: int, name: str, goods_id: str | None) -> None:
    if value is None or value <= 0:
        raise ConfigurationError(
            f"{name} must be a positive integer, got {value!r}",
            goods_id=goods_id,
        )


def validate_quantity(box: int, pack: int, *, allow_zero: bool = False) -> None:
    """Reject negative quantities, and empty lines unless ``allow_zero``."""
    if box < 0 or pack < 0:
        raise InvalidQuantityError(box, pack, "quantities must not be negative")
    if not allow_zero and box == 0 and pack == 0:
        raise InvalidQuantityError(box, pack, "line must order at least one pack")


def to_total_packs(
    box: int, pack: int, pack_per_box: int, *, goods_id: str | None = None
) -> int:
    """Pack-equivalent total: ``box * pack_per_box + pack``."""
    _require_factor(pack_per_box, "pack_per_box", goods_id)
    return box * pack_per_box + pack


def from_total_packs(
    total: int, pack_per_box: int, *, goods_id: str | None = None
) -> tuple[int, int]:
    """Split a pack-equivalent total into ``(box, pack)`` with ``pack < pack_per_box``."""
    _require_factor(pack_per_box, "pack_per_box", goods_id)
    if total < 0:
        raise InvalidQuantityError(0, total, "total must not be negative")
    return divmod(total, pack_per_box)


def normalize(
    box: int, pack: int, pack_per_box: int, *, goods_id: str | None = None
) -> tuple[int, int]:
    """Carry surplus packs into boxes."""
    return from_total_packs(
        to_total_packs(box, pack, pack_per_box, goods_id=goods_id),
        pack_per_box,
        goods_id=goods_id,
    )


def to_total_pieces(
    box: int,
    pack: int,
    pack_per_box: int,
    piece_per_pack: int,
    *,
    goods_id: str | None = None,
) -> int:
    _require_factor(piece_per_pack, "piece_per_pack", goods_id)
    return to_total_packs(box, pack, pack_per_box, goods_id=goods_id) * piece_per_pack


def from_total_pieces(
    total: int,
    pack_per_box: int,
    piece_per_pack: int,
    *,
    goods_id: str | None = None,
) -> tuple[int, int, int]:
    """Split a piece total into ``(box, pack, piece)``."""
    _require_factor(piece_per_pack, "piece_per_pack", goods_id)
    if total < 0:
        raise InvalidQuantityError(0, 0, "piece total must not be negative")
    packs, piece = divmod(total, piece_per_pack)
    box, pack = from_total_packs(packs, pack_per_box, goods_id=goods_id)
    return box, pack, piece


def subtract_packs(
    available: int,
    required: int,
    *,
    goods_id: str | None = None,
    goods_name: str | None = None,
) -> int:
    """
    Remaining pack-equivalent stock after a debit.

    Raises:
        InsufficientStockError: if ``required > available``.
    """
    remaining = available - required
    if remaining < 0:
        raise InsufficientStockError(
            [StockShortfall(goods_id, goods_name, required, available)]
        )
    return remaining


def line_total(
    box: int,
    pack: int,
    pack_per_box: int,
    unit_price: Decimal,
    *,
    goods_id: str | None = None,
) -> Decimal:
    """Price of a line; ``unit_price`` is per pack."""
    packs = to_total_packs(box, pack, pack_per_box, goods_id=goods_id)
    return Decimal(packs) * Decimal(unit_price)
