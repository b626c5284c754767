"""
Payment accumulation (``order_kernel.domain.payment``).

Pure fold of payment confirmations into an order's paid amount, derived
payment status and append-only note log.  Serialization of concurrent
confirmations is the caller's job (the order row lock); this module only
does the arithmetic.

Invariants enforced
-------------------
* ``amount > 0`` for every confirmation; ``paid_amount`` never decreases.
* ``UNPAID`` iff paid <= 0, ``PAID`` iff paid >= total, else ``PARTIAL``.
* Notes are appended, never rewritten: the previous log is always a prefix
  of the new one.
* Overpayment is accepted; nothing here caps ``paid_amount`` at the total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from order_kernel.domain.order_workflow import PaymentStatus
from order_kernel.exceptions import InvalidPaymentAmountError

NOTE_SEPARATOR = "\n"
NOTE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class PaymentFold:
    """Result of applying one confirmation to an order's payment state."""

    paid_amount: Decimal
    payment_status: PaymentStatus
    payment_notes: str
    entry: str


def derive_payment_status(paid_amount: Decimal, total_amount: Decimal) -> PaymentStatus:
    if paid_amount <= 0:
        return PaymentStatus.UNPAID
    if paid_amount >= total_amount:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def format_payment_note(
    at: datetime,
    amount: Decimal,
    method: str | None = None,
    notes: str | None = None,
) -> str:
    """One human-readable log entry, e.g. ``[2024-01-01 12:00:00] paid 60.00 via CASH - deposit``."""
    entry = f"[{at.strftime(NOTE_TIMESTAMP_FORMAT)}] paid {_note_amount(amount)}"
    if method:
        entry += f" via {method}"
    if notes:
        entry += f" - {' '.join(notes.split())}"
    return entry


def _note_amount(amount: Decimal) -> str:
    # Two decimals unless that would drop precision.
    if amount.as_tuple().exponent >= -2:
        return f"{amount:.2f}"
    return f"{amount:f}"


def append_note(existing: str | None, entry: str) -> str:
    if not existing:
        return entry
    return f"{existing}{NOTE_SEPARATOR}{entry}"


def split_notes(notes: str | None) -> list[str]:
    if not notes:
        return []
    return notes.split(NOTE_SEPARATOR)


def accumulate(
    *,
    paid_amount: Decimal,
    total_amount: Decimal,
    payment_notes: str | None,
    amount: Decimal,
    at: datetime,
    method: str | None = None,
    notes: str | None = None,
) -> PaymentFold:
    """
    Apply one confirmation.

    Raises:
        InvalidPaymentAmountError: if ``amount <= 0``.
    """
    amount = Decimal(amount)
    if not amount.is_finite() or amount <= 0:
        raise InvalidPaymentAmountError(str(amount))

    new_paid = Decimal(paid_amount or 0) + amount
    entry = format_payment_note(at, amount, method, notes)
    return PaymentFold(
        paid_amount=new_paid,
        payment_status=derive_payment_status(new_paid, Decimal(total_amount)),
        payment_notes=append_note(payment_notes, entry),
        entry=entry,
    )
