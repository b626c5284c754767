"""
Module: order_kernel.selectors.base
Responsibility: Abstract base class for the read-only query selectors.
Architecture position: Kernel > Selectors.  May import from models/ and the
    DTOs of domain/dtos.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never call session.add(), delete(), flush() or
      commit().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Tenant scoping: every query that takes a base_id filters on it.
"""

from abc import ABC

from sqlalchemy import ColumnElement, String, func, or_
from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  The caller owns the session and its transaction.
    """

    def __init__(self, session: Session):
        self.session = session


def keyword_filter(keyword: str, *columns: ColumnElement[str]) -> ColumnElement[bool]:
    """
    Case-insensitive literal substring match of ``keyword`` on any column.

    ``%`` and ``_`` in the keyword are escaped, so they match only themselves.
    """
    term = keyword.strip().lower()
    return or_(
        *(
            func.lower(col, type_=String()).contains(term, autoescape=True)
            for col in columns
        )
    )
