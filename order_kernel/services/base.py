"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session contract.  Services persist with
    ``session.flush()`` inside the caller's transaction and never commit
    or roll back themselves; ``OrderLifecycleService`` (or the caller that
    composes it with ``auto_commit=False``) owns the boundary.

Architecture position:
    Kernel > Services -- imperative shell.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those live in ``selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
