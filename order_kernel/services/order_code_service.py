"""
OrderCodeService -- human-facing order codes.

Codes are ``prefix`` + ``length`` characters drawn with ``secrets.choice``
from the configured alphabet (default ``PTO-`` + 11 base36 characters).
A candidate already present in ``point_orders`` is discarded and redrawn,
up to ``max_attempts`` times.  The ``uq_point_order_code`` constraint
backs up the check against a concurrent insert of the same code.
"""

from __future__ import annotations

import secrets
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_config.schema import OrderCodeConfig
from order_kernel.exceptions import OrderCodeExhaustedError
from order_kernel.logging_config import get_logger
from order_kernel.models.order import PointOrder
from order_kernel.services.base import BaseService

logger = get_logger("services.order_code")


class OrderCodeService(BaseService):
    def __init__(
        self,
        session: Session,
        config: OrderCodeConfig | None = None,
        choice: Callable[[str], str] = secrets.choice,
    ):
        super().__init__(session)
        self._config = config or OrderCodeConfig()
        self._choice = choice

    def candidate(self) -> str:
        cfg = self._config
        return cfg.prefix + "".join(
            self._choice(cfg.alphabet) for _ in range(cfg.length)
        )

    def generate(self) -> str:
        """
        Return a code not yet used by any order.

        Raises:
            OrderCodeExhaustedError: after ``max_attempts`` collisions.
        """
        attempts = self._config.max_attempts
        for attempt in range(1, attempts + 1):
            code = self.candidate()
            taken = self.session.execute(
                select(PointOrder.id).where(PointOrder.code == code)
            ).first()
            if taken is None:
                return code
            logger.warning(
                "order_code_collision",
                extra={"attempt": attempt, "max_attempts": attempts},
            )
        raise OrderCodeExhaustedError(attempts)
