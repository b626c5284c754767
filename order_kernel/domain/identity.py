"""
Actor identity and capability policy (``order_kernel.domain.identity``).

Responsibility
--------------
The engine never authenticates anyone.  An upstream layer hands in an
``ActorContext`` (user id, role names, base id) which is trusted as-is.
``CapabilityPolicy`` answers one question: do any of these roles grant
the capability an operation needs?  The role -> capability map comes
from configuration.

Architecture position
---------------------
**Kernel domain layer** -- pure, ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from order_kernel.exceptions import CapabilityDeniedError


class Capability:
    """Capability names consumed by the lifecycle service."""

    READ = "order.read"
    CREATE = "order.create"
    UPDATE = "order.update"
    CONFIRM = "order.confirm"
    CANCEL = "order.cancel"
    SHIP = "order.ship"
    DELIVER = "order.deliver"
    RECEIVE = "order.receive"
    COMPLETE = "order.complete"
    PAYMENT = "order.payment"
    DELETE = "order.delete"

    ALL = frozenset({
        READ, CREATE, UPDATE, CONFIRM, CANCEL, SHIP,
        DELIVER, RECEIVE, COMPLETE, PAYMENT, DELETE,
    })


@dataclass(frozen=True)
class ActorContext:
    """Already-authorized caller identity, scoped to one base (tenant)."""

    user_id: UUID
    roles: tuple[str, ...]
    base_id: UUID

    def __post_init__(self) -> None:
        if not isinstance(self.roles, tuple):
            object.__setattr__(self, "roles", tuple(self.roles))


class CapabilityPolicy:
    """Role -> capability lookup built from the configured grants."""

    def __init__(self, grants: Mapping[str, frozenset[str]]):
        self._grants = MappingProxyType(
            {role: frozenset(caps) for role, caps in grants.items()}
        )

    @classmethod
    def from_config(cls, config) -> "CapabilityPolicy":
        return cls(config.capabilities)

    def capabilities_for(self, roles: tuple[str, ...]) -> frozenset[str]:
        granted: set[str] = set()
        for role in roles:
            granted |= self._grants.get(role, frozenset())
        return frozenset(granted)

    def allows(self, actor: ActorContext, capability: str) -> bool:
        return capability in self.capabilities_for(actor.roles)

    def require(self, actor: ActorContext, capability: str) -> None:
        """
        Raises:
            CapabilityDeniedError: if no role of ``actor`` grants ``capability``.
        """
        if not self.allows(actor, capability):
            raise CapabilityDeniedError(str(actor.user_id), capability, actor.roles)
